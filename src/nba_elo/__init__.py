"""Player-level Elo ratings and K-factor selection for historical NBA games.

The pipeline keys every game once per candidate K-factor, orders each
K-factor's games chronologically, rates them with an ``EloEngine`` and
scores how well the pre-game ratings predicted the winners.
"""

__version__ = "0.1.0"
