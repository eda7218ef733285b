from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional

import yaml

from .accuracy import TIE_POLICIES, TIE_POLICY_EXCLUDE

# Defaults for the K-factor sweep and rating seed.
MIN_K_FACTOR = 1
MAX_K_FACTOR = 40
K_FACTOR_STEP = 1
START_ELO = 1200.0
DEFAULT_MAX_WORKERS = 4


@dataclass
class Config:
    raw: Dict[str, Any]

    @property
    def sweep(self) -> Dict[str, Any]:
        return self.raw.get("sweep") or {}

    @property
    def min_k(self) -> int:
        return self.sweep.get("min_k", MIN_K_FACTOR)

    @property
    def max_k(self) -> int:
        return self.sweep.get("max_k", MAX_K_FACTOR)

    @property
    def k_step(self) -> int:
        return self.sweep.get("k_step", K_FACTOR_STEP)

    @property
    def initial_elo(self) -> float:
        return float(self.raw.get("initial_elo", START_ELO))

    @property
    def max_workers(self) -> int:
        return int(self.raw.get("max_workers", DEFAULT_MAX_WORKERS))

    @property
    def tie_policy(self) -> str:
        return self.raw.get("tie_policy", TIE_POLICY_EXCLUDE)

    @property
    def league_stats(self) -> Dict[Any, Dict[str, float]]:
        return self.raw.get("league_stats") or {}

    @property
    def output(self) -> Dict[str, str]:
        return self.raw.get("output") or {}

    @property
    def region(self) -> str:
        return self.raw.get("region", "us-east-1")

    def validate(self) -> None:
        for name in ("min_k", "max_k", "k_step"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValueError(f"sweep.{name} must be an integer, got {value!r}")
        if self.k_step <= 0:
            raise ValueError("sweep.k_step must be > 0")
        if self.min_k > self.max_k:
            raise ValueError("sweep.min_k must be <= sweep.max_k")
        try:
            initial = self.initial_elo
        except (TypeError, ValueError):
            raise ValueError(f"initial_elo must be a number, got {self.raw.get('initial_elo')!r}") from None
        if not math.isfinite(initial):
            raise ValueError("initial_elo must be finite")
        if self.max_workers < 1:
            raise ValueError("max_workers must be >= 1")
        if self.tie_policy not in TIE_POLICIES:
            raise ValueError(f"tie_policy must be one of {TIE_POLICIES}, got {self.tie_policy!r}")

    def k_factors(self) -> List[int]:
        return list(iter_k_factors(self.min_k, self.max_k, self.k_step))


def iter_k_factors(min_k: int, max_k: int, step: int) -> Iterator[int]:
    k = min_k
    while k <= max_k:
        yield k
        k += step


def load_config(path: Optional[str] = "config.yaml") -> Config:
    if path is None:
        raw: Dict[str, Any] = {}
    else:
        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
    if not isinstance(raw, dict):
        raise ValueError("config root must be a mapping")
    cfg = Config(raw)
    cfg.validate()
    return cfg
