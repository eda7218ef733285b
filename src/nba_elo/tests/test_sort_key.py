"""Tests for the K-factor/date secondary sort key."""

import pytest

from nba_elo.sort_key import SortKey


def test_group_key_ignores_date():
    a = SortKey(20, 2015, 2014, 11, 1)
    b = SortKey(20, 2016, 2016, 3, 30)
    assert a.same_group(b)
    assert a.group_key() == b.group_key() == 20


def test_group_key_differs_across_k():
    assert not SortKey(20, 2015, 2014, 11, 1).same_group(SortKey(21, 2015, 2014, 11, 1))


def test_equality_is_full_field():
    """Same K with different dates is group-equal but not order-equal."""
    a = SortKey(20, 2015, 2014, 11, 1)
    b = SortKey(20, 2015, 2014, 11, 2)
    assert a.same_group(b)
    assert a != b
    assert a == SortKey(20, 2015, 2014, 11, 1)


@pytest.mark.parametrize(
    "earlier, later",
    [
        (SortKey(1, 2016, 2016, 1, 1), SortKey(2, 2015, 2014, 10, 1)),
        (SortKey(5, 2015, 2015, 4, 1), SortKey(5, 2016, 2015, 10, 28)),
        (SortKey(5, 2015, 2014, 12, 31), SortKey(5, 2015, 2015, 1, 1)),
        (SortKey(5, 2015, 2014, 11, 30), SortKey(5, 2015, 2014, 12, 1)),
        (SortKey(5, 2015, 2014, 11, 1), SortKey(5, 2015, 2014, 11, 2)),
    ],
)
def test_less_orders_k_then_date(earlier, later):
    assert earlier.less(later)
    assert not later.less(earlier)
    assert earlier < later


def test_less_is_irreflexive():
    key = SortKey(5, 2015, 2014, 11, 1)
    assert not key.less(key)


def test_sorting_keeps_groups_contiguous():
    keys = [
        SortKey(2, 2015, 2014, 11, 5),
        SortKey(1, 2015, 2014, 12, 1),
        SortKey(2, 2015, 2014, 11, 1),
        SortKey(1, 2015, 2014, 11, 3),
        SortKey(3, 2014, 2013, 11, 1),
    ]
    ordered = sorted(keys)
    groups = [k.group_key() for k in ordered]
    assert groups == [1, 1, 2, 2, 3]
    assert ordered[0].day == 3 and ordered[2].day == 1


def test_str_rendering():
    assert str(SortKey(12, 2015, 2014, 11, 7)) == "12 2014/11/7"


def test_default_key_is_invalid():
    key = SortKey()
    assert key.k_factor == -1
    assert key.year == 0
