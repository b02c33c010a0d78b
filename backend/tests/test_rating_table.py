"""
Tests for the 13-band rating table.
"""

import pytest

from tabletennis.services.rating_table import (
    EQUAL_STRENGTH_BAND,
    RATING_TABLE,
    is_equal_strength,
    select_band,
)


def test_table_has_thirteen_contiguous_bands():
    assert len(RATING_TABLE) == 13
    assert RATING_TABLE[0].min_diff == 0
    for previous, current in zip(RATING_TABLE, RATING_TABLE[1:]):
        assert current.min_diff == previous.max_diff + 1
    assert RATING_TABLE[-1].max_diff is None


@pytest.mark.parametrize(
    "gap,expected",
    [
        (0, (8, 8)),
        (12, (8, 8)),
        (13, (7, 10)),
        (37, (6, 10)),
        (49, (5, 10)),
        (50, (5, 12)),
        (130, (3, 15)),
        (199, (2, 16)),
        (250, (2, 25)),
        (350, (1, 30)),
        (351, (1, 35)),
        (450, (1, 40)),
        (451, (1, 50)),
        (5000, (1, 50)),
    ],
)
def test_select_band_boundaries(gap, expected):
    band = select_band(gap)
    assert (band.favorite_wins, band.underdog_wins) == expected


def test_equal_strength_band():
    assert select_band(5) is EQUAL_STRENGTH_BAND
    assert is_equal_strength(12)
    assert not is_equal_strength(13)


def test_open_ended_band_label():
    band = select_band(451)
    assert band.label == "[451,inf]"
