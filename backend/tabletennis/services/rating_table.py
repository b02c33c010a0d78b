"""
Rating Table: 13 bands keyed by absolute rating difference.

Single source of truth for point awards. Bands are inclusive on both ends;
the last band is open-ended and also serves as the lookup fallback.
"""

from dataclasses import asdict, dataclass
from typing import Optional, Tuple


@dataclass(frozen=True)
class RatingBand:
    min_diff: int
    max_diff: Optional[int]  # None = unbounded
    favorite_wins: int  # exchanged when the favorite wins
    underdog_wins: int  # exchanged when the underdog wins (upset)

    def contains(self, gap: int) -> bool:
        if gap < self.min_diff:
            return False
        return self.max_diff is None or gap <= self.max_diff

    @property
    def label(self) -> str:
        upper = "inf" if self.max_diff is None else str(self.max_diff)
        return f"[{self.min_diff},{upper}]"

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "RatingBand":
        return cls(
            min_diff=int(data["min_diff"]),
            max_diff=None if data.get("max_diff") is None else int(data["max_diff"]),
            favorite_wins=int(data["favorite_wins"]),
            underdog_wins=int(data["underdog_wins"]),
        )


RATING_TABLE: Tuple[RatingBand, ...] = (
    RatingBand(0, 12, 8, 8),
    RatingBand(13, 24, 7, 10),
    RatingBand(25, 37, 6, 10),
    RatingBand(38, 49, 5, 10),
    RatingBand(50, 99, 5, 12),
    RatingBand(100, 149, 3, 15),
    RatingBand(150, 199, 2, 16),
    RatingBand(200, 249, 2, 20),
    RatingBand(250, 299, 2, 25),
    RatingBand(300, 350, 1, 30),
    RatingBand(351, 400, 1, 35),
    RatingBand(401, 450, 1, 40),
    RatingBand(451, None, 1, 50),
)

# Lowest band: "favorite" is undefined and both outcomes move 8 points
EQUAL_STRENGTH_BAND = RATING_TABLE[0]


def select_band(gap: int) -> RatingBand:
    """Return the band containing `gap` (linear scan; last band is the fallback)."""
    for band in RATING_TABLE:
        if band.contains(gap):
            return band
    return RATING_TABLE[-1]


def is_equal_strength(gap: int) -> bool:
    return EQUAL_STRENGTH_BAND.contains(gap)
