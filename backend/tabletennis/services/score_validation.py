"""
Best-of-five set validation for result entry.

A set counts when both scores are non-negative integers, the higher score is
at least 11, and the margin is 2 (exactly 2 once the higher score passes 11).
Invalid sets are dropped from the decision, not rejected; the submission is
refused only when the valid sets do not decide the match.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from tabletennis.errors import ResultIncomplete, ValidationError

SETS_TO_WIN = 3
MAX_SETS = 5
MIN_WINNING_SCORE = 11
MIN_MARGIN = 2


@dataclass
class DecidedScore:
    sets: List[Tuple[int, int]]  # as submitted, (player1, player2)
    valid_set_indexes: List[int]
    player1_sets_won: int
    player2_sets_won: int
    winner_side: int  # 1 or 2
    ignored_set_indexes: List[int] = field(default_factory=list)

    @property
    def sets_count(self) -> Dict[str, int]:
        return {"player1": self.player1_sets_won, "player2": self.player2_sets_won}


def _is_int(value: Any) -> bool:
    # bool is an int subclass; a True/False score is malformed
    return isinstance(value, int) and not isinstance(value, bool)


def _as_pair(raw: Any) -> Tuple[int, int]:
    if isinstance(raw, dict):
        if "player1" not in raw or "player2" not in raw:
            raise ValidationError("each set needs 'player1' and 'player2' scores", field="sets")
        pair = (raw["player1"], raw["player2"])
    elif isinstance(raw, (list, tuple)) and len(raw) == 2:
        pair = (raw[0], raw[1])
    else:
        raise ValidationError(f"malformed set score: {raw!r}", field="sets")
    if not (_is_int(pair[0]) and _is_int(pair[1])):
        raise ValidationError(f"set scores must be integers: {raw!r}", field="sets")
    return pair


def is_valid_set(score1: Any, score2: Any) -> bool:
    """True when a single set result is a legal, finished set."""
    if not (_is_int(score1) and _is_int(score2)):
        return False
    if score1 < 0 or score2 < 0:
        return False
    high, low = max(score1, score2), min(score1, score2)
    if high < MIN_WINNING_SCORE:
        return False
    if high == MIN_WINNING_SCORE:
        return low <= MIN_WINNING_SCORE - MIN_MARGIN
    return high - low == MIN_MARGIN


def decide_match(sets: Optional[Sequence[Any]]) -> DecidedScore:
    """
    Validate submitted sets and derive the winner.

    Raises:
        ValidationError: missing sets, more than five sets, or a set that is
            not a (player1, player2) pair of integers
        ResultIncomplete: fewer than 3 valid sets or no player holding 3 of them
    """
    if not sets:
        raise ValidationError("at least one set score is required", field="sets")
    if len(sets) > MAX_SETS:
        raise ValidationError(f"best of {MAX_SETS}: got {len(sets)} sets", field="sets")

    pairs = [_as_pair(raw) for raw in sets]

    valid: List[int] = []
    ignored: List[int] = []
    p1_sets = 0
    p2_sets = 0
    for index, (a, b) in enumerate(pairs):
        if not is_valid_set(a, b):
            ignored.append(index)
            continue
        valid.append(index)
        if a > b:
            p1_sets += 1
        else:
            p2_sets += 1

    if len(valid) < SETS_TO_WIN:
        raise ResultIncomplete(
            f"need at least {SETS_TO_WIN} valid sets, got {len(valid)}", field="sets"
        )

    p1_decides = p1_sets >= SETS_TO_WIN
    p2_decides = p2_sets >= SETS_TO_WIN
    if p1_decides == p2_decides:
        raise ResultIncomplete(
            f"no unambiguous winner from valid sets ({p1_sets}-{p2_sets})", field="sets"
        )

    return DecidedScore(
        sets=pairs,
        valid_set_indexes=valid,
        player1_sets_won=p1_sets,
        player2_sets_won=p2_sets,
        winner_side=1 if p1_decides else 2,
        ignored_set_indexes=ignored,
    )
