"""
TournamentConfig: stage switches and registration restrictions.

Stored as JSON on Tournament.config_json; parsed here so every service reads
the same validated shape.
"""

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class GroupStageConfig(BaseModel):
    enabled: bool = True
    players_per_group: Literal[3, 4, 5] = 4
    advance_per_group: Literal[1, 2, 3, 4] = 2  # consumed by the post-group phase


class EliminationStageConfig(BaseModel):
    enabled: bool = False
    format: Literal["single_elimination"] = "single_elimination"


class Restrictions(BaseModel):
    """Optional filters evaluated at registration time (never at draw time)."""

    min_age: Optional[int] = Field(default=None, gt=0)
    max_age: Optional[int] = Field(default=None, gt=0)
    gender: Optional[Literal["male", "female", "any"]] = None
    min_rating: Optional[int] = Field(default=None, ge=0)
    max_rating: Optional[int] = Field(default=None, gt=0)

    @model_validator(mode="after")
    def validate_ranges(self):
        if self.min_age is not None and self.max_age is not None and self.max_age < self.min_age:
            raise ValueError("max_age must be >= min_age")
        if self.min_rating is not None and self.max_rating is not None and self.max_rating < self.min_rating:
            raise ValueError("max_rating must be >= min_rating")
        return self


class TournamentConfig(BaseModel):
    model_config = ConfigDict(extra="ignore")

    max_participants: Optional[int] = Field(default=None, gt=0)
    group_stage: GroupStageConfig = Field(default_factory=GroupStageConfig)
    elimination_stage: EliminationStageConfig = Field(default_factory=EliminationStageConfig)
    restrictions: Restrictions = Field(default_factory=Restrictions)


def load_config(tournament) -> TournamentConfig:
    return TournamentConfig.model_validate(tournament.config_json or {})
