from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from app.models.pool import Pool
    from app.models.tournament import Tournament

MATCH_TYPE_POOL = "pool"
MATCH_TYPE_BRACKET = "bracket"


class Match(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: int = Field(foreign_key="tournament.id", index=True)
    pool_id: Optional[int] = Field(default=None, foreign_key="pool.id", index=True)  # null for bracket matches
    match_type: str = Field(index=True)  # "pool" | "bracket"

    # Pool play: position of the round in the template (1..R)
    round_number: Optional[int] = Field(default=None)
    # Bracket play: round 1..log2(B); index 0-based within the round
    bracket_round: Optional[int] = Field(default=None)
    bracket_match_index: Optional[int] = Field(default=None)

    # Team slots (nullable: unfilled slot or bye)
    team_a_id: Optional[int] = Field(default=None, foreign_key="team.id")
    team_b_id: Optional[int] = Field(default=None, foreign_key="team.id")
    ref_team_id: Optional[int] = Field(default=None, foreign_key="team.id")

    # Runtime (written by score entry)
    score_a: Optional[int] = Field(default=None)
    score_b: Optional[int] = Field(default=None)
    winner_team_id: Optional[int] = Field(default=None, foreign_key="team.id")
    is_live: bool = Field(default=False)
    created_at: datetime = Field(default_factory=datetime.utcnow)

    # Relationships
    tournament: "Tournament" = Relationship(back_populates="matches")
    pool: Optional["Pool"] = Relationship(back_populates="matches")

    @property
    def is_complete(self) -> bool:
        """Both scores recorded."""
        return self.score_a is not None and self.score_b is not None

    def has_team(self, team_id: Optional[int]) -> bool:
        return team_id is not None and team_id in (self.team_a_id, self.team_b_id)
