from datetime import date, datetime
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from sqlalchemy import JSON
from sqlmodel import Column, Field, Relationship, SQLModel

if TYPE_CHECKING:
    from app.models.match import Match
    from app.models.pool import Pool
    from app.models.schedule_template import ScheduleTemplate
    from app.models.team import Team

TOURNAMENT_STATUSES = ("draft", "setup", "pool_play", "bracket", "completed")


class Tournament(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    tournament_date: Optional[date] = None
    status: str = Field(default="draft")  # "draft" | "setup" | "pool_play" | "bracket" | "completed"

    # {"tiebreakers": ["head_to_head", "set_ratio", "point_diff", "random"]}
    advancement_rules: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON, nullable=True))
    # {"pool": {"setTarget": 21, "cap": 25}, "bracket": {...}} (stored, not interpreted)
    game_rules: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON, nullable=True))

    # Bracket lifecycle latch: flips to True once any bracket match goes live or is scored; never reset
    bracket_started: bool = Field(default=False)
    bracket_generated_at: Optional[datetime] = Field(default=None)

    created_at: datetime = Field(default_factory=datetime.utcnow)

    # Relationships
    pools: List["Pool"] = Relationship(back_populates="tournament")
    teams: List["Team"] = Relationship(back_populates="tournament")
    matches: List["Match"] = Relationship(back_populates="tournament")
    schedule_templates: List["ScheduleTemplate"] = Relationship(back_populates="tournament")
