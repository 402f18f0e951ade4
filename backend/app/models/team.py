from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import UniqueConstraint as SAUniqueConstraint
from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from app.models.pool import Pool
    from app.models.tournament import Tournament


class Team(SQLModel, table=True):
    __table_args__ = (
        # Unique seeds within a pool (where seed is not null)
        SAUniqueConstraint("pool_id", "seed_in_pool", name="uq_pool_seed"),
        # Unique global seeds within a tournament (where seed is not null)
        SAUniqueConstraint("tournament_id", "seed_global", name="uq_tournament_seed_global"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: int = Field(foreign_key="tournament.id", index=True)
    pool_id: Optional[int] = Field(default=None, foreign_key="pool.id", index=True)  # null until seeded
    name: str  # Display name ("{seeded player} + {partner}" once the partner is assigned)
    seeded_player_name: Optional[str] = Field(default=None)
    partner_name: Optional[str] = Field(default=None)
    seed_in_pool: Optional[int] = Field(default=None)  # 1-based, drives schedule slots and ref duty
    seed_global: Optional[int] = Field(default=None)  # 1-based, breaks ties in advancer ordering
    created_at: datetime = Field(default_factory=datetime.utcnow)

    # Relationships
    tournament: "Tournament" = Relationship(back_populates="teams")
    pool: Optional["Pool"] = Relationship(back_populates="teams")
