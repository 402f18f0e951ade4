from datetime import date, datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, field_validator
from sqlmodel import Session, select

from app.database import get_session
from app.models.tournament import TOURNAMENT_STATUSES, Tournament
from app.services.standings import KNOWN_TIEBREAKERS
from app.utils.guards import get_tournament_or_404

router = APIRouter()


class TournamentCreate(BaseModel):
    name: str
    tournament_date: Optional[date] = None
    status: str = "draft"
    advancement_rules: Optional[Dict[str, Any]] = None
    game_rules: Optional[Dict[str, Any]] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        if not v or not v.strip():
            raise ValueError("name is required")
        return v.strip()

    @field_validator("status")
    @classmethod
    def validate_status(cls, v):
        if v not in ("draft", "setup"):
            raise ValueError("new tournaments start in 'draft' or 'setup'")
        return v

    @field_validator("advancement_rules")
    @classmethod
    def validate_tiebreakers(cls, v):
        if v is None:
            return v
        tiebreakers = v.get("tiebreakers")
        if tiebreakers is None:
            return v
        if not isinstance(tiebreakers, list):
            raise ValueError("advancement_rules.tiebreakers must be a list")
        unknown = [t for t in tiebreakers if t not in KNOWN_TIEBREAKERS]
        if unknown:
            raise ValueError(f"unknown tiebreakers {unknown}; allowed: {list(KNOWN_TIEBREAKERS)}")
        return v


class TournamentResponse(BaseModel):
    id: int
    name: str
    tournament_date: Optional[date]
    status: str
    advancement_rules: Optional[Dict[str, Any]] = None
    game_rules: Optional[Dict[str, Any]] = None
    bracket_started: bool
    bracket_generated_at: Optional[datetime] = None
    created_at: datetime

    @field_validator("status")
    @classmethod
    def validate_status(cls, v):
        if v not in TOURNAMENT_STATUSES:
            raise ValueError(f"unknown status {v}")
        return v

    class Config:
        from_attributes = True


@router.get("/tournaments", response_model=List[TournamentResponse])
def list_tournaments(session: Session = Depends(get_session)):
    """List all tournaments"""
    tournaments = session.exec(select(Tournament).order_by(Tournament.id)).all()
    return tournaments


@router.post("/tournaments", response_model=TournamentResponse, status_code=201)
def create_tournament(tournament_data: TournamentCreate, session: Session = Depends(get_session)):
    """Create a new tournament"""
    tournament = Tournament(**tournament_data.model_dump())
    session.add(tournament)
    session.commit()
    session.refresh(tournament)
    return tournament


@router.get("/tournaments/{tournament_id}", response_model=TournamentResponse)
def get_tournament(tournament_id: int, session: Session = Depends(get_session)):
    """Get a tournament by ID"""
    return get_tournament_or_404(session, tournament_id)
