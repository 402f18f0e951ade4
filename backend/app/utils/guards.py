"""
Route Guards and Utilities

Provides reusable lookups and error mapping for the API layer:
- Tournament / pool / match ownership validation
- Engine error -> HTTPException translation
"""

from fastapi import HTTPException
from sqlmodel import Session

from app.models.match import Match
from app.models.pool import Pool
from app.models.tournament import Tournament
from app.services.engine_errors import EngineError


def get_tournament_or_404(session: Session, tournament_id: int) -> Tournament:
    """
    Get a tournament or raise 404.

    Raises:
        HTTPException 404: Tournament not found
    """
    tournament = session.get(Tournament, tournament_id)
    if not tournament:
        raise HTTPException(status_code=404, detail="Tournament not found")
    return tournament


def get_pool_or_404(session: Session, pool_id: int) -> Pool:
    pool = session.get(Pool, pool_id)
    if not pool:
        raise HTTPException(status_code=404, detail="Pool not found")
    return pool


def get_match_or_404(session: Session, match_id: int, tournament_id: int) -> Match:
    """
    Get a match belonging to the tournament or raise 404.

    Raises:
        HTTPException 404: Match not found or belongs to another tournament
    """
    match = session.get(Match, match_id)
    if not match or match.tournament_id != tournament_id:
        raise HTTPException(status_code=404, detail="Match not found")
    return match


def engine_error_to_http(exc: EngineError) -> HTTPException:
    """Translate an engine rejection into an HTTP error carrying code, reason and details."""
    return HTTPException(status_code=exc.status_code, detail=exc.to_detail())
