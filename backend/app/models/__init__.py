from app.models.match import Match
from app.models.pool import Pool
from app.models.schedule_template import ScheduleTemplate
from app.models.team import Team
from app.models.tournament import Tournament

__all__ = [
    "Tournament",
    "Pool",
    "Team",
    "Match",
    "ScheduleTemplate",
]
