from tabletennis.models.match import Match, MatchStage, MatchStatus
from tabletennis.models.notification import Notification
from tabletennis.models.player import DEFAULT_RATING, Gender, Player
from tabletennis.models.ranking import RankingSnapshot
from tabletennis.models.rating_history import RatingHistory
from tabletennis.models.registration import Registration, RegistrationStatus
from tabletennis.models.tournament import Tournament, TournamentCategory, TournamentStatus

__all__ = [
    "Player",
    "Gender",
    "DEFAULT_RATING",
    "Tournament",
    "TournamentCategory",
    "TournamentStatus",
    "Registration",
    "RegistrationStatus",
    "Match",
    "MatchStage",
    "MatchStatus",
    "RatingHistory",
    "RankingSnapshot",
    "Notification",
]
