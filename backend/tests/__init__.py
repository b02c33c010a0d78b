# Force SQLModel table registration at test discovery time
from tabletennis.models.match import Match  # noqa: F401
from tabletennis.models.notification import Notification  # noqa: F401
from tabletennis.models.player import Player  # noqa: F401
from tabletennis.models.ranking import RankingSnapshot  # noqa: F401
from tabletennis.models.rating_history import RatingHistory  # noqa: F401
from tabletennis.models.registration import Registration  # noqa: F401
from tabletennis.models.tournament import Tournament  # noqa: F401
