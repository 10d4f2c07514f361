from instarelief.models.alert import ProcessedAlert
from instarelief.models.catastrophe import Catastrophe, CatastropheSource, Payout
from instarelief.models.user import User, UserStatus

__all__ = [
    "Catastrophe",
    "CatastropheSource",
    "Payout",
    "ProcessedAlert",
    "User",
    "UserStatus",
]
