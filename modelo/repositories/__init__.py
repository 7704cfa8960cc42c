from .applications import ApplicationRepository
from .categories import CategoryRepository
from .featured import FeaturedRepository
from .messages import MessageRepository
from .ratings import RatingRepository
from .services import ServiceRepository
from .users import UserRepository

__all__ = [
    "ApplicationRepository",
    "CategoryRepository",
    "FeaturedRepository",
    "MessageRepository",
    "RatingRepository",
    "ServiceRepository",
    "UserRepository",
]
