from .application_create import ApplicationCreateViewModel
from .application_detail import ApplicationDetailViewModel
from .application_list import ApplicationListViewModel
from .auth import AuthViewModel
from .base import ClientContext, ViewModel, screen_action
from .home import HomeViewModel
from .messaging import MessagingViewModel
from .profile import ProfileViewModel
from .search import SearchViewModel
from .service_create import ServiceCreateViewModel
from .service_detail import ServiceDetailViewModel

__all__ = [
    "ApplicationCreateViewModel",
    "ApplicationDetailViewModel",
    "ApplicationListViewModel",
    "AuthViewModel",
    "ClientContext",
    "HomeViewModel",
    "MessagingViewModel",
    "ProfileViewModel",
    "SearchViewModel",
    "ServiceCreateViewModel",
    "ServiceDetailViewModel",
    "ViewModel",
    "screen_action",
]
