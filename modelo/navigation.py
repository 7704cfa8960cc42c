import logging
from typing import List, Optional
from urllib.parse import urlencode

logger = logging.getLogger(__name__)


class ROUTES:
    LOGIN = "/login"
    REGISTER = "/register"

    HOME = "/"
    SEARCH = "/home/search"

    PROFILE = "/profile"
    PROFILE_EDIT = "/profile/edit"
    PROFILE_SETTINGS = "/profile/settings"

    SERVICES = "/services"
    SERVICE_CREATE = "/services/create"

    APPLICATIONS = "/applications"
    MESSAGES = "/messages"

    @staticmethod
    def service_details(service_id: str) -> str:
        return f"/services/{service_id}"

    @staticmethod
    def service_edit(service_id: str) -> str:
        return f"/services/create?{urlencode({'serviceId': service_id})}"

    @staticmethod
    def application_details(application_id: str) -> str:
        return f"/applications/{application_id}"

    @staticmethod
    def application_create(service_id: str) -> str:
        return f"/applications/create?{urlencode({'serviceId': service_id})}"

    @staticmethod
    def conversation(conversation_id: str) -> str:
        return f"/messages/{conversation_id}"

    @staticmethod
    def user_profile(user_id: str) -> str:
        return f"/profile?{urlencode({'userId': user_id})}"


class Navigator:
    """History stack for one client session."""

    def __init__(self, initial: str = ROUTES.HOME):
        self.history: List[str] = [initial]

    @property
    def current(self) -> str:
        return self.history[-1]

    def push(self, route: str) -> None:
        logger.debug(f"push {route}")
        self.history.append(route)

    def replace(self, route: str) -> None:
        logger.debug(f"replace {self.current} -> {route}")
        self.history[-1] = route

    def back(self) -> Optional[str]:
        if len(self.history) > 1:
            self.history.pop()
        return self.current

    def reset(self, route: str) -> None:
        self.history = [route]
