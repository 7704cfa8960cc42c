"""
Client-side state containers.

One instance of each store lives in a client session; nothing here is a
module-level singleton. Every mutation notifies the store's listeners
synchronously, after the new state is in place.
"""
import time
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from .events import ListenerSet, Subscription
from .helpers import APP_CONFIG, calculate_distance
from .schemas import Application, ApplicationStatus, Message, Service


class Store:
    def __init__(self):
        self._listeners = ListenerSet()

    def subscribe(self, listener: Callable[["Store"], None]) -> Subscription:
        return self._listeners.add(listener)

    def _changed(self) -> None:
        self._listeners.notify(self)


# ---------------------------
# Auth
# ---------------------------
_UNSET = object()


class AuthStore(Store):
    def __init__(self):
        super().__init__()
        self.user = None
        self.auth_user = None
        self.is_authenticated = False
        self.is_initialized = False
        self.is_loading = True
        self.error: Optional[str] = None

    @property
    def is_profile_loading(self) -> bool:
        """Signed in, but the profile document has not arrived yet."""
        return self.is_authenticated and self.user is None

    @property
    def user_id(self) -> str:
        return self.user.id if self.user is not None else ""

    def set_user(self, user) -> None:
        self.user = user
        self._changed()

    def set_auth_user(self, auth_user) -> None:
        self.auth_user = auth_user
        self.is_authenticated = auth_user is not None
        self._changed()

    def set_auth_state(self, user=_UNSET, auth_user=_UNSET, is_authenticated=_UNSET,
                       is_loading=_UNSET, error=_UNSET) -> None:
        """Set several fields at once with a single notification."""
        if user is not _UNSET:
            self.user = user
        if auth_user is not _UNSET:
            self.auth_user = auth_user
        if is_authenticated is not _UNSET:
            self.is_authenticated = is_authenticated
        if is_loading is not _UNSET:
            self.is_loading = is_loading
        if error is not _UNSET:
            self.error = error
        self._changed()

    def set_initialized(self, is_initialized: bool) -> None:
        self.is_initialized = is_initialized
        self._changed()

    def set_loading(self, is_loading: bool) -> None:
        self.is_loading = is_loading
        self._changed()

    def set_error(self, error: Optional[str]) -> None:
        self.error = error
        self._changed()

    def logout(self) -> None:
        self.user = None
        self.auth_user = None
        self.is_authenticated = False
        self._changed()

    def subscribe_to_auth_changes(self, auth_client, callback: Callable) -> Subscription:
        """Mirror the auth client's state here, then hand the event to ``callback``.

        Loading is left to the caller.
        """
        def on_change(auth_user):
            self.auth_user = auth_user
            self.is_authenticated = auth_user is not None
            self.is_initialized = True
            self._changed()
            callback(auth_user)

        return auth_client.on_auth_state_changed(on_change)


# ---------------------------
# Applications
# ---------------------------
class ApplicationStore(Store):
    def __init__(self):
        super().__init__()
        self.applications: List[Application] = []
        self.filtered_status: List[str] = [
            ApplicationStatus.PENDING.value,
            ApplicationStatus.ACCEPTED.value,
            ApplicationStatus.COMPLETED.value,
        ]
        self.selected_application: Optional[Application] = None
        self.is_loading = False
        self.error: Optional[str] = None

    def set_applications(self, applications: List[Application]) -> None:
        self.applications = list(applications)
        self._changed()

    def add_application(self, application: Application) -> None:
        self.applications = [application] + self.applications
        self._changed()

    def update_application(self, application_id: str, **changes) -> None:
        self.applications = [a.model_copy(update=changes) if a.id == application_id else a
                             for a in self.applications]
        if self.selected_application is not None and self.selected_application.id == application_id:
            self.selected_application = self.selected_application.model_copy(update=changes)
        self._changed()

    def remove_application(self, application_id: str) -> None:
        self.applications = [a for a in self.applications if a.id != application_id]
        if self.selected_application is not None and self.selected_application.id == application_id:
            self.selected_application = None
        self._changed()

    def set_selected_application(self, application: Optional[Application]) -> None:
        self.selected_application = application
        self._changed()

    def set_filtered_status(self, statuses: List[str]) -> None:
        self.filtered_status = [ApplicationStatus(s).value for s in statuses]
        self._changed()

    def set_loading(self, is_loading: bool) -> None:
        self.is_loading = is_loading
        self._changed()

    def set_error(self, error: Optional[str]) -> None:
        self.error = error
        self._changed()

    def get_application_by_id(self, application_id: str) -> Optional[Application]:
        return next((a for a in self.applications if a.id == application_id), None)

    def get_applications_for_service(self, service_id: str) -> List[Application]:
        return [a for a in self.applications if a.service_id == service_id]

    def get_model_applications(self, model_id: str) -> List[Application]:
        return [a for a in self.applications if a.model_id == model_id]

    def get_professional_applications(self, professional_id: str) -> List[Application]:
        return [a for a in self.applications if a.professional_id == professional_id]

    def get_filtered_applications(self) -> List[Application]:
        return [a for a in self.applications if a.status in self.filtered_status]

    def get_active_applications_count(self) -> int:
        active = (ApplicationStatus.PENDING.value, ApplicationStatus.ACCEPTED.value)
        return sum(1 for a in self.applications if a.status in active)

    def get_pending_applications_count(self) -> int:
        return sum(1 for a in self.applications if a.status == ApplicationStatus.PENDING.value)


# ---------------------------
# Messages
# ---------------------------
@dataclass
class ConversationInfo:
    id: str  # application id
    partner_id: str
    partner_name: str
    service_id: str
    service_title: str
    partner_picture: Optional[str] = None
    last_message: Optional[Message] = None
    unread_count: int = 0


class MessageStore(Store):
    def __init__(self, auth_store: AuthStore):
        super().__init__()
        self.auth_store = auth_store
        self.conversations: List[ConversationInfo] = []
        self.messages: Dict[str, List[Message]] = {}
        self.current_conversation_id: Optional[str] = None
        self.is_loading = False
        self.error: Optional[str] = None

    @property
    def current_user_id(self) -> str:
        return self.auth_store.user_id

    def set_conversations(self, conversations: List[ConversationInfo]) -> None:
        self.conversations = list(conversations)
        self._changed()

    def add_conversation(self, conversation: ConversationInfo) -> None:
        self.conversations = self.conversations + [conversation]
        self._changed()

    def update_conversation(self, conversation_id: str, **changes) -> None:
        self.conversations = [replace(c, **changes) if c.id == conversation_id else c
                              for c in self.conversations]
        self._changed()

    def remove_conversation(self, conversation_id: str) -> None:
        self.conversations = [c for c in self.conversations if c.id != conversation_id]
        self.messages.pop(conversation_id, None)
        self._changed()

    def set_messages(self, conversation_id: str, messages: List[Message]) -> None:
        self.messages[conversation_id] = list(messages)
        self._changed()

    def add_message(self, conversation_id: str, message: Message) -> None:
        """Append a message; unread count grows only for messages from someone else."""
        self.messages[conversation_id] = self.messages.get(conversation_id, []) + [message]
        user_id = self.current_user_id
        self.conversations = [
            replace(c, last_message=message,
                    unread_count=c.unread_count + (1 if message.sender_id != user_id else 0))
            if c.id == conversation_id else c
            for c in self.conversations
        ]
        self._changed()

    def update_message(self, conversation_id: str, message_id: str, **changes) -> None:
        self.messages[conversation_id] = [
            m.model_copy(update=changes) if m.id == message_id else m
            for m in self.messages.get(conversation_id, [])
        ]
        self._changed()

    def set_current_conversation(self, conversation_id: Optional[str]) -> None:
        self.current_conversation_id = conversation_id
        self._changed()

    def mark_conversation_as_read(self, conversation_id: str) -> None:
        user_id = self.current_user_id
        now = datetime.now(timezone.utc)
        self.messages[conversation_id] = [
            m.model_copy(update={"is_read": True, "read_at": now})
            if m.receiver_id == user_id and not m.is_read else m
            for m in self.messages.get(conversation_id, [])
        ]
        self.conversations = [replace(c, unread_count=0) if c.id == conversation_id else c
                              for c in self.conversations]
        self._changed()

    def set_loading(self, is_loading: bool) -> None:
        self.is_loading = is_loading
        self._changed()

    def set_error(self, error: Optional[str]) -> None:
        self.error = error
        self._changed()

    def get_conversation_by_id(self, conversation_id: str) -> Optional[ConversationInfo]:
        return next((c for c in self.conversations if c.id == conversation_id), None)

    def get_messages_for_conversation(self, conversation_id: str) -> List[Message]:
        return self.messages.get(conversation_id, [])

    def get_conversation_with_user(self, user_id: str) -> Optional[ConversationInfo]:
        return next((c for c in self.conversations if c.partner_id == user_id), None)

    def get_total_unread_count(self) -> int:
        return sum(c.unread_count for c in self.conversations)


# ---------------------------
# Services
# ---------------------------
def default_filters() -> Dict[str, Any]:
    return {"category": "all", "search_query": "", "radius": APP_CONFIG["default_search_radius"]}


FILTER_KEYS = {"category", "search_query", "city", "price_range", "date_range", "radius",
               "only_urgent", "gender", "age_range", "hair_color", "eye_color"}


def _age_mismatch(criteria, age_range: Dict[str, int]) -> bool:
    lo, hi = age_range["min"], age_range["max"]
    if criteria.age_min and criteria.age_max:
        return lo > criteria.age_max or hi < criteria.age_min
    if criteria.age_min:
        return lo < criteria.age_min
    if criteria.age_max:
        return hi > criteria.age_max
    return False


def _colour_mismatch(wanted: Optional[List[str]], offered: Optional[List[str]]) -> bool:
    if not wanted or not offered:
        return False
    return not any(colour in offered for colour in wanted)


def service_matches(service: Service, filters: Dict[str, Any], user=None) -> bool:
    """Client-side filter shared by the service store and the search screen."""
    category = filters.get("category")
    if category and category != "all" and category not in service.types:
        return False

    query = (filters.get("search_query") or "").lower()
    if query and not (query in service.title.lower()
                      or query in service.description.lower()
                      or query in service.location.city.lower()):
        return False

    city = filters.get("city")
    if city and service.location.city.lower() != city.lower():
        return False

    price_range = filters.get("price_range")
    if price_range:
        price = service.payment.amount or 0
        if price < price_range["min"] or price > price_range["max"]:
            return False

    date_range = filters.get("date_range")
    if date_range:
        start = service.date.start_date
        if start < date_range["start"] or start > date_range["end"]:
            return False

    if filters.get("only_urgent") and not service.is_urgent:
        return False

    criteria = service.criteria
    gender = filters.get("gender")
    if gender and criteria.gender is not None and criteria.gender != gender:
        return False

    if filters.get("age_range") and _age_mismatch(criteria, filters["age_range"]):
        return False

    if _colour_mismatch(filters.get("hair_color"), criteria.hair_color):
        return False
    if _colour_mismatch(filters.get("eye_color"), criteria.eye_color):
        return False

    radius = filters.get("radius")
    user_coords = user.location.coordinates if user is not None else None
    service_coords = service.location.coordinates
    if radius and service_coords and user_coords:
        distance = calculate_distance(user_coords.latitude, user_coords.longitude,
                                      service_coords.latitude, service_coords.longitude)
        if distance > radius:
            return False

    return True


class ServiceStore(Store):
    def __init__(self, auth_store: AuthStore):
        super().__init__()
        self.auth_store = auth_store
        self.recent_services: List[Service] = []
        self.favorite_service_ids: List[str] = []
        self.active_filters: Dict[str, Any] = default_filters()

    def set_recent_services(self, services: List[Service]) -> None:
        self.recent_services = list(services)
        self._changed()

    def add_recent_service(self, service: Service) -> None:
        self.recent_services = [service] + self.recent_services
        self._changed()

    def update_service(self, service_id: str, **changes) -> None:
        self.recent_services = [s.model_copy(update=changes) if s.id == service_id else s
                                for s in self.recent_services]
        self._changed()

    def remove_service(self, service_id: str) -> None:
        self.recent_services = [s for s in self.recent_services if s.id != service_id]
        self._changed()

    def toggle_favorite(self, service_id: str) -> None:
        if service_id in self.favorite_service_ids:
            self.favorite_service_ids = [i for i in self.favorite_service_ids if i != service_id]
        else:
            self.favorite_service_ids = self.favorite_service_ids + [service_id]
        self._changed()

    def is_favorite(self, service_id: str) -> bool:
        return service_id in self.favorite_service_ids

    def set_filter(self, key: str, value: Any) -> None:
        if key not in FILTER_KEYS:
            raise KeyError(f"Unknown service filter: {key}")
        self.active_filters = dict(self.active_filters, **{key: value})
        self._changed()

    def reset_filters(self) -> None:
        self.active_filters = default_filters()
        self._changed()

    def get_filtered_services(self) -> List[Service]:
        user = self.auth_store.user
        return [s for s in self.recent_services if service_matches(s, self.active_filters, user)]

    def get_service_by_id(self, service_id: str) -> Optional[Service]:
        return next((s for s in self.recent_services if s.id == service_id), None)

    def get_favorite_services(self) -> List[Service]:
        return [s for s in self.recent_services if s.id in self.favorite_service_ids]


# ---------------------------
# UI
# ---------------------------
TOAST_TYPES = ("success", "error", "info", "warning")
DEFAULT_TOAST_DURATION = 3000  # ms


@dataclass
class Toast:
    id: str
    type: str
    message: str
    duration: int = DEFAULT_TOAST_DURATION
    expires_at: float = field(default=0.0, repr=False)


class UiStore(Store):
    """Toasts, the pull-to-refresh flag and bottom sheet state.

    Toasts expire after their duration; expired ones are dropped whenever the
    list is read.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        super().__init__()
        self._clock = clock
        self._toasts: List[Toast] = []
        self._seq = 0
        self.is_refreshing = False
        self.is_bottom_sheet_open = False
        self.active_bottom_sheet: Optional[str] = None
        self.bottom_sheet_data: Any = None

    @property
    def toasts(self) -> List[Toast]:
        now = self._clock()
        self._toasts = [t for t in self._toasts if t.expires_at > now]
        return list(self._toasts)

    def show_toast(self, type: str, message: str, duration: Optional[int] = None) -> str:
        if type not in TOAST_TYPES:
            raise ValueError(f"Unknown toast type: {type}")
        self._seq += 1
        toast_id = f"toast-{int(time.time() * 1000)}-{self._seq}"
        duration = duration or DEFAULT_TOAST_DURATION
        self._toasts.append(Toast(toast_id, type, message, duration,
                                  self._clock() + duration / 1000))
        self._changed()
        return toast_id

    def hide_toast(self, toast_id: str) -> None:
        self._toasts = [t for t in self._toasts if t.id != toast_id]
        self._changed()

    def clear_toasts(self) -> None:
        self._toasts = []
        self._changed()

    def set_refreshing(self, is_refreshing: bool) -> None:
        self.is_refreshing = is_refreshing
        self._changed()

    def open_bottom_sheet(self, sheet_name: str, data: Any = None) -> None:
        self.is_bottom_sheet_open = True
        self.active_bottom_sheet = sheet_name
        self.bottom_sheet_data = data
        self._changed()

    def close_bottom_sheet(self) -> None:
        self.is_bottom_sheet_open = False
        self.active_bottom_sheet = None
        self.bottom_sheet_data = None
        self._changed()

    def set_bottom_sheet_data(self, data: Any) -> None:
        self.bottom_sheet_data = data
        self._changed()
