"""
Shared plumbing for the screen view-models.

A view-model reads and writes through the repositories of its ClientContext,
mirrors results into the session stores, and exposes a plain ``state()``
dict for rendering. Subscriptions it opens are released by ``close()``.
"""
import logging
from dataclasses import dataclass
from functools import wraps
from typing import Any, Dict, List, Optional

from ..auth import AuthClient, IdentityProvider
from ..database import DocumentGateway
from ..errors import FormValidationError, ModeloError, NotFoundError, PermissionDeniedError
from ..events import Subscription
from ..navigation import Navigator
from ..repositories import (ApplicationRepository, CategoryRepository, FeaturedRepository,
                            MessageRepository, RatingRepository, ServiceRepository, UserRepository)
from ..schemas import UserRole
from ..storage import BlobStorage
from ..stores import ApplicationStore, AuthStore, MessageStore, ServiceStore, UiStore

logger = logging.getLogger(__name__)


@dataclass
class ClientContext:
    gateway: DocumentGateway
    storage: BlobStorage
    auth: AuthClient
    users: UserRepository
    services: ServiceRepository
    applications: ApplicationRepository
    messages: MessageRepository
    ratings: RatingRepository
    categories: CategoryRepository
    featured: FeaturedRepository
    auth_store: AuthStore
    application_store: ApplicationStore
    message_store: MessageStore
    service_store: ServiceStore
    ui_store: UiStore
    navigator: Navigator

    @classmethod
    def create(cls, gateway: DocumentGateway, storage: BlobStorage,
               provider: IdentityProvider) -> "ClientContext":
        auth = AuthClient(provider)
        services = ServiceRepository(gateway, storage)
        messages = MessageRepository(gateway, storage)
        auth_store = AuthStore()
        return cls(
            gateway=gateway,
            storage=storage,
            auth=auth,
            users=UserRepository(gateway, storage, auth),
            services=services,
            applications=ApplicationRepository(gateway, storage, services, messages),
            messages=messages,
            ratings=RatingRepository(gateway, storage),
            categories=CategoryRepository(gateway, storage),
            featured=FeaturedRepository(gateway, storage),
            auth_store=auth_store,
            application_store=ApplicationStore(),
            message_store=MessageStore(auth_store),
            service_store=ServiceStore(auth_store),
            ui_store=UiStore(),
            navigator=Navigator(),
        )


def screen_action(error_message: str, loading: Optional[str] = "loading",
                  missing_message: Optional[str] = None, default: Any = None):
    """Outer error boundary for a view-model method.

    Failures are logged and shown as an error toast; ``default`` is returned.
    With ``missing_message`` a not-found or permission failure navigates back
    after its toast. The flag named by ``loading`` is held while the method runs.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(self, *args, **kwargs):
            if loading:
                setattr(self, loading, True)
            self.failure = None
            try:
                return f(self, *args, **kwargs)
            except FormValidationError as e:
                self.failure = e
                self.form_errors = e.errors
                self.show_error(e.message or error_message)
                return default
            except (NotFoundError, PermissionDeniedError) as e:
                self.failure = e
                logger.warning(f"{f.__name__}: {e}")
                if isinstance(e, PermissionDeniedError):
                    self.show_error(e.message)
                else:
                    self.show_error(missing_message or error_message)
                if missing_message:
                    self.ctx.navigator.back()
                return default
            except ModeloError as e:
                self.failure = e
                logger.error(f"{f.__name__}: {e}")
                self.error = error_message
                self.show_error(error_message)
                return default
            finally:
                if loading:
                    setattr(self, loading, False)
        return decorated_function
    return decorator


class ViewModel:
    def __init__(self, ctx: ClientContext):
        self.ctx = ctx
        self.loading = False
        self.error: Optional[str] = None
        self.form_errors: Dict[str, List[str]] = {}
        self.failure: Optional[ModeloError] = None
        self._subscriptions: List[Subscription] = []

    @property
    def user(self):
        return self.ctx.auth_store.user

    @property
    def user_id(self) -> str:
        return self.ctx.auth_store.user_id

    @property
    def is_model(self) -> bool:
        return self.user is not None and self.user.role == UserRole.MODEL.value

    @property
    def is_professional(self) -> bool:
        return self.user is not None and self.user.role == UserRole.PROFESSIONAL.value

    def own(self, subscription: Subscription) -> Subscription:
        self._subscriptions.append(subscription)
        return subscription

    def close(self) -> None:
        for subscription in self._subscriptions:
            subscription.unsubscribe()
        self._subscriptions = []

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def show_success(self, message: str) -> None:
        self.ctx.ui_store.show_toast("success", message)

    def show_error(self, message: str) -> None:
        self.ctx.ui_store.show_toast("error", message)

    def state(self) -> Dict[str, Any]:
        return {"loading": self.loading, "error": self.error, "form_errors": self.form_errors}
