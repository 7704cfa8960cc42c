import logging
from contextlib import contextmanager
from typing import Any, Dict, List, Optional

from ..errors import ConflictError, ModeloError, NotFoundError, PermissionDeniedError
from ..navigation import ROUTES
from ..schemas import APPLICATIONS, Application, ApplicationStatus, Message, MessageType
from ..validation import RatingForm, validate_form
from .base import ViewModel, screen_action

logger = logging.getLogger(__name__)


class ApplicationDetailViewModel(ViewModel):
    """One application seen by its model or by the service owner."""

    def __init__(self, ctx, application_id: str):
        super().__init__(ctx)
        self.application_id = application_id
        self.application: Optional[Application] = None
        self.service = None
        self.model = None
        self.professional = None
        self.messages: List[Message] = []
        self.messages_loading = False
        self.message_text = ""
        self.has_rated = False
        self.refreshing = False
        self.processing = False
        self._message_subscription = None

    # Derived flags
    @property
    def is_applicant(self) -> bool:
        return self.application is not None and self.application.model_id == self.user_id

    @property
    def is_service_owner(self) -> bool:
        owner_id = self.service.professional_id if self.service is not None else (
            self.application.professional_id if self.application is not None else None)
        return owner_id is not None and owner_id == self.user_id

    def _status_is(self, *statuses: ApplicationStatus) -> bool:
        return self.application is not None and self.application.status in [s.value for s in statuses]

    @property
    def can_accept(self) -> bool:
        return self.is_service_owner and self._status_is(ApplicationStatus.PENDING)

    @property
    def can_reject(self) -> bool:
        return self.can_accept

    @property
    def can_complete(self) -> bool:
        return (self.is_service_owner or self.is_applicant) and self._status_is(ApplicationStatus.ACCEPTED)

    @property
    def can_cancel(self) -> bool:
        return (self.is_service_owner or self.is_applicant) and self._status_is(
            ApplicationStatus.PENDING, ApplicationStatus.ACCEPTED)

    @property
    def can_rate(self) -> bool:
        return ((self.is_service_owner or self.is_applicant)
                and self._status_is(ApplicationStatus.COMPLETED) and not self.has_rated)

    @property
    def partner_id(self) -> Optional[str]:
        if self.application is None:
            return None
        if self.user_id == self.application.model_id:
            return self.application.professional_id
        return self.application.model_id

    @screen_action("Erreur lors du chargement des détails", missing_message="Candidature introuvable")
    def load(self) -> None:
        application = self.ctx.applications.get_application_by_id(self.application_id)
        if application is None:
            raise NotFoundError(APPLICATIONS, self.application_id)
        if self.user_id not in (application.model_id, application.professional_id):
            raise PermissionDeniedError("Vous n'êtes pas autorisé à voir cette candidature")
        self.application = application
        self.ctx.application_store.set_selected_application(application)

        self.service = self._quietly(self.ctx.services.get_service_by_id, application.service_id)
        self.model = self._quietly(self.ctx.users.get_user_by_id, application.model_id)
        self.professional = self._quietly(self.ctx.users.get_user_by_id, application.professional_id)
        self._watch_messages()
        self.has_rated = bool(self._quietly(
            self.ctx.ratings.has_user_rated_service, self.user_id, application.service_id))
        self.ctx.messages.mark_all_messages_as_read(self.application_id, self.user_id)

    def _quietly(self, fetch, *args):
        try:
            return fetch(*args)
        except ModeloError as e:
            logger.error(f"{getattr(fetch, '__name__', 'fetch')} failed: {e}")
            return None

    def _watch_messages(self) -> None:
        if self._message_subscription is not None:
            return
        self.messages_loading = True
        try:
            self._message_subscription = self.own(self.ctx.messages.subscribe_to_conversation_messages(
                self.application_id, self._on_messages))
        finally:
            self.messages_loading = False

    def _on_messages(self, messages: List[Message]) -> None:
        self.messages = messages
        self.ctx.message_store.set_messages(self.application_id, messages)

    def refresh(self) -> None:
        self.refreshing = True
        self.ctx.ui_store.set_refreshing(True)
        try:
            self.load()
        finally:
            self.refreshing = False
            self.ctx.ui_store.set_refreshing(False)

    @contextmanager
    def _optimistic(self, **changes):
        """Apply ``changes`` locally at once; roll back if the write fails."""
        previous = self.application
        self.application = previous.model_copy(update=changes)
        try:
            yield
        except ModeloError:
            self.application = previous
            raise
        self.ctx.application_store.update_application(previous.id, **changes)

    def _move(self, allowed: bool, status: ApplicationStatus, rejection_reason: Optional[str] = None) -> bool:
        if self.application is None or not allowed:
            raise PermissionDeniedError("Action non autorisée")
        changes = {"status": status.value}
        if rejection_reason:
            changes["rejection_reason"] = rejection_reason
        with self._optimistic(**changes):
            self.ctx.applications.update_application_status(
                self.application_id, status.value, rejection_reason, self.user_id)
        return True

    @screen_action("Erreur lors de l'acceptation", loading="processing", default=False)
    def accept_application(self) -> bool:
        self._move(self.can_accept, ApplicationStatus.ACCEPTED)
        self.show_success("Candidature acceptée")
        return True

    @screen_action("Erreur lors du refus", loading="processing", default=False)
    def reject_application(self, reason: Optional[str] = None) -> bool:
        self._move(self.can_reject, ApplicationStatus.REJECTED, reason)
        self.show_success("Candidature refusée")
        return True

    @screen_action("Erreur lors de la finalisation", loading="processing", default=False)
    def complete_application(self) -> bool:
        self._move(self.can_complete, ApplicationStatus.COMPLETED)
        self.show_success("Prestation terminée")
        return True

    @screen_action("Erreur lors de l'annulation", loading="processing", default=False)
    def cancel_application(self) -> bool:
        self._move(self.can_cancel, ApplicationStatus.CANCELLED)
        self.show_success("Candidature annulée")
        return True

    def set_message_text(self, text: str) -> None:
        self.message_text = text

    @screen_action("Erreur lors de l'envoi du message", loading=None, default=False)
    def send_message(self, text: Optional[str] = None) -> bool:
        text = (self.message_text if text is None else text).strip()
        if self.application is None or not text:
            return False
        self.ctx.messages.send_text_message(self.application_id, self.user_id, self.partner_id, text)
        self.message_text = ""
        return True

    @screen_action("Erreur lors de l'envoi de l'image", loading=None, default=False)
    def send_image(self, data: bytes) -> bool:
        if self.application is None:
            return False
        self.ctx.messages.send_media_message(self.application_id, self.user_id, self.partner_id,
                                             data, MessageType.IMAGE)
        return True

    @screen_action("Erreur lors de l'envoi de l'évaluation", loading="processing", default=False)
    def submit_rating(self, score: int, comment: Optional[str] = None, is_public: bool = True) -> bool:
        if not self.can_rate:
            raise PermissionDeniedError("Vous ne pouvez pas évaluer cette prestation")
        form = validate_form(RatingForm, {"score": score, "comment": comment, "isPublic": is_public})
        try:
            self.ctx.ratings.create_rating({
                "serviceId": self.application.service_id,
                "applicationId": self.application_id,
                "ratedUserId": self.partner_id,
                "raterUserId": self.user_id,
                **form.model_dump(by_alias=True, exclude_none=True),
            })
        except ConflictError as e:
            self.failure = e
            self.has_rated = True
            self.show_error("Vous avez déjà évalué cette prestation")
            return False
        self.has_rated = True
        self.show_success("Merci pour votre évaluation")
        return True

    def navigate_to_model_profile(self) -> None:
        if self.model is not None:
            self.ctx.navigator.push(ROUTES.user_profile(self.model.id))

    def navigate_to_professional_profile(self) -> None:
        if self.professional is not None:
            self.ctx.navigator.push(ROUTES.user_profile(self.professional.id))

    def navigate_to_service_detail(self) -> None:
        if self.service is not None:
            self.ctx.navigator.push(ROUTES.service_details(self.service.id))

    def navigate_to_conversation(self) -> None:
        if self.application is not None:
            self.ctx.navigator.push(ROUTES.conversation(self.application.id))

    def state(self) -> Dict[str, Any]:
        return dict(super().state(),
                    application=self.application,
                    service=self.service,
                    model=self.model,
                    professional=self.professional,
                    messages=self.messages,
                    messages_loading=self.messages_loading,
                    message_text=self.message_text,
                    has_rated=self.has_rated,
                    refreshing=self.refreshing,
                    processing=self.processing,
                    is_model=self.is_model,
                    is_professional=self.is_professional,
                    is_applicant=self.is_applicant,
                    is_service_owner=self.is_service_owner,
                    can_accept=self.can_accept,
                    can_reject=self.can_reject,
                    can_complete=self.can_complete,
                    can_cancel=self.can_cancel,
                    can_rate=self.can_rate)
