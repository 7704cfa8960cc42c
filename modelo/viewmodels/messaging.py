"""
Conversation list and conversation detail.

A conversation is an accepted or completed application; its id is the
application id.
"""
from typing import Any, Dict, List, Optional

from ..errors import NotFoundError, PermissionDeniedError
from ..navigation import ROUTES
from ..schemas import APPLICATIONS, Application, ApplicationStatus, Message, MessageType
from ..stores import ConversationInfo
from .base import ViewModel, screen_action

CONVERSATION_STATUSES = [ApplicationStatus.ACCEPTED.value, ApplicationStatus.COMPLETED.value]
CONVERSATION_PAGE_SIZE = 100


def sort_conversations(conversations: List[ConversationInfo]) -> List[ConversationInfo]:
    """Most recent last message first; conversations without messages go last."""
    with_message = [c for c in conversations if c.last_message is not None]
    without_message = [c for c in conversations if c.last_message is None]
    with_message.sort(key=lambda c: c.last_message.created_at, reverse=True)
    return with_message + without_message


class MessagingViewModel(ViewModel):
    def __init__(self, ctx, conversation_id: Optional[str] = None):
        super().__init__(ctx)
        self.conversation_id = conversation_id
        self.refreshing = False
        self.application: Optional[Application] = None
        self.service = None
        self.partner = None
        self._message_subscription = None

    @property
    def conversations(self) -> List[ConversationInfo]:
        return self.ctx.message_store.conversations

    @property
    def messages(self) -> List[Message]:
        if self.conversation_id is None:
            return []
        return self.ctx.message_store.get_messages_for_conversation(self.conversation_id)

    @property
    def unread_count(self) -> int:
        return self.ctx.message_store.get_total_unread_count()

    def load(self) -> None:
        if self.conversation_id is not None:
            self.ctx.message_store.set_current_conversation(self.conversation_id)
            self.fetch_conversation_details()
        else:
            self.fetch_conversations()

    def _conversation_for(self, application: Application) -> ConversationInfo:
        partner_id = application.professional_id if self.is_model else application.model_id
        partner = self.ctx.users.get_user_by_id(partner_id)
        service = self.ctx.services.get_service_by_id(application.service_id)
        return ConversationInfo(
            id=application.id,
            partner_id=partner_id,
            partner_name=partner.full_name if partner is not None else "Utilisateur inconnu",
            partner_picture=partner.profile_picture if partner is not None else None,
            service_id=application.service_id,
            service_title=service.title if service is not None else "Prestation inconnue",
            last_message=self.ctx.messages.get_last_message(application.id),
            unread_count=self.ctx.messages.count_unread(application.id, self.user_id),
        )

    @screen_action("Erreur lors du chargement des conversations")
    def fetch_conversations(self) -> List[ConversationInfo]:
        if self.user is None:
            return []
        repo = self.ctx.applications
        fetch = repo.get_model_applications if self.is_model else repo.get_professional_applications
        applications, cursor = [], None
        while True:
            result = fetch(self.user_id, CONVERSATION_STATUSES, limit=CONVERSATION_PAGE_SIZE, cursor=cursor)
            applications.extend(result["applications"])
            if not result["has_more"]:
                break
            cursor = result["cursor"]
        conversations = sort_conversations([self._conversation_for(a) for a in applications])
        self.ctx.message_store.set_conversations(conversations)
        return conversations

    @screen_action("Erreur lors du chargement de la conversation",
                   missing_message="Conversation introuvable")
    def fetch_conversation_details(self) -> None:
        application = self.ctx.applications.get_application_by_id(self.conversation_id)
        if application is None:
            raise NotFoundError(APPLICATIONS, self.conversation_id)
        if self.user_id not in (application.model_id, application.professional_id):
            raise PermissionDeniedError("Vous n'êtes pas autorisé à voir cette conversation")
        self.application = application

        self.ctx.messages.mark_all_messages_as_read(self.conversation_id, self.user_id)
        self.ctx.applications.mark_messages_as_read(self.conversation_id)
        self.ctx.message_store.mark_conversation_as_read(self.conversation_id)

        self._watch_messages()
        self.service = self.ctx.services.get_service_by_id(application.service_id)
        self.partner = self.ctx.users.get_user_by_id(self.partner_id)

    @property
    def partner_id(self) -> Optional[str]:
        if self.application is None:
            return None
        if self.user_id == self.application.model_id:
            return self.application.professional_id
        return self.application.model_id

    def _watch_messages(self) -> None:
        if self._message_subscription is None:
            conversation_id = self.conversation_id
            self._message_subscription = self.own(self.ctx.messages.subscribe_to_conversation_messages(
                conversation_id, lambda messages: self.ctx.message_store.set_messages(conversation_id, messages)))

    def close(self) -> None:
        super().close()
        self._message_subscription = None

    def refresh(self) -> None:
        self.refreshing = True
        self.ctx.ui_store.set_refreshing(True)
        try:
            self.load()
        finally:
            self.refreshing = False
            self.ctx.ui_store.set_refreshing(False)

    def _can_send(self) -> bool:
        return self.conversation_id is not None and self.application is not None and self.user is not None

    @screen_action("Erreur lors de l'envoi du message", loading=None, default=False)
    def send_text_message(self, text: str) -> bool:
        if not self._can_send() or not text.strip():
            return False
        self.ctx.messages.send_text_message(self.conversation_id, self.user_id, self.partner_id, text.strip())
        return True

    @screen_action("Erreur lors de l'envoi de l'image", loading=None, default=False)
    def send_image_message(self, data: bytes) -> bool:
        if not self._can_send():
            return False
        self.ctx.messages.send_media_message(self.conversation_id, self.user_id, self.partner_id,
                                             data, MessageType.IMAGE)
        return True

    @screen_action("Erreur lors de l'envoi de la position", loading=None, default=False)
    def send_location_message(self, address: str, latitude: float, longitude: float) -> bool:
        if not self._can_send():
            return False
        self.ctx.messages.send_location_message(self.conversation_id, self.user_id, self.partner_id,
                                                address, latitude, longitude)
        return True

    def navigate_to_conversation(self, conversation_id: str) -> None:
        self.ctx.message_store.set_current_conversation(conversation_id)
        self.ctx.navigator.push(ROUTES.conversation(conversation_id))

    def navigate_to_partner_profile(self) -> None:
        if self.partner is not None:
            self.ctx.navigator.push(ROUTES.user_profile(self.partner.id))

    def navigate_to_service_detail(self) -> None:
        if self.service is not None:
            self.ctx.navigator.push(ROUTES.service_details(self.service.id))

    def navigate_to_application_detail(self) -> None:
        if self.application is not None:
            self.ctx.navigator.push(ROUTES.application_details(self.application.id))

    def state(self) -> Dict[str, Any]:
        return dict(super().state(),
                    refreshing=self.refreshing,
                    conversations=self.conversations,
                    messages=self.messages,
                    application=self.application,
                    service=self.service,
                    partner=self.partner,
                    unread_count=self.unread_count)
