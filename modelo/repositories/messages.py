from typing import Any, Callable, Dict, Optional

from ..database import SERVER_TIMESTAMP
from ..events import Subscription
from ..schemas import APPLICATIONS, MESSAGES, Message, MessageType
from ..storage import message_media_path
from .base import BaseRepository, repository_operation, timestamp_ms

SYSTEM_SENDER = "system"


class MessageRepository(BaseRepository):
    collection = MESSAGES
    model = Message
    date_fields = ("createdAt", "updatedAt", "readAt", "deliveredAt")

    @repository_operation("getMessageById")
    def get_message_by_id(self, message_id: str) -> Optional[Message]:
        return self._get(message_id)

    @repository_operation("getConversationMessages")
    def get_conversation_messages(self, conversation_id: str, page: int = 1, limit: int = 20,
                                  cursor: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Newest page first, returned oldest-first for display."""
        result = self.gateway.query(self.collection, [("conversationId", "==", conversation_id)],
                                    ("createdAt", "desc"), page, limit, cursor)
        messages = [self.to_entity(d) for d in result.items]
        messages.reverse()
        return {"messages": messages, "has_more": result.has_more, "cursor": result.cursor}

    @repository_operation("getLastMessage")
    def get_last_message(self, conversation_id: str) -> Optional[Message]:
        found = self.gateway.find(self.collection, [("conversationId", "==", conversation_id)],
                                  ("createdAt", "desc"), limit=1)
        return self.to_entity(found[0]) if found else None

    @repository_operation("countUnread")
    def count_unread(self, conversation_id: str, user_id: str) -> int:
        return self.gateway.count(self.collection, [
            ("conversationId", "==", conversation_id),
            ("receiverId", "==", user_id),
            ("isRead", "==", False),
        ])

    def _send(self, conversation_id: str, sender_id: str, receiver_id: str,
              message_type: MessageType, content: Dict[str, Any]) -> str:
        message_id = self.gateway.add(self.collection, {
            "conversationId": conversation_id,
            "senderId": sender_id,
            "receiverId": receiver_id,
            "type": message_type.value,
            "content": content,
            "isRead": False,
            "deliveredAt": SERVER_TIMESTAMP,
        })
        self.gateway.update_where(APPLICATIONS, [("id", "==", conversation_id)], {"hasUnreadMessages": True})
        return message_id

    @repository_operation("sendTextMessage")
    def send_text_message(self, conversation_id: str, sender_id: str, receiver_id: str, text: str) -> str:
        return self._send(conversation_id, sender_id, receiver_id, MessageType.TEXT, {"text": text})

    @repository_operation("sendSystemMessage")
    def send_system_message(self, conversation_id: str, receiver_id: str, text: str) -> str:
        return self._send(conversation_id, SYSTEM_SENDER, receiver_id, MessageType.SYSTEM, {"text": text})

    @repository_operation("sendMediaMessage")
    def send_media_message(self, conversation_id: str, sender_id: str, receiver_id: str,
                           data: bytes, message_type: MessageType = MessageType.IMAGE) -> str:
        """Upload first, then write the message pointing at the stored media."""
        message_type = MessageType(message_type)
        if message_type not in (MessageType.IMAGE, MessageType.VIDEO):
            raise ValueError(f"Not a media message type: {message_type}")
        path = message_media_path(conversation_id, timestamp_ms(), message_type == MessageType.VIDEO)
        media_url = self.storage.upload(data, path)
        return self._send(conversation_id, sender_id, receiver_id, message_type, {"mediaUrl": media_url})

    @repository_operation("sendLocationMessage")
    def send_location_message(self, conversation_id: str, sender_id: str, receiver_id: str,
                              address: str, latitude: float, longitude: float) -> str:
        return self._send(conversation_id, sender_id, receiver_id, MessageType.LOCATION, {
            "location": {"address": address, "latitude": latitude, "longitude": longitude}
        })

    @repository_operation("markMessageAsRead")
    def mark_message_as_read(self, message_id: str) -> None:
        self.gateway.update(self.collection, message_id, {"isRead": True, "readAt": SERVER_TIMESTAMP})

    @repository_operation("markAllMessagesAsRead")
    def mark_all_messages_as_read(self, conversation_id: str, user_id: str) -> int:
        return self.gateway.update_where(self.collection, [
            ("conversationId", "==", conversation_id),
            ("receiverId", "==", user_id),
            ("isRead", "==", False),
        ], {"isRead": True, "readAt": SERVER_TIMESTAMP})

    def subscribe_to_conversation_messages(self, conversation_id: str, callback: Callable) -> Subscription:
        return self.gateway.subscribe_query(
            self.collection,
            lambda docs: callback([self.to_entity(d) for d in docs]),
            [("conversationId", "==", conversation_id)],
            ("createdAt", "asc"),
            100,
        )
