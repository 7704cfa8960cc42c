"""
Card builders: entities in, display dicts out.

These are what the HTTP layer returns for list and detail screens; every
label is already formatted for display.
"""
from datetime import datetime
from typing import Any, Dict, Optional

from .formatters import (format_age, format_application_status, format_date, format_date_time,
                         format_gender, format_height, format_message_date, format_payment_type,
                         format_professional_status, format_relative_date, format_service_type,
                         format_user_role, format_eye_color, format_hair_color)
from .helpers import truncate_text
from .schemas import ApplicationStatus, MessageType, ServiceStatus, UserRole
from .stores import ConversationInfo

PLACEHOLDER_IMAGE = "https://via.placeholder.com/400x300?text=Modelo"

# status -> (label, colour)
SERVICE_STATUS_BADGES = {
    ServiceStatus.ACTIVE.value: ("Actif", "success"),
    ServiceStatus.DRAFT.value: ("Brouillon", "warning"),
    ServiceStatus.COMPLETED.value: ("Terminé", "info"),
    ServiceStatus.CANCELLED.value: ("Annulé", "error"),
    ServiceStatus.EXPIRED.value: ("Expiré", "gray"),
}

APPLICATION_STATUS_COLORS = {
    ApplicationStatus.PENDING.value: "warning",
    ApplicationStatus.ACCEPTED.value: "success",
    ApplicationStatus.REJECTED.value: "error",
    ApplicationStatus.CANCELLED.value: "gray",
    ApplicationStatus.COMPLETED.value: "info",
}


def _badge(label: str, color: str) -> Dict[str, str]:
    return {"label": label, "color": color}


def service_card(service, is_favorite: bool = False) -> Dict[str, Any]:
    label, color = SERVICE_STATUS_BADGES.get(service.status, (service.status, "gray"))
    return {
        "id": service.id,
        "title": service.title,
        "description": truncate_text(service.description, 120),
        "image": service.images[0] if service.images else PLACEHOLDER_IMAGE,
        "type": format_service_type(service.type),
        "price": format_payment_type(service.payment.type, service.payment.amount),
        "city": service.location.city,
        "date": format_date(service.date.start_date),
        "is_urgent": service.is_urgent,
        "is_favorite": is_favorite,
        "application_count": service.application_count,
        "status": _badge(label, color),
    }


def application_card(application, service=None) -> Dict[str, Any]:
    card = {
        "id": application.id,
        "image": application.photos[0] if application.photos else PLACEHOLDER_IMAGE,
        "message": truncate_text(application.message, 150),
        "status": _badge(format_application_status(application.status),
                         APPLICATION_STATUS_COLORS.get(application.status, "gray")),
        "created": format_relative_date(application.created_at) if application.created_at else "",
        "has_unread_messages": application.has_unread_messages,
        "is_pending": application.status == ApplicationStatus.PENDING.value,
    }
    if application.status == ApplicationStatus.REJECTED.value and application.rejection_reason:
        card["rejection_reason"] = application.rejection_reason
    if service is not None:
        card["service"] = {
            "id": service.id,
            "title": service.title,
            "date": format_date(service.date.start_date),
            "type": format_service_type(service.type),
        }
    return card


def message_item(message, current_user_id: str, previous=None,
                 now: Optional[datetime] = None) -> Dict[str, Any]:
    is_system = message.type == MessageType.SYSTEM.value
    item = {
        "id": message.id,
        "type": message.type,
        "is_current_user": message.sender_id == current_user_id,
        "is_system": is_system,
        "same_sender_as_previous": previous is not None and previous.sender_id == message.sender_id,
        "date": format_message_date(message.created_at, now) if message.created_at else "",
        "is_read": message.is_read,
    }
    content = message.content
    if message.type in (MessageType.TEXT.value, MessageType.SYSTEM.value):
        item["text"] = content.text or ""
    elif message.type in (MessageType.IMAGE.value, MessageType.VIDEO.value):
        item["media_url"] = content.media_url
    elif message.type == MessageType.LOCATION.value and content.location is not None:
        item["location"] = {
            "address": content.location.address,
            "latitude": content.location.latitude,
            "longitude": content.location.longitude,
        }
    return item


def profile_header(user, rating: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    summary = rating or (user.rating.to_wire() if user.rating is not None else None)
    header = {
        "id": user.id,
        "full_name": user.full_name,
        "picture": user.profile_picture,
        "role": format_user_role(user.role),
        "city": user.location.city,
        "bio": user.bio,
        "rating": f"{summary['average']:.1f} ({summary['count']})" if summary and summary.get("count") else "Nouveau",
        "is_verified": user.is_verified,
    }
    if user.role == UserRole.MODEL.value:
        header["details"] = {
            "age": format_age(user.age),
            "gender": format_gender(user.gender),
            "height": format_height(user.height) if user.height else None,
            "hair_color": format_hair_color(user.hair_color),
            "eye_color": format_eye_color(user.eye_color),
        }
    else:
        header["details"] = {
            "business_name": user.business_name,
            "status": format_professional_status(user.status),
            "services": format_service_type(list(user.services)),
        }
    return header


def conversation_row(conversation: ConversationInfo, now: Optional[datetime] = None) -> Dict[str, Any]:
    last = conversation.last_message
    if last is None:
        preview = ""
    elif last.type in (MessageType.TEXT.value, MessageType.SYSTEM.value):
        preview = truncate_text(last.content.text or "", 60)
    elif last.type == MessageType.IMAGE.value:
        preview = "Photo"
    elif last.type == MessageType.VIDEO.value:
        preview = "Vidéo"
    else:
        preview = "Position partagée"
    return {
        "id": conversation.id,
        "partner_id": conversation.partner_id,
        "partner_name": conversation.partner_name,
        "partner_picture": conversation.partner_picture,
        "service_title": conversation.service_title,
        "preview": preview,
        "date": format_message_date(last.created_at, now) if last is not None and last.created_at else "",
        "unread_count": conversation.unread_count,
    }


def service_detail(service) -> Dict[str, Any]:
    card = service_card(service)
    card.update({
        "description": service.description,
        "images": list(service.images),
        "starts": format_date_time(service.date.start_date),
        "address": service.location.address,
        "is_remote": bool(service.location.is_remote),
        "criteria": service.criteria.to_wire(),
        "payment_details": service.payment.details,
    })
    return card
