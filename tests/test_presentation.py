from datetime import datetime, timezone

from modelo.presentation import (PLACEHOLDER_IMAGE, application_card, conversation_row, message_item,
                                 profile_header, service_card, service_detail)
from modelo.schemas import Application, Message, Service, parse_user
from modelo.stores import ConversationInfo

NOW = datetime(2024, 3, 5, 14, 30, tzinfo=timezone.utc)


def make_service(**overrides):
    data = {
        "id": "s1", "professionalId": "p1", "title": "Shooting mode",
        "description": "Séance photo " * 20, "type": ["hair", "photography"], "status": "draft",
        "date": {"startDate": NOW}, "location": {"city": "Paris", "address": "1 rue de Rivoli"},
        "payment": {"type": "paid", "amount": 80, "details": "Virement"},
    }
    data.update(overrides)
    return Service.model_validate(data)


def make_message(message_type, content, sender="u1"):
    return Message.model_validate({
        "id": "m1", "conversationId": "a1", "senderId": sender, "receiverId": "u2",
        "type": message_type, "content": content, "createdAt": NOW,
    })


def test_service_card():
    card = service_card(make_service(), is_favorite=True)
    assert card["image"] == PLACEHOLDER_IMAGE
    assert len(card["description"]) == 120
    assert card["description"].endswith("...")
    assert card["type"] == "Coiffure, Photographie"
    assert card["price"] == "80 €"
    assert card["date"] == "05/03/2024"
    assert card["status"] == {"label": "Brouillon", "color": "warning"}
    assert card["is_favorite"]


def test_service_detail():
    detail = service_detail(make_service(images=["/media/a.jpg"], status="active"))
    assert detail["image"] == "/media/a.jpg"
    assert detail["starts"] == "05/03/2024 à 14:30"
    assert detail["address"] == "1 rue de Rivoli"
    assert detail["payment_details"] == "Virement"
    assert detail["status"]["label"] == "Actif"
    assert not detail["is_remote"]


def test_application_card_with_rejection_and_service():
    application = Application.model_validate({
        "id": "a1", "serviceId": "s1", "modelId": "m1", "professionalId": "p1",
        "message": "Bonjour", "status": "rejected", "rejectionReason": "Complet",
        "photos": ["/media/p.jpg"],
    })
    card = application_card(application, make_service())
    assert card["status"] == {"label": "Refusée", "color": "error"}
    assert card["rejection_reason"] == "Complet"
    assert card["image"] == "/media/p.jpg"
    assert card["service"]["type"] == "Coiffure, Photographie"
    assert card["created"] == ""
    assert not card["is_pending"]


def test_message_items():
    text = make_message("text", {"text": "Salut"})
    item = message_item(text, "u1", previous=text, now=NOW)
    assert item["text"] == "Salut"
    assert item["is_current_user"] and item["same_sender_as_previous"]
    assert item["date"] == "14:30"

    location = make_message("location", {"location": {"address": "Lyon", "latitude": 45.7, "longitude": 4.8}})
    item = message_item(location, "u2")
    assert item["location"]["address"] == "Lyon"
    assert not item["is_current_user"]
    assert not item["same_sender_as_previous"]


def test_profile_headers():
    model = parse_user({"id": "m1", "email": "alice@example.com", "fullName": "Alice", "role": "model",
                        "age": 25, "gender": "female", "hairColor": "brown", "location": {"city": "Paris"}})
    header = profile_header(model)
    assert header["rating"] == "Nouveau"
    assert header["role"] == "Modèle"
    assert header["details"]["age"] == "25 ans"
    assert header["details"]["hair_color"] == "Brun"
    assert header["details"]["eye_color"] == "Non spécifié"

    professional = parse_user({"id": "p1", "email": "bruno@example.com", "fullName": "Bruno",
                               "role": "professional", "services": ["photography"],
                               "rating": {"average": 4.3, "count": 4}})
    header = profile_header(professional)
    assert header["rating"] == "4.3 (4)"
    assert header["details"]["services"] == "Photographie"
    assert header["details"]["status"] == "Freelance"


def test_conversation_rows():
    empty = ConversationInfo(id="a1", partner_id="p1", partner_name="Bruno",
                             service_id="s1", service_title="Shooting")
    assert conversation_row(empty)["preview"] == ""
    assert conversation_row(empty)["date"] == ""

    image = make_message("image", {"mediaUrl": "/media/x.jpg"})
    row = conversation_row(ConversationInfo(id="a1", partner_id="p1", partner_name="Bruno",
                                            service_id="s1", service_title="Shooting",
                                            last_message=image, unread_count=2), NOW)
    assert row["preview"] == "Photo"
    assert row["unread_count"] == 2
    assert row["date"] == "14:30"
