from datetime import datetime, timedelta, timezone

import pytest

from modelo.schemas import Application, Message, Service, parse_user
from modelo.stores import (
    ApplicationStore,
    AuthStore,
    ConversationInfo,
    MessageStore,
    ServiceStore,
    UiStore,
    service_matches,
)

NOW = datetime(2024, 6, 1, 10, 0, tzinfo=timezone.utc)


def make_service(service_id="s1", **overrides):
    data = {
        "id": service_id,
        "professional_id": "pro",
        "title": "Shooting mode",
        "description": "Séance en studio",
        "type": "photography",
        "status": "active",
        "date": {"start_date": NOW + timedelta(days=3)},
        "location": {"city": "Paris"},
    }
    data.update(overrides)
    return Service.model_validate(data)


def make_user(**overrides):
    data = {"id": "u1", "email": "alice@example.com", "fullName": "Alice", "role": "model",
            "age": 25, "gender": "female"}
    data.update(overrides)
    return parse_user(data)


def make_message(message_id, sender, receiver, conversation="a1", is_read=False):
    return Message.model_validate({
        "id": message_id, "conversationId": conversation, "senderId": sender,
        "receiverId": receiver, "type": "text", "content": {"text": "hi"},
        "isRead": is_read, "createdAt": NOW,
    })


def make_application(application_id, status, **overrides):
    data = {"id": application_id, "serviceId": "s1", "modelId": "m1",
            "professionalId": "p1", "message": "Hello", "status": status}
    data.update(overrides)
    return Application.model_validate(data)


@pytest.fixture
def auth_store():
    store = AuthStore()
    store.set_user(make_user())
    return store


class TestServiceStore:
    def test_toggle_favorite_twice_restores_membership(self, auth_store):
        store = ServiceStore(auth_store)
        store.toggle_favorite("s1")
        assert store.is_favorite("s1")
        store.toggle_favorite("s1")
        assert not store.is_favorite("s1")
        assert store.favorite_service_ids == []

    def test_listeners_notified_after_change(self, auth_store):
        store = ServiceStore(auth_store)
        seen = []
        sub = store.subscribe(lambda s: seen.append(list(s.favorite_service_ids)))
        store.toggle_favorite("s1")
        sub.unsubscribe()
        store.toggle_favorite("s2")
        assert seen == [["s1"]]

    def test_unknown_filter_rejected(self, auth_store):
        with pytest.raises(KeyError):
            ServiceStore(auth_store).set_filter("colour", "red")

    def test_filtered_services(self, auth_store):
        store = ServiceStore(auth_store)
        store.set_recent_services([
            make_service("s1"),
            make_service("s2", type=["hair", "makeup"], title="Coiffure"),
            make_service("s3", is_urgent=True, location={"city": "Lyon"}),
        ])
        store.set_filter("category", "hair")
        assert [s.id for s in store.get_filtered_services()] == ["s2"]
        store.reset_filters()
        store.set_filter("only_urgent", True)
        assert [s.id for s in store.get_filtered_services()] == ["s3"]
        store.reset_filters()
        store.set_filter("search_query", "LYON")
        assert [s.id for s in store.get_filtered_services()] == ["s3"]

    def test_favorite_services(self, auth_store):
        store = ServiceStore(auth_store)
        store.set_recent_services([make_service("s1"), make_service("s2")])
        store.toggle_favorite("s2")
        assert [s.id for s in store.get_favorite_services()] == ["s2"]


class TestServiceMatches:
    def test_price_and_date_ranges(self):
        paid = make_service(payment={"type": "paid", "amount": 150})
        assert service_matches(paid, {"price_range": {"min": 100, "max": 200}})
        assert not service_matches(paid, {"price_range": {"min": 200, "max": 300}})
        window = {"start": NOW, "end": NOW + timedelta(days=1)}
        assert not service_matches(paid, {"date_range": window})

    def test_criteria_filters(self):
        service = make_service(criteria={"gender": "female", "age_min": 18, "age_max": 25,
                                         "hair_color": ["brown", "black"]})
        assert service_matches(service, {"gender": "female"})
        assert not service_matches(service, {"gender": "male"})
        assert not service_matches(service, {"age_range": {"min": 26, "max": 30}})
        assert service_matches(service, {"age_range": {"min": 20, "max": 30}})
        assert service_matches(service, {"hair_color": ["black"]})
        assert not service_matches(service, {"hair_color": ["blonde"]})

    def test_radius_uses_user_coordinates(self):
        user = make_user(location={"city": "Paris",
                                   "coordinates": {"latitude": 48.8566, "longitude": 2.3522}})
        lyon = make_service(location={"city": "Lyon",
                                      "coordinates": {"latitude": 45.764, "longitude": 4.8357}})
        assert not service_matches(lyon, {"radius": 30}, user)
        assert service_matches(lyon, {"radius": 500}, user)
        assert service_matches(lyon, {"radius": 30}, None)


class TestUiStore:
    def test_toasts_expire(self):
        clock = [100.0]
        ui = UiStore(clock=lambda: clock[0])
        first = ui.show_toast("success", "Enregistré")
        ui.show_toast("error", "Oups", duration=10000)
        assert len(ui.toasts) == 2
        clock[0] += 5
        assert [t.message for t in ui.toasts] == ["Oups"]
        assert first.startswith("toast-")

    def test_hide_and_clear(self):
        ui = UiStore()
        toast_id = ui.show_toast("info", "Bonjour")
        ui.show_toast("warning", "Attention")
        ui.hide_toast(toast_id)
        assert [t.message for t in ui.toasts] == ["Attention"]
        ui.clear_toasts()
        assert ui.toasts == []

    def test_unknown_toast_type(self):
        with pytest.raises(ValueError):
            UiStore().show_toast("fatal", "nope")

    def test_bottom_sheet(self):
        ui = UiStore()
        ui.open_bottom_sheet("filters", {"city": "Paris"})
        assert ui.is_bottom_sheet_open
        assert ui.active_bottom_sheet == "filters"
        ui.close_bottom_sheet()
        assert ui.bottom_sheet_data is None


class TestMessageStore:
    @pytest.fixture
    def store(self, auth_store):
        store = MessageStore(auth_store)
        store.set_conversations([
            ConversationInfo(id="a1", partner_id="p1", partner_name="Bruno",
                             service_id="s1", service_title="Shooting"),
            ConversationInfo(id="a2", partner_id="p2", partner_name="Emma",
                             service_id="s2", service_title="Coiffure", unread_count=2),
        ])
        return store

    def test_incoming_messages_raise_unread_count(self, store):
        store.add_message("a1", make_message("m1", "p1", "u1"))
        store.add_message("a1", make_message("m2", "u1", "p1"))
        conversation = store.get_conversation_by_id("a1")
        assert conversation.unread_count == 1
        assert conversation.last_message.id == "m2"
        assert store.get_total_unread_count() == 3

    def test_mark_conversation_as_read(self, store):
        store.add_message("a1", make_message("m1", "p1", "u1"))
        store.add_message("a1", make_message("m2", "u1", "p1"))
        store.mark_conversation_as_read("a1")
        messages = store.get_messages_for_conversation("a1")
        assert messages[0].is_read and messages[0].read_at is not None
        assert not messages[1].is_read
        assert store.get_conversation_by_id("a1").unread_count == 0

    def test_lookup_and_remove(self, store):
        assert store.get_conversation_with_user("p2").id == "a2"
        store.remove_conversation("a2")
        assert store.get_conversation_by_id("a2") is None
        assert store.get_total_unread_count() == 0


class TestApplicationStore:
    @pytest.fixture
    def store(self):
        store = ApplicationStore()
        store.set_applications([
            make_application("a1", "pending"),
            make_application("a2", "accepted", modelId="m2"),
            make_application("a3", "rejected"),
            make_application("a4", "completed", serviceId="s2"),
        ])
        return store

    def test_default_filter_hides_rejected(self, store):
        assert [a.id for a in store.get_filtered_applications()] == ["a1", "a2", "a4"]
        store.set_filtered_status(["rejected"])
        assert [a.id for a in store.get_filtered_applications()] == ["a3"]

    def test_counts(self, store):
        assert store.get_active_applications_count() == 2
        assert store.get_pending_applications_count() == 1

    def test_update_keeps_selection_in_sync(self, store):
        store.set_selected_application(store.get_application_by_id("a1"))
        store.update_application("a1", status="accepted")
        assert store.selected_application.status == "accepted"
        assert store.get_pending_applications_count() == 0
        store.remove_application("a1")
        assert store.selected_application is None

    def test_lookups(self, store):
        assert [a.id for a in store.get_applications_for_service("s2")] == ["a4"]
        assert [a.id for a in store.get_model_applications("m2")] == ["a2"]
        assert len(store.get_professional_applications("p1")) == 4
