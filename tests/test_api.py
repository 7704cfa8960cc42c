import base64
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from modelo.config import Settings
from modelo.main import create_app

from .conftest import JPEG, PASSWORD


def auth(token):
    return {"Authorization": f"Bearer {token}"}


def b64(data):
    return base64.b64encode(data).decode()


def service_form(**overrides):
    form = {
        "title": "Shooting mode printemps",
        "description": "Séance photo en studio pour une collection de printemps.",
        "type": ["photography"],
        "location": {"city": "Paris", "address": "1 rue de Rivoli", "isRemote": False},
        "date": {"startDate": (datetime.now(timezone.utc) + timedelta(days=5)).isoformat(), "duration": 90},
        "payment": {"type": "paid", "amount": 120},
    }
    form.update(overrides)
    return form


@pytest.fixture
def client(registry, storage):
    app = create_app(registry=registry, settings=Settings(media_root=storage.root))
    return TestClient(app)


@pytest.fixture
def model_token(model_account):
    return model_account.token


@pytest.fixture
def pro_token(professional_account):
    return professional_account.token


@pytest.fixture
def service(client, pro_token):
    response = client.post("/services/create", headers=auth(pro_token),
                           json={"form": service_form(), "uploads": [b64(JPEG)]})
    assert response.status_code == 200
    return response.json()["id"]


@pytest.fixture
def application(client, model_token, service):
    response = client.post(f"/applications/create?serviceId={service}", headers=auth(model_token),
                           json={"message": "Je suis disponible toute la semaine.", "photos": [b64(JPEG)]})
    assert response.status_code == 200
    return response.json()["id"]


def test_injected_registry_is_used_even_when_empty(registry, storage):
    assert len(registry) == 0
    app = create_app(registry=registry, settings=Settings(media_root=storage.root))
    assert app.state.registry is registry


def test_shutdown_closes_sessions(registry, storage, model_account):
    app = create_app(registry=registry, settings=Settings(media_root=storage.root))
    with TestClient(app) as client:
        assert client.get("/profile", headers=auth(model_account.token)).status_code == 200
        assert len(registry) == 1
    assert len(registry) == 0


def test_health(client):
    body = client.get("/test").json()
    assert body["backend"] == "✅ Running"
    assert body["database_name"] == "modelo_test"
    assert body["connection_status"] == "Connected"
    assert body["sessions"] == 0


class TestAuthRoutes:
    def registration(self, **overrides):
        form = {"role": "model", "fullName": "Chloé Durand", "email": "chloe@example.com",
                "password": "Secret123", "confirmPassword": "Secret123", "city": "Lyon",
                "termsAccepted": True, "age": 22, "gender": "female", "interests": ["fashion"]}
        form.update(overrides)
        return form

    def test_register_then_use_token(self, client):
        response = client.post("/register", json=self.registration())
        assert response.status_code == 200
        body = response.json()
        assert body["user"]["full_name"] == "Chloé Durand"
        assert body["route"] == "/"
        assert {"type": "success", "message": "Compte créé avec succès !"} in body["toasts"]

        profile = client.get("/profile", headers=auth(body["token"])).json()
        assert profile["profile"]["city"] == "Lyon"
        assert profile["is_current_user_profile"]

    def test_register_errors(self, client, model_account):
        assert client.post("/register", json=self.registration(role="admin")).status_code == 422

        response = client.post("/register", json=self.registration(age=16))
        assert response.status_code == 422
        assert "age" in response.json()["detail"]["errors"]

        response = client.post("/register", json=self.registration(email="alice@example.com"))
        assert response.status_code == 409
        assert response.json()["detail"] == "Cet email est déjà utilisé"

    def test_login_logout(self, client, model_account, registry):
        response = client.post("/login", json={"email": "alice@example.com", "password": PASSWORD})
        assert response.status_code == 200
        token = response.json()["token"]
        assert len(registry) == 1

        assert client.post("/logout", headers=auth(token)).json() == {"logged_out": True}
        assert client.get("/profile", headers=auth(token)).status_code == 401

    def test_bad_credentials(self, client, model_account):
        response = client.post("/login", json={"email": "alice@example.com", "password": "Wrong1234"})
        assert response.status_code == 401
        assert response.json()["detail"] == "Erreur de connexion. Vérifiez vos identifiants."

    def test_missing_or_bad_token(self, client):
        assert client.get("/profile").status_code == 401
        assert client.get("/profile", headers={"Authorization": "Basic abc"}).status_code == 401
        assert client.get("/profile", headers=auth("bogus")).status_code == 401

    def test_forgot_password(self, client, model_account):
        assert client.post("/forgot-password", json={"email": "alice@example.com"}).json() == {"sent": True}


class TestServiceRoutes:
    def test_create_and_read(self, client, pro_token, model_token, service):
        detail = client.get(f"/services/{service}", headers=auth(model_token)).json()
        assert detail["service"]["price"] == "120 €"
        assert detail["service"]["image"].startswith("/media/")
        assert detail["can_apply"] and not detail["is_owner"]
        assert detail["professional"]["full_name"] == "Bruno Lefevre"

        image = client.get(detail["service"]["image"])
        assert image.status_code == 200
        assert image.content == JPEG

    def test_validation_error(self, client, pro_token):
        response = client.post("/services/create", headers=auth(pro_token),
                               json={"form": service_form(title="Oups")})
        assert response.status_code == 422
        assert "title" in response.json()["detail"]["errors"]

    def test_bad_upload(self, client, pro_token):
        response = client.post("/services/create", headers=auth(pro_token),
                               json={"form": service_form(), "uploads": ["not base64!"]})
        assert response.status_code == 400

    def test_edit(self, client, pro_token, service):
        detail = client.get(f"/services/{service}", headers=auth(pro_token)).json()
        kept = detail["service"]["images"]
        response = client.put(f"/services/{service}", headers=auth(pro_token),
                              json={"form": service_form(title="Shooting mode été"), "images": kept})
        assert response.status_code == 200
        detail = client.get(f"/services/{service}", headers=auth(pro_token)).json()
        assert detail["service"]["title"] == "Shooting mode été"
        assert detail["service"]["images"] == kept

    def test_home_and_search(self, client, model_token, service):
        home = client.get("/", headers=auth(model_token)).json()
        assert [s["id"] for s in home["services"]] == [service]
        assert home["categories"][0]["id"] == "all"
        assert client.get("/?category=hair", headers=auth(model_token)).json()["services"] == []

        found = client.get("/services?q=printemps", headers=auth(model_token)).json()
        assert found["total"] == 1
        assert client.get("/services?city=Lyon", headers=auth(model_token)).json()["services"] == []

    def test_status_changes(self, client, pro_token, service):
        url = f"/services/{service}/status"
        assert client.patch(url, headers=auth(pro_token), json={"status": "bogus"}).status_code == 422
        response = client.patch(url, headers=auth(pro_token), json={"status": "completed"})
        assert response.json()["status"]["label"] == "Terminé"
        response = client.patch(url, headers=auth(pro_token), json={"status": "active"})
        assert response.status_code == 409
        assert response.json()["detail"] == "Erreur lors de la mise à jour du statut"

    def test_delete(self, client, pro_token, model_token, service):
        assert client.delete(f"/services/{service}", headers=auth(model_token)).status_code == 403
        assert client.delete(f"/services/{service}", headers=auth(pro_token)).json() == {"deleted": True}
        response = client.get(f"/services/{service}", headers=auth(pro_token))
        assert response.status_code == 404
        assert response.json()["detail"] == "Prestation introuvable"

    def test_favorite(self, client, model_token, service):
        url = f"/services/{service}/favorite"
        assert client.post(url, headers=auth(model_token)).json() == {"is_favorite": True}
        assert client.post(url, headers=auth(model_token)).json() == {"is_favorite": False}


class TestApplicationFlow:
    def test_apply_twice(self, client, model_token, service, application):
        response = client.post(f"/applications/create?serviceId={service}", headers=auth(model_token),
                               json={"message": "Je suis disponible toute la semaine.", "photos": [b64(JPEG)]})
        assert response.status_code == 403
        assert response.json()["detail"] == "Vous avez déjà postulé à cette prestation"

    def test_accept_message_complete_rate(self, client, model_token, pro_token, application):
        received = client.get("/applications", headers=auth(pro_token)).json()
        assert received["pending_count"] == 1

        accepted = client.post(f"/applications/{application}/accept", headers=auth(pro_token)).json()
        assert accepted["application"]["status"]["label"] == "Acceptée"
        assert accepted["can_complete"]
        assert [m["type"] for m in accepted["messages"]] == ["system"]

        inbox = client.get("/messages", headers=auth(model_token)).json()
        assert inbox["unread_count"] == 1
        assert inbox["conversations"][0]["partner_name"] == "Bruno Lefevre"

        sent = client.post(f"/messages/{application}", headers=auth(model_token), json={"text": "Merci !"}).json()
        assert [m["type"] for m in sent["messages"]] == ["system", "text"]
        assert sent["messages"][-1]["is_current_user"]
        assert client.get("/messages", headers=auth(model_token)).json()["unread_count"] == 0

        assert client.post(f"/applications/{application}/complete", headers=auth(pro_token)).status_code == 200
        rated = client.post(f"/applications/{application}/rating", headers=auth(model_token), json={"score": 5})
        assert rated.json()["has_rated"]
        again = client.post(f"/applications/{application}/rating", headers=auth(model_token), json={"score": 4})
        assert again.status_code == 403

    def test_reject(self, client, pro_token, model_token, application):
        response = client.post(f"/applications/{application}/reject", headers=auth(pro_token),
                               json={"reason": "Profil différent"})
        assert response.json()["application"]["rejection_reason"] == "Profil différent"
        mine = client.get("/applications?status=rejected", headers=auth(model_token)).json()
        assert [a["id"] for a in mine["applications"]] == [application]

    def test_model_cannot_accept(self, client, model_token, application):
        response = client.post(f"/applications/{application}/accept", headers=auth(model_token))
        assert response.status_code == 403

    def test_unknown_action_and_missing_application(self, client, pro_token, application):
        assert client.post(f"/applications/{application}/archive", headers=auth(pro_token)).status_code == 404
        response = client.get("/applications/missing", headers=auth(pro_token))
        assert response.status_code == 404
        assert response.json()["detail"] == "Candidature introuvable"


class TestProfileRoutes:
    def test_edit_profile(self, client, model_token):
        response = client.put("/profile/edit", headers=auth(model_token), json={"bio": "Modèle à Paris"})
        assert response.json()["profile"]["bio"] == "Modèle à Paris"
        response = client.put("/profile/edit", headers=auth(model_token), json={"age": 15})
        assert response.status_code == 422

    def test_profile_picture(self, client, model_token):
        url = client.post("/profile/edit/picture", headers=auth(model_token), json={"image": b64(JPEG)}).json()["url"]
        assert client.get(url).content == JPEG
        assert client.get("/profile", headers=auth(model_token)).json()["profile"]["picture"] == url

    def test_block_and_push_token(self, client, model_token, professional_account, gateway, model_account):
        pro_id = professional_account.user.uid
        assert client.post(f"/profile/{pro_id}/block", headers=auth(model_token)).json() == {"blocked": True}
        assert client.get(f"/profile?userId={pro_id}", headers=auth(model_token)).json()["is_blocked"]
        assert client.delete(f"/profile/{pro_id}/block", headers=auth(model_token)).json() == {"blocked": False}

        client.post("/profile/settings/push-token", headers=auth(model_token), json={"token": "device-1"})
        assert "device-1" in gateway.get_by_id("users", model_account.user.uid)["fcmTokens"]
