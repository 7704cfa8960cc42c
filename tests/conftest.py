from datetime import datetime, timedelta, timezone

import mongomock
import pytest

from modelo.auth import IdentityProvider
from modelo.database import DocumentGateway
from modelo.session import SessionRegistry
from modelo.storage import BlobStorage

PASSWORD = "Secret123"

MODEL_PROFILE = {
    "fullName": "Alice Martin",
    "role": "model",
    "age": 25,
    "gender": "female",
    "hairColor": "brown",
    "eyeColor": "green",
    "location": {"city": "Paris"},
    "interests": ["photography"],
}

PROFESSIONAL_PROFILE = {
    "fullName": "Bruno Lefevre",
    "role": "professional",
    "businessName": "Studio Lumière",
    "status": "freelance",
    "services": ["photography"],
    "location": {"city": "Paris"},
}

JPEG = b"\xff\xd8\xff\xe0fake-jpeg-bytes"


def service_payload(professional_id, **overrides):
    data = {
        "professionalId": professional_id,
        "title": "Shooting mode printemps",
        "description": "Séance photo en studio pour une collection de printemps.",
        "type": "photography",
        "status": "active",
        "date": {"startDate": datetime.now(timezone.utc) + timedelta(days=7), "duration": 120},
        "location": {"city": "Paris", "address": "1 rue de Rivoli"},
        "payment": {"type": "free"},
    }
    data.update(overrides)
    return data


@pytest.fixture
def db():
    return mongomock.MongoClient()["modelo_test"]


@pytest.fixture
def gateway(db):
    return DocumentGateway(db)


@pytest.fixture
def storage(tmp_path):
    return BlobStorage(str(tmp_path / "media"))


@pytest.fixture
def provider(gateway):
    return IdentityProvider(gateway)


@pytest.fixture
def registry(gateway, storage, provider):
    registry = SessionRegistry(gateway, storage, provider)
    yield registry
    registry.close_all()


@pytest.fixture
def register(provider):
    """Create an identity plus profile; returns the AuthResult."""
    def _register(email, profile):
        return provider.register(email, PASSWORD, dict(profile))
    return _register


@pytest.fixture
def model_account(register):
    return register("alice@example.com", MODEL_PROFILE)


@pytest.fixture
def professional_account(register):
    return register("bruno@example.com", PROFESSIONAL_PROFILE)


@pytest.fixture
def model_session(registry, model_account):
    return registry.resolve(model_account.token)


@pytest.fixture
def professional_session(registry, professional_account):
    return registry.resolve(professional_account.token)


@pytest.fixture
def service_id(professional_session, professional_account):
    repo = professional_session.ctx.services
    return repo.create_service(service_payload(professional_account.user.uid))


@pytest.fixture
def application_id(model_session, model_account, professional_account, service_id):
    return model_session.ctx.applications.create_application({
        "serviceId": service_id,
        "modelId": model_account.user.uid,
        "professionalId": professional_account.user.uid,
        "message": "Hello, interested!",
        "photos": ["/media/application-photos/x/photo-0.jpg"],
    })
