import pytest

from modelo.auth import AuthClient, hash_password, verify_password
from modelo.errors import AuthError, ConflictError
from modelo.navigation import ROUTES
from modelo.session import SessionRegistry
from modelo.viewmodels import AuthViewModel, ClientContext

from .conftest import MODEL_PROFILE, PASSWORD


def test_password_hashing():
    pwd = hash_password("Secret123")
    assert verify_password("Secret123", pwd["salt"], pwd["hash"])
    assert not verify_password("secret123", pwd["salt"], pwd["hash"])


class TestIdentityProvider:
    def test_register_creates_profile_with_same_id(self, provider, gateway, model_account):
        profile = gateway.get_by_id("users", model_account.user.uid)
        assert profile["uid"] == model_account.user.uid
        assert profile["email"] == "alice@example.com"
        assert "password" not in profile

    def test_duplicate_email(self, provider, model_account):
        with pytest.raises(ConflictError):
            provider.register("ALICE@example.com ", PASSWORD, dict(MODEL_PROFILE))

    def test_login_and_token_lifecycle(self, provider, model_account):
        result = provider.login("alice@example.com", PASSWORD)
        assert provider.verify_token(result.token).uid == model_account.user.uid
        provider.logout(result.token)
        with pytest.raises(AuthError):
            provider.verify_token(result.token)
        assert provider.verify_token(model_account.token).uid == model_account.user.uid

    def test_wrong_password(self, provider, model_account):
        with pytest.raises(AuthError):
            provider.login("alice@example.com", "Wrong1234")

    def test_password_reset(self, provider, model_account):
        assert provider.reset_password("unknown@example.com") is None
        reset_token = provider.reset_password("alice@example.com")
        provider.confirm_password_reset(reset_token, "NewSecret1")
        with pytest.raises(AuthError):
            provider.verify_token(model_account.token)
        assert provider.login("alice@example.com", "NewSecret1").user.uid == model_account.user.uid
        with pytest.raises(AuthError):
            provider.confirm_password_reset(reset_token + "x", "Other1234")


class TestAuthClient:
    def test_listener_fires_immediately_and_on_change(self, provider, model_account):
        client = AuthClient(provider)
        events = []
        sub = client.on_auth_state_changed(events.append)
        client.login("alice@example.com", PASSWORD)
        client.logout()
        sub.unsubscribe()
        client.login("alice@example.com", PASSWORD)
        assert [e.uid if e else None for e in events] == [None, model_account.user.uid, None]

    def test_update_password_requires_current_one(self, provider, model_account):
        client = AuthClient(provider)
        client.login("alice@example.com", PASSWORD)
        with pytest.raises(AuthError):
            client.update_password("Wrong1234", "Another123")
        client.update_password(PASSWORD, "Another123")
        assert provider.login("alice@example.com", "Another123")


def registration_form(**overrides):
    form = {
        "fullName": "Chloé Durand",
        "email": "chloe@example.com",
        "password": "Secret123",
        "confirmPassword": "Secret123",
        "city": "Lyon",
        "termsAccepted": True,
        "age": 22,
        "gender": "female",
        "interests": ["fashion"],
    }
    form.update(overrides)
    return form


class TestAuthViewModel:
    @pytest.fixture
    def ctx(self, gateway, storage, provider):
        return ClientContext.create(gateway, storage, provider)

    @pytest.fixture
    def vm(self, ctx):
        vm = AuthViewModel(ctx)
        vm.watch_auth_state()
        yield vm
        vm.close()

    def test_initial_state(self, vm, ctx):
        assert ctx.auth_store.is_initialized
        assert not ctx.auth_store.is_authenticated
        assert vm.state()["is_loading"] is False

    def test_register_model_loads_profile(self, vm, ctx):
        assert vm.register_model(registration_form())
        user = ctx.auth_store.user
        assert user.role == "model"
        assert user.location.city == "Lyon"
        assert user.full_name == "Chloé Durand"
        assert ctx.navigator.current == ROUTES.HOME
        assert ctx.ui_store.toasts[-1].message == "Compte créé avec succès !"

    def test_register_professional(self, vm, ctx):
        form = registration_form(status="company", services=["hair", "makeup"], businessName="Salon Chloé")
        assert vm.register_professional(form)
        assert ctx.auth_store.user.business_name == "Salon Chloé"

    def test_register_validation_errors(self, vm, ctx):
        assert not vm.register_model(registration_form(confirmPassword="Other123", age=16))
        assert "age" in vm.form_errors
        assert not ctx.auth_store.is_authenticated

    def test_register_duplicate_email(self, vm, ctx, model_account):
        assert not vm.register_model(registration_form(email="alice@example.com"))
        assert ctx.auth_store.error == "Cet email est déjà utilisé"
        assert isinstance(vm.failure, ConflictError)

    def test_login_and_logout(self, vm, ctx, model_account):
        assert vm.login("alice@example.com", PASSWORD)
        assert ctx.auth_store.user_id == model_account.user.uid
        assert not ctx.auth_store.is_profile_loading
        assert vm.logout()
        assert ctx.auth_store.user is None
        assert ctx.navigator.current == ROUTES.LOGIN

    def test_login_bad_credentials(self, vm, ctx, model_account):
        assert not vm.login("alice@example.com", "Wrong1234")
        assert ctx.auth_store.error == "Erreur de connexion. Vérifiez vos identifiants."
        assert isinstance(vm.failure, AuthError)

    def test_forgot_password(self, vm, ctx, model_account):
        assert vm.forgot_password("alice@example.com")
        assert ctx.ui_store.toasts[-1].message == "Email de réinitialisation envoyé"


class TestSessions:
    def test_resolve_restores_and_caches(self, registry, model_account):
        session = registry.resolve(model_account.token)
        assert session.is_authenticated
        assert session.ctx.auth_store.user.id == model_account.user.uid
        assert registry.resolve(model_account.token) is session
        assert len(registry) == 1

    def test_unknown_token(self, registry):
        with pytest.raises(AuthError):
            registry.resolve("bogus")
        assert len(registry) == 0

    def test_sessions_are_isolated(self, registry, model_account, professional_account):
        model = registry.resolve(model_account.token)
        professional = registry.resolve(professional_account.token)
        model.ctx.service_store.toggle_favorite("s1")
        assert model.ctx.service_store.is_favorite("s1")
        assert not professional.ctx.service_store.is_favorite("s1")
        assert model.ctx.auth_store is not professional.ctx.auth_store

    def test_close_releases_session(self, registry, model_account):
        registry.resolve(model_account.token)
        registry.close(model_account.token)
        assert len(registry) == 0

    def test_least_recently_used_session_is_evicted(self, gateway, storage, provider, model_account,
                                                    professional_account):
        registry = SessionRegistry(gateway, storage, provider, max_sessions=1)
        model = registry.resolve(model_account.token)
        assert len(model.ctx.auth._listeners) == 1

        registry.resolve(professional_account.token)
        assert len(registry) == 1
        assert model_account.token not in registry
        assert professional_account.token in registry
        assert len(model.ctx.auth._listeners) == 0

        restored = registry.resolve(model_account.token)
        assert restored is not model
        assert restored.is_authenticated
        assert len(registry) == 1
        registry.close_all()

    def test_abandoned_logins_stay_bounded(self, gateway, storage, provider, model_account):
        registry = SessionRegistry(gateway, storage, provider, max_sessions=5)
        for _ in range(20):
            result = provider.login("alice@example.com", PASSWORD)
            registry.resolve(result.token)
        assert len(registry) == 5
        registry.close_all()

    def test_max_sessions_must_be_positive(self, gateway, storage, provider):
        with pytest.raises(ValueError):
            SessionRegistry(gateway, storage, provider, max_sessions=0)
