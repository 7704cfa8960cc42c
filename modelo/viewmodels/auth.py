import logging
from typing import Any, Dict, Optional

from ..errors import AuthError, ConflictError, FormValidationError, ModeloError
from ..events import Subscription
from ..navigation import ROUTES
from ..schemas import UserRole
from ..validation import (LoginForm, ModelRegistrationForm, ProfessionalRegistrationForm,
                          validate_form)
from .base import ViewModel

logger = logging.getLogger(__name__)


class AuthViewModel(ViewModel):
    """Sign-up, sign-in and the auth-state listener that loads the profile."""

    def __init__(self, ctx):
        super().__init__(ctx)
        self.registration_loading = False
        self.login_loading = False
        self.reset_password_loading = False
        self._processing = False
        self._auth_subscription: Optional[Subscription] = None

    def watch_auth_state(self) -> Subscription:
        """Follow the auth client: authenticated first, then the profile document."""
        if self._auth_subscription is None:
            self._auth_subscription = self.own(
                self.ctx.auth_store.subscribe_to_auth_changes(self.ctx.auth, self._on_auth_changed))
        return self._auth_subscription

    def _on_auth_changed(self, auth_user) -> None:
        store = self.ctx.auth_store
        store.set_loading(True)
        try:
            if auth_user is not None:
                profile = self.ctx.users.get_user_by_id(auth_user.uid)
                if profile is not None:
                    store.set_user(profile)
            else:
                store.set_user(None)
        except ModeloError as e:
            logger.error(f"Error handling auth state change: {e}")
            store.set_error(e.message or "Erreur d'authentification")
        finally:
            store.set_loading(False)
            store.set_initialized(True)

    def _begin(self, flag: Optional[str]) -> bool:
        if self._processing:
            return False
        self._processing = True
        self.failure = None
        if flag:
            setattr(self, flag, True)
        self.ctx.auth_store.set_error(None)
        return True

    def _end(self, flag: Optional[str]) -> None:
        if flag:
            setattr(self, flag, False)
        self._processing = False

    def _fail(self, message: str, error: Optional[ModeloError] = None) -> bool:
        self.failure = error
        self.ctx.auth_store.set_error(message)
        self.show_error(message)
        return False

    def _register(self, form_cls, form_data: Dict[str, Any], role: UserRole) -> bool:
        if not self._begin("registration_loading"):
            return False
        try:
            form = validate_form(form_cls, form_data)
            profile = form.model_dump(by_alias=True, exclude_none=True,
                                      exclude={"email", "password", "confirm_password", "terms_accepted", "city"})
            profile["location"] = {"city": form.city}
            profile["role"] = role.value
            self.ctx.auth.register(form.email, form.password, profile)
            self.show_success("Compte créé avec succès !")
            self.ctx.navigator.reset(ROUTES.HOME)
            return True
        except FormValidationError as e:
            self.form_errors = e.errors
            return self._fail(e.message, e)
        except ConflictError as e:
            logger.warning(f"Registration refused: {e}")
            return self._fail("Cet email est déjà utilisé", e)
        except ModeloError as e:
            logger.error(f"Error during {role.value} registration: {e}")
            return self._fail("Erreur lors de l'inscription", e)
        finally:
            self._end("registration_loading")

    def register_model(self, form_data: Dict[str, Any]) -> bool:
        return self._register(ModelRegistrationForm, form_data, UserRole.MODEL)

    def register_professional(self, form_data: Dict[str, Any]) -> bool:
        return self._register(ProfessionalRegistrationForm, form_data, UserRole.PROFESSIONAL)

    def login(self, email: str, password: str) -> bool:
        if not self._begin("login_loading"):
            return False
        try:
            form = validate_form(LoginForm, {"email": email, "password": password})
            self.ctx.auth.login(form.email, form.password)
            self.ctx.navigator.reset(ROUTES.HOME)
            return True
        except FormValidationError as e:
            self.form_errors = e.errors
            return self._fail(e.message, e)
        except AuthError as e:
            return self._fail("Erreur de connexion. Vérifiez vos identifiants.", e)
        except ModeloError as e:
            logger.error(f"Error during login: {e}")
            return self._fail(e.message or "Erreur de connexion", e)
        finally:
            self._end("login_loading")

    def logout(self) -> bool:
        if not self._begin(None):
            return False
        try:
            self.ctx.auth.logout()
            self.ctx.auth_store.logout()
            self.ctx.navigator.reset(ROUTES.LOGIN)
            return True
        except ModeloError as e:
            logger.error(f"Error during logout: {e}")
            return self._fail("Erreur lors de la déconnexion", e)
        finally:
            self._end(None)

    def forgot_password(self, email: str) -> bool:
        if not self._begin("reset_password_loading"):
            return False
        try:
            self.ctx.auth.reset_password(email)
            self.show_success("Email de réinitialisation envoyé")
            return True
        except ModeloError as e:
            logger.error(f"Error during password reset: {e}")
            return self._fail("Erreur lors de la réinitialisation du mot de passe", e)
        finally:
            self._end("reset_password_loading")

    def state(self) -> Dict[str, Any]:
        store = self.ctx.auth_store
        return {
            "user": store.user,
            "is_authenticated": store.is_authenticated,
            "is_initialized": store.is_initialized,
            "is_loading": store.is_loading or store.is_profile_loading,
            "error": store.error,
            "form_errors": self.form_errors,
            "registration_loading": self.registration_loading,
            "login_loading": self.login_loading,
            "reset_password_loading": self.reset_password_loading,
        }
