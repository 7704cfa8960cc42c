import logging
from typing import Any, Dict, List, Optional

from ..errors import ModeloError, NotFoundError, PermissionDeniedError
from ..navigation import ROUTES
from ..schemas import USERS, UserRole
from ..validation import ModelProfileUpdateForm, ProfessionalProfileUpdateForm, validate_form
from .base import ViewModel, screen_action

logger = logging.getLogger(__name__)

TABS = ("info", "services", "applications")


class ProfileViewModel(ViewModel):
    def __init__(self, ctx, user_id: Optional[str] = None):
        super().__init__(ctx)
        self.requested_user_id = user_id
        self.profile = None
        self.ratings: List = []
        self.services: List = []
        self.applications: List = []
        self.refreshing = False
        self.updating_profile = False
        self.active_tab = "info"
        self._watching = False

    @property
    def target_user_id(self) -> str:
        return self.requested_user_id or self.user_id

    @property
    def is_current_user_profile(self) -> bool:
        return not self.requested_user_id or self.requested_user_id == self.user_id

    @property
    def is_model_profile(self) -> bool:
        return self.profile is not None and self.profile.role == UserRole.MODEL.value

    @property
    def is_professional_profile(self) -> bool:
        return self.profile is not None and self.profile.role == UserRole.PROFESSIONAL.value

    @property
    def is_blocked(self) -> bool:
        return (self.user is not None and self.requested_user_id is not None
                and self.requested_user_id in self.user.blocked_users)

    def load(self) -> None:
        if self.is_current_user_profile:
            self._load_own()
        else:
            self._load_other()

    @screen_action("Erreur lors du chargement du profil")
    def _load_own(self) -> None:
        self._fetch_profile()

    @screen_action("Erreur lors du chargement du profil", missing_message="Utilisateur introuvable")
    def _load_other(self) -> None:
        self._fetch_profile()

    def _fetch_profile(self) -> None:
        profile = self.ctx.users.get_user_by_id(self.target_user_id)
        if profile is None:
            raise NotFoundError(USERS, self.target_user_id)
        self.profile = profile
        self._fetch_ratings()
        if profile.role == UserRole.PROFESSIONAL.value:
            self._fetch_services()
        else:
            self._fetch_applications()
        if self.is_current_user_profile:
            self._watch_own_profile()

    def _fetch_ratings(self) -> None:
        try:
            self.ratings = self.ctx.ratings.get_user_ratings(self.target_user_id, 1, 5)["ratings"]
        except ModeloError as e:
            logger.error(f"Error fetching ratings: {e}")

    def _fetch_services(self) -> None:
        try:
            result = self.ctx.services.get_services(1, 10, {"professionalId": self.target_user_id})
            self.services = result["services"]
        except ModeloError as e:
            logger.error(f"Error fetching services: {e}")

    def _fetch_applications(self) -> None:
        # another user's applications are private
        if not self.is_current_user_profile:
            self.applications = []
            return
        try:
            self.applications = self.ctx.applications.get_model_applications(self.target_user_id)["applications"]
        except ModeloError as e:
            logger.error(f"Error fetching applications: {e}")

    def _watch_own_profile(self) -> None:
        if self._watching:
            return

        def on_change(profile):
            if profile is not None:
                self.profile = profile
                self.ctx.auth_store.set_user(profile)

        self.own(self.ctx.users.subscribe_to_user_changes(self.target_user_id, on_change))
        self._watching = True

    def close(self) -> None:
        super().close()
        self._watching = False

    def set_active_tab(self, tab: str) -> None:
        if tab not in TABS:
            raise ValueError(f"Unknown profile tab: {tab}")
        self.active_tab = tab

    def refresh(self) -> None:
        self.refreshing = True
        self.ctx.ui_store.set_refreshing(True)
        try:
            self.load()
        finally:
            self.refreshing = False
            self.ctx.ui_store.set_refreshing(False)

    def _require_own_profile(self) -> None:
        if not self.is_current_user_profile or self.user is None:
            raise PermissionDeniedError("Vous ne pouvez modifier que votre propre profil")

    def _reload_self(self) -> None:
        profile = self.ctx.users.get_user_by_id(self.user_id)
        if profile is not None:
            self.profile = profile
            self.ctx.auth_store.set_user(profile)

    @screen_action("Erreur lors de la mise à jour du profil", loading="updating_profile", default=False)
    def update_profile(self, profile_data: Dict[str, Any]) -> bool:
        """Validate the merged profile against the role's form, then write the changed fields."""
        self._require_own_profile()
        form_cls = ModelProfileUpdateForm if self.is_model else ProfessionalProfileUpdateForm
        validate_form(form_cls, dict(self.user.to_wire(), **profile_data))
        self.ctx.users.update_user(self.user_id, profile_data)
        self._reload_self()
        self.show_success("Profil mis à jour")
        return True

    @screen_action("Erreur lors de la mise à jour de la photo", loading="updating_profile", default=None)
    def update_profile_picture(self, data: bytes) -> Optional[str]:
        self._require_own_profile()
        url = self.ctx.users.upload_profile_picture(self.user_id, data)
        self._reload_self()
        self.show_success("Photo de profil mise à jour")
        return url

    @screen_action("Erreur lors de la mise à jour des photos", loading="updating_profile", default=None)
    def update_model_photos(self, files: List[bytes]) -> Optional[List[str]]:
        self._require_own_profile()
        if not self.is_model:
            raise PermissionDeniedError("Seuls les modèles ont un book photo")
        urls = self.ctx.users.upload_model_photos(self.user_id, files)
        self._reload_self()
        self.show_success("Photos de profil mises à jour")
        return urls

    @screen_action("Erreur lors du blocage", loading=None, default=False)
    def block_user(self) -> bool:
        if self.is_current_user_profile:
            raise PermissionDeniedError("Vous ne pouvez pas vous bloquer vous-même")
        self.ctx.users.block_user(self.user_id, self.requested_user_id)
        self._reload_self_quietly()
        self.show_success("Utilisateur bloqué")
        return True

    @screen_action("Erreur lors du déblocage", loading=None, default=False)
    def unblock_user(self) -> bool:
        if self.is_current_user_profile:
            return False
        self.ctx.users.unblock_user(self.user_id, self.requested_user_id)
        self._reload_self_quietly()
        self.show_success("Utilisateur débloqué")
        return True

    def _reload_self_quietly(self) -> None:
        # keeps the other user's profile on screen
        current = self.ctx.users.get_user_by_id(self.user_id)
        if current is not None:
            self.ctx.auth_store.set_user(current)

    @screen_action("Erreur lors de l'enregistrement des notifications", loading=None, default=False)
    def register_push_token(self, token: str) -> bool:
        if self.user is None:
            return False
        self.ctx.users.update_fcm_token(self.user_id, token)
        return True

    def navigate_to_edit_profile(self) -> None:
        self.ctx.navigator.push(ROUTES.PROFILE_EDIT)

    def navigate_to_settings(self) -> None:
        self.ctx.navigator.push(ROUTES.PROFILE_SETTINGS)

    def state(self) -> Dict[str, Any]:
        return dict(super().state(),
                    profile=self.profile,
                    ratings=self.ratings,
                    services=self.services,
                    applications=self.applications,
                    refreshing=self.refreshing,
                    updating_profile=self.updating_profile,
                    active_tab=self.active_tab,
                    is_current_user_profile=self.is_current_user_profile,
                    is_model=self.is_model_profile,
                    is_professional=self.is_professional_profile,
                    is_blocked=self.is_blocked)
