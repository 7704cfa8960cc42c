import logging
from typing import Any, Dict, List, Optional

from ..errors import ModeloError, NotFoundError, PermissionDeniedError
from ..navigation import ROUTES
from ..schemas import SERVICES, Application, Rating, Service, ServiceStatus
from .base import ViewModel, screen_action

logger = logging.getLogger(__name__)


class ServiceDetailViewModel(ViewModel):
    def __init__(self, ctx, service_id: str):
        super().__init__(ctx)
        self.service_id = service_id
        self.service: Optional[Service] = None
        self.professional = None
        self.applications: List[Application] = []
        self.user_application: Optional[Application] = None
        self.ratings: List[Rating] = []
        self.refreshing = False
        self.deleting = False
        self.updating = False

    # Derived flags
    @property
    def is_owner(self) -> bool:
        return self.service is not None and self.user is not None \
            and self.service.professional_id == self.user.id

    @property
    def can_apply(self) -> bool:
        return (self.is_model and not self.is_owner and self.service is not None
                and self.service.status == ServiceStatus.ACTIVE.value)

    @property
    def has_applied(self) -> bool:
        return self.user_application is not None

    @property
    def can_edit(self) -> bool:
        return self.is_owner and self.service.status != ServiceStatus.COMPLETED.value

    @property
    def can_delete(self) -> bool:
        return self.can_edit

    @property
    def is_favorite(self) -> bool:
        return self.service is not None and self.ctx.service_store.is_favorite(self.service.id)

    @screen_action("Erreur lors du chargement des détails", missing_message="Prestation introuvable")
    def load(self) -> None:
        """Show the cached copy first, then replace it with the stored one."""
        store = self.ctx.service_store
        cached = store.get_service_by_id(self.service_id)
        if cached is not None:
            self.service = cached
        fresh = self.ctx.services.get_service_by_id(self.service_id)
        if fresh is not None:
            self.service = fresh
            store.update_service(self.service_id, **dict(fresh))
        elif cached is None:
            raise NotFoundError(SERVICES, self.service_id)

        self._fetch_professional(self.service.professional_id)
        self._fetch_applications(self.service.id)
        self._fetch_ratings(self.service.id)

    def _fetch_professional(self, professional_id: str) -> None:
        try:
            self.professional = self.ctx.users.get_user_by_id(professional_id)
        except ModeloError as e:
            logger.error(f"Error fetching professional: {e}")

    def _fetch_applications(self, service_id: str) -> None:
        try:
            result = self.ctx.applications.get_applications_for_service(service_id)
        except ModeloError as e:
            logger.error(f"Error fetching applications: {e}")
            return
        self.applications = result["applications"]
        if self.is_model:
            self.user_application = next(
                (a for a in self.applications if a.model_id == self.user_id), None)

    def _fetch_ratings(self, service_id: str) -> None:
        try:
            self.ratings = self.ctx.ratings.get_service_ratings(service_id)["ratings"]
        except ModeloError as e:
            logger.error(f"Error fetching ratings: {e}")

    def refresh(self) -> None:
        self.refreshing = True
        self.ctx.ui_store.set_refreshing(True)
        try:
            self.load()
        finally:
            self.refreshing = False
            self.ctx.ui_store.set_refreshing(False)

    @screen_action("Erreur lors de la suppression", loading="deleting", default=False)
    def delete_service(self) -> bool:
        if self.service is None or not self.is_owner:
            raise PermissionDeniedError("Vous ne pouvez pas supprimer cette prestation")
        if not self.can_delete:
            raise PermissionDeniedError("Une prestation terminée ne peut pas être supprimée")
        self.ctx.services.delete_service(self.service.id)
        self.ctx.service_store.remove_service(self.service.id)
        self.show_success("Prestation supprimée")
        self.ctx.navigator.back()
        return True

    @screen_action("Erreur lors de la mise à jour du statut", loading="updating", default=False)
    def update_service_status(self, status: str) -> bool:
        if self.service is None or not self.is_owner:
            raise PermissionDeniedError("Vous ne pouvez pas modifier cette prestation")
        status = ServiceStatus(status).value
        self.ctx.services.update_service_status(self.service.id, status)
        self.service = self.service.model_copy(update={"status": status})
        self.ctx.service_store.update_service(self.service.id, status=status)
        self.show_success("Statut mis à jour")
        return True

    def toggle_favorite_service(self) -> None:
        if self.service is not None:
            self.ctx.service_store.toggle_favorite(self.service.id)

    def share_service(self) -> None:
        if self.service is not None:
            self.ctx.ui_store.show_toast("info", "Partage non disponible pour le moment")

    def navigate_to_edit_service(self) -> None:
        if self.service is not None and self.is_owner:
            self.ctx.navigator.push(ROUTES.service_edit(self.service.id))

    def navigate_to_create_application(self) -> None:
        if self.service is not None and self.can_apply:
            self.ctx.navigator.push(ROUTES.application_create(self.service.id))

    def navigate_to_professional_profile(self) -> None:
        if self.professional is not None:
            self.ctx.navigator.push(ROUTES.user_profile(self.professional.id))

    def navigate_to_application_detail(self, application_id: str) -> None:
        self.ctx.navigator.push(ROUTES.application_details(application_id))

    def state(self) -> Dict[str, Any]:
        return dict(super().state(),
                    service=self.service,
                    professional=self.professional,
                    applications=self.applications,
                    user_application=self.user_application,
                    ratings=self.ratings,
                    refreshing=self.refreshing,
                    deleting=self.deleting,
                    updating=self.updating,
                    is_owner=self.is_owner,
                    is_model=self.is_model,
                    is_professional=self.is_professional,
                    can_apply=self.can_apply,
                    has_applied=self.has_applied,
                    can_edit=self.can_edit,
                    can_delete=self.can_delete,
                    is_favorite=self.is_favorite)
