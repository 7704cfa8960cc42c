from typing import Any, Dict, List

from ..navigation import ROUTES
from ..schemas import Application
from .base import ViewModel, screen_action


class ApplicationListViewModel(ViewModel):
    """The signed-in user's applications: sent by a model, received by a professional."""

    def __init__(self, ctx):
        super().__init__(ctx)
        self._watching = False

    @property
    def applications(self) -> List[Application]:
        return self.ctx.application_store.get_filtered_applications()

    @screen_action("Erreur lors du chargement des candidatures")
    def load(self) -> None:
        repo = self.ctx.applications
        if self.is_model:
            result = repo.get_model_applications(self.user_id, status=[])
        else:
            result = repo.get_professional_applications(self.user_id, status=[])
        self.ctx.application_store.set_applications(result["applications"])
        self._watch()

    def _watch(self) -> None:
        if self._watching:
            return
        repo = self.ctx.applications
        store = self.ctx.application_store
        if self.is_model:
            subscription = repo.subscribe_to_model_applications_changes(self.user_id, store.set_applications)
        else:
            subscription = repo.subscribe_to_professional_applications_changes(
                self.user_id, store.set_applications)
        self.own(subscription)
        self._watching = True

    def close(self) -> None:
        super().close()
        self._watching = False

    def set_status_filter(self, statuses: List[str]) -> None:
        self.ctx.application_store.set_filtered_status(statuses)

    def open_application(self, application_id: str) -> None:
        self.ctx.navigator.push(ROUTES.application_details(application_id))

    def state(self) -> Dict[str, Any]:
        store = self.ctx.application_store
        return dict(super().state(),
                    applications=self.applications,
                    filtered_status=store.filtered_status,
                    active_count=store.get_active_applications_count(),
                    pending_count=store.get_pending_applications_count())
