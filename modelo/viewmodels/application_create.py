from typing import Any, Dict, List, Optional

from ..errors import ConflictError, NotFoundError, PermissionDeniedError
from ..navigation import ROUTES
from ..schemas import SERVICES, Service, ServiceStatus
from ..validation import ApplicationForm, validate_form
from .base import ViewModel, screen_action


class ApplicationCreateViewModel(ViewModel):
    def __init__(self, ctx, service_id: str):
        super().__init__(ctx)
        self.service_id = service_id
        self.service: Optional[Service] = None
        self.message = ""
        self.photos: List[bytes] = []
        self.submitting = False

    def _check_eligible(self, service: Service) -> None:
        if not self.is_model:
            raise PermissionDeniedError("Seuls les modèles peuvent postuler")
        if service.professional_id == self.user_id:
            raise PermissionDeniedError("Vous ne pouvez pas postuler à votre propre prestation")
        if service.status != ServiceStatus.ACTIVE.value:
            raise PermissionDeniedError("Cette prestation n'accepte plus de candidatures")
        if self.ctx.applications.find_open_application(self.user_id, service.id) is not None:
            raise PermissionDeniedError("Vous avez déjà postulé à cette prestation")

    @screen_action("Erreur lors du chargement de la prestation", missing_message="Prestation introuvable")
    def load(self) -> None:
        service = self.ctx.services.get_service_by_id(self.service_id)
        if service is None:
            raise NotFoundError(SERVICES, self.service_id)
        self._check_eligible(service)
        self.service = service

    def set_message(self, message: str) -> None:
        self.message = message

    def add_photo(self, data: bytes) -> None:
        self.photos.append(data)

    def remove_photo(self, index: int) -> None:
        del self.photos[index]

    @screen_action("Erreur lors de l'envoi de la candidature", loading="submitting", default=None)
    def submit(self) -> Optional[str]:
        """Validate, create the application, then attach its photos."""
        if self.service is None:
            raise NotFoundError(SERVICES, self.service_id)
        self._check_eligible(self.service)
        form = validate_form(ApplicationForm, {"message": self.message, "photos": self.photos})
        try:
            application_id = self.ctx.applications.create_application({
                "serviceId": self.service.id,
                "modelId": self.user_id,
                "professionalId": self.service.professional_id,
                "message": form.message.strip(),
            })
        except ConflictError as e:
            self.failure = e
            self.show_error("Vous avez déjà postulé à cette prestation")
            return None
        self.ctx.applications.upload_application_photos(application_id, self.photos)
        created = self.ctx.applications.get_application_by_id(application_id)
        if created is not None:
            self.ctx.application_store.add_application(created)
        self.show_success("Candidature envoyée")
        self.ctx.navigator.replace(ROUTES.application_details(application_id))
        return application_id

    def state(self) -> Dict[str, Any]:
        return dict(super().state(),
                    service=self.service,
                    message=self.message,
                    photo_count=len(self.photos),
                    submitting=self.submitting)
