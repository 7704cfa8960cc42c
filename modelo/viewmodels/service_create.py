from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from ..errors import NotFoundError, PermissionDeniedError
from ..navigation import ROUTES
from ..repositories.services import DEFAULT_EXPIRY
from ..schemas import SERVICES, PaymentType, Service, ServiceStatus
from ..validation import NewServiceForm, ServiceForm, validate_form
from .base import ViewModel, screen_action

# A stored image URL, or raw bytes not uploaded yet.
MediaItem = Union[str, bytes]


class ServiceCreateViewModel(ViewModel):
    """Create a service, or edit one the current professional owns."""

    def __init__(self, ctx, service_id: Optional[str] = None):
        super().__init__(ctx)
        self.service_id = service_id
        self.is_editing = service_id is not None
        self.service: Optional[Service] = None
        self.saving = False
        self.media: List[MediaItem] = []
        self.form_data = self._blank_form()

    def _blank_form(self) -> Dict[str, Any]:
        user = self.user
        location = {"city": "", "address": "", "isRemote": False}
        if user is not None:
            location["city"] = user.location.city or ""
            if user.location.coordinates is not None:
                location["coordinates"] = user.location.coordinates.to_wire()
        return {
            "title": "",
            "description": "",
            "type": [],
            "location": location,
            "date": {"startDate": datetime.now(timezone.utc), "duration": 60, "isFlexible": False},
            "payment": {"type": PaymentType.FREE.value, "amount": 0, "details": ""},
            "criteria": {"hairColor": [], "eyeColor": [], "specificRequirements": ""},
            "isUrgent": False,
        }

    @screen_action("Erreur lors du chargement des détails", missing_message="Prestation introuvable")
    def load(self) -> None:
        if not self.is_editing:
            return
        service = self.ctx.services.get_service_by_id(self.service_id)
        if service is None:
            raise NotFoundError(SERVICES, self.service_id)
        if service.professional_id != self.user_id:
            raise PermissionDeniedError("Vous n'êtes pas autorisé à modifier cette prestation")
        self.service = service
        wire = service.to_wire()
        self.form_data = {
            "title": service.title,
            "description": service.description,
            "type": service.types,
            "location": wire.get("location", {}),
            "date": wire["date"],
            "payment": wire.get("payment", {}),
            "criteria": wire.get("criteria", {}),
            "isUrgent": service.is_urgent,
        }
        self.media = list(service.images)

    def update_form_value(self, field: str, value: Any) -> None:
        self.form_data = dict(self.form_data, **{field: value})

    def update_nested_form_value(self, parent: str, field: str, value: Any) -> None:
        nested = dict(self.form_data.get(parent) or {}, **{field: value})
        self.update_form_value(parent, nested)

    def set_location(self, latitude: float, longitude: float, city: Optional[str] = None) -> None:
        location = dict(self.form_data["location"])
        location["city"] = city or location.get("city", "")
        location["coordinates"] = {"latitude": latitude, "longitude": longitude}
        self.update_form_value("location", location)

    def add_media(self, data: bytes) -> None:
        self.media.append(data)

    def remove_media(self, index: int) -> None:
        del self.media[index]

    def _service_data(self, form: ServiceForm, is_draft: bool) -> Dict[str, Any]:
        data = form.model_dump(by_alias=True, exclude_none=True, exclude={"images"})
        types = data["type"] if isinstance(data["type"], list) else [data["type"]]
        data["type"] = types[0] if len(types) == 1 else types
        if data["payment"]["type"] != PaymentType.PAID.value:
            data["payment"].pop("amount", None)
        criteria = data.get("criteria", {})
        for colour in ("hairColor", "eyeColor"):
            if not criteria.get(colour):
                criteria.pop(colour, None)
        data["professionalId"] = self.user_id
        data["status"] = (ServiceStatus.DRAFT if is_draft else ServiceStatus.ACTIVE).value
        return data

    @screen_action("Erreur lors de l'enregistrement", loading="saving", default=None)
    def save_service(self, is_draft: bool = False) -> Optional[str]:
        if self.user is None:
            raise PermissionDeniedError("Vous devez être connecté")
        if not self.form_data.get("type"):
            self.show_error("Au moins un type de prestation est requis")
            return None
        form_cls = ServiceForm if self.is_editing else NewServiceForm
        form = validate_form(form_cls, dict(self.form_data, images=self.media))
        data = self._service_data(form, is_draft)

        if self.is_editing:
            saved_id = self._update(data)
            self.show_success("Prestation mise à jour avec succès")
        else:
            saved_id = self._create(data)
            self.show_success("Prestation créée avec succès")
        self.ctx.navigator.replace(ROUTES.service_details(saved_id))
        return saved_id

    def _create(self, data: Dict[str, Any]) -> str:
        service_id = self.ctx.services.create_service(data)
        uploads = [m for m in self.media if isinstance(m, bytes)]
        if uploads:
            self.ctx.services.upload_service_images(service_id, uploads)
        created = self.ctx.services.get_service_by_id(service_id)
        if created is not None:
            self.ctx.service_store.add_recent_service(created)
        return service_id

    def _update(self, data: Dict[str, Any]) -> str:
        """Upload only new media; drop images the user removed."""
        existing = self.service.images if self.service is not None else []
        kept = [m for m in self.media if isinstance(m, str)]
        removed = [url for url in existing if url not in kept]
        uploads = [m for m in self.media if isinstance(m, bytes)]
        if removed:
            self.ctx.services.delete_service_images(self.service_id, removed)
        new_urls = self.ctx.services.upload_service_images(self.service_id, uploads) if uploads else []
        data["images"] = kept + new_urls
        data["expiresAt"] = data["date"]["startDate"] + DEFAULT_EXPIRY
        self.ctx.services.update_service(self.service_id, data)
        updated = self.ctx.services.get_service_by_id(self.service_id)
        if updated is not None:
            self.service = updated
            self.ctx.service_store.update_service(self.service_id, **dict(updated))
        return self.service_id

    def save_as_draft(self) -> Optional[str]:
        return self.save_service(is_draft=True)

    def publish_service(self) -> Optional[str]:
        return self.save_service(is_draft=False)

    def cancel_creation(self) -> None:
        self.ctx.navigator.back()

    def state(self) -> Dict[str, Any]:
        return dict(super().state(),
                    form_data=self.form_data,
                    service=self.service,
                    saving=self.saving,
                    is_editing=self.is_editing,
                    media=[m if isinstance(m, str) else None for m in self.media])
