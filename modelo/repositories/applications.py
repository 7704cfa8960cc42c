import logging
from datetime import timedelta
from typing import Any, Callable, Dict, List, Optional

from ..errors import ConflictError, InvalidTransitionError, NotFoundError
from ..events import Subscription
from ..schemas import (APPLICATION_TRANSITIONS, APPLICATIONS, Application, ApplicationStatus,
                       allowed_sources)
from ..storage import application_photo_path
from .base import BaseRepository, repository_operation, timestamp_ms
from .messages import MessageRepository
from .services import ServiceRepository

logger = logging.getLogger(__name__)

DEFAULT_EXPIRY = timedelta(days=7)

DEFAULT_LIST_STATUSES = [
    ApplicationStatus.PENDING.value,
    ApplicationStatus.ACCEPTED.value,
    ApplicationStatus.COMPLETED.value,
]

ACCEPTED_TEXT = "Votre candidature a été acceptée ! Vous pouvez maintenant échanger avec le professionnel."
COMPLETED_TEXT = "La prestation a été marquée comme terminée. Vous pouvez maintenant laisser une évaluation."
CANCELLED_TEXT = "La candidature a été annulée par {actor}."


class ApplicationRepository(BaseRepository):
    collection = APPLICATIONS
    model = Application
    date_fields = ("createdAt", "updatedAt", "expiredAt")

    def __init__(self, gateway, storage=None, services: Optional[ServiceRepository] = None,
                 messages: Optional[MessageRepository] = None):
        super().__init__(gateway, storage)
        self.services = services or ServiceRepository(gateway, storage)
        self.messages = messages or MessageRepository(gateway, storage)

    def _page(self, clauses, page: int, limit: int, cursor=None) -> Dict[str, Any]:
        result = self.gateway.query(self.collection, clauses, ("createdAt", "desc"), page, limit, cursor)
        return {
            "applications": [self.to_entity(d) for d in result.items],
            "has_more": result.has_more,
            "cursor": result.cursor,
        }

    @repository_operation("getApplicationById")
    def get_application_by_id(self, application_id: str) -> Optional[Application]:
        return self._get(application_id)

    @repository_operation("getApplicationsForService")
    def get_applications_for_service(self, service_id: str, page: int = 1, limit: int = 10) -> Dict[str, Any]:
        return self._page([("serviceId", "==", service_id)], page, limit)

    @repository_operation("getModelApplications")
    def get_model_applications(self, model_id: str, status: Optional[List[str]] = None,
                               page: int = 1, limit: int = 10,
                               cursor: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        status = DEFAULT_LIST_STATUSES if status is None else status
        clauses = [("modelId", "==", model_id)]
        if status:
            clauses.append(("status", "in", list(status)))
        return self._page(clauses, page, limit, cursor)

    @repository_operation("getProfessionalApplications")
    def get_professional_applications(self, professional_id: str, status: Optional[List[str]] = None,
                                      page: int = 1, limit: int = 10,
                                      cursor: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        status = DEFAULT_LIST_STATUSES if status is None else status
        clauses = [("professionalId", "==", professional_id)]
        if status:
            clauses.append(("status", "in", list(status)))
        return self._page(clauses, page, limit, cursor)

    @repository_operation("findOpenApplication")
    def find_open_application(self, model_id: str, service_id: str) -> Optional[Application]:
        found = self.gateway.find(self.collection, [
            ("modelId", "==", model_id),
            ("serviceId", "==", service_id),
            ("status", "!=", ApplicationStatus.CANCELLED.value),
        ], limit=1)
        return self.to_entity(found[0]) if found else None

    @repository_operation("createApplication")
    def create_application(self, application_data: Dict[str, Any]) -> str:
        """Create a pending application.

        A model holds at most one non-cancelled application per service.
        """
        data = dict(application_data)
        data.pop("id", None)
        data["status"] = ApplicationStatus.PENDING.value
        data["hasUnreadMessages"] = False
        data.setdefault("photos", [])
        data["expiredAt"] = self.gateway.now() + DEFAULT_EXPIRY
        Application.model_validate(data)

        if self.find_open_application(data["modelId"], data["serviceId"]):
            raise ConflictError("An application for this service already exists",
                                model_id=data["modelId"], service_id=data["serviceId"])
        application_id = self.gateway.add(self.collection, data)
        self.services.refresh_application_count(data["serviceId"])
        logger.info(f"Application {application_id} created for service {data['serviceId']}")
        return application_id

    @repository_operation("updateApplication")
    def update_application(self, application_id: str, application_data: Dict[str, Any]) -> None:
        data = dict(application_data)
        for key in ("id", "status", "modelId", "serviceId", "professionalId"):
            data.pop(key, None)
        self.gateway.update(self.collection, application_id, data)

    @repository_operation("deleteApplication")
    def delete_application(self, application_id: str) -> None:
        current = self.gateway.get_by_id(self.collection, application_id)
        self.gateway.delete(self.collection, application_id)
        if current:
            self.services.refresh_application_count(current["serviceId"])

    @repository_operation("uploadApplicationPhotos")
    def upload_application_photos(self, application_id: str, files: List[bytes]) -> List[str]:
        ts = timestamp_ms()
        urls = self.storage.upload_many(
            (data, application_photo_path(application_id, i, ts)) for i, data in enumerate(files))
        self.gateway.array_union(self.collection, application_id, "photos", urls)
        return urls

    @repository_operation("updateApplicationStatus")
    def update_application_status(self, application_id: str, status: str,
                                  rejection_reason: Optional[str] = None,
                                  actor_id: Optional[str] = None) -> Application:
        """Move an application along its lifecycle and notify the other party.

        The write only lands if the current status still allows ``status``;
        terminal applications never change again.
        """
        target = ApplicationStatus(status)
        extra = {}
        if target == ApplicationStatus.REJECTED and rejection_reason:
            extra["rejectionReason"] = rejection_reason
        updated = self.gateway.compare_and_set(
            self.collection, application_id, "status",
            allowed_sources(APPLICATION_TRANSITIONS, target), target.value, extra)
        if updated is None:
            current = self.gateway.get_by_id(self.collection, application_id)
            if current is None:
                raise NotFoundError(self.collection, application_id)
            raise InvalidTransitionError("application", current["status"], target.value)

        application = self.to_entity(updated)
        self._post_status_message(application, target, actor_id)
        return application

    def _post_status_message(self, application: Application, target: ApplicationStatus,
                             actor_id: Optional[str]) -> None:
        by_owner = actor_id is None or actor_id == application.professional_id
        other_party = application.model_id if by_owner else application.professional_id
        if target == ApplicationStatus.ACCEPTED:
            self.messages.send_system_message(application.id, application.model_id, ACCEPTED_TEXT)
        elif target == ApplicationStatus.COMPLETED:
            self.messages.send_system_message(application.id, other_party, COMPLETED_TEXT)
        elif target == ApplicationStatus.CANCELLED:
            actor = "le professionnel" if by_owner else "le modèle"
            self.messages.send_system_message(application.id, other_party, CANCELLED_TEXT.format(actor=actor))

    @repository_operation("markMessagesAsRead")
    def mark_messages_as_read(self, application_id: str) -> None:
        self.gateway.update(self.collection, application_id, {"hasUnreadMessages": False})

    def subscribe_to_application_changes(self, application_id: str, callback: Callable) -> Subscription:
        return self.gateway.subscribe_document(
            self.collection, application_id, lambda doc: callback(self.to_entity(doc)))

    def subscribe_to_model_applications_changes(self, model_id: str, callback: Callable) -> Subscription:
        return self.gateway.subscribe_query(
            self.collection, lambda docs: callback([self.to_entity(d) for d in docs]),
            [("modelId", "==", model_id)], ("createdAt", "desc"), 50)

    def subscribe_to_professional_applications_changes(self, professional_id: str,
                                                       callback: Callable) -> Subscription:
        return self.gateway.subscribe_query(
            self.collection, lambda docs: callback([self.to_entity(d) for d in docs]),
            [("professionalId", "==", professional_id)], ("createdAt", "desc"), 50)
