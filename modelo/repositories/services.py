import logging
from datetime import timedelta
from typing import Any, Callable, Dict, List, Optional

from ..errors import InvalidTransitionError, NotFoundError
from ..events import Subscription
from ..schemas import (APPLICATIONS, SERVICE_TRANSITIONS, SERVICES, Service, ServiceStatus,
                       allowed_sources)
from ..storage import service_image_path
from .base import BaseRepository, repository_operation, timestamp_ms, to_datetime

logger = logging.getLogger(__name__)

DEFAULT_EXPIRY = timedelta(days=30)


class ServiceRepository(BaseRepository):
    collection = SERVICES
    model = Service
    date_fields = ("createdAt", "updatedAt", "expiresAt", "date.startDate", "date.endDate")

    @repository_operation("getServiceById")
    def get_service_by_id(self, service_id: str) -> Optional[Service]:
        return self._get(service_id)

    @repository_operation("getServices")
    def get_services(self, page: int = 1, limit: int = 10, filters: Optional[Dict[str, Any]] = None,
                     cursor: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """List services, newest first.

        Without an explicit status, only active and draft services that have not
        expired are returned.
        """
        filters = filters or {}
        clauses = []
        if filters.get("type"):
            clauses.append(("type", "array-contains", filters["type"]))
        if filters.get("city"):
            clauses.append(("location.city", "==", filters["city"]))
        if filters.get("professionalId"):
            clauses.append(("professionalId", "==", filters["professionalId"]))
        if filters.get("status"):
            clauses.append(("status", "==", filters["status"]))
        else:
            clauses.append(("status", "in", [ServiceStatus.ACTIVE.value, ServiceStatus.DRAFT.value]))
            clauses.append(("expiresAt", ">=", self.gateway.now()))
        if filters.get("isUrgent"):
            clauses.append(("isUrgent", "==", True))

        result = self.gateway.query(self.collection, clauses, ("createdAt", "desc"), page, limit, cursor)
        return {
            "services": [self.to_entity(d) for d in result.items],
            "has_more": result.has_more,
            "cursor": result.cursor,
        }

    @repository_operation("searchServices")
    def search_services(self, query: str, page: int = 1, limit: int = 10,
                        cursor: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        clauses = [("status", "==", ServiceStatus.ACTIVE.value)]
        if query.strip():
            clauses.append((("title", "description"), "matches", query.strip()))
        result = self.gateway.query(self.collection, clauses, ("createdAt", "desc"), page, limit, cursor)
        return {
            "services": [self.to_entity(d) for d in result.items],
            "has_more": result.has_more,
            "cursor": result.cursor,
        }

    @repository_operation("createService")
    def create_service(self, service_data: Dict[str, Any]) -> str:
        data = dict(service_data)
        data.pop("id", None)
        if not data.get("expiresAt"):
            start = to_datetime(data["date"]["startDate"])
            data["expiresAt"] = start + DEFAULT_EXPIRY
        data["applicationCount"] = 0
        data.setdefault("images", [])
        data.setdefault("status", ServiceStatus.DRAFT.value)
        Service.model_validate(data)
        service_id = self.gateway.add(self.collection, data)
        logger.info(f"Service {service_id} created by {data.get('professionalId')}")
        return service_id

    @repository_operation("updateService")
    def update_service(self, service_id: str, service_data: Dict[str, Any]) -> None:
        data = dict(service_data)
        data.pop("id", None)
        data.pop("applicationCount", None)
        status = data.pop("status", None)
        if data:
            self.gateway.update(self.collection, service_id, data)
        if status is not None:
            current = self.gateway.get_by_id(self.collection, service_id)
            if current is None:
                raise NotFoundError(self.collection, service_id)
            if current["status"] != status:
                self.update_service_status(service_id, status)

    @repository_operation("deleteService")
    def delete_service(self, service_id: str) -> None:
        """Delete the blob images first, then the document."""
        service = self.gateway.get_by_id(self.collection, service_id)
        if service and service.get("images"):
            for url in service["images"]:
                self.storage.delete_url(url)
        self.gateway.delete(self.collection, service_id)
        logger.info(f"Service {service_id} deleted")

    @repository_operation("uploadServiceImages")
    def upload_service_images(self, service_id: str, files: List[bytes]) -> List[str]:
        ts = timestamp_ms()
        urls = self.storage.upload_many(
            (data, service_image_path(service_id, i, ts)) for i, data in enumerate(files))
        self.gateway.array_union(self.collection, service_id, "images", urls)
        return urls

    @repository_operation("deleteServiceImages")
    def delete_service_images(self, service_id: str, image_urls: List[str]) -> None:
        for url in image_urls:
            self.storage.delete_url(url)
        self.gateway.array_remove(self.collection, service_id, "images", image_urls)

    @repository_operation("updateServiceStatus")
    def update_service_status(self, service_id: str, status: str) -> Service:
        target = ServiceStatus(status)
        updated = self.gateway.compare_and_set(
            self.collection, service_id, "status",
            allowed_sources(SERVICE_TRANSITIONS, target), target.value)
        if updated is None:
            current = self.gateway.get_by_id(self.collection, service_id)
            if current is None:
                raise NotFoundError(self.collection, service_id)
            raise InvalidTransitionError("service", current["status"], target.value)
        return self.to_entity(updated)

    @repository_operation("refreshApplicationCount")
    def refresh_application_count(self, service_id: str) -> int:
        """Recount applications referencing the service; safe to repeat."""
        count = self.gateway.count(APPLICATIONS, [("serviceId", "==", service_id)])
        if self.gateway.get_by_id(self.collection, service_id) is not None:
            self.gateway.update(self.collection, service_id, {"applicationCount": count})
        return count

    def subscribe_to_service_changes(self, service_id: str, callback: Callable) -> Subscription:
        return self.gateway.subscribe_document(
            self.collection, service_id, lambda doc: callback(self.to_entity(doc)))
