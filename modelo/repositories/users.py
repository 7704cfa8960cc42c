from typing import Any, Dict, List, Optional, Callable

from ..database import DocumentGateway
from ..errors import NotFoundError, PermissionDeniedError
from ..events import Subscription
from ..schemas import MODEL_ONLY_FIELDS, PROFESSIONAL_ONLY_FIELDS, USERS, UserRole, parse_user
from ..storage import BlobStorage, model_photo_path, profile_picture_path
from .base import BaseRepository, normalize_dates, repository_operation, timestamp_ms

# Fields a profile edit may never touch.
IMMUTABLE_FIELDS = {"id", "uid", "role", "createdAt", "updatedAt"}


class UserRepository(BaseRepository):
    collection = USERS
    date_fields = ("createdAt", "updatedAt", "lastActive")

    def __init__(self, gateway: DocumentGateway, storage: Optional[BlobStorage] = None, auth=None):
        super().__init__(gateway, storage)
        self.auth = auth

    def to_entity(self, doc):
        if doc is None:
            return None
        return parse_user(normalize_dates(doc, self.date_fields))

    @repository_operation("getUserById")
    def get_user_by_id(self, user_id: str):
        return self._get(user_id)

    @repository_operation("getCurrentUser")
    def get_current_user(self):
        if self.auth is None or self.auth.current_user is None:
            return None
        return self._get(self.auth.current_user.uid)

    @repository_operation("getUsers")
    def get_users(self, filters: Optional[Dict[str, Any]] = None, page: int = 1, limit: int = 10):
        filters = filters or {}
        clauses = []
        if filters.get("role"):
            clauses.append(("role", "==", filters["role"]))
        if filters.get("city"):
            clauses.append(("location.city", "==", filters["city"]))
        result = self.gateway.query(self.collection, clauses, ("createdAt", "desc"), page, limit)
        return {"users": [self.to_entity(d) for d in result.items], "has_more": result.has_more}

    @repository_operation("updateUser")
    def update_user(self, user_id: str, user_data: Dict[str, Any]) -> None:
        """Partial profile write. Role-specific fields are only accepted for the matching role."""
        current = self.gateway.get_by_id(self.collection, user_id)
        if current is None:
            raise NotFoundError(self.collection, user_id)
        touched = set(user_data)
        if touched & IMMUTABLE_FIELDS:
            raise PermissionDeniedError(f"Cannot modify {sorted(touched & IMMUTABLE_FIELDS)}")
        foreign = PROFESSIONAL_ONLY_FIELDS if current["role"] == UserRole.MODEL.value else MODEL_ONLY_FIELDS
        if touched & foreign:
            raise PermissionDeniedError(
                f"Fields {sorted(touched & foreign)} are not valid for role {current['role']}")
        merged = dict(current)
        merged.update(user_data)
        parse_user(normalize_dates(merged, self.date_fields))
        self.gateway.update(self.collection, user_id, user_data)

    @repository_operation("uploadProfilePicture")
    def upload_profile_picture(self, user_id: str, data: bytes) -> str:
        url = self.storage.upload(data, profile_picture_path(user_id, timestamp_ms()))
        self.gateway.update(self.collection, user_id, {"profilePicture": url})
        return url

    @repository_operation("uploadModelPhotos")
    def upload_model_photos(self, user_id: str, files: List[bytes]) -> List[str]:
        user = self.gateway.get_by_id(self.collection, user_id)
        if user is None:
            raise NotFoundError(self.collection, user_id)
        if user["role"] != UserRole.MODEL.value:
            raise PermissionDeniedError("Only models have a photo book")
        ts = timestamp_ms()
        urls = self.storage.upload_many(
            (data, model_photo_path(user_id, i, ts)) for i, data in enumerate(files))
        self.gateway.array_union(self.collection, user_id, "photos", urls)
        return urls

    @repository_operation("removeModelPhoto")
    def remove_model_photo(self, user_id: str, url: str) -> None:
        self.gateway.array_remove(self.collection, user_id, "photos", [url])
        self.storage.delete_url(url)

    @repository_operation("updateUserLocation")
    def update_user_location(self, user_id: str, latitude: float, longitude: float,
                             city: str, radius: float) -> None:
        self.gateway.update(self.collection, user_id, {
            "location": {
                "city": city,
                "coordinates": {"latitude": latitude, "longitude": longitude},
                "radius": radius,
            }
        })

    @repository_operation("blockUser")
    def block_user(self, current_user_id: str, user_to_block_id: str) -> None:
        self.gateway.array_union(self.collection, current_user_id, "blockedUsers", [user_to_block_id])

    @repository_operation("unblockUser")
    def unblock_user(self, current_user_id: str, user_to_unblock_id: str) -> None:
        self.gateway.array_remove(self.collection, current_user_id, "blockedUsers", [user_to_unblock_id])

    @repository_operation("updateFcmToken")
    def update_fcm_token(self, user_id: str, token: str) -> None:
        self.gateway.array_union(self.collection, user_id, "fcmTokens", [token])

    @repository_operation("updateRating")
    def update_rating(self, user_id: str, average: float, count: int) -> None:
        self.gateway.update(self.collection, user_id, {"rating": {"average": average, "count": count}})

    @repository_operation("touchLastActive")
    def touch_last_active(self, user_id: str) -> None:
        self.gateway.update(self.collection, user_id, {"lastActive": self.gateway.now()})

    def subscribe_to_user_changes(self, user_id: str, callback: Callable) -> Subscription:
        return self.gateway.subscribe_document(
            self.collection, user_id, lambda doc: callback(self.to_entity(doc)))
