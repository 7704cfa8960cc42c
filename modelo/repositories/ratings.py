import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Optional

from ..errors import FormValidationError
from ..schemas import RATINGS, USERS, Rating
from .base import BaseRepository, repository_operation

logger = logging.getLogger(__name__)


def rating_id(rater_user_id: str, service_id: str) -> str:
    """One rating per rater and service: the pair is the document id."""
    return f"{rater_user_id}_{service_id}"


def round_one_decimal(value: float) -> float:
    return float(Decimal(str(value)).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


class RatingRepository(BaseRepository):
    collection = RATINGS
    model = Rating

    def _page(self, clauses, page: int, limit: int) -> Dict[str, Any]:
        result = self.gateway.query(self.collection, clauses, ("createdAt", "desc"), page, limit)
        return {"ratings": [self.to_entity(d) for d in result.items], "has_more": result.has_more}

    @repository_operation("getRatingById")
    def get_rating_by_id(self, doc_id: str) -> Optional[Rating]:
        return self._get(doc_id)

    @repository_operation("getUserRatings")
    def get_user_ratings(self, user_id: str, page: int = 1, limit: int = 10) -> Dict[str, Any]:
        return self._page([("ratedUserId", "==", user_id), ("isPublic", "==", True)], page, limit)

    @repository_operation("getServiceRatings")
    def get_service_ratings(self, service_id: str, page: int = 1, limit: int = 10) -> Dict[str, Any]:
        return self._page([("serviceId", "==", service_id), ("isPublic", "==", True)], page, limit)

    @repository_operation("hasUserRatedService")
    def has_user_rated_service(self, rater_user_id: str, service_id: str) -> bool:
        return self.gateway.get_by_id(self.collection, rating_id(rater_user_id, service_id)) is not None

    @repository_operation("createRating")
    def create_rating(self, rating_data: Dict[str, Any]) -> str:
        """Store the rating and refresh the rated user's aggregate.

        A second rating from the same rater for the same service raises ConflictError.
        """
        data = dict(rating_data)
        data.pop("id", None)
        data.setdefault("isPublic", True)
        Rating.model_validate(data)
        new_id = self.gateway.add(self.collection, data,
                                  doc_id=rating_id(data["raterUserId"], data["serviceId"]))
        self._refresh_user_rating(data["ratedUserId"])
        return new_id

    @repository_operation("updateRating")
    def update_rating(self, doc_id: str, rating_data: Dict[str, Any]) -> None:
        data = {k: v for k, v in rating_data.items() if k in ("score", "comment", "isPublic")}
        if "score" in data and not 1 <= int(data["score"]) <= 5:
            raise FormValidationError({"score": ["La note doit être comprise entre 1 et 5"]})
        self.gateway.update(self.collection, doc_id, data)
        current = self.gateway.get_by_id(self.collection, doc_id)
        self._refresh_user_rating(current["ratedUserId"])

    @repository_operation("deleteRating")
    def delete_rating(self, doc_id: str) -> None:
        current = self.gateway.get_by_id(self.collection, doc_id)
        self.gateway.delete(self.collection, doc_id)
        if current:
            self._refresh_user_rating(current["ratedUserId"])

    @repository_operation("calculateUserAverageRating")
    def calculate_user_average_rating(self, user_id: str) -> Dict[str, float]:
        ratings = self.gateway.find(self.collection, [("ratedUserId", "==", user_id)], limit=1000)
        if not ratings:
            return {"average": 0, "count": 0}
        average = sum(r["score"] for r in ratings) / len(ratings)
        return {"average": round_one_decimal(average), "count": len(ratings)}

    def _refresh_user_rating(self, user_id: str) -> None:
        if self.gateway.get_by_id(USERS, user_id) is None:
            logger.warning(f"Rated user {user_id} has no profile; aggregate not stored")
            return
        summary = self.calculate_user_average_rating(user_id)
        self.gateway.update(USERS, user_id, {"rating": summary})
