from typing import Any, Dict, List, Optional

from ..schemas import FEATURED_BANNERS, FeaturedBanner
from ..storage import banner_image_path
from .base import BaseRepository, repository_operation, timestamp_ms


class FeaturedRepository(BaseRepository):
    collection = FEATURED_BANNERS
    model = FeaturedBanner
    date_fields = ("createdAt", "updatedAt", "startDate", "endDate")

    def _live_filters(self):
        now = self.gateway.now()
        return [("isActive", "==", True), ("startDate", "<=", now), ("endDate", ">=", now)]

    @repository_operation("getFeaturedBannerById")
    def get_featured_banner_by_id(self, banner_id: str) -> Optional[FeaturedBanner]:
        return self._get(banner_id)

    @repository_operation("getFeaturedBanner")
    def get_featured_banner(self) -> Optional[FeaturedBanner]:
        """The live banner with the highest priority, if any."""
        found = self.gateway.find(self.collection, self._live_filters(), ("priority", "desc"), limit=1)
        return self.to_entity(found[0]) if found else None

    @repository_operation("getAllActiveBanners")
    def get_all_active_banners(self) -> List[FeaturedBanner]:
        docs = self.gateway.find(self.collection, self._live_filters(), ("priority", "desc"))
        return [self.to_entity(d) for d in docs]

    @repository_operation("createBanner")
    def create_banner(self, banner_data: Dict[str, Any]) -> str:
        data = dict(banner_data)
        data.setdefault("isActive", True)
        FeaturedBanner.model_validate(data)
        return self.gateway.add(self.collection, data)

    @repository_operation("updateBanner")
    def update_banner(self, banner_id: str, banner_data: Dict[str, Any]) -> None:
        self.gateway.update(self.collection, banner_id, banner_data)

    @repository_operation("deleteBanner")
    def delete_banner(self, banner_id: str) -> None:
        self.gateway.delete(self.collection, banner_id)

    @repository_operation("uploadBannerImage")
    def upload_banner_image(self, banner_id: str, data: bytes) -> str:
        url = self.storage.upload(data, banner_image_path(banner_id, timestamp_ms()))
        self.gateway.update(self.collection, banner_id, {"imageUrl": url})
        return url
