import logging
from typing import Any, Dict, List, Optional

from ..errors import ModeloError
from ..helpers import APP_CONFIG
from ..navigation import ROUTES
from ..schemas import Category
from .base import ViewModel, screen_action

logger = logging.getLogger(__name__)

ALL_CATEGORY = Category(id="all", name="Tout", icon="apps-outline", is_active=True)

DEFAULT_CATEGORIES = [
    ALL_CATEGORY,
    Category(id="hair", name="Coiffure", icon="cut-outline", is_active=True),
    Category(id="makeup", name="Maquillage", icon="color-palette-outline", is_active=True),
    Category(id="photography", name="Photo", icon="camera-outline", is_active=True),
    Category(id="fashion", name="Mode", icon="shirt-outline", is_active=True),
]


class HomeViewModel(ViewModel):
    def __init__(self, ctx):
        super().__init__(ctx)
        self.refreshing = False
        self.categories: List[Category] = []
        self.featured_banner = None
        self.has_more = True
        self.page = 1
        self._cursor: Optional[Dict[str, Any]] = None

    @property
    def selected_category(self) -> str:
        return self.ctx.service_store.active_filters.get("category") or "all"

    @property
    def search_query(self) -> str:
        return self.ctx.service_store.active_filters.get("search_query") or ""

    @property
    def services(self):
        return self.ctx.service_store.get_filtered_services()

    @screen_action("Impossible de charger les données. Veuillez réessayer.")
    def load(self) -> None:
        self._fetch_categories()
        self._fetch_featured_banner()
        self._fetch_services(reset=True)

    def _fetch_categories(self) -> List[Category]:
        try:
            self.categories = [ALL_CATEGORY] + self.ctx.categories.get_categories()
        except ModeloError as e:
            logger.error(f"Error fetching categories: {e}")
            self.categories = list(DEFAULT_CATEGORIES)
        return self.categories

    def _fetch_featured_banner(self):
        try:
            self.featured_banner = self.ctx.featured.get_featured_banner()
        except ModeloError as e:
            logger.error(f"Error fetching featured banner: {e}")
            self.featured_banner = None
        return self.featured_banner

    def _fetch_services(self, reset: bool = False) -> list:
        category = self.selected_category
        filters = {"type": category} if category != "all" else None
        cursor = None if reset else self._cursor
        page = 1 if reset else self.page + 1
        result = self.ctx.services.get_services(page, APP_CONFIG["default_page_size"], filters, cursor)
        store = self.ctx.service_store
        if reset:
            store.set_recent_services(result["services"])
        else:
            known = {s.id for s in store.recent_services}
            store.set_recent_services(store.recent_services
                                      + [s for s in result["services"] if s.id not in known])
        self.has_more = result["has_more"]
        self._cursor = result["cursor"]
        self.page = page
        return result["services"]

    @screen_action("Impossible de charger plus de prestations", loading=None)
    def load_more_services(self) -> None:
        if not self.has_more or self.loading:
            return
        self._fetch_services()

    @screen_action("Impossible de rafraîchir les données", loading="refreshing")
    def refresh(self) -> None:
        self.ctx.ui_store.set_refreshing(True)
        try:
            self.ctx.service_store.reset_filters()
            self.load()
        finally:
            self.ctx.ui_store.set_refreshing(False)

    @screen_action("Impossible de charger les prestations")
    def select_category(self, category_id: str) -> None:
        self.ctx.service_store.set_filter("category", category_id)
        self._fetch_services(reset=True)

    def search_services(self, query: str) -> None:
        self.ctx.service_store.set_filter("search_query", query)

    def toggle_favorite_service(self, service_id: str) -> None:
        self.ctx.service_store.toggle_favorite(service_id)

    def is_favorite(self, service_id: str) -> bool:
        return self.ctx.service_store.is_favorite(service_id)

    def open_service_details(self, service_id: str) -> None:
        self.ctx.navigator.push(ROUTES.service_details(service_id))

    def open_create_service(self) -> None:
        self.ctx.navigator.push(ROUTES.SERVICE_CREATE)

    def state(self) -> Dict[str, Any]:
        return dict(super().state(),
                    refreshing=self.refreshing,
                    services=self.services,
                    categories=self.categories,
                    featured_banner=self.featured_banner,
                    selected_category=self.selected_category,
                    search_query=self.search_query,
                    has_more=self.has_more)
