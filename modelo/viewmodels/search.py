from typing import Any, Dict, List, Optional

from ..errors import ModeloError
from ..helpers import APP_CONFIG
from ..navigation import ROUTES
from ..stores import service_matches
from .base import ViewModel, screen_action
from .home import ALL_CATEGORY, DEFAULT_CATEGORIES

# Applied client side after the backend query.
ADVANCED_FILTER_KEYS = ("price_range", "date_range", "gender", "age_range", "hair_color",
                        "eye_color", "radius")


class SearchViewModel(ViewModel):
    def __init__(self, ctx):
        super().__init__(ctx)
        self.refreshing = False
        self.filters_open = False
        self.search_query = ""
        self.search_results = []
        self.categories = []
        self.total_results = 0
        self.page = 1
        self.has_more = True
        self._cursor: Optional[Dict[str, Any]] = None
        self.local_filters = self._initial_filters()

    def _initial_filters(self, from_store: bool = True) -> Dict[str, Any]:
        active = self.ctx.service_store.active_filters if from_store else {}
        user = self.user
        user_city = user.location.city if user is not None else ""
        return {
            "category": active.get("category") or "all",
            "city": active.get("city") or user_city or "",
            "price_range": active.get("price_range") or {"min": 0, "max": 1000},
            "date_range": active.get("date_range"),
            "radius": active.get("radius") or APP_CONFIG["default_search_radius"],
            "only_urgent": active.get("only_urgent") or False,
            "gender": active.get("gender") or "all",
            "age_range": active.get("age_range") or {"min": 18, "max": 100},
            "hair_color": active.get("hair_color") or [],
            "eye_color": active.get("eye_color") or [],
        }

    def load(self) -> None:
        try:
            self.categories = [ALL_CATEGORY] + self.ctx.categories.get_categories()
        except ModeloError:
            self.categories = list(DEFAULT_CATEGORIES)
        self.perform_search(reset=True)

    def filter_results_locally(self, results: List) -> List:
        advanced = {k: self.local_filters.get(k) for k in ADVANCED_FILTER_KEYS}
        if advanced["gender"] == "all":
            advanced["gender"] = None
        return [s for s in results if service_matches(s, advanced, self.user)]

    @screen_action("Erreur lors de la recherche")
    def perform_search(self, reset: bool = False) -> None:
        page = 1 if reset else self.page + 1
        cursor = None if reset else self._cursor
        limit = APP_CONFIG["default_page_size"]
        if self.search_query.strip():
            result = self.ctx.services.search_services(self.search_query, page, limit, cursor)
        else:
            filters = {}
            if self.local_filters["category"] and self.local_filters["category"] != "all":
                filters["type"] = self.local_filters["category"]
            if self.local_filters["city"]:
                filters["city"] = self.local_filters["city"]
            if self.local_filters["only_urgent"]:
                filters["isUrgent"] = True
            result = self.ctx.services.get_services(page, limit, filters, cursor)

        results = self.filter_results_locally(result["services"])
        if reset:
            self.search_results = results
        else:
            known = {s.id for s in self.search_results}
            self.search_results = self.search_results + [s for s in results if s.id not in known]
        self.has_more = result["has_more"]
        self._cursor = result["cursor"]
        self.total_results = len(self.search_results)
        self.page = page

    def update_search_query(self, query: str) -> None:
        changed = query != self.search_query
        self.search_query = query
        if changed:
            self.perform_search(reset=True)

    def update_local_filter(self, key: str, value: Any) -> None:
        if key not in self.local_filters:
            raise KeyError(f"Unknown search filter: {key}")
        self.local_filters = dict(self.local_filters, **{key: value})

    def apply_filters(self) -> None:
        for key, value in self.local_filters.items():
            self.ctx.service_store.set_filter(key, value)
        self.filters_open = False
        self.perform_search(reset=True)

    def reset_all_filters(self) -> None:
        self.ctx.service_store.reset_filters()
        self.local_filters = self._initial_filters(from_store=False)
        self.search_query = ""
        self.perform_search(reset=True)

    def load_more_results(self) -> None:
        if not self.has_more or self.loading:
            return
        self.perform_search()

    def refresh_results(self) -> None:
        self.refreshing = True
        self.ctx.ui_store.set_refreshing(True)
        try:
            self.perform_search(reset=True)
        finally:
            self.refreshing = False
            self.ctx.ui_store.set_refreshing(False)

    def open_service_details(self, service_id: str) -> None:
        self.ctx.navigator.push(ROUTES.service_details(service_id))

    def toggle_favorite_service(self, service_id: str) -> None:
        self.ctx.service_store.toggle_favorite(service_id)

    def is_favorite(self, service_id: str) -> bool:
        return self.ctx.service_store.is_favorite(service_id)

    def state(self) -> Dict[str, Any]:
        return dict(super().state(),
                    refreshing=self.refreshing,
                    search_results=self.search_results,
                    categories=self.categories,
                    total_results=self.total_results,
                    has_more=self.has_more,
                    filters_open=self.filters_open,
                    search_query=self.search_query,
                    local_filters=self.local_filters)
