from typing import Any, Dict, List, Optional

from ..schemas import CATEGORIES, Category
from .base import BaseRepository, repository_operation


class CategoryRepository(BaseRepository):
    collection = CATEGORIES
    model = Category

    @repository_operation("getCategoryById")
    def get_category_by_id(self, category_id: str) -> Optional[Category]:
        return self._get(category_id)

    @repository_operation("getCategories")
    def get_categories(self) -> List[Category]:
        docs = self.gateway.find(self.collection, [("isActive", "==", True)], ("order", "asc"))
        return [self.to_entity(d) for d in docs]

    @repository_operation("createCategory")
    def create_category(self, category_data: Dict[str, Any]) -> str:
        data = dict(category_data)
        data.setdefault("isActive", True)
        Category.model_validate(data)
        return self.gateway.add(self.collection, data)

    @repository_operation("updateCategory")
    def update_category(self, category_id: str, category_data: Dict[str, Any]) -> None:
        self.gateway.update(self.collection, category_id, category_data)

    @repository_operation("deleteCategory")
    def delete_category(self, category_id: str) -> None:
        # soft delete
        self.gateway.update(self.collection, category_id, {"isActive": False})
