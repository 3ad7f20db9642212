"""Category CRUD helpers (name, description, active flag)."""

from __future__ import annotations

import logging
import sqlite3
from typing import Any, Dict, List

from tripcost.core.errors import ConflictError, NotFoundError, ValidationError
from tripcost.core.security import Actor, require_admin
from tripcost.db.dal import Database
from tripcost.models.category import CategoryIn, CategoryOut, CategoryUpdate
from tripcost.services.budget_limits import limit_out
from tripcost.services.budget_usage import UsageCacheRefresher

logger = logging.getLogger("tripcost.categories")


class CategoryService:
    def __init__(self, db: Database):
        self.db = db

    def create(self, actor: Actor, payload: CategoryIn) -> CategoryOut:
        require_admin(actor, "manage categories")
        try:
            category_id = self.db.create_category(
                payload.name, payload.description, payload.is_active
            )
        except sqlite3.IntegrityError as exc:
            raise ConflictError(
                f"Category '{payload.name}' already exists",
                conflict={"name": payload.name},
            ) from exc
        return self.get(category_id)

    def get(self, category_id: int) -> CategoryOut:
        row = self.db.get_category(category_id)
        if row is None:
            raise NotFoundError(f"Category not found with id of {category_id}")
        return self._out(row)

    def list(self, active_only: bool = False) -> List[CategoryOut]:
        return [self._out(r) for r in self.db.list_categories(active_only=active_only)]

    def update(self, actor: Actor, category_id: int, payload: CategoryUpdate) -> CategoryOut:
        require_admin(actor, "manage categories")
        if self.db.get_category(category_id) is None:
            raise NotFoundError(f"Category not found with id of {category_id}")
        changes = {
            k: v
            for k, v in payload.model_dump(exclude_unset=True).items()
            if v is not None or k == "description"
        }
        try:
            self.db.update_category(category_id, changes)
        except sqlite3.IntegrityError as exc:
            raise ConflictError(
                f"Category '{changes.get('name')}' already exists",
                conflict={"name": changes.get("name")},
            ) from exc
        return self.get(category_id)

    def delete(self, actor: Actor, category_id: int) -> None:
        require_admin(actor, "manage categories")
        if self.db.get_category(category_id) is None:
            raise NotFoundError(f"Category not found with id of {category_id}")
        in_use = self.db.delete_category(category_id)
        if in_use:
            raise ValidationError(
                f"Category {category_id} still has {in_use} expense(s); "
                "deactivate it instead"
            )
        logger.info("category %s deleted", category_id)

    def _out(self, row: Dict[str, Any]) -> CategoryOut:
        return CategoryOut(
            id=row["id"],
            name=row["name"],
            description=row["description"],
            is_active=bool(row["is_active"]),
            budget_limits=[limit_out(r) for r in self.db.list_budget_limits(row["id"])],
            current_usage=UsageCacheRefresher(self.db).snapshot(row["id"]),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )
