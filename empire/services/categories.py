"""
Category Service for Empire.

Maintains each user's two-level category tree:
- top-level categories may have children, children cannot
- a category cannot be its own parent
- a category with children cannot be moved under another category
- names are unique under the same parent
- deletion is blocked while the category has children or goals

Nesting depth has no backing constraint in the store, so it is enforced
here. Name uniqueness and parent references are backed by the store and
the resulting constraint violations are translated into user-facing errors.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from empire.lib import errors
from empire.lib.exceptions import (
    ConflictError,
    ConstraintViolation,
    NotFoundError,
    ValidationError,
)
from empire.lib.security import hash_uid
from empire.models.category import Category
from empire.models.goal import Goal
from empire.store.client import StoreClient

logger = logging.getLogger(__name__)

MAX_NAME_LENGTH = 100

_UNSET: object = object()


@dataclass
class CategoryNode:
    """A category with its (sorted) children."""

    id: str
    name: str
    parent_id: str | None
    children: list[CategoryNode] = field(default_factory=list)

    @classmethod
    def from_model(cls, category: Category) -> CategoryNode:
        return cls(id=category.id, name=category.name, parent_id=category.parent_id)


def normalize_name(name: str | None) -> str:
    """
    Trim and validate a category name.

    Raises:
        ValidationError: If the name is empty or longer than 100 characters
    """
    cleaned = (name or "").strip()
    if not cleaned:
        raise ValidationError("Category name is required.")
    if len(cleaned) > MAX_NAME_LENGTH:
        raise ValidationError(f"Category name must be at most {MAX_NAME_LENGTH} characters.")
    return cleaned


class CategoryService:
    """Category tree operations scoped to a single user."""

    def __init__(self, store: StoreClient):
        self._store = store

    # =========================================================================
    # Queries
    # =========================================================================

    def list_tree(self, user_id: str) -> list[CategoryNode]:
        """
        List the user's categories as a tree.

        Returns:
            Top-level categories sorted by name, each with children sorted by name
        """

        def load(session: Session) -> list[CategoryNode]:
            rows = session.scalars(
                select(Category)
                .where(Category.user_id == user_id)
                .order_by(Category.name)
            ).all()
            nodes = {row.id: CategoryNode.from_model(row) for row in rows}
            roots: list[CategoryNode] = []
            for row in rows:
                node = nodes[row.id]
                if row.parent_id is None:
                    roots.append(node)
                elif row.parent_id in nodes:
                    nodes[row.parent_id].children.append(node)
            return roots

        return self._store.read(load)

    # =========================================================================
    # Mutations
    # =========================================================================

    def create(self, user_id: str, name: str, parent_id: str | None = None) -> Category:
        """
        Create a category.

        Args:
            user_id: Owning user
            name: Category name (trimmed)
            parent_id: Top-level parent, or None for a top-level category

        Raises:
            ValidationError: Invalid name or parent is not top-level
            NotFoundError: Parent does not exist for this user
            ConflictError: Duplicate name under the same parent
        """
        cleaned = normalize_name(name)
        try:
            with self._store.session() as session:
                if parent_id is not None:
                    parent = self._get_owned(session, user_id, parent_id)
                    self._check_parent(parent)
                category = Category(user_id=user_id, name=cleaned, parent_id=parent_id)
                session.add(category)
                session.flush()
        except ConstraintViolation as e:
            if e.is_unique_violation:
                raise self._duplicate_name() from e
            raise

        logger.info(
            "Category created user_hash=%s top_level=%s",
            hash_uid(user_id),
            parent_id is None,
        )
        return category

    def update(
        self,
        user_id: str,
        category_id: str,
        *,
        name: str | None = None,
        parent_id: str | None | object = _UNSET,
    ) -> Category:
        """
        Rename and/or re-parent a category.

        ``parent_id`` left unset keeps the current parent; ``None`` makes the
        category top-level.

        Raises:
            ValidationError: Self-parenting, parent not top-level, moving a
                category with children, or lifting a goal category to top level
            NotFoundError: Category or parent does not exist for this user
            ConflictError: Duplicate name under the target parent
        """
        cleaned = normalize_name(name) if name is not None else None
        try:
            with self._store.session() as session:
                category = self._get_owned(session, user_id, category_id)

                if parent_id is not _UNSET and parent_id != category.parent_id:
                    self._check_move(session, user_id, category, parent_id)
                    category.parent_id = parent_id

                if cleaned is not None:
                    category.name = cleaned
                session.flush()
        except ConstraintViolation as e:
            if e.is_unique_violation:
                raise self._duplicate_name() from e
            raise

        return category

    def delete(self, user_id: str, category_id: str) -> None:
        """
        Delete a category with no children and no goals.

        Raises:
            NotFoundError: Category does not exist for this user
            ConflictError: Category has children or is used by goals
        """
        try:
            with self._store.session() as session:
                category = self._get_owned(session, user_id, category_id)

                child_count = session.scalar(
                    select(func.count()).select_from(Category).where(
                        Category.parent_id == category.id
                    )
                )
                if child_count:
                    raise ConflictError(
                        errors.get_error_message(errors.CATEGORY_HAS_CHILDREN),
                        code=errors.CATEGORY_HAS_CHILDREN,
                    )

                goal_count = session.scalar(
                    select(func.count()).select_from(Goal).where(
                        Goal.category_id == category.id
                    )
                )
                if goal_count:
                    raise ConflictError(
                        errors.get_error_message(errors.CATEGORY_IN_USE),
                        code=errors.CATEGORY_IN_USE,
                    )

                session.delete(category)
        except ConstraintViolation as e:
            # A child or goal was added between the checks and the delete
            if e.is_foreign_key_violation:
                raise ConflictError(
                    errors.get_error_message(errors.CATEGORY_IN_USE),
                    code=errors.CATEGORY_IN_USE,
                ) from e
            raise

        logger.info("Category deleted user_hash=%s", hash_uid(user_id))

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _get_owned(session: Session, user_id: str, category_id: str) -> Category:
        category = session.scalar(
            select(Category).where(
                Category.id == category_id,
                Category.user_id == user_id,
            )
        )
        if category is None:
            raise NotFoundError("Category not found.")
        return category

    @staticmethod
    def _check_parent(parent: Category) -> None:
        if not parent.is_top_level:
            raise ValidationError("Subcategories cannot have subcategories.")

    def _check_move(
        self,
        session: Session,
        user_id: str,
        category: Category,
        parent_id: str | None,
    ) -> None:
        if parent_id is None:
            in_use = session.scalar(
                select(func.count()).select_from(Goal).where(Goal.category_id == category.id)
            )
            if in_use:
                raise ValidationError(
                    "Goals must stay under a subcategory. Move or delete goals first."
                )
            return

        if parent_id == category.id:
            raise ValidationError("A category cannot be its own parent.")

        parent = self._get_owned(session, user_id, parent_id)
        self._check_parent(parent)

        has_children = session.scalar(
            select(func.count()).select_from(Category).where(Category.parent_id == category.id)
        )
        if has_children:
            raise ValidationError(
                "A category with subcategories cannot be moved under another category."
            )

    @staticmethod
    def _duplicate_name() -> ConflictError:
        return ConflictError(
            errors.get_error_message(errors.DUPLICATE_CATEGORY),
            code=errors.DUPLICATE_CATEGORY,
        )


__all__ = ["CategoryNode", "CategoryService", "normalize_name"]
