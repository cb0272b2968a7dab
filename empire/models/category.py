"""
Category Model for Empire.

Categories form a two-level tree per user: top-level categories may have
children, children cannot have children. Goals always reference a child
category.

The store backs the tree with foreign keys (parent deletion is restricted)
and uniqueness of names under the same parent. Nesting depth has no
backing constraint and is enforced by CategoryService.
"""

from sqlalchemy import Column, DateTime, ForeignKey, Index, String
from sqlalchemy.orm import relationship

from empire.models.base import Base, new_id, utcnow


class Category(Base):
    """
    Category owned by a single user.

    Attributes:
        id: Primary key (UUID string)
        user_id: Owning user id (from the auth provider)
        name: Display name, unique under the same parent
        parent_id: Parent category id, None for top-level categories
        created_at: Creation timestamp
    """

    __tablename__ = "categories"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    parent_id = Column(
        String(36),
        ForeignKey("categories.id", ondelete="RESTRICT"),
        nullable=True,
        index=True,
    )
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    children = relationship(
        "Category",
        back_populates="parent",
        order_by="Category.name",
        passive_deletes="all",
    )
    parent = relationship("Category", back_populates="children", remote_side=[id])

    __table_args__ = (
        Index(
            "uq_categories_child_name",
            "user_id",
            "parent_id",
            "name",
            unique=True,
        ),
        # NULL parents never collide in a composite unique index
        Index(
            "uq_categories_top_level_name",
            "user_id",
            "name",
            unique=True,
            postgresql_where=parent_id.is_(None),
            sqlite_where=parent_id.is_(None),
        ),
    )

    @property
    def is_top_level(self) -> bool:
        return self.parent_id is None

    def __repr__(self) -> str:
        return f"<Category(id={self.id}, name={self.name!r}, parent_id={self.parent_id})>"


__all__ = ["Category"]
