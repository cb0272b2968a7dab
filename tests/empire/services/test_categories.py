"""
Tests for CategoryService.

Covers:
- Tree listing (top-level and children sorted by name)
- Depth rule: subcategories cannot have subcategories
- Name uniqueness under the same parent
- Moves: self-parenting, moving a parent, lifting a goal category
- Deletion blocked by children or goals
- Per-user scoping
"""

from __future__ import annotations

import pytest

from empire.lib import errors
from empire.lib.exceptions import ConflictError, NotFoundError, ValidationError
from empire.services.categories import CategoryService, normalize_name
from empire.services.goals import GoalInput, GoalService
from empire.store.client import StoreClient

USER_ID = "0b7c1a52-5f0e-4a43-9d6e-3f1c2a7b8e01"
OTHER_USER_ID = "7d2e9c41-0a6b-4f58-8c3d-1e2f3a4b5c6d"


@pytest.fixture()
def service(store: StoreClient) -> CategoryService:
    return CategoryService(store)


class TestNormalizeName:
    def test_trims(self) -> None:
        assert normalize_name("  Health ") == "Health"

    @pytest.mark.parametrize("name", ["", "   ", None])
    def test_empty_rejected(self, name: str | None) -> None:
        with pytest.raises(ValidationError):
            normalize_name(name)

    def test_too_long_rejected(self) -> None:
        with pytest.raises(ValidationError):
            normalize_name("x" * 101)


class TestCreateAndList:
    def test_tree_sorted_by_name(self, service: CategoryService) -> None:
        work = service.create(USER_ID, "Work")
        health = service.create(USER_ID, "Health")
        service.create(USER_ID, "Running", health.id)
        service.create(USER_ID, "Lifting", health.id)

        tree = service.list_tree(USER_ID)

        assert [n.name for n in tree] == ["Health", "Work"]
        assert [c.name for c in tree[0].children] == ["Lifting", "Running"]
        assert tree[1].id == work.id
        assert tree[1].children == []

    def test_subcategory_cannot_have_children(self, service: CategoryService) -> None:
        health = service.create(USER_ID, "Health")
        fitness = service.create(USER_ID, "Fitness", health.id)

        with pytest.raises(ValidationError, match="Subcategories cannot have subcategories"):
            service.create(USER_ID, "Cardio", fitness.id)

    def test_duplicate_top_level_name(self, service: CategoryService) -> None:
        service.create(USER_ID, "Health")
        with pytest.raises(ConflictError) as exc_info:
            service.create(USER_ID, "Health")
        assert exc_info.value.code == errors.DUPLICATE_CATEGORY

    def test_duplicate_child_name(self, service: CategoryService) -> None:
        health = service.create(USER_ID, "Health")
        service.create(USER_ID, "Fitness", health.id)
        with pytest.raises(ConflictError) as exc_info:
            service.create(USER_ID, "Fitness", health.id)
        assert exc_info.value.code == errors.DUPLICATE_CATEGORY

    def test_same_name_under_different_parents(self, service: CategoryService) -> None:
        health = service.create(USER_ID, "Health")
        work = service.create(USER_ID, "Work")
        service.create(USER_ID, "Planning", health.id)
        service.create(USER_ID, "Planning", work.id)

    def test_same_name_for_different_users(self, service: CategoryService) -> None:
        service.create(USER_ID, "Health")
        service.create(OTHER_USER_ID, "Health")
        assert [n.name for n in service.list_tree(OTHER_USER_ID)] == ["Health"]

    def test_unknown_parent(self, service: CategoryService) -> None:
        with pytest.raises(NotFoundError):
            service.create(USER_ID, "Fitness", "no-such-id")

    def test_parent_of_another_user(self, service: CategoryService) -> None:
        foreign = service.create(OTHER_USER_ID, "Health")
        with pytest.raises(NotFoundError):
            service.create(USER_ID, "Fitness", foreign.id)


class TestUpdate:
    def test_rename(self, service: CategoryService) -> None:
        health = service.create(USER_ID, "Health")
        updated = service.update(USER_ID, health.id, name=" Wellbeing ")
        assert updated.name == "Wellbeing"

    def test_cannot_be_own_parent(self, service: CategoryService) -> None:
        health = service.create(USER_ID, "Health")
        with pytest.raises(ValidationError, match="own parent"):
            service.update(USER_ID, health.id, parent_id=health.id)

    def test_move_child_to_another_parent(self, service: CategoryService) -> None:
        health = service.create(USER_ID, "Health")
        work = service.create(USER_ID, "Work")
        planning = service.create(USER_ID, "Planning", health.id)

        moved = service.update(USER_ID, planning.id, parent_id=work.id)

        assert moved.parent_id == work.id

    def test_parent_with_children_cannot_move(self, service: CategoryService) -> None:
        health = service.create(USER_ID, "Health")
        work = service.create(USER_ID, "Work")
        service.create(USER_ID, "Fitness", health.id)

        with pytest.raises(ValidationError):
            service.update(USER_ID, health.id, parent_id=work.id)

    def test_cannot_move_under_subcategory(self, service: CategoryService) -> None:
        health = service.create(USER_ID, "Health")
        fitness = service.create(USER_ID, "Fitness", health.id)
        work = service.create(USER_ID, "Work")

        with pytest.raises(ValidationError):
            service.update(USER_ID, work.id, parent_id=fitness.id)

    def test_lift_child_to_top_level(self, service: CategoryService) -> None:
        health = service.create(USER_ID, "Health")
        fitness = service.create(USER_ID, "Fitness", health.id)

        lifted = service.update(USER_ID, fitness.id, parent_id=None)

        assert lifted.parent_id is None

    def test_goal_category_cannot_be_lifted(
        self, service: CategoryService, store: StoreClient
    ) -> None:
        health = service.create(USER_ID, "Health")
        fitness = service.create(USER_ID, "Fitness", health.id)
        GoalService(store).create_goal(USER_ID, GoalInput(title="Run 10k", category_id=fitness.id))

        with pytest.raises(ValidationError, match="Goals must stay under a subcategory"):
            service.update(USER_ID, fitness.id, parent_id=None)

    def test_unset_parent_keeps_parent(self, service: CategoryService) -> None:
        health = service.create(USER_ID, "Health")
        fitness = service.create(USER_ID, "Fitness", health.id)

        renamed = service.update(USER_ID, fitness.id, name="Sport")

        assert renamed.parent_id == health.id

    def test_rename_to_duplicate(self, service: CategoryService) -> None:
        service.create(USER_ID, "Health")
        work = service.create(USER_ID, "Work")
        with pytest.raises(ConflictError):
            service.update(USER_ID, work.id, name="Health")


class TestDelete:
    def test_delete_leaf(self, service: CategoryService) -> None:
        health = service.create(USER_ID, "Health")
        service.delete(USER_ID, health.id)
        assert service.list_tree(USER_ID) == []

    def test_blocked_by_children(self, service: CategoryService) -> None:
        health = service.create(USER_ID, "Health")
        service.create(USER_ID, "Fitness", health.id)

        with pytest.raises(ConflictError) as exc_info:
            service.delete(USER_ID, health.id)

        assert exc_info.value.code == errors.CATEGORY_HAS_CHILDREN
        assert len(service.list_tree(USER_ID)[0].children) == 1

    def test_blocked_by_goals(self, service: CategoryService, store: StoreClient) -> None:
        health = service.create(USER_ID, "Health")
        fitness = service.create(USER_ID, "Fitness", health.id)
        GoalService(store).create_goal(USER_ID, GoalInput(title="Run 10k", category_id=fitness.id))

        with pytest.raises(ConflictError) as exc_info:
            service.delete(USER_ID, fitness.id)

        assert exc_info.value.code == errors.CATEGORY_IN_USE

    def test_other_users_category(self, service: CategoryService) -> None:
        foreign = service.create(OTHER_USER_ID, "Health")
        with pytest.raises(NotFoundError):
            service.delete(USER_ID, foreign.id)
