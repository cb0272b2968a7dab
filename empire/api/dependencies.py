"""
FastAPI Dependencies for authentication and service construction.

Everything request-scoped is built from ``app.state``, which ``create_app``
fills with the settings, store client, query cache, clock and token
verifier. Services are cheap to construct and are built per request.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from empire.api.auth import AuthenticatedUser, TokenVerifier
from empire.config import Settings
from empire.lib.exceptions import AuthenticationError
from empire.services.categories import CategoryService
from empire.services.goals import GoalService
from empire.services.missions import MissionService
from empire.services.plans import PlanService
from empire.services.progress import ProgressService
from empire.services.query_cache import QueryCache
from empire.store.client import StoreClient

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_store(request: Request) -> StoreClient:
    return request.app.state.store


def get_cache(request: Request) -> QueryCache:
    return request.app.state.cache


def get_clock(request: Request) -> Callable[[], datetime]:
    return request.app.state.clock


def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> AuthenticatedUser:
    """
    Dependency to get the authenticated user.

    Raises AuthenticationError (401) if the token is missing or invalid.
    """
    if credentials is None or not credentials.credentials:
        raise AuthenticationError("Authentication required.")
    verifier: TokenVerifier = request.app.state.token_verifier
    return verifier.verify(credentials.credentials)


def get_current_user_id(user: AuthenticatedUser = Depends(get_current_user)) -> str:
    return user.user_id


# =============================================================================
# Services
# =============================================================================


def get_category_service(store: StoreClient = Depends(get_store)) -> CategoryService:
    return CategoryService(store)


def get_goal_service(
    store: StoreClient = Depends(get_store),
    cache: QueryCache = Depends(get_cache),
) -> GoalService:
    return GoalService(store, cache=cache)


def get_plan_service(
    store: StoreClient = Depends(get_store),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> PlanService:
    return PlanService(store, clock=clock)


def get_mission_service(
    store: StoreClient = Depends(get_store),
    cache: QueryCache = Depends(get_cache),
    clock: Callable[[], datetime] = Depends(get_clock),
    settings: Settings = Depends(get_settings),
) -> MissionService:
    return MissionService(
        store,
        cache=cache,
        clock=clock,
        highlight_points=settings.HIGHLIGHT_POINTS,
    )


def get_progress_service(
    store: StoreClient = Depends(get_store),
    cache: QueryCache = Depends(get_cache),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> ProgressService:
    return ProgressService(store, cache=cache, clock=clock)


__all__ = [
    "bearer_scheme",
    "get_cache",
    "get_category_service",
    "get_clock",
    "get_current_user",
    "get_current_user_id",
    "get_goal_service",
    "get_mission_service",
    "get_plan_service",
    "get_progress_service",
    "get_settings",
    "get_store",
]
