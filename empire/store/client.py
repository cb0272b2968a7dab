"""
Store client for Empire.

Wraps the SQLAlchemy engine and session factory behind an explicitly
constructed client. There is no module-level singleton: the API builds
one client at startup and hands it to services, tests build their own
over an in-memory database.

Roles:
- ANON: public context used for per-user work. Every service query is
  scoped by the authenticated user id.
- SERVICE: privileged context (service-role key). Required for schema
  management and refused without a key.

Error translation:
- IntegrityError -> ConstraintViolation carrying the Postgres SQLSTATE
  (code first, message second)
- OperationalError -> StoreUnavailableError
- anything else from SQLAlchemy -> StoreError

Reads retry on StoreUnavailableError with capped exponential backoff.
Mutations never retry.

Usage:
    store = StoreClient(settings.anon_store_config())

    with store.session() as session:
        session.add(mission)

    goals = store.read(lambda s: s.scalars(select(Goal)).all())
"""

from __future__ import annotations

import logging
import re
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, TypeVar

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

import empire.models  # noqa: F401  (registers every table on Base.metadata)
from empire.lib.exceptions import (
    ConfigurationError,
    ConstraintViolation,
    StoreError,
    StoreUnavailableError,
)
from empire.models.base import Base

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Postgres SQLSTATE codes for integrity violations
UNIQUE_VIOLATION = "23505"
FOREIGN_KEY_VIOLATION = "23503"
CHECK_VIOLATION = "23514"
NOT_NULL_VIOLATION = "23502"
INTEGRITY_VIOLATION = "23000"

# Fallback when the driver does not expose a SQLSTATE (e.g. SQLite)
_MESSAGE_PATTERNS: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"unique constraint|duplicate key", re.IGNORECASE), UNIQUE_VIOLATION),
    (re.compile(r"foreign key", re.IGNORECASE), FOREIGN_KEY_VIOLATION),
    (re.compile(r"check constraint", re.IGNORECASE), CHECK_VIOLATION),
    (re.compile(r"not[ -]null", re.IGNORECASE), NOT_NULL_VIOLATION),
)

# Missing tables are a deployment error, not an outage
_MISSING_SCHEMA = re.compile(r"no such table|relation \S+ does not exist", re.IGNORECASE)

READ_ATTEMPTS = 3
BACKOFF_BASE_SECONDS = 0.2
BACKOFF_CAP_SECONDS = 2.0


class StoreRole(StrEnum):
    """Store access context."""

    ANON = "anon"
    SERVICE = "service"


@dataclass(frozen=True)
class StoreConfig:
    """
    Connection settings for one store context.

    Attributes:
        url: SQLAlchemy database URL
        key: Access key for the context (anon key or service-role key)
        role: ANON or SERVICE
        echo: Log every SQL statement
    """

    url: str
    key: str = ""
    role: StoreRole = StoreRole.ANON
    echo: bool = False

    def __post_init__(self) -> None:
        if not self.url:
            raise ConfigurationError("Store URL is required.")
        if self.role is StoreRole.SERVICE and not self.key:
            raise ConfigurationError("The service store context requires a service-role key.")

    @property
    def is_sqlite(self) -> bool:
        return self.url.startswith("sqlite")

    @property
    def is_in_memory(self) -> bool:
        return self.is_sqlite and (":memory:" in self.url or self.url.rstrip("/") == "sqlite:")


# =============================================================================
# Error translation
# =============================================================================


def _driver_sqlstate(orig: Any) -> str | None:
    # psycopg 3 exposes .sqlstate, psycopg2 exposes .pgcode
    for attr in ("sqlstate", "pgcode"):
        value = getattr(orig, attr, None)
        if isinstance(value, str) and value:
            return value
    return None


def _driver_constraint(orig: Any) -> str | None:
    diag = getattr(orig, "diag", None)
    return getattr(diag, "constraint_name", None) if diag is not None else None


def translate_integrity_error(exc: IntegrityError) -> ConstraintViolation:
    """
    Translate a driver integrity error into a ConstraintViolation.

    Args:
        exc: The IntegrityError raised by SQLAlchemy

    Returns:
        ConstraintViolation with a Postgres SQLSTATE code
    """
    orig = exc.orig if exc.orig is not None else exc
    message = str(orig)

    sqlstate = _driver_sqlstate(orig)
    if sqlstate is None:
        sqlstate = INTEGRITY_VIOLATION
        for pattern, code in _MESSAGE_PATTERNS:
            if pattern.search(message):
                sqlstate = code
                break

    constraint = _driver_constraint(orig)
    if constraint is None and ":" in message:
        # SQLite: "UNIQUE constraint failed: missions.user_id, missions.mission_date"
        constraint = message.split(":", 1)[1].strip() or None

    return ConstraintViolation(message, sqlstate=sqlstate, constraint=constraint)


def backoff_delay(
    attempt: int,
    base: float = BACKOFF_BASE_SECONDS,
    cap: float = BACKOFF_CAP_SECONDS,
) -> float:
    """Delay before retry number ``attempt`` (0-based): base * 2^attempt, capped."""
    return min(cap, base * (2 ** attempt))


# =============================================================================
# Client
# =============================================================================


def _build_engine(config: StoreConfig) -> Engine:
    if not config.is_sqlite:
        return create_engine(config.url, pool_pre_ping=True, echo=config.echo)

    kwargs: dict[str, Any] = {
        "connect_args": {"check_same_thread": False},
        "echo": config.echo,
    }
    if config.is_in_memory:
        # One shared connection, otherwise every checkout sees an empty database
        kwargs["poolclass"] = StaticPool
    engine = create_engine(config.url, **kwargs)

    @event.listens_for(engine, "connect")
    def _enable_foreign_keys(dbapi_connection: Any, _record: Any) -> None:
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    return engine


class StoreClient:
    """
    Explicitly constructed client for the remote store.

    Args:
        config: Connection settings and role
        engine: Pre-built engine (tests); built from config when omitted
        sleep: Sleep function used between read retries
        read_attempts: Total attempts for read operations
    """

    def __init__(
        self,
        config: StoreConfig,
        *,
        engine: Engine | None = None,
        sleep: Callable[[float], None] = time.sleep,
        read_attempts: int = READ_ATTEMPTS,
    ) -> None:
        self.config = config
        self.engine = engine if engine is not None else _build_engine(config)
        self._session_factory = sessionmaker(bind=self.engine, expire_on_commit=False)
        self._sleep = sleep
        self._read_attempts = max(1, read_attempts)

    @property
    def role(self) -> StoreRole:
        return self.config.role

    @property
    def is_privileged(self) -> bool:
        return self.config.role is StoreRole.SERVICE

    @contextmanager
    def session(self) -> Iterator[Session]:
        """
        Transactional session: commits on success, rolls back on error.

        Raises:
            ConstraintViolation: A constraint rejected the write
            StoreUnavailableError: The store could not be reached
            StoreError: Any other store failure, including a missing schema
        """
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except IntegrityError as e:
            session.rollback()
            violation = translate_integrity_error(e)
            logger.info(
                "Store constraint violation sqlstate=%s constraint=%s",
                violation.sqlstate,
                violation.constraint,
            )
            raise violation from e
        except OperationalError as e:
            session.rollback()
            if _MISSING_SCHEMA.search(str(e.orig or e)):
                logger.error("Store schema missing: %s", e.orig or e)
                raise StoreError("The store schema has not been created.") from e
            logger.warning("Store unavailable: %s", type(e.orig or e).__name__)
            raise StoreUnavailableError("The store could not be reached.") from e
        except SQLAlchemyError as e:
            session.rollback()
            logger.error("Store error: %s", type(e).__name__)
            raise StoreError("The store rejected the request.") from e
        except BaseException:
            session.rollback()
            raise
        finally:
            session.close()

    def read(self, fn: Callable[[Session], T]) -> T:
        """
        Run a read-only callable in a session, retrying when the store is unavailable.

        Args:
            fn: Callable receiving the session and returning the result

        Returns:
            Whatever ``fn`` returns
        """
        for attempt in range(self._read_attempts):
            try:
                with self.session() as session:
                    return fn(session)
            except StoreUnavailableError:
                if attempt + 1 >= self._read_attempts:
                    raise
                delay = backoff_delay(attempt)
                logger.info(
                    "Store read failed, retrying in %.2fs (attempt %d/%d)",
                    delay,
                    attempt + 1,
                    self._read_attempts,
                )
                self._sleep(delay)
        raise StoreUnavailableError("The store could not be reached.")

    def create_schema(self) -> None:
        """
        Create every table and index.

        Raises:
            ConfigurationError: If the client is not privileged
        """
        if not self.is_privileged:
            raise ConfigurationError("Schema creation requires the service store context.")
        Base.metadata.create_all(self.engine)
        logger.info("Store schema created (%d tables)", len(Base.metadata.tables))

    def ping(self) -> None:
        """
        Round-trip a trivial query.

        Raises:
            StoreUnavailableError: If the store does not answer
        """
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError as e:
            raise StoreUnavailableError("The store did not answer a ping.") from e

    def dispose(self) -> None:
        self.engine.dispose()


__all__ = [
    "CHECK_VIOLATION",
    "FOREIGN_KEY_VIOLATION",
    "NOT_NULL_VIOLATION",
    "UNIQUE_VIOLATION",
    "StoreClient",
    "StoreConfig",
    "StoreRole",
    "backoff_delay",
    "translate_integrity_error",
]
