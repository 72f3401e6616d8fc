"""Step storage backends and the process-wide repository factory."""

from __future__ import annotations

from typing import Optional

from ..config import LabflowConfig, load_config
from .inmemory import InMemoryStepRepository
from .models import WorkflowStep
from .repository import StepRepository
from .sqlite import SQLiteStepRepository

try:  # pragma: no cover - optional dependency
    from .postgres import PostgresStepRepository
except ImportError:  # pragma: no cover - optional dependency
    PostgresStepRepository = None  # type: ignore

_repository_instance: StepRepository | None = None


def sqlite_path(database_url: str) -> str:
    """Map ``sqlite:///steps.db`` to a relative and ``sqlite:////abs/steps.db`` to an absolute path."""
    for prefix in ("sqlite:///", "sqlite://"):
        if database_url.startswith(prefix):
            return database_url[len(prefix) :] or ":memory:"
    raise ValueError(f"Not a sqlite URL: {database_url}")


def create_repository(database_url: Optional[str]) -> StepRepository:
    """Build a new repository for ``database_url``; ``None`` keeps steps in memory."""
    if not database_url:
        return InMemoryStepRepository()
    scheme = database_url.split("://", 1)[0]
    if scheme == "sqlite":
        return SQLiteStepRepository(sqlite_path(database_url))
    if scheme in ("postgres", "postgresql"):
        if PostgresStepRepository is None:
            raise RuntimeError("Postgres support not available, install asyncpg")
        return PostgresStepRepository(database_url)
    raise ValueError(f"Unsupported database backend: {scheme}")


def get_repository(
    database_url: Optional[str] = None, config: Optional[LabflowConfig] = None
) -> StepRepository:
    """Return the shared step repository, creating it on first use.

    An explicit ``database_url`` or ``config`` always builds and installs a
    new repository. Otherwise the cached one is reused, or one is created from
    :func:`~labflow.config.load_config`, which already applies the
    ``LABFLOW_DATABASE_URL``/``DATABASE_URL`` overrides.
    """

    global _repository_instance
    if _repository_instance is not None and database_url is None and config is None:
        return _repository_instance

    if database_url is None:
        database_url = (config or load_config()).database_url
    _repository_instance = create_repository(database_url)
    return _repository_instance


__all__ = [
    "WorkflowStep",
    "StepRepository",
    "SQLiteStepRepository",
    "PostgresStepRepository",
    "InMemoryStepRepository",
    "create_repository",
    "get_repository",
    "sqlite_path",
]
