"""Process-wide order status catalog with single-flight loading."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Mapping
from types import MappingProxyType

from sqlalchemy import select

from src.core.database import get_session_factory
from src.models.order import REQUIRED_ORDER_STATUSES, OrderStatus
from src.services.errors import StatusCatalogNotReadyError

logger = logging.getLogger(__name__)

StatusLoader = Callable[[], Awaitable[Mapping[str, int]]]


async def load_order_statuses() -> dict[str, int]:
    """Read the name -> id mapping from the order_statuses table."""
    async with get_session_factory()() as session:
        rows = await session.execute(select(OrderStatus.name, OrderStatus.order_status_id))
        return {name: status_id for name, status_id in rows.all()}


class StatusCatalog:
    """Lazily loaded, immutable name -> id snapshot of order statuses.

    Concurrent callers that arrive while a load is in flight await the same
    task instead of issuing another query. A failed load leaves the catalog
    empty so the next caller retries.
    """

    def __init__(self, loader: StatusLoader | None = None) -> None:
        """Initialize the catalog.

        Args:
            loader: Coroutine function returning the raw mapping. Defaults to
                reading the order_statuses table.
        """
        self._loader = loader or load_order_statuses
        self._snapshot: Mapping[str, int] | None = None
        self._inflight: asyncio.Task[Mapping[str, int]] | None = None

    @property
    def is_loaded(self) -> bool:
        return self._snapshot is not None

    async def ensure_loaded(self) -> Mapping[str, int]:
        """Return the status map, loading it on first use.

        Returns:
            Mapping[str, int]: Read-only mapping of status name to id.

        Raises:
            StatusCatalogNotReadyError: If the store is unreachable or a
                required status is missing.
        """
        if self._snapshot is not None:
            return self._snapshot

        task = self._inflight
        if task is None:
            task = asyncio.ensure_future(self._load())
            self._inflight = task

        try:
            # shield: a cancelled caller must not cancel the load other callers await
            return await asyncio.shield(task)
        except StatusCatalogNotReadyError:
            raise
        except Exception as e:
            raise StatusCatalogNotReadyError(f"Order status catalog unavailable: {e}") from e
        finally:
            if self._inflight is task and task.done():
                self._inflight = None

    async def _load(self) -> Mapping[str, int]:
        logger.info("Loading order statuses into cache")
        try:
            raw = await self._loader()
        except Exception:
            logger.exception("Failed to load order statuses")
            raise

        missing = [name for name in REQUIRED_ORDER_STATUSES if name not in raw]
        if missing:
            logger.error("Order status catalog is missing required statuses: %s", ", ".join(missing))
            raise StatusCatalogNotReadyError(f"Missing order statuses: {', '.join(missing)}")

        snapshot = MappingProxyType(dict(raw))
        self._snapshot = snapshot
        logger.info("Order statuses loaded: %s", dict(snapshot))
        return snapshot

    def name_for(self, status_id: int) -> str | None:
        """Reverse lookup on a loaded catalog."""
        if self._snapshot is None:
            return None
        for name, value in self._snapshot.items():
            if value == status_id:
                return name
        return None

    def reset(self) -> None:
        """Forget the snapshot so the next call reloads."""
        self._snapshot = None
        self._inflight = None


# Global singleton instance
_status_catalog: StatusCatalog | None = None


def get_status_catalog() -> StatusCatalog:
    """Get or create the global status catalog."""
    global _status_catalog
    if _status_catalog is None:
        _status_catalog = StatusCatalog()
    return _status_catalog


def reset_status_catalog() -> None:
    """Drop the global catalog (used when the database changes, e.g. in tests)."""
    global _status_catalog
    _status_catalog = None
