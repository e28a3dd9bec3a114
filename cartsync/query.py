"""Refreshable reads."""
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar

from cartsync.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class RefreshableQuery(Generic[T]):
    """
    A read that remembers its own arguments.

    ``refresh`` re-runs the same read that produced ``data`` instead of
    building a new one, so every consumer of this handle sees the same
    latest snapshot.
    """

    def __init__(self, fetch: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any):
        self._fetch = fetch
        self.args = args
        self.kwargs = kwargs
        self.data: Optional[T] = None
        self.error: Optional[BaseException] = None
        self.executions = 0

    @property
    def has_result(self) -> bool:
        return self.executions > 0 and self.error is None

    async def execute(self) -> Optional[T]:
        """Run the read, keeping either its data or its error."""
        self.executions += 1
        try:
            data = await self._fetch(*self.args, **self.kwargs)
        except Exception as e:
            self.error = e
            raise
        self.data = data
        self.error = None
        return data

    async def refresh(self) -> Optional[T]:
        logger.debug(f"Re-running {getattr(self._fetch, '__name__', 'query')} (run #{self.executions + 1})")
        return await self.execute()
