"""Channel store interface — durable or no-op persistence behind one API.

Learn: Persistence is optional. Instead of checking a "use DB" flag in
every handler, the broker is handed one ChannelStore at construction:
- SqlChannelStore — adaptive per-channel tables (storage/sql.py)
- NullChannelStore — persist() does nothing, search() is unavailable

Both are selected by storage.create_store() from the settings.
"""

from abc import ABC, abstractmethod
from typing import Any, Iterable, Optional, Union

from notifyrelay.errors import StorageUnavailableError
from notifyrelay.schemas import Filter, Payload

FilterLike = Union[Filter, dict[str, Any]]


class ChannelStore(ABC):
    """Abstract base for channel persistence backends."""

    @property
    @abstractmethod
    def enabled(self) -> bool:
        """Whether events are actually stored."""

    @abstractmethod
    async def persist(self, payload: Payload) -> Optional[int]:
        """Store one event. Returns the new row id when there is one."""

    @abstractmethod
    async def search(
        self,
        channel: str,
        filters: Iterable[FilterLike] = (),
        limit: int = 100,
    ) -> list[dict[str, Any]]:
        """Newest-first rows of ``channel`` matching every filter."""

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        pass


class NullChannelStore(ChannelStore):
    """Dispatch-only mode: nothing is written, nothing can be searched."""

    @property
    def enabled(self) -> bool:
        return False

    async def persist(self, payload: Payload) -> Optional[int]:
        return None

    async def search(
        self,
        channel: str,
        filters: Iterable[FilterLike] = (),
        limit: int = 100,
    ) -> list[dict[str, Any]]:
        raise StorageUnavailableError("Database not available")
