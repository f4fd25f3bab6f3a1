from __future__ import annotations

import abc
import logging

from backup_core.acquire.context import DownloadContext
from backup_core.result import DownloadResult

logger = logging.getLogger(__name__)


class AcquisitionStrategy(abc.ABC):
    """One way of turning a URL into local files.

    Subclasses claim URLs through ``can_handle`` and compete on
    ``priority()``. ``fetch`` reports every per-item problem as a failed
    ``DownloadResult``; it raises only for programming errors.
    """

    name: str = "base"
    #: Needs the authenticated browser page in ``DownloadContext.session``.
    requires_session: bool = False
    #: Expands one container URL into many leaf artifacts.
    enumerates: bool = False

    @abc.abstractmethod
    def can_handle(self, url: str) -> bool:
        ...

    def priority(self) -> int:
        return 0

    @abc.abstractmethod
    async def fetch(self, url: str, ctx: DownloadContext) -> list[DownloadResult]:
        ...

    def __repr__(self) -> str:
        return f"<{type(self).__name__} name={self.name!r} priority={self.priority()}>"
