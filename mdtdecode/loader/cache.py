"""Process-wide memo of package definitions, one load per key."""

import asyncio
import logging
import os
from collections.abc import Awaitable, Callable

from .definitions import PackageDefinition
from .options import CodecOptions
from .package import load

logger = logging.getLogger(__name__)

CacheKey = tuple[str, tuple[str, ...], CodecOptions]
Loader = Callable[..., Awaitable[PackageDefinition]]


class SchemaCache:
    """Shares one load per (path, include dirs, options) between all callers.

    Every caller awaits the same task, including callers that arrive while
    the load is still running. A failed load stays cached and is re-raised
    to every later caller.

    Loads run as tasks on the event loop of the caller that started them, so
    use one cache per event loop. A finished entry can still be read from a
    later loop, but a load that is still running cannot be awaited from
    another loop.
    """

    def __init__(self, loader: Loader = load) -> None:
        self._loader = loader
        self._entries: dict[CacheKey, asyncio.Task[PackageDefinition]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, filename: str) -> bool:
        path = os.path.normpath(filename)
        return any(key[0] == path for key in self._entries)

    async def get(self, filename: str, options: CodecOptions | None = None,
                  include_dirs: tuple[str, ...] | list[str] = ()) -> PackageDefinition:
        options = options or CodecOptions()
        key = (os.path.normpath(filename), tuple(include_dirs), options)

        task = self._entries.get(key)
        if task is None:
            logger.debug("loading %s", key[0])
            task = asyncio.ensure_future(self._loader(key[0], options, key[1]))
            task.add_done_callback(_log_failure)
            self._entries[key] = task

        # A cancelled waiter must not cancel the shared load
        return await asyncio.shield(task)


def _log_failure(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    err = task.exception()
    if err is not None:
        logger.error("schema load failed: %s", err)
