"""
Process-wide cache of heavyweight content encoders.

The first caller for a kind starts the load; every concurrent caller for the
same kind awaits that one in-flight task. A loaded encoder is kept for the
life of the pool. A failed load is not cached: the in-flight slot is cleared
so the next call starts a fresh attempt, while the callers that were already
waiting all receive the one failure.
"""

import asyncio
import inspect
import logging
from typing import Any, Callable
from mediavault.platform.ports.encoders import EncoderKind

log = logging.getLogger("embeddings.pool")

Loader = Callable[[], Any]


class EncoderPool:
    def __init__(self, loaders: dict[EncoderKind, Loader]):
        self._loaders = dict(loaders)
        self._values: dict[EncoderKind, Any] = {}
        self._inflight: dict[EncoderKind, asyncio.Task] = {}

    def is_loaded(self, kind: EncoderKind) -> bool:
        return kind in self._values

    async def get(self, kind: EncoderKind) -> Any:
        if kind in self._values:
            return self._values[kind]
        if kind not in self._loaders:
            raise KeyError(f"no loader registered for encoder kind {kind.value!r}")

        # no await between lookup and insert, so one task per kind at a time
        task = self._inflight.get(kind)
        if task is None:
            task = asyncio.get_running_loop().create_task(self._load(kind))
            task.add_done_callback(_consume_exception)
            self._inflight[kind] = task
        # a waiter timing out or being cancelled must not cancel the shared load
        return await asyncio.shield(task)

    async def preload(self, *kinds: EncoderKind) -> None:
        await asyncio.gather(*(self.get(k) for k in (kinds or tuple(self._loaders))))

    async def _load(self, kind: EncoderKind) -> Any:
        loader = self._loaders[kind]
        log.info(f"Initializing {kind.value} encoder")
        try:
            if inspect.iscoroutinefunction(loader):
                value = await loader()
            else:
                value = await asyncio.to_thread(loader)
        except Exception:
            log.warning(f"Initializing {kind.value} encoder failed; next call will retry", exc_info=True)
            raise
        finally:
            self._inflight.pop(kind, None)
        self._values[kind] = value
        log.info(f"{kind.value} encoder ready")
        return value


def _consume_exception(task: asyncio.Task) -> None:
    # every waiter may have gone away; mark the failure as retrieved
    if not task.cancelled():
        task.exception()
