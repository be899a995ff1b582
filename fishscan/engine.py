"""
Inference engine boundary.

The pipeline only needs "tensor in, flat output + shape out". Loading a model
is slow, so engines are created lazily by an `EngineContext` that guarantees
a single load no matter how many detections are requested concurrently.
"""

from __future__ import annotations

import asyncio
import enum
import inspect
import logging
from typing import Any, Awaitable, Callable, Optional, Protocol, Union

import numpy as np

from .errors import EngineNotReadyError
from .types import EngineOutput

logger = logging.getLogger(__name__)


class InferenceEngine(Protocol):
    def run(self, tensor: np.ndarray) -> Union[EngineOutput, Awaitable[EngineOutput]]:
        ...


EngineLoader = Callable[[], Union[InferenceEngine, Awaitable[InferenceEngine]]]


class EngineState(enum.Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    FAILED = "failed"


class EngineContext:
    """
    Holds the process-wide engine handle and its lifecycle state.

    The first `acquire()` starts the loader; callers arriving while it runs
    await the same task. A failed load is remembered and re-raised as
    EngineNotReadyError until `reset()` is called.
    """

    def __init__(self, loader: EngineLoader):
        self._loader = loader
        self._state = EngineState.UNINITIALIZED
        self._engine: Optional[InferenceEngine] = None
        self._pending: Optional["asyncio.Future[InferenceEngine]"] = None
        self._error: Optional[BaseException] = None

    @classmethod
    def from_engine(cls, engine: InferenceEngine) -> "EngineContext":
        ctx = cls(lambda: engine)
        ctx._engine = engine
        ctx._state = EngineState.READY
        return ctx

    @property
    def state(self) -> EngineState:
        return self._state

    @property
    def error(self) -> Optional[BaseException]:
        return self._error

    @property
    def engine(self) -> Optional[InferenceEngine]:
        return self._engine

    async def acquire(self) -> InferenceEngine:
        if self._state is EngineState.READY and self._engine is not None:
            return self._engine
        if self._state is EngineState.FAILED:
            raise EngineNotReadyError(f"Inference engine failed to initialize: {self._error}") from self._error

        if self._pending is None or self._pending.cancelled():
            # No await between the check and the assignment, so only one
            # coroutine can get here per initialization.
            self._state = EngineState.INITIALIZING
            self._pending = asyncio.ensure_future(self._load())

        # A waiter hitting its own timeout must not cancel the shared load.
        return await asyncio.shield(self._pending)

    def reset(self) -> None:
        """Forget a failed initialization so the next acquire() tries again."""
        if self._state is EngineState.FAILED:
            self._state = EngineState.UNINITIALIZED
            self._error = None
            self._pending = None

    async def _load(self) -> InferenceEngine:
        try:
            result: Any = self._loader()
            if inspect.isawaitable(result):
                result = await result
            if result is None:
                raise RuntimeError("engine loader returned None")
        except asyncio.CancelledError:
            logger.warning("Detection model load was cancelled")
            self._state = EngineState.UNINITIALIZED
            self._pending = None
            raise
        except Exception as exc:
            logger.error("Error loading detection model: %s", exc)
            self._state = EngineState.FAILED
            self._error = exc
            raise EngineNotReadyError(f"Inference engine failed to initialize: {exc}") from exc

        self._engine = result
        self._state = EngineState.READY
        logger.info("Detection model loaded (%s)", type(result).__name__)
        return result


async def run_engine(engine: InferenceEngine, tensor: np.ndarray) -> EngineOutput:
    """Run `engine`, awaiting it if it is asynchronous, and normalize the output."""
    out: Any = engine.run(tensor)
    if inspect.isawaitable(out):
        out = await out
    if isinstance(out, EngineOutput):
        return out
    return EngineOutput.from_array(out)
