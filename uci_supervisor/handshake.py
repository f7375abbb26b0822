"""
Blocking request/response exchanges: the `uci` handshake and `isready` sync.

Neither function retries; retrying is the session's job.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Mapping, Optional, Protocol, Tuple, Type

from . import protocol
from .errors import EngineIOError, EngineSyncError, HandshakeTimeout, ResponseTimeout
from .models import EngineState
from .state import EngineStateMachine

logger = logging.getLogger(__name__)

WDL_OPTION = "UCI_ShowWDL"


class LineTransport(Protocol):
    """What the exchanges need from a process supervisor."""

    def is_alive(self) -> bool: ...

    def send(self, command: str) -> None: ...

    def read_line(self, timeout: float) -> str: ...


@dataclass
class HandshakeResult:
    name: Optional[str] = None
    author: Optional[str] = None
    options: Dict[str, protocol.EngineOption] = field(default_factory=dict)


def read_until(
    transport: LineTransport,
    wanted: Type[protocol.Event] | Tuple[Type[protocol.Event], ...],
    timeout: float,
    on_event: Optional[Callable[[protocol.Event], None]] = None,
) -> protocol.Event:
    """
    Read lines until one decodes to `wanted`, with one deadline for the whole wait.

    Other events are passed to `on_event`. Raises ResponseTimeout or EngineIOError.
    """
    deadline = time.monotonic() + timeout
    while True:
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise ResponseTimeout(f"timed out after {timeout:.2f}s")
        event = protocol.decode_line(transport.read_line(remaining))
        if isinstance(event, wanted):
            return event
        if on_event is not None:
            on_event(event)


def perform_handshake(
    transport: LineTransport,
    state: EngineStateMachine,
    timeout: float,
    *,
    enable_wdl: bool = True,
    options: Optional[Mapping[str, Any]] = None,
) -> HandshakeResult:
    """
    `uci` -> `uciok`, optional option setup, then `isready` -> `readyok`.

    `timeout` applies to each of the two waits. On success the state becomes
    READY; on any failure it becomes ERROR and the error propagates.
    """
    result = HandshakeResult()

    def collect(event: protocol.Event) -> None:
        if isinstance(event, protocol.EngineId):
            setattr(result, event.key, event.value)
        elif isinstance(event, protocol.EngineOption):
            result.options[event.name] = event

    phase = "uciok"
    try:
        transport.send(protocol.encode_uci())
        read_until(transport, protocol.HandshakeOk, timeout, collect)

        if enable_wdl:
            if WDL_OPTION in result.options:
                transport.send(protocol.encode_setoption(WDL_OPTION, True))
            else:
                logger.debug("engine does not advertise %s; WDL will be estimated", WDL_OPTION)
        for name, value in (options or {}).items():
            transport.send(protocol.encode_setoption(name, value))

        phase = "readyok"
        transport.send(protocol.encode_isready())
        read_until(transport, protocol.SyncOk, timeout)
    except ResponseTimeout as exc:
        state.fail()
        raise HandshakeTimeout(f"no {phase} within {timeout:.2f}s") from exc
    except EngineIOError:
        state.fail()
        raise

    if not transport.is_alive():
        state.fail()
        raise EngineIOError("engine died during initialization")

    state.transition(EngineState.READY)
    logger.info("engine handshake complete: %s", result.name or "unknown engine")
    return result


def sync(transport: LineTransport, state: EngineStateMachine, timeout: float) -> None:
    """Send `isready` and wait for `readyok`, discarding anything queued before it."""
    try:
        if not transport.is_alive():
            raise EngineIOError("engine not alive")
        transport.send(protocol.encode_isready())
        read_until(transport, protocol.SyncOk, timeout)
    except (ResponseTimeout, EngineIOError) as exc:
        state.fail()
        raise EngineSyncError(f"engine sync failed: {exc}") from exc
