"""Resolve the next recorded response for a parse or provision call."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Callable, Dict, Iterator, Optional

from echo_provisioner.errors import MessageDecodeError
from echo_provisioner.messages import (
    LogLevel,
    Response,
    WorkspaceTransition,
    decode_parse_response,
    decode_provision_response,
)
from echo_provisioner.store import MessageStore, OperationKind

logger = logging.getLogger(__name__)


class ResolverState(Enum):
    READING = "reading"
    EMITTING = "emitting"
    EXHAUSTED = "exhausted"


def log_threshold(level: str) -> Optional[LogLevel]:
    """Translate a configured level name into a threshold.

    An empty string disables filtering.  Unknown names resolve to ``TRACE`` so
    every log line passes.
    """

    if not level:
        return None
    return LogLevel.__members__.get(level.upper(), LogLevel.TRACE)


def should_emit(response: Response, threshold: Optional[LogLevel]) -> bool:
    if response.log is None or threshold is None:
        return True
    return response.log.level >= threshold


_DECODERS: Dict[OperationKind, Callable[[bytes], Response]] = {
    OperationKind.PARSE: decode_parse_response,
    OperationKind.PROVISION_APPLY: decode_provision_response,
    OperationKind.PROVISION_PLAN: decode_provision_response,
}


class Resolver:
    """Walks one recorded sequence, index by index.

    ``next()`` returns the next response to send, or ``None`` once the
    sequence is exhausted.  A missing entry at index 0 raises
    :class:`~echo_provisioner.errors.NoRecordedStateError` from the store.
    """

    def __init__(
        self,
        store: MessageStore,
        kind: OperationKind,
        transition: Optional[WorkspaceTransition] = None,
        log_level: str = "",
    ) -> None:
        self.store = store
        self.kind = kind
        self.transition = transition
        self.threshold = log_threshold(log_level)
        self.index = 0
        self.state = ResolverState.READING

    def _decode(self, data: bytes) -> Response:
        try:
            return _DECODERS[self.kind](data)
        except MessageDecodeError as exc:
            raise MessageDecodeError(f"{self.kind.value} entry {self.index} in {self.store.directory!r}: {exc}") from exc

    def next(self) -> Optional[Response]:
        if self.state is ResolverState.EMITTING:
            self.index += 1
            self.state = ResolverState.READING

        while self.state is ResolverState.READING:
            data = self.store.read(self.kind, self.index, self.transition)
            if data is None:
                self.state = ResolverState.EXHAUSTED
                logger.debug("%s sequence exhausted after %d entries", self.kind.value, self.index)
                break
            response = self._decode(data)
            if not should_emit(response, self.threshold):
                logger.debug("suppressed %s log entry %d below %s", self.kind.value, self.index, self.threshold.name)
                self.index += 1
                continue
            self.state = ResolverState.EMITTING
            return response
        return None

    def __iter__(self) -> Iterator[Response]:
        while True:
            response = self.next()
            if response is None:
                return
            yield response
