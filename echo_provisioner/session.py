"""Streaming session handler for the echo provisioner.

:class:`EchoProvisioner` implements the three provisioner calls.  Parse and
provision replay recorded responses from the request's directory and then
stay open until the client cancels the stream; the call returns the error the
cancellation carried (``None`` for a clean close).  A provision stream whose
first request is neither a plan nor an apply returns ``None`` at once without
replaying anything.  Shutdown acknowledges immediately.

Each call runs in its own :class:`Session`, which holds the per-call state
(current resolver, state-machine position) so concurrent calls never share
anything mutable.  Storage reads run in the event loop's default executor so
a slow filesystem never stalls other streams on the same loop.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Optional

from echo_provisioner.filesystem import Filesystem
from echo_provisioner.messages import Empty, ParseRequest, ProvisionConfig, ProvisionRequest
from echo_provisioner.resolver import Resolver
from echo_provisioner.store import MessageStore, OperationKind
from echo_provisioner.streams import ParseStream, ProvisionStream

logger = logging.getLogger(__name__)


class SessionState(Enum):
    RECEIVING = "receiving"
    RESOLVING = "resolving"
    WAITING = "waiting"
    DONE = "done"


class Session:
    """Drives one resolver across one open stream."""

    def __init__(self, filesystem: Filesystem, stream: ParseStream) -> None:
        self.filesystem = filesystem
        self.stream = stream
        self.state = SessionState.RECEIVING
        self.resolver: Optional[Resolver] = None
        self.sent = 0

    def start(self, kind: OperationKind, directory: str, config: Optional[ProvisionConfig] = None) -> None:
        transition = None
        log_level = ""
        if config is not None:
            transition = config.metadata.workspace_transition
            log_level = config.provisioner_log_level
        self.resolver = Resolver(MessageStore(self.filesystem, directory), kind, transition, log_level)
        self.state = SessionState.RESOLVING
        logger.info(
            "replaying %s from %s (transition=%s, log_level=%r)",
            kind.value,
            directory,
            transition.slug if transition is not None else "-",
            log_level,
        )

    async def replay(self) -> None:
        if self.resolver is None:
            raise RuntimeError("session not started")
        loop = asyncio.get_running_loop()
        while self.state is SessionState.RESOLVING:
            if self.stream.context.cancelled:
                logger.info("stream cancelled during %s replay", self.resolver.kind.value)
                self.state = SessionState.WAITING
                break
            response = await loop.run_in_executor(None, self.resolver.next)
            if response is None:
                logger.info("%s replay exhausted after %d responses", self.resolver.kind.value, self.sent)
                self.state = SessionState.WAITING
                break
            await self.stream.send(response)
            self.sent += 1

    async def wait(self) -> Optional[BaseException]:
        self.state = SessionState.WAITING
        await self.stream.context.wait()
        self.state = SessionState.DONE
        error = self.stream.context.error()
        logger.debug("stream cancelled (error=%r)", error)
        return error


class EchoProvisioner:
    """Provisioner that replays recorded responses instead of provisioning."""

    def __init__(self, filesystem: Filesystem) -> None:
        self.filesystem = filesystem

    async def parse(self, request: ParseRequest, stream: ParseStream) -> Optional[BaseException]:
        session = Session(self.filesystem, stream)
        session.start(OperationKind.PARSE, request.directory)
        await session.replay()
        return await session.wait()

    async def provision(self, stream: ProvisionStream) -> Optional[BaseException]:
        session = Session(self.filesystem, stream)
        request: ProvisionRequest = await stream.recv()

        if request.plan is not None:
            kind, config = OperationKind.PROVISION_PLAN, request.plan.config
        elif request.apply is not None:
            kind, config = OperationKind.PROVISION_APPLY, request.apply.config
        else:
            # Neither plan nor apply, most likely a cancel.
            logger.info("provision request carried no plan or apply; nothing to replay")
            session.state = SessionState.DONE
            return None

        session.start(kind, config.directory, config)
        await session.replay()
        return await session.wait()

    async def shutdown(self, request: Optional[Empty] = None) -> Empty:
        return Empty()
