"""Pack canned provisioner responses into the archive the echo provisioner reads.

A test author describes what the provisioner should "say" as a
:class:`Responses` set and calls :func:`pack`.  The resulting tar archive holds
one entry per message, named after its operation, optional workspace
transition, and position (see :mod:`echo_provisioner.store`).  Extracting it
with :func:`unpack` yields exactly the layout the message store resolves, so
``pack`` and the resolver form a round-trip codec.

The module also carries the canned sequences most tests need:
``PARSE_COMPLETE``, ``PROVISION_COMPLETE``, ``PROVISION_FAILED`` and
:func:`provision_apply_with_agent`.
"""

from __future__ import annotations

import io
import logging
import posixpath
import tarfile
import uuid
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

from echo_provisioner.errors import ArchiveError
from echo_provisioner.filesystem import WritableFilesystem
from echo_provisioner.messages import (
    Agent,
    ParseComplete,
    ParseResponse,
    ProvisionComplete,
    ProvisionResponse,
    Resource,
    WorkspaceTransition,
    encode,
)
from echo_provisioner.store import OperationKind, entry_name

logger = logging.getLogger(__name__)

ENTRY_MODE = 0o644

PARSE_COMPLETE: Tuple[ParseResponse, ...] = (ParseResponse(complete=ParseComplete()),)
PROVISION_COMPLETE: Tuple[ProvisionResponse, ...] = (ProvisionResponse(complete=ProvisionComplete()),)
PROVISION_FAILED: Tuple[ProvisionResponse, ...] = (ProvisionResponse(complete=ProvisionComplete(error="failed!")),)


def provision_apply_with_agent(auth_token: str) -> List[ProvisionResponse]:
    """Responses mocking an ``aws_instance`` resource with one token-authenticated agent."""

    agent = Agent(id=str(uuid.uuid4()), name="example", token=auth_token)
    resource = Resource(name="example", type="aws_instance", agents=(agent,))
    return [ProvisionResponse(complete=ProvisionComplete(resources=(resource,)))]


@dataclass
class Responses:
    """Canned responses for every provisioner operation.

    ``provision_plan`` falls back to ``provision_apply`` when left as ``None``.
    The two maps override the default provision sequences for a specific
    workspace transition.
    """

    parse: Sequence[ParseResponse] = ()
    provision_apply: Sequence[ProvisionResponse] = ()
    provision_plan: Optional[Sequence[ProvisionResponse]] = None
    provision_apply_map: Dict[WorkspaceTransition, Sequence[ProvisionResponse]] = field(default_factory=dict)
    provision_plan_map: Dict[WorkspaceTransition, Sequence[ProvisionResponse]] = field(default_factory=dict)

    @property
    def effective_plan(self) -> Sequence[ProvisionResponse]:
        if self.provision_plan is None:
            return self.provision_apply
        return self.provision_plan


DEFAULT_RESPONSES = Responses(
    parse=PARSE_COMPLETE,
    provision_apply=PROVISION_COMPLETE,
    provision_plan=PROVISION_COMPLETE,
)


def iter_entries(responses: Responses) -> Iterator[Tuple[str, object]]:
    """Yield ``(entry name, message)`` pairs in archive order."""

    for index, response in enumerate(responses.parse):
        yield entry_name(OperationKind.PARSE, index), response
    for index, response in enumerate(responses.provision_apply):
        yield entry_name(OperationKind.PROVISION_APPLY, index), response
    for index, response in enumerate(responses.effective_plan):
        yield entry_name(OperationKind.PROVISION_PLAN, index), response
    for transition in sorted(responses.provision_apply_map):
        for index, response in enumerate(responses.provision_apply_map[transition]):
            yield entry_name(OperationKind.PROVISION_APPLY, index, transition), response
    for transition in sorted(responses.provision_plan_map):
        for index, response in enumerate(responses.provision_plan_map[transition]):
            yield entry_name(OperationKind.PROVISION_PLAN, index, transition), response


def _add_entry(writer: tarfile.TarFile, name: str, data: bytes) -> None:
    info = tarfile.TarInfo(name=name)
    info.size = len(data)
    info.mode = ENTRY_MODE
    info.mtime = 0
    writer.addfile(info, io.BytesIO(data))


def pack(responses: Optional[Responses] = None) -> bytes:
    """Serialize ``responses`` into a tar archive of recorded messages."""

    if responses is None:
        responses = DEFAULT_RESPONSES

    buffer = io.BytesIO()
    count = 0
    with tarfile.open(fileobj=buffer, mode="w", format=tarfile.USTAR_FORMAT) as writer:
        for name, message in iter_entries(responses):
            try:
                data = encode(message)
            except (TypeError, ValueError) as exc:
                raise ArchiveError(f"marshal {name}: {exc}") from exc
            _add_entry(writer, name, data)
            count += 1
    logger.debug("packed %d entries", count)
    return buffer.getvalue()


def read_archive(blob: bytes) -> List[Tuple[str, bytes]]:
    """Return ``(name, payload)`` for every regular file in archive order."""

    entries: List[Tuple[str, bytes]] = []
    try:
        with tarfile.open(fileobj=io.BytesIO(blob), mode="r:*") as reader:
            for member in reader:
                if not member.isfile():
                    continue
                handle = reader.extractfile(member)
                if handle is None:  # pragma: no cover - regular files always have data
                    continue
                entries.append((member.name, handle.read()))
    except tarfile.TarError as exc:
        raise ArchiveError(f"read archive: {exc}") from exc
    return entries


def unpack(blob: bytes, filesystem: WritableFilesystem, directory: str) -> List[str]:
    """Extract an archive under ``directory`` and return the written paths."""

    written: List[str] = []
    for name, data in read_archive(blob):
        normalized = posixpath.normpath(name)
        if normalized.startswith("..") or posixpath.isabs(normalized):
            raise ArchiveError(f"refusing to extract entry outside the directory: {name!r}")
        path = posixpath.join(directory, normalized)
        filesystem.write(path, data)
        written.append(path)
    logger.debug("unpacked %d entries into %s", len(written), directory)
    return written
