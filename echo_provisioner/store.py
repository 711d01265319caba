"""Message store: maps (operation, transition, index) to recorded payloads.

Entry names follow a fixed convention shared with :mod:`echo_provisioner.archive`:

``{i}.parse.protobuf``
    Parse responses.
``{i}.provision.apply.protobuf`` / ``{i}.provision.plan.protobuf``
    Default provision sequences.
``{i}.{transition}.provision.apply.protobuf`` / ``...plan.protobuf``
    Per-transition overrides, transition name lower-cased.

Provision lookups try the transition-specific name first and the default
name second at every index.
"""

from __future__ import annotations

import logging
import posixpath
from enum import Enum
from typing import List, Optional

from echo_provisioner.errors import NoRecordedStateError, StorageError
from echo_provisioner.filesystem import Filesystem
from echo_provisioner.messages import WorkspaceTransition

logger = logging.getLogger(__name__)

SUFFIX = ".protobuf"


class OperationKind(str, Enum):
    PARSE = "parse"
    PROVISION_APPLY = "provision.apply"
    PROVISION_PLAN = "provision.plan"

    @property
    def is_provision(self) -> bool:
        return self is not OperationKind.PARSE


def entry_name(kind: OperationKind, index: int, transition: Optional[WorkspaceTransition] = None) -> str:
    """Return the archive entry name for one recorded message."""

    if index < 0:
        raise ValueError(f"index must be non-negative, got {index}")
    if transition is None:
        return f"{index}.{kind.value}{SUFFIX}"
    if not kind.is_provision:
        raise ValueError("parse entries cannot carry a workspace transition")
    return f"{index}.{WorkspaceTransition(transition).slug}.{kind.value}{SUFFIX}"


def candidate_names(kind: OperationKind, index: int, transition: Optional[WorkspaceTransition] = None) -> List[str]:
    """Entry names to try for ``index``, most specific first."""

    names = []
    if transition is not None and kind.is_provision:
        names.append(entry_name(kind, index, transition))
    names.append(entry_name(kind, index))
    return names


class MessageStore:
    """Read-only view of recorded messages under one directory."""

    def __init__(self, filesystem: Filesystem, directory: str) -> None:
        self.filesystem = filesystem
        self.directory = directory

    def path_for(self, name: str) -> str:
        return posixpath.join(self.directory, name)

    def _exists(self, path: str) -> bool:
        try:
            self.filesystem.stat(path)
        except FileNotFoundError:
            return False
        except OSError as exc:
            raise StorageError(path, "stat file") from exc
        return True

    def locate(
        self,
        kind: OperationKind,
        index: int,
        transition: Optional[WorkspaceTransition] = None,
    ) -> Optional[str]:
        """Return the path of the entry for ``index``, or ``None`` past the end.

        Raises :class:`NoRecordedStateError` when nothing exists at index 0.
        """

        names = candidate_names(kind, index, transition)
        for name in names:
            path = self.path_for(name)
            if self._exists(path):
                return path
        if index == 0:
            raise NoRecordedStateError(self.directory, names)
        return None

    def read(
        self,
        kind: OperationKind,
        index: int,
        transition: Optional[WorkspaceTransition] = None,
    ) -> Optional[bytes]:
        path = self.locate(kind, index, transition)
        if path is None:
            logger.debug("no %s entry at index %d in %s", kind.value, index, self.directory)
            return None
        try:
            data = self.filesystem.read(path)
        except OSError as exc:
            raise StorageError(path, "read file") from exc
        logger.debug("read %s (%d bytes)", path, len(data))
        return data
