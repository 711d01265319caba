"""Error taxonomy shared by the echo provisioner modules."""

from __future__ import annotations


class EchoError(RuntimeError):
    """Base class for every failure raised by the echo provisioner."""


class NoRecordedStateError(EchoError):
    """Raised when index 0 of a requested sequence has no recorded entry.

    Tests rely on this to simulate a provisioner that returned nothing, which
    is distinct from a sequence that ends after at least one message.
    """

    def __init__(self, directory: str, names: list[str]) -> None:
        self.directory = directory
        self.names = list(names)
        super().__init__(f"no state: nothing recorded in {directory!r} (tried {', '.join(self.names)})")


class StorageError(EchoError):
    """Raised when the storage capability fails to stat or read a path."""

    def __init__(self, path: str, operation: str) -> None:
        self.path = path
        self.operation = operation
        super().__init__(f"{operation} {path!r}")


class MessageDecodeError(EchoError):
    """Raised when a stored payload is not a valid protocol message."""


class ArchiveError(EchoError):
    """Raised when a response set cannot be packed or an archive unpacked."""


class ConfigError(EchoError):
    """Raised when a YAML response-set definition is invalid."""


class StreamClosedError(EchoError):
    """Raised when an in-memory stream is used after it has ended."""
