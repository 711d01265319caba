"""Storage capability consumed by the message store.

The echo provisioner never touches the disk directly.  Callers inject an
object that satisfies :class:`Filesystem`; two implementations ship here:

* :class:`OsFilesystem` – the real filesystem, optionally rooted under a base
  directory so tests can sandbox it in ``tmp_path``.
* :class:`MemoryFilesystem` – a dictionary of path → bytes, the usual target
  for :func:`echo_provisioner.archive.unpack` in integration tests.

Missing paths raise :class:`FileNotFoundError`; every other failure surfaces as
the underlying :class:`OSError`.
"""

from __future__ import annotations

import posixpath
from pathlib import Path
from typing import Dict, List, Optional, Protocol


class Filesystem(Protocol):
    def stat(self, path: str) -> int:
        """Return the size of ``path`` or raise ``FileNotFoundError``."""

    def read(self, path: str) -> bytes:
        ...

    def listdir(self, path: str) -> List[str]:
        ...


class WritableFilesystem(Filesystem, Protocol):
    def write(self, path: str, data: bytes) -> None:
        ...


class OsFilesystem:
    """Filesystem backed by the operating system."""

    def __init__(self, root: Optional[Path] = None) -> None:
        self.root = root

    def _resolve(self, path: str) -> Path:
        if self.root is None:
            return Path(path)
        return self.root / path.lstrip("/")

    def stat(self, path: str) -> int:
        return self._resolve(path).stat().st_size

    def read(self, path: str) -> bytes:
        return self._resolve(path).read_bytes()

    def listdir(self, path: str) -> List[str]:
        return sorted(entry.name for entry in self._resolve(path).iterdir())

    def write(self, path: str, data: bytes) -> None:
        target = self._resolve(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)


class MemoryFilesystem:
    """In-memory filesystem keyed by normalized POSIX paths."""

    def __init__(self, files: Optional[Dict[str, bytes]] = None) -> None:
        self._files: Dict[str, bytes] = {}
        for path, data in (files or {}).items():
            self.write(path, data)

    @staticmethod
    def _normalize(path: str) -> str:
        return posixpath.normpath("/" + path.lstrip("/"))

    def stat(self, path: str) -> int:
        key = self._normalize(path)
        if key not in self._files:
            raise FileNotFoundError(2, "No such file or directory", path)
        return len(self._files[key])

    def read(self, path: str) -> bytes:
        key = self._normalize(path)
        try:
            return self._files[key]
        except KeyError:
            raise FileNotFoundError(2, "No such file or directory", path) from None

    def listdir(self, path: str) -> List[str]:
        prefix = self._normalize(path).rstrip("/") + "/"
        names = {key[len(prefix):].split("/", 1)[0] for key in self._files if key.startswith(prefix)}
        if not names:
            raise FileNotFoundError(2, "No such file or directory", path)
        return sorted(names)

    def write(self, path: str, data: bytes) -> None:
        self._files[self._normalize(path)] = bytes(data)
