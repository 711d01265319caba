import sys
from pathlib import Path
from typing import Callable, Optional

import pytest

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from echo_provisioner import archive  # noqa: E402
from echo_provisioner.filesystem import MemoryFilesystem  # noqa: E402

RECORDING_DIR = "/recordings/workspace"


@pytest.fixture
def recording_dir() -> str:
    return RECORDING_DIR


@pytest.fixture
def unpacked() -> Callable[[Optional[archive.Responses]], MemoryFilesystem]:
    """Pack a response set and extract it into a fresh in-memory filesystem."""

    def _unpack(responses: Optional[archive.Responses] = None) -> MemoryFilesystem:
        filesystem = MemoryFilesystem()
        archive.unpack(archive.pack(responses), filesystem, RECORDING_DIR)
        return filesystem

    return _unpack
