"""Validate that a recorded-response layout replays the way its author expects."""

from __future__ import annotations

import re
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from echo_provisioner.archive import read_archive
from echo_provisioner.errors import ArchiveError, MessageDecodeError
from echo_provisioner.filesystem import Filesystem
from echo_provisioner.messages import WorkspaceTransition, decode_parse_response, decode_provision_response
from echo_provisioner.store import MessageStore, OperationKind

EXIT_SUCCESS = 0
EXIT_ERR_LOAD = 1
EXIT_ERR_LAYOUT = 2
EXIT_ERR_DECODE = 3

_ENTRY_PATTERN = re.compile(
    r"^(?P<index>0|[1-9][0-9]*)\."
    r"(?:(?P<transition>[a-z]+)\.)?"
    r"(?P<kind>parse|provision\.apply|provision\.plan)\.protobuf$"
)

SequenceKey = Tuple[OperationKind, Optional[WorkspaceTransition]]


@dataclass(frozen=True)
class Issue:
    """Represents a single validation problem."""

    message: str
    exit_code: int


@dataclass(frozen=True)
class ParsedEntry:
    name: str
    kind: OperationKind
    transition: Optional[WorkspaceTransition]
    index: int


@dataclass
class VerificationResult:
    """Outcome of validating one layout."""

    source: str
    sequences: Dict[SequenceKey, List[int]] = field(default_factory=dict)
    issues: List[Issue] = field(default_factory=list)
    notes: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.issues

    @property
    def exit_code(self) -> int:
        return max((issue.exit_code for issue in self.issues), default=EXIT_SUCCESS)


def parse_entry_name(name: str) -> Optional[ParsedEntry]:
    match = _ENTRY_PATTERN.match(name)
    if match is None:
        return None
    kind = OperationKind(match.group("kind"))
    transition = None
    if match.group("transition") is not None:
        if not kind.is_provision:
            return None
        try:
            transition = WorkspaceTransition[match.group("transition").upper()]
        except KeyError:
            return None
    return ParsedEntry(name=name, kind=kind, transition=transition, index=int(match.group("index")))


def _sequence_label(key: SequenceKey) -> str:
    kind, transition = key
    if transition is None:
        return kind.value
    return f"{transition.slug}.{kind.value}"


def _check_sequences(result: VerificationResult, entries: Iterable[ParsedEntry]) -> None:
    grouped: Dict[SequenceKey, List[int]] = defaultdict(list)
    for entry in entries:
        grouped[(entry.kind, entry.transition)].append(entry.index)

    for key in sorted(grouped, key=_sequence_label):
        indices = sorted(grouped[key])
        result.sequences[key] = indices
        kind, transition = key
        # Transition overrides fall back to the default entry at each index.
        reachable = set(indices)
        if transition is not None:
            reachable.update(grouped.get((kind, None), ()))
        stop = 0
        while stop in reachable:
            stop += 1
        if transition is not None:
            filled = sorted(set(range(stop)) - set(indices))
            if filled:
                result.notes.append(
                    f"{_sequence_label(key)} falls back to {kind.value} at index {', '.join(map(str, filled))}"
                )
        stranded = [index for index in indices if index > stop]
        if stranded:
            result.issues.append(
                Issue(
                    f"{_sequence_label(key)} stops at index {stop}; entries {', '.join(map(str, stranded))} are unreachable",
                    EXIT_ERR_LAYOUT,
                )
            )


def _check_payload(result: VerificationResult, entry: ParsedEntry, data: bytes) -> None:
    decoder = decode_parse_response if entry.kind is OperationKind.PARSE else decode_provision_response
    try:
        decoder(data)
    except MessageDecodeError as exc:
        result.issues.append(Issue(f"{entry.name}: {exc}", EXIT_ERR_DECODE))


def verify_entries(source: str, entries: Iterable[Tuple[str, bytes]]) -> VerificationResult:
    result = VerificationResult(source)
    parsed: List[ParsedEntry] = []
    for name, data in entries:
        entry = parse_entry_name(name)
        if entry is None:
            result.issues.append(Issue(f"Unrecognized entry name: {name}", EXIT_ERR_LAYOUT))
            continue
        parsed.append(entry)
        _check_payload(result, entry, data)
    _check_sequences(result, parsed)
    return result


def verify_archive(blob: bytes, source: str = "<archive>") -> VerificationResult:
    try:
        entries = read_archive(blob)
    except ArchiveError as exc:
        result = VerificationResult(source)
        result.issues.append(Issue(str(exc), EXIT_ERR_LOAD))
        return result
    return verify_entries(source, entries)


def verify_directory(filesystem: Filesystem, directory: str) -> VerificationResult:
    store = MessageStore(filesystem, directory)
    try:
        names = filesystem.listdir(directory)
    except OSError as exc:
        result = VerificationResult(directory)
        result.issues.append(Issue(f"Unable to list {directory}: {exc}", EXIT_ERR_LOAD))
        return result

    entries: List[Tuple[str, bytes]] = []
    load_issues: List[Issue] = []
    for name in names:
        path = store.path_for(name)
        try:
            entries.append((name, filesystem.read(path)))
        except OSError as exc:
            load_issues.append(Issue(f"Unable to read {path}: {exc}", EXIT_ERR_LOAD))

    result = verify_entries(directory, entries)
    result.issues[:0] = load_issues
    return result
