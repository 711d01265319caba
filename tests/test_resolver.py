from __future__ import annotations

import pytest

from echo_provisioner import archive
from echo_provisioner.errors import MessageDecodeError, NoRecordedStateError
from echo_provisioner.filesystem import MemoryFilesystem
from echo_provisioner.messages import (
    Log,
    LogLevel,
    ParseComplete,
    ParseResponse,
    ProvisionComplete,
    ProvisionResponse,
    WorkspaceTransition,
    encode,
)
from echo_provisioner.resolver import Resolver, ResolverState, log_threshold, should_emit
from echo_provisioner.store import MessageStore, OperationKind

R0 = ProvisionResponse(log=Log(level=LogLevel.INFO, output="r0"))
R1 = ProvisionResponse(complete=ProvisionComplete(state="r1"))


def _resolve(filesystem, directory, kind, transition=None, log_level=""):
    return list(Resolver(MessageStore(filesystem, directory), kind, transition, log_level))


def test_round_trip_default_sequences(unpacked, recording_dir) -> None:
    parse = [ParseResponse(log=Log(output="parsing")), ParseResponse(complete=ParseComplete(template_variables=("a",)))]
    apply = [R0, R1]
    plan = [ProvisionResponse(complete=ProvisionComplete(state="plan"))]
    filesystem = unpacked(archive.Responses(parse=parse, provision_apply=apply, provision_plan=plan))

    assert _resolve(filesystem, recording_dir, OperationKind.PARSE) == parse
    assert _resolve(filesystem, recording_dir, OperationKind.PROVISION_APPLY) == apply
    assert _resolve(filesystem, recording_dir, OperationKind.PROVISION_PLAN) == plan


def test_plan_defaults_to_apply(unpacked, recording_dir) -> None:
    filesystem = unpacked(archive.Responses(parse=archive.PARSE_COMPLETE, provision_apply=[R0, R1]))

    assert _resolve(filesystem, recording_dir, OperationKind.PROVISION_PLAN) == [R0, R1]


def test_zero_state_failure_ignores_later_indices(recording_dir) -> None:
    filesystem = MemoryFilesystem(
        {
            f"{recording_dir}/1.provision.apply.protobuf": encode(R0),
            f"{recording_dir}/2.provision.apply.protobuf": encode(R1),
        }
    )
    resolver = Resolver(MessageStore(filesystem, recording_dir), OperationKind.PROVISION_APPLY)

    with pytest.raises(NoRecordedStateError):
        resolver.next()


def test_transition_entries_take_precedence(unpacked, recording_dir) -> None:
    destroy = [ProvisionResponse(complete=ProvisionComplete(error="destroy-0"))]
    filesystem = unpacked(
        archive.Responses(
            parse=archive.PARSE_COMPLETE,
            provision_apply=[R0, R1],
            provision_apply_map={WorkspaceTransition.DESTROY: destroy},
        )
    )

    resolved = _resolve(filesystem, recording_dir, OperationKind.PROVISION_APPLY, WorkspaceTransition.DESTROY)

    # Index 0 comes from the override; index 1 falls through to the default.
    assert resolved == [destroy[0], R1]
    # Other transitions are untouched by the destroy override.
    assert _resolve(filesystem, recording_dir, OperationKind.PROVISION_APPLY, WorkspaceTransition.START) == [R0, R1]


def test_transition_sequence_longer_than_default(unpacked, recording_dir) -> None:
    stop = [ProvisionResponse(log=Log(output=f"stop-{i}")) for i in range(3)]
    filesystem = unpacked(
        archive.Responses(provision_apply=[R0], provision_apply_map={WorkspaceTransition.STOP: stop})
    )

    assert _resolve(filesystem, recording_dir, OperationKind.PROVISION_APPLY, WorkspaceTransition.STOP) == stop


def test_transition_only_sequence_without_default(recording_dir) -> None:
    filesystem = MemoryFilesystem({f"{recording_dir}/0.start.provision.plan.protobuf": encode(R1)})

    assert _resolve(filesystem, recording_dir, OperationKind.PROVISION_PLAN, WorkspaceTransition.START) == [R1]
    with pytest.raises(NoRecordedStateError):
        _resolve(filesystem, recording_dir, OperationKind.PROVISION_PLAN, WorkspaceTransition.STOP)


@pytest.mark.parametrize(
    ("threshold", "expected"),
    [
        ("", [LogLevel.TRACE, LogLevel.DEBUG, LogLevel.INFO, LogLevel.WARN, LogLevel.ERROR]),
        ("trace", [LogLevel.TRACE, LogLevel.DEBUG, LogLevel.INFO, LogLevel.WARN, LogLevel.ERROR]),
        ("info", [LogLevel.INFO, LogLevel.WARN, LogLevel.ERROR]),
        ("WARN", [LogLevel.WARN, LogLevel.ERROR]),
        ("error", [LogLevel.ERROR]),
    ],
)
def test_log_filter(unpacked, recording_dir, threshold, expected) -> None:
    logs = [ProvisionResponse(log=Log(level=level, output=level.name)) for level in LogLevel]
    complete = ProvisionResponse(complete=ProvisionComplete())
    filesystem = unpacked(archive.Responses(provision_apply=[*logs, complete]))

    resolved = _resolve(filesystem, recording_dir, OperationKind.PROVISION_APPLY, log_level=threshold)

    assert [response.log.level for response in resolved[:-1]] == expected
    assert resolved[-1] == complete


def test_suppressed_index_zero_is_not_a_missing_state(unpacked, recording_dir) -> None:
    debug = ProvisionResponse(log=Log(level=LogLevel.DEBUG, output="noise"))
    filesystem = unpacked(archive.Responses(provision_apply=[debug]))

    assert _resolve(filesystem, recording_dir, OperationKind.PROVISION_APPLY, log_level="error") == []


def test_log_threshold_names() -> None:
    assert log_threshold("") is None
    assert log_threshold("Debug") is LogLevel.DEBUG
    assert log_threshold("verbose") is LogLevel.TRACE


def test_non_log_responses_always_emit() -> None:
    assert should_emit(R1, LogLevel.ERROR)
    assert not should_emit(R0, LogLevel.WARN)
    assert should_emit(R0, None)


def test_state_machine_positions(unpacked, recording_dir) -> None:
    filesystem = unpacked(archive.Responses(provision_apply=[R0, R1]))
    resolver = Resolver(MessageStore(filesystem, recording_dir), OperationKind.PROVISION_APPLY)

    assert resolver.state is ResolverState.READING
    assert resolver.next() == R0
    assert (resolver.state, resolver.index) == (ResolverState.EMITTING, 0)
    assert resolver.next() == R1
    assert resolver.next() is None
    assert (resolver.state, resolver.index) == (ResolverState.EXHAUSTED, 2)
    assert resolver.next() is None


def test_malformed_entry_raises_decode_error(recording_dir) -> None:
    filesystem = MemoryFilesystem({f"{recording_dir}/0.parse.protobuf": b"\x00not-json"})
    resolver = Resolver(MessageStore(filesystem, recording_dir), OperationKind.PARSE)

    with pytest.raises(MessageDecodeError) as excinfo:
        resolver.next()
    assert "parse entry 0" in str(excinfo.value)
