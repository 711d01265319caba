"""Provisioner protocol messages and their byte encoding.

The echo provisioner never interprets these messages beyond three details:
whether a response is a log line, the severity of that log line, and the
configuration carried by plan/apply requests.  Everything else is opaque
payload that is stored, replayed, and compared for equality.

Messages are frozen dataclasses.  ``encode`` turns any message into canonical
JSON bytes (sorted keys, compact separators) so packed archives are stable
across runs; the ``decode_*`` helpers rebuild the typed message and raise
:class:`~echo_provisioner.errors.MessageDecodeError` on malformed input.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field, is_dataclass
from enum import IntEnum
from typing import Any, Dict, List, Optional, Tuple, Union

from echo_provisioner.errors import MessageDecodeError


class LogLevel(IntEnum):
    TRACE = 0
    DEBUG = 1
    INFO = 2
    WARN = 3
    ERROR = 4


class WorkspaceTransition(IntEnum):
    START = 0
    STOP = 1
    DESTROY = 2

    @property
    def slug(self) -> str:
        """Lower-cased name used in archive entry names."""
        return self.name.lower()


@dataclass(frozen=True)
class Log:
    level: LogLevel = LogLevel.TRACE
    output: str = ""


@dataclass(frozen=True)
class Agent:
    id: str = ""
    name: str = ""
    token: str = ""


@dataclass(frozen=True)
class Resource:
    name: str = ""
    type: str = ""
    agents: Tuple[Agent, ...] = ()


@dataclass(frozen=True)
class ParseComplete:
    error: str = ""
    template_variables: Tuple[str, ...] = ()


@dataclass(frozen=True)
class ProvisionComplete:
    error: str = ""
    state: str = ""
    resources: Tuple[Resource, ...] = ()


@dataclass(frozen=True)
class ParseResponse:
    """One message of a parse stream: either a log line or the completion."""

    log: Optional[Log] = None
    complete: Optional[ParseComplete] = None


@dataclass(frozen=True)
class ProvisionResponse:
    """One message of a provision stream: either a log line or the completion."""

    log: Optional[Log] = None
    complete: Optional[ProvisionComplete] = None


@dataclass(frozen=True)
class Metadata:
    workspace_transition: Optional[WorkspaceTransition] = WorkspaceTransition.START


@dataclass(frozen=True)
class ProvisionConfig:
    directory: str = ""
    metadata: Metadata = field(default_factory=Metadata)
    provisioner_log_level: str = ""


@dataclass(frozen=True)
class Plan:
    config: ProvisionConfig = field(default_factory=ProvisionConfig)


@dataclass(frozen=True)
class Apply:
    config: ProvisionConfig = field(default_factory=ProvisionConfig)


@dataclass(frozen=True)
class Cancel:
    pass


@dataclass(frozen=True)
class ParseRequest:
    directory: str = ""


@dataclass(frozen=True)
class ProvisionRequest:
    plan: Optional[Plan] = None
    apply: Optional[Apply] = None
    cancel: Optional[Cancel] = None


@dataclass(frozen=True)
class Empty:
    pass


Response = Union[ParseResponse, ProvisionResponse]


def _drop_empty(node: Any) -> Any:
    if isinstance(node, dict):
        return {key: _drop_empty(value) for key, value in node.items() if value is not None}
    if isinstance(node, (list, tuple)):
        return [_drop_empty(item) for item in node]
    return node


def encode(message: Any) -> bytes:
    """Serialize a message dataclass into canonical JSON bytes."""

    if not is_dataclass(message) or isinstance(message, type):
        raise TypeError(f"cannot encode {type(message).__name__}: not a protocol message")
    payload = _drop_empty(asdict(message))
    return json.dumps(payload, sort_keys=True, separators=(",", ":")).encode("utf-8")


def _load(data: bytes) -> Dict[str, Any]:
    try:
        payload = json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise MessageDecodeError(f"unmarshal: {exc}") from exc
    if not isinstance(payload, dict):
        raise MessageDecodeError(f"unmarshal: expected an object, found {type(payload).__name__}")
    return payload


def _only(payload: Any, allowed: set[str], kind: str) -> Dict[str, Any]:
    if not isinstance(payload, dict):
        raise MessageDecodeError(f"unmarshal: {kind} must be an object, found {type(payload).__name__}")
    unknown = sorted(set(payload) - allowed)
    if unknown:
        raise MessageDecodeError(f"unmarshal: unknown {kind} field(s): {', '.join(unknown)}")
    return payload


def _string(payload: Dict[str, Any], key: str, kind: str) -> str:
    value = payload.get(key, "")
    if not isinstance(value, str):
        raise MessageDecodeError(f"unmarshal: {kind}.{key} must be a string, found {type(value).__name__}")
    return value


def _list(payload: Dict[str, Any], key: str, kind: str) -> List[Any]:
    value = payload.get(key, [])
    if not isinstance(value, list):
        raise MessageDecodeError(f"unmarshal: {kind}.{key} must be a list, found {type(value).__name__}")
    return value


def log_from_dict(payload: Dict[str, Any]) -> Log:
    _only(payload, {"level", "output"}, "log")
    level = payload.get("level", LogLevel.TRACE)
    if not isinstance(level, int) or isinstance(level, bool) or level not in LogLevel._value2member_map_:
        raise MessageDecodeError(f"unmarshal: invalid log level {level!r}")
    return Log(level=LogLevel(level), output=_string(payload, "output", "log"))


def _agent_from_dict(payload: Any) -> Agent:
    _only(payload, {"id", "name", "token"}, "agent")
    return Agent(
        id=_string(payload, "id", "agent"),
        name=_string(payload, "name", "agent"),
        token=_string(payload, "token", "agent"),
    )


def _resource_from_dict(payload: Any) -> Resource:
    _only(payload, {"name", "type", "agents"}, "resource")
    return Resource(
        name=_string(payload, "name", "resource"),
        type=_string(payload, "type", "resource"),
        agents=tuple(_agent_from_dict(agent) for agent in _list(payload, "agents", "resource")),
    )


def parse_response_from_dict(payload: Dict[str, Any]) -> ParseResponse:
    _only(payload, {"log", "complete"}, "parse response")
    log = payload.get("log")
    complete = payload.get("complete")
    if complete is not None:
        _only(complete, {"error", "template_variables"}, "parse complete")
        variables = _list(complete, "template_variables", "parse complete")
        if not all(isinstance(name, str) for name in variables):
            raise MessageDecodeError("unmarshal: parse complete.template_variables must hold strings")
        complete = ParseComplete(error=_string(complete, "error", "parse complete"), template_variables=tuple(variables))
    return ParseResponse(log=log_from_dict(log) if log is not None else None, complete=complete)


def provision_response_from_dict(payload: Dict[str, Any]) -> ProvisionResponse:
    _only(payload, {"log", "complete"}, "provision response")
    log = payload.get("log")
    complete = payload.get("complete")
    if complete is not None:
        _only(complete, {"error", "state", "resources"}, "provision complete")
        complete = ProvisionComplete(
            error=_string(complete, "error", "provision complete"),
            state=_string(complete, "state", "provision complete"),
            resources=tuple(_resource_from_dict(item) for item in _list(complete, "resources", "provision complete")),
        )
    return ProvisionResponse(log=log_from_dict(log) if log is not None else None, complete=complete)


def decode_parse_response(data: bytes) -> ParseResponse:
    return parse_response_from_dict(_load(data))


def decode_provision_response(data: bytes) -> ProvisionResponse:
    return provision_response_from_dict(_load(data))
