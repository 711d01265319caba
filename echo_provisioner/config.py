"""Load canned response sets from YAML definitions.

Example document::

    parse:
      - complete: {}
    provision_apply:
      - log: {level: INFO, output: "creating instance"}
      - complete: {}
    provision_plan: null
    provision_apply_map:
      destroy:
        - complete: {error: "failed!"}

``provision_plan`` may be omitted or ``null`` to reuse ``provision_apply``.
Log levels accept either names (case-insensitive) or their numeric values.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, TypeVar

import yaml

from echo_provisioner.archive import Responses
from echo_provisioner.errors import ConfigError, MessageDecodeError
from echo_provisioner.messages import (
    LogLevel,
    WorkspaceTransition,
    parse_response_from_dict,
    provision_response_from_dict,
)

T = TypeVar("T")

_TOP_LEVEL_KEYS = {"parse", "provision_apply", "provision_plan", "provision_apply_map", "provision_plan_map"}


def _normalize_log(entry: Dict[str, Any], where: str) -> Dict[str, Any]:
    log = entry.get("log")
    if not isinstance(log, dict) or "level" not in log:
        return entry
    level = log["level"]
    if isinstance(level, str):
        try:
            level = LogLevel[level.upper()].value
        except KeyError as exc:
            raise ConfigError(f"{where}: unknown log level {log['level']!r}") from exc
    return {**entry, "log": {**log, "level": level}}


def _messages(raw: Any, where: str, build: Callable[[Dict[str, Any]], T]) -> List[T]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ConfigError(f"{where}: expected a list of responses")
    messages: List[T] = []
    for index, entry in enumerate(raw):
        location = f"{where}[{index}]"
        if not isinstance(entry, dict):
            raise ConfigError(f"{location}: response must be a mapping")
        try:
            messages.append(build(_normalize_log(entry, location)))
        except MessageDecodeError as exc:
            raise ConfigError(f"{location}: {exc}") from exc
    return messages


def _transition_map(raw: Any, where: str) -> Dict[WorkspaceTransition, List[Any]]:
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ConfigError(f"{where}: expected a mapping of transition to responses")
    mapping: Dict[WorkspaceTransition, List[Any]] = {}
    for name, entries in raw.items():
        try:
            transition = WorkspaceTransition[str(name).upper()]
        except KeyError as exc:
            raise ConfigError(f"{where}: unknown workspace transition {name!r}") from exc
        mapping[transition] = _messages(entries, f"{where}.{transition.slug}", provision_response_from_dict)
    return mapping


def responses_from_mapping(document: Any, source: str = "<config>") -> Responses:
    if document is None:
        document = {}
    if not isinstance(document, dict):
        raise ConfigError(f"{source}: top level must be a mapping")
    unknown = sorted(set(document) - _TOP_LEVEL_KEYS)
    if unknown:
        raise ConfigError(f"{source}: unknown key(s): {', '.join(unknown)}")

    plan: Optional[List[Any]] = None
    if document.get("provision_plan") is not None:
        plan = _messages(document["provision_plan"], f"{source}:provision_plan", provision_response_from_dict)

    return Responses(
        parse=_messages(document.get("parse"), f"{source}:parse", parse_response_from_dict),
        provision_apply=_messages(
            document.get("provision_apply"), f"{source}:provision_apply", provision_response_from_dict
        ),
        provision_plan=plan,
        provision_apply_map=_transition_map(document.get("provision_apply_map"), f"{source}:provision_apply_map"),
        provision_plan_map=_transition_map(document.get("provision_plan_map"), f"{source}:provision_plan_map"),
    )


def load_responses(path: Path) -> Responses:
    """Read a YAML response-set definition from ``path``."""

    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Unable to read {path}: {exc}") from exc
    try:
        document = yaml.safe_load(text) if text.strip() else {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse YAML for {path}: {exc}") from exc
    return responses_from_mapping(document, str(path))
