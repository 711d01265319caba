import textwrap
from pathlib import Path

import pytest

from echo_provisioner.config import load_responses, responses_from_mapping
from echo_provisioner.errors import ConfigError
from echo_provisioner.messages import Log, LogLevel, ProvisionComplete, ProvisionResponse, WorkspaceTransition


def _write_yaml(path: Path, contents: str) -> None:
    path.write_text(textwrap.dedent(contents).lstrip())


def test_load_full_definition(tmp_path: Path) -> None:
    definition = tmp_path / "responses.yaml"
    _write_yaml(
        definition,
        """
        parse:
          - complete:
              template_variables: [region]
        provision_apply:
          - log: {level: info, output: creating instance}
          - complete: {state: applied}
        provision_plan_map:
          stop:
            - log: {level: 3, output: stopping}
            - complete: {}
        """,
    )

    responses = load_responses(definition)

    assert responses.parse[0].complete.template_variables == ("region",)
    assert responses.provision_apply == [
        ProvisionResponse(log=Log(level=LogLevel.INFO, output="creating instance")),
        ProvisionResponse(complete=ProvisionComplete(state="applied")),
    ]
    assert responses.provision_plan is None
    assert responses.effective_plan == responses.provision_apply
    assert responses.provision_plan_map[WorkspaceTransition.STOP][0].log.level is LogLevel.WARN


def test_empty_document_is_an_empty_set(tmp_path: Path) -> None:
    definition = tmp_path / "empty.yaml"
    definition.write_text("")

    responses = load_responses(definition)

    assert list(responses.parse) == []
    assert responses.provision_apply_map == {}


@pytest.mark.parametrize(
    ("document", "fragment"),
    [
        ({"provison_apply": []}, "unknown key"),
        ({"provision_apply": {"log": {}}}, "expected a list"),
        ({"provision_apply": [{"log": {"level": "LOUD"}}]}, "unknown log level"),
        ({"provision_apply": [{"surprise": {}}]}, "provision_apply[0]"),
        ({"provision_apply_map": {"reboot": []}}, "unknown workspace transition"),
        (["parse"], "top level must be a mapping"),
    ],
)
def test_invalid_definitions(document, fragment) -> None:
    with pytest.raises(ConfigError) as excinfo:
        responses_from_mapping(document)
    assert fragment in str(excinfo.value)


def test_invalid_yaml(tmp_path: Path) -> None:
    definition = tmp_path / "broken.yaml"
    definition.write_text("parse: [\n")

    with pytest.raises(ConfigError) as excinfo:
        load_responses(definition)
    assert "Failed to parse YAML" in str(excinfo.value)
