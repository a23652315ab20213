from __future__ import annotations

import logging
from pathlib import Path

import pytest

from topology_orchestrator.core.errors import AutomationError
from topology_orchestrator.remote.mock import InMemoryControlPlane
from topology_orchestrator.workflow.inventory import (
    AutomationConfig,
    AutomationRunner,
    collect_inventory,
    format_ips,
    list_private_ips,
)


def _make_tool(tmp_path: Path, exit_code: int = 0) -> Path:
    """
    Fake automation tool.

    Prints the inventory path, the inventory content, and a line on stderr.
    """
    tool = tmp_path / "fake-tool"
    tool.write_text(
        "#!/bin/sh\n"
        'echo "inventory $2"\n'
        'cat "$2"\n'
        'echo "playbook $3" >&2\n'
        f"exit {exit_code}\n",
        encoding="utf-8",
    )
    tool.chmod(0o755)
    return tool


def _make_script(tmp_path: Path) -> Path:
    script = tmp_path / "site.yml"
    script.write_text("- hosts: all\n", encoding="utf-8")
    return script


def _make_client() -> InMemoryControlPlane:
    return InMemoryControlPlane(
        compute_components=["compute"],
        compute_ips={
            ("web", "compute"): ["10.0.0.1", "10.0.0.2"],
            ("db", "compute"): ["10.0.1.1"],
        },
    )


def test_private_ips_keep_remote_order():
    client = _make_client()

    ips = list_private_ips(client, "web", "compute")

    assert ips == ["10.0.0.1", "10.0.0.2"]
    assert format_ips(ips) == "10.0.0.1\n10.0.0.2\n"


def test_collect_inventory_filters_by_platform():
    client = _make_client()

    entries = collect_inventory(client, ["web", "db"], platform_filter="db")

    assert [e.ip for e in entries] == ["10.0.1.1"]
    assert entries[0].platform == "db"


def test_inventory_file_holds_filtered_ips(tmp_path: Path):
    client = _make_client()
    lines: list[str] = []
    runner = AutomationRunner(
        client,
        ["web"],
        config=AutomationConfig(tool=str(_make_tool(tmp_path))),
        output=lines.append,
    )
    inventory = tmp_path / "hosts"

    output = runner.run_automation(str(_make_script(tmp_path)), str(inventory), component_filter="compute")

    assert inventory.read_text(encoding="utf-8") == "10.0.0.1\n10.0.0.2\n"
    assert "10.0.0.1" in lines
    assert any(line.startswith("playbook ") for line in lines)
    assert output.splitlines() == lines


def test_non_matching_filter_still_runs_tool_with_empty_inventory(tmp_path: Path):
    client = _make_client()
    lines: list[str] = []
    runner = AutomationRunner(
        client,
        ["web"],
        config=AutomationConfig(tool=str(_make_tool(tmp_path))),
        output=lines.append,
    )
    inventory = tmp_path / "hosts"

    runner.run_automation(str(_make_script(tmp_path)), str(inventory), component_filter="nope")

    assert inventory.read_text(encoding="utf-8") == ""
    assert lines[0] == f"inventory {inventory.absolute()}"


def test_temporary_inventory_is_removed(tmp_path: Path):
    client = _make_client()
    lines: list[str] = []
    runner = AutomationRunner(
        client,
        ["web", "db"],
        config=AutomationConfig(tool=str(_make_tool(tmp_path))),
        output=lines.append,
    )

    runner.run_automation(str(_make_script(tmp_path)))

    temp_path = Path(lines[0].split(" ", 1)[1])
    assert lines[1:4] == ["10.0.0.1", "10.0.0.2", "10.0.1.1"]
    assert not temp_path.exists()


def test_tool_failure_raises_and_still_removes_temporary_inventory(tmp_path: Path):
    client = _make_client()
    lines: list[str] = []
    runner = AutomationRunner(
        client,
        ["web"],
        config=AutomationConfig(tool=str(_make_tool(tmp_path, exit_code=3))),
        output=lines.append,
    )

    with pytest.raises(AutomationError):
        runner.run_automation(str(_make_script(tmp_path)))

    temp_path = Path(lines[0].split(" ", 1)[1])
    assert not temp_path.exists()


def test_unreadable_script_is_rejected(tmp_path: Path):
    runner = AutomationRunner(_make_client(), ["web"])

    with pytest.raises(AutomationError):
        runner.run_automation(str(tmp_path / "missing.yml"))


def test_caller_inventory_is_kept_on_failure(tmp_path: Path):
    runner = AutomationRunner(
        _make_client(),
        ["web"],
        config=AutomationConfig(tool=str(tmp_path / "no-such-tool")),
        output=lambda line: None,
    )
    inventory = tmp_path / "hosts"

    with pytest.raises(AutomationError):
        runner.run_automation(str(_make_script(tmp_path)), str(inventory))

    assert inventory.exists()


def test_undecodable_tool_output_is_replaced(tmp_path: Path):
    tool = tmp_path / "noisy-tool"
    tool.write_text("#!/bin/sh\nprintf '\\377\\376 bad bytes\\n'\n", encoding="utf-8")
    tool.chmod(0o755)
    lines: list[str] = []
    runner = AutomationRunner(
        _make_client(),
        ["web"],
        config=AutomationConfig(tool=str(tool)),
        output=lines.append,
    )

    output = runner.run_automation(str(_make_script(tmp_path)), str(tmp_path / "hosts"))

    assert output == "\ufffd\ufffd bad bytes"
    assert lines == [output]


def test_resources_without_private_ip_are_logged(caplog: pytest.LogCaptureFixture):
    client = InMemoryControlPlane()
    client.list_compute_resources = lambda platform, component: [  # type: ignore[method-assign]
        {"name": "compute-0", "attributes": {"private_ip": "10.0.0.1"}},
        {"name": "compute-1", "attributes": {}},
    ]

    with caplog.at_level(logging.WARNING):
        ips = list_private_ips(client, "web", "compute")

    assert ips == ["10.0.0.1"]
    assert "compute-1" in caplog.text
