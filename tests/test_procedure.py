from __future__ import annotations

from topology_orchestrator.core.errors import RemoteAPIError
from topology_orchestrator.core.types import ExitCode, ProcedureStatus
from topology_orchestrator.remote.mock import InMemoryControlPlane
from topology_orchestrator.workflow.poll import FakeClock
from topology_orchestrator.workflow.procedure import ProcedureExecutor, parse_instances


def _make_executor(client: InMemoryControlPlane, clock: FakeClock | None = None):
    lines: list[str] = []
    executor = ProcedureExecutor(client, clock=clock or FakeClock(), output=lines.append)
    return executor, lines


def test_list_action_only_lists_actions():
    client = InMemoryControlPlane(actions={("web", "tomcat"): ["restart", "backup"]})
    executor, lines = _make_executor(client)

    code = executor.run_procedure("web", "tomcat", "list")

    assert code == ExitCode.normal
    assert lines == ["restart", "backup"]
    assert client.count("execute_procedure") == 0
    assert client.count("list_actions") == 1


def test_list_instances_only_lists_instances():
    client = InMemoryControlPlane(instances={("web", "tomcat"): ["tomcat-1", "tomcat-2"]})
    executor, lines = _make_executor(client)

    code = executor.run_procedure("web", "tomcat", "restart", instances="list")

    assert code == ExitCode.normal
    assert lines == ["tomcat-1", "tomcat-2"]
    assert client.count("execute_procedure") == 0
    assert client.count("list_instances") == 1


def test_procedure_polls_until_complete():
    client = InMemoryControlPlane(
        procedure_script=[ProcedureStatus.active, ProcedureStatus.pending, ProcedureStatus.complete]
    )
    clock = FakeClock()
    executor, _ = _make_executor(client, clock)

    code = executor.run_procedure(
        "db",
        "postgres",
        "backup",
        '{"backup_type": "incremental"}',
        instances="db-1, db-2",
        rollout_percent=50,
    )

    assert code == ExitCode.normal
    assert clock.sleeps == [3, 3]
    (args,) = [a for name, a in client.calls if name == "execute_procedure"]
    assert args == ("db", "postgres", "backup", {"backup_type": "incremental"}, ["db-1", "db-2"], 50)


def test_non_complete_terminal_status_fails():
    client = InMemoryControlPlane(procedure_script=[ProcedureStatus.other])
    executor, _ = _make_executor(client)

    assert executor.run_procedure("db", "postgres", "backup") == ExitCode.not_complete


def test_polling_error_abandons_wait_as_not_complete():
    client = InMemoryControlPlane()
    client.failures["get_procedure_status"] = [RemoteAPIError("gateway timeout")]
    executor, _ = _make_executor(client)

    assert executor.run_procedure("db", "postgres", "backup") == ExitCode.not_complete
    assert client.count("get_procedure_status") == 1


def test_submit_failure_is_client_error():
    client = InMemoryControlPlane()
    client.failures["execute_procedure"] = [RemoteAPIError("no such action")]
    executor, _ = _make_executor(client)

    assert executor.run_procedure("db", "postgres", "backup") == ExitCode.client_error
    assert client.count("get_procedure_status") == 0


def test_malformed_arguments_are_rejected_before_submit():
    client = InMemoryControlPlane()
    executor, _ = _make_executor(client)

    assert executor.run_procedure("db", "postgres", "backup", "{not json") == ExitCode.wrong_parameter
    assert executor.run_procedure("db", "postgres", "backup", "[1, 2]") == ExitCode.wrong_parameter
    assert executor.run_procedure("db", "postgres", "backup", rollout_percent=0) == ExitCode.wrong_parameter
    assert client.count("execute_procedure") == 0


def test_parse_instances():
    assert parse_instances(None) is None
    assert parse_instances("  ") is None
    assert parse_instances("a,b, c") == ["a", "b", "c"]
