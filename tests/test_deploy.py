from __future__ import annotations

from topology_orchestrator.core.errors import RemoteAPIError
from topology_orchestrator.core.types import DeploymentRecord, DeploymentStatus
from topology_orchestrator.remote.mock import InMemoryControlPlane
from topology_orchestrator.workflow.deploy import (
    DeployOutcome,
    DeploymentTrigger,
    TriggerConfig,
    TriggerState,
    check_deployment_guard,
    wait_for_deployment,
)
from topology_orchestrator.workflow.poll import FakeClock


def test_trigger_retries_until_success():
    client = InMemoryControlPlane()
    client.failures["deploy"] = [RemoteAPIError("busy"), RemoteAPIError("busy again")]
    clock = FakeClock()
    trigger = DeploymentTrigger(client, config=TriggerConfig(attempts=6, delay_seconds=2), clock=clock)

    result = trigger.trigger("release")

    assert result.outcome == DeployOutcome.deployed
    assert result.record is not None
    assert result.attempts == 3
    assert client.count("deploy") == 3
    assert clock.sleeps == [2, 2, 2]
    assert trigger.state == TriggerState.succeeded


def test_nothing_to_deploy_is_neutral_after_exhaustion():
    client = InMemoryControlPlane()
    client.failures["deploy"] = [RemoteAPIError("Nothing to deploy for this environment") for _ in range(6)]
    trigger = DeploymentTrigger(client, clock=FakeClock())

    result = trigger.trigger("release")

    assert result.outcome == DeployOutcome.not_needed
    assert result.ok
    assert result.record is None
    assert client.count("deploy") == 6
    assert trigger.state == TriggerState.exhausted


def test_other_errors_are_a_hard_failure_with_last_message():
    client = InMemoryControlPlane()
    client.failures["deploy"] = [RemoteAPIError(f"error {i}") for i in range(3)]
    trigger = DeploymentTrigger(client, config=TriggerConfig(attempts=3), clock=FakeClock())

    result = trigger.trigger("release")

    assert result.outcome == DeployOutcome.failed
    assert not result.ok
    assert result.message == "error 2"


def test_guard_blocks_active_and_failed_deployments():
    client = InMemoryControlPlane()
    assert check_deployment_guard(client) is None

    client.deployments.append(DeploymentRecord(deployment_id=1, status=DeploymentStatus.active))
    assert check_deployment_guard(client) == DeployOutcome.blocked_active

    client.deployments.append(DeploymentRecord(deployment_id=2, status=DeploymentStatus.failed))
    assert check_deployment_guard(client) == DeployOutcome.blocked_failed

    client.deployments.append(DeploymentRecord(deployment_id=3, status=DeploymentStatus.complete))
    assert check_deployment_guard(client) is None


def test_wait_for_deployment_polls_until_terminal():
    client = InMemoryControlPlane(
        deployment_script=[DeploymentStatus.active, DeploymentStatus.active, DeploymentStatus.complete]
    )
    clock = FakeClock()
    record = DeploymentRecord(deployment_id=7, status=DeploymentStatus.active)

    outcome = wait_for_deployment(client, record, poll_seconds=10, timeout_seconds=600, clock=clock)

    assert outcome.done
    assert outcome.value == DeploymentRecord(deployment_id=7, status=DeploymentStatus.complete)
    assert clock.sleeps == [10, 10]


def test_wait_for_deployment_stops_at_timeout():
    client = InMemoryControlPlane(deployment_script=[DeploymentStatus.active])
    clock = FakeClock()
    record = DeploymentRecord(deployment_id=7, status=DeploymentStatus.active)

    outcome = wait_for_deployment(client, record, poll_seconds=10, timeout_seconds=30, clock=clock)

    assert outcome.timed_out
    assert not outcome.done
    assert outcome.value is not None and outcome.value.status == DeploymentStatus.active
