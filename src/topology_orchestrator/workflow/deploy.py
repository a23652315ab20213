"""
Deployment trigger.

State machine
idle -> deploying -> succeeded
                  -> exhausted

The trigger waits a fixed delay before every attempt and retries any failure
until the attempt budget is spent. It never raises: the outcome is returned
and reported by the caller.

A guard runs first. An environment whose latest deployment is active or failed
blocks a new deployment.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import StrEnum
from typing import Optional

from topology_orchestrator.core.types import DeploymentRecord, DeploymentStatus
from topology_orchestrator.remote.base import ControlPlaneClient
from topology_orchestrator.workflow.poll import Clock, PollOutcome, SystemClock, poll_until, sleep_uninterrupted

logger = logging.getLogger(__name__)

NOTHING_TO_DEPLOY_MARKER = "nothing to deploy"


class TriggerState(StrEnum):
    idle = "idle"
    deploying = "deploying"
    succeeded = "succeeded"
    exhausted = "exhausted"


class DeployOutcome(StrEnum):
    """
    Reported outcome of the deployment stage.

    deployed, not_needed, skipped and the two blocked outcomes are
    informational. failed is the only error.
    """

    deployed = "deployed"
    not_needed = "not_needed"
    failed = "failed"
    skipped = "skipped"
    blocked_active = "blocked_active"
    blocked_failed = "blocked_failed"


@dataclass(frozen=True)
class TriggerConfig:
    """
    attempts
    Maximum number of deploy calls.

    delay_seconds
    Wait before each attempt, including the first.
    """

    attempts: int = 6
    delay_seconds: float = 2


@dataclass(frozen=True)
class TriggerResult:
    outcome: DeployOutcome
    record: Optional[DeploymentRecord]
    attempts: int
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.outcome != DeployOutcome.failed


def check_deployment_guard(client: ControlPlaneClient) -> Optional[DeployOutcome]:
    """
    Return a blocking outcome when the environment cannot take a new deployment.
    """
    latest = client.get_environment_deployment()
    if latest is None:
        return None
    if latest.status == DeploymentStatus.active:
        logger.info("Deployment %s is still active, not deploying", latest.deployment_id)
        return DeployOutcome.blocked_active
    if latest.status == DeploymentStatus.failed:
        logger.info("Deployment %s failed, retry it before deploying again", latest.deployment_id)
        return DeployOutcome.blocked_failed
    return None


class DeploymentTrigger:
    """Trigger a deployment with a bounded retry budget."""

    def __init__(
        self,
        client: ControlPlaneClient,
        config: TriggerConfig | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._client = client
        self._config = config or TriggerConfig()
        self._clock = clock or SystemClock()
        self.state = TriggerState.idle

    def trigger(self, comment: str) -> TriggerResult:
        self.state = TriggerState.deploying
        remaining = self._config.attempts
        attempts = 0
        last_error = ""

        while remaining > 0:
            sleep_uninterrupted(self._clock, self._config.delay_seconds)
            attempts += 1
            try:
                record = self._client.deploy(comment)
            except Exception as exc:
                last_error = str(exc)
                remaining -= 1
                logger.debug("Deploy attempt %d failed: %s", attempts, last_error)
                continue

            self.state = TriggerState.succeeded
            logger.info("Deployment %s is running", record.deployment_id)
            return TriggerResult(outcome=DeployOutcome.deployed, record=record, attempts=attempts)

        self.state = TriggerState.exhausted
        if NOTHING_TO_DEPLOY_MARKER in last_error.lower():
            logger.info("No need to deploy")
            return TriggerResult(
                outcome=DeployOutcome.not_needed,
                record=None,
                attempts=attempts,
                message=last_error,
            )

        logger.error("Deployment failed: %s", last_error)
        return TriggerResult(outcome=DeployOutcome.failed, record=None, attempts=attempts, message=last_error)


def wait_for_deployment(
    client: ControlPlaneClient,
    record: DeploymentRecord,
    poll_seconds: float,
    timeout_seconds: float,
    clock: Clock | None = None,
) -> PollOutcome[DeploymentRecord]:
    """Poll a deployment until it reaches a terminal status or the timeout."""
    return poll_until(
        fetch=lambda: client.get_deployment(record.deployment_id),
        is_done=lambda rec: rec.status.terminal,
        interval_seconds=poll_seconds,
        deadline_seconds=timeout_seconds,
        clock=clock,
        initial=record,
    )
