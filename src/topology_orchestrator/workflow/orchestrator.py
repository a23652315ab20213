"""
Orchestrator.

This orchestrator sequences one create or update run:
reconciliation, environment setup, scaling, commit, and deployment.

Progress
Each step moves a 0 to 100 indicator forward. The indicator ends at 100 on
every exit path, including raised errors.

Failure policy
Attachments, design pull and the relay toggle are best effort and surface as
warnings. The deployment trigger retries locally and reports its outcome.
Every other control plane failure propagates and aborts the run. Nothing is
rolled back, the run is safe to repeat.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from topology_orchestrator.core.audit import AuditLogger, RunEvent
from topology_orchestrator.core.errors import RemoteAPIError
from topology_orchestrator.core.types import BestEffortResult, DeploymentRecord, DeploymentStatus, TopologySpec
from topology_orchestrator.remote.base import ControlPlaneClient
from topology_orchestrator.workflow.attributes import AttributeUpdater, UpdaterConfig
from topology_orchestrator.workflow.deploy import (
    DeployOutcome,
    DeploymentTrigger,
    TriggerConfig,
    check_deployment_guard,
    wait_for_deployment,
)
from topology_orchestrator.workflow.poll import Clock, SystemClock, sleep_uninterrupted
from topology_orchestrator.workflow.progress import ProgressCallback, ProgressTracker
from topology_orchestrator.workflow.reconciler import CustomizedPredicate, TopologyReconciler
from topology_orchestrator.workflow.scaling import ScalingStage, commit_comment

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OrchestratorConfig:
    """
    Orchestrator configuration.

    no_deploy
    Stop after commit and report success without deploying.

    forced
    Skip confirmation before destructive operations.

    quiet
    Silence informational output in the runner.

    comment
    Commit and deployment comment. Blank uses the default description.

    settle_seconds
    Pause after the environment update.

    wait_for_deployment
    Poll the triggered deployment until it is terminal or the timeout passes.
    """

    no_deploy: bool = False
    forced: bool = False
    quiet: bool = False
    comment: Optional[str] = None
    settle_seconds: float = 1
    deploy_retries: int = 6
    deploy_retry_delay_seconds: float = 2
    wait_for_deployment: bool = False
    deployment_timeout_seconds: float = 90 * 60
    deployment_poll_seconds: float = 10
    audit_path: Optional[Path] = None
    updater: UpdaterConfig = field(default_factory=UpdaterConfig)


@dataclass(frozen=True)
class ProcessResult:
    """
    Outcome of a process run.

    deployment is set only when a deployment was triggered.
    warnings carries best effort failures.
    """

    outcome: DeployOutcome
    deployment: Optional[DeploymentRecord]
    warnings: list[str]
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.outcome != DeployOutcome.failed


class Orchestrator:
    def __init__(
        self,
        client: ControlPlaneClient,
        config: OrchestratorConfig | None = None,
        clock: Clock | None = None,
        on_progress: ProgressCallback | None = None,
        is_customized: Optional[CustomizedPredicate] = None,
    ) -> None:
        self._client = client
        self._config = config or OrchestratorConfig()
        self._clock = clock or SystemClock()
        self._on_progress = on_progress

        updater = AttributeUpdater(client, config=self._config.updater)
        self._reconciler = TopologyReconciler(client, updater=updater, is_customized=is_customized)
        self._audit = AuditLogger(Path(self._config.audit_path)) if self._config.audit_path else None
        self.progress = ProgressTracker(on_progress)

    def process(self, spec: TopologySpec, is_update: bool) -> ProcessResult:
        """
        Run the full create or update sequence for a topology.

        Raises on precondition and control plane failures.
        """
        self.progress = ProgressTracker(self._on_progress)
        try:
            result = self._process(spec, is_update)
        except Exception as exc:
            self._record(spec, is_update, "error", str(exc))
            raise
        finally:
            self.progress.finish()

        self._record(spec, is_update, result.outcome, result.message)
        return result

    def _process(self, spec: TopologySpec, is_update: bool) -> ProcessResult:
        client = self._client
        progress = self.progress
        stage = ScalingStage(client, spec.environment, self._config.comment)
        warnings: list[str] = []

        self._reconciler.check_preconditions(spec, is_update)
        progress.update(1)

        self._reconciler.ensure_assembly(spec)
        progress.update(5)

        for result in self._reconciler.reconcile_platforms(spec):
            warnings.append(result.warning or "")
        progress.update(15)

        if is_update:
            self._reconciler.reconcile_components(spec)
        self._reconciler.reconcile_variables(spec)
        progress.update(20)

        if not client.environment_exists():
            logger.info("Creating environment %s", spec.environment)
            client.create_environment()
        progress.update(30)

        if is_update:
            stage.push_redundancy(spec.scales)
        client.update_environment()
        progress.update(40)

        sleep_uninterrupted(self._clock, self._config.settle_seconds)
        if is_update:
            pulled = self._pull_design()
            if not pulled.ok:
                logger.warning("%s", pulled.warning)
                warnings.append(pulled.warning or "")
        progress.update(50)

        blocked = check_deployment_guard(client)
        if blocked is not None:
            return ProcessResult(outcome=blocked, deployment=None, warnings=warnings)

        if not stage.apply_scaling(spec.scales):
            stage.commit()
        progress.update(70)

        relay = self._toggle_relay(spec.delivery_relay_enabled)
        if not relay.ok:
            logger.warning("%s", relay.warning)
            warnings.append(relay.warning or "")

        if is_update:
            stage.commit()

        if self._config.no_deploy:
            logger.info("Created without deployment")
            return ProcessResult(outcome=DeployOutcome.skipped, deployment=None, warnings=warnings)

        logger.info("Starting deployment of %s", spec.environment)
        trigger = DeploymentTrigger(
            client,
            config=TriggerConfig(
                attempts=self._config.deploy_retries,
                delay_seconds=self._config.deploy_retry_delay_seconds,
            ),
            clock=self._clock,
        )
        triggered = trigger.trigger(commit_comment(self._config.comment))

        record = triggered.record
        if record is not None and self._config.wait_for_deployment:
            record = self.wait(record)

        return ProcessResult(
            outcome=triggered.outcome,
            deployment=record,
            warnings=warnings,
            message=triggered.message,
        )

    def wait(self, record: DeploymentRecord) -> DeploymentRecord:
        """Wait for a deployment and return its last observed state."""
        outcome = wait_for_deployment(
            self._client,
            record,
            poll_seconds=self._config.deployment_poll_seconds,
            timeout_seconds=self._config.deployment_timeout_seconds,
            clock=self._clock,
        )
        if outcome.timed_out:
            logger.warning("Deployment %s still running after timeout", record.deployment_id)
        return outcome.value or record

    def status(self) -> Optional[DeploymentStatus]:
        """Status of the latest environment deployment, None when never deployed."""
        latest = self._client.get_environment_deployment()
        if latest is None:
            return None
        return latest.status

    def retry_deployment(self) -> Optional[DeploymentRecord]:
        """
        Resubmit the latest deployment when it failed.

        Returns None when there is nothing to retry.
        """
        latest = self._client.get_environment_deployment()
        if latest is None or latest.status != DeploymentStatus.failed:
            logger.info("No failed deployment to retry")
            return None
        logger.info("Retrying deployment %s", latest.deployment_id)
        return self._client.retry_deployment(latest.deployment_id)

    def teardown(self, spec: TopologySpec) -> Optional[DeploymentRecord]:
        """
        Decommission the environment and delete every declared platform.

        Platforms are deleted in reverse creation order.
        """
        record = None
        if self._client.environment_exists():
            logger.info("Decommissioning environment %s", spec.environment)
            record = self._client.decommission_environment()
            if record is not None and self._config.wait_for_deployment:
                record = self.wait(record)
                if record.status != DeploymentStatus.complete:
                    raise RemoteAPIError(
                        f"decommission of {spec.environment} ended with status {record.status.value}"
                    )
            self._client.delete_environment()

        for platform in reversed(spec.sorted_platforms()):
            try:
                self._client.get_platform(platform.name)
            except RemoteAPIError:
                continue
            logger.info("Deleting platform %s", platform.name)
            self._client.delete_platform(platform.name)

        if spec.platforms:
            self._client.commit_design()
        return record

    def _pull_design(self) -> BestEffortResult:
        try:
            self._client.pull_design()
        except Exception as exc:
            return BestEffortResult(warning=f"pulling latest design failed: {exc}")
        return BestEffortResult()

    def _toggle_relay(self, enabled: bool) -> BestEffortResult:
        try:
            self._client.update_relay(enabled)
        except RemoteAPIError as exc:
            return BestEffortResult(warning=f"Cannot update relay: {exc}")
        return BestEffortResult()

    def _record(self, spec: TopologySpec, is_update: bool, outcome: str, message: str) -> None:
        if self._audit is None:
            return
        self._audit.record(
            RunEvent(
                assembly=spec.assembly,
                environment=spec.environment,
                update=is_update,
                outcome=outcome,
                message=message,
            )
        )
