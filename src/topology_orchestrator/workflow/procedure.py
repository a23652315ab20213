"""
Procedure executor.

Runs a named action against a platform component and waits for it.

Listing shortcuts
action "list" prints the available actions.
instances "list" prints the component instances.
Neither submits anything.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

from topology_orchestrator.core.errors import RemoteAPIError, ValidationError
from topology_orchestrator.core.types import ExitCode, ProcedureStatus
from topology_orchestrator.remote.base import ControlPlaneClient
from topology_orchestrator.workflow.poll import Clock, poll_until

logger = logging.getLogger(__name__)

LIST_KEYWORD = "list"
PROCEDURE_NOT_COMPLETE = "procedure did not complete"


@dataclass(frozen=True)
class ProcedureConfig:
    poll_seconds: float = 3


def parse_arguments(args_json: Optional[str]) -> dict[str, Any]:
    """Parse the procedure argument blob. Blank means no arguments."""
    if args_json is None or not args_json.strip():
        return {}
    try:
        parsed = json.loads(args_json)
    except json.JSONDecodeError as exc:
        raise ValidationError(f"procedure arguments are not valid json: {exc}") from exc
    if not isinstance(parsed, dict):
        raise ValidationError("procedure arguments must be a json object")
    return parsed


def parse_instances(instances: Optional[str]) -> Optional[list[str]]:
    """Split a comma separated instance list. Blank means every instance."""
    if instances is None or not instances.strip():
        return None
    return [name.strip() for name in instances.split(",") if name.strip()]


class ProcedureExecutor:
    def __init__(
        self,
        client: ControlPlaneClient,
        config: ProcedureConfig | None = None,
        clock: Clock | None = None,
        output: Callable[[str], None] = print,
    ) -> None:
        self._client = client
        self._config = config or ProcedureConfig()
        self._clock = clock
        self._output = output

    def run_procedure(
        self,
        platform: str,
        component: str,
        action: str,
        args_json: Optional[str] = None,
        instances: Optional[str] = None,
        rollout_percent: int = 100,
    ) -> ExitCode:
        if instances is not None and instances.strip().lower() == LIST_KEYWORD:
            for name in self._client.list_instances(platform, component):
                self._output(name)
            return ExitCode.normal

        if action.lower() == LIST_KEYWORD:
            for name in self._client.list_actions(platform, component):
                self._output(name)
            return ExitCode.normal

        try:
            arguments = parse_arguments(args_json)
            if not 1 <= rollout_percent <= 100:
                raise ValidationError(f"rollout percent must be within 1 and 100, got {rollout_percent}")
        except ValidationError as exc:
            logger.error("%s", exc)
            return ExitCode.wrong_parameter

        logger.info("Procedure %s on %s/%s is running", action, platform, component)
        try:
            run = self._client.execute_procedure(
                platform,
                component,
                action,
                arguments,
                parse_instances(instances),
                rollout_percent,
            )
        except RemoteAPIError as exc:
            logger.error("Procedure %s could not be submitted: %s", action, exc)
            return ExitCode.client_error

        outcome = poll_until(
            fetch=lambda: self._client.get_procedure_status(run.procedure_id),
            is_done=lambda status: not status.in_progress,
            interval_seconds=self._config.poll_seconds,
            clock=self._clock,
            abandon_on=(RemoteAPIError,),
            initial=run.status,
        )
        if outcome.error is not None:
            logger.warning("Polling procedure %s stopped: %s", run.procedure_id, outcome.error)

        if outcome.value == ProcedureStatus.complete:
            logger.info("Procedure %s completed", run.procedure_id)
            return ExitCode.normal

        logger.error("%s", PROCEDURE_NOT_COMPLETE)
        return ExitCode.not_complete
