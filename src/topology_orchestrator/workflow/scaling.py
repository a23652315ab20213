"""
Scaling and environment commit.

push_redundancy sends redundancy settings only.
apply_scaling sends them and then commits the environment.
"""

from __future__ import annotations

import logging
from typing import Optional

from topology_orchestrator.core.types import ScaleSpec
from topology_orchestrator.remote.base import ControlPlaneClient

logger = logging.getLogger(__name__)

DEFAULT_COMMIT_DESCRIPTION = "committed by topology orchestrator"


def commit_comment(comment: Optional[str]) -> str:
    """Caller comment when non blank, else the default description."""
    if comment is None or not comment.strip():
        return DEFAULT_COMMIT_DESCRIPTION
    return comment


class ScalingStage:
    def __init__(self, client: ControlPlaneClient, environment: str, comment: Optional[str] = None) -> None:
        self._client = client
        self._environment = environment
        self._comment = comment

    def push_redundancy(self, scales: list[ScaleSpec]) -> None:
        for scale in scales:
            logger.info(
                "Updating compute size of %s/%s in environment %s",
                scale.platform,
                scale.component,
                self._environment,
            )
            self._client.update_redundancy_config(scale)

    def commit(self) -> None:
        self._client.commit_environment(commit_comment(self._comment))

    def apply_scaling(self, scales: list[ScaleSpec]) -> bool:
        """
        Push redundancy settings and commit the environment.

        Returns False without touching the control plane when no scales are
        declared.
        """
        if not scales:
            return False
        self.push_redundancy(scales)
        self.commit()
        return True
