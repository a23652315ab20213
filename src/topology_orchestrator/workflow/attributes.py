"""
Bounded concurrency attribute updater.

Purpose
Apply the attribute maps of one declared component to the control plane.

Behavior
Each unit is one unique name with its attribute map.
Units carrying authorization key material fan out onto a fixed size worker
pool, one unit per task. Every other unit is applied inline on the caller's
thread, in declaration order.

After dispatch the pool accepts no more work and the caller polls until every
task has finished, so the next workflow step sees converged attributes.

Workers only talk to the control plane. They never touch the in memory
topology.
"""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Optional

from topology_orchestrator.core.errors import RemoteAPIError
from topology_orchestrator.core.types import AttributeValue, ComponentSpec
from topology_orchestrator.remote.base import ControlPlaneClient
from topology_orchestrator.workflow.poll import Clock, SystemClock, poll_until

logger = logging.getLogger(__name__)

AUTH_KEYS_MARKER = "authorized_keys"


@dataclass(frozen=True)
class UpdaterConfig:
    """
    Updater configuration.

    worker_count
    Size of the pool created for each component batch.

    drain_poll_seconds
    Interval between checks while waiting for the pool to drain.

    auth_key_marker
    Attribute name that routes a unit onto the pool.
    """

    worker_count: int = 32
    drain_poll_seconds: float = 0.01
    auth_key_marker: str = AUTH_KEYS_MARKER


@dataclass
class UpdateReport:
    """Unique names applied inline and on the pool, in dispatch order."""

    inline: list[str] = field(default_factory=list)
    pooled: list[str] = field(default_factory=list)


class AttributeUpdater:
    """Apply component attribute units with create or update semantics."""

    def __init__(
        self,
        client: ControlPlaneClient,
        config: UpdaterConfig | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._client = client
        self._config = config or UpdaterConfig()
        self._clock = clock or SystemClock()

    def apply_component_attributes(
        self,
        platform: str,
        component: str,
        attributes: AttributeValue,
    ) -> UpdateReport:
        """
        Apply every unit of a component and wait for the pool to drain.

        The first pooled failure is raised after all tasks have finished.
        """
        units = ComponentSpec(name=component, attributes=attributes).units()
        report = UpdateReport()
        futures: list[tuple[str, Future[None]]] = []

        pool = ThreadPoolExecutor(
            max_workers=self._config.worker_count,
            thread_name_prefix=f"attrs-{platform}-{component}",
        )
        try:
            for unique_name, attrs in units:
                if self._config.auth_key_marker in attrs:
                    report.pooled.append(unique_name)
                    fut = pool.submit(self.apply_unit, platform, component, unique_name, attrs)
                    futures.append((unique_name, fut))
                else:
                    report.inline.append(unique_name)
                    self.apply_unit(platform, component, unique_name, attrs)
        finally:
            pool.shutdown(wait=False)
            self._drain(futures)
            # runs when an inline unit raised too
            first_error = self._log_failures(platform, futures)

        if first_error is not None:
            raise first_error

        return report

    def apply_unit(self, platform: str, component: str, unique_name: str, attributes: dict[str, str]) -> None:
        """Update the component when it exists, otherwise add it."""
        logger.info("Updating component %s of %s in %s", unique_name, component, platform)

        if self._component_exists(platform, unique_name):
            self._client.update_platform_component(platform, unique_name, attributes)
        else:
            self._client.add_platform_component(platform, component, unique_name, attributes)

    def _component_exists(self, platform: str, unique_name: str) -> bool:
        try:
            self._client.get_platform_component(platform, unique_name)
        except RemoteAPIError:
            return False
        return True

    @staticmethod
    def _log_failures(platform: str, futures: list[tuple[str, Future[None]]]) -> Optional[BaseException]:
        """Log every pooled failure and return the first one."""
        first_error: Optional[BaseException] = None
        for unique_name, fut in futures:
            exc = fut.exception()
            if exc is None:
                continue
            logger.error("Updating %s in %s failed: %s", unique_name, platform, exc)
            if first_error is None:
                first_error = exc
        return first_error

    def _drain(self, futures: list[tuple[str, Future[None]]]) -> None:
        if not futures:
            return
        poll_until(
            fetch=lambda: all(fut.done() for _, fut in futures),
            is_done=bool,
            interval_seconds=self._config.drain_poll_seconds,
            clock=self._clock,
        )
