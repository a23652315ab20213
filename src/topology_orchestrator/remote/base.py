"""
Control plane interfaces.

Goal
Define a stable interface for the remote infrastructure control plane without
binding the workflow to a specific transport or API client.

Design notes
A client is scoped to one assembly and one environment. The factory creates a
new client when the assembly name changes, for example with auto generated
assembly names.

Every method is synchronous and may raise RemoteAPIError. The workflow treats
the client as shared read only state, so a single client instance is used from
the attribute worker pool as well.
"""

from __future__ import annotations

from typing import Any, Optional, Protocol

from topology_orchestrator.core.types import (
    DeploymentRecord,
    PackIdentity,
    ProcedureRun,
    ProcedureStatus,
    RemoteEntityRef,
    ScaleSpec,
)


class ControlPlaneClient(Protocol):
    """
    Minimal control plane client interface.

    Design time calls change the assembly design and only take effect after
    commit_design. Run time calls act on the environment.
    """

    # assembly

    def assembly_exists(self) -> bool:
        """Return True when the assembly exists remotely."""

    def create_assembly(self, description: str) -> None:
        """Create the assembly."""

    def list_assemblies(self, prefix: str) -> list[str]:
        """Names of existing assemblies generated from prefix, sorted."""

    # design time

    def get_platform(self, platform: str) -> dict[str, Any]:
        """Return the platform resource. Raises RemoteAPIError when missing."""

    def create_platform(self, platform: str, pack: PackIdentity, comment: str, description: str) -> None:
        """Create a platform from a pack."""

    def delete_platform(self, platform: str) -> None:
        """Delete a platform from the design."""

    def update_platform_links(self, platform: str, links: list[str]) -> None:
        """Replace the platform links with the given list."""

    def list_platform_components(self, platform: str) -> list[RemoteEntityRef]:
        """Return every component of the platform."""

    def get_platform_component(self, platform: str, unique_name: str) -> dict[str, Any]:
        """Return the component resource. Raises RemoteAPIError when missing."""

    def add_platform_component(
        self,
        platform: str,
        component: str,
        unique_name: str,
        attributes: dict[str, str],
    ) -> None:
        """Add a component of class component under unique_name."""

    def update_platform_component(self, platform: str, unique_name: str, attributes: dict[str, str]) -> None:
        """Update component attributes."""

    def delete_platform_component(self, platform: str, unique_name: str) -> None:
        """Delete a component."""

    def is_user_customized_component(self, platform: str, unique_name: str) -> bool:
        """Return True when the component was added by a user rather than the pack."""

    def get_attachment(self, platform: str, component: str, attachment: str) -> dict[str, Any]:
        """Return the attachment resource. Raises RemoteAPIError when missing."""

    def add_attachment(self, platform: str, component: str, attachment: str, attributes: dict[str, str]) -> None:
        """Add an attachment to a component."""

    def update_attachment(
        self,
        platform: str,
        component: str,
        attachment: str,
        attributes: dict[str, str],
    ) -> None:
        """Update attachment attributes."""

    def list_platform_variables(self, platform: str) -> list[RemoteEntityRef]:
        """Return every variable of the platform."""

    def update_or_add_platform_variable(self, platform: str, name: str, value: str, secure: bool) -> None:
        """Set a platform variable, creating it when missing."""

    def delete_platform_variable(self, platform: str, name: str) -> None:
        """Delete a platform variable."""

    def commit_design(self) -> None:
        """Commit pending design changes."""

    # run time

    def environment_exists(self) -> bool:
        """Return True when the environment exists."""

    def create_environment(self) -> None:
        """Create the environment."""

    def update_environment(self) -> None:
        """Attach the environment to the current design and refresh its settings."""

    def pull_design(self) -> None:
        """Pull the latest committed design into the environment."""

    def update_redundancy_config(self, scale: ScaleSpec) -> None:
        """Push redundancy settings for a platform component."""

    def commit_environment(self, comment: str) -> None:
        """Commit pending environment changes."""

    def update_relay(self, enabled: bool) -> None:
        """Enable or disable the default delivery relay of the environment."""

    def deploy(self, comment: str) -> DeploymentRecord:
        """Trigger a deployment of the committed environment."""

    def get_deployment(self, deployment_id: int) -> DeploymentRecord:
        """Return the current state of a deployment."""

    def get_environment_deployment(self) -> Optional[DeploymentRecord]:
        """Return the latest deployment of the environment, or None."""

    def retry_deployment(self, deployment_id: int) -> DeploymentRecord:
        """Resubmit a failed deployment."""

    def decommission_environment(self) -> Optional[DeploymentRecord]:
        """Disable every platform of the environment and deploy the removal."""

    def delete_environment(self) -> None:
        """Delete the environment."""

    # operations

    def execute_procedure(
        self,
        platform: str,
        component: str,
        action: str,
        arguments: dict[str, Any],
        instances: Optional[list[str]],
        rollout_percent: int,
    ) -> ProcedureRun:
        """Submit an action against a component."""

    def get_procedure_status(self, procedure_id: int) -> ProcedureStatus:
        """Return the status of a procedure run."""

    def list_actions(self, platform: str, component: str) -> list[str]:
        """Return action names available for the component."""

    def list_instances(self, platform: str, component: str) -> list[str]:
        """Return instance names of the component."""

    def list_compute_components(self) -> list[str]:
        """Return component names of the compute class."""

    def list_compute_resources(self, platform: str, component: str) -> list[dict[str, Any]]:
        """Return compute node resources under a platform component."""


class ControlPlaneFactory(Protocol):
    """
    Create a control plane client for an assembly.

    This decouples the workflow from credentials, endpoints and sessions.
    """

    def for_assembly(self, assembly: str, environment: str) -> ControlPlaneClient:
        """Return a client scoped to the assembly and environment."""
