"""
Topology reconciler.

This reconciler converges the remote assembly design towards a TopologySpec.

Steps
1) precondition checks on assembly existence
2) create missing platforms, then apply attachments, attributes and links
3) in update mode, delete user customized components no longer declared
4) push variables and delete undeclared remote variables

Every step reads remote state before writing, so running it again against the
same topology repeats only writes of identical values.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

from topology_orchestrator.core.errors import EntityAlreadyExists, EntityNotFound, RemoteAPIError
from topology_orchestrator.core.types import BestEffortResult, ComponentSpec, PlatformSpec, Scalar, TopologySpec
from topology_orchestrator.remote.base import ControlPlaneClient
from topology_orchestrator.workflow.attributes import AttributeUpdater

logger = logging.getLogger(__name__)

DESCRIPTION = "created by topology orchestrator"

CustomizedPredicate = Callable[[str, str], bool]


class TopologyReconciler:
    """
    Reconcile declared platforms, components and variables.

    updater
    Applies component attribute units. Defaults to an AttributeUpdater on the
    same client.

    is_customized
    Decides whether a remote component was added by a user. Only those are
    deleted when undeclared. Defaults to the control plane probe.
    """

    def __init__(
        self,
        client: ControlPlaneClient,
        updater: AttributeUpdater | None = None,
        is_customized: Optional[CustomizedPredicate] = None,
    ) -> None:
        self._client = client
        self._updater = updater or AttributeUpdater(client)
        self._is_customized = is_customized or client.is_user_customized_component

    def reconcile(self, spec: TopologySpec, is_update: bool) -> list[BestEffortResult]:
        """
        Run every reconciliation step in order.

        Returns the best effort results that carried a warning.
        """
        self.check_preconditions(spec, is_update)
        self.ensure_assembly(spec)
        warnings = self.reconcile_platforms(spec)
        if is_update:
            self.reconcile_components(spec)
        self.reconcile_variables(spec)
        return warnings

    def check_preconditions(self, spec: TopologySpec, is_update: bool) -> None:
        exists = self._client.assembly_exists()
        if is_update and not exists:
            raise EntityNotFound(f"{spec.assembly} not exists!")
        if not spec.auto_gen_name and not is_update and exists:
            raise EntityAlreadyExists(f"{spec.assembly} already exists!")

    def ensure_assembly(self, spec: TopologySpec) -> None:
        if self._client.assembly_exists():
            return
        logger.info("Creating assembly %s", spec.assembly)
        self._client.create_assembly(DESCRIPTION)

    def reconcile_platforms(self, spec: TopologySpec) -> list[BestEffortResult]:
        warnings: list[BestEffortResult] = []

        for platform in spec.sorted_platforms():
            logger.info("Creating platform %s", platform.name)
            self.ensure_platform(platform)

            for component in platform.components.values():
                if isinstance(component.attributes, Scalar):
                    logger.info(
                        "Unknown attribute shape for component %s in %s, skipped",
                        component.name,
                        platform.name,
                    )
                    continue

                result = self.reconcile_attachments(platform.name, component)
                if not result.ok:
                    logger.warning("%s", result.warning)
                    warnings.append(result)

                self._updater.apply_component_attributes(platform.name, component.name, component.attributes)

            if platform.links:
                self._client.update_platform_links(platform.name, list(platform.links))

        return warnings

    def ensure_platform(self, platform: PlatformSpec) -> bool:
        """
        Create the platform when missing and commit the design.

        Returns True when the platform was created.
        """
        if self._platform_exists(platform.name):
            logger.info("Platform %s already exists", platform.name)
            return False

        self._client.create_platform(platform.name, platform.pack, DESCRIPTION, DESCRIPTION)
        self._client.commit_design()
        logger.info("Created platform %s", platform.name)
        return True

    def reconcile_attachments(self, platform: str, component: ComponentSpec) -> BestEffortResult:
        """
        Add or update every declared attachment of a component.

        Failures do not propagate. The attachments are always cleared from the
        component afterwards.
        """
        try:
            for attachment, attributes in component.attachments.items():
                if self._attachment_exists(platform, component.name, attachment):
                    self._client.update_attachment(platform, component.name, attachment, attributes)
                else:
                    self._client.add_attachment(platform, component.name, attachment, attributes)
        except Exception as exc:
            return BestEffortResult(
                warning=f"attachments of {component.name} in {platform} not applied: {exc}"
            )
        finally:
            component.attachments = {}

        return BestEffortResult()

    def reconcile_components(self, spec: TopologySpec) -> list[str]:
        """
        Delete user customized components that are no longer declared.

        Returns the deleted unique names.
        """
        deleted: list[str] = []

        for platform in spec.platforms:
            if not platform.components:
                continue
            declared = platform.declared_component_names()

            for ref in self._client.list_platform_components(platform.name):
                if ref.name in declared:
                    continue
                if not self._is_customized(platform.name, ref.name):
                    continue
                logger.info("Deleting component %s from %s", ref.name, platform.name)
                self._client.delete_platform_component(platform.name, ref.name)
                deleted.append(ref.name)

        return deleted

    def reconcile_variables(self, spec: TopologySpec) -> list[str]:
        """
        Push declared variables and delete undeclared ones.

        Secure variables go first. Returns the deleted variable names.
        """
        deleted: list[str] = []

        for platform in spec.platforms:
            for name, value in platform.secure_variables.items():
                self._client.update_or_add_platform_variable(platform.name, name, value, True)
            for name, value in platform.variables.items():
                self._client.update_or_add_platform_variable(platform.name, name, value, False)

            declared = platform.declared_variable_names()
            for ref in self._client.list_platform_variables(platform.name):
                if ref.name not in declared:
                    logger.info("Deleting variable %s from %s", ref.name, platform.name)
                    self._client.delete_platform_variable(platform.name, ref.name)
                    deleted.append(ref.name)

        if spec.platforms:
            self._client.commit_design()

        return deleted

    def _platform_exists(self, platform: str) -> bool:
        try:
            self._client.get_platform(platform)
        except RemoteAPIError:
            return False
        return True

    def _attachment_exists(self, platform: str, component: str, attachment: str) -> bool:
        try:
            self._client.get_attachment(platform, component, attachment)
        except RemoteAPIError:
            return False
        return True
