"""
In memory control plane.

This client is used for tests and local simulations.
It behaves like a small assembly database keyed by platform and unique name.

Features
- Records every call, and separately every call that changed state
- Seeds pack default components when a platform is created
- Can inject failures per method name
- Can script deployment and procedure status progressions
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any, Optional

from topology_orchestrator.core.errors import RemoteAPIError
from topology_orchestrator.core.types import (
    DeploymentRecord,
    DeploymentStatus,
    PackIdentity,
    ProcedureRun,
    ProcedureStatus,
    RemoteEntityRef,
    ScaleSpec,
)
from topology_orchestrator.remote.base import ControlPlaneClient


@dataclass
class InMemoryControlPlane(ControlPlaneClient):
    """
    In memory control plane client.

    failures
    Mapping of method name to exceptions. Each call of that method pops and
    raises the first exception until the list is empty.

    pack_components
    Mapping of pack name to (unique name, component class) pairs created with
    every platform of that pack. They are not user customized.

    peers
    Clients of other assemblies in the same account, keyed by assembly name.
    list_assemblies searches them.

    deployment_script and procedure_script
    Statuses returned by successive status polls. The last entry repeats.

    mutations
    Only calls that changed state. Rewriting an identical value is not a
    mutation, so an idempotent run leaves this list unchanged.
    """

    assembly_present: bool = False
    environment_present: bool = False
    relay_enabled: bool = False

    platforms: dict[str, PackIdentity] = field(default_factory=dict)
    components: dict[str, dict[str, dict[str, str]]] = field(default_factory=dict)
    component_classes: dict[tuple[str, str], str] = field(default_factory=dict)
    customized: set[tuple[str, str]] = field(default_factory=set)
    attachments: dict[tuple[str, str, str], dict[str, str]] = field(default_factory=dict)
    variables: dict[str, dict[str, tuple[str, bool]]] = field(default_factory=dict)
    links: dict[str, list[str]] = field(default_factory=dict)
    redundancy: dict[tuple[str, str], ScaleSpec] = field(default_factory=dict)

    pack_components: dict[str, list[tuple[str, str]]] = field(default_factory=dict)
    compute_components: list[str] = field(default_factory=lambda: ["compute"])
    compute_ips: dict[tuple[str, str], list[str]] = field(default_factory=dict)
    actions: dict[tuple[str, str], list[str]] = field(default_factory=dict)
    instances: dict[tuple[str, str], list[str]] = field(default_factory=dict)

    deployments: list[DeploymentRecord] = field(default_factory=list)
    deployment_script: list[DeploymentStatus] = field(default_factory=list)
    procedures: list[ProcedureRun] = field(default_factory=list)
    procedure_script: list[ProcedureStatus] = field(default_factory=list)

    failures: dict[str, list[Exception]] = field(default_factory=dict)
    calls: list[tuple[str, tuple[Any, ...]]] = field(default_factory=list)
    mutations: list[tuple[str, tuple[Any, ...]]] = field(default_factory=list)
    commits: list[tuple[str, str]] = field(default_factory=list)
    peers: dict[str, InMemoryControlPlane] = field(default_factory=dict, repr=False, compare=False)

    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def _call(self, name: str, *args: Any) -> None:
        with self._lock:
            self.calls.append((name, args))
            pending = self.failures.get(name)
            if pending:
                raise pending.pop(0)

    def _mutated(self, name: str, *args: Any) -> None:
        with self._lock:
            self.mutations.append((name, args))

    def count(self, name: str) -> int:
        """Number of recorded calls to a method."""
        return sum(1 for call, _ in self.calls if call == name)

    # assembly

    def assembly_exists(self) -> bool:
        self._call("assembly_exists")
        return self.assembly_present

    def create_assembly(self, description: str) -> None:
        self._call("create_assembly", description)
        if not self.assembly_present:
            self.assembly_present = True
            self._mutated("create_assembly", description)

    def list_assemblies(self, prefix: str) -> list[str]:
        self._call("list_assemblies", prefix)
        return sorted(
            name
            for name, client in self.peers.items()
            if client.assembly_present and (name == prefix or name.startswith(f"{prefix}-"))
        )

    # design time

    def get_platform(self, platform: str) -> dict[str, Any]:
        self._call("get_platform", platform)
        pack = self.platforms.get(platform)
        if pack is None:
            raise RemoteAPIError(f"platform {platform} not found")
        return {"name": platform, "pack": pack.name, "version": pack.version, "source": pack.source}

    def create_platform(self, platform: str, pack: PackIdentity, comment: str, description: str) -> None:
        self._call("create_platform", platform, pack)
        if platform in self.platforms:
            raise RemoteAPIError(f"platform {platform} already exists")
        self.platforms[platform] = pack
        self.components[platform] = {}
        self.variables[platform] = {}
        for unique_name, component in self.pack_components.get(pack.name, []):
            self.components[platform][unique_name] = {}
            self.component_classes[(platform, unique_name)] = component
        self._mutated("create_platform", platform, pack)

    def delete_platform(self, platform: str) -> None:
        self._call("delete_platform", platform)
        if platform not in self.platforms:
            raise RemoteAPIError(f"platform {platform} not found")
        del self.platforms[platform]
        self.components.pop(platform, None)
        self.variables.pop(platform, None)
        self.links.pop(platform, None)
        self._mutated("delete_platform", platform)

    def update_platform_links(self, platform: str, links: list[str]) -> None:
        self._call("update_platform_links", platform, list(links))
        self._require_platform(platform)
        if self.links.get(platform) != list(links):
            self.links[platform] = list(links)
            self._mutated("update_platform_links", platform, list(links))

    def list_platform_components(self, platform: str) -> list[RemoteEntityRef]:
        self._call("list_platform_components", platform)
        self._require_platform(platform)
        return [RemoteEntityRef(platform=platform, name=n) for n in self.components[platform]]

    def get_platform_component(self, platform: str, unique_name: str) -> dict[str, Any]:
        self._call("get_platform_component", platform, unique_name)
        attrs = self.components.get(platform, {}).get(unique_name)
        if attrs is None:
            raise RemoteAPIError(f"component {unique_name} not found in {platform}")
        return {"name": unique_name, "attributes": dict(attrs)}

    def add_platform_component(
        self,
        platform: str,
        component: str,
        unique_name: str,
        attributes: dict[str, str],
    ) -> None:
        self._call("add_platform_component", platform, component, unique_name)
        self._require_platform(platform)
        with self._lock:
            if unique_name in self.components[platform]:
                raise RemoteAPIError(f"component {unique_name} already exists in {platform}")
            self.components[platform][unique_name] = dict(attributes)
            self.component_classes[(platform, unique_name)] = component
            self.customized.add((platform, unique_name))
        self._mutated("add_platform_component", platform, unique_name)

    def update_platform_component(self, platform: str, unique_name: str, attributes: dict[str, str]) -> None:
        self._call("update_platform_component", platform, unique_name)
        with self._lock:
            current = self.components.get(platform, {}).get(unique_name)
            if current is None:
                raise RemoteAPIError(f"component {unique_name} not found in {platform}")
            changed = {**current, **attributes} != current
            current.update(attributes)
        if changed:
            self._mutated("update_platform_component", platform, unique_name)

    def delete_platform_component(self, platform: str, unique_name: str) -> None:
        self._call("delete_platform_component", platform, unique_name)
        if self.components.get(platform, {}).pop(unique_name, None) is None:
            raise RemoteAPIError(f"component {unique_name} not found in {platform}")
        self.customized.discard((platform, unique_name))
        self._mutated("delete_platform_component", platform, unique_name)

    def is_user_customized_component(self, platform: str, unique_name: str) -> bool:
        self._call("is_user_customized_component", platform, unique_name)
        return (platform, unique_name) in self.customized

    def get_attachment(self, platform: str, component: str, attachment: str) -> dict[str, Any]:
        self._call("get_attachment", platform, component, attachment)
        attrs = self.attachments.get((platform, component, attachment))
        if attrs is None:
            raise RemoteAPIError(f"attachment {attachment} not found on {component}")
        return {"name": attachment, "attributes": dict(attrs)}

    def add_attachment(self, platform: str, component: str, attachment: str, attributes: dict[str, str]) -> None:
        self._call("add_attachment", platform, component, attachment)
        self.attachments[(platform, component, attachment)] = dict(attributes)
        self._mutated("add_attachment", platform, component, attachment)

    def update_attachment(
        self,
        platform: str,
        component: str,
        attachment: str,
        attributes: dict[str, str],
    ) -> None:
        self._call("update_attachment", platform, component, attachment)
        current = self.attachments[(platform, component, attachment)]
        if {**current, **attributes} != current:
            current.update(attributes)
            self._mutated("update_attachment", platform, component, attachment)

    def list_platform_variables(self, platform: str) -> list[RemoteEntityRef]:
        self._call("list_platform_variables", platform)
        self._require_platform(platform)
        return [RemoteEntityRef(platform=platform, name=n) for n in self.variables[platform]]

    def update_or_add_platform_variable(self, platform: str, name: str, value: str, secure: bool) -> None:
        self._call("update_or_add_platform_variable", platform, name, secure)
        self._require_platform(platform)
        if self.variables[platform].get(name) != (value, secure):
            self.variables[platform][name] = (value, secure)
            self._mutated("update_or_add_platform_variable", platform, name)

    def delete_platform_variable(self, platform: str, name: str) -> None:
        self._call("delete_platform_variable", platform, name)
        if self.variables.get(platform, {}).pop(name, None) is None:
            raise RemoteAPIError(f"variable {name} not found in {platform}")
        self._mutated("delete_platform_variable", platform, name)

    def commit_design(self) -> None:
        self._call("commit_design")
        self.commits.append(("design", ""))

    # run time

    def environment_exists(self) -> bool:
        self._call("environment_exists")
        return self.environment_present

    def create_environment(self) -> None:
        self._call("create_environment")
        if not self.environment_present:
            self.environment_present = True
            self._mutated("create_environment")

    def update_environment(self) -> None:
        self._call("update_environment")
        if not self.environment_present:
            raise RemoteAPIError("environment not found")

    def pull_design(self) -> None:
        self._call("pull_design")

    def update_redundancy_config(self, scale: ScaleSpec) -> None:
        self._call("update_redundancy_config", scale)
        key = (scale.platform, scale.component)
        if self.redundancy.get(key) != scale:
            self.redundancy[key] = scale
            self._mutated("update_redundancy_config", key)

    def commit_environment(self, comment: str) -> None:
        self._call("commit_environment", comment)
        self.commits.append(("environment", comment))

    def update_relay(self, enabled: bool) -> None:
        self._call("update_relay", enabled)
        if self.relay_enabled != enabled:
            self.relay_enabled = enabled
            self._mutated("update_relay", enabled)

    def deploy(self, comment: str) -> DeploymentRecord:
        self._call("deploy", comment)
        record = DeploymentRecord(deployment_id=len(self.deployments) + 1, status=DeploymentStatus.active)
        self.deployments.append(record)
        return record

    def get_deployment(self, deployment_id: int) -> DeploymentRecord:
        self._call("get_deployment", deployment_id)
        status = self._next_status(self.deployment_script, DeploymentStatus.complete)
        return DeploymentRecord(deployment_id=deployment_id, status=status)

    def get_environment_deployment(self) -> Optional[DeploymentRecord]:
        self._call("get_environment_deployment")
        if not self.deployments:
            return None
        return self.deployments[-1]

    def retry_deployment(self, deployment_id: int) -> DeploymentRecord:
        self._call("retry_deployment", deployment_id)
        record = DeploymentRecord(deployment_id=deployment_id, status=DeploymentStatus.active)
        self.deployments.append(record)
        return record

    def decommission_environment(self) -> Optional[DeploymentRecord]:
        self._call("decommission_environment")
        if not self.environment_present:
            return None
        record = DeploymentRecord(deployment_id=len(self.deployments) + 1, status=DeploymentStatus.active)
        self.deployments.append(record)
        self._mutated("decommission_environment")
        return record

    def delete_environment(self) -> None:
        self._call("delete_environment")
        if self.environment_present:
            self.environment_present = False
            self._mutated("delete_environment")

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
        self._call("execute_procedure", platform, component, action, arguments, instances, rollout_percent)
        run = ProcedureRun(procedure_id=len(self.procedures) + 1, status=ProcedureStatus.active)
        self.procedures.append(run)
        return run

    def get_procedure_status(self, procedure_id: int) -> ProcedureStatus:
        self._call("get_procedure_status", procedure_id)
        return self._next_status(self.procedure_script, ProcedureStatus.complete)

    def list_actions(self, platform: str, component: str) -> list[str]:
        self._call("list_actions", platform, component)
        return list(self.actions.get((platform, component), []))

    def list_instances(self, platform: str, component: str) -> list[str]:
        self._call("list_instances", platform, component)
        return list(self.instances.get((platform, component), []))

    def list_compute_components(self) -> list[str]:
        self._call("list_compute_components")
        return list(self.compute_components)

    def list_compute_resources(self, platform: str, component: str) -> list[dict[str, Any]]:
        self._call("list_compute_resources", platform, component)
        return [
            {"name": f"{component}-{idx}", "attributes": {"private_ip": ip}}
            for idx, ip in enumerate(self.compute_ips.get((platform, component), []))
        ]

    def _require_platform(self, platform: str) -> None:
        if platform not in self.platforms:
            raise RemoteAPIError(f"platform {platform} not found")

    @staticmethod
    def _next_status(script: list[Any], default: Any) -> Any:
        if not script:
            return default
        if len(script) == 1:
            return script[0]
        return script.pop(0)


@dataclass
class InMemoryControlPlaneFactory:
    """
    Factory handing out one InMemoryControlPlane per assembly name.

    template is used to seed each new client with packs and compute data.
    """

    template: InMemoryControlPlane = field(default_factory=InMemoryControlPlane)
    clients: dict[str, InMemoryControlPlane] = field(default_factory=dict)

    def for_assembly(self, assembly: str, environment: str) -> InMemoryControlPlane:
        client = self.clients.get(assembly)
        if client is None:
            client = InMemoryControlPlane(
                pack_components=dict(self.template.pack_components),
                compute_components=list(self.template.compute_components),
                compute_ips=dict(self.template.compute_ips),
                peers=self.clients,
            )
            self.clients[assembly] = client
        return client
