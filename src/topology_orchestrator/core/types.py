"""
Core types.

This file defines the shared data structures used across the workflow.

Important design choice
The topology types describe declared state only. Remote state is observed
through the control plane client and referenced by RemoteEntityRef.

Attribute variants
A component attribute map is classified once, when the topology is loaded:
Scalar, FlatAttrs, or NestedAttrs. The reconciler dispatches on the variant
and never inspects raw map shapes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Dict, List, Optional, Union

from topology_orchestrator.core.errors import ValidationError


class DeploymentStatus(str, Enum):
    """
    Deployment status as reported by the control plane.

    complete and failed are terminal.
    other covers any status string the workflow does not act on.
    """

    active = "active"
    pending = "pending"
    complete = "complete"
    failed = "failed"
    other = "other"

    @classmethod
    def parse(cls, raw: Optional[str]) -> "DeploymentStatus":
        try:
            return cls(str(raw or "").lower())
        except ValueError:
            return cls.other

    @property
    def terminal(self) -> bool:
        return self in (DeploymentStatus.complete, DeploymentStatus.failed)


class ProcedureStatus(str, Enum):
    """
    Procedure run status.

    active and pending mean the run is still in progress.
    """

    active = "active"
    pending = "pending"
    complete = "complete"
    other = "other"

    @classmethod
    def parse(cls, raw: Optional[str]) -> "ProcedureStatus":
        try:
            return cls(str(raw or "").lower())
        except ValueError:
            return cls.other

    @property
    def in_progress(self) -> bool:
        return self in (ProcedureStatus.active, ProcedureStatus.pending)


class ExitCode(IntEnum):
    """
    Outcome codes exposed to the surrounding command line layer.
    """

    normal = 0
    unknown = 1
    wrong_parameter = 2
    entity_not_found = 3
    client_error = 4
    not_complete = 5


@dataclass(frozen=True)
class Scalar:
    """A bare scalar where an attribute map was expected."""

    value: str


@dataclass(frozen=True)
class FlatAttrs:
    """
    Attributes applied to the component itself.

    values maps attribute name to value.
    """

    values: Dict[str, str]


@dataclass(frozen=True)
class NestedAttrs:
    """
    Attributes keyed by unique name.

    values maps unique name to an attribute map. Each unique name is a separate
    remote component of the same component class.
    """

    values: Dict[str, Dict[str, str]]


AttributeValue = Union[Scalar, FlatAttrs, NestedAttrs]


@dataclass(frozen=True)
class PackIdentity:
    """
    Pack backing a platform.

    name is the pack name, version the pack version, source the pack catalog.
    """

    name: str
    version: str
    source: str


@dataclass
class ComponentSpec:
    """
    A declared component.

    attachments maps attachment name to its attribute map. It is cleared after
    the reconciler has processed it.
    """

    name: str
    attributes: AttributeValue
    attachments: Dict[str, Dict[str, str]] = field(default_factory=dict)

    def units(self) -> List[tuple[str, Dict[str, str]]]:
        """
        Return (unique_name, attribute map) pairs for this component.

        FlatAttrs yields one pair keyed by the component name.
        Scalar yields nothing.
        """
        if isinstance(self.attributes, NestedAttrs):
            return [(k, dict(v)) for k, v in self.attributes.values.items()]
        if isinstance(self.attributes, FlatAttrs):
            return [(self.name, dict(self.attributes.values))]
        return []

    def declared_names(self) -> List[str]:
        """Component name plus every nested unique name."""
        names = [self.name]
        if isinstance(self.attributes, NestedAttrs):
            names.extend(self.attributes.values.keys())
        return names


@dataclass
class PlatformSpec:
    """
    A declared platform.

    order is the sort key used to create dependencies first. Platforms with
    the same order keep their declaration order.
    """

    name: str
    pack: PackIdentity
    components: Dict[str, ComponentSpec] = field(default_factory=dict)
    links: List[str] = field(default_factory=list)
    variables: Dict[str, str] = field(default_factory=dict)
    secure_variables: Dict[str, str] = field(default_factory=dict)
    order: int = 0

    def declared_variable_names(self) -> set[str]:
        return set(self.secure_variables) | set(self.variables)

    def declared_component_names(self) -> set[str]:
        names: set[str] = set()
        for comp in self.components.values():
            names.update(comp.declared_names())
        return names


@dataclass(frozen=True)
class ScaleSpec:
    """
    Redundancy settings for a platform component.

    percent_deploy is the share of instances deployed at once.
    """

    platform: str
    component: str
    current: int
    min: int
    max: int
    percent_deploy: int = 100


@dataclass
class TopologySpec:
    """
    Declared topology for one assembly and one environment.

    auto_gen_name
    When True, each create produces a new assembly with a random suffix.

    delivery_relay_enabled
    Desired state of the environment default delivery relay.
    """

    assembly: str
    environment: str
    platforms: List[PlatformSpec] = field(default_factory=list)
    scales: List[ScaleSpec] = field(default_factory=list)
    auto_gen_name: bool = False
    delivery_relay_enabled: bool = False

    def __post_init__(self) -> None:
        seen: set[str] = set()
        for platform in self.platforms:
            if platform.name in seen:
                raise ValidationError(f"duplicate platform name: {platform.name}")
            seen.add(platform.name)

    def sorted_platforms(self) -> List[PlatformSpec]:
        """Platforms in creation order. sorted is stable."""
        return sorted(self.platforms, key=lambda p: p.order)

    def platform_names(self) -> List[str]:
        return [p.name for p in self.platforms]


@dataclass(frozen=True)
class RemoteEntityRef:
    """
    Composite key of a remote platform child.

    name is the component unique name or the variable name.
    """

    platform: str
    name: str


@dataclass(frozen=True)
class DeploymentRecord:
    deployment_id: int
    status: DeploymentStatus = DeploymentStatus.pending


@dataclass(frozen=True)
class ProcedureRun:
    procedure_id: int
    status: ProcedureStatus = ProcedureStatus.pending


@dataclass(frozen=True)
class InventoryEntry:
    """One compute node address. Built per request and never stored."""

    platform: str
    component: str
    ip: str


@dataclass(frozen=True)
class BestEffortResult:
    """
    Outcome of a step whose failure must not stop the run.

    warning is None on success. Callers log it.
    """

    warning: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.warning is None
