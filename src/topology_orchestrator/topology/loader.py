"""
Topology loader.

Converts an already parsed mapping into a TopologySpec. Attribute variants are
decided here, once, so the reconciler never inspects raw shapes.

StaticTopologySource reads the mapping from a local json file.

Schema example
{
  "assembly": "shop",
  "environment": "dev",
  "auto_gen_name": false,
  "delivery_relay_enabled": true,
  "platforms": {
    "web": {
      "pack": "tomcat",
      "pack_version": "1",
      "pack_source": "main",
      "order": 2,
      "links": ["db"],
      "variables": {"APP": "shop"},
      "secure_variables": {"DB_PASS": "secret"},
      "components": {
        "tomcat": {"max_threads": "64", "attachments": {"warmup": {"run_on": "after-add"}}},
        "user": {"alice": {"authorized_keys": "[\"ssh-rsa ...\"]"}}
      }
    }
  },
  "scales": [
    {"platform": "web", "component": "compute", "current": 2, "min": 1, "max": 4, "percent_deploy": 50}
  ]
}

platforms may also be a list of objects that carry a "name" key.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from topology_orchestrator.core.errors import ValidationError
from topology_orchestrator.core.types import (
    AttributeValue,
    ComponentSpec,
    FlatAttrs,
    NestedAttrs,
    PackIdentity,
    PlatformSpec,
    Scalar,
    ScaleSpec,
    TopologySpec,
)

ATTACHMENTS = "attachments"


def _scalar(value: Any) -> str:
    """Render a scalar the way the control plane stores it."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return ""
    return str(value)


def _string_map(obj: Any) -> dict[str, str]:
    if not isinstance(obj, dict):
        return {}
    return {str(k): _scalar(v) for k, v in obj.items()}


def _attribute_value(component: str, raw: dict[str, Any]) -> AttributeValue:
    """
    Classify a component attribute map.

    All map values means NestedAttrs, all scalars means FlatAttrs.
    A mix is rejected.
    """
    nested = {k: v for k, v in raw.items() if isinstance(v, dict)}
    if not nested:
        if not raw:
            return NestedAttrs(values={})
        return FlatAttrs(values=_string_map(raw))
    if len(nested) != len(raw):
        raise ValidationError(f"component {component} mixes scalar attributes and nested attribute maps")
    return NestedAttrs(values={str(k): _string_map(v) for k, v in nested.items()})


def component_from_raw(name: str, raw: Any) -> ComponentSpec:
    """Convert one component entry into a ComponentSpec."""
    if not isinstance(raw, dict):
        return ComponentSpec(name=name, attributes=Scalar(value=_scalar(raw)))

    body = dict(raw)
    attachments_raw = body.pop(ATTACHMENTS, None) or {}
    if not isinstance(attachments_raw, dict):
        raise ValidationError(f"attachments of component {name} must be a mapping")
    attachments = {str(k): _string_map(v) for k, v in attachments_raw.items() if isinstance(v, dict)}

    return ComponentSpec(
        name=name,
        attributes=_attribute_value(name, body),
        attachments=attachments,
    )


def _platform_from_dict(name: str, obj: Any) -> PlatformSpec:
    if not isinstance(obj, dict):
        raise ValidationError(f"platform {name} must be a mapping")
    components_raw = obj.get("components", {}) or {}
    if not isinstance(components_raw, dict):
        raise ValidationError(f"components of platform {name} must be a mapping")

    links_raw = obj.get("links", []) or []

    return PlatformSpec(
        name=name,
        pack=PackIdentity(
            name=str(obj.get("pack", "")),
            version=str(obj.get("pack_version", "1")),
            source=str(obj.get("pack_source", "")),
        ),
        components={str(k): component_from_raw(str(k), v) for k, v in components_raw.items()},
        links=[str(x) for x in links_raw],
        variables=_string_map(obj.get("variables")),
        secure_variables=_string_map(obj.get("secure_variables")),
        order=int(obj.get("order", 0)),
    )


def _scale_from_dict(obj: dict[str, Any]) -> ScaleSpec:
    try:
        return ScaleSpec(
            platform=str(obj["platform"]),
            component=str(obj["component"]),
            current=int(obj["current"]),
            min=int(obj["min"]),
            max=int(obj["max"]),
            percent_deploy=int(obj.get("percent_deploy", 100)),
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise ValidationError(f"invalid scale entry {obj}: {exc}") from exc


def topology_from_dict(obj: dict[str, Any]) -> TopologySpec:
    """Convert a parsed topology mapping into a TopologySpec."""
    assembly = str(obj.get("assembly", "") or "")
    if not assembly:
        raise ValidationError("assembly name is required")

    platforms_raw = obj.get("platforms", {}) or {}
    platforms: list[PlatformSpec] = []
    if isinstance(platforms_raw, dict):
        for name, body in platforms_raw.items():
            platforms.append(_platform_from_dict(str(name), body or {}))
    elif isinstance(platforms_raw, list):
        for body in platforms_raw:
            if not isinstance(body, dict):
                raise ValidationError("platform entries must be mappings")
            platforms.append(_platform_from_dict(str(body.get("name", "")), body))
    else:
        raise ValidationError("platforms must be a mapping or a list")

    scales = [_scale_from_dict(x) for x in obj.get("scales", []) or [] if isinstance(x, dict)]

    return TopologySpec(
        assembly=assembly,
        environment=str(obj.get("environment", "") or ""),
        platforms=platforms,
        scales=scales,
        auto_gen_name=bool(obj.get("auto_gen_name", False)),
        delivery_relay_enabled=bool(obj.get("delivery_relay_enabled", False)),
    )


@dataclass(frozen=True)
class StaticTopologySource:
    """Load a topology from a local json file."""

    path: Path

    def load(self) -> TopologySpec:
        data = json.loads(self.path.read_text(encoding="utf-8"))
        if not isinstance(data, dict):
            raise ValidationError(f"{self.path} does not contain a topology object")
        return topology_from_dict(data)
