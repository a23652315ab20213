from __future__ import annotations

import pytest

from topology_orchestrator.core.errors import EntityAlreadyExists, EntityNotFound, RemoteAPIError
from topology_orchestrator.core.types import (
    ComponentSpec,
    FlatAttrs,
    NestedAttrs,
    PackIdentity,
    PlatformSpec,
    Scalar,
    TopologySpec,
)
from topology_orchestrator.remote.mock import InMemoryControlPlane
from topology_orchestrator.workflow.reconciler import TopologyReconciler


def _make_spec() -> TopologySpec:
    web = PlatformSpec(
        name="web",
        pack=PackIdentity("tomcat", "1", "main"),
        order=2,
        links=["db"],
        variables={"APP": "shop"},
        secure_variables={"DB_PASS": "secret"},
        components={
            "tomcat": ComponentSpec(
                name="tomcat",
                attributes=FlatAttrs(values={"max_threads": "64"}),
                attachments={"warmup": {"run_on": "after-add"}},
            ),
            "user": ComponentSpec(
                name="user",
                attributes=NestedAttrs(values={"alice": {"authorized_keys": "k1"}}),
            ),
        },
    )
    db = PlatformSpec(name="db", pack=PackIdentity("postgres", "1", "main"), order=1)
    return TopologySpec(assembly="shop", environment="dev", platforms=[web, db])


def _make_client() -> InMemoryControlPlane:
    return InMemoryControlPlane(pack_components={"tomcat": [("os", "os"), ("tomcat", "tomcat")]})


def test_update_requires_existing_assembly():
    client = _make_client()
    reconciler = TopologyReconciler(client)

    with pytest.raises(EntityNotFound):
        reconciler.check_preconditions(_make_spec(), is_update=True)


def test_create_rejects_existing_assembly_unless_auto_generated():
    client = _make_client()
    client.assembly_present = True
    reconciler = TopologyReconciler(client)
    spec = _make_spec()

    with pytest.raises(EntityAlreadyExists):
        reconciler.check_preconditions(spec, is_update=False)

    spec.auto_gen_name = True
    reconciler.check_preconditions(spec, is_update=False)


def test_platforms_are_created_in_sort_order_and_converge():
    client = _make_client()
    reconciler = TopologyReconciler(client)
    spec = _make_spec()

    warnings = reconciler.reconcile(spec, is_update=False)

    assert warnings == []
    created = [args[0] for name, args in client.calls if name == "create_platform"]
    assert created == ["db", "web"]
    assert client.components["web"]["tomcat"] == {"max_threads": "64"}
    assert client.components["web"]["alice"] == {"authorized_keys": "k1"}
    assert client.attachments[("web", "tomcat", "warmup")] == {"run_on": "after-add"}
    assert client.links["web"] == ["db"]
    assert client.variables["web"] == {"DB_PASS": ("secret", True), "APP": ("shop", False)}

    for platform in spec.platform_names():
        client.get_platform(platform)


def test_second_run_makes_no_mutations():
    client = _make_client()
    reconciler = TopologyReconciler(client)

    reconciler.reconcile(_make_spec(), is_update=False)
    before = list(client.mutations)

    reconciler.reconcile(_make_spec(), is_update=True)

    assert client.mutations == before


def test_attachments_are_cleared_after_processing():
    client = _make_client()
    reconciler = TopologyReconciler(client)
    spec = _make_spec()

    reconciler.reconcile_platforms(spec)

    assert spec.platforms[0].components["tomcat"].attachments == {}


def test_attachment_failure_is_a_warning_and_rest_converges():
    client = _make_client()
    client.failures["add_attachment"] = [RemoteAPIError("attachment service down")]
    reconciler = TopologyReconciler(client)
    spec = _make_spec()

    warnings = reconciler.reconcile_platforms(spec)

    assert len(warnings) == 1
    assert "attachment service down" in (warnings[0].warning or "")
    assert spec.platforms[0].components["tomcat"].attachments == {}
    assert client.components["web"]["tomcat"] == {"max_threads": "64"}
    assert client.links["web"] == ["db"]


def test_scalar_component_is_skipped():
    client = _make_client()
    spec = _make_spec()
    spec.platforms[0].components["odd"] = ComponentSpec(name="odd", attributes=Scalar(value="x"))

    TopologyReconciler(client).reconcile_platforms(spec)

    assert "odd" not in client.components["web"]


def test_undeclared_variables_are_deleted():
    client = _make_client()
    reconciler = TopologyReconciler(client)
    spec = _make_spec()
    reconciler.reconcile(spec, is_update=False)
    client.update_or_add_platform_variable("web", "OLD", "1", False)

    deleted = reconciler.reconcile_variables(spec)

    assert deleted == ["OLD"]
    assert "OLD" not in client.variables["web"]
    assert set(client.variables["web"]) == {"APP", "DB_PASS"}


def test_only_customized_undeclared_components_are_deleted():
    client = _make_client()
    reconciler = TopologyReconciler(client)
    spec = _make_spec()
    reconciler.reconcile(spec, is_update=False)
    client.add_platform_component("web", "user", "mallory", {"shell": "sh"})

    deleted = reconciler.reconcile_components(spec)

    assert deleted == ["mallory"]
    # pack default, never declared
    assert "os" in client.components["web"]
    assert "alice" in client.components["web"]


def test_customized_predicate_is_pluggable():
    client = _make_client()
    spec = _make_spec()
    TopologyReconciler(client).reconcile(spec, is_update=False)

    reconciler = TopologyReconciler(client, is_customized=lambda platform, name: name == "os")
    deleted = reconciler.reconcile_components(spec)

    assert deleted == ["os"]


def test_empty_topology_is_a_no_op():
    client = _make_client()
    client.assembly_present = True
    spec = TopologySpec(assembly="shop", environment="dev")

    TopologyReconciler(client).reconcile(spec, is_update=True)

    assert client.mutations == []
    assert client.count("commit_design") == 0
