"""
Topology runner.

Purpose
Expose each user facing operation as a call returning an ExitCode:
create, update, list, status, retry, remove, get ips, automation, procedure.

This is the composition layer of the system.
It wires the control plane factory, the orchestrator, the procedure executor
and the automation runner, and converts exceptions into exit codes.

Core workflow remains free of process wide state.
Runner handles configuration and output.
"""

from __future__ import annotations

import copy
import logging
import uuid
from dataclasses import dataclass, field, replace
from typing import Callable, Optional

from topology_orchestrator.core.errors import (
    EntityNotFound,
    OrchestratorError,
    RemoteAPIError,
)
from topology_orchestrator.core.types import ExitCode, TopologySpec
from topology_orchestrator.remote.base import ControlPlaneClient, ControlPlaneFactory
from topology_orchestrator.workflow.inventory import (
    AutomationConfig,
    AutomationRunner,
    format_ips,
    list_private_ips,
)
from topology_orchestrator.workflow.orchestrator import Orchestrator, OrchestratorConfig, ProcessResult
from topology_orchestrator.workflow.poll import Clock
from topology_orchestrator.workflow.procedure import ProcedureConfig, ProcedureExecutor
from topology_orchestrator.workflow.progress import ProgressCallback

logger = logging.getLogger(__name__)

MAX_ASSEMBLY_NAME = 32
MAX_SUFFIX = 8
ANY_ENVIRONMENT = "*"


def auto_generate_name(prefix: Optional[str]) -> str:
    """
    Append a random suffix to an assembly name prefix.

    The suffix is at most 8 characters and the result stays within 32.
    """
    prefix = prefix or ""
    size = min(MAX_SUFFIX, MAX_ASSEMBLY_NAME - len(prefix) - 1)
    suffix = uuid.uuid4().hex[: max(size, 0)]
    if not prefix:
        return suffix
    return f"{prefix}-{suffix}"


@dataclass(frozen=True)
class RunnerConfig:
    """
    Runner configuration.

    orchestrator, procedure, automation
    Passed to the matching workflow component.
    """

    orchestrator: OrchestratorConfig = field(default_factory=OrchestratorConfig)
    procedure: ProcedureConfig = field(default_factory=ProcedureConfig)
    automation: AutomationConfig = field(default_factory=AutomationConfig)


class TopologyRunner:
    """
    Run user facing operations for one topology.

    confirm
    Asked before remove unless the orchestrator config is forced.
    """

    def __init__(
        self,
        factory: ControlPlaneFactory,
        spec: TopologySpec,
        config: RunnerConfig | None = None,
        clock: Clock | None = None,
        output: Callable[[str], None] = print,
        confirm: Optional[Callable[[str], bool]] = None,
        on_progress: ProgressCallback | None = None,
    ) -> None:
        self._factory = factory
        self._spec = spec
        self._assembly = spec.assembly
        self._config = config or RunnerConfig()
        self._clock = clock
        self._output = output
        self._confirm = confirm
        self._on_progress = on_progress
        self.last_result: Optional[ProcessResult] = None

        if self._config.orchestrator.quiet:
            logging.getLogger("topology_orchestrator").setLevel(logging.WARNING)

    @property
    def spec(self) -> TopologySpec:
        return self._spec

    @property
    def assembly(self) -> str:
        """Assembly the runner currently targets. Differs from the spec name with auto generated names."""
        return self._assembly

    def client(self) -> ControlPlaneClient:
        return self._factory.for_assembly(self._assembly, self._spec.environment)

    def orchestrator(self) -> Orchestrator:
        return Orchestrator(
            self.client(),
            config=self._config.orchestrator,
            clock=self._clock,
            on_progress=self._on_progress,
        )

    def create(self) -> ExitCode:
        if self._spec.auto_gen_name:
            self._assembly = auto_generate_name(self._spec.assembly)
            logger.info("Creating assembly %s", self._assembly)
        return self._process(is_update=False)

    def update(self) -> ExitCode:
        """
        Update the assembly.

        With auto generated names every assembly generated from the spec name
        is updated in turn. The first failing assembly stops the loop.
        """
        if not self._spec.auto_gen_name:
            return self._process(is_update=True)

        names = self._generated_assemblies(self._spec.assembly)
        if isinstance(names, ExitCode):
            return names
        if not names:
            logger.error("No assembly generated from %s", self._spec.assembly)
            return ExitCode.entity_not_found

        for name in names:
            self._assembly = name
            code = self._process(is_update=True)
            if code != ExitCode.normal:
                return code
        return ExitCode.normal

    def list_assemblies(self, prefix: Optional[str] = None) -> ExitCode:
        """Print the assemblies generated from prefix, the spec name by default."""
        names = self._generated_assemblies(prefix or self._spec.assembly)
        if isinstance(names, ExitCode):
            return names
        for name in names:
            self._output(name)
        return ExitCode.normal

    def status(self) -> ExitCode:
        if not self._assembly_exists():
            return ExitCode.entity_not_found
        status = self._guard(self.orchestrator().status)
        if isinstance(status, ExitCode):
            return status
        self._output(status.value if status is not None else "no deployment")
        return ExitCode.normal

    def retry(self) -> ExitCode:
        if not self._assembly_exists():
            return ExitCode.entity_not_found
        result = self._guard(self.orchestrator().retry_deployment)
        if isinstance(result, ExitCode):
            return result
        return ExitCode.normal

    def remove(self) -> ExitCode:
        """
        Tear down the assembly, or every generated assembly with auto generated names.

        Each assembly is confirmed separately unless forced.
        """
        if self._spec.auto_gen_name:
            names = self._generated_assemblies(self._spec.assembly)
            if isinstance(names, ExitCode):
                return names
        elif self._assembly_exists():
            names = [self._assembly]
        else:
            names = []

        if not names:
            self._output("There is no instance to remove")
            return ExitCode.normal

        for name in names:
            self._assembly = name
            if not self._config.orchestrator.forced:
                question = f"WARNING! Do you want to destroy {name}? (y/n)"
                if self._confirm is None or not self._confirm(question):
                    continue
            result = self._guard(lambda: self.orchestrator().teardown(self._target_spec()))
            if isinstance(result, ExitCode):
                return result
        return ExitCode.normal

    def get_ips(self, environment: Optional[str] = None, component: Optional[str] = None) -> ExitCode:
        """
        Print private IPs per platform and compute component.

        environment "*" matches any environment.
        """
        if not self._assembly_exists():
            return ExitCode.entity_not_found

        if environment is not None and environment not in (ANY_ENVIRONMENT, self._spec.environment):
            self._output(f"No such environment: {environment}")
            return ExitCode.normal

        client = self.client()
        computes = client.list_compute_components()
        if component is not None:
            if component not in computes:
                self._output(f"No such component: {component}")
                return ExitCode.normal
            computes = [component]

        self._output(f"Environment name: {self._spec.environment}")
        for platform in self._spec.platform_names():
            self._output(f"Platform name: {platform}")
            for name in computes:
                self._output(f"Compute name: {name}")
                listing = self._guard(lambda: format_ips(list_private_ips(client, platform, name)))
                if isinstance(listing, ExitCode):
                    return listing
                if listing:
                    self._output(listing.rstrip("\n"))
        return ExitCode.normal

    def run_automation(
        self,
        script_path: str,
        inventory_path: Optional[str] = None,
        platform: Optional[str] = None,
        component: Optional[str] = None,
    ) -> ExitCode:
        if not self._assembly_exists():
            return ExitCode.entity_not_found

        runner = AutomationRunner(
            self.client(),
            self._spec.platform_names(),
            config=self._config.automation,
            output=self._output,
        )
        result = self._guard(lambda: runner.run_automation(script_path, inventory_path, platform, component))
        if isinstance(result, ExitCode):
            return result
        return ExitCode.normal

    def run_procedure_command(
        self,
        args: list[str],
        arguments: Optional[str] = None,
        instances: Optional[str] = None,
        rollout_percent: int = 100,
    ) -> ExitCode:
        """Run a procedure given platform, component and action arguments."""
        if len(args) != 3:
            logger.error("Wrong parameters! procedure <platform> <component> <action>")
            return ExitCode.wrong_parameter

        platform, component, action = args
        executor = ProcedureExecutor(
            self.client(),
            config=self._config.procedure,
            clock=self._clock,
            output=self._output,
        )
        result = self._guard(
            lambda: executor.run_procedure(platform, component, action, arguments, instances, rollout_percent)
        )
        return result

    def _process(self, is_update: bool) -> ExitCode:
        result = self._guard(lambda: self.orchestrator().process(self._target_spec(), is_update))
        if isinstance(result, ExitCode):
            return result
        self.last_result = result
        if not result.ok:
            self._output(f"Deployment failed: {result.message}")
            return ExitCode.client_error
        return ExitCode.normal

    def _target_spec(self) -> TopologySpec:
        """Copy of the spec bound to the targeted assembly. The caller's spec is never changed."""
        return replace(copy.deepcopy(self._spec), assembly=self._assembly)

    def _generated_assemblies(self, prefix: str) -> list[str] | ExitCode:
        prefix = prefix.strip()
        if not prefix:
            logger.error("Assembly prefix is required")
            return ExitCode.wrong_parameter
        client = self._factory.for_assembly(prefix, self._spec.environment)
        return self._guard(lambda: client.list_assemblies(prefix))

    def _assembly_exists(self) -> bool:
        if self.client().assembly_exists():
            return True
        logger.error("%s not found", self._assembly)
        return False

    def _guard(self, call: Callable[[], object]) -> object:
        """Run call, mapping orchestrator errors to an ExitCode."""
        try:
            return call()
        except EntityNotFound as exc:
            logger.error("%s", exc)
            return ExitCode.entity_not_found
        except RemoteAPIError as exc:
            logger.error("%s", exc)
            return ExitCode.client_error
        except OrchestratorError as exc:
            logger.error("%s", exc)
            return ExitCode.unknown
