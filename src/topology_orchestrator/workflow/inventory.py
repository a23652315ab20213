"""
Host inventory and automation runner.

Collects private IPs of compute nodes, writes them to an inventory file and
runs the automation tool against it:

  <tool> -i <inventory file> <script>

The tool output, with stderr merged in, is streamed line by line.
A temporary inventory file is removed on every exit path. A caller supplied
inventory path is never removed.
"""

from __future__ import annotations

import logging
import os
import subprocess
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from topology_orchestrator.core.errors import AutomationError
from topology_orchestrator.core.types import InventoryEntry
from topology_orchestrator.remote.base import ControlPlaneClient

logger = logging.getLogger(__name__)

PRIVATE_IP = "private_ip"


def list_private_ips(client: ControlPlaneClient, platform: str, component: str) -> list[str]:
    """Private IP of each compute resource, in remote order. Resources without one are logged and skipped."""
    ips: list[str] = []
    for resource in client.list_compute_resources(platform, component):
        attrs = resource.get("attributes", {}) or {}
        ip = attrs.get(PRIVATE_IP)
        if not ip:
            logger.warning("Skipping %s in %s: no %s", resource.get("name", "?"), platform, PRIVATE_IP)
            continue
        ips.append(str(ip))
    return ips


def format_ips(ips: list[str]) -> str:
    """Newline terminated listing for display."""
    return "".join(f"{ip}\n" for ip in ips)


def collect_inventory(
    client: ControlPlaneClient,
    platforms: list[str],
    platform_filter: Optional[str] = None,
    component_filter: Optional[str] = None,
) -> list[InventoryEntry]:
    """
    Entries for every platform and compute component pair that passes the
    filters. A None filter matches everything.
    """
    computes = client.list_compute_components()
    entries: list[InventoryEntry] = []

    for platform in platforms:
        if platform_filter is not None and platform != platform_filter:
            continue
        for component in computes:
            if component_filter is not None and component != component_filter:
                continue
            for ip in list_private_ips(client, platform, component):
                entries.append(InventoryEntry(platform=platform, component=component, ip=ip))

    return entries


@dataclass(frozen=True)
class AutomationConfig:
    """
    tool
    Executable invoked with the inventory and script.

    temp_prefix, temp_suffix
    Naming of auto created inventory files.
    """

    tool: str = "ansible-playbook"
    temp_prefix: str = "topology"
    temp_suffix: str = ".inventory"


class AutomationRunner:
    def __init__(
        self,
        client: ControlPlaneClient,
        platforms: list[str],
        config: AutomationConfig | None = None,
        output: Callable[[str], None] = print,
    ) -> None:
        self._client = client
        self._platforms = list(platforms)
        self._config = config or AutomationConfig()
        self._output = output

    def run_automation(
        self,
        script_path: str,
        inventory_path: Optional[str] = None,
        platform_filter: Optional[str] = None,
        component_filter: Optional[str] = None,
    ) -> str:
        """
        Run the automation tool and return its combined output.

        Raises AutomationError when the script is unreadable, the inventory
        cannot be written, or the tool exits with a non zero status.
        """
        script = Path(script_path)
        if not script.is_file() or not os.access(script, os.R_OK):
            raise AutomationError(f"The path [{script_path}] is not a readable file. The script could not be run.")

        entries = collect_inventory(self._client, self._platforms, platform_filter, component_filter)

        temporary = inventory_path is None
        if inventory_path is None:
            fd, name = tempfile.mkstemp(prefix=self._config.temp_prefix, suffix=self._config.temp_suffix)
            os.close(fd)
            inventory = Path(name)
        else:
            inventory = Path(inventory_path)

        try:
            self._write_inventory(inventory, entries)
            return self._run_tool(inventory, script)
        finally:
            if temporary:
                inventory.unlink(missing_ok=True)

    def _write_inventory(self, path: Path, entries: list[InventoryEntry]) -> None:
        try:
            path.write_text("".join(f"{e.ip}\n" for e in entries), encoding="utf-8")
        except OSError as exc:
            raise AutomationError(f"An error occurred while generating the inventory file: {exc}") from exc

    def _run_tool(self, inventory: Path, script: Path) -> str:
        cmd = [self._config.tool, "-i", str(inventory.absolute()), str(script)]
        logger.info("Running %s", " ".join(cmd))

        lines: list[str] = []
        try:
            with subprocess.Popen(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                encoding="utf-8",
                errors="replace",
            ) as proc:
                for line in proc.stdout or ():
                    line = line.rstrip("\n")
                    lines.append(line)
                    self._output(line)
                returncode = proc.wait()
        except OSError as exc:
            raise AutomationError(f"An error occurred while running {self._config.tool}: {exc}") from exc

        if returncode != 0:
            raise AutomationError(f"{self._config.tool} exited with status {returncode}")

        return "\n".join(lines)
