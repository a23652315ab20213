"""
Workflow package.

This makes the workflow folder an explicit package so both Python and mypy
resolve modules consistently.
"""

from topology_orchestrator.workflow.orchestrator import Orchestrator, OrchestratorConfig, ProcessResult

__all__ = ["Orchestrator", "OrchestratorConfig", "ProcessResult"]
