"""
topology_orchestrator

This package provisions and reconciles an application topology against a
remote infrastructure control plane.

We keep modules small and well separated:
core contains shared data structures, errors and the audit log
remote contains the control plane interface and an in memory implementation
topology contains loading of declared topologies
workflow contains reconciliation, scaling, deployment, procedures and inventory
runner maps user facing operations to exit codes
"""
