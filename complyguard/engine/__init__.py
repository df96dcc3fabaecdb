"""Audit orchestration: runner, store, aggregation and lifecycle."""

from .aggregation import aggregate, compliance_score, overall_status
from .runner import ProjectAuditRunner, RetryConfig, build_probes
from .state_machine import AuditState, AuditStateMachine, ViewMode
from .store import ComplianceStore

__all__ = [
    "AuditState",
    "AuditStateMachine",
    "ComplianceStore",
    "ProjectAuditRunner",
    "RetryConfig",
    "ViewMode",
    "aggregate",
    "build_probes",
    "compliance_score",
    "overall_status",
]
