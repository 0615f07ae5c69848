"""Workflow Engine - The brain of the system"""
from .engine import WorkflowEngine
from .permission_guard import PermissionGuard
from .transition_resolver import TransitionResolver, ROUTING_TABLE
from .audit_writer import AuditWriter
from .merge_engine import merge_submissions

__all__ = [
    "WorkflowEngine",
    "PermissionGuard",
    "TransitionResolver",
    "ROUTING_TABLE",
    "AuditWriter",
    "merge_submissions",
]
