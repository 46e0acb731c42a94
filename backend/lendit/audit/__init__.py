"""Booking transition audit trail."""

from lendit.audit.recorder import (
    STATUS_CHANGED,
    AuditRecorder,
    InMemoryAuditRecorder,
    SqlAuditRecorder,
)

__all__ = [
    "STATUS_CHANGED",
    "AuditRecorder",
    "InMemoryAuditRecorder",
    "SqlAuditRecorder",
]
