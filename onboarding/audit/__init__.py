"""Audit logging package."""

from onboarding.audit.logger import AuditLogger

__all__ = ["AuditLogger"]
