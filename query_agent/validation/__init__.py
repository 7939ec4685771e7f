"""Security and permission validation of structured queries."""

from query_agent.validation.permission import PermissionValidator
from query_agent.validation.security import SecurityValidator

__all__ = ["PermissionValidator", "SecurityValidator"]
