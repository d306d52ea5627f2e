"""Application models package."""

from paylink.models.audit_log import AuditLog
from paylink.models.order import Order
from paylink.models.system_settings import SettingsHistory, SystemSettings
from paylink.models.user import User

__all__ = ["AuditLog", "Order", "SettingsHistory", "SystemSettings", "User"]
