"""Model exports for SQLAlchemy/SQLModel metadata discovery."""

from app.models.audit_entries import AuditEntry
from app.models.purchase_requests import PurchaseRequest
from app.models.users import User

__all__ = [
    "AuditEntry",
    "PurchaseRequest",
    "User",
]
