"""AuditLog entity model for immutable mutation records."""

from datetime import datetime
from enum import Enum

from sqlmodel import Field, SQLModel


class AuditAction(str, Enum):
    """Audited actions across the system."""

    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    STATUS_CHANGE = "STATUS_CHANGE"
    ASSIGN = "ASSIGN"
    UNASSIGN = "UNASSIGN"
    FILE_UPLOAD = "FILE_UPLOAD"
    FILE_DELETE = "FILE_DELETE"
    BULK_IMPORT = "BULK_IMPORT"


class AuditLog(SQLModel, table=True):
    """Audit log database model.

    Entities are referenced by type and id only, never by foreign key, so
    a record outlives the entity it describes.
    """

    __tablename__ = "audit_logs"

    id: int | None = Field(default=None, primary_key=True)
    entity_type: str = Field(max_length=50, index=True)
    entity_id: int = Field(index=True)
    action: AuditAction = Field(index=True)
    performed_by: str | None = Field(default=None, max_length=100)
    old_value: str | None = Field(default=None)
    new_value: str | None = Field(default=None)
    details: str | None = Field(default=None)
    ip_address: str | None = Field(default=None, max_length=45)
    timestamp: datetime = Field(default_factory=datetime.utcnow, index=True)
