"""SQLAlchemy database models."""
from sqlalchemy import (
    Column, Integer, String, Boolean, DateTime, Text, JSON, Index
)
from sqlalchemy.sql import func
from app.database import Base


class AuditLogEntry(Base):
    """One completed bulk edit, kept for 24 hours so it can be undone once."""
    __tablename__ = "audit_log"

    id = Column(Integer, primary_key=True, index=True)
    user_name = Column(String(255))  # shop email
    operation = Column(String(50), nullable=False)  # Tags-Added, Tags-removed, Metafield-removed, Metafield-updated
    value = Column(JSON, nullable=False)  # successful result snapshots
    object_type = Column(String(50))
    myshopify_domain = Column(String(255), nullable=False, index=True)

    time = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    # Restore state
    restore = Column(Boolean, default=True, nullable=False)
    restore_status = Column(String(20), default="active", nullable=False)  # active, restoring, consumed
    restored_at = Column(DateTime(timezone=True))

    __table_args__ = (
        Index('idx_audit_shop_time', 'myshopify_domain', 'time'),
    )


class Setting(Base):
    """Application settings and API keys."""
    __tablename__ = "settings"

    id = Column(Integer, primary_key=True, index=True)
    key = Column(String(255), unique=True, nullable=False, index=True)
    value = Column(Text)
    description = Column(Text)
    is_sensitive = Column(Boolean, default=False)  # For API keys

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
