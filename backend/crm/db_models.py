from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from crm.db import Base


def _uuid() -> str:
    return str(uuid.uuid4())


def _enum(name: str, *values: str) -> Enum:
    # Membership is enforced by the database (case-sensitive), not by SQLAlchemy.
    return Enum(*values, name=name, create_constraint=True, validate_strings=False)


USER_STATUS = _enum("user_status", "active", "inactive", "suspended")
LEAD_STATUS = _enum("lead_status", "new", "contacted", "qualified", "unqualified", "converted")
LEAD_SOURCE = _enum(
    "lead_source", "website", "referral", "phone", "email", "event", "partner", "other"
)
OPPORTUNITY_STAGE = _enum(
    "opportunity_stage",
    "prospecting",
    "qualification",
    "proposal",
    "negotiation",
    "closed_won",
    "closed_lost",
)
ACTIVITY_TYPE = _enum("activity_type", "call", "email", "meeting", "task", "note")
ACTIVITY_STATUS = _enum("activity_status", "pending", "completed", "cancelled")
ACTIVITY_PRIORITY = _enum("activity_priority", "low", "medium", "high")
ACCOUNT_TYPE = _enum("account_type", "customer", "prospect", "partner", "vendor", "other")
BACKUP_STATUS = _enum("backup_status", "pending", "in_progress", "completed", "failed")


class _Timestamps:
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now()
    )


# ---------------- Auth & RBAC ----------------
class User(_Timestamps, Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(50), primary_key=True, default=_uuid)
    email: Mapped[str] = mapped_column(Text, unique=True)
    name: Mapped[str] = mapped_column(Text)
    password: Mapped[str] = mapped_column(Text)
    status: Mapped[str] = mapped_column(USER_STATUS, default="active")


class Role(Base):
    __tablename__ = "roles"

    id: Mapped[str] = mapped_column(String(50), primary_key=True, default=_uuid)
    name: Mapped[str] = mapped_column(Text, unique=True)
    description: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())


class Permission(Base):
    __tablename__ = "permissions"

    id: Mapped[str] = mapped_column(String(50), primary_key=True, default=_uuid)
    resource: Mapped[str] = mapped_column(Text)
    action: Mapped[str] = mapped_column(Text)
    description: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())


class UserRole(Base):
    __tablename__ = "user_roles"

    user_id: Mapped[str] = mapped_column(
        String(50), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    role_id: Mapped[str] = mapped_column(
        String(50), ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True
    )
    assigned_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())


class RolePermission(Base):
    __tablename__ = "role_permissions"

    role_id: Mapped[str] = mapped_column(
        String(50), ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True
    )
    permission_id: Mapped[str] = mapped_column(
        String(50), ForeignKey("permissions.id", ondelete="CASCADE"), primary_key=True
    )
    assigned_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())


class ApiKey(Base):
    __tablename__ = "api_keys"

    id: Mapped[str] = mapped_column(String(50), primary_key=True, default=_uuid)
    name: Mapped[str] = mapped_column(Text)
    key_hash: Mapped[str] = mapped_column(Text)
    key_prefix: Mapped[str] = mapped_column(String(16))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_by: Mapped[str] = mapped_column(String(50), ForeignKey("users.id"))
    last_used_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())


# ---------------- CRM entities ----------------
class AccountCategory(Base):
    __tablename__ = "account_categories"

    id: Mapped[str] = mapped_column(String(50), primary_key=True, default=_uuid)
    name: Mapped[str] = mapped_column(Text, unique=True)
    description: Mapped[Optional[str]] = mapped_column(Text)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())


class Tag(Base):
    __tablename__ = "tags"

    id: Mapped[str] = mapped_column(String(50), primary_key=True, default=_uuid)
    name: Mapped[str] = mapped_column(Text, unique=True)
    color: Mapped[str] = mapped_column(String(20), default="#6b7280")
    created_by: Mapped[Optional[str]] = mapped_column(String(50), ForeignKey("users.id"))
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())


class Account(_Timestamps, Base):
    __tablename__ = "accounts"

    id: Mapped[str] = mapped_column(String(100), primary_key=True)
    name: Mapped[str] = mapped_column(Text, index=True)
    account_number: Mapped[Optional[str]] = mapped_column(Text)
    type: Mapped[Optional[str]] = mapped_column(ACCOUNT_TYPE)
    category: Mapped[Optional[str]] = mapped_column(Text)
    category_id: Mapped[Optional[str]] = mapped_column(
        String(50), ForeignKey("account_categories.id")
    )
    owner_id: Mapped[Optional[str]] = mapped_column(String(50), ForeignKey("users.id"))
    industry: Mapped[Optional[str]] = mapped_column(Text)
    website: Mapped[Optional[str]] = mapped_column(Text)
    phone: Mapped[Optional[str]] = mapped_column(Text)
    billing_address: Mapped[Optional[str]] = mapped_column(Text)
    shipping_address: Mapped[Optional[str]] = mapped_column(Text)
    external_id: Mapped[Optional[str]] = mapped_column(Text)
    source_system: Mapped[Optional[str]] = mapped_column(Text)


class Contact(_Timestamps, Base):
    __tablename__ = "contacts"

    id: Mapped[str] = mapped_column(String(100), primary_key=True)
    account_id: Mapped[Optional[str]] = mapped_column(
        String(100), ForeignKey("accounts.id", ondelete="SET NULL"), index=True
    )
    first_name: Mapped[str] = mapped_column(Text)
    last_name: Mapped[Optional[str]] = mapped_column(Text)
    email: Mapped[Optional[str]] = mapped_column(Text)
    phone: Mapped[Optional[str]] = mapped_column(Text)
    title: Mapped[Optional[str]] = mapped_column(Text)
    owner_id: Mapped[Optional[str]] = mapped_column(String(50), ForeignKey("users.id"))


class Opportunity(_Timestamps, Base):
    __tablename__ = "opportunities"

    id: Mapped[str] = mapped_column(String(100), primary_key=True)
    account_id: Mapped[str] = mapped_column(
        String(100), ForeignKey("accounts.id", ondelete="CASCADE"), index=True
    )
    name: Mapped[str] = mapped_column(Text)
    stage: Mapped[str] = mapped_column(OPPORTUNITY_STAGE, default="prospecting")
    amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(15, 2))
    close_date: Mapped[Optional[datetime]] = mapped_column(DateTime)
    actual_close_date: Mapped[Optional[datetime]] = mapped_column(DateTime)
    est_close_date: Mapped[Optional[datetime]] = mapped_column(DateTime)
    probability: Mapped[Optional[int]] = mapped_column(Integer, default=0)
    rating: Mapped[Optional[str]] = mapped_column(Text)
    owner_id: Mapped[Optional[str]] = mapped_column(String(50), ForeignKey("users.id"))


class Lead(_Timestamps, Base):
    __tablename__ = "leads"

    id: Mapped[str] = mapped_column(String(100), primary_key=True)
    first_name: Mapped[str] = mapped_column(Text)
    last_name: Mapped[Optional[str]] = mapped_column(Text)
    company: Mapped[Optional[str]] = mapped_column(Text)
    email: Mapped[Optional[str]] = mapped_column(Text)
    phone: Mapped[Optional[str]] = mapped_column(Text)
    status: Mapped[str] = mapped_column(LEAD_STATUS, default="new")
    source: Mapped[Optional[str]] = mapped_column(LEAD_SOURCE)
    rating: Mapped[Optional[str]] = mapped_column(Text)
    owner_id: Mapped[Optional[str]] = mapped_column(String(50), ForeignKey("users.id"))
    converted_account_id: Mapped[Optional[str]] = mapped_column(
        String(100), ForeignKey("accounts.id")
    )
    converted_contact_id: Mapped[Optional[str]] = mapped_column(
        String(100), ForeignKey("contacts.id")
    )
    converted_opportunity_id: Mapped[Optional[str]] = mapped_column(
        String(100), ForeignKey("opportunities.id")
    )
    converted_at: Mapped[Optional[datetime]] = mapped_column(DateTime)


class Activity(_Timestamps, Base):
    __tablename__ = "activities"

    id: Mapped[str] = mapped_column(String(100), primary_key=True)
    type: Mapped[str] = mapped_column(ACTIVITY_TYPE)
    subject: Mapped[str] = mapped_column(Text)
    status: Mapped[str] = mapped_column(ACTIVITY_STATUS, default="pending")
    priority: Mapped[str] = mapped_column(ACTIVITY_PRIORITY, default="medium")
    due_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    owner_id: Mapped[Optional[str]] = mapped_column(String(50), ForeignKey("users.id"))
    account_id: Mapped[Optional[str]] = mapped_column(
        String(100), ForeignKey("accounts.id", ondelete="SET NULL")
    )
    contact_id: Mapped[Optional[str]] = mapped_column(
        String(100), ForeignKey("contacts.id", ondelete="SET NULL")
    )
    lead_id: Mapped[Optional[str]] = mapped_column(
        String(100), ForeignKey("leads.id", ondelete="SET NULL")
    )
    opportunity_id: Mapped[Optional[str]] = mapped_column(
        String(100), ForeignKey("opportunities.id", ondelete="SET NULL")
    )
    notes: Mapped[Optional[str]] = mapped_column(Text)


class EntityTag(Base):
    __tablename__ = "entity_tags"

    id: Mapped[str] = mapped_column(String(50), primary_key=True, default=_uuid)
    entity: Mapped[str] = mapped_column(Text)
    entity_id: Mapped[str] = mapped_column(String(100))
    tag_id: Mapped[str] = mapped_column(String(50), ForeignKey("tags.id", ondelete="CASCADE"))
    created_by: Mapped[Optional[str]] = mapped_column(String(50), ForeignKey("users.id"))
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())


# ---------------- Comments ----------------
class Comment(_Timestamps, Base):
    __tablename__ = "comments"

    id: Mapped[str] = mapped_column(String(50), primary_key=True, default=_uuid)
    entity: Mapped[str] = mapped_column(Text)
    entity_id: Mapped[str] = mapped_column(String(100))
    parent_id: Mapped[Optional[str]] = mapped_column(
        String(50), ForeignKey("comments.id", ondelete="CASCADE")
    )
    depth: Mapped[int] = mapped_column(Integer, default=0)
    body: Mapped[str] = mapped_column(Text)
    mentions: Mapped[Optional[Any]] = mapped_column(JSON)
    is_pinned: Mapped[bool] = mapped_column(Boolean, default=False)
    is_resolved: Mapped[bool] = mapped_column(Boolean, default=False)
    created_by: Mapped[str] = mapped_column(String(50), ForeignKey("users.id"))
    edited_by: Mapped[Optional[str]] = mapped_column(String(50), ForeignKey("users.id"))


class CommentReaction(Base):
    __tablename__ = "comment_reactions"

    id: Mapped[str] = mapped_column(String(50), primary_key=True, default=_uuid)
    comment_id: Mapped[str] = mapped_column(
        String(50), ForeignKey("comments.id", ondelete="CASCADE")
    )
    user_id: Mapped[str] = mapped_column(String(50), ForeignKey("users.id", ondelete="CASCADE"))
    emoji: Mapped[str] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())


class CommentAttachment(Base):
    __tablename__ = "comment_attachments"

    id: Mapped[str] = mapped_column(String(50), primary_key=True, default=_uuid)
    comment_id: Mapped[str] = mapped_column(
        String(50), ForeignKey("comments.id", ondelete="CASCADE")
    )
    file_name: Mapped[str] = mapped_column(Text)
    content_type: Mapped[str] = mapped_column(Text)
    size: Mapped[int] = mapped_column(Integer)
    url: Mapped[str] = mapped_column(Text)
    uploaded_by: Mapped[str] = mapped_column(String(50), ForeignKey("users.id"))
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())


class CommentSubscription(Base):
    __tablename__ = "comment_subscriptions"

    id: Mapped[str] = mapped_column(String(50), primary_key=True, default=_uuid)
    comment_id: Mapped[str] = mapped_column(
        String(50), ForeignKey("comments.id", ondelete="CASCADE")
    )
    user_id: Mapped[str] = mapped_column(String(50), ForeignKey("users.id", ondelete="CASCADE"))
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())


# ---------------- Provenance ----------------
class AuditLog(Base):
    __tablename__ = "audit_logs"

    id: Mapped[str] = mapped_column(String(50), primary_key=True, default=_uuid)
    actor_id: Mapped[Optional[str]] = mapped_column(String(50), ForeignKey("users.id"))
    action: Mapped[str] = mapped_column(Text)
    resource: Mapped[str] = mapped_column(Text)
    resource_id: Mapped[Optional[str]] = mapped_column(Text)
    before: Mapped[Optional[Any]] = mapped_column(JSON)
    after: Mapped[Optional[Any]] = mapped_column(JSON)
    ip_address: Mapped[Optional[str]] = mapped_column(Text)
    user_agent: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())


class IdPattern(_Timestamps, Base):
    __tablename__ = "id_patterns"

    id: Mapped[str] = mapped_column(String(50), primary_key=True, default=_uuid)
    entity: Mapped[str] = mapped_column(Text, unique=True)
    pattern: Mapped[str] = mapped_column(Text)
    counter: Mapped[int] = mapped_column(Integer, default=0)
    start_value: Mapped[Optional[int]] = mapped_column(Integer, default=1)
    last_issued: Mapped[Optional[str]] = mapped_column(Text)


class BackupJob(Base):
    __tablename__ = "backup_jobs"

    id: Mapped[str] = mapped_column(String(50), primary_key=True, default=_uuid)
    status: Mapped[str] = mapped_column(BACKUP_STATUS, default="pending")
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    path: Mapped[Optional[str]] = mapped_column(Text)
    size_bytes: Mapped[Optional[int]] = mapped_column(Integer)
    checksum: Mapped[Optional[str]] = mapped_column(Text)
    initiated_by: Mapped[Optional[str]] = mapped_column(
        String(50), ForeignKey("users.id", ondelete="SET NULL")
    )
    error_message: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
