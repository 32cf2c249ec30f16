"""
PostgreSQL Database Models - SQLAlchemy ORM
All tables for the hotel procurement workflow
"""
from datetime import datetime, timezone
from typing import Optional
from sqlalchemy import (
    Integer, String, Text, DateTime, Boolean, Float,
    ForeignKey, Index, UniqueConstraint
)
from sqlalchemy.orm import Mapped, mapped_column
import uuid as uuid_lib

from .connection import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ==================== IDENTITY MODELS ====================

class User(Base):
    """User table - stores all system users"""
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid_lib.uuid4()))
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    password: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    branch_ids: Mapped[str] = mapped_column(Text, default="[]")  # JSON array as text
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class RoleDefinition(Base):
    """Role definitions - role name and the statuses it may see or act on"""
    __tablename__ = "role_definitions"

    name: Mapped[str] = mapped_column(String(50), primary_key=True)
    permissions: Mapped[str] = mapped_column(Text, default="[]")  # JSON array of statuses


class Branch(Base):
    """Hotel branches"""
    __tablename__ = "branches"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid_lib.uuid4()))
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    city: Mapped[str] = mapped_column(String(255), default="")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


# ==================== PURCHASE REQUEST MODELS ====================

class PurchaseRequest(Base):
    """Purchase request - aggregate root row with requester and branch snapshots"""
    __tablename__ = "purchase_requests"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid_lib.uuid4()))
    reference_number: Mapped[Optional[int]] = mapped_column(Integer, unique=True, nullable=True)
    requester_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    requester_name: Mapped[str] = mapped_column(String(255), nullable=False)
    requester_role: Mapped[str] = mapped_column(String(50), nullable=False)
    branch_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    branch_name: Mapped[str] = mapped_column(String(255), nullable=False)
    branch_city: Mapped[str] = mapped_column(String(255), default="")
    department: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(50), default="draft", index=True)
    total_estimated_cost: Mapped[float] = mapped_column(Float, default=0)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index('idx_purchase_requests_status_created_at', 'status', 'created_at'),
        Index('idx_purchase_requests_branch_status', 'branch_id', 'status'),
    )


class PurchaseRequestItem(Base):
    """Purchase request items - individual lines of a request"""
    __tablename__ = "purchase_request_items"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid_lib.uuid4()))
    request_id: Mapped[str] = mapped_column(String(36), ForeignKey("purchase_requests.id", ondelete="CASCADE"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit: Mapped[str] = mapped_column(String(50), default="")
    estimated_cost: Mapped[float] = mapped_column(Float, default=0)
    category: Mapped[str] = mapped_column(String(255), default="")
    justification: Mapped[str] = mapped_column(Text, default="")
    item_index: Mapped[int] = mapped_column(Integer, default=0)  # Order in the request


class ApprovalHistory(Base):
    """Approval history - append-only log of workflow actions with user snapshots"""
    __tablename__ = "approval_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    request_id: Mapped[str] = mapped_column(String(36), ForeignKey("purchase_requests.id", ondelete="CASCADE"), nullable=False, index=True)
    seq: Mapped[int] = mapped_column(Integer, nullable=False)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False)
    user_name: Mapped[str] = mapped_column(String(255), nullable=False)
    user_role: Mapped[str] = mapped_column(String(50), nullable=False)
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    comment: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, index=True)

    __table_args__ = (
        UniqueConstraint('request_id', 'seq', name='uq_approval_history_request_seq'),
    )


class Attachment(Base):
    """Attachments - files uploaded against a purchase request"""
    __tablename__ = "request_attachments"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid_lib.uuid4()))
    request_id: Mapped[str] = mapped_column(String(36), ForeignKey("purchase_requests.id", ondelete="CASCADE"), nullable=False, index=True)
    file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    file_data: Mapped[str] = mapped_column(Text, nullable=False)  # base64 data URL
    mime_type: Mapped[str] = mapped_column(String(100), nullable=False)
    uploaded_by: Mapped[str] = mapped_column(String(36), nullable=False)
    uploaded_by_name: Mapped[str] = mapped_column(String(255), nullable=False)
    uploaded_by_role: Mapped[str] = mapped_column(String(50), nullable=False)
    uploaded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class Invoice(Base):
    """Invoices - at most one per purchase request"""
    __tablename__ = "invoices"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid_lib.uuid4()))
    request_id: Mapped[str] = mapped_column(String(36), ForeignKey("purchase_requests.id", ondelete="CASCADE"), unique=True, nullable=False)
    branch_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    vendor_name: Mapped[str] = mapped_column(String(255), nullable=False)
    invoice_number: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    invoice_date: Mapped[str] = mapped_column(String(50), default="")
    total_amount: Mapped[float] = mapped_column(Float, default=0)
    file_data: Mapped[str] = mapped_column(Text, nullable=False)
    mime_type: Mapped[str] = mapped_column(String(100), nullable=False)
    analysis: Mapped[str] = mapped_column(Text, nullable=False)  # JSON object
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


# ==================== CATALOG & SUPPLIER MODELS ====================

class PriceCatalogItem(Base):
    """Price catalog - lowest known price per item, keyed by lower-cased name"""
    __tablename__ = "price_catalog"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid_lib.uuid4()))
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    name_key: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    category: Mapped[str] = mapped_column(String(255), default="Uncategorized")
    unit: Mapped[str] = mapped_column(String(50), default="")
    estimated_cost: Mapped[float] = mapped_column(Float, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True, onupdate=utcnow)


class Supplier(Base):
    """Supplier table - registry keyed by lower-cased name"""
    __tablename__ = "suppliers"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid_lib.uuid4()))
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    name_key: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    category: Mapped[str] = mapped_column(String(255), default="General")
    contact: Mapped[str] = mapped_column(String(255), default="")
    branch_ids: Mapped[str] = mapped_column(Text, default="[]")  # JSON array as text
    website: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class SalesRepresentative(Base):
    """Sales representatives known for a supplier"""
    __tablename__ = "sales_representatives"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid_lib.uuid4()))
    supplier_id: Mapped[str] = mapped_column(String(36), ForeignKey("suppliers.id", ondelete="CASCADE"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    contact: Mapped[str] = mapped_column(String(255), nullable=False)
    rep_index: Mapped[int] = mapped_column(Integer, default=0)
