"""
RFPFlow Database Models
SQLAlchemy async models for RFPs, vendors and vendor proposals
"""

from datetime import date, datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    JSON,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def utcnow() -> datetime:
    """Naive UTC timestamp, the form stored in every DateTime column"""
    return datetime.utcnow()


def _iso(value: Optional[Any]) -> Optional[str]:
    return value.isoformat() if value is not None else None


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


class RFPStatus:
    DRAFT = "draft"
    SENT = "sent"
    CLOSED = "closed"

    ALL = (DRAFT, SENT, CLOSED)


class ProposalStatus:
    PENDING = "pending"
    RECEIVED = "received"


# ============================================
# RFP
# ============================================

class RFP(Base):
    """A procurement request drafted from a free-text description."""
    __tablename__ = "rfps"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    budget: Mapped[Optional[float]] = mapped_column(Numeric(14, 2, asdecimal=False))
    deadline: Mapped[Optional[date]] = mapped_column(Date)
    requirements: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, default=list)
    payment_terms: Mapped[Optional[str]] = mapped_column(Text)
    warranty_req: Mapped[Optional[str]] = mapped_column(Text)
    delivery_terms: Mapped[Optional[str]] = mapped_column(Text)
    status: Mapped[str] = mapped_column(String(20), default=RFPStatus.DRAFT, nullable=False)

    # Cached comparison and the time it was computed
    ai_comparison_result: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON(none_as_null=True))
    ai_comparison_updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

    proposals: Mapped[List["Proposal"]] = relationship(
        "Proposal", back_populates="rfp", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("idx_rfps_status", "status"),
    )

    def to_dict(self, include_proposals: bool = False) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "budget": self.budget,
            "deadline": _iso(self.deadline),
            "requirements": self.requirements or [],
            "paymentTerms": self.payment_terms,
            "warrantyReq": self.warranty_req,
            "deliveryTerms": self.delivery_terms,
            "status": self.status,
            "aiComparisonResult": self.ai_comparison_result,
            "aiComparisonUpdatedAt": _iso(self.ai_comparison_updated_at),
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }
        if include_proposals:
            data["proposals"] = [p.to_dict(include_vendor=True) for p in self.proposals]
        return data


# ============================================
# Vendor
# ============================================

class Vendor(Base):
    """A supplier that can receive RFPs by email."""
    __tablename__ = "vendors"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(320), unique=True, nullable=False)
    company: Mapped[Optional[str]] = mapped_column(String(255))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

    proposals: Mapped[List["Proposal"]] = relationship("Proposal", back_populates="vendor")

    def to_dict(self, include_proposals: bool = False) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "company": self.company,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }
        if include_proposals:
            data["proposals"] = [p.to_dict(include_rfp=True) for p in self.proposals]
        return data


# ============================================
# Proposal
# ============================================

class Proposal(Base):
    """
    A vendor's response to one RFP.

    Exactly one row per (rfp_id, vendor_id). The row is created when the RFP is
    sent and filled in when the vendor's reply is ingested.

    updated_at is written explicitly on content changes only, never on ai_score
    writes, so the comparison cache can compare against it.
    """
    __tablename__ = "proposals"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    rfp_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("rfps.id", ondelete="CASCADE"), nullable=False
    )
    vendor_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("vendors.id"), nullable=False
    )
    status: Mapped[str] = mapped_column(String(20), default=ProposalStatus.PENDING, nullable=False)

    email_subject: Mapped[Optional[str]] = mapped_column(Text)
    email_body: Mapped[Optional[str]] = mapped_column(Text)
    raw_content: Mapped[Optional[str]] = mapped_column(Text)
    content_hash: Mapped[Optional[str]] = mapped_column(String(64))
    parsed_data: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON(none_as_null=True))

    # Mirrored out of parsed_data for querying
    total_price: Mapped[Optional[float]] = mapped_column(Float)
    currency: Mapped[Optional[str]] = mapped_column(String(10))
    delivery_date: Mapped[Optional[date]] = mapped_column(Date)
    payment_terms: Mapped[Optional[str]] = mapped_column(Text)
    warranty: Mapped[Optional[str]] = mapped_column(Text)
    line_items: Mapped[Optional[List[Dict[str, Any]]]] = mapped_column(JSON(none_as_null=True))
    terms: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON(none_as_null=True))
    ai_summary: Mapped[Optional[str]] = mapped_column(Text)
    completeness: Mapped[Optional[int]] = mapped_column(Integer)
    ai_score: Mapped[Optional[float]] = mapped_column(Float)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    rfp: Mapped["RFP"] = relationship("RFP", back_populates="proposals")
    vendor: Mapped["Vendor"] = relationship("Vendor", back_populates="proposals")

    __table_args__ = (
        UniqueConstraint("rfp_id", "vendor_id", name="uq_proposals_rfp_vendor"),
        Index("idx_proposals_rfp", "rfp_id"),
    )

    def to_dict(self, include_vendor: bool = False, include_rfp: bool = False) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "rfpId": self.rfp_id,
            "vendorId": self.vendor_id,
            "status": self.status,
            "emailSubject": self.email_subject,
            "emailBody": self.email_body,
            "rawContent": self.raw_content,
            "contentHash": self.content_hash,
            "parsedData": self.parsed_data,
            "totalPrice": self.total_price,
            "currency": self.currency,
            "deliveryDate": _iso(self.delivery_date),
            "paymentTerms": self.payment_terms,
            "warranty": self.warranty,
            "lineItems": self.line_items,
            "terms": self.terms,
            "aiSummary": self.ai_summary,
            "completeness": self.completeness,
            "aiScore": self.ai_score,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }
        if include_vendor:
            data["vendor"] = self.vendor.to_dict()
        if include_rfp:
            data["rfp"] = self.rfp.to_dict()
        return data
