"""
RFPFlow Database Repositories
Data access layer for RFPs, vendors and proposals
"""

from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from core.errors import ConflictError
from database.models import RFP, Proposal, Vendor, utcnow

DUPLICATE_VENDOR_EMAIL = "Vendor with this email already exists"


# ============================================
# RFP Repository
# ============================================

class RFPRepository:
    """Repository for RFP operations."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, **fields) -> RFP:
        """Create a new RFP."""
        rfp = RFP(**fields)
        self.session.add(rfp)
        await self.session.flush()
        return rfp

    async def get_by_id(self, rfp_id: int, with_proposals: bool = False) -> Optional[RFP]:
        """Get RFP by ID, optionally with proposals and their vendors loaded."""
        query = select(RFP).where(RFP.id == rfp_id)
        if with_proposals:
            query = query.options(
                selectinload(RFP.proposals).selectinload(Proposal.vendor)
            ).execution_options(populate_existing=True)
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def list_all(self) -> List[RFP]:
        """List RFPs newest first with proposals and vendors."""
        result = await self.session.execute(
            select(RFP)
            .options(selectinload(RFP.proposals).selectinload(Proposal.vendor))
            .order_by(RFP.created_at.desc(), RFP.id.desc())
        )
        return list(result.scalars().all())

    async def update(self, rfp_id: int, **fields) -> Optional[RFP]:
        """Update RFP fields."""
        rfp = await self.get_by_id(rfp_id)
        if rfp is None:
            return None
        for key, value in fields.items():
            setattr(rfp, key, value)
        await self.session.flush()
        return await self.get_by_id(rfp_id, with_proposals=True)

    async def set_status(self, rfp_id: int, status: str) -> None:
        await self.session.execute(
            update(RFP).where(RFP.id == rfp_id).values(status=status)
        )

    async def delete(self, rfp_id: int) -> bool:
        """Delete an RFP and, through the cascade, its proposals."""
        rfp = await self.get_by_id(rfp_id, with_proposals=True)
        if rfp is None:
            return False
        await self.session.delete(rfp)
        await self.session.flush()
        return True

    async def save_comparison(
        self, rfp_id: int, result: Dict[str, Any], computed_at: Optional[datetime] = None
    ) -> None:
        """Persist a comparison result and its timestamp onto the RFP."""
        await self.session.execute(
            update(RFP)
            .where(RFP.id == rfp_id)
            .values(
                ai_comparison_result=result,
                ai_comparison_updated_at=computed_at or utcnow(),
            )
        )

    async def clear_comparison_cache(self, rfp_id: int) -> None:
        """Null out the cached comparison and its timestamp."""
        await self.session.execute(
            update(RFP)
            .where(RFP.id == rfp_id)
            .values(ai_comparison_result=None, ai_comparison_updated_at=None)
        )


# ============================================
# Vendor Repository
# ============================================

class VendorRepository:
    """Repository for vendor operations."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, name: str, email: str, company: Optional[str] = None) -> Vendor:
        """Create a vendor. A duplicate email raises ConflictError."""
        email = email.strip()
        if await self.get_by_email(email) is not None:
            raise ConflictError(DUPLICATE_VENDOR_EMAIL)
        vendor = Vendor(name=name, email=email, company=company)
        self.session.add(vendor)
        try:
            await self.session.flush()
        except IntegrityError as e:
            raise ConflictError(DUPLICATE_VENDOR_EMAIL) from e
        return vendor

    async def get_by_id(self, vendor_id: int) -> Optional[Vendor]:
        result = await self.session.execute(
            select(Vendor).where(Vendor.id == vendor_id)
        )
        return result.scalar_one_or_none()

    async def get_by_email(self, email: str) -> Optional[Vendor]:
        result = await self.session.execute(
            select(Vendor).where(Vendor.email == email)
        )
        return result.scalar_one_or_none()

    async def get_many(self, vendor_ids: Iterable[int]) -> List[Vendor]:
        """Vendors for the given ids, in id order; unknown ids are ignored."""
        ids = list(vendor_ids)
        if not ids:
            return []
        result = await self.session.execute(
            select(Vendor).where(Vendor.id.in_(ids)).order_by(Vendor.id)
        )
        return list(result.scalars().all())

    async def list_all(self) -> List[Vendor]:
        """List vendors by name with their proposals and each proposal's RFP."""
        result = await self.session.execute(
            select(Vendor)
            .options(selectinload(Vendor.proposals).selectinload(Proposal.rfp))
            .order_by(Vendor.name)
        )
        return list(result.scalars().all())

    async def find_by_sender(self, address: str) -> Optional[Vendor]:
        """
        Resolve an inbound sender address to a vendor.

        Exact case-insensitive match wins; otherwise the first vendor whose
        stored email contains the address.
        """
        address = (address or "").strip().lower()
        if not address:
            return None
        result = await self.session.execute(
            select(Vendor).where(func.lower(Vendor.email) == address).order_by(Vendor.id)
        )
        vendor = result.scalars().first()
        if vendor is not None:
            return vendor
        result = await self.session.execute(
            select(Vendor)
            .where(func.lower(Vendor.email).contains(address, autoescape=True))
            .order_by(Vendor.id)
        )
        return result.scalars().first()

    async def update(self, vendor_id: int, **fields) -> Optional[Vendor]:
        vendor = await self.get_by_id(vendor_id)
        if vendor is None:
            return None
        if "email" in fields and fields["email"] is not None:
            fields["email"] = fields["email"].strip()
            existing = await self.get_by_email(fields["email"])
            if existing is not None and existing.id != vendor_id:
                raise ConflictError(DUPLICATE_VENDOR_EMAIL)
        for key, value in fields.items():
            setattr(vendor, key, value)
        try:
            await self.session.flush()
        except IntegrityError as e:
            raise ConflictError(DUPLICATE_VENDOR_EMAIL) from e
        return vendor

    async def delete(self, vendor_id: int) -> bool:
        """Delete a vendor that no proposal references."""
        vendor = await self.get_by_id(vendor_id)
        if vendor is None:
            return False
        in_use = await self.session.scalar(
            select(func.count(Proposal.id)).where(Proposal.vendor_id == vendor_id)
        )
        if in_use:
            raise ConflictError("Vendor has proposals and cannot be deleted")
        await self.session.execute(delete(Vendor).where(Vendor.id == vendor_id))
        return True

    async def ensure(self, name: str, email: str, company: Optional[str] = None) -> Vendor:
        """Create the vendor unless one with this email exists (used by seeding)."""
        vendor = await self.get_by_email(email)
        if vendor is not None:
            return vendor
        return await self.create(name=name, email=email, company=company)


# ============================================
# Proposal Repository
# ============================================

class ProposalRepository:
    """Repository for proposal operations."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_for_pair(self, rfp_id: int, vendor_id: int) -> Optional[Proposal]:
        result = await self.session.execute(
            select(Proposal).where(
                Proposal.rfp_id == rfp_id, Proposal.vendor_id == vendor_id
            )
        )
        return result.scalar_one_or_none()

    async def list_for_rfp(self, rfp_id: int) -> List[Proposal]:
        """Proposals for an RFP, newest first, with vendor loaded."""
        result = await self.session.execute(
            select(Proposal)
            .where(Proposal.rfp_id == rfp_id)
            .options(selectinload(Proposal.vendor))
            .order_by(Proposal.created_at.desc(), Proposal.id.desc())
        )
        return list(result.scalars().all())

    async def upsert(self, rfp_id: int, vendor_id: int, touch: bool = True, **fields) -> Proposal:
        """
        Insert or update the single proposal row for (rfp_id, vendor_id).

        touch=True marks a content write and refreshes updated_at. Bookkeeping
        writes (the invitation subject on a resend) pass touch=False.
        """
        if touch:
            fields.setdefault("updated_at", utcnow())
        dialect = self.session.get_bind().dialect.name

        if dialect in ("postgresql", "sqlite"):
            insert = pg_insert if dialect == "postgresql" else sqlite_insert
            stmt = insert(Proposal).values(rfp_id=rfp_id, vendor_id=vendor_id, **fields)
            stmt = stmt.on_conflict_do_update(
                index_elements=[Proposal.rfp_id, Proposal.vendor_id],
                set_={key: stmt.excluded[key] for key in fields},
            )
            await self.session.execute(stmt)
        else:
            proposal = await self.get_for_pair(rfp_id, vendor_id)
            if proposal is None:
                proposal = Proposal(rfp_id=rfp_id, vendor_id=vendor_id)
                self.session.add(proposal)
            for key, value in fields.items():
                setattr(proposal, key, value)
            await self.session.flush()

        result = await self.session.execute(
            select(Proposal)
            .where(Proposal.rfp_id == rfp_id, Proposal.vendor_id == vendor_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one()

    async def set_ai_scores(self, rfp_id: int, scores: Dict[int, float]) -> int:
        """Write comparison scores per vendor. Leaves updated_at untouched."""
        written = 0
        for vendor_id, score in scores.items():
            result = await self.session.execute(
                update(Proposal)
                .where(Proposal.rfp_id == rfp_id, Proposal.vendor_id == vendor_id)
                .values(ai_score=score)
            )
            written += result.rowcount or 0
        return written
