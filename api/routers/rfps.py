"""
RFP routes: drafting from free text, CRUD, proposals and comparison.
"""

import logging
from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from agents.procurement_agent import ProcurementExtractionAgent
from api.dependencies import get_agent, get_comparison_manager, get_database, get_session
from api.schemas import RFPCreateRequest, RFPUpdateRequest
from core.errors import NotFoundError, ValidationError
from database.connection import Database
from database.models import RFPStatus
from database.repositories import ProposalRepository, RFPRepository
from evaluation.comparison_cache import ComparisonCacheManager

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/rfps", tags=["RFPs"])


@router.post("")
async def create_rfp(
    body: RFPCreateRequest,
    database: Database = Depends(get_database),
    agent: ProcurementExtractionAgent = Depends(get_agent),
):
    """Draft an RFP from a free-text description."""
    if not body.description or not body.description.strip():
        raise ValidationError("Description is required")

    extraction = await agent.extract_rfp(body.description)

    async with database.session() as session:
        rfp = await RFPRepository(session).create(
            title=extraction.title,
            description=extraction.description or body.description,
            budget=extraction.budget,
            deadline=date.fromisoformat(extraction.deadline) if extraction.deadline else None,
            requirements=[
                r.model_dump(by_alias=True, mode="json", exclude_none=True)
                for r in extraction.requirements
            ],
            payment_terms=extraction.payment_terms,
            warranty_req=extraction.warranty_req,
            delivery_terms=extraction.delivery_terms,
            status=RFPStatus.DRAFT,
        )
        payload = rfp.to_dict()

    logger.info("Created RFP %s: %s", payload["id"], payload["title"], extra={"rfp_id": payload["id"]})
    return {"success": True, "rfp": payload}


@router.get("")
async def list_rfps(session: AsyncSession = Depends(get_session)):
    rfps = await RFPRepository(session).list_all()
    return {"success": True, "rfps": [r.to_dict(include_proposals=True) for r in rfps]}


@router.get("/{rfp_id}")
async def get_rfp(rfp_id: int, session: AsyncSession = Depends(get_session)):
    rfp = await RFPRepository(session).get_by_id(rfp_id, with_proposals=True)
    if rfp is None:
        raise NotFoundError("RFP not found")
    return {"success": True, "rfp": rfp.to_dict(include_proposals=True)}


@router.put("/{rfp_id}")
async def update_rfp(
    rfp_id: int,
    body: RFPUpdateRequest,
    session: AsyncSession = Depends(get_session),
):
    """Partial update; only fields present in the body are written."""
    fields = body.model_dump(exclude_unset=True)
    if "status" in fields and fields["status"] not in RFPStatus.ALL:
        raise ValidationError(f"Invalid status. Must be one of: {', '.join(RFPStatus.ALL)}")
    if "title" in fields and not fields["title"]:
        raise ValidationError("Title cannot be empty")
    if "description" in fields and not fields["description"]:
        raise ValidationError("Description cannot be empty")
    if fields.get("requirements") is None:
        fields.pop("requirements", None)

    rfp = await RFPRepository(session).update(rfp_id, **fields)
    if rfp is None:
        raise NotFoundError("RFP not found")
    return {"success": True, "rfp": rfp.to_dict(include_proposals=True)}


@router.delete("/{rfp_id}")
async def delete_rfp(rfp_id: int, session: AsyncSession = Depends(get_session)):
    if not await RFPRepository(session).delete(rfp_id):
        raise NotFoundError("RFP not found")
    logger.info("Deleted RFP %s", rfp_id, extra={"rfp_id": rfp_id})
    return {"success": True}


@router.get("/{rfp_id}/proposals")
async def list_proposals(rfp_id: int, session: AsyncSession = Depends(get_session)):
    if await RFPRepository(session).get_by_id(rfp_id) is None:
        raise NotFoundError("RFP not found")
    proposals = await ProposalRepository(session).list_for_rfp(rfp_id)
    return {"success": True, "proposals": [p.to_dict(include_vendor=True) for p in proposals]}


@router.get("/{rfp_id}/comparison")
async def get_comparison(
    rfp_id: int,
    refresh: bool = Query(False, description="Recompute even if a valid cached comparison exists"),
    manager: ComparisonCacheManager = Depends(get_comparison_manager),
):
    outcome = await manager.get_comparison(rfp_id, force_refresh=refresh)
    return {"success": True, "comparison": outcome.comparison, "cached": outcome.cached}
