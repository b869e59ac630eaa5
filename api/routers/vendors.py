"""
Vendor CRUD routes.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import get_session
from api.schemas import VendorCreateRequest, VendorUpdateRequest
from core.errors import NotFoundError, ValidationError
from database.repositories import VendorRepository

router = APIRouter(prefix="/vendors", tags=["Vendors"])


@router.get("")
async def list_vendors(session: AsyncSession = Depends(get_session)):
    vendors = await VendorRepository(session).list_all()
    return {"success": True, "vendors": [v.to_dict(include_proposals=True) for v in vendors]}


@router.get("/{vendor_id}")
async def get_vendor(vendor_id: int, session: AsyncSession = Depends(get_session)):
    vendor = await VendorRepository(session).get_by_id(vendor_id)
    if vendor is None:
        raise NotFoundError("Vendor not found")
    return {"success": True, "vendor": vendor.to_dict()}


@router.post("")
async def create_vendor(body: VendorCreateRequest, session: AsyncSession = Depends(get_session)):
    if not body.name or not body.email or not body.name.strip() or not body.email.strip():
        raise ValidationError("Name and email are required")
    vendor = await VendorRepository(session).create(
        name=body.name.strip(), email=body.email, company=body.company
    )
    return {"success": True, "vendor": vendor.to_dict()}


@router.put("/{vendor_id}")
async def update_vendor(
    vendor_id: int,
    body: VendorUpdateRequest,
    session: AsyncSession = Depends(get_session),
):
    fields = body.model_dump(exclude_unset=True)
    for required in ("name", "email"):
        if required in fields and not (fields[required] or "").strip():
            raise ValidationError(f"{required.capitalize()} cannot be empty")
    vendor = await VendorRepository(session).update(vendor_id, **fields)
    if vendor is None:
        raise NotFoundError("Vendor not found")
    return {"success": True, "vendor": vendor.to_dict()}


@router.delete("/{vendor_id}")
async def delete_vendor(vendor_id: int, session: AsyncSession = Depends(get_session)):
    if not await VendorRepository(session).delete(vendor_id):
        raise NotFoundError("Vendor not found")
    return {"success": True}
