"""
Outbound email routes: send an RFP to vendors, verify the mail transport.
"""

from fastapi import APIRouter, Depends

from api.dependencies import get_distribution_service, get_email_service
from api.distribution import RFPDistributionService
from api.email_service import EmailService
from api.schemas import SendRFPRequest
from core.errors import ValidationError

router = APIRouter(prefix="/email", tags=["Email"])


@router.post("/rfps/{rfp_id}/send")
async def send_rfp(
    rfp_id: int,
    body: SendRFPRequest,
    distribution: RFPDistributionService = Depends(get_distribution_service),
):
    if not body.vendor_ids:
        raise ValidationError("vendorIds array is required")
    sent_to = await distribution.send_rfp_to_vendors(rfp_id, body.vendor_ids)
    return {"success": True, "sentTo": sent_to}


@router.get("/verify")
async def verify_email(email_service: EmailService = Depends(get_email_service)):
    connected = await email_service.verify_connection()
    return {"success": True, "connected": connected}
