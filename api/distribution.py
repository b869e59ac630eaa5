"""
RFP distribution: email an RFP to vendors and open a proposal row per vendor.

Delivery is best-effort. A vendor whose send fails is logged and skipped;
the remaining vendors are still tried.
"""

import logging
from typing import List, Sequence

from api.email_service import EmailService, EmailTemplate
from core.errors import NotFoundError
from database.connection import Database
from database.models import RFPStatus
from database.repositories import ProposalRepository, RFPRepository, VendorRepository

logger = logging.getLogger(__name__)


class RFPDistributionService:
    def __init__(self, database: Database, email_service: EmailService):
        self.database = database
        self.email_service = email_service

    async def send_rfp_to_vendors(self, rfp_id: int, vendor_ids: Sequence[int]) -> List[str]:
        """Send the RFP to each vendor; returns the addresses actually sent to."""
        async with self.database.session() as session:
            rfp = await RFPRepository(session).get_by_id(rfp_id)
            if rfp is None:
                raise NotFoundError("RFP not found")
            vendors = await VendorRepository(session).get_many(vendor_ids)
            if not vendors:
                raise NotFoundError("No vendors found")
            subject, html_body, text_body = EmailTemplate.rfp_invitation(rfp)
            recipients = [(v.id, v.email) for v in vendors]

        sent_to: List[str] = []
        for vendor_id, address in recipients:
            try:
                delivered = await self.email_service.send_email(address, subject, html_body, text_body)
                if not delivered:
                    logger.error(
                        "Failed to send RFP %s to %s", rfp_id, address,
                        extra={"rfp_id": rfp_id, "vendor_id": vendor_id},
                    )
                    continue
                async with self.database.session() as session:
                    await ProposalRepository(session).upsert(
                        rfp_id, vendor_id, touch=False, email_subject=subject
                    )
                sent_to.append(address)
            except Exception:
                logger.exception(
                    "Failed to send RFP %s to %s", rfp_id, address,
                    extra={"rfp_id": rfp_id, "vendor_id": vendor_id},
                )

        async with self.database.session() as session:
            await RFPRepository(session).set_status(rfp_id, RFPStatus.SENT)

        logger.info("RFP %s sent to %d of %d vendor(s)", rfp_id, len(sent_to), len(recipients))
        return sent_to
