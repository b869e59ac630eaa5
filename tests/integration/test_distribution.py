"""
RFPFlow Integration Tests: Sending RFPs to vendors
"""

from datetime import date

import pytest
import pytest_asyncio

from api.distribution import RFPDistributionService
from core.errors import NotFoundError
from database.models import ProposalStatus, RFPStatus
from database.repositories import ProposalRepository, RFPRepository, VendorRepository


@pytest_asyncio.fixture
async def rfp_and_vendors(db):
    async with db.session() as session:
        rfp = await RFPRepository(session).create(
            title="Office chairs",
            description="Need 5 chairs",
            budget=1000,
            deadline=date(2025, 1, 25),
            requirements=[{"item": "chairs", "quantity": 5}],
            payment_terms="net 30",
        )
        vendors = [
            await VendorRepository(session).create(name="Acme", email="sales@acme.com"),
            await VendorRepository(session).create(name="Globex", email="bids@globex.com"),
            await VendorRepository(session).create(name="Initech", email="rfq@initech.com"),
        ]
        return rfp.id, [v.id for v in vendors]


async def _proposals(db, rfp_id):
    async with db.session() as session:
        return {p.vendor_id: p for p in await ProposalRepository(session).list_for_rfp(rfp_id)}


@pytest.mark.integration
class TestRFPDistribution:
    @pytest.mark.asyncio
    async def test_send_creates_pending_proposals_and_marks_sent(
        self, db, email_service, email_provider, rfp_and_vendors
    ):
        rfp_id, vendor_ids = rfp_and_vendors
        service = RFPDistributionService(db, email_service)

        sent_to = await service.send_rfp_to_vendors(rfp_id, vendor_ids[:2])

        assert sent_to == ["sales@acme.com", "bids@globex.com"]
        subject = f"RFP: Office chairs - {rfp_id}"
        assert [m["subject"] for m in email_provider.sent] == [subject, subject]
        assert email_provider.sent[0]["reply_to"] == "procurement@rfpflow.local"
        assert "chairs (Quantity: 5)" in email_provider.sent[0]["text"]

        proposals = await _proposals(db, rfp_id)
        assert set(proposals) == set(vendor_ids[:2])
        for proposal in proposals.values():
            assert proposal.status == ProposalStatus.PENDING
            assert proposal.email_subject == subject
            assert proposal.parsed_data is None

        async with db.session() as session:
            assert (await RFPRepository(session).get_by_id(rfp_id)).status == RFPStatus.SENT

    @pytest.mark.asyncio
    async def test_failed_vendor_is_skipped(self, db, email_service, email_provider, rfp_and_vendors):
        rfp_id, vendor_ids = rfp_and_vendors
        email_provider.fail_for = {"sales@acme.com"}
        email_provider.raise_for = {"bids@globex.com"}

        sent_to = await RFPDistributionService(db, email_service).send_rfp_to_vendors(rfp_id, vendor_ids)

        assert sent_to == ["rfq@initech.com"]
        assert set(await _proposals(db, rfp_id)) == {vendor_ids[2]}
        async with db.session() as session:
            assert (await RFPRepository(session).get_by_id(rfp_id)).status == RFPStatus.SENT

    @pytest.mark.asyncio
    async def test_resend_keeps_received_proposal(self, db, email_service, rfp_and_vendors):
        rfp_id, vendor_ids = rfp_and_vendors
        async with db.session() as session:
            received = await ProposalRepository(session).upsert(
                rfp_id, vendor_ids[0],
                status=ProposalStatus.RECEIVED,
                email_subject="Re: old subject",
                parsed_data={"totalPrice": 900},
                total_price=900,
            )
            updated_at = received.updated_at

        await RFPDistributionService(db, email_service).send_rfp_to_vendors(rfp_id, [vendor_ids[0]])

        proposal = (await _proposals(db, rfp_id))[vendor_ids[0]]
        assert proposal.status == ProposalStatus.RECEIVED
        assert proposal.total_price == 900
        assert proposal.parsed_data == {"totalPrice": 900}
        assert proposal.email_subject == f"RFP: Office chairs - {rfp_id}"
        assert proposal.updated_at == updated_at

    @pytest.mark.asyncio
    async def test_unknown_ids_are_ignored(self, db, email_service, email_provider, rfp_and_vendors):
        rfp_id, vendor_ids = rfp_and_vendors

        sent_to = await RFPDistributionService(db, email_service).send_rfp_to_vendors(
            rfp_id, [vendor_ids[0], 9999]
        )

        assert sent_to == ["sales@acme.com"]
        assert len(email_provider.sent) == 1

    @pytest.mark.asyncio
    async def test_missing_rfp_or_vendors(self, db, email_service, rfp_and_vendors):
        rfp_id, _ = rfp_and_vendors
        service = RFPDistributionService(db, email_service)

        with pytest.raises(NotFoundError, match="RFP not found"):
            await service.send_rfp_to_vendors(9999, [1])
        with pytest.raises(NotFoundError, match="No vendors found"):
            await service.send_rfp_to_vendors(rfp_id, [9999])
