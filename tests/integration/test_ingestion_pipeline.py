"""
RFPFlow Integration Tests: Proposal ingestion pipeline
======================================================

Runs full poll cycles against an in-memory database, a fake mailbox and a
scripted extraction model.

Tests:
- Reuse of parsed data for identical content (no model call)
- Re-extraction and new hash when content changes
- Comparison cache invalidation after every persisted reply
- Skips (no RFP id, unknown vendor, unknown RFP) and failures
- Serialized writes for duplicate replies from the same vendor
"""

import asyncio
from datetime import date, datetime

import pytest
import pytest_asyncio

from agents.integrations.llm_clients import TaskType
from core.errors import OracleUnavailableError
from database.models import ProposalStatus
from database.repositories import ProposalRepository, RFPRepository, VendorRepository
from ingestion.pipeline import CycleState, IngestionOutcome, ProposalIngestionPipeline

REPLY_BODY = "Total $900, delivery in 10 days, net 30, 2 year warranty"


@pytest_asyncio.fixture
async def seeded(db):
    """One RFP with a cached comparison, one vendor, and a pending proposal row"""
    async with db.session() as session:
        rfp = await RFPRepository(session).create(
            title="Office chairs",
            description="Need 5 chairs",
            budget=1000,
            requirements=[{"item": "chairs", "quantity": 5}],
            status="sent",
        )
        vendor = await VendorRepository(session).create(name="Acme", email="sales@acme.com")
        await ProposalRepository(session).upsert(rfp.id, vendor.id, email_subject="RFP: Office chairs - 1")
        await RFPRepository(session).save_comparison(rfp.id, {"scores": []}, datetime(2025, 1, 1))
        return rfp.id, vendor.id


def _pipeline(db, agent, mailbox, config):
    return ProposalIngestionPipeline(
        database=db,
        agent=agent,
        mailbox_factory=lambda: mailbox,
        config=config,
        clock=lambda: datetime(2025, 1, 15, 12, 0),
    )


async def _proposal(db, rfp_id, vendor_id):
    async with db.session() as session:
        return await ProposalRepository(session).get_for_pair(rfp_id, vendor_id)


async def _rfp(db, rfp_id):
    async with db.session() as session:
        return await RFPRepository(session).get_by_id(rfp_id)


@pytest.mark.integration
class TestPollCycle:
    @pytest.mark.asyncio
    async def test_reply_is_parsed_scored_and_persisted(
        self, db, agent, fake_llm, seeded, raw_email, make_mailbox, mailbox_config, chairs_proposal_response
    ):
        rfp_id, vendor_id = seeded
        mailbox = make_mailbox({"1": raw_email(
            f"Re: RFP: Office chairs - {rfp_id}",
            "Acme Sales <Sales@Acme.com>",
            body=REPLY_BODY,
            sent_at=datetime(2025, 1, 20, 9, 0),
        )})
        fake_llm.queue(chairs_proposal_response)

        report = await _pipeline(db, agent, mailbox, mailbox_config).poll_inbox()

        assert report.state == CycleState.DISCONNECTED
        assert report.found == 1
        assert report.outcomes[IngestionOutcome.INGESTED] == 1
        assert mailbox.selected == "INBOX"
        assert mailbox.searched_since == date(2025, 1, 8)
        assert mailbox.seen == ["1"]
        assert mailbox.closed

        proposal = await _proposal(db, rfp_id, vendor_id)
        assert proposal.status == ProposalStatus.RECEIVED
        assert proposal.total_price == 900
        assert proposal.currency == "USD"
        assert proposal.delivery_date == date(2025, 1, 30)
        assert proposal.payment_terms == "net 30"
        assert proposal.completeness == 100
        assert proposal.ai_summary == "Five chairs for $900 delivered in 10 days."
        assert proposal.content_hash

        rfp = await _rfp(db, rfp_id)
        assert rfp.ai_comparison_result is None
        assert rfp.ai_comparison_updated_at is None

    @pytest.mark.asyncio
    async def test_identical_reply_reuses_parsed_data(
        self, db, agent, fake_llm, seeded, raw_email, make_mailbox, mailbox_config, chairs_proposal_response
    ):
        rfp_id, vendor_id = seeded
        raw = raw_email(f"Re: RFP: Office chairs - {rfp_id}", "sales@acme.com", body=REPLY_BODY)
        fake_llm.queue(chairs_proposal_response)

        await _pipeline(db, agent, make_mailbox({"1": raw}), mailbox_config).poll_inbox()
        first = await _proposal(db, rfp_id, vendor_id)

        async with db.session() as session:
            await RFPRepository(session).save_comparison(rfp_id, {"scores": [{}]}, datetime(2025, 1, 16))

        report = await _pipeline(db, agent, make_mailbox({"2": raw}), mailbox_config).poll_inbox()
        second = await _proposal(db, rfp_id, vendor_id)

        assert report.outcomes[IngestionOutcome.REUSED] == 1
        assert fake_llm.calls_for(TaskType.PROPOSAL_EXTRACTION) == 1
        assert second.content_hash == first.content_hash
        assert second.parsed_data == first.parsed_data
        # Invalidation fires on the reuse branch too
        assert (await _rfp(db, rfp_id)).ai_comparison_result is None

    @pytest.mark.asyncio
    async def test_changed_reply_is_reextracted(
        self, db, agent, fake_llm, seeded, raw_email, make_mailbox, mailbox_config, chairs_proposal_response
    ):
        rfp_id, vendor_id = seeded
        subject = f"Re: RFP: Office chairs - {rfp_id}"
        fake_llm.queue(chairs_proposal_response, dict(chairs_proposal_response, totalPrice=850))

        await _pipeline(db, agent, make_mailbox({"1": raw_email(subject, "sales@acme.com", body=REPLY_BODY)}), mailbox_config).poll_inbox()
        first = await _proposal(db, rfp_id, vendor_id)

        revised = raw_email(
            subject, "sales@acme.com", body=REPLY_BODY,
            attachments=[("revised.txt", "text/plain", b"Revised total $850")],
        )
        report = await _pipeline(db, agent, make_mailbox({"2": revised}), mailbox_config).poll_inbox()
        second = await _proposal(db, rfp_id, vendor_id)

        assert report.outcomes[IngestionOutcome.INGESTED] == 1
        assert fake_llm.calls_for(TaskType.PROPOSAL_EXTRACTION) == 2
        assert second.content_hash != first.content_hash
        assert second.total_price == 850
        _, messages = fake_llm.calls[-1]
        assert "Revised total $850" in messages[-1].content

    @pytest.mark.asyncio
    async def test_skips_are_not_errors_and_stay_unseen(
        self, db, agent, fake_llm, seeded, raw_email, make_mailbox, mailbox_config
    ):
        rfp_id, _ = seeded
        mailbox = make_mailbox({
            "1": raw_email("Lunch on Friday?", "sales@acme.com", body="hi"),
            "2": raw_email(f"Re: RFP: Office chairs - {rfp_id}", "stranger@else.com", body="quote"),
            "3": raw_email("Re: RFP: Ghost - 999", "sales@acme.com", body="quote"),
        })

        report = await _pipeline(db, agent, mailbox, mailbox_config).poll_inbox()

        assert report.state == CycleState.DISCONNECTED
        assert report.outcomes[IngestionOutcome.SKIPPED_NO_RFP_ID] == 1
        assert report.outcomes[IngestionOutcome.SKIPPED_UNKNOWN_VENDOR] == 1
        assert report.outcomes[IngestionOutcome.SKIPPED_UNKNOWN_RFP] == 1
        assert mailbox.seen == []
        assert fake_llm.calls == []
        # Nothing was written, so the cache survives
        assert (await _rfp(db, rfp_id)).ai_comparison_result == {"scores": []}

    @pytest.mark.asyncio
    async def test_vendor_matched_by_substring(
        self, db, agent, fake_llm, raw_email, make_mailbox, mailbox_config, chairs_proposal_response
    ):
        async with db.session() as session:
            rfp = await RFPRepository(session).create(title="Chairs", description="chairs", requirements=[])
            vendor = await VendorRepository(session).create(name="Acme", email="sales@acme.com; orders@acme.com")
            rfp_id, vendor_id = rfp.id, vendor.id
        fake_llm.queue(chairs_proposal_response)
        mailbox = make_mailbox({"1": raw_email(f"RFP: Chairs - {rfp_id}", "Orders@Acme.com", body="quote")})

        report = await _pipeline(db, agent, mailbox, mailbox_config).poll_inbox()

        assert report.outcomes[IngestionOutcome.INGESTED] == 1
        assert (await _proposal(db, rfp_id, vendor_id)) is not None

    @pytest.mark.asyncio
    async def test_one_failing_message_does_not_abort_cycle(
        self, db, agent, fake_llm, seeded, raw_email, make_mailbox, mailbox_config, chairs_proposal_response
    ):
        rfp_id, vendor_id = seeded
        subject = f"Re: RFP: Office chairs - {rfp_id}"
        mailbox = make_mailbox(
            {
                "1": raw_email(subject, "sales@acme.com", body="first"),
                "2": raw_email(subject, "sales@acme.com", body="second"),
                "3": b"",
            },
            broken_uids=["3"],
        )
        mailbox_config.concurrency = 1
        fake_llm.queue("not json at all", chairs_proposal_response)

        report = await _pipeline(db, agent, mailbox, mailbox_config).poll_inbox()

        assert report.state == CycleState.DISCONNECTED
        assert report.outcomes[IngestionOutcome.FAILED] == 2
        assert report.outcomes[IngestionOutcome.INGESTED] == 1
        assert mailbox.seen == ["2"]
        assert (await _proposal(db, rfp_id, vendor_id)).total_price == 900

    @pytest.mark.asyncio
    async def test_broken_attachment_still_uses_body(
        self, db, agent, fake_llm, seeded, raw_email, make_mailbox, mailbox_config, chairs_proposal_response
    ):
        rfp_id, vendor_id = seeded
        raw = raw_email(
            f"Re: RFP: Office chairs - {rfp_id}", "sales@acme.com", body=REPLY_BODY,
            attachments=[
                ("quote.pdf", "application/pdf", b"%PDF-broken"),
                ("notes.txt", "text/plain", b"Chairs are black mesh"),
            ],
        )
        fake_llm.queue(chairs_proposal_response)

        report = await _pipeline(db, agent, make_mailbox({"1": raw}), mailbox_config).poll_inbox()

        assert report.outcomes[IngestionOutcome.INGESTED] == 1
        prompt = fake_llm.calls[0][1][-1].content
        assert REPLY_BODY in prompt
        assert "Chairs are black mesh" in prompt
        assert "quote.pdf" not in prompt

    @pytest.mark.asyncio
    async def test_model_unavailable_fails_message_not_cycle(
        self, db, agent, fake_llm, seeded, raw_email, make_mailbox, mailbox_config
    ):
        rfp_id, vendor_id = seeded
        mailbox = make_mailbox({"1": raw_email(f"Re: RFP: Office chairs - {rfp_id}", "sales@acme.com", body="quote")})
        fake_llm.queue(OracleUnavailableError("http://localhost:11434/v1", "llama3.2"))

        report = await _pipeline(db, agent, mailbox, mailbox_config).poll_inbox()

        assert report.state == CycleState.DISCONNECTED
        assert report.outcomes[IngestionOutcome.FAILED] == 1
        assert mailbox.seen == []
        assert (await _proposal(db, rfp_id, vendor_id)).status == ProposalStatus.PENDING

    @pytest.mark.asyncio
    @pytest.mark.parametrize("step", ["connect", "select", "search"])
    async def test_transport_failure_aborts_cycle(self, db, agent, make_mailbox, mailbox_config, step):
        mailbox = make_mailbox({}, fail_on=step)

        report = await _pipeline(db, agent, mailbox, mailbox_config).poll_inbox()

        assert report.state == CycleState.FAILED
        assert f"{step} failed" in report.error
        assert mailbox.closed

    @pytest.mark.asyncio
    async def test_mark_seen_disabled(
        self, db, agent, fake_llm, seeded, raw_email, make_mailbox, mailbox_config, chairs_proposal_response
    ):
        rfp_id, _ = seeded
        mailbox_config.mark_seen = False
        mailbox = make_mailbox({"1": raw_email(f"RFP: Office chairs - {rfp_id}", "sales@acme.com", body="q")})
        fake_llm.queue(chairs_proposal_response)

        await _pipeline(db, agent, mailbox, mailbox_config).poll_inbox()

        assert mailbox.seen == []


class SlowAgent:
    """Extraction agent that records overlap between concurrent calls"""

    def __init__(self, inner):
        self.inner = inner
        self.active = 0
        self.max_active = 0

    async def parse_proposal_response(self, *args, **kwargs):
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(0.01)
            return await self.inner.parse_proposal_response(*args, **kwargs)
        finally:
            self.active -= 1


@pytest.mark.integration
class TestSamePairSerialization:
    @pytest.mark.asyncio
    async def test_duplicate_replies_do_not_interleave(
        self, db, agent, fake_llm, seeded, raw_email, make_mailbox, mailbox_config, chairs_proposal_response
    ):
        rfp_id, vendor_id = seeded
        subject = f"Re: RFP: Office chairs - {rfp_id}"
        raw = raw_email(subject, "sales@acme.com", body=REPLY_BODY)
        mailbox = make_mailbox({"1": raw, "2": raw})
        mailbox_config.concurrency = 4
        slow = SlowAgent(agent)
        fake_llm.queue(chairs_proposal_response)

        pipeline = _pipeline(db, slow, mailbox, mailbox_config)
        report = await pipeline.poll_inbox()

        # The second reply waits for the first, then sees its hash
        assert slow.max_active == 1
        assert report.outcomes[IngestionOutcome.INGESTED] == 1
        assert report.outcomes[IngestionOutcome.REUSED] == 1
        assert fake_llm.calls_for(TaskType.PROPOSAL_EXTRACTION) == 1
        async with db.session() as session:
            assert len(await ProposalRepository(session).list_for_rfp(rfp_id)) == 1
        # No lock outlives the cycle that used it
        assert len(pipeline._pair_locks) == 0

    @pytest.mark.asyncio
    async def test_different_vendors_run_concurrently(
        self, db, agent, fake_llm, seeded, raw_email, make_mailbox, mailbox_config, chairs_proposal_response
    ):
        rfp_id, _ = seeded
        async with db.session() as session:
            await VendorRepository(session).create(name="Globex", email="bids@globex.com")
        subject = f"Re: RFP: Office chairs - {rfp_id}"
        mailbox = make_mailbox({
            "1": raw_email(subject, "sales@acme.com", body="acme quote"),
            "2": raw_email(subject, "bids@globex.com", body="globex quote"),
        })
        mailbox_config.concurrency = 2
        slow = SlowAgent(agent)
        fake_llm.queue(chairs_proposal_response, chairs_proposal_response)

        pipeline = _pipeline(db, slow, mailbox, mailbox_config)
        report = await pipeline.poll_inbox()

        assert report.outcomes[IngestionOutcome.INGESTED] == 2
        assert slow.max_active == 2
        assert len(pipeline._pair_locks) == 0
