"""
RFPFlow Proposal Ingestion Pipeline

One poll cycle:
    idle -> connected -> box-opened -> searching
         -> per message: parse -> resolve RFP/vendor -> (reuse | extract)
            -> persist -> invalidate comparison cache
         -> disconnected            (or failed on a transport error)

A failing message is logged and counted; it never aborts the cycle. A
transport failure (connect, select, search) aborts the cycle and is left to
the next scheduled tick.
"""

import asyncio
import hashlib
import json
import logging
import re
import weakref
from collections import Counter
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from agents.procurement_agent import ProcurementExtractionAgent
from core.config import MailboxConfig
from core.errors import MailboxError
from database.connection import Database
from database.models import ProposalStatus
from database.repositories import ProposalRepository, RFPRepository, VendorRepository
from evaluation.completeness import calculate_completeness
from ingestion.mailbox import InboundMessage, Mailbox, parse_inbound_message
from parsing.attachment_extractor import AttachmentExtractor

logger = logging.getLogger(__name__)

DEFAULT_SUMMARY = "Proposal received and parsed"
DEFAULT_CURRENCY = "USD"

# "RFP: <title> - <id>", tolerating "Re:"/"Fwd:" prefixes and text in between
_TRAILING_RFP_ID = re.compile(r"RFP.*-\s*(\d+)\s*$", re.IGNORECASE | re.DOTALL)
_ANY_RFP_ID = re.compile(r"RFP.*?-\s*(\d+)", re.IGNORECASE | re.DOTALL)


class CycleState(str, Enum):
    IDLE = "idle"
    CONNECTED = "connected"
    BOX_OPENED = "box-opened"
    SEARCHING = "searching"
    DISCONNECTED = "disconnected"
    FAILED = "failed"


class IngestionOutcome(str, Enum):
    INGESTED = "ingested"
    REUSED = "reused"
    SKIPPED_NO_RFP_ID = "skipped_no_rfp_id"
    SKIPPED_UNKNOWN_VENDOR = "skipped_unknown_vendor"
    SKIPPED_UNKNOWN_RFP = "skipped_unknown_rfp"
    FAILED = "failed"

    @property
    def persisted(self) -> bool:
        return self in (IngestionOutcome.INGESTED, IngestionOutcome.REUSED)


@dataclass
class PollCycleReport:
    state: CycleState = CycleState.IDLE
    found: int = 0
    outcomes: Counter = field(default_factory=Counter)
    error: Optional[str] = None
    started_at: datetime = field(default_factory=datetime.utcnow)
    finished_at: Optional[datetime] = None

    def record(self, outcome: IngestionOutcome) -> None:
        self.outcomes[outcome] += 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "found": self.found,
            "outcomes": {k.value: v for k, v in self.outcomes.items()},
            "error": self.error,
            "startedAt": self.started_at.isoformat(),
            "finishedAt": self.finished_at.isoformat() if self.finished_at else None,
        }


def extract_rfp_id(subject: Optional[str]) -> Optional[int]:
    """RFP id from a subject like 'Re: RFP: Office chairs - 42'"""
    if not subject:
        return None
    match = _TRAILING_RFP_ID.search(subject) or _ANY_RFP_ID.search(subject)
    return int(match.group(1)) if match else None


def content_hash(body: str, attachments: List[Dict[str, str]]) -> str:
    """sha-256 over the body text and the serialized attachment extractions"""
    serialized = json.dumps(attachments, separators=(",", ":"), ensure_ascii=False)
    return hashlib.sha256((body + serialized).encode("utf-8")).hexdigest()


def _as_date(value: Any) -> Optional[date]:
    if not value:
        return None
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        return None


class ProposalIngestionPipeline:
    """
    Polls the mailbox and turns vendor replies into proposal rows.

    Args:
        database: Database handle
        agent: extraction agent used for proposal parsing
        mailbox_factory: returns a fresh, unconnected Mailbox per cycle
        config: mailbox settings (folder, search window, fan-out, mark-seen)
        extractor: attachment extractor
        clock: naive UTC clock used for the search window
    """

    def __init__(
        self,
        database: Database,
        agent: ProcurementExtractionAgent,
        mailbox_factory: Callable[[], Mailbox],
        config: MailboxConfig,
        extractor: Optional[AttachmentExtractor] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.database = database
        self.agent = agent
        self.mailbox_factory = mailbox_factory
        self.config = config
        self.extractor = extractor or AttachmentExtractor()
        self.clock = clock
        # Entries live only while a task holds or awaits the lock
        self._pair_locks: "weakref.WeakValueDictionary[Tuple[int, int], asyncio.Lock]" = (
            weakref.WeakValueDictionary()
        )

    def _lock_for(self, rfp_id: int, vendor_id: int) -> asyncio.Lock:
        key = (rfp_id, vendor_id)
        lock = self._pair_locks.get(key)
        if lock is None:
            lock = self._pair_locks[key] = asyncio.Lock()
        return lock

    @staticmethod
    def _transition(report: PollCycleReport, state: CycleState) -> None:
        report.state = state
        logger.debug("Poll cycle -> %s", state.value, extra={"cycle_state": state.value})

    # ------------------------------------------------------------------
    # Cycle
    # ------------------------------------------------------------------

    async def poll_inbox(self) -> PollCycleReport:
        report = PollCycleReport()
        mailbox = self.mailbox_factory()
        try:
            await asyncio.to_thread(mailbox.connect)
            self._transition(report, CycleState.CONNECTED)

            await asyncio.to_thread(mailbox.select, self.config.folder)
            self._transition(report, CycleState.BOX_OPENED)

            self._transition(report, CycleState.SEARCHING)
            since = self.config.search_since(self.clock().date())
            uids = await asyncio.to_thread(mailbox.search_unseen_since, since)
            report.found = len(uids)
            logger.info("Found %d unseen message(s) since %s", len(uids), since.isoformat())

            messages = await self._fetch_all(mailbox, uids, report)
            results = await self._process_all(messages)

            for message, outcome in results:
                report.record(outcome)
                if outcome.persisted and self.config.mark_seen:
                    try:
                        await asyncio.to_thread(mailbox.mark_seen, message.uid)
                    except MailboxError as e:
                        logger.warning(
                            "Could not mark message %s seen: %s", message.uid, e,
                            extra={"message_uid": message.uid},
                        )
        except MailboxError as e:
            report.error = str(e)
            self._transition(report, CycleState.FAILED)
            logger.error("Poll cycle aborted: %s", e)
        finally:
            await asyncio.to_thread(mailbox.close)

        if report.state != CycleState.FAILED:
            self._transition(report, CycleState.DISCONNECTED)
        report.finished_at = datetime.utcnow()
        logger.info(
            "Poll cycle %s: %d found, %s",
            report.state.value,
            report.found,
            ", ".join(f"{k.value}={v}" for k, v in report.outcomes.items()) or "nothing processed",
        )
        return report

    async def _fetch_all(
        self, mailbox: Mailbox, uids: List[str], report: PollCycleReport
    ) -> List[InboundMessage]:
        # One IMAP connection: fetch sequentially
        messages = []
        for uid in uids:
            try:
                raw = await asyncio.to_thread(mailbox.fetch, uid)
                messages.append(parse_inbound_message(uid, raw))
            except Exception:
                logger.exception("Failed to fetch message %s", uid, extra={"message_uid": uid})
                report.record(IngestionOutcome.FAILED)
        return messages

    async def _process_all(
        self, messages: List[InboundMessage]
    ) -> List[Tuple[InboundMessage, IngestionOutcome]]:
        semaphore = asyncio.Semaphore(self.config.concurrency)

        async def run(message: InboundMessage) -> Tuple[InboundMessage, IngestionOutcome]:
            async with semaphore:
                return message, await self._ingest_safely(message)

        return list(await asyncio.gather(*(run(m) for m in messages)))

    async def _ingest_safely(self, message: InboundMessage) -> IngestionOutcome:
        try:
            return await self.ingest_message(message)
        except Exception:
            logger.exception(
                "Failed to process message %s (%s)", message.uid, message.subject,
                extra={"message_uid": message.uid},
            )
            return IngestionOutcome.FAILED

    # ------------------------------------------------------------------
    # Single message
    # ------------------------------------------------------------------

    async def ingest_message(self, message: InboundMessage) -> IngestionOutcome:
        """Resolve, extract and persist one vendor reply."""
        ctx = {"message_uid": message.uid}

        rfp_id = extract_rfp_id(message.subject)
        if rfp_id is None:
            logger.info("Skipping %r: no RFP id in subject", message.subject, extra=ctx)
            return IngestionOutcome.SKIPPED_NO_RFP_ID
        ctx["rfp_id"] = rfp_id

        async with self.database.session() as session:
            vendor = await VendorRepository(session).find_by_sender(message.from_address)
            if vendor is None:
                logger.info("Skipping reply from unknown vendor %s", message.from_address, extra=ctx)
                return IngestionOutcome.SKIPPED_UNKNOWN_VENDOR
            rfp = await RFPRepository(session).get_by_id(rfp_id)
            if rfp is None:
                logger.info("Skipping reply for unknown RFP %s", rfp_id, extra=ctx)
                return IngestionOutcome.SKIPPED_UNKNOWN_RFP
            vendor_id = vendor.id
            requirements = list(rfp.requirements or [])
        ctx["vendor_id"] = vendor_id

        extracted = await asyncio.to_thread(
            self.extractor.extract_all,
            [(a.content_type, a.filename, a.payload) for a in message.attachments],
        )
        attachments = [a.to_dict() for a in extracted]
        body = message.body
        digest = content_hash(body, attachments)

        async with self._lock_for(rfp_id, vendor_id):
            async with self.database.session() as session:
                existing = await ProposalRepository(session).get_for_pair(rfp_id, vendor_id)
                prior_hash = existing.content_hash if existing else None
                prior_data = existing.parsed_data if existing else None

            if prior_hash == digest and prior_data is not None:
                logger.info("Reply unchanged; reusing parsed proposal", extra=ctx)
                parsed = prior_data
                outcome = IngestionOutcome.REUSED
            else:
                extraction = await self.agent.parse_proposal_response(
                    body,
                    attachments or None,
                    requirements or None,
                    received_on=message.received_at.date(),
                )
                parsed = extraction.to_json_dict()
                outcome = IngestionOutcome.INGESTED

            completeness = calculate_completeness(parsed, requirements)

            async with self.database.session() as session:
                await ProposalRepository(session).upsert(
                    rfp_id,
                    vendor_id,
                    **self._proposal_fields(message, parsed, digest, completeness),
                )
                await RFPRepository(session).clear_comparison_cache(rfp_id)

        logger.info(
            "Proposal %s for RFP %s from vendor %s (completeness %d)",
            outcome.value, rfp_id, vendor_id, completeness, extra=ctx,
        )
        return outcome

    @staticmethod
    def _proposal_fields(
        message: InboundMessage, parsed: Dict[str, Any], digest: str, completeness: int
    ) -> Dict[str, Any]:
        total_price = parsed.get("totalPrice")
        return {
            "status": ProposalStatus.RECEIVED,
            "email_subject": message.subject,
            "email_body": message.html or message.text,
            "raw_content": message.text or message.html,
            "content_hash": digest,
            "parsed_data": parsed,
            "total_price": float(total_price) if total_price is not None else None,
            "currency": parsed.get("currency") or DEFAULT_CURRENCY,
            "delivery_date": _as_date(parsed.get("deliveryDate")),
            "payment_terms": parsed.get("paymentTerms"),
            "warranty": parsed.get("warranty"),
            "line_items": parsed.get("lineItems"),
            "terms": parsed.get("terms"),
            "ai_summary": parsed.get("summary") or DEFAULT_SUMMARY,
            "completeness": completeness,
        }
