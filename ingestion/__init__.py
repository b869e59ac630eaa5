"""RFPFlow Ingestion - mailbox polling and vendor reply processing"""

from .mailbox import (
    ImapMailbox,
    InboundAttachment,
    InboundMessage,
    Mailbox,
    imap_date,
    parse_inbound_message,
)
from .pipeline import (
    CycleState,
    IngestionOutcome,
    PollCycleReport,
    ProposalIngestionPipeline,
    content_hash,
    extract_rfp_id,
)
from .scheduler import PollScheduler

__all__ = [
    "ImapMailbox",
    "InboundAttachment",
    "InboundMessage",
    "Mailbox",
    "imap_date",
    "parse_inbound_message",
    "CycleState",
    "IngestionOutcome",
    "PollCycleReport",
    "ProposalIngestionPipeline",
    "content_hash",
    "extract_rfp_id",
    "PollScheduler",
]
