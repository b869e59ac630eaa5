"""
RFPFlow Test Configuration
==========================

Fixtures:
- In-memory SQLite database (aiosqlite, static pool)
- Scripted fake LLM client and an extraction agent with a fixed clock
- In-memory fake mailbox and raw RFC 822 message builder
- Recording email provider
"""

import json
from datetime import date, datetime
from email.message import EmailMessage
from email.utils import format_datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import pytest
import pytest_asyncio

from agents.integrations.llm_clients import (
    BaseLLMClient,
    GenerationConfig,
    LLMMessage,
    LLMResponse,
    TaskType,
)
from agents.procurement_agent import ProcurementExtractionAgent
from api.email_service import EmailConfig, EmailProvider, EmailProviderBase, EmailService
from core.config import MailboxConfig
from core.errors import MailboxError
from database.connection import Database
from ingestion.mailbox import Mailbox

TODAY = date(2025, 1, 15)


# =============================================================================
# Pytest Configuration
# =============================================================================

def pytest_configure(config):
    """Configure pytest markers"""
    config.addinivalue_line("markers", "unit: Unit tests (fast, isolated)")
    config.addinivalue_line("markers", "integration: Integration tests (database, HTTP app)")
    config.addinivalue_line("markers", "e2e: End-to-end tests (full workflow)")


# =============================================================================
# Database
# =============================================================================

@pytest_asyncio.fixture
async def db():
    """Fresh in-memory database with all tables created"""
    database = Database("sqlite+aiosqlite:///:memory:")
    await database.create_all()
    yield database
    await database.dispose()


# =============================================================================
# Extraction model fakes
# =============================================================================

class FakeLLMClient(BaseLLMClient):
    """
    Returns queued responses in order. A queued dict is serialized to JSON,
    a string is returned as-is, an exception is raised.
    """

    def __init__(self, responses: Optional[Sequence[Union[str, Dict[str, Any], Exception]]] = None):
        super().__init__()
        self.responses: List[Union[str, Dict[str, Any], Exception]] = list(responses or [])
        self.calls: List[Tuple[Optional[TaskType], List[LLMMessage]]] = []

    def queue(self, *responses: Union[str, Dict[str, Any], Exception]) -> None:
        self.responses.extend(responses)

    @property
    def model_name(self) -> str:
        return "fake-model"

    async def generate(
        self,
        messages: List[LLMMessage],
        config: Optional[GenerationConfig] = None,
        task_type: Optional[TaskType] = None,
    ) -> LLMResponse:
        self.calls.append((task_type, messages))
        if not self.responses:
            raise AssertionError(f"Unexpected extraction model call for {task_type}")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        content = response if isinstance(response, str) else json.dumps(response)
        return LLMResponse(content=content, model=self.model_name, task_type=task_type)

    def calls_for(self, task_type: TaskType) -> int:
        return sum(1 for t, _ in self.calls if t == task_type)


@pytest.fixture
def fake_llm():
    return FakeLLMClient()


@pytest.fixture
def agent(fake_llm):
    return ProcurementExtractionAgent(fake_llm, today=lambda: TODAY)


# =============================================================================
# Mailbox fakes
# =============================================================================

def build_raw_email(
    subject: str,
    from_address: str,
    body: Optional[str] = None,
    html: Optional[str] = None,
    attachments: Sequence[Tuple[str, str, bytes]] = (),
    sent_at: datetime = datetime(2025, 1, 15, 10, 0, 0),
) -> bytes:
    """RFC 822 bytes; attachments are (filename, content_type, payload)"""
    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = from_address
    msg["To"] = "procurement@rfpflow.local"
    msg["Date"] = format_datetime(sent_at)
    if body is not None:
        msg.set_content(body)
    if html is not None:
        if body is None:
            msg.set_content(html, subtype="html")
        else:
            msg.add_alternative(html, subtype="html")
    for filename, content_type, payload in attachments:
        maintype, subtype = content_type.split("/", 1)
        msg.add_attachment(payload, maintype=maintype, subtype=subtype, filename=filename)
    return msg.as_bytes()


class FakeMailbox(Mailbox):
    """In-memory mailbox keyed by UID."""

    def __init__(
        self,
        messages: Optional[Dict[str, bytes]] = None,
        fail_on: Optional[str] = None,
        broken_uids: Sequence[str] = (),
    ):
        self.messages = dict(messages or {})
        self.fail_on = fail_on
        self.broken_uids = set(broken_uids)
        self.seen: List[str] = []
        self.searched_since: Optional[date] = None
        self.selected: Optional[str] = None
        self.connected = False
        self.closed = False

    def _maybe_fail(self, step: str) -> None:
        if self.fail_on == step:
            raise MailboxError(f"{step} failed")

    def connect(self) -> None:
        self._maybe_fail("connect")
        self.connected = True

    def select(self, folder: str) -> None:
        self._maybe_fail("select")
        self.selected = folder

    def search_unseen_since(self, since: date) -> List[str]:
        self._maybe_fail("search")
        self.searched_since = since
        return [uid for uid in self.messages if uid not in self.seen]

    def fetch(self, uid: str) -> bytes:
        if uid in self.broken_uids:
            raise MailboxError(f"fetch {uid} failed")
        return self.messages[uid]

    def mark_seen(self, uid: str) -> None:
        self.seen.append(uid)

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def mailbox_config():
    return MailboxConfig(
        host="imap.test",
        user="procurement@rfpflow.local",
        password="secret",
        poll_start_date=None,
        fallback_days=7,
        concurrency=2,
        mark_seen=True,
    )


# =============================================================================
# Outbound email fakes
# =============================================================================

class RecordingEmailProvider(EmailProviderBase):
    """Records sends; addresses in fail_for get a failed delivery."""

    def __init__(self, fail_for: Sequence[str] = (), raise_for: Sequence[str] = ()):
        self.fail_for = set(fail_for)
        self.raise_for = set(raise_for)
        self.sent: List[Dict[str, Any]] = []

    async def send(self, to_email, subject, html_body, text_body, from_email, from_name, reply_to=None):
        if to_email in self.raise_for:
            raise ConnectionError(f"connection reset sending to {to_email}")
        if to_email in self.fail_for:
            return False
        self.sent.append({
            "to": to_email,
            "subject": subject,
            "html": html_body,
            "text": text_body,
            "reply_to": reply_to,
        })
        return True

    async def verify_connection(self) -> bool:
        return True


@pytest.fixture
def email_provider():
    return RecordingEmailProvider()


@pytest.fixture
def email_service(email_provider):
    config = EmailConfig(
        provider=EmailProvider.CONSOLE,
        from_email="procurement@rfpflow.local",
        from_name="RFPFlow Procurement",
        reply_to="procurement@rfpflow.local",
    )
    return EmailService(config=config, provider=email_provider)


# =============================================================================
# Canned extraction model answers
# =============================================================================

@pytest.fixture
def chairs_rfp_response():
    return {
        "title": "Office chairs",
        "description": "Need 5 chairs, budget $1000, within 10 days, net 30, 1 year warranty",
        "budget": 1000,
        "deadline": "2030-12-31",
        "requirements": [{"item": "chairs", "quantity": 5}],
        "paymentTerms": "net 30",
        "warrantyReq": "1 year warranty",
        "deliveryTerms": None,
    }


@pytest.fixture
def chairs_proposal_response():
    return {
        "totalPrice": 900,
        "currency": None,
        "deliveryDate": None,
        "paymentTerms": "net 30",
        "warranty": "2 year warranty",
        "lineItems": [
            {"item": "Ergonomic office chairs", "quantity": 5, "unitPrice": 180, "totalPrice": 900}
        ],
        "terms": {"shipping": "included"},
        "summary": "Five chairs for $900 delivered in 10 days.",
    }


def comparison_response(vendors: Sequence[Tuple[int, str]], totals: Sequence[float]) -> Dict[str, Any]:
    """A valid comparison answer scoring each (vendor_id, name) pair"""
    scores = [
        {
            "vendorId": vid,
            "vendorName": name,
            "totalScore": total,
            "priceScore": 80,
            "termsScore": 70,
            "completenessScore": 90,
            "complianceScore": 60,
        }
        for (vid, name), total in zip(vendors, totals)
    ]
    best = max(zip(vendors, totals), key=lambda pair: pair[1])[0]
    return {
        "scores": scores,
        "recommendation": {"vendorId": best[0], "vendorName": best[1], "reasoning": "Best value"},
        "summary": "Compared proposals",
        "detailedComparison": "Vendor by vendor analysis",
    }


@pytest.fixture
def make_comparison():
    return comparison_response


@pytest.fixture
def raw_email():
    return build_raw_email


@pytest.fixture
def make_mailbox():
    return FakeMailbox
