"""
IMAP mailbox access and inbound message parsing.

ImapMailbox is blocking (imaplib); the ingestion pipeline drives it from a
worker thread. Messages are fetched with BODY.PEEK[] so reading never marks
them seen; only mark_seen() does.
"""

import email
import imaplib
import logging
import socket
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date, datetime
from email import policy
from email.message import EmailMessage
from email.utils import parseaddr, parsedate_to_datetime
from typing import List, Optional

from core.config import MailboxConfig
from core.errors import MailboxError

log = logging.getLogger(__name__)

# IMAP dates need English month names regardless of process locale
_IMAP_MONTHS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun",
                "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")


def imap_date(value: date) -> str:
    """Format a date as IMAP's DD-Mon-YYYY"""
    return f"{value.day:02d}-{_IMAP_MONTHS[value.month - 1]}-{value.year}"


# ═══════════════════════════════════════════════════════════════════════════════
# Inbound message model
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass
class InboundAttachment:
    filename: Optional[str]
    content_type: Optional[str]
    payload: bytes


@dataclass
class InboundMessage:
    uid: str
    subject: str
    from_address: str
    text: Optional[str] = None
    html: Optional[str] = None
    attachments: List[InboundAttachment] = field(default_factory=list)
    received_at: datetime = field(default_factory=datetime.utcnow)

    @property
    def body(self) -> str:
        """Text body, falling back to HTML"""
        return self.text or self.html or ""


def _part_text(part: EmailMessage) -> Optional[str]:
    try:
        return part.get_content()
    except (LookupError, UnicodeDecodeError):
        # Unknown or lying charset
        payload = part.get_payload(decode=True) or b""
        return payload.decode("utf-8", errors="replace")


def parse_inbound_message(uid: str, raw: bytes) -> InboundMessage:
    """Parse raw RFC 822 bytes into an InboundMessage."""
    msg = email.message_from_bytes(raw, policy=policy.default)

    subject = str(msg.get("Subject", "") or "")
    _, from_address = parseaddr(str(msg.get("From", "") or ""))

    text = html = None
    plain_part = msg.get_body(preferencelist=("plain",))
    if plain_part is not None:
        text = _part_text(plain_part)
    html_part = msg.get_body(preferencelist=("html",))
    if html_part is not None:
        html = _part_text(html_part)

    attachments = []
    for part in msg.iter_attachments():
        attachments.append(InboundAttachment(
            filename=part.get_filename(),
            content_type=part.get_content_type(),
            payload=part.get_payload(decode=True) or b"",
        ))

    received_at = datetime.utcnow()
    date_header = msg.get("Date")
    if date_header:
        try:
            received_at = parsedate_to_datetime(str(date_header))
        except (TypeError, ValueError):
            log.debug("Unparseable Date header %r on message %s", date_header, uid)

    return InboundMessage(
        uid=uid,
        subject=subject,
        from_address=from_address.lower(),
        text=text,
        html=html,
        attachments=attachments,
        received_at=received_at,
    )


# ═══════════════════════════════════════════════════════════════════════════════
# Mailbox clients
# ═══════════════════════════════════════════════════════════════════════════════

class Mailbox(ABC):
    """Blocking mailbox session used by one poll cycle."""

    @abstractmethod
    def connect(self) -> None: ...

    @abstractmethod
    def select(self, folder: str) -> None: ...

    @abstractmethod
    def search_unseen_since(self, since: date) -> List[str]: ...

    @abstractmethod
    def fetch(self, uid: str) -> bytes: ...

    @abstractmethod
    def mark_seen(self, uid: str) -> None: ...

    @abstractmethod
    def close(self) -> None: ...


class ImapMailbox(Mailbox):
    """imaplib-backed mailbox. Every imaplib or socket failure becomes MailboxError."""

    def __init__(self, config: MailboxConfig):
        self.config = config
        self.conn: Optional[imaplib.IMAP4] = None

    def connect(self) -> None:
        cfg = self.config
        try:
            if cfg.use_tls:
                self.conn = imaplib.IMAP4_SSL(cfg.host, cfg.port, timeout=cfg.timeout_seconds)
            else:
                self.conn = imaplib.IMAP4(cfg.host, cfg.port, timeout=cfg.timeout_seconds)
            self.conn.login(cfg.user, cfg.password)
        except (imaplib.IMAP4.error, OSError, socket.timeout) as e:
            self.conn = None
            raise MailboxError(f"IMAP connect to {cfg.host}:{cfg.port} failed: {e}") from e
        log.info("Connected to %s as %s", cfg.host, cfg.user)

    def _require(self) -> imaplib.IMAP4:
        if self.conn is None:
            raise MailboxError("IMAP mailbox is not connected")
        return self.conn

    def select(self, folder: str) -> None:
        try:
            status, data = self._require().select(folder)
        except (imaplib.IMAP4.error, OSError) as e:
            raise MailboxError(f"IMAP select {folder} failed: {e}") from e
        if status != "OK":
            raise MailboxError(f"IMAP select {folder} failed: {data!r}")

    def search_unseen_since(self, since: date) -> List[str]:
        criteria = f"(UNSEEN SINCE {imap_date(since)})"
        try:
            status, data = self._require().uid("search", None, criteria)
        except (imaplib.IMAP4.error, OSError) as e:
            raise MailboxError(f"IMAP search {criteria} failed: {e}") from e
        if status != "OK":
            raise MailboxError(f"IMAP search {criteria} failed: {data!r}")
        raw = data[0] if data and data[0] else b""
        return [u.decode() for u in raw.split()]

    def fetch(self, uid: str) -> bytes:
        try:
            status, data = self._require().uid("fetch", uid, "(BODY.PEEK[])")
        except (imaplib.IMAP4.error, OSError) as e:
            raise MailboxError(f"IMAP fetch {uid} failed: {e}") from e
        if status != "OK" or not data:
            raise MailboxError(f"IMAP fetch {uid} failed: {status}")
        for item in data:
            if isinstance(item, tuple) and len(item) > 1:
                return item[1]
        raise MailboxError(f"IMAP fetch {uid} returned no message body")

    def mark_seen(self, uid: str) -> None:
        try:
            status, data = self._require().uid("store", uid, "+FLAGS", "(\\Seen)")
        except (imaplib.IMAP4.error, OSError) as e:
            raise MailboxError(f"IMAP store {uid} failed: {e}") from e
        if status != "OK":
            raise MailboxError(f"IMAP store {uid} failed: {data!r}")

    def close(self) -> None:
        if self.conn is None:
            return
        conn, self.conn = self.conn, None
        try:
            conn.logout()
        except (imaplib.IMAP4.error, OSError) as e:
            log.debug("IMAP logout failed: %s", e)
