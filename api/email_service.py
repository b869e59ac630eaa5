"""
RFPFlow Email Service

Outbound RFP invitations with support for:
- SMTP (default, works with any email provider)
- SendGrid (recommended for production)
- Console output (development/testing)

Usage:
    service = EmailService(EmailConfig.from_env())
    subject, html_body, text_body = EmailTemplate.rfp_invitation(rfp)
    sent = await service.send_email(vendor.email, subject, html_body, text_body)

Configuration (environment variables):
    EMAIL_PROVIDER: "smtp" | "sendgrid" | "console" (default: "console")
    EMAIL_FROM: Sender email address (falls back to SMTP_FROM)
    EMAIL_FROM_NAME: Sender display name (default: "RFPFlow Procurement")
    EMAIL_REPLY_TO: Reply-To address; vendor replies must reach the polled mailbox

    For SMTP:
        SMTP_HOST: SMTP server hostname
        SMTP_PORT: SMTP server port (default: 587; 465 uses implicit TLS)
        SMTP_USER: SMTP username
        SMTP_PASSWORD: SMTP password
        SMTP_USE_TLS: "true" | "false" (default: "true", STARTTLS)
        SMTP_TIMEOUT_SECONDS: socket timeout (default: 30)

    For SendGrid:
        SENDGRID_API_KEY: SendGrid API key
"""

import asyncio
import html
import json
import logging
import os
import smtplib
import ssl
from abc import ABC, abstractmethod
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from enum import Enum
from typing import Any, Optional

import httpx

logger = logging.getLogger(__name__)

SENDGRID_API_URL = "https://api.sendgrid.com/v3"


# ============== Configuration ==============

class EmailProvider(str, Enum):
    CONSOLE = "console"
    SMTP = "smtp"
    SENDGRID = "sendgrid"


@dataclass
class EmailConfig:
    """Email service configuration"""
    provider: EmailProvider
    from_email: str
    from_name: str
    reply_to: Optional[str] = None

    # SMTP settings
    smtp_host: Optional[str] = None
    smtp_port: int = 587
    smtp_user: Optional[str] = None
    smtp_password: Optional[str] = None
    smtp_use_tls: bool = True
    smtp_timeout_seconds: float = 30.0

    # SendGrid settings
    sendgrid_api_key: Optional[str] = None

    @classmethod
    def from_env(cls) -> "EmailConfig":
        """Load configuration from environment variables"""
        provider_str = os.environ.get("EMAIL_PROVIDER", "console").lower()
        provider = EmailProvider(provider_str) if provider_str in [e.value for e in EmailProvider] else EmailProvider.CONSOLE
        from_email = os.environ.get("EMAIL_FROM") or os.environ.get("SMTP_FROM") or "procurement@rfpflow.local"

        return cls(
            provider=provider,
            from_email=from_email,
            from_name=os.environ.get("EMAIL_FROM_NAME", "RFPFlow Procurement"),
            reply_to=os.environ.get("EMAIL_REPLY_TO") or from_email,
            smtp_host=os.environ.get("SMTP_HOST"),
            smtp_port=int(os.environ.get("SMTP_PORT", "587")),
            smtp_user=os.environ.get("SMTP_USER"),
            smtp_password=os.environ.get("SMTP_PASSWORD"),
            smtp_use_tls=os.environ.get("SMTP_USE_TLS", "true").lower() == "true",
            smtp_timeout_seconds=float(os.environ.get("SMTP_TIMEOUT_SECONDS", "30")),
            sendgrid_api_key=os.environ.get("SENDGRID_API_KEY"),
        )


# ============== Email Templates ==============

def rfp_subject(title: str, rfp_id: int) -> str:
    """Subject line the mail poller parses the RFP id back out of"""
    return f"RFP: {title} - {rfp_id}"


def _field(rfp: Any, name: str) -> Any:
    return rfp.get(name) if isinstance(rfp, dict) else getattr(rfp, name, None)


def _format_budget(budget: Optional[float]) -> str:
    if not budget:
        return "Not specified"
    return f"${budget:,.0f}" if float(budget).is_integer() else f"${budget:,.2f}"


class EmailTemplate:
    """Email template builder"""

    @staticmethod
    def rfp_invitation(rfp: Any) -> tuple[str, str, str]:
        """Returns (subject, html_body, text_body) for an RFP sent to a vendor"""
        rfp_id = _field(rfp, "id")
        title = _field(rfp, "title") or "Request for Proposal"
        description = _field(rfp, "description") or ""
        deadline = _field(rfp, "deadline")
        deadline_str = deadline.isoformat() if hasattr(deadline, "isoformat") else (deadline or "Not specified")
        budget_str = _format_budget(_field(rfp, "budget"))
        requirements = _field(rfp, "requirements") or []
        payment_terms = _field(rfp, "payment_terms")
        warranty_req = _field(rfp, "warranty_req")
        delivery_terms = _field(rfp, "delivery_terms")

        subject = rfp_subject(title, rfp_id)
        esc = html.escape

        requirement_rows = []
        requirement_lines = []
        for req in requirements:
            item = str(req.get("item", ""))
            quantity = req.get("quantity")
            specs = req.get("specifications")
            row = f"<strong>{esc(item)}</strong>"
            line = f"- {item}"
            if quantity:
                row += f" (Quantity: {esc(str(quantity))})"
                line += f" (Quantity: {quantity})"
            if specs:
                specs_str = json.dumps(specs)
                row += f"<br>Specifications: {esc(specs_str)}"
                line += f" - {specs_str}"
            requirement_rows.append(f'<div class="requirement-item">{row}</div>')
            requirement_lines.append(line)

        optional_sections = [
            ("Payment Terms", payment_terms),
            ("Warranty Requirements", warranty_req),
            ("Delivery Terms", delivery_terms),
        ]

        html_sections = "".join(
            f'<div class="section"><div class="section-title">{label}:</div><div>{esc(str(value))}</div></div>\n'
            for label, value in optional_sections if value
        )
        requirements_html = ""
        if requirement_rows:
            requirements_html = (
                '<div class="section"><div class="section-title">Requirements:</div>\n'
                + "\n".join(requirement_rows)
                + "\n</div>\n"
            )

        html_body = f"""
<!DOCTYPE html>
<html>
<head>
    <style>
        body {{ font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif; line-height: 1.6; color: #333; }}
        .container {{ max-width: 600px; margin: 0 auto; padding: 20px; }}
        .header {{ background: #2f6f4f; padding: 20px; border-radius: 8px 8px 0 0; }}
        .header h1 {{ color: white; margin: 0; font-size: 22px; }}
        .header p {{ color: #e6f2ec; margin: 4px 0 0 0; }}
        .content {{ background: #f8f9fa; padding: 24px; border-radius: 0 0 8px 8px; }}
        .section {{ margin-bottom: 18px; }}
        .section-title {{ font-weight: bold; color: #2f6f4f; margin-bottom: 6px; }}
        .requirement-item {{ margin-left: 20px; margin-bottom: 8px; }}
        .footer {{ text-align: center; margin-top: 20px; color: #666; font-size: 12px; }}
    </style>
</head>
<body>
    <div class="container">
        <div class="header">
            <h1>Request for Proposal</h1>
            <p>RFP ID: {rfp_id}</p>
        </div>
        <div class="content">
            <div class="section"><div class="section-title">Title:</div><div>{esc(title)}</div></div>
            <div class="section"><div class="section-title">Description:</div><div>{esc(description)}</div></div>
            <div class="section"><div class="section-title">Budget:</div><div>{budget_str}</div></div>
            <div class="section"><div class="section-title">Deadline:</div><div>{esc(str(deadline_str))}</div></div>
            {requirements_html}{html_sections}
            <div class="section">
                <div class="section-title">Instructions:</div>
                <div>Please reply to this email with your proposal, including pricing, delivery timeline,
                and any relevant terms and conditions. You may attach supporting documents.
                Keep the subject line unchanged so we can match your reply to this RFP.</div>
            </div>
        </div>
        <div class="footer">
            <p>This is an automated RFP. Please reply directly to this email with your proposal.</p>
        </div>
    </div>
</body>
</html>
"""

        text_body = f"REQUEST FOR PROPOSAL (RFP)\nRFP ID: {rfp_id}\n\n"
        text_body += f"Title: {title}\n\n"
        text_body += f"Description:\n{description}\n\n"
        text_body += f"Budget: {budget_str}\n"
        text_body += f"Deadline: {deadline_str}\n\n"
        if requirement_lines:
            text_body += "Requirements:\n" + "\n".join(requirement_lines) + "\n\n"
        for label, value in optional_sections:
            if value:
                text_body += f"{label}: {value}\n"
        text_body += (
            "\nPlease reply to this email with your proposal, including pricing, delivery "
            "timeline, and any relevant terms and conditions. Keep the subject line unchanged.\n"
        )

        return subject, html_body, text_body


# ============== Email Providers ==============

class EmailProviderBase(ABC):
    """Abstract base class for email providers"""

    @abstractmethod
    async def send(
        self,
        to_email: str,
        subject: str,
        html_body: str,
        text_body: str,
        from_email: str,
        from_name: str,
        reply_to: Optional[str] = None,
    ) -> bool:
        """Send an email. Returns True if successful."""
        pass

    @abstractmethod
    async def verify_connection(self) -> bool:
        """Check that the transport is reachable and accepts our credentials."""
        pass


class ConsoleEmailProvider(EmailProviderBase):
    """Logs emails instead of sending them (development/testing)"""

    async def send(
        self,
        to_email: str,
        subject: str,
        html_body: str,
        text_body: str,
        from_email: str,
        from_name: str,
        reply_to: Optional[str] = None,
    ) -> bool:
        logger.info(
            "EMAIL (console provider, not sent)\nFrom: %s <%s>\nTo: %s\nReply-To: %s\nSubject: %s\n%s",
            from_name, from_email, to_email, reply_to or from_email, subject, text_body,
        )
        return True

    async def verify_connection(self) -> bool:
        return True


class SMTPEmailProvider(EmailProviderBase):
    """SMTP email provider"""

    def __init__(self, config: EmailConfig):
        self.config = config

    def _connect(self) -> smtplib.SMTP:
        cfg = self.config
        context = ssl.create_default_context()
        if cfg.smtp_port == 465:
            server = smtplib.SMTP_SSL(cfg.smtp_host, cfg.smtp_port, timeout=cfg.smtp_timeout_seconds, context=context)
        else:
            server = smtplib.SMTP(cfg.smtp_host, cfg.smtp_port, timeout=cfg.smtp_timeout_seconds)
            if cfg.smtp_use_tls:
                server.starttls(context=context)
        if cfg.smtp_user and cfg.smtp_password:
            server.login(cfg.smtp_user, cfg.smtp_password)
        return server

    async def send(
        self,
        to_email: str,
        subject: str,
        html_body: str,
        text_body: str,
        from_email: str,
        from_name: str,
        reply_to: Optional[str] = None,
    ) -> bool:
        # smtplib is blocking
        return await asyncio.to_thread(
            self._send_sync,
            to_email, subject, html_body, text_body, from_email, from_name, reply_to,
        )

    def _send_sync(
        self,
        to_email: str,
        subject: str,
        html_body: str,
        text_body: str,
        from_email: str,
        from_name: str,
        reply_to: Optional[str],
    ) -> bool:
        message = MIMEMultipart("alternative")
        message["Subject"] = subject
        message["From"] = f"{from_name} <{from_email}>"
        message["To"] = to_email
        if reply_to:
            message["Reply-To"] = reply_to
        message.attach(MIMEText(text_body, "plain"))
        message.attach(MIMEText(html_body, "html"))

        try:
            with self._connect() as server:
                server.sendmail(from_email, to_email, message.as_string())
        except (smtplib.SMTPException, OSError) as e:
            logger.error("SMTP send to %s failed: %s", to_email, e)
            return False

        logger.info("Sent to %s via SMTP", to_email)
        return True

    async def verify_connection(self) -> bool:
        return await asyncio.to_thread(self._verify_sync)

    def _verify_sync(self) -> bool:
        try:
            with self._connect() as server:
                server.noop()
        except (smtplib.SMTPException, OSError) as e:
            logger.error("SMTP verification failed: %s", e)
            return False
        return True


class SendGridEmailProvider(EmailProviderBase):
    """SendGrid email provider"""

    def __init__(self, config: EmailConfig, client: Optional[httpx.AsyncClient] = None):
        self.config = config
        self.api_key = config.sendgrid_api_key
        self._client = client

    def _headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        if self._client is not None:
            return await self._client.request(method, f"{SENDGRID_API_URL}{path}", headers=self._headers(), **kwargs)
        async with httpx.AsyncClient(timeout=30.0) as client:
            return await client.request(method, f"{SENDGRID_API_URL}{path}", headers=self._headers(), **kwargs)

    async def send(
        self,
        to_email: str,
        subject: str,
        html_body: str,
        text_body: str,
        from_email: str,
        from_name: str,
        reply_to: Optional[str] = None,
    ) -> bool:
        payload = {
            "personalizations": [{"to": [{"email": to_email}]}],
            "from": {"email": from_email, "name": from_name},
            "subject": subject,
            "content": [
                {"type": "text/plain", "value": text_body},
                {"type": "text/html", "value": html_body},
            ],
        }
        if reply_to:
            payload["reply_to"] = {"email": reply_to}

        try:
            response = await self._request("POST", "/mail/send", json=payload)
        except httpx.HTTPError as e:
            logger.error("SendGrid request for %s failed: %s", to_email, e)
            return False

        if response.status_code in (200, 201, 202):
            logger.info("Sent to %s via SendGrid", to_email)
            return True
        logger.error("SendGrid error: %s - %s", response.status_code, response.text)
        return False

    async def verify_connection(self) -> bool:
        try:
            response = await self._request("GET", "/scopes")
        except httpx.HTTPError as e:
            logger.error("SendGrid verification failed: %s", e)
            return False
        return response.status_code == 200


# ============== Email Service ==============

class EmailService:
    """High-level email service"""

    def __init__(self, config: Optional[EmailConfig] = None, provider: Optional[EmailProviderBase] = None):
        self.config = config or EmailConfig.from_env()
        self.provider = provider or self._create_provider()

    def _create_provider(self) -> EmailProviderBase:
        """Create the appropriate email provider based on configuration"""
        if self.config.provider == EmailProvider.SENDGRID:
            if not self.config.sendgrid_api_key:
                logger.warning("SendGrid configured but no API key, falling back to console")
                return ConsoleEmailProvider()
            return SendGridEmailProvider(self.config)

        elif self.config.provider == EmailProvider.SMTP:
            if not self.config.smtp_host:
                logger.warning("SMTP configured but no host, falling back to console")
                return ConsoleEmailProvider()
            return SMTPEmailProvider(self.config)

        else:
            return ConsoleEmailProvider()

    async def send_email(
        self,
        to_email: str,
        subject: str,
        html_body: str,
        text_body: str
    ) -> bool:
        """Send a custom email"""
        return await self.provider.send(
            to_email=to_email,
            subject=subject,
            html_body=html_body,
            text_body=text_body,
            from_email=self.config.from_email,
            from_name=self.config.from_name,
            reply_to=self.config.reply_to,
        )

    async def verify_connection(self) -> bool:
        return await self.provider.verify_connection()
