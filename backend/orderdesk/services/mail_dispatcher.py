"""
OrderDesk Backend - Invoice Mail Dispatcher
=============================================

What:  Emails a rendered invoice to the order's customer.
How:   Builds a MIME message with the PDF attached and submits it over one
       persistent aiosmtplib connection to the SMTP relay. The coroutine
       suspends until the relay accepts the message or fails.
Who:   OrderService.send_invoice().
When:  One instance is created in the application lifespan and injected
       into request handlers; it is never rebuilt per request.

Connection lifecycle:
    connect()  at startup; a relay that is down only logs a warning
    send()     reuses the open connection (NOOP-checked), reconnects if it
               was dropped, and discards it after any failed submission
    close()    QUIT at shutdown
    Submissions are serialized; one SMTP conversation cannot interleave.

Failure policy:
    The relay's error is raised as MailTransportError with its text kept
    verbatim. Nothing is retried.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from email.message import EmailMessage
from email.utils import formatdate, make_msgid
from typing import Dict, Optional

import aiosmtplib

from orderdesk.config import Settings
from orderdesk.exceptions import InvoiceRenderError, MailTransportError
from orderdesk.models.order import Order
from orderdesk.services.invoice_renderer import is_complete_pdf

logger = logging.getLogger(__name__)

INVOICE_SUBJECT = "Invoice"
INVOICE_BODY = "Please find attached the invoice for your recent purchase."
INVOICE_FILENAME = "invoice.pdf"


@dataclass
class DispatchResult:
    recipient: str
    message_id: str
    relay_response: str
    attachment_size: int
    refused: Dict[str, str] = field(default_factory=dict)


class MailDispatcher:
    """SMTP relay client holding the process-wide sender credentials."""

    def __init__(
        self,
        host: str,
        port: int,
        sender: str,
        username: Optional[str] = None,
        password: Optional[str] = None,
        start_tls: bool = True,
        use_ssl: bool = False,
        timeout: float = 30.0,
    ):
        self.host = host
        self.port = port
        self.sender = sender
        self.username = username or None
        self.password = password or None
        self.start_tls = start_tls and not use_ssl
        self.use_ssl = use_ssl
        self.timeout = timeout
        self._client: Optional[aiosmtplib.SMTP] = None
        self._lock = asyncio.Lock()

    @classmethod
    def from_settings(cls, settings: Settings) -> "MailDispatcher":
        dispatcher = cls(
            host=settings.smtp_host,
            port=settings.smtp_port,
            sender=settings.mail_sender,
            username=settings.smtp_username,
            password=settings.smtp_password,
            start_tls=settings.smtp_start_tls,
            use_ssl=settings.smtp_use_ssl,
            timeout=settings.smtp_timeout,
        )
        logger.info(
            "MailDispatcher initialized (%s:%d, starttls=%s, ssl=%s, sender=%s)",
            dispatcher.host,
            dispatcher.port,
            dispatcher.start_tls,
            dispatcher.use_ssl,
            dispatcher.sender or "<unset>",
        )
        return dispatcher

    @property
    def is_configured(self) -> bool:
        return bool(self.sender and self.username and self.password)

    # ── Connection ────────────────────────────────────────────────────────

    async def connect(self) -> None:
        """Open the relay connection ahead of the first email."""
        async with self._lock:
            try:
                await self._ensure_connected()
            except (aiosmtplib.SMTPException, OSError) as e:
                await self._discard()
                logger.warning(
                    "SMTP relay %s:%d unavailable at startup (will connect on send): %s",
                    self.host, self.port, str(e),
                )

    async def close(self) -> None:
        async with self._lock:
            await self._discard()

    async def _ensure_connected(self) -> aiosmtplib.SMTP:
        if self._client is not None and self._client.is_connected:
            try:
                await self._client.noop()
                return self._client
            except (aiosmtplib.SMTPException, OSError):
                logger.info("SMTP connection to %s:%d went stale; reconnecting", self.host, self.port)
                await self._discard()

        client = aiosmtplib.SMTP(
            hostname=self.host,
            port=self.port,
            use_tls=self.use_ssl,
            start_tls=self.start_tls,
            timeout=self.timeout,
        )
        await client.connect()
        self._client = client
        if self.username and self.password:
            await client.login(self.username, self.password)
        logger.info("Connected to SMTP relay %s:%d", self.host, self.port)
        return client

    async def _discard(self) -> None:
        client, self._client = self._client, None
        if client is None or not client.is_connected:
            return
        try:
            await client.quit()
        except (aiosmtplib.SMTPException, OSError) as e:
            logger.debug("SMTP QUIT failed, closing the socket: %s", str(e))
            client.close()

    # ── Sending ───────────────────────────────────────────────────────────

    def build_message(self, order: Order, artifact: bytes) -> EmailMessage:
        message = EmailMessage()
        message["From"] = self.sender
        message["To"] = order.customer.email
        message["Subject"] = INVOICE_SUBJECT
        message["Date"] = formatdate(localtime=True)
        message["Message-ID"] = make_msgid()
        message.set_content(INVOICE_BODY)
        message.add_attachment(
            artifact,
            maintype="application",
            subtype="pdf",
            filename=INVOICE_FILENAME,
        )
        return message

    async def send(self, order: Order, artifact: bytes) -> DispatchResult:
        """
        Email `artifact` as invoice.pdf to the order's customer.

        Raises:
            InvoiceRenderError: The artifact is not a complete PDF; nothing is sent.
            MailTransportError: The relay refused the message or could not be reached.
        """
        if not is_complete_pdf(artifact):
            raise InvoiceRenderError(
                message="Refusing to email an incomplete invoice",
                context={"order_code": order.code, "size": len(artifact)},
            )

        recipient = order.customer.email
        message = self.build_message(order, artifact)

        async with self._lock:
            try:
                client = await self._ensure_connected()
                refused, response = await client.send_message(message)
            except (aiosmtplib.SMTPException, OSError) as e:
                await self._discard()
                logger.error("Invoice email for order %s to %s failed: %s", order.code, recipient, str(e))
                raise MailTransportError(
                    message=str(e),
                    context={"order_code": order.code, "error_type": type(e).__name__},
                )

        logger.info("Email sent to %s: %s", recipient, response)
        return DispatchResult(
            recipient=recipient,
            message_id=message["Message-ID"],
            relay_response=response,
            attachment_size=len(artifact),
            refused={addr: str(reason) for addr, reason in (refused or {}).items()},
        )
