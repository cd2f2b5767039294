"""
OrderDesk Backend - Mail Dispatcher Tests
===========================================

aiosmtplib.SMTP is patched with a mock client, so no relay is contacted. The
tests inspect the connection calls and the message handed to send_message.
"""

import logging
from unittest.mock import AsyncMock, patch

import aiosmtplib
import pytest

from orderdesk.config import Settings
from orderdesk.exceptions import InvoiceRenderError, MailTransportError
from orderdesk.services.invoice_renderer import InvoiceRenderer
from orderdesk.services.mail_dispatcher import (
    INVOICE_BODY,
    INVOICE_FILENAME,
    INVOICE_SUBJECT,
    MailDispatcher,
)

SMTP_PATH = "orderdesk.services.mail_dispatcher.aiosmtplib.SMTP"


@pytest.fixture
def dispatcher():
    return MailDispatcher(
        host="smtp.example.com",
        port=587,
        sender="invoices@example.com",
        username="invoices@example.com",
        password="secret",
    )


@pytest.fixture
def smtp_class():
    """The patched aiosmtplib.SMTP; `smtp_class.return_value` is the client."""
    with patch(SMTP_PATH) as smtp_class:
        client = smtp_class.return_value
        client.is_connected = True
        client.connect = AsyncMock()
        client.login = AsyncMock()
        client.noop = AsyncMock()
        client.quit = AsyncMock()
        client.send_message = AsyncMock(return_value=({}, "250 2.0.0 OK queued"))
        yield smtp_class


@pytest.fixture
def order(build_order):
    return build_order()


@pytest.fixture
def artifact(order):
    return InvoiceRenderer(font_path="").render(order)


class TestBuildMessage:

    def test_headers_and_body(self, dispatcher, order, artifact):
        message = dispatcher.build_message(order, artifact)

        assert message["From"] == "invoices@example.com"
        assert message["To"] == "customer@example.com"
        assert message["Subject"] == INVOICE_SUBJECT
        assert message.get_body(preferencelist=("plain",)).get_content().strip() == INVOICE_BODY

    def test_attachment_is_the_artifact(self, dispatcher, order, artifact):
        message = dispatcher.build_message(order, artifact)
        attachments = list(message.iter_attachments())

        assert len(attachments) == 1
        assert attachments[0].get_filename() == INVOICE_FILENAME
        assert attachments[0].get_content_type() == "application/pdf"
        assert attachments[0].get_content() == artifact


class TestSend:

    @pytest.mark.asyncio
    async def test_submits_to_relay(self, dispatcher, order, artifact, smtp_class):
        client = smtp_class.return_value

        result = await dispatcher.send(order, artifact)

        kwargs = smtp_class.call_args.kwargs
        assert kwargs["hostname"] == "smtp.example.com"
        assert kwargs["port"] == 587
        assert kwargs["start_tls"] is True
        assert kwargs["use_tls"] is False
        client.connect.assert_awaited_once()
        client.login.assert_awaited_once_with("invoices@example.com", "secret")
        message = client.send_message.await_args.args[0]
        assert message["To"] == "customer@example.com"

        assert result.recipient == "customer@example.com"
        assert result.relay_response == "250 2.0.0 OK queued"
        assert result.attachment_size == len(artifact)
        assert result.refused == {}

    @pytest.mark.asyncio
    async def test_connection_is_reused_across_sends(self, dispatcher, order, artifact, smtp_class):
        client = smtp_class.return_value

        await dispatcher.send(order, artifact)
        await dispatcher.send(order, artifact)

        smtp_class.assert_called_once()
        client.connect.assert_awaited_once()
        client.login.assert_awaited_once()
        assert client.send_message.await_count == 2

    @pytest.mark.asyncio
    async def test_dropped_connection_is_reopened(self, dispatcher, order, artifact, smtp_class):
        client = smtp_class.return_value
        await dispatcher.send(order, artifact)
        client.noop.side_effect = aiosmtplib.SMTPServerDisconnected("Connection lost")

        await dispatcher.send(order, artifact)

        assert smtp_class.call_count == 2
        assert client.send_message.await_count == 2

    @pytest.mark.asyncio
    async def test_relay_error_text_is_kept_verbatim(self, dispatcher, order, artifact, smtp_class):
        error = aiosmtplib.SMTPResponseException(550, "5.1.1 The email account that you tried to reach does not exist")
        smtp_class.return_value.send_message.side_effect = error

        with pytest.raises(MailTransportError) as exc_info:
            await dispatcher.send(order, artifact)

        assert exc_info.value.message == str(error)
        assert exc_info.value.context["order_code"] == "O-1"

    @pytest.mark.asyncio
    async def test_failed_submission_is_not_retried(self, dispatcher, order, artifact, smtp_class):
        client = smtp_class.return_value
        client.send_message.side_effect = aiosmtplib.SMTPResponseException(554, "5.7.1 Message rejected")

        with pytest.raises(MailTransportError):
            await dispatcher.send(order, artifact)

        client.send_message.assert_awaited_once()
        client.quit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_authentication_failure(self, dispatcher, order, artifact, smtp_class):
        error = aiosmtplib.SMTPAuthenticationError(535, "5.7.8 Username and Password not accepted")
        smtp_class.return_value.login.side_effect = error

        with pytest.raises(MailTransportError) as exc_info:
            await dispatcher.send(order, artifact)

        assert "Username and Password not accepted" in exc_info.value.message
        smtp_class.return_value.send_message.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_connection_failure(self, dispatcher, order, artifact, smtp_class):
        smtp_class.return_value.connect.side_effect = ConnectionRefusedError("Connection refused")

        with pytest.raises(MailTransportError) as exc_info:
            await dispatcher.send(order, artifact)

        assert exc_info.value.message == "Connection refused"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("partial", [b"", b"%PDF-1.4\n1 0 obj"])
    async def test_incomplete_artifact_is_never_sent(self, dispatcher, order, partial, smtp_class):
        with pytest.raises(InvoiceRenderError):
            await dispatcher.send(order, partial)

        smtp_class.assert_not_called()


class TestConnectionLifecycle:

    @pytest.mark.asyncio
    async def test_connect_opens_the_connection_used_by_send(self, dispatcher, order, artifact, smtp_class):
        await dispatcher.connect()
        await dispatcher.send(order, artifact)

        smtp_class.assert_called_once()
        smtp_class.return_value.connect.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_unreachable_relay_at_startup_only_warns(self, dispatcher, smtp_class, caplog):
        smtp_class.return_value.connect.side_effect = OSError("Network is unreachable")

        with caplog.at_level(logging.WARNING, logger="orderdesk.services.mail_dispatcher"):
            await dispatcher.connect()

        assert "unavailable at startup" in caplog.text

    @pytest.mark.asyncio
    async def test_close_quits_and_next_send_reconnects(self, dispatcher, order, artifact, smtp_class):
        client = smtp_class.return_value
        await dispatcher.connect()

        await dispatcher.close()
        await dispatcher.send(order, artifact)

        client.quit.assert_awaited_once()
        assert smtp_class.call_count == 2

    @pytest.mark.asyncio
    async def test_close_without_connection(self, dispatcher, smtp_class):
        await dispatcher.close()

        smtp_class.return_value.quit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_lifespan_opens_and_closes_the_relay_connection(self):
        from orderdesk.main import app, lifespan

        dispatcher = MailDispatcher(
            host="smtp.example.com", port=587, sender="a@example.com", username="a@example.com", password="pw",
        )
        dispatcher.connect = AsyncMock()
        dispatcher.close = AsyncMock()

        with patch("orderdesk.main.setup_logging"), \
                patch("orderdesk.main.dispose_engine", new_callable=AsyncMock), \
                patch("orderdesk.main.MailDispatcher.from_settings", return_value=dispatcher):
            async with lifespan(app):
                assert app.state.mail_dispatcher is dispatcher
                dispatcher.connect.assert_awaited_once()
                dispatcher.close.assert_not_awaited()

        dispatcher.close.assert_awaited_once()
        del app.state.mail_dispatcher


class TestFromSettings:

    def test_sender_falls_back_to_username(self):
        settings = Settings(smtp_username="shop@example.com", smtp_password="pw", smtp_sender="")
        dispatcher = MailDispatcher.from_settings(settings)

        assert dispatcher.sender == "shop@example.com"
        assert dispatcher.is_configured

    def test_ssl_disables_starttls(self):
        settings = Settings(smtp_port=465, smtp_use_ssl=True, smtp_start_tls=True)
        dispatcher = MailDispatcher.from_settings(settings)

        assert dispatcher.use_ssl is True
        assert dispatcher.start_tls is False

    def test_missing_credentials_is_unconfigured(self):
        settings = Settings(smtp_username="", smtp_password="", smtp_sender="")
        assert MailDispatcher.from_settings(settings).is_configured is False
