"""
Notifier Tests

Validates operator notifications:
1. Report and failure messages carry the operator-relevant facts
2. WebhookNotifier posts {"text": ...} and retries server errors
3. Rejections and unreachable webhooks raise NotificationError
"""

import asyncio
from datetime import date

import pytest
from aiohttp import web
from aiohttp import test_utils

from core.errors import NotificationError, ParseError
from core.retry import RetryConfig
from models.report import ProcessingReport
from notifications import (
    LogNotifier,
    WebhookNotifier,
    build_failure_message,
    build_report_message,
)

NO_WAIT = RetryConfig(max_attempts=3, base_delay=0, jitter=0)


def make_report(matched=2, unmatched=1, errors=0):
    return ProcessingReport(
        supplier_name="Molino Rossi SRL",
        invoice_number="42",
        invoice_date=date(2024, 3, 1),
        source_file="a.xml",
        total_lines=matched + unmatched + errors,
        matched_count=matched,
        unmatched_count=unmatched,
        error_count=errors,
    )


class TestMessages:

    def test_report_message(self):
        message = build_report_message(make_report(matched=2, unmatched=1))
        assert "Molino Rossi SRL" in message
        assert "42 of 2024-03-01" in message
        assert "Lines: 3" in message
        assert "Loaded: 2" in message
        assert "Unrecognised: 1" in message
        assert "All products recognised" not in message

    def test_fully_matched_message(self):
        message = build_report_message(make_report(matched=3, unmatched=0))
        assert "All products recognised" in message
        assert "Unrecognised" not in message

    def test_report_message_mentions_errors(self):
        assert "Errors: 2" in build_report_message(make_report(matched=1, unmatched=0, errors=2))

    def test_failure_message(self):
        message = build_failure_message("broken.xml", ParseError("Missing DatiBeniServizi", "broken.xml"))
        assert "FAILED" in message
        assert "File: broken.xml" in message
        assert "Missing DatiBeniServizi" in message


def test_log_notifier_logs(caplog):
    caplog.set_level("INFO", logger="notifications")
    asyncio.run(LogNotifier().notify_report(make_report()))
    asyncio.run(LogNotifier().notify_failure("broken.xml", ValueError("bad")))
    assert "New invoice imported" in caplog.text
    assert "broken.xml" in caplog.text


class TestWebhookNotifier:

    @staticmethod
    def run_with_webhook(statuses, send):
        """Run send(url) against a local webhook answering with statuses in turn."""
        received = []

        async def handler(request):
            received.append(await request.json())
            status = statuses[min(len(received), len(statuses)) - 1]
            return web.json_response({"ok": status < 300}, status=status)

        async def scenario():
            app = web.Application()
            app.router.add_post("/hook", handler)
            async with test_utils.TestServer(app) as server:
                await send(str(server.make_url("/hook")))

        asyncio.run(scenario())
        return received

    def test_posts_text(self):
        async def send(url):
            await WebhookNotifier(url, retry_config=NO_WAIT).notify_report(make_report())

        received = self.run_with_webhook([200], send)
        assert len(received) == 1
        assert "Molino Rossi SRL" in received[0]["text"]

    def test_retries_server_errors(self):
        async def send(url):
            await WebhookNotifier(url, retry_config=NO_WAIT).send("hello")

        received = self.run_with_webhook([503, 200], send)
        assert received == [{"text": "hello"}, {"text": "hello"}]

    def test_gives_up_after_max_attempts(self):
        errors = []

        async def send(url):
            try:
                await WebhookNotifier(url, retry_config=NO_WAIT).send("hello")
            except NotificationError as e:
                errors.append(e)

        received = self.run_with_webhook([500], send)
        assert len(received) == NO_WAIT.max_attempts
        assert len(errors) == 1
        assert "after 3 attempts" in str(errors[0])

    def test_client_error_is_not_retried(self):
        errors = []

        async def send(url):
            try:
                await WebhookNotifier(url, retry_config=NO_WAIT).notify_failure("a.xml", ValueError("x"))
            except NotificationError as e:
                errors.append(e)

        received = self.run_with_webhook([400], send)
        assert len(received) == 1
        assert errors[0].status_code == 400

    def test_unreachable_webhook(self):
        # Grab a free port, then close it so nothing is listening there
        port = test_utils.unused_port()
        notifier = WebhookNotifier(
            f"http://127.0.0.1:{port}/hook",
            timeout_seconds=2,
            retry_config=RetryConfig(max_attempts=2, base_delay=0, jitter=0),
        )
        with pytest.raises(NotificationError, match="after 2 attempts"):
            asyncio.run(notifier.send("hello"))
