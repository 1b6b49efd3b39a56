"""Operator notifications for processed and failed invoices.

Notifiers turn a ProcessingReport or a parse failure into a short text
message and deliver it. Two transports are provided:
- LogNotifier: writes the message to the log
- WebhookNotifier: POSTs {"text": message} to a chat/webhook URL

Notifiers raise NotificationError on delivery failure; the ingestion
service catches and logs it so a lost message never stops ingestion.
"""

import asyncio
from typing import Optional, Protocol

import aiohttp

from core.errors import NotificationError
from core.observability.logging import get_logger
from core.retry import RetryConfig
from models.report import ProcessingReport

logger = get_logger(__name__)


# =============================================================================
# Messages
# =============================================================================

def build_report_message(report: ProcessingReport) -> str:
    """Summary of a reconciled invoice.

    Example:
        New invoice imported
        Supplier: Molino Rossi SRL
        Invoice: 42 of 2024-03-01
        Lines: 3
        Loaded: 2
        Unrecognised: 1 (check the unmatched items)
    """
    lines = [
        "New invoice imported",
        f"Supplier: {report.supplier_name}",
        f"Invoice: {report.invoice_number} of {report.invoice_date.isoformat()}",
        f"Lines: {report.total_lines}",
        f"Loaded: {report.matched_count}",
    ]
    if report.unmatched_count:
        lines.append(f"Unrecognised: {report.unmatched_count} (check the unmatched items)")
    if report.error_count:
        lines.append(f"Errors: {report.error_count} (see the logs)")
    if report.fully_matched:
        lines.append("All products recognised")
    return "\n".join(lines)


def build_failure_message(source_file: str, error: Exception) -> str:
    return f"Invoice import FAILED\nFile: {source_file}\nError: {error}"


# =============================================================================
# Notifiers
# =============================================================================

class Notifier(Protocol):
    """Delivers operator messages."""

    async def notify_report(self, report: ProcessingReport) -> None:
        ...

    async def notify_failure(self, source_file: str, error: Exception) -> None:
        ...


class LogNotifier:
    """Notifier that only logs; used when no webhook is configured."""

    async def notify_report(self, report: ProcessingReport) -> None:
        logger.info(build_report_message(report))

    async def notify_failure(self, source_file: str, error: Exception) -> None:
        logger.warning(build_failure_message(source_file, error))


class WebhookNotifier:
    """Posts messages as JSON to a webhook.

    Retries timeouts, connection errors and the statuses listed in
    retry_config.retry_on_status with exponential backoff; any other
    non-2xx response fails immediately.

    Usage:
        notifier = WebhookNotifier("https://chat.example.com/hooks/abc")
        await notifier.notify_report(report)
    """

    def __init__(
        self,
        url: str,
        timeout_seconds: float = 5.0,
        retry_config: Optional[RetryConfig] = None,
    ):
        self.url = url
        self.timeout_seconds = timeout_seconds
        self.retry_config = retry_config or RetryConfig(base_delay=1.0)

    async def notify_report(self, report: ProcessingReport) -> None:
        await self.send(build_report_message(report))

    async def notify_failure(self, source_file: str, error: Exception) -> None:
        await self.send(build_failure_message(source_file, error))

    async def send(self, text: str) -> None:
        """Deliver one message.

        Raises:
            NotificationError: If every attempt failed or the webhook rejected it
        """
        retry_config = self.retry_config
        attempts = max(1, retry_config.max_attempts)
        timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)
        last_error = ""

        async with aiohttp.ClientSession(timeout=timeout) as session:
            for attempt in range(attempts):
                try:
                    async with session.post(self.url, json={"text": text}) as response:
                        if response.status < 300:
                            return
                        body = await response.text()
                        last_error = f"HTTP {response.status}: {body[:200]}"
                        if response.status not in retry_config.retry_on_status:
                            raise NotificationError(
                                f"Webhook rejected message: {last_error}",
                                status_code=response.status,
                            )
                except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                    last_error = f"{type(e).__name__}: {e}"

                if attempt + 1 < attempts:
                    delay = retry_config.get_delay(attempt)
                    logger.warning(
                        f"Webhook delivery failed ({last_error}), "
                        f"retrying in {delay:.1f}s (attempt {attempt + 1}/{attempts})"
                    )
                    await asyncio.sleep(delay)

        raise NotificationError(f"Webhook delivery failed after {attempts} attempts: {last_error}")
