"""Slack incoming-webhook run reporter.

Posts a plain ``{"text": ...}`` payload formatted with Slack's mrkdwn.
When no webhook is configured the message is logged instead, so local
runs never need Slack credentials.
"""

from __future__ import annotations

import httpx
import structlog

from src.interfaces.run_reporter import IRunReporter
from src.models.run import ReportStatus, RunReport
from src.utils.errors import ReportingError

logger = structlog.get_logger(logger_name=__name__)

_STATUS_EMOJI: dict[ReportStatus, str] = {
    ReportStatus.SUCCESS: "✅",
    ReportStatus.PARTIAL: "⚠️",
    ReportStatus.FAILED: "❌",
}
_DEFAULT_MAX_ERRORS = 5
_TIMEOUT = 10.0


def format_duration(seconds: float) -> str:
    """``"Xm Ys"`` above one minute, ``"Zs"`` otherwise."""
    if seconds > 60:
        minutes, remainder = divmod(int(round(seconds)), 60)
        return f"{minutes}m {remainder}s"
    return f"{int(round(seconds))}s"


def format_report(report: RunReport, max_errors: int = _DEFAULT_MAX_ERRORS) -> str:
    """Render *report* as a Slack mrkdwn message."""
    emoji = _STATUS_EMOJI[report.status]
    message = f"{emoji} *{report.agent_name} Report*\n"
    message += f"Status: {report.status.value} | Duration: {format_duration(report.duration_seconds)}\n"
    message += "\n".join(f"• {label}: {value}" for label, value in report.stats.items())

    if report.errors:
        message += f"\n\n*Errors ({len(report.errors)}):*\n"
        message += "\n".join(f"• {error}" for error in report.errors[:max_errors])
        if len(report.errors) > max_errors:
            message += f"\n...and {len(report.errors) - max_errors} more"
    return message


def format_alert(message: str, context: str | None = None) -> str:
    if context:
        return f"🚨 *Error in {context}*: {message}"
    return f"🚨 *Error*: {message}"


class SlackWebhookReporter(IRunReporter):
    """Deliver run reports and alerts to a Slack incoming webhook.

    Parameters
    ----------
    webhook_url:
        Incoming-webhook URL; empty disables posting.
    http_client:
        Optional shared ``httpx.AsyncClient``.
    max_errors_displayed:
        How many error lines a report lists before summarising the rest.
    """

    def __init__(
        self,
        webhook_url: str = "",
        http_client: httpx.AsyncClient | None = None,
        max_errors_displayed: int = _DEFAULT_MAX_ERRORS,
    ) -> None:
        self._webhook_url = webhook_url
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=httpx.Timeout(_TIMEOUT))
        self._max_errors = max_errors_displayed

    async def _post(self, text: str) -> None:
        if not self._webhook_url:
            logger.info("slack_disabled", text=text)
            return
        try:
            response = await self._client.post(self._webhook_url, json={"text": text})
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise ReportingError(
                message=f"Slack webhook returned HTTP {exc.response.status_code}",
                provider_name=self.get_provider_name(),
            ) from exc
        except httpx.HTTPError as exc:
            raise ReportingError(
                message=f"Slack webhook request failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

    async def send_report(self, report: RunReport) -> None:
        await self._post(format_report(report, self._max_errors))
        logger.info("run_report_sent", status=report.status.value, errors=len(report.errors))

    async def alert_error(self, message: str, context: str) -> None:
        await self._post(format_alert(message, context))

    def get_provider_name(self) -> str:
        return "slack"

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()
