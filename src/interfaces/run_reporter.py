"""Abstract base class for run-report delivery."""

from __future__ import annotations

from abc import ABC, abstractmethod

from src.models.run import RunReport


# Concrete implementations: SlackWebhookReporter
# Located in: src/providers/report/
class IRunReporter(ABC):
    """Contract for sending run summaries and alerts to humans."""

    @abstractmethod
    async def send_report(self, report: RunReport) -> None:
        """Deliver the end-of-run summary.

        Raises
        ------
        src.utils.errors.ReportingError
            If delivery fails.  Callers must never let this affect the run.
        """

    @abstractmethod
    async def alert_error(self, message: str, context: str) -> None:
        """Deliver a high-priority alert about a fatal error."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a short identifier, e.g. ``"slack"``."""
