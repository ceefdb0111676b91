"""Run reporter adapters.

One concrete implementation of IRunReporter (src/interfaces/run_reporter.py):
    - SlackWebhookReporter - Slack incoming webhook (logs only when unset)
"""

from src.providers.report.slack_reporter import SlackWebhookReporter

__all__ = ["SlackWebhookReporter"]
