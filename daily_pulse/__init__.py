"""Daily Pulse: scheduled Slack check-ins with follow-ups and scorecards."""

__version__ = "1.0.0"
