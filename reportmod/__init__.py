"""Report aggregation and auto-enforcement engine for CookShare moderation."""
