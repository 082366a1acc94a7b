"""Moderation package integration helpers exposed to the application."""

from reportmod.moderation.domain.container import (
    configure,
    configure_postgres,
    get_group_service,
    get_report_service,
)

__all__ = ["configure", "configure_postgres", "get_group_service", "get_report_service"]
