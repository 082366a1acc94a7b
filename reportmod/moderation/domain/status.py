"""Fixed mapping from review action to terminal report status."""

from __future__ import annotations

from types import MappingProxyType
from typing import Mapping

from reportmod.moderation.domain.models import ReportActionType, ReportStatus

ACTION_STATUS: Mapping[ReportActionType, ReportStatus] = MappingProxyType(
    {
        ReportActionType.NO_ACTION: ReportStatus.REJECTED,
        ReportActionType.WARN_USER: ReportStatus.RESOLVED,
        ReportActionType.REQUIRE_EDIT: ReportStatus.RESOLVED,
        ReportActionType.REMOVE_CONTENT: ReportStatus.RESOLVED,
        ReportActionType.OTHER: ReportStatus.RESOLVED,
        ReportActionType.SUSPEND_USER: ReportStatus.APPROVED,
        ReportActionType.DISABLE_USER: ReportStatus.APPROVED,
        ReportActionType.UNPUBLISH: ReportStatus.APPROVED,
    }
)

if set(ACTION_STATUS) != set(ReportActionType):  # pragma: no cover - import-time guard
    raise RuntimeError("ACTION_STATUS must cover every ReportActionType")


def determine_status(action: ReportActionType) -> ReportStatus:
    return ACTION_STATUS[action]


def transition_label(status: ReportStatus) -> str:
    return f"pending_to_{status.value.lower()}"
