"""Report records and value types shared across the moderation domain."""

from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Generic, Mapping, Sequence, TypeVar, Union

from reportmod.moderation.domain.errors import AlreadyReviewedError

T = TypeVar("T")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ReportType(str, Enum):
    """Reasons a report can be filed. Declaration order breaks severity ties."""

    SPAM = "SPAM"
    INAPPROPRIATE = "INAPPROPRIATE"
    COPYRIGHT = "COPYRIGHT"
    HARASSMENT = "HARASSMENT"
    FAKE = "FAKE"
    MISLEADING = "MISLEADING"
    OTHER = "OTHER"

    @property
    def display_name(self) -> str:
        return _REPORT_TYPE_LABELS[self]


_REPORT_TYPE_LABELS: Mapping[ReportType, str] = {
    ReportType.SPAM: "Spam",
    ReportType.INAPPROPRIATE: "Inappropriate content",
    ReportType.COPYRIGHT: "Copyright infringement",
    ReportType.HARASSMENT: "Harassment",
    ReportType.FAKE: "Fake account or content",
    ReportType.MISLEADING: "Misleading information",
    ReportType.OTHER: "Other",
}


class ReportStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    RESOLVED = "RESOLVED"

    @property
    def is_terminal(self) -> bool:
        return self is not ReportStatus.PENDING


class ReportActionType(str, Enum):
    """Enforcement vocabulary shared by manual review and auto-moderation."""

    NO_ACTION = "NO_ACTION"
    WARN_USER = "WARN_USER"
    SUSPEND_USER = "SUSPEND_USER"
    DISABLE_USER = "DISABLE_USER"
    UNPUBLISH = "UNPUBLISH"
    REQUIRE_EDIT = "REQUIRE_EDIT"
    REMOVE_CONTENT = "REMOVE_CONTENT"
    OTHER = "OTHER"

    @property
    def display_name(self) -> str:
        return _ACTION_LABELS[self][0]

    @property
    def description(self) -> str:
        return _ACTION_LABELS[self][1]


_ACTION_LABELS: Mapping[ReportActionType, tuple[str, str]] = {
    ReportActionType.NO_ACTION: ("No action", "The report was reviewed and no violation was found"),
    ReportActionType.WARN_USER: ("Warning", "The account owner received a warning"),
    ReportActionType.SUSPEND_USER: ("Suspension", "The account was temporarily suspended"),
    ReportActionType.DISABLE_USER: ("Account disabled", "The account was disabled"),
    ReportActionType.UNPUBLISH: ("Unpublished", "The recipe was returned to draft"),
    ReportActionType.REQUIRE_EDIT: ("Edit required", "The recipe was returned to draft until it is edited"),
    ReportActionType.REMOVE_CONTENT: ("Content removed", "The reported content was taken down"),
    ReportActionType.OTHER: ("Other", "A moderator handled the report manually"),
}


class TargetType(str, Enum):
    USER = "USER"
    RECIPE = "RECIPE"


class Priority(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


@dataclass(frozen=True, slots=True)
class UserTarget:
    user_id: str

    @property
    def target_type(self) -> TargetType:
        return TargetType.USER

    @property
    def target_id(self) -> str:
        return self.user_id

    @property
    def key(self) -> str:
        return f"user:{self.user_id}"


@dataclass(frozen=True, slots=True)
class RecipeTarget:
    recipe_id: str

    @property
    def target_type(self) -> TargetType:
        return TargetType.RECIPE

    @property
    def target_id(self) -> str:
        return self.recipe_id

    @property
    def key(self) -> str:
        return f"recipe:{self.recipe_id}"


Target = Union[UserTarget, RecipeTarget]


def parse_target(target_type: TargetType | str, target_id: str) -> Target:
    """Build a target from its wire parts."""
    kind = TargetType(str(getattr(target_type, "value", target_type)).upper())
    if not target_id:
        raise ValueError("target_id_required")
    if kind is TargetType.USER:
        return UserTarget(str(target_id))
    return RecipeTarget(str(target_id))


@dataclass(slots=True)
class Report:
    """A single report filed against a user or a recipe."""

    report_id: str
    reporter_id: str
    target: Target
    report_type: ReportType
    reason: str
    description: str | None = None
    status: ReportStatus = ReportStatus.PENDING
    action_taken: ReportActionType | None = None
    action_description: str | None = None
    admin_note: str | None = None
    reviewed_by: str | None = None
    reviewed_at: datetime | None = None
    created_at: datetime = field(default_factory=utcnow)
    reporters_notified: bool = False

    @property
    def is_pending(self) -> bool:
        return self.status is ReportStatus.PENDING

    def mark_reviewed(
        self,
        *,
        status: ReportStatus,
        action: ReportActionType,
        reviewer_id: str,
        reviewed_at: datetime,
        action_description: str | None = None,
        admin_note: str | None = None,
    ) -> None:
        """Move a pending report to a terminal status, stamping reviewer and time together."""
        if not self.is_pending:
            raise AlreadyReviewedError(self.report_id)
        if not status.is_terminal:
            raise ValueError("review_requires_terminal_status")
        self.status = status
        self.action_taken = action
        self.action_description = action_description
        if admin_note is not None:
            self.admin_note = admin_note
        self.reviewed_by = reviewer_id
        self.reviewed_at = reviewed_at

    def copy(self) -> "Report":
        return replace(self)


@dataclass(frozen=True, slots=True)
class ReportDraft:
    """Input for a new report before the store assigns an id."""

    reporter_id: str
    target: Target
    report_type: ReportType
    reason: str
    description: str | None = None


@dataclass(frozen=True, slots=True)
class ReportGroup:
    """Raw per-target aggregate of pending reports."""

    target: Target
    report_count: int
    latest_report_at: datetime
    first_report_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class UserInfo:
    user_id: str
    username: str
    full_name: str | None = None
    avatar_path: str | None = None
    is_active: bool = True
    is_admin: bool = False


class RecipeStatus(str, Enum):
    DRAFT = "DRAFT"
    PUBLISHED = "PUBLISHED"
    UNPUBLISHED = "UNPUBLISHED"


@dataclass(frozen=True, slots=True)
class RecipeInfo:
    recipe_id: str
    title: str
    author_id: str
    author_username: str | None = None
    image_path: str | None = None
    status: RecipeStatus = RecipeStatus.PUBLISHED


@dataclass(frozen=True, slots=True)
class TargetInfo:
    """Display data and ownership for a report target."""

    target: Target
    title: str
    owner_id: str | None
    owner_username: str | None
    image_path: str | None
    enforced: bool = False

    @staticmethod
    def from_user(info: UserInfo) -> "TargetInfo":
        return TargetInfo(
            target=UserTarget(info.user_id),
            title=info.full_name or info.username,
            owner_id=info.user_id,
            owner_username=info.username,
            image_path=info.avatar_path,
            enforced=not info.is_active,
        )

    @staticmethod
    def from_recipe(info: RecipeInfo) -> "TargetInfo":
        return TargetInfo(
            target=RecipeTarget(info.recipe_id),
            title=info.title,
            owner_id=info.author_id,
            owner_username=info.author_username,
            image_path=info.image_path,
            enforced=info.status is not RecipeStatus.PUBLISHED,
        )


@dataclass(frozen=True, slots=True)
class ReportCriteria:
    """Filters for report search; unset fields do not constrain."""

    report_type: ReportType | None = None
    status: ReportStatus | None = None
    reporter_id: str | None = None
    reported_user_id: str | None = None
    recipe_id: str | None = None
    from_date: datetime | None = None
    to_date: datetime | None = None

    def matches(self, report: Report) -> bool:
        if self.report_type is not None and report.report_type is not self.report_type:
            return False
        if self.status is not None and report.status is not self.status:
            return False
        if self.reporter_id is not None and report.reporter_id != self.reporter_id:
            return False
        if self.reported_user_id is not None and report.target != UserTarget(self.reported_user_id):
            return False
        if self.recipe_id is not None and report.target != RecipeTarget(self.recipe_id):
            return False
        if self.from_date is not None and report.created_at < self.from_date:
            return False
        if self.to_date is not None and report.created_at > self.to_date:
            return False
        return True


@dataclass(frozen=True)
class Page(Generic[T]):
    items: Sequence[T]
    page: int
    size: int
    total_elements: int
    total_pages: int

    @staticmethod
    def build(items: Sequence[T], *, page: int, size: int, total_elements: int) -> "Page[T]":
        total_pages = math.ceil(total_elements / size) if size > 0 else 0
        return Page(items=list(items), page=page, size=size, total_elements=total_elements, total_pages=total_pages)

    @staticmethod
    def empty(*, page: int, size: int, total_elements: int = 0) -> "Page[T]":
        return Page.build([], page=page, size=size, total_elements=total_elements)


def validate_page(page: int, size: int) -> None:
    if page < 0:
        raise ValueError("page_must_be_non_negative")
    if size < 1:
        raise ValueError("size_must_be_positive")


__all__ = [
    "Page",
    "Priority",
    "RecipeInfo",
    "RecipeStatus",
    "RecipeTarget",
    "Report",
    "ReportActionType",
    "ReportCriteria",
    "ReportDraft",
    "ReportGroup",
    "ReportStatus",
    "ReportType",
    "Target",
    "TargetInfo",
    "TargetType",
    "UserInfo",
    "UserTarget",
    "parse_target",
    "utcnow",
    "validate_page",
]
