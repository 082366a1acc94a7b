from __future__ import annotations

from pathlib import Path

import pytest

import reportmod
from reportmod.moderation.domain.models import ReportActionType, ReportStatus, ReportType, TargetType
from reportmod.moderation.domain.severity import SEVERITY_WEIGHTS
from reportmod.moderation.domain.status import ACTION_STATUS, determine_status, transition_label
from reportmod.moderation.domain.thresholds import PriorityBands, ScoringThresholds, load_thresholds


def test_load_thresholds_overrides_selected_values(tmp_path: Path) -> None:
    config = tmp_path / "thresholds.yaml"
    config.write_text(
        """
thresholds:
  recipe: 8
priority:
  count_floor: 5
weights:
  SPAM: 2
""",
        encoding="utf-8",
    )

    thresholds = load_thresholds(config)

    assert thresholds.recipe == 8.0
    assert thresholds.user == 12.0
    assert thresholds.priority.count_floor == 5
    assert thresholds.priority.critical_ratio == 1.5
    assert thresholds.weights[ReportType.SPAM] == 2
    assert thresholds.weights[ReportType.HARASSMENT] == 5


def test_missing_or_empty_file_falls_back_to_defaults(tmp_path: Path) -> None:
    missing = load_thresholds(tmp_path / "absent.yaml")
    empty_file = tmp_path / "empty.yaml"
    empty_file.write_text("", encoding="utf-8")

    for thresholds in (missing, load_thresholds(empty_file)):
        assert thresholds.for_target(TargetType.USER) == 12.0
        assert thresholds.for_target(TargetType.RECIPE) == 6.0


def test_non_mapping_file_is_ignored(tmp_path: Path) -> None:
    config = tmp_path / "list.yaml"
    config.write_text("- 1\n- 2\n", encoding="utf-8")

    assert load_thresholds(config).recipe == 6.0


def test_unknown_weight_keys_are_rejected(tmp_path: Path) -> None:
    config = tmp_path / "bad.yaml"
    config.write_text("weights:\n  PHISHING: 3\n", encoding="utf-8")

    with pytest.raises(ValueError):
        load_thresholds(config)


def test_invalid_values_are_rejected() -> None:
    with pytest.raises(ValueError):
        ScoringThresholds(user=0)
    with pytest.raises(ValueError):
        PriorityBands(critical_ratio=1.0, high_ratio=1.0)
    with pytest.raises(ValueError):
        ScoringThresholds.from_mapping({"weights": {"SPAM": -1}})


def test_bundled_config_matches_defaults() -> None:
    path = Path(reportmod.__file__).parent / "config" / "moderation_thresholds.yaml"

    thresholds = load_thresholds(path)
    defaults = ScoringThresholds.default()

    assert thresholds.user == defaults.user
    assert thresholds.recipe == defaults.recipe
    assert thresholds.priority == defaults.priority
    assert dict(thresholds.weights) == dict(SEVERITY_WEIGHTS)


def test_action_status_table_is_total() -> None:
    assert set(ACTION_STATUS) == set(ReportActionType)
    assert all(status.is_terminal for status in ACTION_STATUS.values())


@pytest.mark.parametrize(
    ("action", "status"),
    [
        (ReportActionType.NO_ACTION, ReportStatus.REJECTED),
        (ReportActionType.WARN_USER, ReportStatus.RESOLVED),
        (ReportActionType.REQUIRE_EDIT, ReportStatus.RESOLVED),
        (ReportActionType.REMOVE_CONTENT, ReportStatus.RESOLVED),
        (ReportActionType.OTHER, ReportStatus.RESOLVED),
        (ReportActionType.SUSPEND_USER, ReportStatus.APPROVED),
        (ReportActionType.DISABLE_USER, ReportStatus.APPROVED),
        (ReportActionType.UNPUBLISH, ReportStatus.APPROVED),
    ],
)
def test_determine_status(action: ReportActionType, status: ReportStatus) -> None:
    assert determine_status(action) is status


def test_transition_label() -> None:
    assert transition_label(ReportStatus.RESOLVED) == "pending_to_resolved"
