"""Central registry for Prometheus metrics used by the moderation engine."""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

MOD_REPORTS_TOTAL = Counter(
	"mod_reports_total",
	"Moderation reports filed",
	["type"],
)

MOD_REPORT_TRANSITIONS_TOTAL = Counter(
	"mod_report_transitions_total",
	"Report status transitions",
	["transition"],
)

MOD_AUTO_ACTIONS_TOTAL = Counter(
	"mod_auto_actions_total",
	"Threshold auto-moderation outcomes",
	["target_type", "result"],
)

MOD_ENFORCEMENT_TOTAL = Counter(
	"mod_enforcement_total",
	"Enforcement actions executed against users and recipes",
	["action", "result"],
)

MOD_ENRICHMENT_LATENCY_SECONDS = Histogram(
	"mod_enrichment_latency_seconds",
	"Latency of the batch enrichment join",
	buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
)

MOD_ENRICHMENT_DEGRADED_TOTAL = Counter(
	"mod_enrichment_degraded_total",
	"Cosmetic enrichment loads that fell back to empty results",
	["kind"],
)

MOD_NOTIFICATIONS_TOTAL = Counter(
	"mod_notifications_total",
	"Moderation notifications attempted",
	["kind", "result"],
)

MOD_GROUP_LIST_LATENCY_MS = Histogram(
	"mod_group_list_latency_ms",
	"Grouped report list latency (milliseconds)",
	buckets=(5.0, 10.0, 25.0, 50.0, 100.0, 250.0, 500.0, 1000.0),
)

MOD_PENDING_REPORTS = Gauge(
	"mod_pending_reports",
	"Last broadcast count of pending reports",
)

MOD_POOL_TASKS_INFLIGHT = Gauge(
	"mod_pool_tasks_inflight",
	"Tasks currently running on the moderation pool",
)


def inc_report_filed(report_type: str) -> None:
	MOD_REPORTS_TOTAL.labels(type=report_type).inc()


def inc_report_transition(transition: str, count: int = 1) -> None:
	if count > 0:
		MOD_REPORT_TRANSITIONS_TOTAL.labels(transition=transition).inc(count)


def inc_auto_action(target_type: str, result: str) -> None:
	MOD_AUTO_ACTIONS_TOTAL.labels(target_type=target_type, result=result).inc()


def inc_enforcement(action: str, result: str) -> None:
	MOD_ENFORCEMENT_TOTAL.labels(action=action, result=result).inc()


def observe_enrichment(elapsed_seconds: float) -> None:
	MOD_ENRICHMENT_LATENCY_SECONDS.observe(elapsed_seconds)


def inc_enrichment_degraded(kind: str) -> None:
	MOD_ENRICHMENT_DEGRADED_TOTAL.labels(kind=kind).inc()


def inc_notification(kind: str, result: str) -> None:
	MOD_NOTIFICATIONS_TOTAL.labels(kind=kind, result=result).inc()


def observe_group_list(elapsed_ms: float) -> None:
	MOD_GROUP_LIST_LATENCY_MS.observe(elapsed_ms)


def set_pending_reports(count: int) -> None:
	MOD_PENDING_REPORTS.set(count)
