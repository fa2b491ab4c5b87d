"""Central registry for Prometheus metrics used across the backend."""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram, Info, Summary


REQUEST_COUNTER = Counter(
	"nexus_http_requests_total",
	"Total HTTP requests processed",
	["route", "method", "status"],
)

REQUEST_LATENCY = Histogram(
	"nexus_http_request_duration_seconds",
	"HTTP request latency in seconds",
	["route", "method"],
	buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0),
)

GROUPS_CREATED = Counter(
	"nexus_groups_created_total",
	"Communities and sub-clubs created",
	["kind"],
)

MEMBERSHIP_TRANSITIONS = Counter(
	"nexus_membership_transitions_total",
	"Membership state changes committed",
	["action", "group_kind"],
)

JOIN_REQUEST_REVIEWS = Counter(
	"nexus_join_request_reviews_total",
	"Join requests resolved by moderators",
	["result"],
)

AFFILIATION_TRANSITIONS = Counter(
	"nexus_affiliation_transitions_total",
	"Affiliation request state changes",
	["result"],
)

GEOFENCE_CHECKS = Counter(
	"nexus_geofence_checks_total",
	"Location access evaluations",
	["result"],
)

EVENT_EMIT_FAILURES = Counter(
	"nexus_event_emit_failures_total",
	"Post-commit events that could not be published",
	["stream"],
)

REDIS_UP = Gauge("nexus_redis_up", "Redis availability (1=up,0=down)")
REDIS_LATENCY = Summary("nexus_redis_latency_seconds", "Redis ping latency (seconds)")

POSTGRES_UP = Gauge("nexus_postgres_up", "Postgres availability (1=up,0=down)")
POSTGRES_LATENCY = Summary("nexus_postgres_latency_seconds", "Postgres ping latency (seconds)")

BACKGROUND_RUNS = Counter(
	"nexus_jobs_runs_total",
	"Background job executions",
	["name", "result"],
)

BACKGROUND_DURATION = Histogram(
	"nexus_jobs_duration_seconds",
	"Background job duration",
	["name"],
	buckets=(0.1, 0.5, 1.0, 2.0, 5.0, 15.0, 30.0, 60.0),
)

BUILD_INFO = Info("nexus_build", "Service name, environment and commit")


def set_build_info(*, service: str, env: str, commit: str) -> None:
	BUILD_INFO.info({"service": service, "env": env, "commit": commit})


def observe_request(route: str, method: str, status: int, elapsed_seconds: float) -> None:
	REQUEST_COUNTER.labels(route=route, method=method, status=str(status)).inc()
	REQUEST_LATENCY.labels(route=route, method=method).observe(elapsed_seconds)


def inc_group_created(kind: str) -> None:
	GROUPS_CREATED.labels(kind=kind).inc()


def inc_membership(action: str, group_kind: str) -> None:
	MEMBERSHIP_TRANSITIONS.labels(action=action, group_kind=group_kind).inc()


def inc_join_request_review(result: str) -> None:
	JOIN_REQUEST_REVIEWS.labels(result=result).inc()


def inc_affiliation(result: str) -> None:
	AFFILIATION_TRANSITIONS.labels(result=result).inc()


def inc_geofence_check(result: str) -> None:
	GEOFENCE_CHECKS.labels(result=result).inc()


def inc_event_emit_failure(stream: str) -> None:
	EVENT_EMIT_FAILURES.labels(stream=stream).inc()


def mark_redis(ok: bool, *, latency_seconds: float | None = None) -> None:
	REDIS_UP.set(1 if ok else 0)
	if latency_seconds is not None:
		REDIS_LATENCY.observe(latency_seconds)


def mark_postgres(ok: bool, *, latency_seconds: float | None = None) -> None:
	POSTGRES_UP.set(1 if ok else 0)
	if latency_seconds is not None:
		POSTGRES_LATENCY.observe(latency_seconds)


def record_job_run(name: str, *, result: str, duration_seconds: float | None = None) -> None:
	BACKGROUND_RUNS.labels(name=name, result=result).inc()
	if duration_seconds is not None:
		BACKGROUND_DURATION.labels(name=name).observe(duration_seconds)
