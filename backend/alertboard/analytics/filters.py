"""Composable, named SQL predicates over the issues table.

Each predicate is a plain function returning a SQLAlchemy boolean clause, so
it can be tested on its own; ``build_issue_filter`` ANDs the ones a query
asks for. A missing parameter adds no predicate at all.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import Select, and_, func, not_, or_, select
from sqlalchemy.sql.elements import ColumnElement

from alertboard.analytics.schemas import AnalyticsQuery
from alertboard.categories.classifier import (
    ESSENTIAL_MARKERS,
    LEGACY_COMPONENT,
    PREMIUM_MARKERS,
    SERVERLESS_COMPONENT,
    TIER_DEDICATED,
    TIER_ESSENTIAL,
    TIER_PREMIUM,
)
from alertboard.issues.models import Issue, MutedIssue

PROD_MARKER = "[PROD]"
WILDCARD_COMPONENT = "*"

STATUS_FAKE_ALARM = "FAKE ALARM"
STATUS_CREATED = "Created"

STAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


def _like_escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def created_ts() -> ColumnElement:
    """Creation stamp without the " UTC" suffix, comparable to ``STAMP_FORMAT`` strings."""
    return func.replace(Issue.created, " UTC", "")


def _biz_type() -> ColumnElement:
    return func.coalesce(Issue.biz_type, "")


def _biz_contains(markers: tuple[str, ...]) -> ColumnElement:
    return or_(*[_biz_type().ilike(f"%{m}%") for m in markers])


@dataclass(frozen=True)
class Window:
    start: datetime
    end: datetime
    include_end: bool = True

    @property
    def start_stamp(self) -> str:
        return self.start.strftime(STAMP_FORMAT)

    @property
    def end_stamp(self) -> str:
        return self.end.strftime(STAMP_FORMAT)

    def predicate(self) -> ColumnElement:
        ts = created_ts()
        upper = ts <= self.end_stamp if self.include_end else ts < self.end_stamp
        return and_(ts >= self.start_stamp, upper)


def comparison_windows(days: int, now: datetime, align_to_midnight: bool = False) -> tuple[Window, Window]:
    """Current ``[now - days, now]`` and the equally long period right before it."""
    start = now - timedelta(days=days)
    if align_to_midnight:
        start = start.replace(hour=0, minute=0, second=0, microsecond=0)
    previous_start = start - timedelta(days=days)
    return Window(start, now), Window(previous_start, start, include_end=False)


def alert_only() -> ColumnElement:
    return Issue.is_alert.is_(True)


def prod_signature() -> ColumnElement:
    return Issue.alert_signature.like(f"{_like_escape(PROD_MARKER)}%", escape="\\")


def env_filter(env: str | None) -> ColumnElement | None:
    # Environment is not tracked upstream; it is inferred from the signature prefix.
    if env == "prod":
        return prod_signature()
    if env == "non_prod":
        return not_(prod_signature())
    return None


def tier_filter(tier: str | None) -> ColumnElement | None:
    if tier == TIER_PREMIUM:
        return _biz_contains(PREMIUM_MARKERS)
    if tier == TIER_ESSENTIAL:
        return _biz_contains(ESSENTIAL_MARKERS)
    if tier == TIER_DEDICATED:
        return not_(_biz_contains(PREMIUM_MARKERS + ESSENTIAL_MARKERS))
    return None


def legacy_bucket() -> ColumnElement:
    """Alerts without stability governance outside the premium tier."""
    return and_(
        alert_only(),
        func.coalesce(Issue.stability_governance, "") == "",
        not_(_biz_contains(PREMIUM_MARKERS)),
    )


def governed() -> ColumnElement:
    return not_(legacy_bucket())


def has_component(component: str) -> ColumnElement:
    """Membership in the JSON-encoded components array."""
    return Issue.components.like(f'%"{_like_escape(component)}"%', escape="\\")


def not_muted() -> ColumnElement:
    return Issue.id.not_in(select(MutedIssue.issue_id))


def metric_filter(metric_type: str | None) -> ColumnElement | None:
    if metric_type == "fake":
        return Issue.status == STATUS_FAKE_ALARM
    if metric_type == "handled":
        return Issue.status != STATUS_CREATED
    if metric_type == "critical":
        return Issue.priority == "Critical"
    if metric_type in ("prod", "non_prod"):
        return env_filter(metric_type)
    return None


class IssueFilter:
    """Ordered collection of named predicates, ANDed when applied."""

    def __init__(self):
        self._predicates: dict[str, ColumnElement] = {}

    def add(self, name: str, predicate: ColumnElement | None) -> "IssueFilter":
        if predicate is not None:
            self._predicates[name] = predicate
        return self

    def discard(self, name: str) -> "IssueFilter":
        self._predicates.pop(name, None)
        return self

    @property
    def names(self) -> list[str]:
        return list(self._predicates)

    def get(self, name: str) -> ColumnElement | None:
        return self._predicates.get(name)

    def clauses(self, *extra: ColumnElement) -> list[ColumnElement]:
        return [*self._predicates.values(), *extra]

    def apply(self, stmt: Select, *extra: ColumnElement) -> Select:
        return stmt.where(*self.clauses(*extra))


def build_issue_filter(query: AnalyticsQuery) -> IssueFilter:
    """Everything in *query* except the time window."""
    flt = IssueFilter()
    flt.add("alert", alert_only())
    flt.add("not_muted", not_muted())
    flt.add("env", env_filter(query.env))
    flt.add("tier", tier_filter(query.category))

    component = query.component
    if component and component != WILDCARD_COMPONENT:
        if component == LEGACY_COMPONENT:
            flt.add("component", legacy_bucket())
        elif component == SERVERLESS_COMPONENT:
            flt.add("tier", tier_filter(TIER_ESSENTIAL))
        else:
            flt.add("component", has_component(component))
            flt.add("legacy_exclusion", governed())

    if query.tenant_id:
        flt.add("tenant", Issue.tenant_id == query.tenant_id)
    if query.cluster_id:
        flt.add("cluster", Issue.cluster_id == query.cluster_id)
    if query.signature:
        flt.add("signature", Issue.alert_signature == query.signature)
    flt.add("metric", metric_filter(query.metric_type))
    if query.priorities:
        flt.add("priority", Issue.priority.in_(query.priorities))
    return flt
