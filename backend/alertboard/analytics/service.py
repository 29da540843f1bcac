"""Current-vs-previous window analytics over the issues table."""

import asyncio
import json
from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timezone

import structlog
from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.elements import ColumnElement

from alertboard.analytics.filters import (
    STATUS_CREATED,
    STATUS_FAKE_ALARM,
    IssueFilter,
    Window,
    build_issue_filter,
    comparison_windows,
    legacy_bucket,
    not_muted,
    prod_signature,
)
from alertboard.analytics.schemas import (
    AnalyticsQuery,
    ClusterCount,
    ComponentCount,
    ComponentResponse,
    ComponentStatsResponse,
    DashboardResponse,
    DateRange,
    MetricStat,
    PriorityCount,
    SignatureCount,
    TenantCount,
    TrendPoint,
)
from alertboard.categories.classifier import (
    LEGACY_CATEGORY,
    LEGACY_COMPONENT,
    OTHER_CATEGORY,
    SERVERLESS_CATEGORY,
    SERVERLESS_COMPONENT,
    CategoryMap,
)
from alertboard.integrations.extraction import parse_stamp
from alertboard.issues.models import Issue
from alertboard.issues.schemas import IssueResponse
from alertboard.names.resolver import NameInfo, NameResolver

logger = structlog.get_logger()

TOP_N = 10
RECENT_ISSUES_LIMIT = 10
COMPONENT_SCAN_LIMIT = 5000
NO_COMPONENT = "No Component"


def _trend(delta: float) -> str:
    if delta > 0:
        return "up"
    if delta < 0:
        return "down"
    return "neutral"


def calculate_change(current: int, previous: int) -> tuple[float, str]:
    """Percent change in magnitude between two counts."""
    if previous == 0:
        if current == 0:
            return 0.0, "neutral"
        return 100.0, "up"
    change = (current - previous) / previous * 100
    return change, _trend(change)


def rate_change(current_rate: float, previous_rate: float) -> tuple[float, str]:
    """Percentage-point shift between two rates that are already percentages."""
    delta = current_rate - previous_rate
    return delta, _trend(delta)


def calc_rate(numerator: int, denominator: int) -> float:
    if denominator == 0:
        return 0.0
    return numerator / denominator * 100


def count_stat(current: int, previous: int) -> MetricStat:
    change, trend = calculate_change(current, previous)
    return MetricStat(current=current, previous=previous, change=change, trend=trend)


def rate_stat(current: float, previous: float) -> MetricStat:
    change, trend = rate_change(current, previous)
    return MetricStat(current=current, previous=previous, change=change, trend=trend)


def bucket_key(created: str, step: str) -> str | None:
    """Trend bucket for a stored stamp: ``YYYY-MM-DD``, ``YYYY-WW`` (Monday weeks) or ``YYYY-MM``."""
    dt = parse_stamp(created)
    if dt is None:
        return None
    if step == "week":
        return dt.strftime("%Y-%W")
    if step == "month":
        return dt.strftime("%Y-%m")
    return dt.strftime("%Y-%m-%d")


@dataclass
class WindowStats:
    total: int = 0
    prod: int = 0
    non_prod: int = 0
    critical: int = 0
    fake: int = 0
    handled: int = 0

    @property
    def fake_rate(self) -> float:
        return calc_rate(self.fake, self.total)

    @property
    def handling_rate(self) -> float:
        return calc_rate(self.handled, self.total)


@dataclass
class BreakdownRow:
    key: str
    current: int
    previous: int
    last_seen: str = ""

    @property
    def change(self) -> tuple[float, str]:
        return calculate_change(self.current, self.previous)


def _sum_when(predicate: ColumnElement):
    return func.coalesce(func.sum(case((predicate, 1), else_=0)), 0)


async def window_stats(db: AsyncSession, flt: IssueFilter, window: Window) -> WindowStats:
    stmt = flt.apply(
        select(
            func.count().label("total"),
            _sum_when(prod_signature()).label("prod"),
            _sum_when(~prod_signature()).label("non_prod"),
            _sum_when(Issue.priority == "Critical").label("critical"),
            _sum_when(Issue.status == STATUS_FAKE_ALARM).label("fake"),
            _sum_when(Issue.status != STATUS_CREATED).label("handled"),
        ).select_from(Issue),
        window.predicate(),
    )
    row = (await db.execute(stmt)).one()
    return WindowStats(
        total=row.total,
        prod=int(row.prod),
        non_prod=int(row.non_prod),
        critical=int(row.critical),
        fake=int(row.fake),
        handled=int(row.handled),
    )


async def trend_series(db: AsyncSession, flt: IssueFilter, window: Window, step: str) -> list[TrendPoint]:
    result = await db.execute(flt.apply(select(Issue.created, Issue.priority), window.predicate()))
    buckets: dict[str, Counter] = {}
    for created, priority in result.all():
        key = bucket_key(created, step)
        if key is None:
            continue
        counts = buckets.setdefault(key, Counter())
        counts["total"] += 1
        counts[priority] += 1
    return [
        TrendPoint(
            date=key,
            total_alerts=counts["total"],
            critical_count=counts["Critical"],
            major_count=counts["Major"],
            warning_count=counts["Warning"],
        )
        for key, counts in sorted(buckets.items())
    ]


async def top_breakdown(
    db: AsyncSession,
    column,
    flt: IssueFilter,
    current: Window,
    previous: Window,
    limit: int = TOP_N,
) -> list[BreakdownRow]:
    """Top *limit* values of *column* in the current window, with their previous-window counts."""
    present = [column.is_not(None), column != ""]
    count = func.count().label("count")
    result = await db.execute(
        flt.apply(
            select(column, count, func.max(Issue.created).label("last_seen")),
            current.predicate(),
            *present,
        )
        .group_by(column)
        .order_by(count.desc(), column)
        .limit(limit)
    )
    rows = [BreakdownRow(key=r[0], current=r[1], previous=0, last_seen=r[2] or "") for r in result.all()]
    if not rows:
        return rows

    prev_result = await db.execute(
        flt.apply(
            select(column, func.count()),
            previous.predicate(),
            column.in_([r.key for r in rows]),
        ).group_by(column)
    )
    previous_counts = dict(prev_result.all())
    for row in rows:
        row.previous = previous_counts.get(row.key, 0)
    return rows


async def _resolve_all(resolver: NameResolver | None, ids: list[str], skip_lookup: bool) -> list[NameInfo]:
    if resolver is None or skip_lookup:
        return [NameInfo(id=i, name=i) for i in ids]
    return list(await asyncio.gather(*(resolver.resolve_or_fallback(i) for i in ids)))


async def tenant_breakdown(
    db: AsyncSession,
    flt: IssueFilter,
    current: Window,
    previous: Window,
    resolver: NameResolver | None,
    skip_lookup: bool = False,
) -> list[TenantCount]:
    rows = await top_breakdown(db, Issue.tenant_id, flt, current, previous)
    names = await _resolve_all(resolver, [r.key for r in rows], skip_lookup)
    tenants = []
    for row, info in zip(rows, names):
        change, trend = row.change
        tenants.append(TenantCount(
            tenant_id=row.key,
            tenant_name=info.name or row.key,
            current=row.current,
            previous=row.previous,
            change=change,
            trend=trend,
        ))
    return tenants


async def cluster_breakdown(
    db: AsyncSession,
    flt: IssueFilter,
    current: Window,
    previous: Window,
    resolver: NameResolver | None,
    skip_lookup: bool = False,
) -> list[ClusterCount]:
    rows = await top_breakdown(db, Issue.cluster_id, flt, current, previous)
    names = await _resolve_all(resolver, [r.key for r in rows], skip_lookup)
    clusters = []
    for row, info in zip(rows, names):
        change, trend = row.change
        clusters.append(ClusterCount(
            cluster_id=row.key,
            cluster_name=info.name or row.key,
            tenant_name=info.tenant_name,
            current=row.current,
            previous=row.previous,
            change=change,
            trend=trend,
        ))
    return clusters


async def signature_breakdown(
    db: AsyncSession,
    flt: IssueFilter,
    current: Window,
    previous: Window,
) -> list[SignatureCount]:
    rows = await top_breakdown(db, Issue.alert_signature, flt, current, previous)
    signatures = []
    for row in rows:
        change, trend = row.change
        signatures.append(SignatureCount(
            signature=row.key,
            current=row.current,
            previous=row.previous,
            change=change,
            trend=trend,
            last_seen=row.last_seen,
        ))
    return signatures


async def priority_breakdown(db: AsyncSession, flt: IssueFilter, window: Window) -> list[PriorityCount]:
    count = func.count().label("count")
    result = await db.execute(
        flt.apply(select(Issue.priority, count), window.predicate())
        .group_by(Issue.priority)
        .order_by(count.desc(), Issue.priority)
    )
    return [PriorityCount(priority=priority or "", count=count) for priority, count in result.all()]


def _decode_components(raw: str | None) -> list[str]:
    if not raw or raw == "[]":
        return []
    try:
        decoded = json.loads(raw)
    except ValueError:
        cleaned = raw.replace("[", "").replace("]", "").replace('"', "").replace("'", "")
        return [part.strip() for part in cleaned.split(",") if part.strip()]
    if not isinstance(decoded, list):
        return []
    return [str(c) for c in decoded if c]


async def component_breakdown(db: AsyncSession, flt: IssueFilter, window: Window) -> list[ComponentCount]:
    """Alert counts keyed by each issue's first listed component."""
    result = await db.execute(
        flt.apply(select(Issue.components, func.count()), window.predicate()).group_by(Issue.components)
    )
    counts: Counter = Counter()
    for raw, count in result.all():
        components = _decode_components(raw)
        counts[components[0] if components else NO_COMPONENT] += count
    ranked = sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))[:TOP_N]
    return [ComponentCount(component=name, count=count) for name, count in ranked]


def _date_range(current: Window, days: int, step: str) -> DateRange:
    return DateRange(start=current.start_stamp, end=current.end_stamp, days=days, step=step)


async def get_dashboard_data(
    db: AsyncSession,
    query: AnalyticsQuery,
    resolver: NameResolver | None = None,
    now: datetime | None = None,
) -> DashboardResponse:
    """Global dashboard: totals, rates, trend and top-N breakdowns for the filtered alerts."""
    now = now or datetime.now(timezone.utc)
    current, previous = comparison_windows(query.days, now)
    flt = build_issue_filter(query)
    skip_lookup = query.component == SERVERLESS_COMPONENT

    curr = await window_stats(db, flt, current)
    prev = await window_stats(db, flt, previous)
    logger.debug("dashboard_windows", filters=flt.names, days=query.days, current=curr.total, previous=prev.total)

    return DashboardResponse(
        total_alerts=count_stat(curr.total, prev.total),
        prod_alerts=count_stat(curr.prod, prev.prod),
        non_prod_alerts=count_stat(curr.non_prod, prev.non_prod),
        critical_alerts=count_stat(curr.critical, prev.critical),
        fake_alarm_rate=rate_stat(curr.fake_rate, prev.fake_rate),
        handling_rate=rate_stat(curr.handling_rate, prev.handling_rate),
        by_priority=await priority_breakdown(db, flt, current),
        by_signature=await signature_breakdown(db, flt, current, previous),
        by_component=await component_breakdown(db, flt, current),
        by_tenant=await tenant_breakdown(db, flt, current, previous, resolver, skip_lookup),
        by_cluster=await cluster_breakdown(db, flt, current, previous, resolver, skip_lookup),
        trend=await trend_series(db, flt, current, query.step),
        date_range=_date_range(current, query.days, query.step),
    )


async def get_issue_list(
    db: AsyncSession,
    query: AnalyticsQuery,
    page: int = 1,
    page_size: int = 50,
    now: datetime | None = None,
) -> list[Issue]:
    now = now or datetime.now(timezone.utc)
    current, _ = comparison_windows(query.days, now)
    flt = build_issue_filter(query)
    result = await db.execute(
        flt.apply(select(Issue), current.predicate())
        .order_by(Issue.created.desc(), Issue.id)
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    return list(result.scalars().all())


async def get_component_stats(
    db: AsyncSession,
    name: str,
    query: AnalyticsQuery,
    category_map: CategoryMap,
    resolver: NameResolver | None = None,
    now: datetime | None = None,
) -> ComponentStatsResponse:
    """Per-component view; windows start at midnight so they line up with daily buckets."""
    now = now or datetime.now(timezone.utc)
    query = query.model_copy(update={"component": name})
    current, previous = comparison_windows(query.days, now, align_to_midnight=True)
    flt = build_issue_filter(query)
    category = category_map.category(name)
    skip_lookup = category == SERVERLESS_CATEGORY

    curr = await window_stats(db, flt, current)
    prev = await window_stats(db, flt, previous)

    recent_result = await db.execute(
        flt.apply(select(Issue)).order_by(Issue.created.desc(), Issue.id).limit(RECENT_ISSUES_LIMIT)
    )
    recent = list(recent_result.scalars().all())
    cluster_ids = list(dict.fromkeys(i.cluster_id for i in recent if i.cluster_id))
    cluster_names = await _resolve_all(resolver, cluster_ids, skip_lookup)
    names_by_cluster = {cid: info.name or cid for cid, info in zip(cluster_ids, cluster_names)}
    recent_issues = []
    for issue in recent:
        item = IssueResponse.model_validate(issue)
        item.cluster_name = names_by_cluster.get(issue.cluster_id, issue.cluster_id)
        recent_issues.append(item)

    return ComponentStatsResponse(
        component=name,
        category=category,
        period=f"Last {query.days} Days",
        env=query.env,
        total_alerts=count_stat(curr.total, prev.total),
        fake_alarm_rate=rate_stat(curr.fake_rate, prev.fake_rate),
        handling_rate=rate_stat(curr.handling_rate, prev.handling_rate),
        trend=await trend_series(db, flt, current, query.step),
        recent_issues=recent_issues,
        top_tenants=await tenant_breakdown(db, flt, current, previous, resolver, skip_lookup),
        top_clusters=await cluster_breakdown(db, flt, current, previous, resolver, skip_lookup),
        top_rules=await signature_breakdown(db, flt, current, previous),
        date_range=_date_range(current, query.days, query.step),
    )


async def list_components(db: AsyncSession, category_map: CategoryMap) -> list[ComponentResponse]:
    """Components seen on recent alerts, plus the Serverless and legacy pseudo-components.

    Components with no configured category are hidden while a category file is
    loaded; historical dirty data would otherwise clutter the sidebar.
    """
    result = await db.execute(
        select(Issue.components)
        .where(Issue.is_alert.is_(True))
        .order_by(Issue.created.desc())
        .limit(COMPONENT_SCAN_LIMIT)
    )
    names: list[str] = []
    for raw in result.scalars().all():
        names.extend(_decode_components(raw))
    names.append(SERVERLESS_COMPONENT)

    hide_unmapped = category_map.loaded
    components: dict[str, ComponentResponse] = {}
    for name in dict.fromkeys(names):
        category = category_map.category(name)
        if category == OTHER_CATEGORY and hide_unmapped:
            continue
        components[name] = ComponentResponse(id=name, name=name, category=category)

    legacy_count = await db.execute(
        select(func.count()).select_from(Issue).where(legacy_bucket(), not_muted())
    )
    if legacy_count.scalar_one() > 0:
        components[LEGACY_COMPONENT] = ComponentResponse(
            id=LEGACY_COMPONENT, name=LEGACY_COMPONENT, category=LEGACY_CATEGORY,
        )

    return sorted(
        components.values(),
        key=lambda c: (category_map.sort_key(c.category), c.name),
    )


def list_categories(category_map: CategoryMap) -> list[str]:
    """Configured categories in declaration order, then the built-in ones."""
    categories = category_map.categories()
    for builtin in (SERVERLESS_CATEGORY, LEGACY_CATEGORY):
        if builtin not in categories:
            categories.append(builtin)
    return categories
