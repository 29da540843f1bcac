from datetime import datetime, timedelta, timezone

import pytest

from alertboard.analytics.filters import build_issue_filter, comparison_windows
from alertboard.analytics.schemas import AnalyticsQuery
from alertboard.analytics.service import (
    bucket_key,
    calculate_change,
    get_component_stats,
    get_dashboard_data,
    get_issue_list,
    list_categories,
    list_components,
    rate_change,
)
from alertboard.categories.classifier import CategoryMap
from alertboard.issues.service import mute_issue
from alertboard.names.resolver import NameResolver

# matches the default reference time of the make_issue fixture
NOW = datetime(2025, 6, 15, 12, 0, 0, tzinfo=timezone.utc)
DAY = timedelta(days=1)


@pytest.mark.parametrize(
    "current, previous, expected",
    [
        (0, 0, (0.0, "neutral")),
        (5, 0, (100.0, "up")),
        (10, 5, (100.0, "up")),
        (15, 10, (50.0, "up")),
        (5, 10, (-50.0, "down")),
        (10, 10, (0.0, "neutral")),
    ],
)
def test_calculate_change(current, previous, expected):
    assert calculate_change(current, previous) == expected


def test_rate_change_is_percentage_points():
    assert rate_change(30.0, 20.0) == (10.0, "up")
    assert rate_change(20.0, 30.0) == (-10.0, "down")
    assert rate_change(0.0, 0.0) == (0.0, "neutral")


def test_bucket_keys():
    assert bucket_key("2025-06-15 12:00:00 UTC", "day") == "2025-06-15"
    assert bucket_key("2025-06-15 12:00:00 UTC", "month") == "2025-06"
    # Monday-based weeks
    assert bucket_key("2025-06-09 00:00:00 UTC", "week") == bucket_key("2025-06-15 23:59:59 UTC", "week")
    assert bucket_key("2025-06-16 00:00:00 UTC", "week") != bucket_key("2025-06-15 23:59:59 UTC", "week")
    assert bucket_key("garbage", "day") is None


def test_comparison_windows():
    current, previous = comparison_windows(7, NOW)
    assert current.start == NOW - 7 * DAY
    assert current.end == NOW
    assert previous.start == NOW - 14 * DAY
    assert previous.end == current.start
    assert not previous.include_end

    aligned, _ = comparison_windows(7, NOW, align_to_midnight=True)
    assert aligned.start_stamp == "2025-06-08 00:00:00"


@pytest.mark.asyncio
async def test_dashboard_splits_current_and_previous_windows(db, make_issue):
    await make_issue("O11Y-1", age=3 * DAY)
    await make_issue("O11Y-2", age=10 * DAY)
    await make_issue("O11Y-3", age=40 * DAY)

    data = await get_dashboard_data(db, AnalyticsQuery(days=7), now=NOW)

    assert data.total_alerts.current == 1
    assert data.total_alerts.previous == 1
    assert data.total_alerts.change == 0
    assert data.total_alerts.trend == "neutral"
    assert [(p.date, p.total_alerts) for p in data.trend] == [("2025-06-12", 1)]
    assert data.date_range.days == 7


@pytest.mark.asyncio
async def test_dashboard_counts_and_rates(db, make_issue):
    await make_issue("O11Y-1", priority="Critical", status="FAKE ALARM")
    await make_issue("O11Y-2", priority="Major", status="Resolved")
    await make_issue("O11Y-3", priority="Warning", title="staging alert")
    await make_issue("O11Y-4", priority="Critical", title="dev alert")
    # previous window: two alerts, none handled
    await make_issue("O11Y-5", age=10 * DAY)
    await make_issue("O11Y-6", age=10 * DAY)

    data = await get_dashboard_data(db, AnalyticsQuery(days=7), now=NOW)

    assert data.total_alerts.current == 4
    assert data.total_alerts.change == 100.0
    assert data.prod_alerts.current == 2
    assert data.non_prod_alerts.current == 2
    assert data.critical_alerts.current == 2
    assert data.fake_alarm_rate.current == 25.0
    assert data.handling_rate.current == 50.0
    assert data.handling_rate.previous == 0.0
    assert data.handling_rate.change == 50.0
    assert {p.priority: p.count for p in data.by_priority} == {"Critical": 2, "Major": 1, "Warning": 1}
    trend = data.trend[0]
    assert (trend.total_alerts, trend.critical_count, trend.major_count, trend.warning_count) == (4, 2, 1, 1)


@pytest.mark.asyncio
async def test_non_alert_tickets_are_ignored(db, make_issue):
    await make_issue("O11Y-1")
    await make_issue("O11Y-2", is_alert=False)
    data = await get_dashboard_data(db, AnalyticsQuery(days=7), now=NOW)
    assert data.total_alerts.current == 1


@pytest.mark.asyncio
async def test_env_filter_partitions_alerts(db, make_issue):
    await make_issue("O11Y-1", title="[PROD] disk full")
    await make_issue("O11Y-2", title="[PROD] disk full")
    await make_issue("O11Y-3", title="[STAGING] disk full")

    total = await get_dashboard_data(db, AnalyticsQuery(days=7), now=NOW)
    prod = await get_dashboard_data(db, AnalyticsQuery(days=7, env="prod"), now=NOW)
    non_prod = await get_dashboard_data(db, AnalyticsQuery(days=7, env="non_prod"), now=NOW)

    assert prod.total_alerts.current == 2
    assert non_prod.total_alerts.current == 1
    assert prod.total_alerts.current + non_prod.total_alerts.current == total.total_alerts.current


@pytest.mark.asyncio
async def test_tier_filter_partitions_alerts(db, make_issue):
    await make_issue("O11Y-1", biz_type="nextgen")
    await make_issue("O11Y-2", biz_type="devtier")
    await make_issue("O11Y-3", biz_type="serverless")
    await make_issue("O11Y-4", biz_type="dedicated")
    await make_issue("O11Y-5", biz_type="")

    counts = {}
    for tier in ("premium", "essential", "dedicated"):
        data = await get_dashboard_data(db, AnalyticsQuery(days=7, category=tier), now=NOW)
        counts[tier] = data.total_alerts.current

    assert counts == {"premium": 1, "essential": 2, "dedicated": 2}


@pytest.mark.asyncio
async def test_legacy_bucket_is_exclusive(db, make_issue):
    await make_issue("O11Y-1", components=["tikv"])
    await make_issue("O11Y-2", components=["tikv"], stability_governance="")
    await make_issue("O11Y-3", components=["tikv"], stability_governance="", biz_type="nextgen")

    tikv = await get_dashboard_data(db, AnalyticsQuery(days=7, component="tikv"), now=NOW)
    legacy = await get_dashboard_data(db, AnalyticsQuery(days=7, component="old-rules"), now=NOW)

    assert tikv.total_alerts.current == 2
    assert legacy.total_alerts.current == 1
    tikv_ids = {i.id for i in await get_issue_list(db, AnalyticsQuery(days=7, component="tikv"), now=NOW)}
    legacy_ids = {i.id for i in await get_issue_list(db, AnalyticsQuery(days=7, component="old-rules"), now=NOW)}
    assert tikv_ids == {"O11Y-1", "O11Y-3"}
    assert legacy_ids == {"O11Y-2"}


@pytest.mark.asyncio
async def test_component_match_is_exact(db, make_issue):
    await make_issue("O11Y-1", components=["tidb"])
    await make_issue("O11Y-2", components=["tidb-operator"])
    data = await get_dashboard_data(db, AnalyticsQuery(days=7, component="tidb"), now=NOW)
    assert data.total_alerts.current == 1


@pytest.mark.asyncio
async def test_wildcard_component_adds_no_filter(db, make_issue):
    await make_issue("O11Y-1", components=["tidb"])
    await make_issue("O11Y-2", components=[], stability_governance="")
    data = await get_dashboard_data(db, AnalyticsQuery(days=7, component="*"), now=NOW)
    assert data.total_alerts.current == 2


@pytest.mark.asyncio
async def test_serverless_view_selects_essential_tier(db, make_issue):
    await make_issue("O11Y-1", biz_type="serverless", tenant_id="1001")
    await make_issue("O11Y-2", biz_type="nextgen")
    data = await get_dashboard_data(db, AnalyticsQuery(days=7, component="Serverless"), now=NOW)
    assert data.total_alerts.current == 1
    assert data.by_tenant[0].tenant_name == "1001"


@pytest.mark.asyncio
async def test_muted_issues_are_excluded_everywhere(db, make_issue):
    await make_issue("O11Y-1")
    await make_issue("O11Y-2")
    await mute_issue(db, "O11Y-2", "noise")

    data = await get_dashboard_data(db, AnalyticsQuery(days=7), now=NOW)
    issues = await get_issue_list(db, AnalyticsQuery(days=7), now=NOW)

    assert data.total_alerts.current == 1
    assert [i.id for i in issues] == ["O11Y-1"]


@pytest.mark.asyncio
async def test_filters_combine(db, make_issue):
    await make_issue("O11Y-1", tenant_id="1", cluster_id="10", priority="Critical")
    await make_issue("O11Y-2", tenant_id="1", cluster_id="11", priority="Major")
    await make_issue("O11Y-3", tenant_id="2", cluster_id="10", priority="Critical")
    await make_issue("O11Y-4", tenant_id="1", cluster_id="10", priority="Low", status="FAKE ALARM")

    async def total(**params) -> int:
        data = await get_dashboard_data(db, AnalyticsQuery(days=7, **params), now=NOW)
        return data.total_alerts.current

    assert await total(tenant_id="1") == 3
    assert await total(tenant_id="1", cluster_id="10") == 2
    assert await total(priority="Critical,Major") == 3
    assert await total(metric_type="fake") == 1
    assert await total(metric_type="handled") == 1
    assert await total(signature="[PROD] alert O11Y-3") == 1


def test_missing_parameters_add_no_predicates():
    assert build_issue_filter(AnalyticsQuery()).names == ["alert", "not_muted"]
    names = build_issue_filter(AnalyticsQuery(component="tikv", env="prod", category="premium")).names
    assert names == ["alert", "not_muted", "env", "tier", "component", "legacy_exclusion"]


@pytest.mark.asyncio
async def test_top_breakdowns_carry_previous_counts(db, make_issue):
    for i in range(3):
        await make_issue(f"O11Y-{i}", tenant_id="100", cluster_id="500", title="[PROD] TiKV down")
    await make_issue("O11Y-9", tenant_id="200", cluster_id="600", title="[PROD] PD slow")
    await make_issue("O11Y-10", age=10 * DAY, tenant_id="100", cluster_id="500", title="[PROD] TiKV down")
    await make_issue("O11Y-11", tenant_id="", cluster_id="")

    data = await get_dashboard_data(db, AnalyticsQuery(days=7), resolver=NameResolver(""), now=NOW)

    assert [(t.tenant_id, t.current, t.previous) for t in data.by_tenant] == [("100", 3, 1), ("200", 1, 0)]
    assert data.by_tenant[0].change == 200.0
    assert data.by_tenant[0].tenant_name == "100"
    assert [c.cluster_id for c in data.by_cluster] == ["500", "600"]
    assert data.by_cluster[0].cluster_name == "500"
    top_signature = data.by_signature[0]
    assert (top_signature.signature, top_signature.current, top_signature.previous) == ("[PROD] TiKV down", 3, 1)
    assert top_signature.last_seen


@pytest.mark.asyncio
async def test_breakdowns_are_capped_at_ten(db, make_issue):
    for i in range(12):
        await make_issue(f"O11Y-{i}", tenant_id=str(1000 + i))
    data = await get_dashboard_data(db, AnalyticsQuery(days=7), now=NOW)
    assert len(data.by_tenant) == 10
    assert len(data.by_signature) == 10


@pytest.mark.asyncio
async def test_component_breakdown_uses_first_component(db, make_issue):
    await make_issue("O11Y-1", components=["tikv", "pd"])
    await make_issue("O11Y-2", components=["tikv"])
    await make_issue("O11Y-3", components=[])
    data = await get_dashboard_data(db, AnalyticsQuery(days=7), now=NOW)
    assert [(c.component, c.count) for c in data.by_component] == [("tikv", 2), ("No Component", 1)]


@pytest.mark.asyncio
async def test_issue_list_pagination(db, make_issue):
    for i in range(5):
        await make_issue(f"O11Y-{i}", age=timedelta(hours=i + 1))

    first = await get_issue_list(db, AnalyticsQuery(days=7), page=1, page_size=2, now=NOW)
    second = await get_issue_list(db, AnalyticsQuery(days=7), page=2, page_size=2, now=NOW)
    third = await get_issue_list(db, AnalyticsQuery(days=7), page=3, page_size=2, now=NOW)

    assert [i.id for i in first] == ["O11Y-0", "O11Y-1"]
    assert [i.id for i in second] == ["O11Y-2", "O11Y-3"]
    assert [i.id for i in third] == ["O11Y-4"]


@pytest.mark.asyncio
async def test_list_components(db, make_issue, category_map: CategoryMap):
    await make_issue("O11Y-1", components=["tidb"])
    await make_issue("O11Y-2", components=["tikv", "unmapped"])
    await make_issue("O11Y-3", components=["pd"], stability_governance="")

    components = await list_components(db, category_map)

    assert [(c.name, c.category) for c in components] == [
        ("pd", "Storage"),
        ("tikv", "Storage"),
        ("tidb", "Compute"),
        ("old-rules", "Resilience"),
        ("Serverless", "Serverless"),
    ]


@pytest.mark.asyncio
async def test_first_listing_hides_unmapped_components(db, make_issue, tmp_path):
    path = tmp_path / "component_categories.yaml"
    path.write_text("categories:\n  Storage:\n    - tikv\n", encoding="utf-8")
    await make_issue("O11Y-1", components=["tikv", "unmapped"])

    components = await list_components(db, CategoryMap(path))

    names = {c.name for c in components}
    assert "tikv" in names
    assert "unmapped" not in names


@pytest.mark.asyncio
async def test_list_components_without_category_file(db, make_issue, tmp_path):
    await make_issue("O11Y-1", components=["unmapped"])
    components = await list_components(db, CategoryMap(tmp_path / "missing.yaml"))
    assert {(c.name, c.category) for c in components} == {("unmapped", "Other"), ("Serverless", "Serverless")}


def test_list_categories(category_map: CategoryMap):
    assert list_categories(category_map) == ["Storage", "Compute", "Resilience", "Serverless"]


@pytest.mark.asyncio
async def test_component_stats(db, make_issue, category_map: CategoryMap):
    await make_issue("O11Y-1", components=["tikv"], cluster_id="500", status="FAKE ALARM")
    await make_issue("O11Y-2", components=["tikv"], cluster_id="500")
    await make_issue("O11Y-3", components=["tidb"])
    await make_issue("O11Y-4", components=["tikv"], age=10 * DAY)

    stats = await get_component_stats(db, "tikv", AnalyticsQuery(days=7), category_map, NameResolver(""), now=NOW)

    assert stats.category == "Storage"
    assert stats.period == "Last 7 Days"
    assert stats.total_alerts.current == 2
    assert stats.total_alerts.previous == 1
    assert stats.fake_alarm_rate.current == 50.0
    assert stats.date_range.start == "2025-06-08 00:00:00"
    assert [i.id for i in stats.recent_issues] == ["O11Y-1", "O11Y-2", "O11Y-4"]
    assert stats.recent_issues[0].cluster_name == "500"
    assert stats.recent_issues[0].components == ["tikv"]
    assert stats.top_clusters[0].cluster_id == "500"
