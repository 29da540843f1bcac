from typing import Literal

from pydantic import BaseModel, Field

from alertboard.issues.schemas import IssueResponse

Step = Literal["day", "week", "month"]
Env = Literal["all", "prod", "non_prod"]
Tier = Literal["premium", "dedicated", "essential"]
MetricType = Literal["fake", "handled", "critical", "prod", "non_prod"]
Trend = Literal["up", "down", "neutral"]


class AnalyticsQuery(BaseModel):
    days: int = Field(30, ge=1, le=365)
    step: Step = "day"
    env: Env = "all"
    category: Tier | None = None
    component: str | None = None
    tenant_id: str | None = None
    cluster_id: str | None = None
    signature: str | None = None
    metric_type: MetricType | None = None
    priority: str | None = None  # comma separated, e.g. "Critical,Major"

    @property
    def priorities(self) -> list[str]:
        if not self.priority:
            return []
        return [p.strip() for p in self.priority.split(",") if p.strip()]


class MetricStat(BaseModel):
    current: float
    previous: float
    change: float
    trend: Trend


class PriorityCount(BaseModel):
    priority: str
    count: int


class ComponentCount(BaseModel):
    component: str
    count: int


class TenantCount(BaseModel):
    tenant_id: str
    tenant_name: str
    current: int
    previous: int
    change: float
    trend: Trend


class ClusterCount(BaseModel):
    cluster_id: str
    cluster_name: str
    tenant_name: str
    current: int
    previous: int
    change: float
    trend: Trend


class SignatureCount(BaseModel):
    signature: str
    current: int
    previous: int
    change: float
    trend: Trend
    last_seen: str


class TrendPoint(BaseModel):
    date: str
    total_alerts: int
    critical_count: int
    major_count: int
    warning_count: int


class DateRange(BaseModel):
    start: str
    end: str
    days: int
    step: Step


class DashboardResponse(BaseModel):
    total_alerts: MetricStat
    prod_alerts: MetricStat
    non_prod_alerts: MetricStat
    critical_alerts: MetricStat
    fake_alarm_rate: MetricStat
    handling_rate: MetricStat
    by_priority: list[PriorityCount]
    by_signature: list[SignatureCount]
    by_component: list[ComponentCount]
    by_tenant: list[TenantCount]
    by_cluster: list[ClusterCount]
    trend: list[TrendPoint]
    date_range: DateRange


class ComponentResponse(BaseModel):
    id: str
    name: str
    category: str
    status: str = "Healthy"


class ComponentStatsResponse(BaseModel):
    component: str
    category: str
    period: str
    env: Env
    total_alerts: MetricStat
    fake_alarm_rate: MetricStat
    handling_rate: MetricStat
    trend: list[TrendPoint]
    recent_issues: list[IssueResponse]
    top_tenants: list[TenantCount]
    top_clusters: list[ClusterCount]
    top_rules: list[SignatureCount]
    date_range: DateRange
