from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from alertboard.analytics.schemas import (
    AnalyticsQuery,
    ComponentResponse,
    ComponentStatsResponse,
    DashboardResponse,
    Env,
    MetricType,
    Step,
    Tier,
)
from alertboard.analytics.service import (
    get_component_stats,
    get_dashboard_data,
    list_categories,
    list_components,
)
from alertboard.categories.classifier import CategoryMap
from alertboard.database import get_db
from alertboard.dependencies import get_category_map, get_name_resolver
from alertboard.names.resolver import NameResolver

router = APIRouter(tags=["analytics"])


def analytics_query(
    days: int = Query(30, ge=1, le=365),
    step: Step = Query("day"),
    env: Env = Query("all"),
    category: Tier | None = Query(None),
    component: str | None = Query(None),
    tenant_id: str | None = Query(None),
    cluster_id: str | None = Query(None),
    signature: str | None = Query(None),
    metric_type: MetricType | None = Query(None),
    priority: str | None = Query(None),
) -> AnalyticsQuery:
    return AnalyticsQuery(
        days=days,
        step=step,
        env=env,
        category=category,
        component=component,
        tenant_id=tenant_id,
        cluster_id=cluster_id,
        signature=signature,
        metric_type=metric_type,
        priority=priority,
    )


@router.get("/dashboard", response_model=DashboardResponse)
async def dashboard(
    query: AnalyticsQuery = Depends(analytics_query),
    resolver: NameResolver = Depends(get_name_resolver),
    db: AsyncSession = Depends(get_db),
):
    return await get_dashboard_data(db, query, resolver)


@router.get("/categories", response_model=list[str])
async def categories(category_map: CategoryMap = Depends(get_category_map)):
    return list_categories(category_map)


@router.get("/components", response_model=list[ComponentResponse])
async def components(
    category_map: CategoryMap = Depends(get_category_map),
    db: AsyncSession = Depends(get_db),
):
    return await list_components(db, category_map)


@router.get("/components/{name}/stats", response_model=ComponentStatsResponse)
async def component_stats(
    name: str,
    query: AnalyticsQuery = Depends(analytics_query),
    category_map: CategoryMap = Depends(get_category_map),
    resolver: NameResolver = Depends(get_name_resolver),
    db: AsyncSession = Depends(get_db),
):
    return await get_component_stats(db, name, query, category_map, resolver)
