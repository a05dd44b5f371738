# ABOUTME: Read-side aggregation over recorded API usage
# ABOUTME: Totals, mean latency, status histogram, and top groups per time window, cached briefly

from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from apiplatform.models.database import APIKey, APIUsage
from apiplatform.services.cache import AnalyticsCache
from apiplatform.utils.clock import utcnow

TIME_RANGES = {
    "hour": timedelta(hours=1),
    "day": timedelta(days=1),
    "week": timedelta(days=7),
    "month": timedelta(days=30),
}

GROUP_COLUMNS = {
    "endpoint": APIUsage.endpoint,
    "status": APIUsage.status_code,
    "region": APIUsage.region,
}


def analytics_cache_key(window: str, group_by: str, api_key_id: Optional[str] = None,
                        owner_id: Optional[str] = None) -> str:
    scope = api_key_id or owner_id or "all"
    return f"api-analytics:{scope}:{window}:{group_by}"


def query_usage_analytics(
    db: Session,
    *,
    window: str,
    group_by: str = "endpoint",
    api_key_id: Optional[str] = None,
    owner_id: Optional[str] = None,
    top_n: int = 10,
    cache: Optional[AnalyticsCache] = None,
    now: Optional[datetime] = None,
) -> dict:
    """
    Aggregate usage for one key, every key of an owner, or everything.

    `api_key_id` wins over `owner_id` when both are given. Results are
    memoised per (scope, window, group_by) for the cache's TTL.

    Raises:
        ValueError: unknown window or group_by
    """
    if window not in TIME_RANGES:
        raise ValueError(f"Invalid window: {window}. Valid windows: {', '.join(TIME_RANGES)}")
    if group_by not in GROUP_COLUMNS:
        raise ValueError(f"Invalid group_by: {group_by}. Valid values: {', '.join(GROUP_COLUMNS)}")

    cache_key = analytics_cache_key(window, group_by, api_key_id, owner_id)
    if cache is not None:
        cached = cache.get(cache_key)
        if cached is not None:
            return cached

    now = now or utcnow()
    filters = [APIUsage.timestamp >= now - TIME_RANGES[window]]
    if api_key_id:
        filters.append(APIUsage.api_key_id == api_key_id)
    elif owner_id:
        owner_keys = db.query(APIKey.id).filter(APIKey.owner_id == owner_id)
        filters.append(APIUsage.api_key_id.in_(owner_keys.scalar_subquery()))

    total_requests, avg_response_time = db.query(
        func.count(APIUsage.id), func.avg(APIUsage.response_time_ms)
    ).filter(*filters).one()

    status_rows = (
        db.query(APIUsage.status_code, func.count(APIUsage.id))
        .filter(*filters)
        .group_by(APIUsage.status_code)
        .order_by(APIUsage.status_code)
        .all()
    )

    group_column = GROUP_COLUMNS[group_by]
    count = func.count(APIUsage.id).label("count")
    group_rows = (
        db.query(group_column, count)
        .filter(*filters)
        .group_by(group_column)
        .order_by(count.desc(), group_column)
        .limit(top_n)
        .all()
    )

    result = {
        "total_requests": total_requests,
        "avg_response_time": float(avg_response_time or 0),
        "status_codes": [{"status": status, "count": n} for status, n in status_rows],
        "top_groups": [{group_by: value, "count": n} for value, n in group_rows],
        "time_range": window,
        "group_by": group_by,
        "generated_at": now.isoformat(),
    }

    if cache is not None:
        cache.set(cache_key, result)

    return result
