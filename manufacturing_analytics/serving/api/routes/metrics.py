"""
Metric View Endpoints

Read-only access to the metric views for dashboards.
"""

from datetime import date
from typing import Any, Dict, List, Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from manufacturing_analytics.analytics.schemas import KpiRow
from manufacturing_analytics.analytics.views import VIEWS, fetch_kpis, fetch_rows
from manufacturing_analytics.database.connection import get_db_dependency

router = APIRouter()
logger = structlog.get_logger(__name__)


class ViewInfo(BaseModel):
    """A metric view and how it can be filtered"""
    name: str
    description: str
    date_column: Optional[str]
    default_order: List[str]
    columns: List[str]


class ViewRows(BaseModel):
    """A page of metric view rows"""
    view: str
    count: int
    limit: int
    offset: int
    rows: List[Dict[str, Any]]


@router.get("", response_model=List[ViewInfo])
async def list_views() -> List[ViewInfo]:
    """List the available metric views"""
    return [
        ViewInfo(
            name=spec.name,
            description=spec.description,
            date_column=spec.date_column,
            default_order=list(spec.default_order),
            columns=spec.columns(),
        )
        for spec in VIEWS.values()
    ]


@router.get("/kpis", response_model=KpiRow)
async def get_kpis(db: AsyncSession = Depends(get_db_dependency)) -> KpiRow:
    """Global KPI rollup"""
    return await fetch_kpis(db)


@router.get("/{view_name}", response_model=ViewRows)
async def get_view_rows(
    view_name: str,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    order_by: Optional[str] = Query(None, description="Column name, prefix with '-' for descending"),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db_dependency),
) -> ViewRows:
    """
    Rows of one metric view.

    Date filters apply to the view's date column and are inclusive.
    """
    spec = VIEWS.get(view_name)
    if spec is None:
        raise HTTPException(status_code=404, detail=f"Unknown view: {view_name}")

    try:
        stmt = spec.query(start_date=start_date, end_date=end_date, order_by=order_by, limit=limit, offset=offset)
    except ValueError as e:
        logger.info("Rejected view query", view=view_name, error=str(e))
        raise HTTPException(status_code=400, detail=str(e)) from e

    rows = await fetch_rows(db, spec, stmt)
    return ViewRows(
        view=view_name,
        count=len(rows),
        limit=limit,
        offset=offset,
        rows=[row.model_dump(mode="json") for row in rows],
    )
