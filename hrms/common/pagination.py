"""Generic list utilities for SQLAlchemy async queries."""


from typing import Optional

from fastapi import Query
from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession


# ── FastAPI dependency ──────────────────────────────────────────────

class PaginationParams:
    """Inject via ``Depends(PaginationParams)`` on any list endpoint."""

    def __init__(
        self,
        limit: int = Query(default=100, ge=1, le=500, description="Max items (max 500)"),
        offset: int = Query(default=0, ge=0, description="Items to skip"),
    ) -> None:
        self.limit = limit
        self.offset = offset


# ── SQLAlchemy helper ───────────────────────────────────────────────

async def fetch_page(
    session: AsyncSession,
    query: Select,
    params: Optional[PaginationParams] = None,
) -> tuple[list, int]:
    """
    Execute *query* and return ``(rows, total)``.

    ``total`` counts every row matching *query*; ``rows`` honours the
    LIMIT/OFFSET from *params* when given.
    """
    count_q = select(func.count()).select_from(query.order_by(None).subquery())
    total: int = (await session.execute(count_q)).scalar_one()

    if params is not None:
        query = query.offset(params.offset).limit(params.limit)
    rows = (await session.execute(query)).scalars().all()
    return list(rows), total
