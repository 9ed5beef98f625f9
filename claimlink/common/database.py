import time
from typing import Any, Dict

import sqlalchemy as sa
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from .config import settings
from .db import Base
# Imported for their side effect of registering tables on Base.metadata
from ..admins.model import Admin, AdminSession  # noqa: F401
from ..catalog.model import Product
from ..orders.model import Order, order_products  # noqa: F401
from ..policy.model import Setting  # noqa: F401


def _engine_kwargs(url: str) -> Dict[str, Any]:
    kwargs: Dict[str, Any] = {"future": True, "echo": False}
    if url.startswith("sqlite"):
        # Concurrent writers wait on the file lock instead of failing fast
        kwargs["connect_args"] = {"timeout": settings.DB_BUSY_TIMEOUT}
    else:
        kwargs["pool_pre_ping"] = True
    return kwargs


# Async SQLAlchemy engine and session factory
engine = create_async_engine(settings.DB_URL, **_engine_kwargs(settings.DB_URL))
AsyncSessionLocal = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


if engine.dialect.name == "sqlite":
    @event.listens_for(engine.sync_engine, "connect")
    def _sqlite_pragmas(dbapi_conn, _record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


async def init_db() -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def drop_db() -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


async def check_database() -> Dict[str, Any]:
    """Round-trip a trivial query; used by the health endpoint."""
    start = time.perf_counter()
    async with AsyncSessionLocal() as session:
        await session.execute(sa.text("SELECT 1"))
    return {"status": "healthy", "response_time_ms": round((time.perf_counter() - start) * 1000, 2)}


async def count_rows() -> Dict[str, int]:
    async with AsyncSessionLocal() as session:
        orders = await session.scalar(sa.select(sa.func.count(Order.id)))
        products = await session.scalar(sa.select(sa.func.count(Product.id)))
        claimed = await session.scalar(sa.select(sa.func.count(Order.id)).where(Order.claim_count > 0))
    return {"orders": int(orders or 0), "products": int(products or 0), "claimed_orders": int(claimed or 0)}
