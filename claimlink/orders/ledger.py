"""
Order ledger: storage operations for orders and their product associations.

Every function takes the caller's AsyncSession so that a claim, or an admin
edit, runs its reads and writes inside one transaction.  Redemption state only
ever moves through ``increment_claim``, a single conditional UPDATE whose WHERE
clause restates the eligibility rules; its affected-row count tells the caller
whether it won against concurrent claims.
"""
from datetime import datetime
from typing import Iterable, List, Optional

import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncSession

from .model import Order, order_products
from ..catalog.model import Product

EXPIRED = "expired"
ALREADY_CLAIMED = "already_claimed"


def rejection_for(order: Order, now: datetime) -> Optional[str]:
    """In-memory eligibility check. Expiration wins over the use limit."""
    if order.expiration_date is not None and now > order.expiration_date:
        return EXPIRED
    if order.one_time_use and order.claim_count >= 1:
        return ALREADY_CLAIMED
    return None


def claimable(now: datetime):
    """The same rules as ``rejection_for`` expressed as a SQL predicate."""
    return sa.and_(
        sa.or_(Order.expiration_date.is_(None), Order.expiration_date >= now),
        sa.or_(Order.one_time_use.is_(False), Order.claim_count < 1),
    )


async def find_by_identifier(session: AsyncSession, order_identifier: str, refresh: bool = False) -> Optional[Order]:
    stmt = sa.select(Order).where(Order.order_id == order_identifier)
    if refresh:
        stmt = stmt.execution_options(populate_existing=True)
    res = await session.execute(stmt)
    return res.scalar_one_or_none()


async def get_order(session: AsyncSession, order_pk: int) -> Optional[Order]:
    res = await session.execute(
        sa.select(Order).where(Order.id == order_pk).execution_options(populate_existing=True)
    )
    return res.scalar_one_or_none()


async def list_products(session: AsyncSession, order_pk: int) -> List[Product]:
    stmt = (
        sa.select(Product)
        .join(order_products, order_products.c.product_id == Product.id)
        .where(order_products.c.order_id == order_pk)
        .order_by(order_products.c.id)
    )
    res = await session.execute(stmt)
    return list(res.scalars().all())


async def increment_claim(session: AsyncSession, order_pk: int, now: datetime) -> Optional[int]:
    """Atomically record one redemption if the order is still claimable.

    Returns the post-increment claim count, or None when the row no longer
    satisfies the eligibility predicate (or no longer exists).
    """
    stmt = (
        sa.update(Order)
        .where(Order.id == order_pk, claimable(now))
        .values(claim_count=Order.claim_count + 1, claimed_at=now)
        .execution_options(synchronize_session=False)
    )
    res = await session.execute(stmt)
    if (res.rowcount or 0) == 0:
        return None
    # Row is write-locked by our UPDATE until commit, so this is our own value
    count = await session.scalar(sa.select(Order.claim_count).where(Order.id == order_pk))
    return int(count)


async def missing_products(session: AsyncSession, product_ids: Iterable[int]) -> List[int]:
    wanted = list(product_ids)
    res = await session.execute(sa.select(Product.id).where(Product.id.in_(wanted)))
    found = set(res.scalars().all())
    return [pid for pid in wanted if pid not in found]


async def insert_order(
    session: AsyncSession,
    order_identifier: str,
    expiration_date: Optional[datetime],
    one_time_use: bool,
    created_by: Optional[str],
    now: datetime,
) -> Order:
    order = Order(
        order_id=order_identifier,
        expiration_date=expiration_date,
        one_time_use=one_time_use,
        claim_count=0,
        created_by=created_by,
        created_at=now,
        updated_at=now,
    )
    session.add(order)
    await session.flush()  # assign PK
    return order


async def update_order(
    session: AsyncSession,
    order_pk: int,
    now: datetime,
    set_expiration: bool = False,
    expiration_date: Optional[datetime] = None,
    one_time_use: Optional[bool] = None,
    reset_on_one_time_flip: bool = False,
) -> bool:
    """Apply an admin edit as one UPDATE statement.

    The claim-count reset is decided by the database against the row's current
    ``one_time_use`` value, so it cannot act on a stale read.
    """
    values = {"updated_at": now}
    if set_expiration:
        values["expiration_date"] = expiration_date
    if one_time_use is not None:
        values["one_time_use"] = one_time_use
        if one_time_use and reset_on_one_time_flip:
            values["claim_count"] = sa.case((Order.one_time_use.is_(False), 0), else_=Order.claim_count)
    res = await session.execute(
        sa.update(Order).where(Order.id == order_pk).values(**values).execution_options(synchronize_session=False)
    )
    return (res.rowcount or 0) > 0


async def replace_products(session: AsyncSession, order_pk: int, product_ids: Iterable[int], now: datetime) -> None:
    await session.execute(sa.delete(order_products).where(order_products.c.order_id == order_pk))
    rows = [{"order_id": order_pk, "product_id": pid, "created_at": now} for pid in product_ids]
    if rows:
        await session.execute(sa.insert(order_products), rows)


async def delete_order(session: AsyncSession, order_pk: int) -> bool:
    await session.execute(sa.delete(order_products).where(order_products.c.order_id == order_pk))
    res = await session.execute(sa.delete(Order).where(Order.id == order_pk))
    return (res.rowcount or 0) > 0


async def list_orders(session: AsyncSession) -> List[Order]:
    res = await session.execute(sa.select(Order).order_by(Order.created_at.desc(), Order.id.desc()))
    return list(res.scalars().all())


async def products_by_order(session: AsyncSession, order_pks: Iterable[int]) -> dict:
    pks = list(order_pks)
    grouped = {pk: [] for pk in pks}
    if not pks:
        return grouped
    stmt = (
        sa.select(order_products.c.order_id, Product)
        .join(Product, Product.id == order_products.c.product_id)
        .where(order_products.c.order_id.in_(pks))
        .order_by(order_products.c.id)
    )
    for order_pk, product in (await session.execute(stmt)).all():
        grouped[order_pk].append(product)
    return grouped


async def orders_referencing(session: AsyncSession, product_id: int) -> List[str]:
    stmt = (
        sa.select(Order.order_id)
        .join(order_products, order_products.c.order_id == Order.id)
        .where(order_products.c.product_id == product_id)
        .order_by(Order.id)
    )
    return list((await session.execute(stmt)).scalars().all())
