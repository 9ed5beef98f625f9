import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError

from . import ledger
from ..common.clock import Clock, utcnow
from ..common.config import settings
from ..common.database import AsyncSessionLocal
from ..common.errors import ConflictError, NotFoundError
from ..policy.service import get_policy_defaults

_logger = logging.getLogger(__name__)


async def list_orders() -> List[Dict[str, Any]]:
    async with AsyncSessionLocal() as session:
        orders = await ledger.list_orders(session)
        products = await ledger.products_by_order(session, [o.id for o in orders])
        return [o.to_dict(products[o.id]) for o in orders]


async def get_order(order_pk: int) -> Dict[str, Any]:
    async with AsyncSessionLocal() as session:
        order = await ledger.get_order(session, order_pk)
        if order is None:
            raise NotFoundError("Order")
        return order.to_dict(await ledger.list_products(session, order.id))


async def create_order(
    order_id: str,
    product_ids: List[int],
    expiration_days: Optional[int] = None,
    expiration_date: Optional[datetime] = None,
    one_time_use: Optional[bool] = None,
    created_by: Optional[str] = None,
    clock: Clock = utcnow,
) -> Dict[str, Any]:
    """Create an order, snapshotting the current policy defaults into it."""
    now = clock()
    defaults = await get_policy_defaults()

    if expiration_date is None:
        days = expiration_days if expiration_days is not None else defaults.default_expiration_days
        expiration_date = now + timedelta(days=days) if days else None
    if one_time_use is None:
        one_time_use = defaults.one_time_use_enabled

    async with AsyncSessionLocal() as session:
        try:
            async with session.begin():
                if await ledger.find_by_identifier(session, order_id) is not None:
                    raise ConflictError("Order ID already exists")
                missing = await ledger.missing_products(session, product_ids)
                if missing:
                    raise NotFoundError("Product", details={"product_ids": missing})
                order = await ledger.insert_order(session, order_id, expiration_date, one_time_use, created_by, now)
                await ledger.replace_products(session, order.id, product_ids, now)
        except IntegrityError:
            # Lost a race with another create for the same identifier
            raise ConflictError("Order ID already exists")
        products = await ledger.list_products(session, order.id)

    _logger.info(
        "Order created | order_id=%s products=%s one_time_use=%s expires=%s by=%s",
        order_id, product_ids, one_time_use, expiration_date, created_by,
    )
    return order.to_dict(products)


async def update_order(
    order_pk: int,
    product_ids: List[int],
    expiration_days: Optional[int] = None,
    expiration_date: Optional[datetime] = None,
    one_time_use: Optional[bool] = None,
    reset_claim_count: Optional[bool] = None,
    clock: Clock = utcnow,
) -> Dict[str, Any]:
    """Edit an order's policy and replace its product set in one transaction.

    Omitted expiration fields leave the deadline as it is; ``expiration_days``
    restarts the window from now.  Switching a multi-use order to one-time-use
    zeroes its claim count when ``reset_claim_count`` (or, if that is None, the
    RESET_CLAIMS_ON_ONE_TIME_USE setting) asks for it.
    """
    now = clock()
    set_expiration = expiration_days is not None or expiration_date is not None
    if expiration_days is not None:
        expiration_date = now + timedelta(days=expiration_days)
    if reset_claim_count is None:
        reset_claim_count = settings.RESET_CLAIMS_ON_ONE_TIME_USE

    async with AsyncSessionLocal() as session:
        async with session.begin():
            missing = await ledger.missing_products(session, product_ids)
            if missing:
                raise NotFoundError("Product", details={"product_ids": missing})
            updated = await ledger.update_order(
                session,
                order_pk,
                now,
                set_expiration=set_expiration,
                expiration_date=expiration_date,
                one_time_use=one_time_use,
                reset_on_one_time_flip=reset_claim_count,
            )
            if not updated:
                raise NotFoundError("Order")
            await ledger.replace_products(session, order_pk, product_ids, now)
        order = await ledger.get_order(session, order_pk)
        products = await ledger.list_products(session, order_pk)

    _logger.info(
        "Order updated | id=%s order_id=%s products=%s one_time_use=%s claim_count=%s",
        order_pk, order.order_id, product_ids, order.one_time_use, order.claim_count,
    )
    return order.to_dict(products)


async def delete_order(order_pk: int) -> None:
    async with AsyncSessionLocal() as session:
        async with session.begin():
            deleted = await ledger.delete_order(session, order_pk)
            if not deleted:
                raise NotFoundError("Order")
    _logger.info("Order deleted | id=%s", order_pk)
