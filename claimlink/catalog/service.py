import logging
from typing import Any, Dict, List

import sqlalchemy as sa

from .model import Product
from ..common.clock import utcnow
from ..common.database import AsyncSessionLocal
from ..common.errors import ConflictError, NotFoundError
from ..orders import ledger
from ..orders.model import order_products

_logger = logging.getLogger(__name__)


async def list_products() -> List[Dict[str, Any]]:
    async with AsyncSessionLocal() as session:
        res = await session.execute(sa.select(Product).order_by(Product.created_at.desc(), Product.id.desc()))
        return [p.to_dict() for p in res.scalars().all()]


async def get_product(product_id: int) -> Dict[str, Any]:
    async with AsyncSessionLocal() as session:
        prod = await session.get(Product, product_id)
        if not prod:
            raise NotFoundError("Product")
        return prod.to_dict()


async def create_product(name: str, download_link: str, description: str = None, image_url: str = None) -> Dict[str, Any]:
    async with AsyncSessionLocal() as session:
        prod = Product(
            name=name,
            description=description,
            download_link=download_link,
            image_url=image_url,
            created_at=utcnow(),
        )
        session.add(prod)
        await session.commit()
        _logger.info("Product created | product_id=%s name=%s", prod.id, prod.name)
        return prod.to_dict()


async def update_product(product_id: int, name: str, download_link: str, description: str = None, image_url: str = None) -> Dict[str, Any]:
    async with AsyncSessionLocal() as session:
        async with session.begin():
            prod = await session.get(Product, product_id)
            if not prod:
                raise NotFoundError("Product")
            prod.name = name
            prod.description = description
            prod.download_link = download_link
            prod.image_url = image_url
        _logger.info("Product updated | product_id=%s", product_id)
        return prod.to_dict()


async def delete_product(product_id: int, force: bool = False) -> List[str]:
    """Delete a product.

    Refuses while orders still bundle it unless ``force`` is set; a forced
    delete detaches it from those orders and returns their identifiers.
    """
    async with AsyncSessionLocal() as session:
        async with session.begin():
            prod = await session.get(Product, product_id)
            if not prod:
                raise NotFoundError("Product")
            referencing = await ledger.orders_referencing(session, product_id)
            if referencing and not force:
                raise ConflictError(
                    "Product is still attached to orders",
                    details={"order_ids": referencing},
                )
            await session.execute(sa.delete(order_products).where(order_products.c.product_id == product_id))
            await session.execute(sa.delete(Product).where(Product.id == product_id))
    if referencing:
        _logger.warning("Product force-deleted while referenced | product_id=%s orders=%s", product_id, referencing)
    else:
        _logger.info("Product deleted | product_id=%s", product_id)
    return referencing
