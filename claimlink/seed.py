import asyncio
import logging

import sqlalchemy as sa

from .app import bootstrap
from .catalog.model import Product
from .common.database import AsyncSessionLocal
from .common.errors import ConflictError
from .orders import service as orders

_logger = logging.getLogger(__name__)

SAMPLE_PRODUCTS = [
    {
        "name": "Photography Presets Pack",
        "description": "40 Lightroom presets for portrait and street work",
        "download_link": "https://downloads.example.com/presets-pack.zip",
        "image_url": "https://picsum.photos/seed/presets/400/300",
    },
    {
        "name": "Icon Set Pro",
        "description": "1,200 SVG icons in four weights",
        "download_link": "https://downloads.example.com/icon-set-pro.zip",
        "image_url": "https://picsum.photos/seed/icons/400/300",
    },
    {
        "name": "Budget Planner Template",
        "description": None,
        "download_link": "https://downloads.example.com/budget-planner.xlsx",
        "image_url": None,
    },
]

SAMPLE_ORDERS = [
    {"order_id": "DEMO-ONE-TIME", "products": [0, 1], "one_time_use": True, "expiration_days": 7},
    {"order_id": "DEMO-MULTI-USE", "products": [2], "one_time_use": False, "expiration_days": 30},
]


async def seed() -> None:
    await bootstrap()
    ids = []
    async with AsyncSessionLocal() as session:
        added = 0
        for p in SAMPLE_PRODUCTS:
            # avoid duplicates by name
            res = await session.execute(sa.select(Product).where(Product.name == p["name"]))
            prod = res.scalar_one_or_none()
            if prod is None:
                prod = Product(**p)
                session.add(prod)
                await session.flush()
                added += 1
            ids.append(prod.id)
        await session.commit()
    _logger.info("Seeded products | added=%s", added)

    for o in SAMPLE_ORDERS:
        try:
            await orders.create_order(
                o["order_id"],
                [ids[i] for i in o["products"]],
                expiration_days=o["expiration_days"],
                one_time_use=o["one_time_use"],
                created_by="seed",
            )
        except ConflictError:
            _logger.info("Sample order already present | order_id=%s", o["order_id"])


async def amain():
    logging.basicConfig(level=logging.INFO)
    await seed()
    print("Seed complete. Try: curl -X POST -H 'Content-Type: application/json' "
          "-d '{\"orderId\": \"DEMO-ONE-TIME\"}' http://localhost:8000/api/claim")


if __name__ == "__main__":
    asyncio.run(amain())
