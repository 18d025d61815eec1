# storefront/data/seed.py
import asyncio
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker

from storefront.data.database import SessionLocal, create_tables
from storefront.data.models import ProductModel, UserModel
from storefront.utils.logging import configure_logging, get_logger

logger = get_logger(__name__)

DEMO_PRODUCTS = [
    ("Apples", 50, Decimal("1.50"), "apples.png"),
    ("Bananas", 75, Decimal("0.80"), "bananas.png"),
    ("Milk", 40, Decimal("3.50"), "milk.png"),
    ("Bread", 30, Decimal("1.80"), "bread.png"),
    ("Tomatoes", 0, Decimal("1.50"), "tomatoes.png"),
]


async def seed(session_factory: async_sessionmaker = SessionLocal) -> bool:
    async with session_factory() as db:
        # not forcing: only seed if empty
        if (await db.execute(select(ProductModel.id).limit(1))).first():
            return False
        db.add_all(
            [ProductModel(product_name=n, quantity=q, price=p, image=i) for n, q, p, i in DEMO_PRODUCTS]
        )
        if not await db.get(UserModel, 1):
            db.add(UserModel(id=1, username="admin", email="admin@storefront.local", role="admin"))
        await db.commit()
    logger.info(f"Seeded {len(DEMO_PRODUCTS)} products")
    return True


async def main() -> None:
    configure_logging()
    await create_tables()
    await seed()


if __name__ == "__main__":
    asyncio.run(main())
