import logging
import re
import uuid

from sqlalchemy import desc, func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core import models
from app.core.errors import AppError, ValidationError
from app.core.schemas import StoreContext

logger = logging.getLogger(__name__)

UUID_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE
)


def is_valid_uuid(value) -> bool:
    return isinstance(value, str) and bool(UUID_RE.match(value))


class SchemaContextService:
    """
    Reads per-store metadata (row counts, order date range, currency) for the prompt.
    Every query is filtered by store_id.
    """

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def get_store_context(self, store_id: str) -> StoreContext:
        if not is_valid_uuid(store_id):
            raise ValidationError("Invalid storeId: must be a valid UUID")

        store_uuid = uuid.UUID(store_id)

        try:
            async with self.session_factory() as session:
                order_stats = (
                    await session.execute(
                        select(
                            func.count(models.Order.id).label("total_orders"),
                            func.min(models.Order.date_created).label("earliest"),
                            func.max(models.Order.date_created).label("latest"),
                        ).where(models.Order.store_id == store_uuid)
                    )
                ).one()

                total_products = await self._count(session, models.Product, store_uuid)
                total_customers = await self._count(session, models.Customer, store_uuid)
                total_categories = await self._count(session, models.Category, store_uuid)

                currency = (
                    await session.execute(
                        select(models.Order.currency)
                        .where(models.Order.store_id == store_uuid)
                        .order_by(desc(models.Order.date_created))
                        .limit(1)
                    )
                ).scalar()
        except Exception as e:
            raise AppError(
                f"Failed to fetch schema context for store {store_id}"
            ) from e

        context = StoreContext(
            store_id=store_id,
            currency=currency or "USD",
            total_orders=order_stats.total_orders or 0,
            total_products=total_products,
            total_customers=total_customers,
            total_categories=total_categories,
            earliest_order_date=order_stats.earliest,
            latest_order_date=order_stats.latest,
        )

        logger.info(
            f"Schema context fetched for store {store_id}: "
            f"{context.total_orders} orders, {context.total_products} products"
        )
        return context

    @staticmethod
    async def _count(session: AsyncSession, model, store_uuid: uuid.UUID) -> int:
        result = await session.execute(
            select(func.count(model.id)).where(model.store_id == store_uuid)
        )
        return result.scalar() or 0
