"""
Inventory Module Service (``fiscal_modules.inventory.service``).

SQLAlchemy implementations of the ``Catalog`` and ``Inventory`` protocols
from ``fiscal_ingestion.collaborators``.  Both only flush; the caller owns
the transaction.

Failure Modes
-------------
- ``ValueError`` when a stock change targets a product that does not exist.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.orm import Session

from fiscal_ingestion.collaborators import CatalogProduct, StockDirection
from fiscal_kernel.domain.clock import Clock, SystemClock
from fiscal_kernel.logging_config import get_logger
from fiscal_modules.inventory.orm import InventoryTransactionModel, ProductModel

logger = get_logger("modules.inventory")


class SqlCatalog:
    """Product catalog backed by the ``products`` table."""

    def __init__(self, session: Session):
        self._session = session

    def find_by_sku_or_barcode(self, code: str) -> CatalogProduct | None:
        if not code:
            return None
        stmt = (
            select(ProductModel)
            .where(
                ProductModel.active.is_(True),
                or_(ProductModel.sku == code, ProductModel.barcode == code),
            )
            .order_by(ProductModel.created_at, ProductModel.id)
            .limit(1)
        )
        product = self._session.scalars(stmt).first()
        return product.to_dto() if product else None

    def search_by_text(self, text: str, limit: int = 10) -> list[CatalogProduct]:
        """Products whose name contains every search word (case-insensitive)."""
        words = [w.lower() for w in text.split()]
        if not words:
            return []
        name = func.lower(ProductModel.name)
        stmt = (
            select(ProductModel)
            .where(
                ProductModel.active.is_(True),
                and_(*(name.contains(w, autoescape=True) for w in words)),
            )
            .order_by(ProductModel.name, ProductModel.id)
            .limit(limit)
        )
        return [p.to_dto() for p in self._session.scalars(stmt).all()]

    def get_product(self, product_id: UUID) -> CatalogProduct | None:
        product = self._session.get(ProductModel, product_id)
        return product.to_dto() if product else None

    def create_product(
        self,
        sku: str,
        name: str,
        unit: str | None,
        actor_id: UUID,
    ) -> CatalogProduct:
        product = ProductModel(
            sku=sku or None,
            name=name,
            unit=unit or None,
            stock_quantity=Decimal("0"),
            active=True,
            created_by_id=actor_id,
        )
        self._session.add(product)
        self._session.flush()
        logger.info(
            "product_created",
            extra={"product_id": str(product.id), "sku": sku, "product_name": name},
        )
        return product.to_dto()


class SqlInventory:
    """Stock levels and movement log backed by SQL."""

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()

    def _adjust(self, product_id: UUID, delta: Decimal) -> None:
        stmt = (
            update(ProductModel)
            .where(ProductModel.id == product_id)
            .values(stock_quantity=ProductModel.stock_quantity + delta)
            .execution_options(synchronize_session=False)
        )
        result = self._session.execute(stmt)
        if result.rowcount != 1:
            raise ValueError(f"Product not found: {product_id}")
        loaded = self._session.identity_map.get(
            self._session.identity_key(ProductModel, product_id)
        )
        if loaded is not None:
            self._session.expire(loaded, ["stock_quantity"])

    def increase_stock(self, product_id: UUID, quantity: Decimal) -> None:
        self._adjust(product_id, quantity)

    def decrease_stock(self, product_id: UUID, quantity: Decimal) -> None:
        self._adjust(product_id, -quantity)

    def record_transaction(
        self,
        product_id: UUID,
        direction: StockDirection,
        quantity: Decimal,
        reference_id: UUID,
        reference_type: str,
        notes: str,
        actor_id: UUID,
    ) -> UUID:
        txn = InventoryTransactionModel(
            product_id=product_id,
            direction=StockDirection(direction).value,
            quantity=quantity,
            transaction_date=self._clock.now(),
            reference_id=reference_id,
            reference_type=reference_type,
            notes=notes,
            created_by_id=actor_id,
        )
        self._session.add(txn)
        self._session.flush()
        return txn.id

    def stock_of(self, product_id: UUID) -> Decimal:
        stmt = select(ProductModel.stock_quantity).where(ProductModel.id == product_id)
        value = self._session.scalars(stmt).first()
        if value is None:
            raise ValueError(f"Product not found: {product_id}")
        return value
