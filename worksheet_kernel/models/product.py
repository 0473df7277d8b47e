"""
Module: worksheet_kernel.models.product
Responsibility: ORM persistence for catalogue products.  Reference data
    maintained elsewhere; the engine reads it to validate product
    assignments and snapshot prices.
Architecture position: Kernel > Models.  May import from db/base.py only.
"""

from decimal import Decimal

from sqlalchemy import Boolean, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from worksheet_kernel.db.base import TrackedBase


class Product(TrackedBase):
    """A billable product (crown, bridge unit, denture base...)."""

    __tablename__ = "products"

    __table_args__ = (UniqueConstraint("code", name="uq_product_code"),)

    code: Mapped[str] = mapped_column(String(50), nullable=False)

    name: Mapped[str] = mapped_column(String(200), nullable=False)

    current_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<Product {self.code}>"
