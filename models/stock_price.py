from datetime import datetime, timezone

from sqlalchemy import DateTime, Float, String
from sqlalchemy.orm import Mapped, mapped_column

from database import Base


class StockPrice(Base):
    """Latest known quote per symbol, shared by every user."""

    __tablename__ = "stock_prices"

    symbol: Mapped[str] = mapped_column(String(16), primary_key=True)
    current_price: Mapped[float] = mapped_column(Float)
    day_change: Mapped[float | None] = mapped_column(Float, nullable=True)
    day_change_percent: Mapped[float | None] = mapped_column(Float, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
