from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from database import Base


class StockSymbol(Base):
    __tablename__ = "stock_symbols"

    symbol: Mapped[str] = mapped_column(String(16), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), index=True)
