from __future__ import annotations

from datetime import date
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from utils.common_helpers import normalize_symbol


def _clean_text(value: str, field_name: str, max_len: int) -> str:
    text = (value or "").strip()
    if not text or len(text) > max_len:
        raise ValueError(f"{field_name} must be 1-{max_len} characters")
    return text


class PositionCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    symbol: str
    name: str
    shares: float = Field(gt=0)
    avg_price: float = Field(gt=0, alias="avgPrice")
    current_price: float = Field(gt=0, alias="currentPrice")
    sector: str
    purchase_date: Optional[date] = Field(default=None, alias="purchaseDate")

    @field_validator("symbol")
    @classmethod
    def validate_symbol(cls, value: str) -> str:
        return normalize_symbol(value)

    @field_validator("name")
    @classmethod
    def validate_name(cls, value: str) -> str:
        return _clean_text(value, "name", 255)

    @field_validator("sector")
    @classmethod
    def validate_sector(cls, value: str) -> str:
        return _clean_text(value, "sector", 64)


class PositionUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    shares: float = Field(gt=0)
    avg_price: float = Field(gt=0, alias="avgPrice")
    current_price: float = Field(gt=0, alias="currentPrice")
    sector: str

    @field_validator("sector")
    @classmethod
    def validate_sector(cls, value: str) -> str:
        return _clean_text(value, "sector", 64)


class PositionOut(BaseModel):
    id: int
    symbol: str
    name: str
    sector: str
    purchase_date: Optional[date] = None
    shares: float
    avg_price: float
    current_price: float
    day_change: float
    current_value: float
    cost_basis: float
    gain_loss: float
    gain_loss_percent: float
    day_gain_loss: float
    weight: Optional[float] = None
    price_status: str
