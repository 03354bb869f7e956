from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from utils.common_helpers import normalize_symbol

AlertType = Literal["above", "below"]


class WatchlistItemCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    symbol: str
    name: str
    price: float = Field(gt=0)
    target_price: Optional[float] = Field(default=None, alias="targetPrice")
    alert_type: AlertType = Field(default="above", alias="alertType")
    notes: Optional[str] = None

    @field_validator("symbol")
    @classmethod
    def validate_symbol(cls, value: str) -> str:
        return normalize_symbol(value)

    @field_validator("name")
    @classmethod
    def validate_name(cls, value: str) -> str:
        name = (value or "").strip()
        if not name or len(name) > 255:
            raise ValueError("name must be 1-255 characters")
        return name

    @field_validator("target_price")
    @classmethod
    def validate_target(cls, value: Optional[float]) -> Optional[float]:
        # 0 / missing both mean "no alert"
        if value is None or value == 0:
            return None
        if value < 0:
            raise ValueError("targetPrice must be positive")
        return value


class WatchlistItemUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    price: Optional[float] = Field(default=None, gt=0)
    target_price: Optional[float] = Field(default=None, alias="targetPrice")
    alert_type: Optional[AlertType] = Field(default=None, alias="alertType")
    notes: Optional[str] = None

    @field_validator("target_price")
    @classmethod
    def validate_target(cls, value: Optional[float]) -> Optional[float]:
        if value is not None and value < 0:
            raise ValueError("targetPrice must be positive")
        return value


class WatchlistItemOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    symbol: str
    name: str
    target_price: Optional[float] = None
    alert_type: str
    notes: Optional[str] = None
    created_at: datetime
    current_price: Optional[float] = None
    day_change: Optional[float] = None
    day_change_percent: Optional[float] = None
    alert_triggered: bool = False
