from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional, List

from pydantic import Field

from servicedesk.schemas.service_request import CamelModel


class CatalogKind(str, Enum):
    CATEGORY = "category"
    SERVICE = "service"
    TEMPLATE = "template"
    COMBO = "combo"


class DeliveryUnit(str, Enum):
    DAYS = "days"
    WEEKS = "weeks"
    MONTHS = "months"


class CatalogItemCreate(CamelModel):
    title: str = Field(min_length=1, max_length=150)
    description: str = Field(default="", max_length=1000)
    category_id: Optional[str] = None
    service_id: Optional[str] = None
    starting_price: Optional[Decimal] = Field(default=None, ge=0)
    original_price: Optional[Decimal] = Field(default=None, ge=0)
    discounted_price: Optional[Decimal] = Field(default=None, ge=0)
    currency: Optional[str] = Field(default=None, min_length=3, max_length=10)
    delivery_value: Optional[int] = Field(default=None, ge=1)
    delivery_unit: Optional[DeliveryUnit] = None
    sort_order: int = 0


class CatalogItemOut(CamelModel):
    id: str
    kind: CatalogKind
    title: str
    slug: str
    description: str
    is_active: bool
    category_id: Optional[str] = None
    service_id: Optional[str] = None
    price: Optional[float] = None
    currency: Optional[str] = None
    delivery_time: Optional[str] = None
    created_at: Optional[datetime] = None


class CatalogListResponse(CamelModel):
    items: List[CatalogItemOut]
