from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional, List

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class RequestStatus(str, Enum):
    SUBMITTED = "submitted"
    REVIEWING = "reviewing"
    IN_PROGRESS = "in-progress"
    REVISION = "revision"
    COMPLETED = "completed"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class RequestPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class RequestType(str, Enum):
    SERVICE = "service"
    COMBO = "combo"


class Tone(str, Enum):
    PROFESSIONAL = "professional"
    CASUAL = "casual"
    FUN = "fun"
    ELEGANT = "elegant"
    MODERN = "modern"
    TRADITIONAL = "traditional"


class CamelModel(BaseModel):
    # JSON surface is camelCase, Python attributes stay snake_case.
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ── Input ─────────────────────────────────────────────────────


class SelectionPathIn(CamelModel):
    selected_category: Optional[str] = None
    selected_service: Optional[str] = None
    selected_template: Optional[str] = None
    selected_combo: Optional[str] = None


class ClientInfoIn(CamelModel):
    full_name: Optional[str] = Field(default=None, max_length=100)
    email: Optional[str] = Field(default=None, max_length=255)
    phone: Optional[str] = Field(default=None, max_length=20)
    business_name: Optional[str] = Field(default=None, max_length=200)
    industry: Optional[str] = Field(default=None, max_length=100)


class ColorPreferences(CamelModel):
    preferred: List[str] = Field(default_factory=list, max_length=20)
    avoid: List[str] = Field(default_factory=list, max_length=20)


class CustomField(CamelModel):
    """One dynamic requirement entry; ``kind`` tags how ``value`` should be read."""

    name: str = Field(min_length=1, max_length=100)
    label: Optional[str] = Field(default=None, max_length=200)
    value: Optional[str] = Field(default=None, max_length=2000)
    kind: str = Field(default="text", max_length=32)


class Requirements(CamelModel):
    business_description: Optional[str] = Field(default=None, max_length=1000)
    colors: ColorPreferences = Field(default_factory=ColorPreferences)
    tone: Optional[Tone] = None
    additional_notes: Optional[str] = Field(default=None, max_length=2000)
    custom_fields: List[CustomField] = Field(default_factory=list, max_length=50)


class ServiceRequestCreate(CamelModel):
    selection_path: SelectionPathIn
    request_type: RequestType
    client_info: ClientInfoIn
    requirements: Requirements = Field(default_factory=Requirements)


class StatusUpdateRequest(CamelModel):
    status: str
    admin_note: Optional[str] = Field(default=None, max_length=2000)


class PriorityUpdateRequest(CamelModel):
    priority: str


class NoteCreateRequest(CamelModel):
    note: str = Field(default="", max_length=2000)
    added_by: Optional[str] = Field(default=None, max_length=200)


class AssignRequest(CamelModel):
    assigned_to: str = Field(default="", max_length=200)


class TimelineUpdateRequest(CamelModel):
    estimated_delivery: Optional[datetime] = None
    actual_delivery: Optional[datetime] = None


class PricingUpdateRequest(CamelModel):
    quoted_amount: Optional[Decimal] = Field(default=None, ge=0)
    final_amount: Optional[Decimal] = Field(default=None, ge=0)
    currency: Optional[str] = Field(default=None, min_length=3, max_length=10)


class DeliverableCreateRequest(CamelModel):
    file_name: str = Field(min_length=1, max_length=255)
    file_url: str = Field(min_length=1)
    storage_id: Optional[str] = Field(default=None, max_length=255)


class CustomEmailRequest(CamelModel):
    client_name: str = Field(min_length=1, max_length=100)
    client_email: str = Field(min_length=3, max_length=255)
    subject: str = Field(min_length=1, max_length=200)
    message: str = Field(min_length=1, max_length=10000)


# ── Output ────────────────────────────────────────────────────


class CatalogRefOut(CamelModel):
    id: str
    title: str
    slug: str


class SelectionPathOut(CamelModel):
    selected_category: Optional[CatalogRefOut] = None
    selected_service: Optional[CatalogRefOut] = None
    selected_template: Optional[CatalogRefOut] = None
    selected_combo: Optional[CatalogRefOut] = None


class ClientInfoOut(CamelModel):
    full_name: str
    email: str
    phone: str
    business_name: Optional[str] = None
    industry: Optional[str] = None


class TimelineOut(CamelModel):
    estimated_delivery: Optional[datetime] = None
    actual_delivery: Optional[datetime] = None


class PricingOut(CamelModel):
    quoted_amount: Optional[float] = None
    final_amount: Optional[float] = None
    currency: str


class AdminNoteOut(CamelModel):
    note: str
    added_by: str
    added_at: Optional[datetime] = None


class DeliverableOut(CamelModel):
    file_name: str
    file_url: str
    storage_id: Optional[str] = None
    delivered_at: Optional[datetime] = None


class ServiceRequestPublicOut(CamelModel):
    request_id: str
    request_type: RequestType
    selection_path: SelectionPathOut
    client_info: ClientInfoOut
    requirements: Requirements
    status: RequestStatus
    priority: RequestPriority
    timeline: TimelineOut
    assigned_to: Optional[str] = None
    pricing: PricingOut
    deliverables: List[DeliverableOut]
    status_changed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ServiceRequestOut(ServiceRequestPublicOut):
    id: str
    admin_notes: List[AdminNoteOut]


class PaginationOut(CamelModel):
    current_page: int
    total_pages: int
    total_items: int
    has_next_page: bool
    has_prev_page: bool
    limit: int


class ServiceRequestListResponse(CamelModel):
    items: List[ServiceRequestOut]
    pagination: PaginationOut


class DashboardStatsOut(CamelModel):
    submitted: int
    reviewing: int
    in_progress: int
    completed: int
    delivered: int
    cancelled: int
    urgent: int
    total: int


class NotificationResultOut(CamelModel):
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None


class AuditLogOut(CamelModel):
    id: str
    action: str
    old_value: Optional[dict] = None
    new_value: Optional[dict] = None
    actor_type: str
    actor_id: Optional[str] = None
    metadata: Optional[dict] = None
    timestamp: Optional[datetime] = None


class ServiceRequestTransitionOut(ServiceRequestOut):
    notification: Optional[NotificationResultOut] = None
