import uuid

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.sql import func

from servicedesk.models.base import INET_TYPE, JSON_TYPE, UUID_TYPE, Base, utcnow
from servicedesk.models.catalog import Category  # noqa: F401  foreign-key targets share the metadata

REQUEST_STATUSES = ("submitted", "reviewing", "in-progress", "revision", "completed", "delivered", "cancelled")
REQUEST_PRIORITIES = ("low", "medium", "high", "urgent")
REQUEST_TYPES = ("service", "combo")


def _in_list(column: str, values: tuple[str, ...]) -> str:
    quoted = ",".join(f"'{value}'" for value in values)
    return f"{column} IN ({quoted})"


class ServiceRequest(Base):
    __tablename__ = "service_requests"
    __table_args__ = (
        UniqueConstraint("request_id", name="uniq_service_requests_request_id"),
        CheckConstraint(_in_list("status", REQUEST_STATUSES), name="chk_service_request_status"),
        CheckConstraint(_in_list("priority", REQUEST_PRIORITIES), name="chk_service_request_priority"),
        CheckConstraint(_in_list("request_type", REQUEST_TYPES), name="chk_service_request_type"),
        Index("idx_service_requests_status_created", "status", "created_at"),
        Index("idx_service_requests_client_email", "client_email"),
        Index("idx_service_requests_priority", "priority"),
    )

    id = Column(UUID_TYPE, primary_key=True, default=uuid.uuid4)
    request_id = Column(String(40), nullable=False)
    request_type = Column(String(16), nullable=False)

    selected_category_id = Column(UUID_TYPE, ForeignKey("categories.id", ondelete="RESTRICT"), nullable=False)
    selected_service_id = Column(UUID_TYPE, ForeignKey("services.id", ondelete="SET NULL"))
    selected_template_id = Column(UUID_TYPE, ForeignKey("templates.id", ondelete="SET NULL"))
    selected_combo_id = Column(UUID_TYPE, ForeignKey("combos.id", ondelete="SET NULL"))

    client_full_name = Column(String(100), nullable=False)
    client_email = Column(String(255), nullable=False)
    client_phone = Column(String(20), nullable=False)
    client_business_name = Column(String(200))
    client_industry = Column(String(100))

    requirements = Column(JSON_TYPE, nullable=False, default=dict)

    status = Column(String(32), nullable=False, default="submitted", server_default=text("'submitted'"))
    priority = Column(String(16), nullable=False, default="medium", server_default=text("'medium'"))
    assigned_to = Column(String(200))

    estimated_delivery = Column(DateTime(timezone=True))
    actual_delivery = Column(DateTime(timezone=True))

    quoted_amount = Column(Numeric(12, 2))
    final_amount = Column(Numeric(12, 2))
    currency = Column(String(10), nullable=False, default="INR", server_default=text("'INR'"))

    status_changed_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
        nullable=False,
    )


class ServiceRequestNote(Base):
    __tablename__ = "service_request_notes"
    __table_args__ = (
        UniqueConstraint("service_request_id", "position", name="uniq_service_request_notes_position"),
    )

    id = Column(UUID_TYPE, primary_key=True, default=uuid.uuid4)
    service_request_id = Column(
        UUID_TYPE,
        ForeignKey("service_requests.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    position = Column(Integer, nullable=False)
    note = Column(Text, nullable=False)
    added_by = Column(String(200), nullable=False, default="Admin")
    added_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)


class ServiceRequestDeliverable(Base):
    __tablename__ = "service_request_deliverables"
    __table_args__ = (
        UniqueConstraint("service_request_id", "position", name="uniq_service_request_deliverables_position"),
    )

    id = Column(UUID_TYPE, primary_key=True, default=uuid.uuid4)
    service_request_id = Column(
        UUID_TYPE,
        ForeignKey("service_requests.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    position = Column(Integer, nullable=False)
    file_name = Column(String(255), nullable=False)
    file_url = Column(Text, nullable=False)
    storage_id = Column(String(255))
    delivered_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)


class AuditLog(Base):
    __tablename__ = "audit_logs"
    __table_args__ = (Index("idx_audit_logs_entity", "entity_type", "entity_id", "timestamp"),)

    id = Column(UUID_TYPE, primary_key=True, default=uuid.uuid4)
    entity_type = Column(String(50), nullable=False)
    entity_id = Column(UUID_TYPE, nullable=False)
    action = Column(String(64), nullable=False)
    old_value = Column(JSON_TYPE)
    new_value = Column(JSON_TYPE)
    actor_type = Column(String(50), nullable=False)
    actor_id = Column(String(64))
    ip_address = Column(INET_TYPE)
    user_agent = Column(Text)
    audit_meta = Column("metadata", JSON_TYPE, nullable=True)
    timestamp = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)


class NotificationOutbox(Base):
    __tablename__ = "notification_outbox"
    __table_args__ = (
        UniqueConstraint("dedupe_key", name="uniq_notification_outbox_dedupe_key"),
        Index("idx_notification_outbox_status_next", "status", "next_attempt_at"),
    )

    id = Column(UUID_TYPE, primary_key=True, default=uuid.uuid4)
    entity_type = Column(String(64), nullable=False)
    entity_id = Column(UUID_TYPE, nullable=False)

    channel = Column(String(32), nullable=False)
    template_key = Column(String(64), nullable=False)
    payload_json = Column(JSON_TYPE, nullable=False)
    dedupe_key = Column(String(128), nullable=False)

    status = Column(String(16), nullable=False, default="PENDING", server_default=text("'PENDING'"))
    attempt_count = Column(Integer, nullable=False, default=0, server_default=text("0"))
    next_attempt_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    sent_at = Column(DateTime(timezone=True))
    last_error = Column(Text)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
