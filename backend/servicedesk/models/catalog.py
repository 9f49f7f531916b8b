import uuid

from sqlalchemy import (
    Boolean,
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

from servicedesk.models.base import UUID_TYPE, Base, utcnow


class Category(Base):
    __tablename__ = "categories"
    __table_args__ = (
        UniqueConstraint("title", name="uniq_categories_title"),
        UniqueConstraint("slug", name="uniq_categories_slug"),
        Index("idx_categories_active_sort", "is_active", "sort_order"),
    )

    id = Column(UUID_TYPE, primary_key=True, default=uuid.uuid4)
    title = Column(String(100), nullable=False)
    slug = Column(String(120), nullable=False)
    description = Column(Text, nullable=False, default="")
    is_active = Column(Boolean, nullable=False, default=True, server_default=text("true"))
    sort_order = Column(Integer, nullable=False, default=0, server_default=text("0"))
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)


class Service(Base):
    __tablename__ = "services"
    __table_args__ = (
        UniqueConstraint("slug", name="uniq_services_slug"),
        Index("idx_services_category_active", "category_id", "is_active"),
    )

    id = Column(UUID_TYPE, primary_key=True, default=uuid.uuid4)
    category_id = Column(UUID_TYPE, ForeignKey("categories.id", ondelete="RESTRICT"), nullable=False)
    title = Column(String(150), nullable=False)
    slug = Column(String(170), nullable=False)
    description = Column(Text, nullable=False, default="")
    starting_price = Column(Numeric(12, 2), nullable=False, default=0)
    currency = Column(String(10), nullable=False, default="INR", server_default=text("'INR'"))
    delivery_value = Column(Integer)
    delivery_unit = Column(String(16))
    is_active = Column(Boolean, nullable=False, default=True, server_default=text("true"))
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)


class Template(Base):
    __tablename__ = "templates"
    __table_args__ = (
        UniqueConstraint("slug", name="uniq_templates_slug"),
        Index("idx_templates_service_active", "service_id", "is_active"),
    )

    id = Column(UUID_TYPE, primary_key=True, default=uuid.uuid4)
    category_id = Column(UUID_TYPE, ForeignKey("categories.id", ondelete="RESTRICT"), nullable=False)
    service_id = Column(UUID_TYPE, ForeignKey("services.id", ondelete="RESTRICT"), nullable=False)
    title = Column(String(100), nullable=False)
    slug = Column(String(120), nullable=False)
    description = Column(Text, nullable=False, default="")
    is_active = Column(Boolean, nullable=False, default=True, server_default=text("true"))
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)


class Combo(Base):
    __tablename__ = "combos"
    __table_args__ = (
        UniqueConstraint("slug", name="uniq_combos_slug"),
        Index("idx_combos_active", "is_active"),
    )

    id = Column(UUID_TYPE, primary_key=True, default=uuid.uuid4)
    title = Column(String(150), nullable=False)
    slug = Column(String(170), nullable=False)
    description = Column(Text, nullable=False, default="")
    original_price = Column(Numeric(12, 2))
    discounted_price = Column(Numeric(12, 2))
    currency = Column(String(10), nullable=False, default="INR", server_default=text("'INR'"))
    is_active = Column(Boolean, nullable=False, default=True, server_default=text("true"))
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
