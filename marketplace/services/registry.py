from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import distinct, func, select
from sqlalchemy.sql.sqltypes import JSON, Boolean, Date, DateTime, Float, Integer, Numeric

from marketplace.core.config import settings
from marketplace.core.errors import ConfigurationError
from marketplace.models.analytics_event import EVENT_TYPES, AnalyticsEvent
from marketplace.models.category import Category
from marketplace.models.order import ORDER_STATUSES, PAYMENT_STATUSES, Order
from marketplace.models.product import Product
from marketplace.models.setting import SETTING_CATEGORIES, Setting
from marketplace.models.user import User
from marketplace.schemas.listing import SortItem

# Simple-mode constraint kinds.
CONTAINS = "contains"
IN_LIST = "in"
EQUALS = "eq"
BOOL_SET = "bool_in"
RANGE = "range"
ANY_TAG = "any_tag"
FROM = "gte"
TO = "lte"

ADMIN_SCOPE = "admin"
CATALOG_SCOPE = "catalog"


def _column_kind(column: Any) -> str:
    col_type = column.property.columns[0].type
    if isinstance(col_type, Boolean):
        return "boolean"
    if isinstance(col_type, (Integer, Numeric, Float)):
        return "number"
    if isinstance(col_type, DateTime):
        return "datetime"
    if isinstance(col_type, Date):
        return "date"
    if isinstance(col_type, JSON):
        return "json"
    try:
        python_type = col_type.python_type
    except NotImplementedError:
        python_type = None
    if python_type is uuid.UUID:
        return "uuid"
    return "text"


@dataclass(frozen=True)
class FieldSpec:
    name: str
    column: Any
    type: str
    label: str
    sortable: bool = True
    options: tuple[str, ...] = ()

    @property
    def attr(self) -> str:
        return self.column.key


@dataclass(frozen=True)
class SimpleFilter:
    param: str
    field: str
    kind: str


@dataclass(frozen=True)
class RelatedField:
    """Read-only column taken from a joined table or a correlated count."""

    name: str
    expression: Any
    type: str
    label: str


@dataclass(frozen=True)
class EntityRegistry:
    kind: str
    label: str
    model: type
    fields: dict[str, FieldSpec]
    simple_filters: tuple[SimpleFilter, ...]
    default_sort: tuple[SortItem, ...] = (SortItem(field="createdAt", direction="desc"),)
    sort_options: tuple[str, ...] = field(default=())
    related: tuple[RelatedField, ...] = ()
    joins: tuple[tuple[Any, Any], ...] = ()
    facet_fields: tuple[str, ...] = ()
    # Tags whose writes change the related columns of this kind.
    depends_on: tuple[str, ...] = ()
    scopes: dict[str, Any] = field(default_factory=dict)

    @property
    def tag(self) -> str:
        return self.kind

    @property
    def ttl_seconds(self) -> int:
        return settings.list_cache_ttl(self.kind)

    def resolve(self, name: str | None) -> FieldSpec | None:
        if not name:
            return None
        return self.fields.get(str(name).strip())

    def scope_where(self, scope: str) -> Any:
        """Fixed restriction of a named listing scope; ``admin`` sees every row."""
        if scope == ADMIN_SCOPE:
            return None
        if scope not in self.scopes:
            raise ConfigurationError(f'Unknown scope "{scope}" for {self.kind}')
        return self.scopes[scope]


def _field(name: str, column: Any, label: str, *, kind: str | None = None, sortable: bool = True, options=()) -> FieldSpec:
    return FieldSpec(
        name=name,
        column=column,
        type=kind or _column_kind(column),
        label=label,
        sortable=sortable,
        options=tuple(options),
    )


def _fields(*specs: FieldSpec) -> dict[str, FieldSpec]:
    return {spec.name: spec for spec in specs}


def _owner_fields() -> tuple[RelatedField, ...]:
    return (
        RelatedField("userName", User.name, "text", "User name"),
        RelatedField("userEmail", User.email, "text", "User email"),
    )


def _build_registries() -> dict[str, EntityRegistry]:
    products = EntityRegistry(
        kind="products",
        label="Products",
        model=Product,
        fields=_fields(
            _field("id", Product.id, "ID", sortable=False),
            _field("title", Product.title, "Title"),
            _field("description", Product.description, "Description", sortable=False),
            _field("price", Product.price, "Price"),
            _field("categoryId", Product.category_id, "Category ID", sortable=False),
            _field("category", Product.category, "Category", kind="enum"),
            _field("tags", Product.tags, "Tags", sortable=False),
            _field("imageUrl", Product.image_url, "Image", sortable=False),
            _field("fileUrl", Product.file_url, "File", sortable=False),
            _field("fileName", Product.file_name, "File name"),
            _field("fileSize", Product.file_size, "File size"),
            _field("downloadCount", Product.download_count, "Downloads"),
            _field("isActive", Product.is_active, "Active"),
            _field("createdBy", Product.created_by, "Created by", sortable=False),
            _field("createdAt", Product.created_at, "Created"),
            _field("updatedAt", Product.updated_at, "Updated"),
        ),
        simple_filters=(
            SimpleFilter("title", "title", CONTAINS),
            SimpleFilter("category", "category", IN_LIST),
            SimpleFilter("price", "price", RANGE),
            SimpleFilter("tags", "tags", ANY_TAG),
            SimpleFilter("isActive", "isActive", BOOL_SET),
        ),
        sort_options=(
            "createdAt.desc",
            "createdAt.asc",
            "title.asc",
            "title.desc",
            "price.asc",
            "price.desc",
            "downloadCount.desc",
            "downloadCount.asc",
        ),
        facet_fields=("isActive", "category"),
        scopes={CATALOG_SCOPE: Product.is_active.is_(True)},
    )

    product_count = (
        select(func.count(distinct(Product.id)))
        .where(Product.category_id == Category.id)
        .correlate(Category)
        .scalar_subquery()
    )

    categories = EntityRegistry(
        kind="categories",
        label="Categories",
        model=Category,
        fields=_fields(
            _field("id", Category.id, "ID", sortable=False),
            _field("name", Category.name, "Name"),
            _field("slug", Category.slug, "Slug"),
            _field("description", Category.description, "Description", sortable=False),
            _field("imageUrl", Category.image_url, "Image", sortable=False),
            _field("isActive", Category.is_active, "Active"),
            _field("sortOrder", Category.sort_order, "Sort order"),
            _field("createdAt", Category.created_at, "Created"),
            _field("updatedAt", Category.updated_at, "Updated"),
        ),
        simple_filters=(
            SimpleFilter("name", "name", CONTAINS),
            SimpleFilter("description", "description", CONTAINS),
            SimpleFilter("isActive", "isActive", BOOL_SET),
        ),
        sort_options=("createdAt.desc", "name.asc", "name.desc", "sortOrder.asc"),
        related=(RelatedField("productCount", product_count, "number", "Products"),),
        depends_on=("products",),
        facet_fields=("isActive",),
    )

    orders = EntityRegistry(
        kind="orders",
        label="Orders",
        model=Order,
        fields=_fields(
            _field("id", Order.id, "ID", sortable=False),
            _field("orderNumber", Order.order_number, "Order number"),
            _field("userId", Order.user_id, "Customer", sortable=False),
            _field("status", Order.status, "Status", kind="enum", options=ORDER_STATUSES),
            _field("totalAmount", Order.total_amount, "Total"),
            _field("currency", Order.currency, "Currency"),
            _field("paymentMethod", Order.payment_method, "Payment method", kind="enum"),
            _field("paymentStatus", Order.payment_status, "Payment status", kind="enum", options=PAYMENT_STATUSES),
            _field("notes", Order.notes, "Notes", sortable=False),
            _field("createdAt", Order.created_at, "Created"),
            _field("updatedAt", Order.updated_at, "Updated"),
        ),
        simple_filters=(
            SimpleFilter("orderNumber", "orderNumber", CONTAINS),
            SimpleFilter("status", "status", IN_LIST),
            SimpleFilter("paymentStatus", "paymentStatus", IN_LIST),
            SimpleFilter("userId", "userId", EQUALS),
        ),
        sort_options=("createdAt.desc", "createdAt.asc", "totalAmount.desc", "totalAmount.asc"),
        related=_owner_fields(),
        joins=((User, Order.user_id == User.id),),
        depends_on=("users",),
        facet_fields=("status", "paymentStatus"),
    )

    users = EntityRegistry(
        kind="users",
        label="Users",
        model=User,
        fields=_fields(
            _field("id", User.id, "ID", sortable=False),
            _field("name", User.name, "Name"),
            _field("email", User.email, "Email"),
            _field("role", User.role, "Role", kind="enum", options=("user", "admin")),
            _field("avatar", User.avatar, "Avatar", sortable=False),
            _field("createdAt", User.created_at, "Created"),
            _field("updatedAt", User.updated_at, "Updated"),
        ),
        simple_filters=(
            SimpleFilter("name", "name", CONTAINS),
            SimpleFilter("email", "email", CONTAINS),
            SimpleFilter("role", "role", IN_LIST),
        ),
        sort_options=("createdAt.desc", "name.asc", "email.asc"),
        facet_fields=("role",),
    )

    settings_registry = EntityRegistry(
        kind="settings",
        label="Settings",
        model=Setting,
        fields=_fields(
            _field("id", Setting.id, "ID", sortable=False),
            _field("key", Setting.key, "Key"),
            _field("value", Setting.value, "Value", sortable=False),
            _field("description", Setting.description, "Description", sortable=False),
            _field("category", Setting.category, "Category", kind="enum", options=SETTING_CATEGORIES),
            _field("isPublic", Setting.is_public, "Public"),
            _field("updatedBy", Setting.updated_by, "Updated by", sortable=False),
            _field("createdAt", Setting.created_at, "Created"),
            _field("updatedAt", Setting.updated_at, "Updated"),
        ),
        simple_filters=(
            SimpleFilter("key", "key", CONTAINS),
            SimpleFilter("category", "category", IN_LIST),
            SimpleFilter("isPublic", "isPublic", BOOL_SET),
        ),
        sort_options=("createdAt.desc", "key.asc", "category.asc"),
        facet_fields=("category", "isPublic"),
    )

    analytics = EntityRegistry(
        kind="analytics_events",
        label="Analytics events",
        model=AnalyticsEvent,
        fields=_fields(
            _field("id", AnalyticsEvent.id, "ID", sortable=False),
            _field("eventType", AnalyticsEvent.event_type, "Event", kind="enum", options=EVENT_TYPES),
            _field("userId", AnalyticsEvent.user_id, "User", sortable=False),
            _field("sessionId", AnalyticsEvent.session_id, "Session", sortable=False),
            _field("productId", AnalyticsEvent.product_id, "Product", sortable=False),
            _field("orderId", AnalyticsEvent.order_id, "Order", sortable=False),
            _field("metadata", AnalyticsEvent.event_metadata, "Metadata", sortable=False),
            _field("userAgent", AnalyticsEvent.user_agent, "User agent", sortable=False),
            _field("ipAddress", AnalyticsEvent.ip_address, "IP address", sortable=False),
            _field("referrer", AnalyticsEvent.referrer, "Referrer", sortable=False),
            _field("createdAt", AnalyticsEvent.created_at, "Created"),
        ),
        simple_filters=(
            SimpleFilter("eventType", "eventType", IN_LIST),
            SimpleFilter("userId", "userId", EQUALS),
            SimpleFilter("dateFrom", "createdAt", FROM),
            SimpleFilter("dateTo", "createdAt", TO),
        ),
        sort_options=("createdAt.desc", "createdAt.asc", "eventType.asc"),
        related=_owner_fields(),
        joins=((User, AnalyticsEvent.user_id == User.id),),
        depends_on=("users",),
        facet_fields=("eventType",),
    )

    return {
        item.kind: item
        for item in (products, categories, orders, users, settings_registry, analytics)
    }


REGISTRIES: dict[str, EntityRegistry] = _build_registries()


def normalize_kind(kind: str) -> str:
    return str(kind or "").strip().lower().replace("-", "_")


def get_registry(kind: str) -> EntityRegistry:
    registry = REGISTRIES.get(normalize_kind(kind))
    if registry is None:
        raise ConfigurationError(f'Unknown entity kind "{kind}"')
    return registry


def registry_for_model(model: type) -> EntityRegistry | None:
    for registry in REGISTRIES.values():
        if registry.model is model:
            return registry
    return None


def tags_to_invalidate(tags: set[str]) -> set[str]:
    """``tags`` plus the tags of every kind whose related columns read from them."""
    result = set(tags)
    for registry in REGISTRIES.values():
        if any(tag in tags for tag in registry.depends_on):
            result.add(registry.tag)
    return result
