from __future__ import annotations

import json
import logging
import math
import uuid
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Sequence

from sqlalchemy import String, and_, cast, not_, or_
from sqlalchemy.sql.elements import ColumnElement

from marketplace.schemas.listing import ListRequest
from marketplace.services.registry import (
    ANY_TAG,
    BOOL_SET,
    CONTAINS,
    EQUALS,
    FROM,
    IN_LIST,
    RANGE,
    TO,
    EntityRegistry,
    FieldSpec,
)

_LOG = logging.getLogger("marketplace.listing")

TEXT_TYPES = {"text", "enum"}
VALUE_FREE_OPERATORS = {"isNull", "isNotNull"}
# Bounds of a BIGINT bind parameter.
_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1
_MAX_DECIMAL_EXPONENT = 1000


class FilterValueError(ValueError):
    """A filter value cannot be coerced to its column type; the filter is dropped."""


def _coerce_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value if value is not None else "").strip().lower()
    if text in {"1", "true", "yes", "y", "on", "active"}:
        return True
    if text in {"0", "false", "no", "n", "off", "inactive"}:
        return False
    raise FilterValueError(f"not a boolean: {value!r}")


def _is_finite(number: Any) -> bool:
    if isinstance(number, Decimal):
        return number.is_finite() and abs(number.adjusted()) <= _MAX_DECIMAL_EXPONENT
    if isinstance(number, float):
        return math.isfinite(number)
    return True


def _coerce_number(value: Any, python_type) -> Any:
    if isinstance(value, bool):
        raise FilterValueError("boolean is not a number")
    if value is None or (isinstance(value, str) and not value.strip()):
        raise FilterValueError("empty number")
    try:
        if python_type in {int, float} and isinstance(value, (int, float)):
            number = python_type(value)
        elif python_type is Decimal and isinstance(value, (int, float, Decimal)):
            number = Decimal(str(value))
        else:
            normalized = str(value).strip().replace(",", ".")
            if python_type is int:
                number = int(normalized)
            elif python_type is float:
                number = float(normalized)
            else:
                number = Decimal(normalized)
    except (ValueError, TypeError, OverflowError, InvalidOperation):
        raise FilterValueError("not a number")
    if not _is_finite(number):
        raise FilterValueError("not a finite number")
    if python_type is int and not _INT64_MIN <= number <= _INT64_MAX:
        raise FilterValueError("integer outside the BIGINT range")
    return number


def _is_date_only_literal(raw_value: Any) -> bool:
    if isinstance(raw_value, date) and not isinstance(raw_value, datetime):
        return True
    if not isinstance(raw_value, str):
        return False
    text = raw_value.strip()
    if not text or "T" in text or " " in text:
        return False
    try:
        date.fromisoformat(text)
        return True
    except ValueError:
        return False


def _coerce_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime.combine(value, datetime.min.time())
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        # Epoch milliseconds, as sent by date pickers.
        try:
            parsed = datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            raise FilterValueError("timestamp out of range")
    else:
        text = str(value if value is not None else "").strip()
        if not text:
            raise FilterValueError("empty datetime")
        try:
            if _is_date_only_literal(text):
                parsed = datetime.combine(date.fromisoformat(text), datetime.min.time())
            else:
                parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            raise FilterValueError(f"not a datetime: {value!r}")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _coerce_date(value: Any) -> date:
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    return _coerce_datetime(value).date()


def _python_type(spec: FieldSpec):
    try:
        return spec.column.property.columns[0].type.python_type
    except NotImplementedError:
        return None


def coerce_filter_value(spec: FieldSpec, value: Any) -> Any:
    if spec.type == "boolean":
        return _coerce_bool(value)
    if spec.type == "number":
        return _coerce_number(value, _python_type(spec))
    if spec.type == "datetime":
        return _coerce_datetime(value)
    if spec.type == "date":
        return _coerce_date(value)
    if spec.type == "uuid":
        if isinstance(value, uuid.UUID):
            return value
        try:
            return uuid.UUID(str(value if value is not None else "").strip())
        except ValueError:
            raise FilterValueError(f"not a UUID: {value!r}")
    if spec.type == "json":
        raise FilterValueError("json fields only support text matching")
    if isinstance(value, (dict, list, tuple)):
        raise FilterValueError("text filter needs a scalar")
    return str(value if value is not None else "")


def _as_text(spec: FieldSpec):
    if spec.type in TEXT_TYPES:
        return spec.column
    return cast(spec.column, String)


def _next_day(moment: datetime) -> datetime:
    try:
        return moment + timedelta(days=1)
    except OverflowError:
        raise FilterValueError(f"no day after {moment.date()}")


def _day_range(spec: FieldSpec, raw_value: Any):
    day_start = _coerce_datetime(raw_value)
    return (spec.column >= day_start) & (spec.column < _next_day(day_start))


def build_condition(spec: FieldSpec, operator: str, value: Any) -> ColumnElement | None:
    """Translate one ``(field, operator, value)`` triple into a SQL predicate.

    Returns ``None`` when the triple cannot form a meaningful constraint, which
    drops it from the combined filter instead of failing the query.
    """
    col = spec.column
    if operator == "isNull":
        if spec.type in TEXT_TYPES:
            return or_(col.is_(None), col == "")
        return col.is_(None)
    if operator == "isNotNull":
        if spec.type in TEXT_TYPES:
            return and_(col.is_not(None), col != "")
        return col.is_not(None)

    if value is None or (isinstance(value, str) and not value.strip()):
        return None

    try:
        if operator in {"ilike", "notIlike"}:
            if isinstance(value, (dict, list, tuple)):
                return None
            expr = _as_text(spec).ilike(f"%{str(value).strip()}%")
            return expr if operator == "ilike" else not_(expr)

        if operator == "in":
            raw_items = value if isinstance(value, (list, tuple, set)) else [value]
            items = []
            for item in raw_items:
                try:
                    items.append(coerce_filter_value(spec, item))
                except FilterValueError:
                    continue
            return col.in_(items) if items else None

        if spec.type == "datetime" and operator in {"eq", "ne"} and _is_date_only_literal(value):
            day_expr = _day_range(spec, value)
            return day_expr if operator == "eq" else ~day_expr

        coerced = coerce_filter_value(spec, value)
    except FilterValueError as exc:
        _LOG.debug("dropping filter on %s: %s", spec.name, exc)
        return None

    if operator == "ne":
        return col != coerced
    if operator == "gt":
        return col > coerced
    if operator == "gte":
        return col >= coerced
    if operator == "lt":
        return col < coerced
    if operator == "lte":
        return col <= coerced
    return col == coerced


def build_filter_where(
    filters: Sequence[tuple[FieldSpec, str, Any]],
    join_operator: str = "and",
) -> ColumnElement | None:
    conditions = [build_condition(spec, operator or "eq", value) for spec, operator, value in filters]
    return combine(conditions, join_operator)


def combine(conditions: Iterable[ColumnElement | None], join_operator: str = "and") -> ColumnElement | None:
    kept = [item for item in conditions if item is not None]
    if not kept:
        return None
    if len(kept) == 1:
        return kept[0]
    return or_(*kept) if join_operator == "or" else and_(*kept)


def advanced_where(registry: EntityRegistry, request: ListRequest) -> ColumnElement | None:
    triples = []
    for item in request.filters:
        spec = registry.resolve(item.id)
        if spec is None:
            continue
        triples.append((spec, item.operator, item.value))
    return build_filter_where(triples, request.joinOperator)


def _values(raw: Any) -> list[Any]:
    if raw is None:
        return []
    if isinstance(raw, (list, tuple, set)):
        items = []
        for item in raw:
            items.extend(_values(item))
        return items
    if isinstance(raw, str):
        return [part.strip() for part in raw.split(",") if part.strip()]
    return [raw]


def _first(raw: Any) -> Any:
    if isinstance(raw, (list, tuple)):
        for item in raw:
            if item is not None and str(item).strip():
                return item
        return None
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return None
    return raw


def _range_condition(spec: FieldSpec, raw: Any) -> ColumnElement | None:
    if isinstance(raw, str):
        bounds = [part.strip() for part in raw.split(",")]
    elif isinstance(raw, (list, tuple)):
        bounds = [str(part).strip() if part is not None else "" for part in raw]
    else:
        return None
    low = bounds[0] if len(bounds) > 0 else ""
    high = bounds[1] if len(bounds) > 1 else ""
    return combine([build_condition(spec, "gte", low), build_condition(spec, "lte", high)], "and")


def _tags_condition(spec: FieldSpec, raw: Any) -> ColumnElement | None:
    tags = [str(tag) for tag in _values(raw)]
    text = cast(spec.column, String)
    # Tags are stored as a JSON array, so each element appears quoted in its text form.
    return combine([text.ilike(f"%{json.dumps(tag)}%") for tag in tags], "or")


def _simple_condition(spec: FieldSpec, kind: str, raw: Any) -> ColumnElement | None:
    if kind == CONTAINS:
        return build_condition(spec, "ilike", _first(raw))
    if kind == EQUALS:
        return build_condition(spec, "eq", _first(raw))
    if kind in {IN_LIST, BOOL_SET}:
        return build_condition(spec, "in", _values(raw))
    if kind == RANGE:
        return _range_condition(spec, raw)
    if kind == ANY_TAG:
        return _tags_condition(spec, raw)
    if kind == FROM:
        return build_condition(spec, "gte", _first(raw))
    if kind == TO:
        value = _first(raw)
        if spec.type == "datetime" and _is_date_only_literal(value):
            # A bare end date includes that whole day.
            try:
                return spec.column < _next_day(_coerce_datetime(value))
            except FilterValueError:
                return None
        return build_condition(spec, "lte", value)
    return None


def simple_where(registry: EntityRegistry, request: ListRequest) -> ColumnElement | None:
    conditions = []
    for item in registry.simple_filters:
        if item.param not in request.params:
            continue
        spec = registry.resolve(item.field)
        if spec is None:
            continue
        conditions.append(_simple_condition(spec, item.kind, request.params[item.param]))
    return combine(conditions, request.operator)


def request_where(registry: EntityRegistry, request: ListRequest) -> ColumnElement | None:
    if request.advanced:
        return advanced_where(registry, request)
    return simple_where(registry, request)


def get_filter_operators(field_type: str) -> list[dict[str, str]]:
    if field_type == "text":
        return [
            {"label": "Contains", "value": "ilike"},
            {"label": "Does not contain", "value": "notIlike"},
            {"label": "Is", "value": "eq"},
            {"label": "Is not", "value": "ne"},
            {"label": "Is empty", "value": "isNull"},
            {"label": "Is not empty", "value": "isNotNull"},
        ]
    if field_type in {"select", "enum", "boolean"}:
        return [
            {"label": "Is", "value": "eq"},
            {"label": "Is not", "value": "ne"},
            {"label": "Is any of", "value": "in"},
        ]
    if field_type in {"date", "datetime", "number"}:
        return [
            {"label": "Is", "value": "eq"},
            {"label": "Is not", "value": "ne"},
            {"label": "Is after", "value": "gt"},
            {"label": "Is on or after", "value": "gte"},
            {"label": "Is before", "value": "lt"},
            {"label": "Is on or before", "value": "lte"},
            {"label": "Is empty", "value": "isNull"},
            {"label": "Is not empty", "value": "isNotNull"},
        ]
    if field_type == "json":
        return [
            {"label": "Contains", "value": "ilike"},
            {"label": "Does not contain", "value": "notIlike"},
            {"label": "Is empty", "value": "isNull"},
            {"label": "Is not empty", "value": "isNotNull"},
        ]
    return [
        {"label": "Is", "value": "eq"},
        {"label": "Is not", "value": "ne"},
    ]


def filter_rows(rows: Sequence[dict[str, Any]], terms: Sequence[str], operator: str = "and") -> list[dict[str, Any]]:
    """In-memory counterpart of the SQL filters for already-loaded rows.

    A row matches a term when any of its values, stringified and lower-cased,
    contains the term. ``and`` requires every term to match, ``or`` any term.
    """
    needles = [str(term).lower() for term in terms if str(term).strip()]
    if not needles:
        return list(rows)
    matched = []
    for row in rows:
        if not isinstance(row, dict):
            continue
        values = [str(value).lower() for value in row.values()]
        hits = [any(needle in value for value in values) for needle in needles]
        if (all(hits) if operator == "and" else any(hits)):
            matched.append(row)
    return matched
