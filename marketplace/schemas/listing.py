from __future__ import annotations

import json
from typing import Any, List, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from marketplace.core.config import settings

Join = Literal["and", "or"]
Dir = Literal["asc", "desc"]

FILTER_OPERATORS = (
    "eq",
    "ne",
    "ilike",
    "notIlike",
    "isNull",
    "isNotNull",
    "gt",
    "gte",
    "lt",
    "lte",
    "in",
)
ADVANCED_FILTER_FLAGS = {"advancedFilters", "commandFilters"}
RESERVED_PARAMS = {"page", "perPage", "per_page", "sort", "filters", "joinOperator", "operator", "filterFlag", "params"}


def _positive_int_or_none(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    try:
        number = int(str(value).strip())
    except (TypeError, ValueError):
        return None
    return number if number >= 1 else None


def _join_or_default(value: Any) -> str:
    text = str(value or "").strip().lower()
    return text if text in {"and", "or"} else "and"


class FilterItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    value: Any = None
    operator: str = "eq"

    @field_validator("operator", mode="before")
    @classmethod
    def _known_operator(cls, value: Any) -> str:
        text = str(value or "").strip()
        return text if text in FILTER_OPERATORS else "eq"


class SortItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    field: str
    direction: Dir = "asc"

    @classmethod
    def from_token(cls, token: str) -> "SortItem | None":
        field, _, direction = token.strip().partition(".")
        if not field.strip():
            return None
        return cls(field=field.strip(), direction="desc" if direction.strip().lower() == "desc" else "asc")

    @classmethod
    def from_raw(cls, raw: Any) -> "SortItem | None":
        if isinstance(raw, SortItem):
            return raw
        if isinstance(raw, str):
            return cls.from_token(raw)
        if not isinstance(raw, dict):
            return None
        field = str(raw.get("field") or raw.get("id") or "").strip()
        if not field:
            return None
        if "desc" in raw and "direction" not in raw:
            direction = "desc" if raw.get("desc") is True else "asc"
        else:
            direction = "desc" if str(raw.get("direction") or "").strip().lower() == "desc" else "asc"
        return cls(field=field, direction=direction)


def _parse_sort(raw: Any) -> list[SortItem]:
    if raw is None:
        return []
    if isinstance(raw, str):
        items = [SortItem.from_token(token) for token in raw.split(",")]
    elif isinstance(raw, (list, tuple)):
        items = [SortItem.from_raw(item) for item in raw]
    else:
        items = [SortItem.from_raw(raw)]
    return [item for item in items if item is not None]


def _decode_json(raw: Any) -> Any:
    if not isinstance(raw, str):
        return raw
    text = raw.strip()
    if not text:
        return None
    try:
        return json.loads(text)
    except ValueError:
        return None


def _parse_filters(raw: Any) -> list[Any]:
    raw = _decode_json(raw)
    if not isinstance(raw, (list, tuple)):
        return []
    candidates = []
    for item in raw:
        if isinstance(item, str):
            # Each repeated `filters` query key carries its own JSON list.
            decoded = _decode_json(item)
            candidates.extend(decoded if isinstance(decoded, (list, tuple)) else [decoded])
        else:
            candidates.append(item)
    items = []
    for item in candidates:
        if isinstance(item, FilterItem):
            items.append(item)
            continue
        if not isinstance(item, dict):
            continue
        field = item.get("id", item.get("field"))
        if not isinstance(field, str) or not field.strip():
            continue
        items.append({"id": field.strip(), "value": item.get("value"), "operator": item.get("operator")})
    return items


class ListRequest(BaseModel):
    """Normalized listing request built from URL search params or a JSON body.

    Every field is normalized silently: a bad page falls back to 1, a bad page
    size to the configured default, unparseable sort tokens and filter items
    are dropped. Keys that are not part of the generic request are collected
    into ``params`` and interpreted as the entity's simple filters.
    """

    model_config = ConfigDict(frozen=True)

    page: int = 1
    perPage: int = Field(default_factory=lambda: settings.LIST_DEFAULT_PER_PAGE)
    sort: List[SortItem] = []
    filters: List[FilterItem] = []
    joinOperator: Join = "and"
    operator: Join = "and"
    filterFlag: str = ""
    params: dict[str, Any] = {}

    @model_validator(mode="before")
    @classmethod
    def _collect_params(cls, data: Any) -> Any:
        if data is None:
            return {}
        if not isinstance(data, dict):
            return data
        normalized = {key: value for key, value in data.items() if key in RESERVED_PARAMS}
        if "perPage" not in normalized and "per_page" in normalized:
            normalized["perPage"] = normalized["per_page"]
        normalized.pop("per_page", None)
        params = dict(normalized.pop("params", None) or {})
        for key, value in data.items():
            if key not in RESERVED_PARAMS:
                params[key] = value
        normalized["params"] = params
        return normalized

    @field_validator("page", mode="before")
    @classmethod
    def _normalize_page(cls, value: Any) -> int:
        number = _positive_int_or_none(value)
        if number is None:
            return 1
        return min(number, settings.LIST_MAX_PAGE)

    @field_validator("perPage", mode="before")
    @classmethod
    def _normalize_per_page(cls, value: Any) -> int:
        number = _positive_int_or_none(value)
        if number is None:
            return settings.LIST_DEFAULT_PER_PAGE
        return min(number, settings.LIST_MAX_PER_PAGE)

    @field_validator("sort", mode="before")
    @classmethod
    def _normalize_sort(cls, value: Any) -> list[SortItem]:
        return _parse_sort(value)

    @field_validator("filters", mode="before")
    @classmethod
    def _normalize_filters(cls, value: Any) -> list[Any]:
        return _parse_filters(value)

    @field_validator("joinOperator", "operator", mode="before")
    @classmethod
    def _normalize_join(cls, value: Any) -> str:
        return _join_or_default(value)

    @field_validator("filterFlag", mode="before")
    @classmethod
    def _normalize_flag(cls, value: Any) -> str:
        return str(value or "").strip()

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.perPage

    @property
    def advanced(self) -> bool:
        return self.filterFlag in ADVANCED_FILTER_FLAGS

    def cache_payload(self) -> str:
        return json.dumps(self.model_dump(mode="json"), sort_keys=True, ensure_ascii=False, default=str)


class PageResult(BaseModel):
    rows: List[dict[str, Any]] = []
    total: int = 0
    pageCount: int = 0
