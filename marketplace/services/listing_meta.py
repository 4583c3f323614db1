from __future__ import annotations

from typing import Any, Sequence

from marketplace.services.filters import filter_rows, get_filter_operators
from marketplace.services.registry import REGISTRIES, EntityRegistry


def _entity_meta(registry: EntityRegistry) -> dict[str, Any]:
    return {
        "kind": registry.kind,
        "label": registry.label,
        "fields": [
            {
                "id": spec.name,
                "label": spec.label,
                "type": spec.type,
                "sortable": spec.sortable,
                "options": list(spec.options),
                "operators": get_filter_operators(spec.type),
            }
            for spec in registry.fields.values()
        ],
        "simpleFilters": [{"param": item.param, "field": item.field, "kind": item.kind} for item in registry.simple_filters],
        "relatedFields": [{"id": item.name, "label": item.label, "type": item.type} for item in registry.related],
        "facetFields": list(registry.facet_fields),
        "sortOptions": list(registry.sort_options),
        "defaultSort": [f"{item.field}.{item.direction}" for item in registry.default_sort],
        "cacheTtlSeconds": registry.ttl_seconds,
    }


def entity_meta(terms: Sequence[str] = (), operator: str = "and") -> list[dict[str, Any]]:
    """Listing metadata for every entity kind, narrowed by free-text terms.

    Terms match against the kind, its label and its field names.
    """
    index = [
        {"kind": registry.kind, "label": registry.label, "fields": " ".join(registry.fields)}
        for registry in REGISTRIES.values()
    ]
    kinds = {row["kind"] for row in filter_rows(index, terms, operator)}
    return [_entity_meta(registry) for registry in REGISTRIES.values() if registry.kind in kinds]
