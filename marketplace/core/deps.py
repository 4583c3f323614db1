from typing import Any

from fastapi import Request

from marketplace.schemas.listing import ListRequest
from marketplace.services.list_cache import ListCache, get_list_cache


def get_cache() -> ListCache:
    return get_list_cache()


def list_request_from_query(request: Request) -> ListRequest:
    """Build a listing request from URL search params; repeated keys become lists."""
    data: dict[str, Any] = {}
    for key, value in request.query_params.multi_items():
        if key in data:
            current = data[key]
            data[key] = current + [value] if isinstance(current, list) else [current, value]
        else:
            data[key] = value
    return ListRequest.model_validate(data)
