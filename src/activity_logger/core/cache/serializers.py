"""Serialization utilities for caching.

Provides JSON serialization for Pydantic models and the datetime,
date and set values that appear in cached log snapshots.
"""

import json
from datetime import date, datetime
from typing import Any

from pydantic import BaseModel


class CacheEncoder(json.JSONEncoder):
    """Custom JSON encoder for cache values.

    Handles:
    - Pydantic models (stored as their JSON-mode dump)
    - Datetimes and dates
    - Sets and frozensets (converted to sorted lists)
    """

    def default(self, obj: Any) -> Any:
        if isinstance(obj, BaseModel):
            return {"__pydantic__": True, "__class__": obj.__class__.__name__, "data": obj.model_dump(mode="json")}
        if isinstance(obj, datetime):
            return {"__datetime__": True, "value": obj.isoformat()}
        if isinstance(obj, date):
            return {"__date__": True, "value": obj.isoformat()}
        if isinstance(obj, set | frozenset):
            return {"__set__": True, "value": sorted(obj)}
        return super().default(obj)


def serialize(value: Any) -> str:
    """Serialize a value for caching.

    Tuples are stored as JSON arrays and come back as lists.
    """
    return json.dumps(value, cls=CacheEncoder)


def deserialize(data: str) -> Any:
    """Deserialize a cached value.

    Note:
        Pydantic models are returned as dicts. The caller
        should reconstruct the model if needed.
    """
    return json.loads(data, object_hook=_decode_hook)


def _decode_hook(obj: dict[str, Any]) -> Any:
    if "__datetime__" in obj:
        return datetime.fromisoformat(obj["value"])
    if "__date__" in obj:
        return date.fromisoformat(obj["value"])
    if "__set__" in obj:
        return set(obj["value"])
    if "__pydantic__" in obj:
        return obj["data"]
    return obj
