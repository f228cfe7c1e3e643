"""
Tourbook API: Document Model Foundations
========================================

What:  Shared pieces for the MongoDB document models.
How:   Documents are plain dicts in the store. Pydantic models validate what
       clients send; a `Resource` descriptor tells the generic services how to
       query one collection (filter casts, default filter, hidden fields,
       read-time computed fields).

Why plain dicts at rest:
    Projections (`fields=name,price`) return partial documents, so read paths
    cannot be forced back through a full model. Validation happens on write;
    reads are serialized with `to_public`.
"""

import typing
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, FrozenSet, Mapping, Optional, Type

from bson import ObjectId
from bson.errors import InvalidId
from pydantic import BaseModel

from tourbook.exceptions import ValidationError

# Every document carries these; they are never client-writable.
CREATED_AT = "createdAt"
VERSION_KEY = "__v"


def parse_object_id(value: Any, field_name: str = "_id") -> ObjectId:
    """Converts a client-supplied id into an ObjectId or raises a 400."""
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        raise ValidationError(message=f"Invalid {field_name}: {value}.", field=field_name)


def to_public(value: Any) -> Any:
    """
    Recursively converts a stored document into JSON-safe data.

    ObjectIds become strings and every sub-document with an `_id` also gets
    the `id` alias clients expect. Datetimes are left for FastAPI's encoder.
    """
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, list):
        return [to_public(v) for v in value]
    if isinstance(value, dict):
        out = {k: to_public(v) for k, v in value.items()}
        if "_id" in out and isinstance(value.get("_id"), ObjectId):
            out["id"] = out["_id"]
        return out
    return value


# ── Filter value casting ──────────────────────────────────────────────────
# Query strings are always text; the store compares by BSON type, so
# `price[gte]=100` only works once "100" becomes a number.

def _to_bool(raw: str) -> bool:
    lowered = raw.strip().lower()
    if lowered in {"true", "1", "yes"}:
        return True
    if lowered in {"false", "0", "no"}:
        return False
    raise ValueError(raw)


def _to_number(raw: str) -> Any:
    try:
        return int(raw)
    except ValueError:
        return float(raw)


def _to_datetime(raw: str) -> datetime:
    return datetime.fromisoformat(raw)


_CASTERS: Dict[Any, Callable[[str], Any]] = {
    int: _to_number,
    float: _to_number,
    bool: _to_bool,
    datetime: _to_datetime,
    ObjectId: ObjectId,
}


def _caster_for(annotation: Any) -> Optional[Callable[[str], Any]]:
    if annotation in _CASTERS:
        return _CASTERS[annotation]
    # Optional[X], List[X], Annotated[X, ...]: cast by the inner scalar type
    for arg in typing.get_args(annotation):
        caster = _caster_for(arg)
        if caster is not None:
            return caster
    return None


def casts_for(model: Type[BaseModel], **extra: Callable[[str], Any]) -> Dict[str, Callable[[str], Any]]:
    """Builds a field → caster map from a model's annotations plus extras."""
    casts: Dict[str, Callable[[str], Any]] = {}
    for name, info in model.model_fields.items():
        caster = _caster_for(info.annotation)
        if caster is not None:
            casts[name] = caster
    casts.update({"_id": ObjectId, CREATED_AT: _to_datetime, VERSION_KEY: _to_number})
    casts.update(extra)
    return casts


@dataclass(frozen=True)
class Resource:
    """
    Describes one collection to the generic query pipeline and handler factory.

    Attributes:
        name:           Human name used in error messages ("tour")
        collection:     MongoDB collection name
        casts:          Field → caster for query-string filter values
        default_filter: Always AND-ed into reads (secret tours, inactive users)
        hidden_fields:  Never projected unless internal code asks for them
        computed:       Read-time virtual fields, applied after to_public
    """

    name: str
    collection: str
    casts: Mapping[str, Callable[[str], Any]] = field(default_factory=dict)
    default_filter: Mapping[str, Any] = field(default_factory=dict)
    hidden_fields: FrozenSet[str] = frozenset()
    computed: Optional[Callable[[Dict[str, Any]], Dict[str, Any]]] = None

    def present(self, doc: Dict[str, Any]) -> Dict[str, Any]:
        public = to_public(doc)
        if self.computed is not None:
            public = self.computed(public)
        return public
