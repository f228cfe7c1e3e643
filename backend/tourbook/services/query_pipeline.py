"""
Tourbook API: Generic Query Pipeline
====================================

What:  Turns a request's query string into a MongoDB find and executes it.
Who:   Used identically by every list endpoint (tours, users, reviews).
How:   Two phases so the translation can be tested without a database:

    build_query(resource, params, pre_filter)  → ListQuery   (pure)
    execute(collection, query)                 → (docs, count)

Translation steps:
    1. Strip reserved keys: page, sort, limit, fields
    2. price[gte]=100       → {"price": {"$gte": 100}}   (gte|gt|lte|lt only)
       price[foo]=1         → {"price": {"foo": 1}}      (passed through)
    3. sort=a,-b            → [("a", 1), ("b", -1)]      default: -createdAt
    4. fields=a,b           → {"a": 1, "b": 1}           default: {"__v": 0}
    5. page / limit         → skip = (page - 1) * limit  defaults 1 / 100
       an explicit page whose skip reaches the match count is an error,
       never an empty success

The resource's default filter and the caller's pre-filter are AND-ed with
the client filter so a client can never widen them.
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from bson.errors import InvalidId
from pymongo import ASCENDING, DESCENDING
from pymongo.asynchronous.collection import AsyncCollection

from tourbook.database import translate_store_errors
from tourbook.exceptions import PageOutOfRange, ValidationError
from tourbook.models.base import CREATED_AT, VERSION_KEY, Resource

logger = logging.getLogger(__name__)

RESERVED_KEYS = frozenset({"page", "sort", "limit", "fields"})
COMPARISON_OPERATORS = frozenset({"gte", "gt", "lte", "lt"})

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 100
DEFAULT_SORT: List[Tuple[str, int]] = [(CREATED_AT, DESCENDING)]

_BRACKET_KEY = re.compile(r"^(?P<field>[^\[\]]+)\[(?P<op>[^\[\]]+)\]$")


@dataclass
class ListQuery:
    """A fully translated list request, ready to run against a collection."""

    filter: Dict[str, Any]
    sort: List[Tuple[str, int]]
    projection: Dict[str, int]
    skip: int
    limit: int
    page_requested: bool = False


# ══════════════════════════════════════════════════════════════════════════
# Translation
# ══════════════════════════════════════════════════════════════════════════

def _cast(resource: Resource, field_name: str, raw: Any) -> Any:
    caster = resource.casts.get(field_name)
    if caster is None or not isinstance(raw, str):
        return raw
    try:
        return caster(raw)
    except (ValueError, TypeError, InvalidId):
        raise ValidationError(message=f"Invalid {field_name}: {raw}.", field=field_name)


def build_filter(resource: Resource, params: Iterable[Tuple[str, str]]) -> Dict[str, Any]:
    """
    Steps 1 and 2: drop control keys, rewrite comparison suffixes, cast values.

    `params` is a sequence of (key, value) pairs as they appear in the query
    string; a repeated key keeps its last value.
    """
    result: Dict[str, Any] = {}
    for key, raw in params:
        if key in RESERVED_KEYS:
            continue
        match = _BRACKET_KEY.match(key)
        if match is None:
            result[key] = _cast(resource, key, raw)
            continue

        field_name, op = match.group("field"), match.group("op")
        if op in COMPARISON_OPERATORS:
            op = f"${op}"
        existing = result.get(field_name)
        if not isinstance(existing, dict):
            # a plain equality on the same field is replaced by the operator form
            existing = {}
        existing[op] = _cast(resource, field_name, raw)
        result[field_name] = existing
    return result


def parse_sort(raw: Optional[str]) -> List[Tuple[str, int]]:
    """Step 3."""
    if not raw:
        return list(DEFAULT_SORT)
    order: List[Tuple[str, int]] = []
    for token in raw.split(","):
        token = token.strip()
        if not token:
            continue
        if token.startswith("-"):
            order.append((token[1:], DESCENDING))
        else:
            order.append((token.lstrip("+"), ASCENDING))
    return order or list(DEFAULT_SORT)


def parse_fields(raw: Optional[str], hidden: Iterable[str] = ()) -> Dict[str, int]:
    """
    Step 4, plus removal of fields the resource never exposes.

    MongoDB rejects projections mixing inclusion and exclusion (apart from
    `_id`), so hidden fields are dropped from an inclusion projection and
    appended to an exclusion one.
    """
    projection: Dict[str, int] = {}
    if raw:
        for token in raw.split(","):
            token = token.strip()
            if not token:
                continue
            if token.startswith("-"):
                projection[token[1:]] = 0
            else:
                projection[token] = 1
    if not projection:
        projection = {VERSION_KEY: 0}

    hidden = set(hidden)
    is_inclusion = any(v == 1 for k, v in projection.items() if k != "_id")
    if is_inclusion:
        projection = {k: v for k, v in projection.items() if k not in hidden}
        if not any(v == 1 for k, v in projection.items() if k != "_id"):
            # everything requested was hidden; fall back to the default view
            projection = {VERSION_KEY: 0}
            is_inclusion = False
    if not is_inclusion:
        for name in hidden:
            projection[name] = 0
    return projection


def _positive_int(raw: Optional[str], default: int) -> int:
    # Non-numeric, zero and negative values fall back to the default
    try:
        value = int(raw) if raw is not None else default
    except ValueError:
        return default
    return value if value >= 1 else default


def build_query(
    resource: Resource,
    params: Iterable[Tuple[str, str]],
    pre_filter: Optional[Mapping[str, Any]] = None,
) -> ListQuery:
    """
    Translate query-string pairs into a ListQuery for `resource`.

    Args:
        resource:   Collection descriptor (casts, default filter, hidden fields)
        params:     (key, value) pairs, e.g. request.query_params.multi_items()
        pre_filter: Fixed restriction from the route, e.g. {"tour": tour_id}
    """
    pairs = list(params)
    controls: Dict[str, str] = {k: v for k, v in pairs if k in RESERVED_KEYS}

    client_filter = build_filter(resource, pairs)
    clauses = [c for c in (dict(resource.default_filter), dict(pre_filter or {})) if c]
    if clauses:
        combined: Dict[str, Any] = {"$and": clauses + ([client_filter] if client_filter else [])}
    else:
        combined = client_filter

    page = _positive_int(controls.get("page"), DEFAULT_PAGE)
    limit = _positive_int(controls.get("limit"), DEFAULT_LIMIT)

    return ListQuery(
        filter=combined,
        sort=parse_sort(controls.get("sort")),
        projection=parse_fields(controls.get("fields"), resource.hidden_fields),
        skip=(page - 1) * limit,
        limit=limit,
        page_requested="page" in controls,
    )


# ══════════════════════════════════════════════════════════════════════════
# Execution
# ══════════════════════════════════════════════════════════════════════════

async def execute(
    collection: AsyncCollection, query: ListQuery
) -> Tuple[List[Dict[str, Any]], int]:
    """
    Step 5 guard and step 6: run the query, return (documents, count).

    Raises:
        PageOutOfRange: page was requested explicitly and skip >= total matches
        StoreError:     MongoDB rejected the filter, sort or projection
    """
    with translate_store_errors(collection.name):
        if query.page_requested:
            total = await collection.count_documents(query.filter)
            if query.skip >= total:
                raise PageOutOfRange(context={"skip": query.skip, "total": total})

        cursor = (
            collection.find(query.filter, query.projection)
            .sort(query.sort)
            .skip(query.skip)
            .limit(query.limit)
        )
        docs = await cursor.to_list(length=None)

    logger.debug("Query on %s returned %d documents", collection.name, len(docs))
    return docs, len(docs)
