"""Query building and fuzzy matching for CRM searches.

Pure functions: no I/O, so the search behaviour can be tested without HTTP.
"""

import re
from typing import Any

_CORPORATE_SUFFIXES = re.compile(r"\b(inc|llc|ltd|corporation|corp|company|co)\b", re.IGNORECASE)
_CORE_SUFFIXES = re.compile(
    r"\b(inc|llc|ltd|corporation|corp|company|co|group)\b", re.IGNORECASE
)
_LEADING_THE = re.compile(r"^the\s+", re.IGNORECASE)
_STOP_WORDS = {"the", "and", "for", "inc", "llc", "ltd", "corp", "company"}

# Known misspellings seen in practice: (pattern, replacement)
_SPELLING_FIXES: list[tuple[str, str]] = [
    (r"rayne", "raine"),
    (r"rane", "raine"),
    (r"rain(?!e)", "raine"),
]


def _collapse_spaces(value: str) -> str:
    return re.sub(r"\s+", " ", value).strip(" ,.")


def spelling_variations(query: str) -> list[str]:
    """Generate known spelling variants of a query.

    Args:
        query: Raw search text.

    Returns:
        Variants that differ from the query (may be empty).
    """
    variants: list[str] = []
    for pattern, replacement in _SPELLING_FIXES:
        if re.search(pattern, query, re.IGNORECASE):
            candidate = re.sub(pattern, replacement, query, flags=re.IGNORECASE)
            if candidate != query and candidate not in variants:
                variants.append(candidate)
    return variants


def generate_search_variations(query: str) -> list[str]:
    """Build the ordered list of strings a company search tries.

    Order is significance: exact text, lowercase, without corporate suffixes,
    core name (no leading "the"), first significant word, spelling variants.

    Args:
        query: Raw search text.

    Returns:
        De-duplicated variations, exact query first.
    """
    query = query.strip()
    variations: list[str] = [query]

    if query.lower() != query:
        variations.append(query.lower())

    without_suffix = _collapse_spaces(_CORPORATE_SUFFIXES.sub("", query))
    if without_suffix and without_suffix != query:
        variations.append(without_suffix)

    core_name = _collapse_spaces(_CORE_SUFFIXES.sub("", _LEADING_THE.sub("", query)))
    if core_name and core_name not in (query, without_suffix):
        variations.append(core_name)

    significant = [
        word for word in query.split() if len(word) > 3 and word.lower() not in _STOP_WORDS
    ]
    if significant and significant[0] != query:
        variations.append(significant[0])

    variations.extend(spelling_variations(query))

    seen: set[str] = set()
    unique: list[str] = []
    for variation in variations:
        if variation and variation not in seen:
            seen.add(variation)
            unique.append(variation)
    return unique


def relevance_score(query: str, name: str, domains: list[str]) -> int:
    """Score how well a company matches the query.

    Exact name match scores 100, name containing the query 50, query
    containing the name 30. Each query word found in the name adds 10 and
    each domain containing the query adds 20.

    Args:
        query: Search text.
        name: Company name.
        domains: Company domains.

    Returns:
        Non-negative relevance score.
    """
    query_lower = query.lower().strip()
    name_lower = name.lower().strip()
    score = 0

    if name_lower == query_lower:
        score += 100
    elif query_lower in name_lower:
        score += 50
    elif name_lower and name_lower in query_lower:
        score += 30

    name_words = name_lower.split()
    for query_word in query_lower.split():
        if any(query_word in word or word in query_word for word in name_words):
            score += 10

    for domain in domains:
        if query_lower and query_lower in domain.lower():
            score += 20

    return score


def company_search_filter(variations: list[str]) -> dict[str, Any]:
    """Build an $or filter matching any variation in name or domains."""
    conditions: list[dict[str, Any]] = []
    for variation in variations:
        conditions.append({"name": {"$contains": variation}})
        conditions.append({"domains": {"$contains": variation.lower()}})
    return {"$or": conditions}


def _text_conditions(query: str, entity_type: str) -> list[dict[str, Any]]:
    conditions: list[dict[str, Any]] = [{"name": {"$contains": query}}]
    if entity_type == "company":
        conditions.append({"domains": {"$contains": query.lower()}})
    elif entity_type == "person":
        conditions.append({"email_addresses": {"$contains": query.lower()}})
    return conditions


def build_advanced_filter(
    query: str | None, filters: dict[str, Any], entity_type: str
) -> dict[str, Any]:
    """Combine a text query and attribute filters into one Attio filter.

    Args:
        query: Optional free-text query.
        filters: Attribute filters (deal_value_min, status, created_after, ...).
            Unknown keys become $contains for strings and $eq otherwise.
        entity_type: Singular entity type; some filters only apply to one type.

    Returns:
        Attio filter object ({} when nothing was given).
    """
    conditions: list[dict[str, Any]] = []

    if query:
        conditions.append({"$or": _text_conditions(query, entity_type)})

    for field, value in filters.items():
        if value is None:
            continue
        if field == "deal_value_min":
            if entity_type == "deal":
                conditions.append({"value": {"$gte": value}})
        elif field == "deal_value_max":
            if entity_type == "deal":
                conditions.append({"value": {"$lte": value}})
        elif field in ("status", "stage"):
            conditions.append({field: {"$eq": value}})
        elif field == "created_after":
            conditions.append({"created_at": {"$gte": normalize_date_bound(value, end=False)}})
        elif field == "created_before":
            conditions.append({"created_at": {"$lte": normalize_date_bound(value, end=True)}})
        elif field == "updated_after":
            conditions.append({"updated_at": {"$gte": normalize_date_bound(value, end=False)}})
        elif field == "updated_before":
            conditions.append({"updated_at": {"$lte": normalize_date_bound(value, end=True)}})
        elif field == "tags_include":
            if isinstance(value, list):
                conditions.append({"tags": {"$in": value}})
        elif field == "industry":
            if entity_type == "company":
                conditions.append({"industry": {"$eq": value}})
        elif field == "location":
            conditions.append({"location": {"$contains": value}})
        elif isinstance(value, str):
            conditions.append({field: {"$contains": value}})
        else:
            conditions.append({field: {"$eq": value}})

    if not conditions:
        return {}
    if len(conditions) == 1:
        return conditions[0]
    return {"$and": conditions}


def normalize_date_bound(value: str, end: bool) -> str:
    """Expand a bare YYYY-MM-DD into a full ISO timestamp.

    Args:
        value: Date or timestamp string.
        end: Whether this is the inclusive end of a range.

    Returns:
        Value unchanged if it already has a time part, otherwise the start
        (00:00:00.000Z) or end (23:59:59.999Z) of that day.
    """
    if "T" in value:
        return value
    return f"{value}T23:59:59.999Z" if end else f"{value}T00:00:00.000Z"


def build_time_filter(
    time_field: str, start_date: str | None, end_date: str | None
) -> dict[str, Any]:
    """Build a range filter on a timestamp attribute.

    Args:
        time_field: Attribute to filter on (created_at, updated_at).
        start_date: Inclusive lower bound, if any.
        end_date: Inclusive upper bound, if any.

    Returns:
        Attio filter object ({} when no bound was given).
    """
    bounds: dict[str, str] = {}
    if start_date:
        bounds["$gte"] = normalize_date_bound(start_date, end=False)
    if end_date:
        bounds["$lte"] = normalize_date_bound(end_date, end=True)
    return {time_field: bounds} if bounds else {}


def related_filter(
    source_entity_type: str,
    source_entity_id: str,
    target_entity_type: str,
    relationship_type: str | None = None,
) -> dict[str, Any]:
    """Build the filter that finds records related to a source record.

    An explicit relationship_type overrides the defaults. Deal -> company is
    not a query (the company is read off the deal) and is handled by the
    client.

    Args:
        source_entity_type: Type of the known record.
        source_entity_id: Id of the known record.
        target_entity_type: Type of records to find.
        relationship_type: Attribute on the target pointing at the source.

    Returns:
        Attio filter object.
    """
    if relationship_type:
        return {relationship_type: {"$eq": source_entity_id}}
    if source_entity_type == "company" and target_entity_type in ("deal", "person"):
        return {"primary_company": {"$eq": source_entity_id}}
    if source_entity_type == "person" and target_entity_type == "deal":
        return {
            "$or": [
                {"primary_contact": {"$eq": source_entity_id}},
                {"deal_team": {"$contains": source_entity_id}},
            ]
        }
    if source_entity_type == "person" and target_entity_type == "company":
        return {"team": {"$contains": source_entity_id}}
    return {}
