"""Request bodies for saved searches, hunts and hunt relations.

Every builder stamps the attribution label; none of them talk to Azure.
Resource names are fresh UUID4s since Sentinel addresses these resources
by caller-chosen name.
"""

import re
import uuid

from sentinel_th.attribution import stamp_labels, stamp_tags

HUNTING_QUERIES_CATEGORY = "Hunting Queries"
SAVED_SEARCH_VERSION = 2
DEFAULT_HUNT_STATUS = "New"
DEFAULT_HYPOTHESIS_STATUS = "Unknown"


def new_resource_name() -> str:
    return str(uuid.uuid4())


def split_values(value) -> list[str]:
    """Normalize a tactics/techniques field into a list of distinct values.

    Accepts None, a comma/semicolon separated string, or a list of strings.
    Blank entries and duplicates are dropped; order is preserved.
    """
    if value is None:
        return []
    if isinstance(value, str):
        raw = re.split(r"[,;]", value)
    elif isinstance(value, (list, tuple)):
        raw = [str(v) for v in value if v is not None]
    else:
        raw = [str(value)]

    values: list[str] = []
    for item in raw:
        item = item.strip()
        if item and item not in values:
            values.append(item)
    return values


def build_saved_search(payload: dict) -> tuple[str, dict]:
    """Build (resource_name, body) for a hunting-query saved search.

    Tactics and techniques become one tag per value so each stays
    individually queryable.
    """
    tags: list[dict] = []
    description = (payload.get("description") or "").strip()
    if description:
        tags.append({"name": "description", "value": description})
    for tactic in split_values(payload.get("tactics")):
        tags.append({"name": "tactics", "value": tactic})
    for technique in split_values(payload.get("techniques")):
        tags.append({"name": "techniques", "value": technique})
    extid = (payload.get("extid") or "").strip()
    if extid:
        tags.append({"name": "extid", "value": extid})

    body = {
        "properties": {
            "category": HUNTING_QUERIES_CATEGORY,
            "displayName": payload["name"].strip(),
            "query": payload["query"],
            "tags": stamp_tags(tags),
            "version": SAVED_SEARCH_VERSION,
        }
    }
    return new_resource_name(), body


def build_hunt(name: str, description: str | None = None) -> tuple[str, dict]:
    """Build (hunt_id, body) for a new hunt."""
    body = {
        "properties": {
            "displayName": name.strip(),
            "description": (description or "").strip(),
            "status": DEFAULT_HUNT_STATUS,
            "hypothesisStatus": DEFAULT_HYPOTHESIS_STATUS,
            "labels": stamp_labels([]),
        }
    }
    return new_resource_name(), body


def build_relation(query_resource_id: str) -> tuple[str, dict]:
    """Build (relation_id, body) linking a hunt to a saved search."""
    body = {
        "properties": {
            "relatedResourceId": query_resource_id,
            "labels": stamp_labels([]),
        }
    }
    return new_resource_name(), body
