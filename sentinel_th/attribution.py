"""Attribution label stamped on every resource this integration creates.

A saved search, hunt or relation is owned by the integration if and only
if it carries ATTRIBUTION_LABEL. The purge engine uses the is_attributed_*
predicates as its only discovery criterion.
"""

ATTRIBUTION_LABEL = "SentinelTHIntegration"

# Saved searches have name/value tags rather than plain labels
ATTRIBUTION_TAG_NAME = "createdBy"


def stamp_tags(tags: list[dict] | None) -> list[dict]:
    """Return a copy of a saved-search tag list with the attribution tag appended once."""
    stamped = [dict(t) for t in tags or []]
    if not any(_is_attribution_tag(t) for t in stamped):
        stamped.append({"name": ATTRIBUTION_TAG_NAME, "value": ATTRIBUTION_LABEL})
    return stamped


def stamp_labels(labels: list[str] | None) -> list[str]:
    """Return a copy of a hunt/relation label list containing the attribution label."""
    stamped = list(labels or [])
    if ATTRIBUTION_LABEL not in stamped:
        stamped.append(ATTRIBUTION_LABEL)
    return stamped


def _is_attribution_tag(tag: dict) -> bool:
    return tag.get("name") == ATTRIBUTION_TAG_NAME and tag.get("value") == ATTRIBUTION_LABEL


def is_attributed_saved_search(resource: dict) -> bool:
    tags = (resource.get("properties") or {}).get("tags") or []
    return any(_is_attribution_tag(t) for t in tags if isinstance(t, dict))


def _has_label(resource: dict) -> bool:
    labels = (resource.get("properties") or {}).get("labels") or []
    return ATTRIBUTION_LABEL in labels


def is_attributed_hunt(resource: dict) -> bool:
    return _has_label(resource)


def is_attributed_relation(resource: dict) -> bool:
    return _has_label(resource)
