"""Purge engine: remove every attributed saved search, hunt and relation.

Two independent cleanup classes run one after the other. Within a class
every deletion is attempted even if an earlier one failed, and the class
reports one aggregate outcome. A failure in one class never hides the
result of the other; the caller decides 200 vs 207 from
PurgeResult.has_errors.
"""

import logging

from sentinel_th.attribution import (
    is_attributed_hunt,
    is_attributed_relation,
    is_attributed_saved_search,
)
from sentinel_th.errors import RemoteError
from sentinel_th.models import CleanupOutcome, PurgeResult
from sentinel_th.sentinel_client import SentinelClient

logger = logging.getLogger(__name__)


def _plural(count: int, noun: str) -> str:
    if count == 1:
        return f"{count} {noun}"
    suffix = "es" if noun.endswith(("ch", "s")) else "s"
    return f"{count} {noun}{suffix}"


def _delete(fn, *args) -> None:
    """Run a delete, treating 404 as already gone."""
    try:
        fn(*args)
    except RemoteError as e:
        if e.status_code != 404:
            raise
        logger.debug("Resource %s already deleted", args[-1])


def _failure_outcome(kind: str, attempted: int, deleted: int, errors: list[str]) -> CleanupOutcome:
    return CleanupOutcome(
        error=(
            f"Failed {len(errors)} of {attempted} {kind}: {errors[0]}"
        ),
        deleted=deleted,
        failed=len(errors),
    )


def purge_saved_searches(client: SentinelClient) -> CleanupOutcome:
    """Delete every saved search carrying the attribution tag."""
    try:
        searches = [s for s in client.list_saved_searches() if is_attributed_saved_search(s)]
    except RemoteError as e:
        logger.error("Saved search discovery failed: %s", e.message)
        return CleanupOutcome(error=f"Failed to list saved searches: {e.message}")

    deleted = 0
    errors: list[str] = []
    for search in searches:
        name = search.get("name", "")
        try:
            _delete(client.delete_saved_search, name)
            deleted += 1
        except RemoteError as e:
            logger.warning("Could not delete saved search %s: %s", name, e.message)
            errors.append(f"{name}: {e.message}")

    if errors:
        return _failure_outcome("saved search deletions", len(searches), deleted, errors)
    logger.info("Deleted %s", _plural(deleted, "saved search"))
    return CleanupOutcome(message=f"Deleted {_plural(deleted, 'saved search')}", deleted=deleted)


def purge_hunts(client: SentinelClient) -> CleanupOutcome:
    """Delete attributed hunts (children first) and attributed relations elsewhere.

    Relations under an attributed hunt are all removed before the hunt.
    Under a foreign hunt only the attributed relations are removed and the
    hunt itself is left alone.
    """
    try:
        hunts = client.list_hunts()
    except RemoteError as e:
        logger.error("Hunt discovery failed: %s", e.message)
        return CleanupOutcome(error=f"Failed to list hunts: {e.message}")

    hunts_deleted = 0
    relations_deleted = 0
    attempted = 0
    errors: list[str] = []

    for hunt in hunts:
        hunt_id = hunt.get("name", "")
        owned = is_attributed_hunt(hunt)
        try:
            relations = client.list_hunt_relations(hunt_id)
        except RemoteError as e:
            # An owned hunt is still deleted below; the service drops its children
            attempted += 1
            logger.warning("Could not list relations of hunt %s: %s", hunt_id, e.message)
            errors.append(f"hunt {hunt_id}: could not list relations: {e.message}")
            relations = []

        for relation in relations:
            if not owned and not is_attributed_relation(relation):
                continue
            relation_id = relation.get("name", "")
            attempted += 1
            try:
                _delete(client.delete_hunt_relation, hunt_id, relation_id)
                relations_deleted += 1
            except RemoteError as e:
                logger.warning(
                    "Could not delete relation %s of hunt %s: %s", relation_id, hunt_id, e.message
                )
                errors.append(f"relation {relation_id}: {e.message}")

        if not owned:
            continue

        attempted += 1
        try:
            _delete(client.delete_hunt, hunt_id)
            hunts_deleted += 1
        except RemoteError as e:
            logger.warning("Could not delete hunt %s: %s", hunt_id, e.message)
            errors.append(f"hunt {hunt_id}: {e.message}")

    if errors:
        return _failure_outcome(
            "hunt and relation operations", attempted, hunts_deleted + relations_deleted, errors
        )
    message = (
        f"Deleted {_plural(hunts_deleted, 'hunt')} "
        f"and {_plural(relations_deleted, 'relation')}"
    )
    logger.info(message)
    return CleanupOutcome(message=message, deleted=hunts_deleted + relations_deleted)


def purge_sentinel(client: SentinelClient) -> PurgeResult:
    """Remove everything this integration created. Never raises RemoteError."""
    query_cleanup = purge_saved_searches(client)
    hunt_cleanup = purge_hunts(client)
    result = PurgeResult(query_cleanup=query_cleanup, hunt_cleanup=hunt_cleanup)
    if result.has_errors:
        logger.warning("Purge completed with errors: %s", result.to_dict())
    return result
