"""
Mapping of watch events to Garage keys.

Every watched kind funnels into the same queue of Garage instances. These
helpers decide whether an event is worth a pass and which instance it
concerns.
"""

import logging
from collections.abc import Mapping
from typing import Any

from ..constants import GARAGE_REF_ANNOTATION

logger = logging.getLogger(__name__)

GarageKey = tuple[str, str]

# Event types that always trigger a pass. None is the initial listing.
_ALWAYS = {None, "ADDED", "DELETED"}


def should_enqueue(event_type: str | None, body: Mapping[str, Any]) -> bool:
    """
    Whether an event carries a change the operator has not seen yet.

    Status writes do not bump ``metadata.generation``, so the operator's own
    writes are filtered out here.
    """
    if event_type in _ALWAYS:
        return True

    metadata = body.get("metadata") or {}
    if metadata.get("deletionTimestamp"):
        return True

    status = body.get("status") or {}
    return metadata.get("generation") != status.get("observedGeneration")


def garage_key(body: Mapping[str, Any]) -> GarageKey | None:
    metadata = body.get("metadata") or {}
    namespace, name = metadata.get("namespace"), metadata.get("name")
    if not namespace or not name:
        return None
    return (namespace, name)


def garage_key_for_ref(body: Mapping[str, Any]) -> GarageKey | None:
    """Instance named by the ``garageRef`` of a Bucket or AccessKey."""
    ref = (body.get("spec") or {}).get("garageRef")
    if not isinstance(ref, Mapping):
        logger.debug(f"Ignoring {_describe(body)}: garageRef is not an object")
        return None

    namespace, name = ref.get("namespace"), ref.get("name")
    if not (isinstance(namespace, str) and namespace and isinstance(name, str) and name):
        logger.debug(f"Ignoring {_describe(body)}: incomplete garageRef")
        return None
    return (namespace, name)


def garage_key_from_annotation(body: Mapping[str, Any]) -> GarageKey | None:
    """Instance recorded on a credential Secret as ``<namespace>/<name>``."""
    annotations = (body.get("metadata") or {}).get("annotations") or {}
    value = annotations.get(GARAGE_REF_ANNOTATION)
    if not value:
        return None

    namespace, sep, name = value.partition("/")
    if not sep or not namespace or not name:
        logger.debug(f"Ignoring {_describe(body)}: malformed {GARAGE_REF_ANNOTATION}")
        return None
    return (namespace, name)


def _describe(body: Mapping[str, Any]) -> str:
    metadata = body.get("metadata") or {}
    return f"{body.get('kind', 'object')} {metadata.get('namespace')}/{metadata.get('name')}"
