"""
AccessKey handlers - Watch events of AccessKeys and their credential Secrets.

Both map to the Garage instance the key belongs to. Watching the Secrets
lets a credential Secret deleted out of band be rewritten on the next pass.
"""

import logging
from typing import Any

import kopf

from ..constants import (
    ACCESS_KEY_PLURAL,
    API_GROUP,
    API_VERSION,
    MANAGED_BY_LABEL_KEY,
    MANAGED_BY_LABEL_VALUE,
)
from .triggers import garage_key_for_ref, garage_key_from_annotation, should_enqueue

logger = logging.getLogger(__name__)


@kopf.on.event(API_GROUP, API_VERSION, ACCESS_KEY_PLURAL)
async def on_access_key_event(
    event: dict[str, Any], body: kopf.Body, memo: kopf.Memo, **kwargs
) -> None:
    if not should_enqueue(event.get("type"), body):
        return

    key = garage_key_for_ref(body)
    if key is not None:
        memo.queue.add(key)


@kopf.on.event(
    "v1",
    "secrets",
    labels={MANAGED_BY_LABEL_KEY: MANAGED_BY_LABEL_VALUE},
)
async def on_credentials_secret_event(
    event: dict[str, Any], body: kopf.Body, memo: kopf.Memo, **kwargs
) -> None:
    """Queue the owning instance when a credential Secret disappears."""
    if event.get("type") != "DELETED":
        return

    key = garage_key_from_annotation(body)
    if key is None:
        return
    logger.info(
        f"Credential secret {body.get('metadata', {}).get('namespace')}/"
        f"{body.get('metadata', {}).get('name')} deleted, queueing {key[0]}/{key[1]}"
    )
    memo.queue.add(key)
