"""
Bucket handlers - Watch events of Buckets.

A bucket is reconciled as part of the Garage instance it refers to, so its
events enqueue that instance.
"""

import logging
from typing import Any

import kopf

from ..constants import API_GROUP, API_VERSION, BUCKET_PLURAL
from .triggers import garage_key_for_ref, should_enqueue

logger = logging.getLogger(__name__)


@kopf.on.event(API_GROUP, API_VERSION, BUCKET_PLURAL)
async def on_bucket_event(
    event: dict[str, Any], body: kopf.Body, memo: kopf.Memo, **kwargs
) -> None:
    if not should_enqueue(event.get("type"), body):
        return

    key = garage_key_for_ref(body)
    if key is not None:
        memo.queue.add(key)
