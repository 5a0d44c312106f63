"""
Garage handlers - Watch events of Garage instances.

Events only enqueue the instance; the reconciliation itself runs on the
work queue workers.
"""

import logging
from typing import Any

import kopf

from ..constants import API_GROUP, API_VERSION, GARAGE_PLURAL
from .triggers import garage_key, should_enqueue

logger = logging.getLogger(__name__)


@kopf.on.event(API_GROUP, API_VERSION, GARAGE_PLURAL)
async def on_garage_event(
    event: dict[str, Any], body: kopf.Body, memo: kopf.Memo, **kwargs
) -> None:
    """Queue a Garage whose spec changed, appeared, or is being deleted."""
    if not should_enqueue(event.get("type"), body):
        return

    key = garage_key(body)
    if key is None:
        return
    logger.debug(f"Queueing garage {key[0]}/{key[1]} on {event.get('type')} event")
    memo.queue.add(key)
