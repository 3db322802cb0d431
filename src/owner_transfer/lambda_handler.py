"""Lambda entrypoint that runs one transfer slice per invocation."""
import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from owner_transfer.driver import build_driver
from owner_transfer.settings import Settings, get_settings

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    # Lambda installs its own root handler; basicConfig only sets the level there
    logging.basicConfig(level=level)
    logging.getLogger().setLevel(level)


def slice_budget(settings: Settings, context: Any) -> float:
    """Budget for this invocation, leaving the safety margin for the checkpoint write."""
    budget = settings.slice_budget_seconds
    if context is not None and hasattr(context, "get_remaining_time_in_millis"):
        remaining = context.get_remaining_time_in_millis() / 1000.0
        budget = min(budget, max(remaining - settings.lambda_safety_margin_seconds, 0.0))
    return budget


def handler(event: Optional[Dict[str, Any]], context: Any, settings: Optional[Settings] = None) -> Dict[str, Any]:
    """Run one slice.

    EventBridge Scheduler invokes this with ``{"entrypoint", "queue_key"}``.
    Store and scheduler failures are not caught: the invocation fails and the
    last persisted checkpoint stays in place.
    """
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    event = event or {}
    queue_key = event.get("queue_key")
    if queue_key and queue_key != settings.queue_key:
        logger.warning(
            "Event names queue %s but this function is configured for %s",
            queue_key, settings.queue_key
        )

    driver = build_driver(settings)
    budget = slice_budget(settings, context)
    logger.info(f"Running slice for {settings.queue_key} with a {budget:.1f}s budget")

    result = driver.run_slice(budget_seconds=budget)

    response = {
        'timestamp': datetime.now(timezone.utc).isoformat(),
        'queue_key': settings.queue_key,
        'action': result.action.value,
        'handled': result.handled,
        'remaining': result.remaining,
        'owners_changed': result.owners_changed,
        'owner_failures': result.owner_failures,
        'unresolved': result.unresolved,
        'listing_failures': result.listing_failures,
        'already_complete': result.already_complete,
    }
    return {'statusCode': 200, 'body': json.dumps(response)}


# Export handler for Lambda runtime
lambda_handler = handler
