"""Domain events for order and delivery state changes.

Events are dispatched after the surrounding transaction commits, with
``send_robust`` so a failing receiver is logged and never undoes a state
change that has already been persisted.
"""

import logging

from django.db import transaction
from django.dispatch import Signal

logger = logging.getLogger(__name__)

# kwargs: order, previous, current, actor
order_status_changed = Signal()

# kwargs: delivery, previous, current, actor
delivery_status_changed = Signal()


def _dispatch(signal, sender, **kwargs):
    for receiver, result in signal.send_robust(sender=sender, **kwargs):
        if isinstance(result, Exception):
            logger.error(
                "Receiver %r failed for %s: %s",
                receiver, sender.__name__, result,
                exc_info=(type(result), result, result.__traceback__),
            )


def emit_on_commit(signal, sender, **kwargs):
    """Send ``signal`` once the current transaction commits."""
    transaction.on_commit(lambda: _dispatch(signal, sender, **kwargs))
