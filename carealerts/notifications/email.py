"""
Email dispatch for care alerts: messages are queued in the store's outbox
and picked up by an external mailer.
"""

import asyncio

from carealerts.notifications.models import EmailMessage
from carealerts.providers.base import EmailDispatcher
from carealerts.store.sqlite import CareStore
from carealerts.shared.logging import get_logger

logger = get_logger(__name__)


class OutboxEmailDispatcher(EmailDispatcher):
    """Queues care-alert emails in the email_outbox table."""

    def __init__(self, store: CareStore):
        self.store = store

    async def dispatch_email(self, message: EmailMessage) -> None:
        outbox_id = await asyncio.to_thread(self.store.enqueue_email, message)
        logger.info(
            f"Queued care alert email {outbox_id}",
            extra={"teacher_id": message.recipient_id, "action": "dispatch_email", "severity": message.severity},
        )
