"""
auth/notifications.py -- Fire-and-forget dispatch of token emails.

The flows hand a (purpose, account, token) triple to Mailer.send(). The
Mailer builds the Notification payload and passes it to a NotificationChannel
on a worker thread. Transport belongs to the channel; this module only
guarantees that a delivery failure is logged and never reaches the flow that
triggered it -- by then the account change has already been committed.
"""

from __future__ import annotations

import logging
from concurrent.futures import Executor
from typing import Protocol

from auth.models import Account, Notification
from auth.tokens import TokenPurpose

logger = logging.getLogger("lodgekeeper.mail")


class NotificationChannel(Protocol):
    def deliver(self, notification: Notification) -> None: ...


class LogChannel:
    """Default channel: records the dispatch in the application log.

    Never logs the token itself.
    """

    def deliver(self, notification: Notification) -> None:
        logger.info("Would send %s email to %s", notification.purpose, notification.account_email)


class Mailer:
    """Build notification payloads and hand them to a channel.

    With an executor, delivery runs in the background and send() returns
    immediately. Without one (tests, scripts), delivery runs inline with the
    same failure isolation.
    """

    def __init__(self, channel: NotificationChannel, executor: Executor | None = None) -> None:
        self._channel = channel
        self._executor = executor

    def send(self, purpose: TokenPurpose, account: Account, token: str) -> None:
        notification = Notification(account_email=account.email, purpose=purpose.value, token=token)
        if self._executor is None:
            self._deliver(notification)
        else:
            self._executor.submit(self._deliver, notification)

    def _deliver(self, notification: Notification) -> None:
        try:
            self._channel.deliver(notification)
        except Exception:
            logger.exception(
                "Failed to deliver %s email to %s",
                notification.purpose,
                notification.account_email,
            )
