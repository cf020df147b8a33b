# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Log context middleware for background processing.

Binds the actor name and message id to the structlog context while a
message is processed, so every log line a job emits can be traced back
to the message that produced it.
"""

import logging
from typing import Any

import dramatiq
from dramatiq import Message, Middleware

from src.utils.logging import bind_context, clear_context

logger = logging.getLogger(__name__)


class LogContextMiddleware(Middleware):
    """Binds message identifiers to the log context.

    Usage:
        broker.add_middleware(LogContextMiddleware())
    """

    def before_process_message(
        self,
        broker: dramatiq.Broker,
        message: Message,
    ) -> None:
        """Bind the message identifiers before processing.

        Args:
            broker: The broker instance.
            message: The message being processed.
        """
        bind_context(
            actor=message.actor_name,
            message_id=message.message_id,
            queue=message.queue_name,
        )
        logger.debug("Processing message %s (%s)", message.message_id, message.actor_name)

    def after_process_message(
        self,
        broker: dramatiq.Broker,
        message: Message,
        *,
        result: Any = None,
        exception: BaseException | None = None,
    ) -> None:
        """Clear the log context after processing.

        Args:
            broker: The broker instance.
            message: The processed message.
            result: The result of processing.
            exception: Any exception that occurred.
        """
        clear_context()

    def after_skip_message(
        self,
        broker: dramatiq.Broker,
        message: Message,
    ) -> None:
        """Clear the log context after skipping a message."""
        clear_context()
