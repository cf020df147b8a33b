# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Dramatiq broker configuration for GradePulse.

Maintenance jobs (snapshot capture, retention archiving, reconciliation
and cache sweeps) run on Dramatiq workers over a Redis broker. Jobs
return small summaries for logging; nobody waits on their results, so
no result backend is configured.

``DRAMATIQ_TEST_MODE=true`` selects an in-memory StubBroker, which lets
the actors be imported without Redis.

Example:
    from src.infrastructure.background.broker import setup_dramatiq

    # Before the actors are imported
    broker = setup_dramatiq()
"""

import logging
import os

import dramatiq
from dramatiq.brokers.redis import RedisBroker
from dramatiq.brokers.stub import StubBroker

from src.core.config import get_settings
from src.infrastructure.background.middleware import LogContextMiddleware

logger = logging.getLogger(__name__)


class Queues:
    """Queue name constants for job routing."""

    DEFAULT = "default"
    SNAPSHOTS = "snapshots"
    MAINTENANCE = "maintenance"


class Priority:
    """Job priority levels (lower number = higher priority)."""

    HIGH = 1
    NORMAL = 3
    LOW = 5


def _test_mode() -> bool:
    return os.getenv("DRAMATIQ_TEST_MODE", "false").lower() == "true"


def _create_broker() -> dramatiq.Broker:
    if _test_mode():
        broker = StubBroker()
        broker.emit_after("process_boot")
        logger.info("Using StubBroker for testing")
    else:
        redis_url = get_settings().redis.url
        broker = RedisBroker(url=redis_url)
        logger.info("Redis broker initialized (host: %s)", redis_url.split("@")[-1])

    broker.add_middleware(LogContextMiddleware())
    return broker


# Process-wide broker
_broker: dramatiq.Broker | None = None


def setup_dramatiq() -> dramatiq.Broker:
    """Create the process-wide broker once and make it Dramatiq's global broker.

    Returns:
        The configured broker.
    """
    global _broker
    if _broker is None:
        _broker = _create_broker()
        dramatiq.set_broker(_broker)
    return _broker


def shutdown_dramatiq() -> None:
    """Close the process-wide broker."""
    global _broker
    if _broker is not None:
        _broker.close()
        _broker = None
        logger.info("Broker shutdown complete")
