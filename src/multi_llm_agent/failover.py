"""Failover across backend services

``FailoverController`` drives a ``ConversationSession`` against an ordered
list of adapters. A rate-limited service is skipped in favour of the next
one (wrapping around); any other failure propagates immediately. After
``failover_rounds * len(services)`` failed attempts the controller gives up
with ``ServicesExhaustedError``.
"""

import asyncio
import enum
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from .config import AppConfig, get_config
from .errors import ServicesExhaustedError
from .messages import Message
from .providers import create_adapter
from .providers.base import BackendAdapter
from .session import ConversationSession, Listener
from .tools import Tool

logger = logging.getLogger(__name__)

RATE_LIMIT_INDICATORS = (
    "rate limit",
    "quota exceeded",
    "too many requests",
    "rate_limit_exceeded",
    "quota_exceeded",
    "requests per minute",
    "rpm limit",
)


def is_rate_limit_error(error: Optional[BaseException]) -> bool:
    """Check if an error indicates a rate limit or quota issue

    HTTP 429 on ``status_code``, ``status`` or ``code`` counts, as does a
    message containing one of ``RATE_LIMIT_INDICATORS`` (case-insensitive).
    """
    if error is None:
        return False

    for attr in ("status_code", "status", "code"):
        value = getattr(error, attr, None)
        if value == 429 or (isinstance(value, str) and value.strip() == "429"):
            return True

    message = str(error).lower()
    return any(indicator in message for indicator in RATE_LIMIT_INDICATORS)


class FailoverPhase(enum.Enum):
    ATTEMPTING = "attempting"
    SUCCEEDED = "succeeded"
    EXHAUSTED = "exhausted"
    FAILED = "failed"


@dataclass
class ServiceStatus:
    adapter: BackendAdapter
    failure_count: int = 0
    last_failure_time: Optional[datetime] = None


class FailoverController:
    """Send turns through the first backend service that is not rate-limited.

    Args:
        services: Ordered, non-empty list of adapters
        session: Session to drive (a new one is built from ``session_kwargs``
                 when omitted)
        initial_index: Index of the service tried first
        failover_rounds: Attempts per service before giving up
        **session_kwargs: Passed to ConversationSession (tools, system_prompt, ...)
    """

    def __init__(
        self,
        services: List[BackendAdapter],
        session: Optional[ConversationSession] = None,
        initial_index: int = 0,
        failover_rounds: int = 3,
        **session_kwargs,
    ):
        if not services:
            raise ValueError("At least one backend service must be provided")
        if failover_rounds < 1:
            raise ValueError(f"failover_rounds must be >= 1, got {failover_rounds}")
        if not 0 <= initial_index < len(services):
            raise ValueError(f"initial_index out of range: {initial_index}")

        self.services = [ServiceStatus(adapter=adapter) for adapter in services]
        self.current_index = initial_index
        self.failover_rounds = failover_rounds
        self.phase: Optional[FailoverPhase] = None
        self._lock = asyncio.Lock()

        if session is None:
            session = ConversationSession(services[initial_index], **session_kwargs)
        elif session_kwargs:
            raise TypeError("session_kwargs cannot be combined with an existing session")
        self.session = session
        self.session.adapter = self.current_service.adapter

    @property
    def current_service(self) -> ServiceStatus:
        return self.services[self.current_index]

    @property
    def history(self) -> List[Message]:
        return self.session.history

    @property
    def max_attempts(self) -> int:
        return self.failover_rounds * len(self.services)

    def add_listener(self, listener: Listener) -> None:
        self.session.add_listener(listener)

    def remove_listener(self, listener: Listener) -> None:
        self.session.remove_listener(listener)

    def listening(self, listener: Listener):
        return self.session.listening(listener)

    def _record_failure(self, error: BaseException) -> None:
        status = self.current_service
        status.failure_count += 1
        status.last_failure_time = datetime.now()
        logger.warning(
            "Service %r failed (%d consecutive): %s", status.adapter, status.failure_count, error
        )

    def _rotate(self) -> None:
        self.current_index = (self.current_index + 1) % len(self.services)
        self.session.adapter = self.current_service.adapter
        logger.warning("Rotated to service: %r", self.current_service.adapter)

    async def send(self, message: Optional[Message] = None) -> Message:
        """Run one turn, rotating services on rate-limit failures.

        Concurrent calls run one after another, so a rotation never swaps
        the adapter under another turn.

        Raises:
            ServicesExhaustedError: If every attempt in the budget was
                                    rate-limited.
            Exception: The first non-rate-limit failure, unchanged.
        """
        async with self._lock:
            self.phase = FailoverPhase.ATTEMPTING
            last_error: Optional[BaseException] = None
            attempts = 0

            while attempts < self.max_attempts:
                self.session.adapter = self.current_service.adapter
                try:
                    if attempts == 0:
                        result = await self.session.send(message)
                    else:
                        result = await self.session.resume()
                except Exception as e:
                    last_error = e
                    self._record_failure(e)
                    if not is_rate_limit_error(e):
                        self.phase = FailoverPhase.FAILED
                        raise
                    self._rotate()
                else:
                    self.current_service.failure_count = 0
                    self.phase = FailoverPhase.SUCCEEDED
                    return result

                attempts += 1

            self.phase = FailoverPhase.EXHAUSTED
            logger.error("All services exhausted after %d attempts", attempts)
            raise ServicesExhaustedError(last_error, attempts) from last_error


def create_failover_controller(
    tools: Optional[List[Tool]] = None,
    system_prompt: str = "",
    config: Optional[AppConfig] = None,
) -> FailoverController:
    """Build a controller for the services listed in the configuration."""
    config = config or get_config()
    adapters = [
        create_adapter(service, parse_tool_calls=config.parse_tool_calls)
        for service in config.services
    ]
    return FailoverController(
        adapters,
        failover_rounds=config.failover_rounds,
        tools=tools,
        system_prompt=system_prompt,
        temperature=config.temperature,
        max_tokens=config.max_tokens,
        streaming=config.streaming,
        max_hops=config.max_hops or None,
    )
