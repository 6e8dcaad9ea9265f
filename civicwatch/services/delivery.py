# civicwatch/services/delivery.py
from __future__ import annotations

import logging
from typing import Protocol, Sequence

log = logging.getLogger("civicwatch.delivery")


class DeliveryProvider(Protocol):
    """Outbound email/SMS transport."""

    name: str

    def send(self, recipient: str, subject: str, body: str) -> bool:
        ...


class LoggingDeliveryProvider:
    """Writes the message to the log instead of sending it."""

    name = "log"

    def send(self, recipient: str, subject: str, body: str) -> bool:
        log.info("delivery[log] to=%s subject=%r body=%r", recipient, subject, body)
        return True


class DeliveryChain:
    """
    Tries each provider in order and stops at the first success.
    Never raises; returns False when every provider failed.
    """

    def __init__(self, providers: Sequence[DeliveryProvider]):
        self.providers = list(providers)

    def send(self, recipient: str, subject: str, body: str) -> bool:
        if not recipient:
            return False
        for provider in self.providers:
            try:
                if provider.send(recipient, subject, body):
                    return True
                log.warning("delivery provider %s declined recipient=%s", provider.name, recipient)
            except Exception:
                log.exception("delivery provider %s failed recipient=%s", provider.name, recipient)
        log.error("all delivery providers failed recipient=%s subject=%r", recipient, subject)
        return False
