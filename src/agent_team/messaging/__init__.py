"""Team messaging: addressed, thread-indexed message bus."""

from agent_team.messaging.bus import (
    DeliveryError,
    MessageBus,
    MessageCallback,
    Unsubscribe,
    role_address,
)

__all__ = ["DeliveryError", "MessageBus", "MessageCallback", "Unsubscribe", "role_address"]
