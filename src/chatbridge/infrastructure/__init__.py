"""Infrastructure layer."""

from chatbridge.infrastructure.delivery_queue import InboundDeliveryQueue
from chatbridge.infrastructure.persistence import Database

__all__ = ["Database", "InboundDeliveryQueue"]
