"""Domain entities."""

from chatbridge.domain.entities.caller import Caller
from chatbridge.domain.entities.channel import Channel, ChannelState, ChannelType
from chatbridge.domain.entities.chat_message import ChatMessage
from chatbridge.domain.entities.event import Event, Position
from chatbridge.domain.entities.external_channel_mapping import (
    ExternalChannelMapping,
    ExternalPlatform,
)
from chatbridge.domain.entities.inbound_delivery import InboundDelivery, InboundMessage

__all__ = [
    "Caller",
    "Channel",
    "ChannelState",
    "ChannelType",
    "ChatMessage",
    "Event",
    "ExternalChannelMapping",
    "ExternalPlatform",
    "InboundDelivery",
    "InboundMessage",
    "Position",
]
