"""Canonical data packet exchanged between pipeline steps."""

from ingestflow.packets.schemas import (
    DataPacket,
    PacketAttachments,
    PacketContent,
    PacketFormat,
    PacketMetadata,
    PacketProcessing,
)

__all__ = [
    "DataPacket",
    "PacketAttachments",
    "PacketContent",
    "PacketFormat",
    "PacketMetadata",
    "PacketProcessing",
]
