"""Gateways to the chat platform and the external metadata catalog."""

from animebell.gateways.delivery import DeliveryGateway, InlineAction, TelegramDeliveryGateway
from animebell.gateways.metadata import (
    AniListGateway,
    MediaNode,
    MetadataGateway,
    RelationEdge,
)

__all__ = [
    "AniListGateway",
    "DeliveryGateway",
    "InlineAction",
    "MediaNode",
    "MetadataGateway",
    "RelationEdge",
    "TelegramDeliveryGateway",
]
