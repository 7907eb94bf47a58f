"""Realtime seat-map channels."""

from seathold.realtime.registry import Channel, ConnectionRegistry

__all__ = ["Channel", "ConnectionRegistry"]
