"""Delivery channels and message rendering."""

from .channel import DeliveryChannel, LogChannel, WebhookChannel
from .render import render_item, truncate

__all__ = ["DeliveryChannel", "LogChannel", "WebhookChannel", "render_item", "truncate"]
