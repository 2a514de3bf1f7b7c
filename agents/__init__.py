"""Agent modules for the shipping label automation project."""

__all__ = [
    "easypost_agent",
    "fulfillment_workflow",
    "interfaces",
    "notification_agent",
    "rate_selection",
    "shipping_rate_agent",
    "shopify_agent",
]
