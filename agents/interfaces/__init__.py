"""Shared abstract base classes for workflow agents."""

from .base import BaseNotificationAgent, BaseOrderAgent, BaseQuotingAgent

__all__ = [
    "BaseNotificationAgent",
    "BaseOrderAgent",
    "BaseQuotingAgent",
]
