"""Notifications — flow events fanned out to UI subscribers."""

from contract_checkout.notifications.events import FlowEvent, PaymentEvent, StepEvent
from contract_checkout.notifications.service import NotificationService

__all__ = ["FlowEvent", "NotificationService", "PaymentEvent", "StepEvent"]
