"""Web Push delivery."""

from .push import DeliveryError, PushNotifier, WebPushNotifier, build_notifier

__all__ = ["DeliveryError", "PushNotifier", "WebPushNotifier", "build_notifier"]
