from __future__ import annotations

from typing import Any, Dict, Mapping, Optional, Protocol

import requests
from py_vapid import VapidException
from pywebpush import WebPushException, webpush

from ..config import ConfigError, Settings
from ..logging import get_logger


LOG = get_logger("notify-push")

# Push services answer 404/410 once the browser has dropped the subscription.
EXPIRED_STATUS_CODES = {404, 410}


class DeliveryError(Exception):
    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        self.status_code = status_code
        super().__init__(message)

    @property
    def expired(self) -> bool:
        return self.status_code in EXPIRED_STATUS_CODES


class PushNotifier(Protocol):
    def send(self, subscription: Mapping[str, Any], payload: str) -> None:
        ...


class WebPushNotifier:
    """Deliver one Web Push message per call using VAPID credentials.

    ``vapid_private_key`` is the raw P-256 private key, base64url encoded
    without padding (the form web-push key generators print), or a DER key.
    Every failure for a single subscription surfaces as ``DeliveryError``.
    """

    def __init__(self, vapid_private_key: str, vapid_email: str, *, ttl: int = 86400, timeout: int = 10) -> None:
        self.vapid_private_key = vapid_private_key
        subject = vapid_email if vapid_email.startswith(("mailto:", "https://")) else f"mailto:{vapid_email}"
        self.vapid_claims: Dict[str, str] = {"sub": subject}
        self.ttl = ttl
        self.timeout = timeout

    def send(self, subscription: Mapping[str, Any], payload: str) -> None:
        endpoint = str(subscription.get("endpoint") or "")
        try:
            webpush(
                subscription_info=dict(subscription),
                data=payload,
                vapid_private_key=self.vapid_private_key,
                vapid_claims=dict(self.vapid_claims),
                ttl=self.ttl,
                timeout=self.timeout,
            )
        except WebPushException as exc:
            status = getattr(exc.response, "status_code", None) if exc.response is not None else None
            raise DeliveryError(f"Push service rejected notification: {exc}", status_code=status) from exc
        except VapidException as exc:
            # the JWT audience is derived from the endpoint URL
            raise DeliveryError(f"Cannot sign VAPID claims for endpoint: {exc}") from exc
        except requests.RequestException as exc:
            raise DeliveryError(f"Push transport failure: {exc}") from exc
        except (ValueError, TypeError) as exc:
            # malformed subscription keys fail inside payload encryption
            raise DeliveryError(f"Cannot encrypt push payload for endpoint: {exc}") from exc
        LOG.debug("Push delivered to endpoint %s...", endpoint[:60])


def build_notifier(settings: Settings) -> WebPushNotifier:
    if not settings.vapid_public_key or not settings.vapid_private_key:
        raise ConfigError("VAPID_PUBLIC_KEY and VAPID_PRIVATE_KEY must be set as environment variables.")
    return WebPushNotifier(settings.vapid_private_key, settings.vapid_email)
