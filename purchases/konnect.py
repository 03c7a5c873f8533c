"""
Konnect payment gateway client.

Wraps the two Konnect endpoints the checkout flow needs:

- ``POST /payments/init-payment`` to open a hosted payment session
- ``GET /payments/<payment_ref>`` to read the authoritative payment status

Configuration is read once from Django settings into an immutable
``KonnectConfig`` and passed to the client explicitly.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Optional
from urllib.parse import quote

import requests
from django.conf import settings

from .exceptions import KonnectAPIError

logger = logging.getLogger(__name__)

# Konnect amounts are expressed in millimes (1 TND = 1000 millimes).
MILLIMES_PER_UNIT = 1000


def to_millimes(amount) -> int:
    return int((Decimal(str(amount)) * MILLIMES_PER_UNIT).to_integral_value())


def from_millimes(amount) -> Decimal:
    return Decimal(str(amount)) / MILLIMES_PER_UNIT


@dataclass(frozen=True)
class KonnectConfig:
    api_key: str
    base_url: str
    receiver_wallet_id: str
    currency: str
    lifespan_minutes: int
    timeout: float
    site_base_url: str
    frontend_url: str

    @classmethod
    def from_settings(cls) -> "KonnectConfig":
        return cls(
            api_key=settings.KONNECT_API_KEY,
            base_url=settings.KONNECT_BASE_URL.rstrip("/"),
            receiver_wallet_id=settings.KONNECT_RECEIVER_WALLET_ID,
            currency=settings.KONNECT_CURRENCY,
            lifespan_minutes=settings.KONNECT_LIFESPAN_MINUTES,
            timeout=settings.KONNECT_TIMEOUT,
            site_base_url=settings.BASE_URL.rstrip("/"),
            frontend_url=settings.FRONTEND_URL.rstrip("/"),
        )


class KonnectClient:
    def __init__(self, config: KonnectConfig):
        self.config = config

    def _headers(self) -> Dict[str, str]:
        return {
            "x-api-key": self.config.api_key,
            "Content-Type": "application/json",
        }

    def _request(
        self, method: str, path: str, payload: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        url = f"{self.config.base_url}{path}"
        try:
            response = requests.request(
                method,
                url,
                json=payload,
                headers=self._headers(),
                timeout=self.config.timeout,
            )
        except requests.exceptions.RequestException as e:
            logger.error(f"Konnect request {method} {path} failed: {e}")
            raise KonnectAPIError(f"Konnect request failed: {e}") from e

        try:
            data = response.json()
        except ValueError:
            data = {"raw_response": response.text}

        if not response.ok:
            logger.error(f"Konnect {method} {path} returned {response.status_code}")
            raise KonnectAPIError(
                f"Konnect returned HTTP {response.status_code}",
                status_code=response.status_code,
                response_data=data,
            )
        return data

    def init_payment(self, payment_data: Dict[str, Any]) -> Dict[str, Any]:
        """Open a payment session. Konnect answers with ``payUrl`` and ``paymentRef``."""
        return self._request("POST", "/payments/init-payment", payment_data)

    def get_payment(self, payment_ref: str) -> Dict[str, Any]:
        """Return the ``payment`` object (status, amount, orderId) for a reference."""
        data = self._request("GET", f"/payments/{quote(payment_ref, safe='')}")
        return data.get("payment") or {}


def get_client() -> KonnectClient:
    return KonnectClient(KonnectConfig.from_settings())
