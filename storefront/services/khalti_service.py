"""
Khalti ePayment client
Based on https://docs.khalti.com/khalti-epayment/
Authentication uses the merchant secret key: ``Authorization: Key <secret>``
"""
import logging
from typing import Any, Dict, Optional

import requests

from ..config import AppConfig
from ..errors import ExternalGatewayError


class KhaltiClient:
    """
    Thin wrapper over the two Khalti calls the checkout needs:
    - initiate: open a payment session for an amount in paisa
    - lookup: authoritative status of a session by ``pidx``
    Any transport failure or unexpected answer raises ``ExternalGatewayError``.
    """

    INITIATE_PATH = "/api/v2/epayment/initiate/"
    LOOKUP_PATH = "/api/v2/epayment/lookup/"

    def __init__(
        self,
        secret_key: str,
        gateway_url: str,
        timeout: float = 15.0,
        http: Optional[requests.Session] = None,
    ) -> None:
        self.secret_key = secret_key
        self.gateway_url = (gateway_url or "").rstrip("/")
        self.timeout = timeout
        self.http = http or requests.Session()
        self.logger = logging.getLogger(__name__)

    @classmethod
    def from_config(cls, config: AppConfig) -> "KhaltiClient":
        return cls(config.khalti_secret_key, config.khalti_gateway_url, timeout=config.gateway_timeout)

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Key {self.secret_key}",
            "Content-Type": "application/json",
        }

    def _post(self, path: str, payload: Dict[str, Any], action: str) -> Dict[str, Any]:
        if not self.secret_key or not self.gateway_url:
            raise ExternalGatewayError("Khalti gateway is not configured")
        try:
            response = self.http.post(
                f"{self.gateway_url}{path}",
                headers=self._headers(),
                json=payload,
                timeout=self.timeout,
            )
        except requests.exceptions.Timeout:
            self.logger.warning("Khalti %s timed out after %ss", action, self.timeout)
            raise ExternalGatewayError(f"Khalti {action} timed out")
        except requests.exceptions.RequestException as exc:
            self.logger.warning("Khalti %s failed: %s", action, exc)
            raise ExternalGatewayError(f"Failed to {action} payment with Khalti")

        if response.status_code != 200:
            detail = None
            try:
                body = response.json()
                detail = body.get("detail") or body.get("error_key")
            except ValueError:
                body = response.text[:200]
            self.logger.warning("Khalti %s error %s: %s", action, response.status_code, body)
            raise ExternalGatewayError(detail or f"Khalti {action} error: HTTP {response.status_code}")

        try:
            data = response.json()
        except ValueError:
            raise ExternalGatewayError(f"Khalti {action} returned a non-JSON body")
        if not isinstance(data, dict):
            raise ExternalGatewayError(f"Khalti {action} returned an unexpected body")
        return data

    def initiate(
        self,
        *,
        amount: int,
        purchase_order_id: str,
        purchase_order_name: str,
        return_url: str,
        website_url: str,
        customer_info: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        details = {
            "amount": amount,
            "purchase_order_id": purchase_order_id,
            "purchase_order_name": purchase_order_name,
            "return_url": return_url,
            "website_url": website_url,
        }
        for name in ("amount", "purchase_order_id", "purchase_order_name", "return_url", "website_url"):
            if not details[name]:
                raise ExternalGatewayError(f"Missing required field: {name}")
        if customer_info:
            details["customer_info"] = customer_info

        data = self._post(self.INITIATE_PATH, details, "initialize")
        if not data.get("pidx") or not data.get("payment_url"):
            raise ExternalGatewayError("Khalti initiate response missing pidx or payment_url")
        return data

    def lookup(self, pidx: str) -> Dict[str, Any]:
        if not pidx:
            raise ExternalGatewayError("Missing required field: pidx")
        data = self._post(self.LOOKUP_PATH, {"pidx": pidx}, "verify")
        if "status" not in data or "total_amount" not in data:
            raise ExternalGatewayError("Khalti lookup response missing status or total_amount")
        return data
