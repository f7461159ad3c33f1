"""Payment gateway client: creates checkout orders for pending obligations."""

import os
import logging
import time
import requests

from exceptions import GatewayUnavailable
from utils.money import Money

logger = logging.getLogger(__name__)

# Environment configuration
PAYMENT_GATEWAY_KEY_ID = os.getenv("PAYMENT_GATEWAY_KEY_ID", "")
PAYMENT_GATEWAY_KEY_SECRET = os.getenv("PAYMENT_GATEWAY_KEY_SECRET", "change-this-gateway-secret")
PAYMENT_GATEWAY_URL = os.getenv("PAYMENT_GATEWAY_URL", "https://api.razorpay.com/v1")


class PaymentGateway:
    """
    Thin client for the gateway's order API.

    Constructed with credentials and handed to routes through a FastAPI
    dependency, so tests can swap in a fake.
    """

    def __init__(self, key_id: str, key_secret: str, base_url: str = PAYMENT_GATEWAY_URL, timeout: int = 10):
        self.key_id = key_id
        self.key_secret = key_secret
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def is_configured(self) -> bool:
        return bool(self.key_id and self.key_secret)

    def create_order(self, amount: Money, receipt: str, notes: dict = None) -> dict:
        """
        Create a gateway order for an amount.

        Args:
            amount: Amount to collect, in minor units (paise for INR)
            receipt: Our reference for the order (shown in the gateway dashboard)
            notes: Free-form key/value metadata stored with the order

        Returns:
            The gateway's order object; its "id" is our order reference.

        Raises:
            GatewayUnavailable: gateway not configured, unreachable, or returned an error
        """
        if not self.is_configured():
            logger.error("Payment gateway not configured: PAYMENT_GATEWAY_KEY_ID and PAYMENT_GATEWAY_KEY_SECRET required")
            raise GatewayUnavailable("Payment gateway is not configured")

        payload = {
            "amount": amount.amount,
            "currency": amount.currency,
            "receipt": receipt,
            "notes": notes or {},
        }

        try:
            response = requests.post(
                f"{self.base_url}/orders",
                json=payload,
                auth=(self.key_id, self.key_secret),
                timeout=self.timeout
            )
        except requests.exceptions.Timeout as e:
            logger.error("Payment gateway request timed out")
            raise GatewayUnavailable("Payment gateway timed out") from e
        except requests.exceptions.RequestException as e:
            logger.error(f"Payment gateway request failed: {e}")
            raise GatewayUnavailable() from e

        if response.status_code not in (200, 201):
            logger.error(f"Payment gateway error ({response.status_code}): {response.text}")
            raise GatewayUnavailable(f"Payment gateway returned {response.status_code}")

        order = response.json()
        if not order.get("id"):
            logger.error(f"Payment gateway returned an order without an id: {order}")
            raise GatewayUnavailable("Payment gateway returned an invalid order")

        logger.info(f"Created gateway order {order['id']} for {amount} (receipt {receipt})")
        return order


def make_receipt(bill_id: int, obligation_id: int) -> str:
    return f"bill_{bill_id}_{obligation_id}_{int(time.time() * 1000)}"
