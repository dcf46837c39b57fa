import math
from typing import Dict, Optional

import requests
from flask import current_app

DEFAULT_STRIPE_API_BASE = "https://api.stripe.com"


class PaymentProcessorError(Exception):
    """The payment processor could not be reached or rejected the request."""


class UnpricedPlantError(Exception):
    """The plant has no usable price to charge for."""


def parse_unit_price(value) -> Optional[float]:
    if isinstance(value, bool) or value is None:
        return None
    try:
        unit_price = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(unit_price) or unit_price <= 0:
        return None
    return unit_price


def to_minor_units(unit_price: float, quantity: int) -> int:
    return int(round(quantity * unit_price * 100))


class StripePaymentProcessor:
    def __init__(
        self,
        secret_key: Optional[str],
        api_base: str = DEFAULT_STRIPE_API_BASE,
        timeout: float = 10.0,
    ):
        self.secret_key = secret_key
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout

    def create_intent(self, amount: int, currency: str) -> str:
        if not self.secret_key:
            raise ValueError("Payment configuration is incomplete. Please contact support.")

        payload = {
            "amount": amount,
            "currency": currency,
            "automatic_payment_methods[enabled]": "true",
        }
        try:
            response = requests.post(
                f"{self.api_base}/v1/payment_intents",
                data=payload,
                auth=(self.secret_key, ""),
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            current_app.logger.error(f"Payment intent request failed: {exc}")
            raise PaymentProcessorError("Failed to reach payment provider.") from exc

        if not response.ok:
            current_app.logger.error(
                f"Payment intent rejected ({response.status_code}): {response.text}"
            )
            raise PaymentProcessorError("Failed to create payment intent.")

        client_secret = response.json().get("client_secret")
        if not client_secret:
            raise PaymentProcessorError("Payment provider returned no client secret.")
        return client_secret


class PaymentBridge:
    """Prices an order from the catalog and asks the processor for a client secret."""

    def __init__(self, catalog, processor, currency: str = "usd"):
        self.catalog = catalog
        self.processor = processor
        self.currency = currency

    def create_payment_intent(self, plant_id, quantity: int) -> Optional[Dict[str, str]]:
        """Return ``{"secret": ...}`` or ``None`` when the plant does not exist.

        The processor is only contacted once the plant is known and priced;
        a missing or non-positive price raises ``UnpricedPlantError``. Stock is
        not checked against ``quantity``.
        """
        plant = self.catalog.get_plant(plant_id)
        if not plant:
            return None

        unit_price = parse_unit_price(plant.get("price"))
        if unit_price is None:
            raise UnpricedPlantError(f"Plant {plant_id} has no valid price.")

        amount = to_minor_units(unit_price, quantity)
        current_app.logger.info(
            f"Creating payment intent for plant {plant_id}: {amount} {self.currency}"
        )
        client_secret = self.processor.create_intent(amount, self.currency)
        return {"secret": client_secret}
