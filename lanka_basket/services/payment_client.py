# lanka_basket/services/payment_client.py
import uuid

import stripe
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

from lanka_basket.domain.errors import UpstreamError
from lanka_basket.utils.settings import PAYMENT_SECRET_KEY, PAYMENT_CURRENCY
from lanka_basket.utils.logging import get_logger

logger = get_logger(__name__)


def stripe_retry():
    # tylko bledy sieci, odrzucone zadanie nie jest ponawiane
    return retry(
        reraise=True,
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.3, min=0.3, max=3),
        retry=retry_if_exception_type(stripe.APIConnectionError),
    )


class PaymentClient:
    """Client for hosted checkout sessions, backed by the Stripe SDK."""

    def __init__(self, secret_key: str | None = None, currency: str | None = None):
        self.secret_key = secret_key if secret_key is not None else PAYMENT_SECRET_KEY
        self.currency = currency or PAYMENT_CURRENCY

    def create_checkout_session(
        self,
        line_items: list[dict],
        customer_email: str,
        metadata: dict,
        success_url: str,
        cancel_url: str,
        client_reference_id: str | None = None,
    ) -> dict:
        """
        line_items: [{"product_id", "name", "quantity", "unit_amount"}], unit_amount in minor units.
        Returns {"id", "url"} of the created session.
        """
        params = {
            "mode": "payment",
            "payment_method_types": ["card"],
            "customer_email": customer_email,
            "success_url": success_url,
            "cancel_url": cancel_url,
            "metadata": metadata,
            "line_items": [
                {
                    "price_data": {
                        "currency": self.currency,
                        "product_data": {
                            "name": item["name"],
                            "metadata": {"productId": str(item["product_id"])},
                        },
                        "unit_amount": item["unit_amount"],
                    },
                    "quantity": item["quantity"],
                }
                for item in line_items
            ],
        }
        if client_reference_id:
            params["client_reference_id"] = client_reference_id

        # ten sam klucz dla wszystkich prob, processor nie utworzy drugiej sesji
        idempotency_key = uuid.uuid4().hex

        try:
            session = self._create_session(params, idempotency_key)
        except stripe.APIConnectionError as e:
            logger.error(f"Payment processor unreachable: {e}")
            raise UpstreamError("Payment processor is unreachable") from e
        except stripe.StripeError as e:
            reason = e.user_message or "unknown error"
            logger.error(f"Payment processor rejected checkout session ({e.http_status}): {reason}")
            raise UpstreamError(f"Payment processor rejected the request: {reason}") from e

        try:
            session_id, url = session["id"], session["url"]
        except KeyError as e:
            raise UpstreamError("Payment processor returned an incomplete checkout session") from e
        if not session_id or not url:
            raise UpstreamError("Payment processor returned an incomplete checkout session")
        return {"id": session_id, "url": url}

    @stripe_retry()
    def _create_session(self, params: dict, idempotency_key: str):
        logger.info(f"Creating checkout session (idempotency key {idempotency_key})")
        return stripe.checkout.Session.create(
            api_key=self.secret_key,
            idempotency_key=idempotency_key,
            **params,
        )
