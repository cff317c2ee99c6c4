# lanka_basket/services/webhook_signature.py
import stripe

from lanka_basket.domain.errors import AuthenticationError


def verify_signature(
    payload: bytes,
    header: str | None,
    secret: str,
    tolerance: int = 300,
) -> None:
    """
    Checks the processor's `Stripe-Signature` header against the raw body.
    Raises AuthenticationError on any mismatch; the body is parsed later by the caller.
    """
    if not secret:
        raise AuthenticationError("Webhook secret is not configured")
    if not header:
        raise AuthenticationError("Missing signature header")

    try:
        stripe.WebhookSignature.verify_header(
            payload.decode("utf-8"), header, secret, tolerance=tolerance
        )
    except UnicodeDecodeError:
        raise AuthenticationError("Payload is not valid UTF-8")
    except stripe.SignatureVerificationError as e:
        raise AuthenticationError(e.user_message or "Invalid signature")
