"""
Providers — one PaymentGateway per payment provider.

    gateways = {
        PaymentProvider.STRIPE: StripeGateway(secret_key, webhook_secret),
        PaymentProvider.RAZORPAY: HmacGateway(PaymentProvider.RAZORPAY, secret),
    }
"""

from ordercore.providers._protocol import GatewayError, PaymentGateway
from ordercore.providers._signature import sign, verify_hex, stripe_header
from ordercore.providers._stripe import StripeGateway, StripeEvent
from ordercore.providers._hmac import HmacGateway, WebhookPayload

__all__ = (
    "GatewayError",
    "PaymentGateway",
    "sign",
    "verify_hex",
    "stripe_header",
    "StripeGateway",
    "StripeEvent",
    "HmacGateway",
    "WebhookPayload",
)
