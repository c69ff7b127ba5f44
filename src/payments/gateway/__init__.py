"""Payment gateway factory.

``build_gateway(settings)`` picks the implementation:
- FakeGateway for development and testing
- TapPayGateway for production
"""

from payments.gateway.fake_adapter import FakeGateway
from payments.gateway.port import PaymentGateway
from payments.gateway.tappay_adapter import TapPayGateway
from shared.config import Settings


class GatewayConfigurationError(ValueError):
    pass


def build_gateway(settings: Settings) -> PaymentGateway:
    """Return a gateway for the configured ``STYLISH_GATEWAY``."""
    if settings.gateway == "fake":
        if settings.is_production:
            raise GatewayConfigurationError("The fake gateway cannot be used in production")
        return FakeGateway()

    if settings.gateway == "tappay":
        if not settings.tappay_partner_key or not settings.tappay_merchant_id:
            raise GatewayConfigurationError("TapPay needs STYLISH_TAPPAY_PARTNER_KEY and STYLISH_TAPPAY_MERCHANT_ID")
        return TapPayGateway(
            partner_key=settings.tappay_partner_key,
            merchant_id=settings.tappay_merchant_id,
            base_url=settings.tappay_base_url,
            timeout=settings.gateway_timeout,
        )

    raise GatewayConfigurationError(f"Unknown payment gateway: {settings.gateway}")
