from collections.abc import Callable

from bazaar.core.config import Settings
from bazaar.core.exceptions import BadRequestError
from bazaar.models.order import ProviderKind
from bazaar.payments.base import PaymentProvider


class ProviderRegistry:
    """Builds each provider on first use so an unconfigured one only fails when asked for."""

    def __init__(self, builders: dict[ProviderKind, Callable[[], PaymentProvider]]) -> None:
        self._builders = builders
        self._built: dict[ProviderKind, PaymentProvider] = {}

    def get(self, kind: ProviderKind | str) -> PaymentProvider:
        try:
            kind = ProviderKind(kind)
        except ValueError:
            raise BadRequestError(f"Unknown payment provider: {kind}") from None
        if kind not in self._built:
            builder = self._builders.get(kind)
            if builder is None:
                raise BadRequestError(f"Payment provider not available: {kind.value}")
            self._built[kind] = builder()
        return self._built[kind]


def build_registry(settings: Settings, catalog=None) -> ProviderRegistry:
    def _upi() -> PaymentProvider:
        from bazaar.payments.upi import UpiProvider
        return UpiProvider(settings.upi_payee_vpa, settings.upi_payee_name, catalog=catalog)

    def _razorpay() -> PaymentProvider:
        from bazaar.payments.razorpay_provider import RazorpayProvider
        return RazorpayProvider(settings.razorpay_key_id, settings.razorpay_key_secret)

    def _cashfree() -> PaymentProvider:
        from bazaar.payments.cashfree_provider import CashfreeProvider
        return CashfreeProvider(
            settings.cashfree_app_id,
            settings.cashfree_secret_key,
            base_url=settings.cashfree_base_url,
            api_version=settings.cashfree_api_version,
            public_base_url=settings.public_base_url,
            default_phone=settings.cashfree_default_phone,
        )

    return ProviderRegistry(
        {
            ProviderKind.UPI: _upi,
            ProviderKind.RAZORPAY: _razorpay,
            ProviderKind.CASHFREE: _cashfree,
        }
    )
