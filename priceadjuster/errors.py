"""Error taxonomy for the price automation engine."""

from __future__ import annotations

from decimal import Decimal


class PriceAutomationError(RuntimeError):
    pass


class ConfigurationError(PriceAutomationError):
    """Required configuration is missing or malformed; fatal at startup."""


class AuthenticationFailure(PriceAutomationError):
    """A change notification failed signature verification."""


class CatalogError(PriceAutomationError):
    """The catalog rejected a request."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class NotFoundError(CatalogError):
    """The entity vanished between read and write."""


class TransientUpstreamError(CatalogError):
    """Network, rate-limit or 5xx failure from the catalog."""


class LedgerWriteError(TransientUpstreamError):
    pass


class PolicyViolation(PriceAutomationError):
    def __init__(self, variant_id: str, sale_price: Decimal, reference_price: Decimal) -> None:
        super().__init__(
            f"Variant {variant_id}: sale price {sale_price} is not below reference price {reference_price}"
        )
        self.variant_id = variant_id
        self.sale_price = sale_price
        self.reference_price = reference_price
