"""Reference price feed: informational exchange rate for display.

The escrow exposes a reference price (8-decimal fixed point) so clients
can show contributions in a familiar currency. It is advisory only and
never enters fee, payout, or refund arithmetic.
"""

from __future__ import annotations

from typing import Optional, Protocol, runtime_checkable

import structlog


logger = structlog.get_logger(__name__)

PRICE_DECIMALS = 8
DEFAULT_REFERENCE_PRICE = 10**PRICE_DECIMALS  # 1.0


@runtime_checkable
class PriceOracle(Protocol):
    """External price source returning an 8-decimal fixed-point rate."""

    def latest_answer(self) -> int:
        ...


class FixedPriceOracle:
    """Oracle that always answers the same rate."""

    def __init__(self, answer: int) -> None:
        self._answer = answer

    def latest_answer(self) -> int:
        return self._answer


def reference_price(
    oracle: Optional[PriceOracle],
    default: int = DEFAULT_REFERENCE_PRICE,
) -> int:
    """Return the oracle's rate, or default when absent or unusable.

    Oracle failures never propagate: the value is informational, so a
    broken feed degrades to the default and is logged.
    """
    if oracle is None:
        return default
    try:
        answer = oracle.latest_answer()
    except Exception as e:
        logger.warning("price_feed_unavailable", error=str(e))
        return default
    if not isinstance(answer, int) or isinstance(answer, bool) or answer <= 0:
        logger.warning("price_feed_invalid_answer", answer=repr(answer))
        return default
    return answer


def format_price(price: int, decimals: int = PRICE_DECIMALS) -> str:
    """Render a fixed-point price as a decimal string (e.g. '1.00000000')."""
    whole, frac = divmod(price, 10**decimals)
    return f"{whole}.{frac:0{decimals}d}"
