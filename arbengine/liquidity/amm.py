"""
AMM price-impact models.

Each supported pool family implements the same ``compute_impact`` contract.
``constant_product_impact`` is the one constant-product formula in the
package; the calculator and the validator both call it.
"""

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Tuple

from arbengine.errors import InvalidInput
from arbengine.models import PoolReserves, ProtocolFamily


# Impact never reaches 100% while the pool keeps any reserve
MAX_IMPACT_PCT = math.nextafter(100.0, 0.0)


@dataclass(frozen=True)
class ImpactResult:
    """Outcome of pushing ``amount_in`` through a pool."""
    family: ProtocolFamily
    amount_in: float
    amount_in_after_fee: float
    amount_out: float
    ideal_out: float
    price_before: float
    price_after: float
    impact_pct: float
    fee_rate: float

    @property
    def effective_price(self) -> float:
        if self.amount_in == 0:
            return self.price_before
        return self.amount_out / self.amount_in

    @property
    def slippage(self) -> float:
        """Fractional shortfall of the execution price versus spot, fees included."""
        if self.price_before == 0:
            return 0.0
        return max(0.0, (self.price_before - self.effective_price) / self.price_before)

    @property
    def is_high_impact(self) -> bool:
        return self.impact_pct > 1.0

    @property
    def is_critical_impact(self) -> bool:
        return self.impact_pct > 5.0


def _validate(reserve_in: float, reserve_out: float, amount_in: float, fee_rate: float) -> None:
    if reserve_in is None or reserve_out is None or reserve_in <= 0 or reserve_out <= 0:
        raise InvalidInput(f"Pool reserves must be positive (got {reserve_in}, {reserve_out})")
    if amount_in is None or amount_in < 0:
        raise InvalidInput(f"Trade amount must be non-negative (got {amount_in})")
    if fee_rate is None or not 0.0 <= fee_rate < 1.0:
        raise InvalidInput(f"Fee rate must be in [0, 1) (got {fee_rate})")


def constant_product_impact(
    reserve_in: float,
    reserve_out: float,
    amount_in: float,
    fee_rate: float = 0.003,
    family: ProtocolFamily = ProtocolFamily.CONSTANT_PRODUCT,
) -> ImpactResult:
    """
    Price impact of a trade against an ``x * y = k`` pool.

    out = a(1-f) * R_out / (R_in + a(1-f))
    impact% = (ideal_out - out) / ideal_out * 100, with ideal_out priced at
    the pre-trade spot. The result grows with ``amount_in`` and stays in
    [0, 100).
    """
    _validate(reserve_in, reserve_out, amount_in, fee_rate)

    amount_after_fee = amount_in * (1 - fee_rate)
    amount_out = (amount_after_fee * reserve_out) / (reserve_in + amount_after_fee)

    price_before = reserve_out / reserve_in
    ideal_out = amount_after_fee * price_before
    price_after = (reserve_out - amount_out) / (reserve_in + amount_after_fee)

    # (ideal - out) / ideal reduces to a(1-f) / (R_in + a(1-f))
    impact_pct = min(amount_after_fee / (reserve_in + amount_after_fee) * 100, MAX_IMPACT_PCT)

    return ImpactResult(
        family=family,
        amount_in=amount_in,
        amount_in_after_fee=amount_after_fee,
        amount_out=amount_out,
        ideal_out=ideal_out,
        price_before=price_before,
        price_after=price_after,
        impact_pct=impact_pct,
        fee_rate=fee_rate,
    )


class AMMModel(ABC):
    """Pricing model shared by one pool family."""

    family: ProtocolFamily
    default_fee_rate: float

    @abstractmethod
    def compute_impact(
        self, reserves: PoolReserves, amount_in: float, fee_rate: float
    ) -> ImpactResult:
        """Price impact of selling ``amount_in`` (native units) into the pool."""


class ConstantProductModel(AMMModel):
    """Uniswap V2 style pools."""

    family = ProtocolFamily.CONSTANT_PRODUCT
    default_fee_rate = 0.003

    def compute_impact(self, reserves, amount_in, fee_rate):
        return constant_product_impact(
            reserves.reserve_in, reserves.reserve_out, amount_in, fee_rate
        )


class ConcentratedLiquidityModel(AMMModel):
    """
    Uniswap V3 style pools, approximated within the active range.

    Liquidity concentrated in a price range behaves like a constant-product
    pool with reserves scaled by the concentration factor. Output can never
    exceed the real reserve, so a trade that leaves the range is capped.
    """

    family = ProtocolFamily.CONCENTRATED_LIQUIDITY
    default_fee_rate = 0.003
    fee_tiers = (0.0005, 0.003, 0.01)
    default_concentration = 4.0

    def compute_impact(self, reserves, amount_in, fee_rate):
        concentration = reserves.concentration or self.default_concentration
        if concentration < 1:
            raise InvalidInput(f"Concentration factor must be >= 1 (got {concentration})")

        _validate(reserves.reserve_in, reserves.reserve_out, amount_in, fee_rate)
        virtual = constant_product_impact(
            reserves.reserve_in * concentration,
            reserves.reserve_out * concentration,
            amount_in,
            fee_rate,
            family=self.family,
        )
        if virtual.amount_out <= reserves.reserve_out:
            return virtual

        # Range exhausted
        amount_out = reserves.reserve_out
        impact_pct = min(
            (virtual.ideal_out - amount_out) / virtual.ideal_out * 100, MAX_IMPACT_PCT
        )
        return ImpactResult(
            family=self.family,
            amount_in=amount_in,
            amount_in_after_fee=virtual.amount_in_after_fee,
            amount_out=amount_out,
            ideal_out=virtual.ideal_out,
            price_before=virtual.price_before,
            price_after=0.0,
            impact_pct=impact_pct,
            fee_rate=fee_rate,
        )


class StableSwapModel(AMMModel):
    """Curve style two-coin pools using the StableSwap invariant."""

    family = ProtocolFamily.STABLE_SWAP
    default_fee_rate = 0.0004
    default_amplification = 2000.0
    n_coins = 2
    max_iterations = 255
    tolerance = 1e-12

    def compute_impact(self, reserves, amount_in, fee_rate):
        _validate(reserves.reserve_in, reserves.reserve_out, amount_in, fee_rate)
        amp = reserves.amplification or self.default_amplification
        if amp <= 0:
            raise InvalidInput(f"Amplification must be positive (got {amp})")

        x, y = reserves.reserve_in, reserves.reserve_out
        d = self.get_d((x, y), amp)

        amount_after_fee = amount_in * (1 - fee_rate)
        new_y = self.get_y(x + amount_after_fee, d, amp)
        amount_out = max(0.0, self.get_y(x, d, amp) - new_y)

        price_before = self._spot_price(x, d, amp)
        ideal_out = amount_after_fee * price_before
        price_after = self._spot_price(x + amount_after_fee, d, amp)

        if ideal_out > 0:
            impact_pct = (ideal_out - amount_out) / ideal_out * 100
            # Float noise on dust trades can push the result just below zero
            impact_pct = min(max(impact_pct, 0.0), MAX_IMPACT_PCT)
        else:
            impact_pct = 0.0

        return ImpactResult(
            family=self.family,
            amount_in=amount_in,
            amount_in_after_fee=amount_after_fee,
            amount_out=amount_out,
            ideal_out=ideal_out,
            price_before=price_before,
            price_after=price_after,
            impact_pct=impact_pct,
            fee_rate=fee_rate,
        )

    def get_d(self, balances: Tuple[float, float], amp: float) -> float:
        """Solve the invariant D for the given balances (Newton iteration)."""
        n = self.n_coins
        total = sum(balances)
        if total == 0:
            return 0.0
        ann = amp * n ** n
        d = total
        for _ in range(self.max_iterations):
            d_p = d
            for balance in balances:
                d_p = d_p * d / (balance * n)
            d_prev = d
            d = (ann * total + d_p * n) * d / ((ann - 1) * d + (n + 1) * d_p)
            if abs(d - d_prev) <= self.tolerance * d:
                break
        return d

    def get_y(self, x: float, d: float, amp: float) -> float:
        """Balance of the other coin once this coin's balance is ``x``."""
        n = self.n_coins
        ann = amp * n ** n
        c = d * d / (x * n)
        c = c * d / (ann * n)
        b = x + d / ann
        y = d
        for _ in range(self.max_iterations):
            y_prev = y
            y = (y * y + c) / (2 * y + b - d)
            if abs(y - y_prev) <= self.tolerance * d:
                break
        return y

    def _spot_price(self, x: float, d: float, amp: float) -> float:
        dx = x * 1e-6
        return max(0.0, (self.get_y(x, d, amp) - self.get_y(x + dx, d, amp)) / dx)


AMM_MODELS: Dict[ProtocolFamily, AMMModel] = {
    ProtocolFamily.CONSTANT_PRODUCT: ConstantProductModel(),
    ProtocolFamily.CONCENTRATED_LIQUIDITY: ConcentratedLiquidityModel(),
    ProtocolFamily.STABLE_SWAP: StableSwapModel(),
}


def model_for(family: ProtocolFamily) -> AMMModel:
    """AMM model for a family; anything unrecognised gets constant product."""
    return AMM_MODELS.get(family, AMM_MODELS[ProtocolFamily.CONSTANT_PRODUCT])
