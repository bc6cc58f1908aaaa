"""Smile section view of the no-arbitrage SABR model.

Wraps one :class:`NoArbSabrModel` and quotes it the way a volatility smile is
consumed: Black volatilities and variances by strike, discounted option and
digital prices, and the density. A displacement `shift` turns it into a
shifted-lognormal section: the model is built on forward + shift and every
strike is moved by the same amount.
"""

from __future__ import annotations

from typing import Optional

import numpy as np

from .absorption_table import AbsorptionTable
from .base import PricingModel
from .constants import DEFAULT_CONSTANTS, NoArbSabrConstants
from .integrators import Integrator
from .model import NoArbSabrModel


class NoArbSabrSmileSection(PricingModel):
    """Volatility smile at one expiry backed by the no-arbitrage SABR density."""

    def __init__(self,
                 expiry_time: float,
                 forward: float,
                 alpha: float,
                 beta: float,
                 nu: float,
                 rho: float,
                 shift: float = 0.0,
                 *,
                 constants: NoArbSabrConstants = DEFAULT_CONSTANTS,
                 integrator: Optional[Integrator] = None,
                 table: Optional[AbsorptionTable] = None):
        self.shift = float(shift)
        self._forward = float(forward)
        self.model = NoArbSabrModel(
            expiry_time,
            self._forward + self.shift,
            alpha,
            beta,
            nu,
            rho,
            constants=constants,
            integrator=integrator,
            table=table,
        )

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.model!r}, shift={self.shift:g})"

    @property
    def forward(self) -> float:
        return self._forward

    @property
    def expiry_time(self) -> float:
        return self.model.expiry_time

    @property
    def atm_level(self) -> float:
        return self._forward

    @property
    def min_strike(self) -> float:
        return -self.shift

    @property
    def max_strike(self) -> float:
        return float(np.inf)

    def option_price(self, strike, is_call: bool = True, discount: float = 1.0):
        return discount * self.model.option_price(np.add(strike, self.shift), is_call)

    def digital_option_price(self, strike, is_call: bool = True, discount: float = 1.0):
        return discount * self.model.digital_option_price(np.add(strike, self.shift), is_call)

    def density(self, strike, discount: float = 1.0):
        return discount * self.model.density(np.add(strike, self.shift))

    def volatility(self, strike):
        """Black volatility (shifted-lognormal when shift != 0) at `strike`."""
        return self.black_volatility(strike, shift=self.shift)

    def variance(self, strike):
        vol = self.volatility(strike)
        return vol * vol * self.expiry_time
