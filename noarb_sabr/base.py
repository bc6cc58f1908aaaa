"""Single-expiry pricing model API.

Contains:
- PricingModel base class
- scalar / array strike handling
- Black implied volatility of the model's out-of-the-money prices
"""

from __future__ import annotations

from typing import Callable

import numpy as np

from .implied_vol import implied_black_vol


class PricingModel:
    """
    Base class for models of the terminal forward distribution at one expiry.
    Subclasses must implement :meth:`option_price`, :meth:`digital_option_price`,
    :meth:`density` and the ``forward`` / ``expiry_time`` accessors.
    """

    @property
    def forward(self) -> float:
        raise NotImplementedError

    @property
    def expiry_time(self) -> float:
        raise NotImplementedError

    def option_price(self, strike, is_call: bool = True):
        """Undiscounted price of a call (or put) on the forward."""
        raise NotImplementedError

    def digital_option_price(self, strike, is_call: bool = True):
        """Undiscounted price of a cash-or-nothing digital paying 1."""
        raise NotImplementedError

    def density(self, strike):
        """Density of the terminal forward at `strike`."""
        raise NotImplementedError

    # ---- convenience ---- #
    def black_volatility(self, strike, shift: float = 0.0):
        """
        Black implied volatility of the out-of-the-money option at `strike`.

        With a non-zero `shift` the volatility is the shifted-lognormal one,
        quoted on forward + shift and strike + shift.
        """
        fwd = self.forward + shift
        T = self.expiry_time

        def one(k: float) -> float:
            is_call = k + shift >= fwd
            price = float(self.option_price(k, is_call))
            return implied_black_vol(price, fwd, k + shift, T, is_call)

        return self._map_strikes(strike, one)

    @staticmethod
    def _map_strikes(strike, fn: Callable[[float], float]):
        """Apply a scalar pricer to a strike or array of strikes, keeping the shape."""
        if np.ndim(strike) == 0:
            return float(fn(float(strike)))
        k = np.asarray(strike, dtype=float)
        out = np.array([fn(float(x)) for x in k.ravel()], dtype=float)
        return out.reshape(k.shape)
