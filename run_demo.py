"""Small runnable demo for the no-arbitrage SABR engine."""

import logging

import numpy as np
from noarb_sabr import NoArbSabrSmileSection, check_absorption_matrix


def main() -> None:
    logging.basicConfig(level=logging.INFO)

    # Expiry, forward and SABR parameters
    T = 5.0
    F = 0.03
    params = {"alpha": 0.05, "beta": 0.5, "nu": 0.3, "rho": -0.2}

    smile = NoArbSabrSmileSection(T, F, **params)
    model = smile.model

    print("Absorption probability:", model.absorption_probability)
    print("Internal forward:", model.internal_forward, "support:", model.support)
    print("Model mean:", model.mean)

    # Strike vector
    K = np.linspace(0.005, 0.08, 16)

    print("Calls:", model.option_price(K))
    print("Puts:", model.option_price(K, is_call=False))
    print("Digital calls:", model.digital_option_price(K))
    print("Density:", model.density(K))
    print("Black vols:", smile.volatility(K))

    print(check_absorption_matrix().summary())


if __name__ == "__main__":
    main()
