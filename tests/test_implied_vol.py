import math

import pytest

from noarb_sabr import black_price, implied_black_vol


def test_black_call_put_parity() -> None:
    F, K, T, vol = 0.03, 0.035, 2.0, 0.25
    call = black_price(F, K, T, vol, True)
    put = black_price(F, K, T, vol, False)
    assert call - put == pytest.approx(F - K, abs=1e-14)


def test_black_atm_closed_form() -> None:
    F, T, vol = 100.0, 1.0, 0.2
    expected = F * math.erf(0.5 * vol * math.sqrt(T) / math.sqrt(2.0))
    assert black_price(F, F, T, vol) == pytest.approx(expected, rel=1e-12)


def test_black_degenerate_inputs() -> None:
    assert black_price(0.03, 0.02, 1.0, 0.0) == pytest.approx(0.01)
    assert black_price(0.03, 0.0, 1.0, 0.3, discount=0.9) == pytest.approx(0.027)
    assert black_price(0.03, 0.04, 1.0, 0.0, is_call=False, discount=0.5) == pytest.approx(0.005)


@pytest.mark.parametrize("is_call,strike", [(True, 0.04), (False, 0.02), (True, 0.03)])
def test_implied_vol_recovers_input(is_call: bool, strike: float) -> None:
    F, T, vol = 0.03, 5.0, 0.31
    price = black_price(F, strike, T, vol, is_call, discount=0.95)
    assert implied_black_vol(price, F, strike, T, is_call, discount=0.95) == pytest.approx(vol, abs=1e-8)


def test_implied_vol_bounds() -> None:
    assert implied_black_vol(0.0, 0.03, 0.04, 1.0) == 0.0
    with pytest.raises(ValueError):
        implied_black_vol(0.03, 0.03, 0.04, 1.0)
    with pytest.raises(ValueError):
        implied_black_vol(0.001, 0.03, 0.01, 1.0)
    with pytest.raises(ValueError):
        implied_black_vol(0.01, 0.03, 0.0, 1.0)
