import pytest

from noarb_sabr import OutOfDomainError, check_parameters
from noarb_sabr.validation import sigma_i


BASE = dict(expiry_time=5.0, forward=0.03, alpha=0.05, beta=0.5, nu=0.3, rho=-0.2)


def _with(**kw):
    args = dict(BASE)
    args.update(kw)
    return args


def test_valid_parameters_return_sigma_i() -> None:
    s = check_parameters(**BASE)
    assert s == pytest.approx(0.05 * 0.03 ** -0.5)
    assert s == pytest.approx(sigma_i(0.03, 0.05, 0.5))


@pytest.mark.parametrize(
    "name,value",
    [
        ("beta", 0.0),
        ("beta", 1.0),
        ("expiry_time", 0.0),
        ("expiry_time", 31.0),
        ("nu", 0.9),
        ("rho", 1.0),
        ("rho", -1.0),
        ("forward", 0.0),
        ("forward", -0.01),
        ("alpha", 0.0),
    ],
)
def test_out_of_domain_parameter_is_named(name: str, value: float) -> None:
    with pytest.raises(OutOfDomainError) as info:
        check_parameters(**_with(**{name: value}))
    assert info.value.name == name
    assert name in str(info.value)


@pytest.mark.parametrize("alpha", [0.001, 1.0])
def test_sigma_i_out_of_range(alpha: float) -> None:
    # sigmaI = alpha / sqrt(0.03) -> 0.0058 and 5.8
    with pytest.raises(OutOfDomainError) as info:
        check_parameters(**_with(alpha=alpha))
    assert info.value.name.startswith("sigmaI")


def test_domain_error_is_value_error() -> None:
    with pytest.raises(ValueError):
        check_parameters(**_with(nu=2.0))


def test_boundary_values_are_accepted() -> None:
    check_parameters(**_with(expiry_time=30.0))
    check_parameters(**_with(beta=0.99, alpha=0.2))
    check_parameters(**_with(rho=0.9999))
    check_parameters(**_with(nu=0.8))
