"""
Price cap calculation tests.
"""

import pytest
from ridepool.app.core.exceptions import InvalidPaymentError, ValidationError
from ridepool.app.domain.matching.price_cap import PriceCapCalculator
from ridepool.app.models.ride_enums import PaymentMethod, PaymentMode


@pytest.fixture
def calculator():
    return PriceCapCalculator(rate_per_km=0.5)


def test_cap_is_rate_times_distance(calculator):
    assert calculator.cap(10) == 5.0
    assert calculator.cap(0) == 0.0
    assert calculator.cap(33.4) == 16.7


def test_cap_is_monotonic(calculator):
    distances = [0, 0.1, 1, 2.5, 10, 10.01, 57.3, 250]
    caps = [calculator.cap(d) for d in distances]
    assert caps == sorted(caps)


def test_negative_distance_is_rejected(calculator):
    with pytest.raises(ValidationError):
        calculator.cap(-1)


def test_amount_above_cap_fails(calculator):
    with pytest.raises(InvalidPaymentError) as exc_info:
        calculator.validate(6, 10)
    assert exc_info.value.details["cap"] == 5.0


def test_amount_at_cap_passes(calculator):
    assert calculator.validate(5, 10) == 5.0
    assert calculator.validate(0.5, 10) == 5.0


def test_amount_between_exact_and_rounded_cap_fails(calculator):
    # 0.5 x 10.013 = 5.0065, shown as 5.01
    assert calculator.cap(10.013) == 5.01
    with pytest.raises(InvalidPaymentError) as exc_info:
        calculator.validate(5.008, 10.013)
    assert exc_info.value.details["cap"] == 5.01
    assert calculator.validate(5.006, 10.013) == 5.01


@pytest.mark.parametrize("amount", [None, 0, -3])
def test_non_positive_amount_fails(calculator, amount):
    with pytest.raises(InvalidPaymentError):
        calculator.validate(amount, 10)


def test_free_ride_cannot_carry_an_amount(calculator):
    assert calculator.validate_policy(PaymentMode.NOT_REQUIRED, None, None, 10) is None
    with pytest.raises(InvalidPaymentError):
        calculator.validate_policy(PaymentMode.NOT_REQUIRED, 3, None, 10)


def test_obligatory_payment_needs_a_method(calculator):
    with pytest.raises(InvalidPaymentError):
        calculator.validate_policy(PaymentMode.OBLIGATORY, 3, None, 10)
    assert calculator.validate_policy(PaymentMode.OBLIGATORY, 3, PaymentMethod.CASH, 10) == 5.0


def test_optional_payment_is_capped(calculator):
    assert calculator.validate_policy(PaymentMode.OPTIONAL, 4, None, 10) == 5.0
    with pytest.raises(InvalidPaymentError):
        calculator.validate_policy(PaymentMode.OPTIONAL, 7, PaymentMethod.BIT, 10)


def test_rate_comes_from_settings_by_default():
    from ridepool.app.core.config import settings

    assert PriceCapCalculator().rate_per_km == settings.price_cap_per_km
