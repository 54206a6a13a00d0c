"""
Price cap calculation.

The maximum fare a driver may ask per passenger is proportional to the
one-way routed distance. There is exactly one rate, owned here.
"""

from typing import Optional

from ridepool.app.core.config import settings
from ridepool.app.core.exceptions import InvalidPaymentError, ValidationError
from ridepool.app.models.ride_enums import PaymentMode


class PriceCapCalculator:
    """
    ``cap(distance_km) = rate_per_km * distance_km``

    Usage:
        calculator = PriceCapCalculator()
        calculator.validate(amount=5, distance_km=10)
    """

    def __init__(self, rate_per_km: Optional[float] = None):
        self.rate_per_km = settings.price_cap_per_km if rate_per_km is None else rate_per_km
        if self.rate_per_km < 0:
            raise ValueError("rate_per_km must not be negative")

    def limit(self, distance_km: float) -> float:
        """
        Exact maximum amount for a route of ``distance_km``.

        Raises:
            ValidationError: If distance is negative
        """
        if distance_km is None or distance_km < 0:
            raise ValidationError("Route distance must be a non-negative number",
                                  details={"distance_km": distance_km})
        return self.rate_per_km * distance_km

    def cap(self, distance_km: float) -> float:
        """The limit rounded to cents, for display."""
        return round(self.limit(distance_km), 2)

    def validate(self, amount: Optional[float], distance_km: float) -> float:
        """
        Check ``0 < amount <= cap(distance_km)``.

        Returns:
            The cap the amount was checked against

        Raises:
            InvalidPaymentError: If amount is missing, non-positive or above the cap
        """
        cap = self.cap(distance_km)
        if amount is None or amount <= 0:
            raise InvalidPaymentError(
                "Payment amount must be greater than zero",
                details={"amount": amount, "cap": cap}
            )
        # Checked against the unrounded limit
        if amount > self.limit(distance_km):
            raise InvalidPaymentError(
                f"Payment amount {amount} exceeds the cap of {cap} "
                f"({self.rate_per_km} per km x {round(distance_km, 1)} km)",
                details={"amount": amount, "cap": cap, "distance_km": round(distance_km, 3)}
            )
        return cap

    def validate_policy(self, mode: PaymentMode, amount: Optional[float], method, distance_km: float):
        """
        Validate a whole payment policy.

        A free ride carries no amount. Optional payments are capped like
        obligatory ones; obligatory payments also need a method.
        """
        if mode == PaymentMode.NOT_REQUIRED:
            if amount:
                raise InvalidPaymentError(
                    "A free ride cannot carry a payment amount",
                    details={"amount": amount}
                )
            return None

        if mode == PaymentMode.OBLIGATORY and method is None:
            raise InvalidPaymentError("Payment method is required when payment is obligatory")

        return self.validate(amount, distance_km)


price_cap_calculator = PriceCapCalculator()
