"""Unit tests for rental value calculation."""

from datetime import datetime
from decimal import Decimal

import pytest

from src.services.service_event_service import compute_rental_total

pytestmark = pytest.mark.unit


class TestComputeRentalTotal:
    """Per-day pricing and lump sums."""

    def test_started_days_are_charged(self):
        """Two days and one hour bill as three days."""
        total = compute_rental_total(
            Decimal("80.00"),
            datetime(2025, 3, 1, 8, 0),
            datetime(2025, 3, 3, 9, 0),
        )

        assert total == Decimal("240.00")

    def test_exact_days(self):
        total = compute_rental_total(Decimal("80.00"), datetime(2025, 3, 1, 8, 0), datetime(2025, 3, 4, 8, 0))

        assert total == Decimal("240.00")

    def test_minimum_one_day(self):
        total = compute_rental_total(Decimal("80.00"), datetime(2025, 3, 1, 8, 0), datetime(2025, 3, 1, 8, 0))

        assert total == Decimal("80.00")

    def test_units_multiply(self):
        total = compute_rental_total(
            Decimal("50.00"),
            datetime(2025, 3, 1),
            datetime(2025, 3, 3),
            units=3,
        )

        assert total == Decimal("300.00")

    def test_lump_sum_wins(self):
        total = compute_rental_total(
            Decimal("50.00"),
            datetime(2025, 3, 1),
            datetime(2025, 3, 30),
            units=2,
            lump_sum=Decimal("900.00"),
        )

        assert total == Decimal("900.00")
