"""
Tests for Planned Payment Schedules
===================================

Month arithmetic and cycle occurrence dates.
"""

from datetime import date

from spare_finance.api.planned_payments.schedule import MAX_OCCURRENCES, add_months, cycle_dates


class TestAddMonths:

    def test_clamps_to_month_end(self):
        assert add_months(date(2024, 1, 31), 1) == date(2024, 2, 29)
        assert add_months(date(2025, 1, 31), 1) == date(2025, 2, 28)

    def test_crosses_year(self):
        assert add_months(date(2024, 11, 15), 3) == date(2025, 2, 15)
        assert add_months(date(2025, 1, 15), -1) == date(2024, 12, 15)

    def test_explicit_day(self):
        assert add_months(date(2025, 1, 1), 1, 31) == date(2025, 2, 28)
        assert add_months(date(2025, 1, 20), 0, 1) == date(2025, 1, 1)


class TestCycleDates:

    def test_monthly_keeps_day_after_short_month(self):
        dates = cycle_dates(date(2025, 1, 31), "monthly", date(2025, 1, 1), date(2025, 4, 30))

        assert dates == [date(2025, 1, 31), date(2025, 2, 28), date(2025, 3, 31), date(2025, 4, 30)]

    def test_nothing_before_anchor(self):
        dates = cycle_dates(date(2025, 3, 10), "monthly", date(2025, 1, 1), date(2025, 5, 31))

        assert dates == [date(2025, 3, 10), date(2025, 4, 10), date(2025, 5, 10)]

    def test_monthly_billing_day(self):
        dates = cycle_dates(
            date(2025, 1, 1), "monthly", date(2025, 1, 1), date(2025, 3, 31), day=15
        )

        assert dates == [date(2025, 1, 15), date(2025, 2, 15), date(2025, 3, 15)]

    def test_weekly_stays_on_cycle(self):
        dates = cycle_dates(date(2025, 1, 1), "weekly", date(2025, 1, 10), date(2025, 1, 31))

        assert dates == [date(2025, 1, 15), date(2025, 1, 22), date(2025, 1, 29)]

    def test_biweekly_limit(self):
        dates = cycle_dates(
            date(2025, 1, 1), "biweekly", date(2025, 1, 1), date(2025, 12, 31), limit=3
        )

        assert dates == [date(2025, 1, 1), date(2025, 1, 15), date(2025, 1, 29)]

    def test_semimonthly_two_days_a_month(self):
        dates = cycle_dates(date(2025, 1, 5), "semimonthly", date(2025, 1, 1), date(2025, 2, 28))

        assert dates == [date(2025, 1, 5), date(2025, 1, 20), date(2025, 2, 5), date(2025, 2, 20)]

    def test_daily_capped(self):
        dates = cycle_dates(date(2025, 1, 1), "daily", date(2025, 1, 1), date(2026, 12, 31))

        assert len(dates) == MAX_OCCURRENCES
        assert dates[-1] == date(2025, 4, 10)

    def test_empty_window(self):
        assert cycle_dates(date(2025, 1, 1), "monthly", date(2025, 6, 1), date(2025, 5, 1)) == []
        assert cycle_dates(date(2025, 1, 1), "monthly", date(2025, 1, 1), date(2025, 5, 1), limit=0) == []
