from datetime import date

from django.test import SimpleTestCase

from billing.exceptions import ValidationError
from billing.services.scheduling import advance_schedule, first_run_date, next_run_date


class NextRunDateTests(SimpleTestCase):
    def test_weekly_adds_seven_days(self):
        self.assertEqual(next_run_date(date(2024, 12, 28), "WEEKLY"), date(2025, 1, 4))

    def test_monthly_clamps_to_month_end_in_leap_year(self):
        self.assertEqual(next_run_date(date(2024, 1, 31), "MONTHLY"), date(2024, 2, 29))

    def test_monthly_clamps_to_month_end(self):
        self.assertEqual(next_run_date(date(2023, 1, 31), "MONTHLY"), date(2023, 2, 28))
        self.assertEqual(next_run_date(date(2024, 3, 31), "MONTHLY"), date(2024, 4, 30))

    def test_quarterly_crosses_year(self):
        self.assertEqual(next_run_date(date(2024, 11, 30), "QUARTERLY"), date(2025, 2, 28))

    def test_yearly_from_leap_day(self):
        self.assertEqual(next_run_date(date(2024, 2, 29), "YEARLY"), date(2025, 2, 28))

    def test_unknown_frequency(self):
        with self.assertRaises(ValidationError):
            next_run_date(date(2024, 1, 1), "DAILY")

    def test_first_run_is_one_period_after_start(self):
        self.assertEqual(first_run_date(date(2024, 1, 1), "MONTHLY"), date(2024, 2, 1))


class AdvanceScheduleTests(SimpleTestCase):
    def test_advances_and_counts(self):
        state = advance_schedule(next_run=date(2024, 2, 1), frequency="MONTHLY", completed_occurrences=0)
        self.assertEqual(state.next_run_date, date(2024, 3, 1))
        self.assertEqual(state.completed_occurrences, 1)
        self.assertTrue(state.is_active)

    def test_retires_on_last_occurrence(self):
        state = advance_schedule(
            next_run=date(2024, 4, 1),
            frequency="MONTHLY",
            completed_occurrences=2,
            occurrences=3,
        )
        self.assertEqual(state.completed_occurrences, 3)
        self.assertFalse(state.is_active)
        self.assertIsNone(state.next_run_date)

    def test_retires_when_next_run_passes_end_date(self):
        state = advance_schedule(
            next_run=date(2024, 3, 1),
            frequency="MONTHLY",
            completed_occurrences=1,
            end_date=date(2024, 3, 15),
        )
        self.assertFalse(state.is_active)
        self.assertIsNone(state.next_run_date)

    def test_next_run_on_end_date_stays_active(self):
        state = advance_schedule(
            next_run=date(2024, 3, 1),
            frequency="MONTHLY",
            completed_occurrences=1,
            end_date=date(2024, 4, 1),
        )
        self.assertTrue(state.is_active)
        self.assertEqual(state.next_run_date, date(2024, 4, 1))
