import unittest
from datetime import datetime, timedelta, timezone

from app.utils.timezone import ensure_utc, format_iso_utc, utc_now


class TestTimezone(unittest.TestCase):
    def test_utc_now_is_aware(self):
        self.assertEqual(utc_now().utcoffset(), timedelta(0))

    def test_naive_values_are_taken_as_utc(self):
        naive = datetime(2024, 5, 1, 12, 0)
        self.assertEqual(ensure_utc(naive), datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc))

    def test_aware_values_are_converted(self):
        cet = timezone(timedelta(hours=2))
        self.assertEqual(ensure_utc(datetime(2024, 5, 1, 14, 0, tzinfo=cet)).hour, 12)

    def test_format(self):
        self.assertEqual(format_iso_utc(datetime(2024, 5, 1, 12, 0)), "2024-05-01T12:00:00+00:00")
        self.assertIsNone(format_iso_utc(None))


if __name__ == "__main__":
    unittest.main()
