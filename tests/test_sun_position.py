import unittest
from datetime import date, datetime, timedelta, timezone

import sun_position
from geo_models import Coordinates

MADRID = Coordinates(40.4168, -3.7038)


def _utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


class SunPositionTests(unittest.TestCase):
    def test_madrid_summer_noon_is_high_and_southern(self):
        sun = sun_position.position(MADRID, _utc(2024, 6, 21, 12, 0))
        self.assertTrue(sun.is_above_horizon())
        self.assertGreater(sun.altitude_degrees, 65.0)
        self.assertLess(sun.altitude_degrees, 75.0)
        # Shortly before local solar noon the sun sits just east of due south.
        self.assertGreater(sun.azimuth_degrees, 120.0)
        self.assertLess(sun.azimuth_degrees, 190.0)

    def test_madrid_night(self):
        sun = sun_position.position(MADRID, _utc(2024, 6, 21, 2, 0))
        self.assertFalse(sun.is_above_horizon())
        self.assertFalse(sun_position.is_daytime(MADRID, _utc(2024, 6, 21, 2, 0)))

    def test_naive_datetime_treated_as_utc(self):
        aware = sun_position.position(MADRID, _utc(2024, 6, 21, 9, 30))
        naive = sun_position.position(MADRID, datetime(2024, 6, 21, 9, 30))
        self.assertAlmostEqual(aware.altitude_radians, naive.altitude_radians, places=9)
        self.assertEqual(naive.instant.tzinfo, timezone.utc)

    def test_to_utc(self):
        madrid_summer = timezone(timedelta(hours=2))
        converted = sun_position.to_utc(datetime(2024, 6, 21, 14, 0, tzinfo=madrid_summer))
        self.assertEqual(converted, _utc(2024, 6, 21, 12, 0))
        self.assertEqual(converted.tzinfo, timezone.utc)
        self.assertEqual(sun_position.to_utc(datetime(2024, 6, 21, 12, 0)), _utc(2024, 6, 21, 12, 0))

    def test_morning_sun_is_east(self):
        sun = sun_position.position(MADRID, _utc(2024, 6, 21, 7, 0))
        self.assertTrue(sun.is_above_horizon())
        self.assertGreater(sun.azimuth_degrees, 45.0)
        self.assertLess(sun.azimuth_degrees, 110.0)
        # Shadows point away from the sun, i.e. westwards.
        self.assertGreater(sun.shadow_direction_degrees, 225.0)
        self.assertLess(sun.shadow_direction_degrees, 290.0)


class SunTimesTests(unittest.TestCase):
    def test_madrid_solstice_times(self):
        times = sun_position.times(MADRID, date(2024, 6, 21))

        self.assertIsNotNone(times.sunrise)
        self.assertIsNotNone(times.sunset)
        self.assertIsNotNone(times.golden_hour)
        self.assertTrue(_utc(2024, 6, 21, 4, 25) <= times.sunrise <= _utc(2024, 6, 21, 5, 5))
        self.assertTrue(_utc(2024, 6, 21, 12, 0) <= times.solar_noon <= _utc(2024, 6, 21, 12, 30))
        self.assertTrue(_utc(2024, 6, 21, 19, 30) <= times.sunset <= _utc(2024, 6, 21, 20, 10))
        self.assertTrue(times.solar_noon < times.golden_hour < times.sunset)

    def test_accepts_datetime(self):
        by_date = sun_position.times(MADRID, date(2024, 3, 20))
        by_datetime = sun_position.times(MADRID, _utc(2024, 3, 20, 18, 45))
        self.assertEqual(by_date, by_datetime)

    def test_polar_night_has_no_sunrise(self):
        tromso_area = Coordinates(78.2, 15.6)
        times = sun_position.times(tromso_area, date(2024, 12, 21))
        self.assertIsNone(times.sunrise)
        self.assertIsNone(times.sunset)
        self.assertIsNone(times.golden_hour)

    def test_sun_info_shape(self):
        info = sun_position.sun_info(MADRID, _utc(2024, 6, 21, 12, 0))
        self.assertTrue(info["isDaytime"])
        self.assertTrue(info["position"]["isAboveHorizon"])
        self.assertIn("sunrise", info["times"])
        self.assertIn("solarNoon", info["times"])


if __name__ == "__main__":
    unittest.main()
