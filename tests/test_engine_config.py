import unittest

from engine_config import OVERPASS_ENDPOINTS, EngineConfig


class EngineConfigTests(unittest.TestCase):
    def test_defaults(self):
        config = EngineConfig.from_env({})
        self.assertEqual(config.overpass_endpoints, OVERPASS_ENDPOINTS)
        self.assertEqual(config.max_attempts, 3)
        self.assertEqual(config.attempt_timeout_s, 25.0)
        self.assertEqual(config.fresh_ttl_s, 900.0)
        self.assertEqual(config.stale_ttl_s, 300.0)
        self.assertIsNone(config.max_workers)

    def test_reads_environment(self):
        config = EngineConfig.from_env({
            "SUNBAR_OVERPASS_ENDPOINTS": " https://one.example/api , https://two.example/api,",
            "SUNBAR_MAX_ATTEMPTS": "5",
            "SUNBAR_ATTEMPT_TIMEOUT_S": "10.5",
            "SUNBAR_FRESH_TTL_S": "60",
            "SUNBAR_PARALLEL_THRESHOLD": "50",
            "SUNBAR_MAX_WORKERS": "2",
        })
        self.assertEqual(
            config.overpass_endpoints,
            ("https://one.example/api", "https://two.example/api"),
        )
        self.assertEqual(config.max_attempts, 5)
        self.assertEqual(config.attempt_timeout_s, 10.5)
        self.assertEqual(config.fresh_ttl_s, 60.0)
        self.assertEqual(config.parallel_threshold, 50)
        self.assertEqual(config.max_workers, 2)

    def test_bad_numbers_fall_back_to_defaults(self):
        config = EngineConfig.from_env({"SUNBAR_MAX_ATTEMPTS": "three", "SUNBAR_STALE_TTL_S": " "})
        self.assertEqual(config.max_attempts, 3)
        self.assertEqual(config.stale_ttl_s, 300.0)


if __name__ == "__main__":
    unittest.main()
