import json
import logging
import unittest

from config.logging_config import JsonFormatter, split_event


class SplitEventTests(unittest.TestCase):
    def test_event_with_fields(self):
        self.assertEqual(
            split_event("position_merge_retry user_id=4 symbol=AAPL attempt=2"),
            {"event": "position_merge_retry", "user_id": "4", "symbol": "AAPL", "attempt": "2"},
        )

    def test_plain_sentence_is_left_alone(self):
        self.assertEqual(split_event("Application startup complete."), {})

    def test_bare_event(self):
        self.assertEqual(split_event("login_locked"), {"event": "login_locked"})


class JsonFormatterTests(unittest.TestCase):
    def test_fields_are_lifted(self):
        record = logging.LogRecord(
            "services.position_store", logging.INFO, __file__, 1,
            "position_created user_id=%s symbol=%s", (7, "MSFT"), None,
        )
        payload = json.loads(JsonFormatter().format(record))
        self.assertEqual(payload["level"], "INFO")
        self.assertEqual(payload["event"], "position_created")
        self.assertEqual(payload["user_id"], "7")
        self.assertEqual(payload["symbol"], "MSFT")
        self.assertTrue(payload["ts"].endswith("Z"))


if __name__ == "__main__":
    unittest.main()
