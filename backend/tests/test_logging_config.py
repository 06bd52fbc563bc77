import io
import json
import logging
import unittest
from unittest.mock import patch

import structlog

from caseflow.core.config import settings
from caseflow.core.logging_config import setup_logging


class SetupLoggingTests(unittest.TestCase):
    def setUp(self):
        root = logging.getLogger()
        self.saved = (root.handlers[:], root.level)

    def tearDown(self):
        root = logging.getLogger()
        root.handlers, level = self.saved
        root.setLevel(level)
        structlog.reset_defaults()

    def configure(self, log_format):
        stream = io.StringIO()
        with patch.object(settings, "log_format", log_format), patch("sys.stdout", stream):
            setup_logging()
        return stream

    def test_stdlib_records_are_rendered_as_json_lines(self):
        stream = self.configure("json")

        logging.getLogger("caseflow.services.case_lifecycle").warning("Case c1 status LEAD -> BOQ")

        payload = json.loads(stream.getvalue().strip().splitlines()[-1])
        self.assertEqual(payload["event"], "Case c1 status LEAD -> BOQ")
        self.assertEqual(payload["level"], "warning")
        self.assertEqual(payload["logger"], "caseflow.services.case_lifecycle")
        self.assertIn("timestamp", payload)

    def test_exceptions_are_structured_in_json(self):
        stream = self.configure("json")

        try:
            raise RuntimeError("store down")
        except RuntimeError:
            logging.getLogger("caseflow.tasks").exception("Job failed")

        payload = json.loads(stream.getvalue().strip().splitlines()[-1])
        self.assertEqual(payload["event"], "Job failed")
        self.assertEqual(payload["exception"][0]["exc_type"], "RuntimeError")

    def test_text_format_is_not_json(self):
        stream = self.configure("text")

        logging.getLogger("caseflow.api").warning("Queue unavailable")

        line = stream.getvalue().strip().splitlines()[-1]
        self.assertIn("Queue unavailable", line)
        self.assertIn("caseflow.api", line)
        self.assertFalse(line.startswith("{"))


if __name__ == "__main__":
    unittest.main()
