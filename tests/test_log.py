import logging
import os
import tempfile
import unittest
from unittest.mock import patch

from ciworker.services import log
from ciworker.services.log import configure_logging, get_logger


class TestStructuredLogger(unittest.TestCase):

    def test_context_is_appended(self):
        logger = get_logger("ciworker.tests.log")

        with self.assertLogs("ciworker.tests.log", level="INFO") as logs:
            logger.info("stopping container:c1", {"attempt": 2})

        self.assertEqual(logs.records[0].getMessage(), "stopping container:c1 | attempt=2")

    def test_plain_message_has_no_separator(self):
        logger = get_logger("ciworker.tests.log")

        with self.assertLogs("ciworker.tests.log", level="INFO") as logs:
            logger.info("prepared")

        self.assertEqual(logs.records[0].getMessage(), "prepared")

    def test_bound_context_follows_call_context(self):
        logger = get_logger("ciworker.tests.log").bind(vm="ci01:travis-worker-1")

        with self.assertLogs("ciworker.tests.log", level="WARNING") as logs:
            logger.warning("error when trying to stop container", {"id": "c1"})

        self.assertEqual(
            logs.records[0].getMessage(),
            "error when trying to stop container | id=c1 | vm=ci01:travis-worker-1",
        )
        self.assertEqual(logs.records[0].levelno, logging.WARNING)


class TestConfigureLogging(unittest.TestCase):

    def test_handlers_are_installed_once(self):
        root = logging.getLogger()
        before = list(root.handlers)
        with tempfile.TemporaryDirectory() as tmp, patch.object(log, "_handlers_configured", False):
            log_file = os.path.join(tmp, "logs", "worker.log")
            configure_logging(log_file)
            configure_logging(log_file)
            added = [h for h in root.handlers if h not in before]
            try:
                self.assertEqual(len(added), 2)
                self.assertTrue(os.path.isdir(os.path.dirname(log_file)))
            finally:
                for handler in added:
                    root.removeHandler(handler)
                    handler.close()


if __name__ == "__main__":
    unittest.main()
