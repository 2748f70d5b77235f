import unittest
from unittest.mock import Mock, call

from ciworker.services.retry import RetryPolicy


class TestRetryPolicy(unittest.TestCase):

    def test_returns_first_success(self):
        sleep = Mock()
        fn = Mock(side_effect=[ValueError("1"), ValueError("2"), "ok"])

        result = RetryPolicy(3, 1.5).call(fn, retry_on=(ValueError,), sleep=sleep)

        self.assertEqual(result, "ok")
        self.assertEqual(fn.call_count, 3)
        self.assertEqual(sleep.call_args_list, [call(1.5), call(1.5)])

    def test_exhaustion_reraises_last_error(self):
        fn = Mock(side_effect=[ValueError("first"), ValueError("second")])

        with self.assertRaises(ValueError) as ctx:
            RetryPolicy(2).call(fn, retry_on=(ValueError,), sleep=Mock())

        self.assertEqual(str(ctx.exception), "second")

    def test_other_errors_are_not_retried(self):
        fn = Mock(side_effect=KeyError("nope"))

        with self.assertRaises(KeyError):
            RetryPolicy(3).call(fn, retry_on=(ValueError,), sleep=Mock())

        self.assertEqual(fn.call_count, 1)

    def test_call_until_returns_last_result_when_budget_is_spent(self):
        fn = Mock(side_effect=["bad-1", "bad-2", "bad-3"])

        result = RetryPolicy(3, 2).call_until(fn, should_retry=lambda r: r.startswith("bad"), sleep=Mock())

        self.assertEqual(result, "bad-3")
        self.assertEqual(fn.call_count, 3)

    def test_call_until_stops_on_accepted_result(self):
        fn = Mock(side_effect=["bad", "good", "unused"])

        result = RetryPolicy(5).call_until(fn, should_retry=lambda r: r == "bad", sleep=Mock())

        self.assertEqual(result, "good")
        self.assertEqual(fn.call_count, 2)

    def test_invalid_budget_is_rejected(self):
        with self.assertRaises(ValueError):
            RetryPolicy(0)
        with self.assertRaises(ValueError):
            RetryPolicy(1, -1)


if __name__ == "__main__":
    unittest.main()
