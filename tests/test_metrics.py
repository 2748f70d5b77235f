import unittest

from prometheus_client import CollectorRegistry

from ciworker.services.metrics import NullMetrics, PrometheusMetrics, metric_name


class TestPrometheusMetrics(unittest.TestCase):

    def setUp(self):
        self.registry = CollectorRegistry()
        self.metrics = PrometheusMetrics(self.registry)

    def test_metric_name_flattens_dots(self):
        self.assertEqual(metric_name("vm.provider.boot.timeout"), "worker_vm_provider_boot_timeout")
        self.assertEqual(metric_name("vm.provider.boot", namespace=""), "vm_provider_boot")

    def test_meter_counts_marks(self):
        self.metrics.meter("vm.provider.boot.error").mark()
        self.metrics.meter("vm.provider.boot.error").mark()

        value = self.registry.get_sample_value("worker_vm_provider_boot_error_total")
        self.assertEqual(value, 2.0)

    def test_timer_records_samples(self):
        self.metrics.timer("vm.provider.boot").update(1.5)
        self.metrics.timer("vm.provider.boot").update(0.5)

        self.assertEqual(self.registry.get_sample_value("worker_vm_provider_boot_seconds_count"), 2.0)
        self.assertEqual(self.registry.get_sample_value("worker_vm_provider_boot_seconds_sum"), 2.0)

    def test_instruments_are_reused(self):
        self.assertIs(self.metrics.meter("a.b"), self.metrics.meter("a.b"))
        self.assertIs(self.metrics.timer("a.b"), self.metrics.timer("a.b"))


    def test_sinks_on_one_registry_share_series(self):
        other = PrometheusMetrics(self.registry)

        self.metrics.timer("vm.provider.boot").update(1.0)
        other.timer("vm.provider.boot").update(2.0)
        other.meter("vm.provider.remove.error").mark()
        self.metrics.meter("vm.provider.remove.error").mark()

        self.assertEqual(self.registry.get_sample_value("worker_vm_provider_boot_seconds_count"), 2.0)
        self.assertEqual(self.registry.get_sample_value("worker_vm_provider_remove_error_total"), 2.0)


class TestNullMetrics(unittest.TestCase):

    def test_accepts_everything(self):
        metrics = NullMetrics()
        metrics.meter("anything").mark()
        metrics.timer("anything").update(3.0)


if __name__ == "__main__":
    unittest.main()
