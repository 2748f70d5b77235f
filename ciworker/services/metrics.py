"""
Metrics sink for the VM provider.

Callers use dotted metric names (``vm.provider.boot.timeout``) through a small
meter/timer interface. The default sink exports them as Prometheus counters and
summaries, prefixed with the worker namespace:

    vm.provider.boot.timeout  ->  worker_vm_provider_boot_timeout_total
    vm.provider.boot          ->  worker_vm_provider_boot_seconds
"""
import re
import threading
import weakref
from typing import Any, Callable, Dict, Optional, Protocol

from prometheus_client import REGISTRY, CollectorRegistry, Counter, Summary

_INVALID_CHARS = re.compile(r"[^a-zA-Z0-9_]")


def metric_name(name: str, namespace: str = "worker") -> str:
    """Translate a dotted metric name into a Prometheus-safe one"""
    flat = _INVALID_CHARS.sub("_", name)
    return f"{namespace}_{flat}" if namespace else flat


class Meter(Protocol):
    def mark(self, value: float = 1) -> None:
        ...


class Timer(Protocol):
    def update(self, duration: float) -> None:
        ...


class MetricsSink(Protocol):
    def meter(self, name: str) -> Meter:
        ...

    def timer(self, name: str) -> Timer:
        ...


class _CounterMeter:
    def __init__(self, counter: Counter):
        self._counter = counter

    def mark(self, value: float = 1) -> None:
        self._counter.inc(value)


class _SummaryTimer:
    def __init__(self, summary: Summary):
        self._summary = summary

    def update(self, duration: float) -> None:
        self._summary.observe(duration)


_registered_lock = threading.Lock()
_registered: "weakref.WeakKeyDictionary[CollectorRegistry, Dict[str, Any]]" = weakref.WeakKeyDictionary()


def _collector(registry: CollectorRegistry, name: str, factory: Callable[[], Any]) -> Any:
    """Return the instrument registered under name, creating it on first use"""
    with _registered_lock:
        collectors = _registered.setdefault(registry, {})
        if name not in collectors:
            collectors[name] = factory()
        return collectors[name]


class PrometheusMetrics:
    """
    Meters and timers backed by a prometheus_client registry

    Collectors are shared per registry, so any number of sinks may point at
    the same registry and feed the same series.
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None, namespace: str = "worker"):
        self.registry = registry if registry is not None else REGISTRY
        self.namespace = namespace

    def meter(self, name: str) -> _CounterMeter:
        full_name = metric_name(name, self.namespace)
        return _collector(self.registry, full_name, lambda: _CounterMeter(Counter(
            full_name,
            f"Occurrences of {name}",
            registry=self.registry,
        )))

    def timer(self, name: str) -> _SummaryTimer:
        full_name = f"{metric_name(name, self.namespace)}_seconds"
        return _collector(self.registry, full_name, lambda: _SummaryTimer(Summary(
            full_name,
            f"Duration of {name} in seconds",
            registry=self.registry,
        )))


class _NullInstrument:
    def mark(self, value: float = 1) -> None:
        pass

    def update(self, duration: float) -> None:
        pass


class NullMetrics:
    """Sink that discards everything"""

    _instrument = _NullInstrument()

    def meter(self, name: str) -> _NullInstrument:
        return self._instrument

    def timer(self, name: str) -> _NullInstrument:
        return self._instrument
