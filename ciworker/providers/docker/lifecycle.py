import itertools
import os
import time
from contextlib import contextmanager
from typing import Any, Callable, Iterator, List, Optional, TypeVar

from ciworker.config import WorkerConfig
from ciworker.constants import (
    BOOT_ATTEMPTS,
    BOOT_POLL_ATTEMPTS,
    BOOT_POLL_INTERVAL,
    BOOT_RETRY_DELAY,
    CONTAINER_SSH_PORT,
    DEFAULT_SSH_USER,
    METRIC_BOOT,
    METRIC_BOOT_ERROR,
    METRIC_BOOT_TIMEOUT,
    METRIC_REMOVE_ERROR,
    REMOVE_ATTEMPTS,
    REMOVE_RETRY_DELAY,
)
from ciworker.models.container_templates import get_default_container_spec
from ciworker.models.sandbox_info import (
    BootOutcome,
    DestroyReport,
    Image,
    RemoveOutcome,
    RemoveStatus,
    SandboxInstance,
    VMState,
)
from ciworker.providers.docker.images import ImageResolver
from ciworker.services.exceptions import (
    BackendError,
    BackendNotFoundError,
    BootError,
    BootTimeoutError,
    ContainerRemoveError,
    ContainerStopError,
    SSHConnectionError,
)
from ciworker.services.log import StructuredLogger, get_logger
from ciworker.services.metrics import MetricsSink, NullMetrics
from ciworker.services.naming import generate_hostname, vm_names
from ciworker.services.retry import RetryPolicy

T = TypeVar("T")

_EXITED_STATUSES = ("exited", "dead")


def _with_cause(error: Exception, cause: Exception) -> Exception:
    error.__cause__ = cause
    return error


class LifecycleManager:
    """
    Creates, boots and destroys the Docker containers behind sandbox instances.

    One manager serves every slot of a worker. Calls for the same instance
    must come from one thread at a time; distinct instances are independent.
    """

    def __init__(self, config: WorkerConfig, backend, session_factory,
                 metrics: Optional[MetricsSink] = None,
                 resolver: Optional[ImageResolver] = None,
                 boot_retry: Optional[RetryPolicy] = None,
                 remove_retry: Optional[RetryPolicy] = None,
                 poll_attempts: int = BOOT_POLL_ATTEMPTS,
                 poll_interval: float = BOOT_POLL_INTERVAL,
                 sleep: Callable[[float], Any] = time.sleep,
                 clock: Callable[[], float] = time.time):
        self._logger = get_logger(f"{__name__}.LifecycleManager")
        self.config = config
        self.backend = backend
        self.session_factory = session_factory
        self.metrics = metrics if metrics is not None else NullMetrics()
        self.resolver = resolver or ImageResolver(
            backend,
            namespace=config.image_namespace,
            default_tag=config.default_image_tag,
            language_mappings=config.language_mappings,
        )
        self.boot_retry = boot_retry or RetryPolicy(BOOT_ATTEMPTS, BOOT_RETRY_DELAY)
        self.remove_retry = remove_retry or RetryPolicy(REMOVE_ATTEMPTS, REMOVE_RETRY_DELAY)
        self.poll_attempts = poll_attempts
        self.poll_interval = poll_interval
        self._sleep = sleep
        self._clock = clock

    def instance(self, name: str) -> SandboxInstance:
        """Build an unprovisioned instance; its hostname is fixed from here on"""
        return SandboxInstance(
            name=name,
            hostname=generate_hostname(name, self.config.host, os.getpid()),
            worker_host=self.config.host,
        )

    def instances(self) -> List[SandboxInstance]:
        return [self.instance(name) for name in vm_names(self.config.vm_count, self.config.name_prefix)]

    def prepare(self) -> None:
        images = self.resolver.latest_images
        self._logger.info(f"using latest templates : '{[image.ref for image in images]}'")
        if self.config.image_override:
            self._logger.info(f"image override is: '{self.config.image_override}'")

    def create(self, instance: SandboxInstance, language: Optional[str] = None) -> SandboxInstance:
        """
        Provision and boot a container for an instance

        Args:
            instance: Instance to provision
            language: Optional language hint used to pick the image

        Returns:
            The same instance, READY and holding a container reference

        Raises:
            ImageNotFoundError: If no usable image exists (not retried)
            BootError: If every boot attempt failed, the last one with an error
            BootTimeoutError: If every boot attempt failed, the last one by timeout
        """
        log = self._log(instance)
        if instance.container_ref is not None:
            log.debug("Container already provisioned", {"id": instance.container_ref})
            return instance

        image = self.resolver.resolve(language, self.config.image_override)
        log.info(f"Using image '{image.ref}' ({image.short_id}) for language {language or '[nil]'}")

        return self.boot_retry.call(
            lambda: self._boot(instance, image, log),
            retry_on=(BootError, BootTimeoutError),
            sleep=self._sleep,
            description=f"boot of {instance.name}",
        )

    def _boot(self, instance: SandboxInstance, image: Image, log: StructuredLogger) -> SandboxInstance:
        spec = get_default_container_spec(image.id, instance.hostname, self.config.docker_privileged)
        try:
            instance.container_ref = self.backend.create_container(spec)
            instance.state = VMState.BOOTING
            outcome = self._instrument(instance, log, lambda: self._start_and_wait(instance.container_ref))
        except Exception as e:
            self._mark(METRIC_BOOT_ERROR)
            log.error(f"Booting a Docker container failed with the following error: {e!r}")
            self._discard(instance)
            raise BootError(
                f"Failed to boot container for {instance.name}: {e}",
                {"vm": instance.name, "image": image.id},
            ) from e

        if outcome is BootOutcome.TIMED_OUT:
            window = self.poll_attempts * self.poll_interval
            self._mark(METRIC_BOOT_TIMEOUT)
            if instance.container_ref is not None:
                log.error(f"Docker container would not boot within {window} seconds", {
                    "id": instance.container_ref,
                })
            self._discard(instance)
            raise BootTimeoutError(
                f"Container for {instance.name} did not start within {window} seconds",
                {"vm": instance.name, "image": image.id},
            )

        if outcome is BootOutcome.ERRORED:
            self._mark(METRIC_BOOT_ERROR)
            log.error("Docker container exited while booting", {"id": instance.container_ref})
            self._discard(instance)
            raise BootError(
                f"Container for {instance.name} exited before it was running",
                {"vm": instance.name, "image": image.id},
            )

        instance.image = image
        instance.state = VMState.READY
        return instance

    def _instrument(self, instance: SandboxInstance, log: StructuredLogger,
                    fn: Callable[[], BootOutcome]) -> BootOutcome:
        log.info(f"Starting container with hostname: {instance.hostname}")
        started = self._clock()
        try:
            outcome = fn()
        finally:
            elapsed = self._clock() - started
            self._observe(METRIC_BOOT, elapsed)
        if outcome is BootOutcome.READY:
            log.info(f"Docker container started in {elapsed:.2f} seconds")
        return outcome

    def _start_and_wait(self, ref: str) -> BootOutcome:
        """Start the container and poll until it runs or the window closes"""
        self.backend.start(ref)
        for attempt in range(1, self.poll_attempts + 1):
            state = self.backend.inspect(ref)
            if state.running:
                return BootOutcome.READY
            if state.status in _EXITED_STATUSES:
                return BootOutcome.ERRORED
            if attempt < self.poll_attempts:
                self._sleep(self.poll_interval)
        return BootOutcome.TIMED_OUT

    def _discard(self, instance: SandboxInstance) -> None:
        """Release a container left behind by a failed boot attempt"""
        if instance.container_ref is not None:
            self.destroy(instance)

    def destroy(self, instance: SandboxInstance) -> DestroyReport:
        """
        Stop and remove the instance's container

        Never raises. Stop and remove failures are logged and reported; the
        instance is UNPROVISIONED afterwards in every case.
        """
        ref = instance.container_ref
        if ref is None:
            return DestroyReport()

        log = self._log(instance)
        report = DestroyReport(container_id=ref)
        instance.state = VMState.DESTROYING
        try:
            self._close_session(instance, log)
            report.stop_error = self._stop_container(ref, log)
            report.remove = self._remove_container(ref, log)
        finally:
            instance.session = None
            instance.image = None
            instance.container_ref = None
            instance.state = VMState.UNPROVISIONED
        return report

    def _stop_container(self, ref: str, log: StructuredLogger) -> Optional[ContainerStopError]:
        log.info(f"stopping container:{ref}")
        try:
            self.backend.stop(ref)
        except BackendError as e:
            log.warning(f"error when trying to stop container : {e!r}")
            return _with_cause(ContainerStopError(f"Failed to stop container {ref}", {"container": ref}), e)
        except Exception as e:
            log.error(f"unexpected error when trying to stop container : {e!r}")
            return _with_cause(ContainerStopError(f"Failed to stop container {ref}", {"container": ref}), e)
        return None

    def _remove_container(self, ref: str, log: StructuredLogger) -> RemoveOutcome:
        attempts = itertools.count(1)
        outcome = self.remove_retry.call_until(
            lambda: self._remove_once(ref, next(attempts), log),
            should_retry=lambda result: result.failed,
            sleep=self._sleep,
            description=f"removal of container {ref}",
        )
        if outcome.status is RemoveStatus.ALREADY_ABSENT:
            log.warning(f"error when trying to remove container : {outcome.cause!r}")
        elif outcome.status is RemoveStatus.FAILED:
            self._mark(METRIC_REMOVE_ERROR)
            log.error(f"giving up removing container:{ref} : {outcome.cause.__cause__!r}", {
                "attempts": outcome.attempts,
            })
        return outcome

    def _remove_once(self, ref: str, attempt: int, log: StructuredLogger) -> RemoveOutcome:
        log.info(f"trying to remove container:{ref}", {"attempt": attempt})
        try:
            self.backend.remove(ref)
        except BackendNotFoundError as e:
            return RemoveOutcome(RemoveStatus.ALREADY_ABSENT, attempt, e)
        except Exception as e:
            error = ContainerRemoveError(f"Failed to remove container {ref}", {"container": ref})
            return RemoveOutcome(RemoveStatus.FAILED, attempt, _with_cause(error, e))
        log.info(f"removed container:{ref}")
        return RemoveOutcome(RemoveStatus.REMOVED, attempt)

    def session(self, instance: SandboxInstance):
        """
        Shell session bound to the instance, provisioning it first if needed

        The session is opened once and reused until the instance is destroyed.
        """
        if instance.container_ref is None:
            self.create(instance)
        if instance.session is None:
            instance.session = self.session_factory.open(
                instance.name,
                host=self.config.ssh_host,
                port=self._ssh_port(instance),
                username=DEFAULT_SSH_USER,
                private_key_path=self.config.private_key_path,
                buffer=self.config.shell_buffer,
                timeouts=self.config.timeouts,
            )
        instance.state = VMState.IN_USE
        return instance.session

    def _ssh_port(self, instance: SandboxInstance) -> int:
        state = self.backend.inspect(instance.container_ref)
        port = state.port_map.get(f"{CONTAINER_SSH_PORT}/tcp")
        if port is None:
            raise SSHConnectionError(
                f"Container for {instance.name} has no host port mapped to {CONTAINER_SSH_PORT}",
                {"vm": instance.name, "container": instance.container_ref},
            )
        return port

    @contextmanager
    def sandbox(self, instance: SandboxInstance, language: Optional[str] = None) -> Iterator[Any]:
        """
        Provision the instance, yield its session, then always tear down

        Teardown closes the session before destroying the container; a failing
        close is logged and never hides an error raised by the caller.
        """
        self.create(instance, language)
        try:
            yield self.session(instance)
        finally:
            self._close_session(instance, self._log(instance))
            self.destroy(instance)

    def sandboxed(self, instance: SandboxInstance, work: Callable[[Any], T],
                  language: Optional[str] = None) -> T:
        with self.sandbox(instance, language) as session:
            return work(session)

    def _close_session(self, instance: SandboxInstance, log: StructuredLogger) -> None:
        session, instance.session = instance.session, None
        if session is None:
            return
        try:
            session.close()
        except Exception as e:
            log.warning(f"error when trying to close session : {e!r}")

    def _mark(self, name: str) -> None:
        try:
            self.metrics.meter(name).mark()
        except Exception as e:
            self._logger.warning(f"failed to mark meter {name} : {e!r}")

    def _observe(self, name: str, elapsed: float) -> None:
        try:
            self.metrics.timer(name).update(elapsed)
        except Exception as e:
            self._logger.warning(f"failed to update timer {name} : {e!r}")

    def _log(self, instance: SandboxInstance) -> StructuredLogger:
        return self._logger.bind(vm=instance.full_name)
