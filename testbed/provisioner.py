"""Provision a test workload and block until it is ready to take traffic.

A provision runs four steps in order and stops at the first failure:

    build_spec -> ensure_workload -> await_ready -> ensure_exposure

Nothing is rolled back on failure. Whatever was created stays in the
namespace for the caller (usually the test suite teardown) to clean up.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from threading import Event, Lock

from .ensure import EnsureResult, ensure
from .errors import InvariantViolation, ProvisionError, StepFailed
from .events import log_event
from .kube_ops import ObjectStore
from .models import ReplicaGroup, ServiceEndpoint, WorkloadSpec, app_selector
from .readiness import wait_for_ready
from .settings import settings


ECHO_NAME = "http-svc"
ECHO_IMAGE = "gcr.io/google_containers/echoserver:1.10"
ECHO_PORT = 8080

HTTPBIN_NAME = "httpbin"
HTTPBIN_IMAGE = "kennethreitz/httpbin"
HTTPBIN_PORT = 80

SERVICE_PORT = 80


class ProvisionState(str, Enum):
    BUILD_SPEC = "build_spec"
    ENSURE_WORKLOAD = "ensure_workload"
    AWAIT_READY = "await_ready"
    ENSURE_EXPOSURE = "ensure_exposure"
    SUCCESS = "success"
    FAIL = "fail"


@dataclass(frozen=True)
class ProvisionReport:
    spec: WorkloadSpec
    workload: EnsureResult
    exposure: EnsureResult
    ready_count: int

    def as_dict(self) -> dict:
        return {
            "name": self.spec.name,
            "namespace": self.spec.namespace,
            "image": self.spec.image,
            "replicas": self.spec.replicas,
            "ready": self.ready_count,
            "workload": self.workload.outcome.value,
            "exposure": self.exposure.outcome.value,
        }


def build_replica_group(spec: WorkloadSpec) -> ReplicaGroup:
    # Grace period 0: test workloads are torn down constantly, don't wait on SIGTERM.
    return ReplicaGroup(
        namespace=spec.namespace,
        name=spec.name,
        image=spec.image,
        port=spec.port,
        replicas=spec.replicas,
        labels=app_selector(spec.name),
        termination_grace_period_s=0,
    )


def build_service_endpoint(spec: WorkloadSpec) -> ServiceEndpoint:
    return ServiceEndpoint(
        namespace=spec.namespace,
        name=spec.name,
        port=SERVICE_PORT,
        target_port=spec.port,
        protocol="TCP",
        selector=app_selector(spec.name),
    )


class Provisioner:
    """Creates (or adopts) test workloads in one namespace and waits for them.

    Several names may be provisioned from different threads at once; the
    per-name state is kept under a lock.

    `cancel()` abandons the readiness waits in progress at the time of the
    call; provisions started afterwards run normally. A caller that needs to
    cancel a single provision passes its own `cancel` event instead.
    """

    def __init__(
        self,
        store: ObjectStore,
        namespace: str | None = None,
        ready_timeout_s: float | None = None,
        poll_interval_s: float | None = None,
        cancel: Event | None = None,
    ):
        self.store = store
        self.namespace = namespace or settings.namespace
        self.ready_timeout_s = settings.ready_timeout_s if ready_timeout_s is None else ready_timeout_s
        self.poll_interval_s = settings.poll_interval_s if poll_interval_s is None else poll_interval_s
        self._cancel = cancel or Event()
        self._lock = Lock()
        self._states: dict[str, ProvisionState] = {}
        self._errors: dict[str, ProvisionError] = {}

    def cancel(self) -> None:
        with self._lock:
            ev, self._cancel = self._cancel, Event()
        ev.set()

    def _current_cancel(self) -> Event:
        with self._lock:
            return self._cancel

    def state_of(self, name: str) -> ProvisionState | None:
        with self._lock:
            return self._states.get(name)

    def last_error(self, name: str) -> ProvisionError | None:
        with self._lock:
            return self._errors.get(name)

    def _enter(self, name: str, state: ProvisionState) -> None:
        with self._lock:
            self._states[name] = state
            if state is not ProvisionState.FAIL:
                self._errors.pop(name, None)

    def _fail(self, spec: WorkloadSpec, err: ProvisionError) -> ProvisionError:
        with self._lock:
            self._states[spec.name] = ProvisionState.FAIL
            self._errors[spec.name] = err
        log_event("ERROR", f"Provision failed: {err}", workload=spec.name, namespace=spec.namespace)
        return err

    def provision(self, spec: WorkloadSpec, cancel: Event | None = None) -> ProvisionReport:
        name = spec.name
        cancel = cancel or self._current_cancel()

        self._enter(name, ProvisionState.BUILD_SPEC)
        desired = build_replica_group(spec)

        self._enter(name, ProvisionState.ENSURE_WORKLOAD)
        try:
            workload = ensure(self.store, desired)
        except InvariantViolation as e:
            raise self._fail(spec, e)
        except ProvisionError as e:
            raise self._fail(spec, StepFailed(ProvisionState.ENSURE_WORKLOAD.value, f"ensuring deployment {name}", e)) from e

        self._enter(name, ProvisionState.AWAIT_READY)
        try:
            ready = wait_for_ready(
                self.store,
                namespace=spec.namespace,
                selector=dict(workload.resource.labels) or spec.selector,
                desired_count=spec.replicas,
                timeout_s=self.ready_timeout_s,
                poll_interval_s=self.poll_interval_s,
                cancel=cancel,
            )
        except ProvisionError as e:
            raise self._fail(
                spec, StepFailed(ProvisionState.AWAIT_READY.value, f"failed to wait for {name} to become ready", e)
            ) from e

        self._enter(name, ProvisionState.ENSURE_EXPOSURE)
        try:
            exposure = ensure(self.store, build_service_endpoint(spec))
        except InvariantViolation as e:
            raise self._fail(spec, e)
        except ProvisionError as e:
            raise self._fail(spec, StepFailed(ProvisionState.ENSURE_EXPOSURE.value, f"ensuring service {name}", e)) from e

        self._enter(name, ProvisionState.SUCCESS)
        log_event(
            "INFO",
            f"Workload ready ({ready}/{spec.replicas}), exposed on port {SERVICE_PORT}",
            workload=name,
            namespace=spec.namespace,
        )
        return ProvisionReport(spec=spec, workload=workload, exposure=exposure, ready_count=ready)

    # --- entry points used by test suites ---

    def new_deployment(
        self, name: str, image: str, port: int, replicas: int, cancel: Event | None = None
    ) -> ProvisionReport:
        spec = WorkloadSpec(name=name, image=image, port=port, replicas=replicas, namespace=self.namespace)
        return self.provision(spec, cancel=cancel)

    def new_echo_deployment(self, cancel: Event | None = None) -> ProvisionReport:
        """Single replica of the echoserver image."""
        return self.new_echo_deployment_with_replicas(1, cancel=cancel)

    def new_echo_deployment_with_replicas(self, replicas: int, cancel: Event | None = None) -> ProvisionReport:
        return self.new_deployment(ECHO_NAME, ECHO_IMAGE, ECHO_PORT, replicas, cancel=cancel)

    def new_httpbin_deployment(self, cancel: Event | None = None) -> ProvisionReport:
        """Single replica of the httpbin image."""
        return self.new_httpbin_deployment_with_replicas(1, cancel=cancel)

    def new_httpbin_deployment_with_replicas(self, replicas: int, cancel: Event | None = None) -> ProvisionReport:
        return self.new_deployment(HTTPBIN_NAME, HTTPBIN_IMAGE, HTTPBIN_PORT, replicas, cancel=cancel)
