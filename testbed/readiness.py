from __future__ import annotations

import time
from threading import Event

from .errors import AdapterError, ReadinessTimeout, WaitCancelled
from .events import log_event
from .kube_ops import ObjectStore, selector_string


# Floor for a single list call so a poll at the deadline still gets a chance to answer.
MIN_REQUEST_TIMEOUT_S = 0.1


def count_ready(
    store: ObjectStore, namespace: str, selector: dict[str, str], timeout_s: float | None = None
) -> int:
    return sum(1 for i in store.list_instances(namespace, selector, timeout_s=timeout_s) if i.is_ready)


def wait_for_ready(
    store: ObjectStore,
    namespace: str,
    selector: dict[str, str],
    desired_count: int,
    timeout_s: float,
    poll_interval_s: float,
    cancel: Event | None = None,
) -> int:
    """Block until `desired_count` matching instances are ready in one poll.

    Each poll counts from scratch, so an instance that drops out of Ready
    lowers the count again. Returns the ready count that satisfied the wait.

    Every list call is bounded by the time left before the deadline, so a
    hung API server cannot hold the caller past it. A call cut off by the
    deadline counts as a timeout.

    Raises ReadinessTimeout when the deadline passes, WaitCancelled when
    `cancel` is set, and lets any other store error through on the first
    failure.
    """
    cancel = cancel or Event()
    interval = max(0.0, float(poll_interval_s))
    deadline = time.monotonic() + max(0.0, float(timeout_s))
    where = selector_string(selector)
    workload = selector.get("app")

    last_ready = -1
    while True:
        if cancel.is_set():
            raise WaitCancelled(f"wait for {where} in {namespace} cancelled")

        request_timeout = max(deadline - time.monotonic(), MIN_REQUEST_TIMEOUT_S)
        try:
            ready = count_ready(store, namespace, selector, timeout_s=request_timeout)
        except AdapterError as e:
            if time.monotonic() < deadline:
                raise
            log_event("ERROR", f"Gave up waiting for readiness: {e}", workload=workload, namespace=namespace)
            raise ReadinessTimeout(desired_count, max(last_ready, 0), timeout_s) from e
        if cancel.is_set():
            raise WaitCancelled(f"wait for {where} in {namespace} cancelled")

        if ready != last_ready:
            log_event("INFO", f"{ready}/{desired_count} instance(s) ready", workload=workload, namespace=namespace)
        last_ready = ready
        if ready >= desired_count:
            return ready

        remaining = deadline - time.monotonic()
        if remaining <= 0:
            log_event("ERROR", f"Gave up waiting for readiness ({ready}/{desired_count})", workload=workload, namespace=namespace)
            raise ReadinessTimeout(desired_count, ready, timeout_s)

        # Event.wait doubles as the sleep so cancel() wakes us immediately.
        if cancel.wait(min(interval, remaining)):
            raise WaitCancelled(f"wait for {where} in {namespace} cancelled")
