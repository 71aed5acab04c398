from __future__ import annotations

import os
from dataclasses import dataclass


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    # Ambient test context
    namespace: str = os.getenv("TESTBED_NAMESPACE", "default")

    # Readiness wait
    ready_timeout_s: float = _env_float("TESTBED_READY_TIMEOUT_S", 300.0)
    poll_interval_s: float = _env_float("TESTBED_POLL_INTERVAL_S", 2.0)

    # Cluster access (credentials come from an existing kubeconfig)
    kubeconfig: str | None = os.getenv("TESTBED_KUBECONFIG")
    kube_context: str | None = os.getenv("TESTBED_KUBE_CONTEXT")
    in_cluster: bool = _env_bool("TESTBED_IN_CLUSTER", False)

    event_history: int = _env_int("TESTBED_EVENT_HISTORY", 500)


settings = Settings()
