"""testbed: disposable workloads for end-to-end tests.

Creates (or adopts) a Deployment and Service for a test workload in a live
Kubernetes cluster and blocks until the pods behind it report Ready:
 - ensure: create-if-absent, adopt-if-present, never update or delete
 - readiness: fixed-interval polling against an absolute deadline, cancellable
 - provisioner: the four-step flow plus echo/httpbin convenience entry points
"""
from .errors import (
    AdapterError,
    AlreadyExists,
    InvariantViolation,
    NotFound,
    ProvisionError,
    ReadinessTimeout,
    StepFailed,
    WaitCancelled,
)
from .models import WorkloadSpec
from .provisioner import ProvisionReport, Provisioner

__all__ = [
    "AdapterError",
    "AlreadyExists",
    "InvariantViolation",
    "NotFound",
    "ProvisionError",
    "ProvisionReport",
    "Provisioner",
    "ReadinessTimeout",
    "StepFailed",
    "WaitCancelled",
    "WorkloadSpec",
]
