from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from .errors import AdapterError, AlreadyExists, InvariantViolation, NotFound
from .events import log_event
from .kube_ops import ObjectStore, Resource


class Outcome(str, Enum):
    CREATED = "created"
    ADOPTED = "adopted"


@dataclass(frozen=True)
class EnsureResult:
    resource: Resource
    outcome: Outcome

    @property
    def created(self) -> bool:
        return self.outcome is Outcome.CREATED


def ensure(store: ObjectStore, desired: Resource) -> EnsureResult:
    """Make sure `desired` exists, creating it if absent.

    An existing object is returned untouched; drift from `desired` is not
    reconciled. Losing a create race to another caller counts as adoption.
    """
    kind = desired.kind
    ns, name = desired.namespace, desired.name

    try:
        live = store.get(kind, ns, name)
    except NotFound:
        pass
    else:
        if live is None:
            raise InvariantViolation(f"unexpected error reading {kind.value} {name}")
        log_event("INFO", f"Adopted existing {kind.value}", workload=name, namespace=ns)
        return EnsureResult(live, Outcome.ADOPTED)

    try:
        live = store.create(kind, desired)
        outcome = Outcome.CREATED
    except AlreadyExists:
        log_event("WARN", f"{kind.value} appeared while creating it; adopting", workload=name, namespace=ns)
        try:
            live = store.get(kind, ns, name)
        except NotFound as e:
            # Created and deleted by someone else between our create and this read.
            raise AdapterError(f"{kind.value} {name} reported as existing but vanished before it could be adopted") from e
        outcome = Outcome.ADOPTED

    if live is None:
        raise InvariantViolation(f"unexpected error creating {kind.value} {name}")

    if outcome is Outcome.CREATED:
        log_event("INFO", f"Created {kind.value}", workload=name, namespace=ns)
    return EnsureResult(live, outcome)
