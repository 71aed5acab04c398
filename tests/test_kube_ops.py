import typing
from unittest import mock

import pytest
from kubernetes import client
from kubernetes.client.rest import ApiException
from urllib3.exceptions import MaxRetryError, ReadTimeoutError

from testbed.errors import AdapterError, AlreadyExists, NotFound, StepFailed
from testbed.kube_ops import (
    KubeStore,
    Resource,
    deployment_to_replica_group,
    pod_to_instance,
    replica_group_to_deployment,
    selector_string,
    service_endpoint_to_service,
    service_to_service_endpoint,
)
from testbed.models import ReplicaGroup, ResourceKind, ServiceEndpoint, WorkloadSpec
from testbed.provisioner import ProvisionState, Provisioner
from testbed.settings import Settings

RG = ReplicaGroup(namespace="e2e", name="http-svc", image="echoserver:1.10", port=8080, replicas=2, labels={"app": "http-svc"})
SE = ServiceEndpoint(namespace="e2e", name="http-svc", target_port=8080, selector={"app": "http-svc"})


def _store():
    return KubeStore(apps=mock.Mock(spec=client.AppsV1Api), core=mock.Mock(spec=client.CoreV1Api))


def _live(obj, uid="abc-123"):
    obj.metadata.uid = uid
    return obj


def test_selector_string_is_sorted():
    assert selector_string({"tier": "web", "app": "x"}) == "app=x,tier=web"


def test_deployment_payload():
    d = replica_group_to_deployment(RG)

    assert d.metadata.name == "http-svc"
    assert d.metadata.namespace == "e2e"
    assert d.spec.replicas == 2
    assert d.spec.selector.match_labels == {"app": "http-svc"}
    assert d.spec.template.metadata.labels == {"app": "http-svc"}
    pod = d.spec.template.spec
    assert pod.termination_grace_period_seconds == 0
    (c,) = pod.containers
    assert (c.name, c.image) == ("http-svc", "echoserver:1.10")
    assert c.env == []
    assert (c.ports[0].name, c.ports[0].container_port) == ("http", 8080)


def test_deployment_translates_back():
    rg = deployment_to_replica_group(_live(replica_group_to_deployment(RG)))

    assert rg.uid == "abc-123"
    assert rg.labels == RG.labels
    assert (rg.image, rg.port, rg.replicas, rg.termination_grace_period_s) == ("echoserver:1.10", 8080, 2, 0)


def test_service_payload_and_back():
    s = service_endpoint_to_service(SE)
    p = s.spec.ports[0]

    assert (p.name, p.port, p.target_port, p.protocol) == ("http", 80, 8080, "TCP")
    assert s.spec.selector == {"app": "http-svc"}

    se = service_to_service_endpoint(_live(s))
    assert (se.port, se.target_port, se.uid) == (80, 8080, "abc-123")


def test_translation_of_nothing_is_nothing():
    assert deployment_to_replica_group(None) is None
    assert service_to_service_endpoint(None) is None


def test_pod_conditions():
    pod = client.V1Pod(
        metadata=client.V1ObjectMeta(name="http-svc-1", namespace="e2e", labels={"app": "http-svc"}),
        status=client.V1PodStatus(
            phase="Running",
            conditions=[
                client.V1PodCondition(type="PodScheduled", status="True"),
                client.V1PodCondition(type="Ready", status="False"),
            ],
        ),
    )

    inst = pod_to_instance(pod)
    assert inst.phase == "Running"
    assert inst.is_ready is False

    pod.status.conditions[1].status = "True"
    assert pod_to_instance(pod).is_ready is True


def test_pod_without_status_is_not_ready():
    pod = client.V1Pod(metadata=client.V1ObjectMeta(name="p", namespace="e2e"))
    assert pod_to_instance(pod).is_ready is False


def test_get_reads_the_right_api():
    store = _store()
    store.apps.read_namespaced_deployment.return_value = _live(replica_group_to_deployment(RG))
    store.core.read_namespaced_service.return_value = _live(service_endpoint_to_service(SE))

    assert store.get(ResourceKind.REPLICA_GROUP, "e2e", "http-svc").name == "http-svc"
    assert store.get(ResourceKind.SERVICE_ENDPOINT, "e2e", "http-svc").target_port == 8080
    store.apps.read_namespaced_deployment.assert_called_once_with("http-svc", "e2e")
    store.core.read_namespaced_service.assert_called_once_with("http-svc", "e2e")


@pytest.mark.parametrize(
    "status,exc_type",
    [(404, NotFound), (409, AlreadyExists), (403, AdapterError), (500, AdapterError)],
)
def test_api_errors_are_translated(status, exc_type):
    store = _store()
    store.apps.read_namespaced_deployment.side_effect = ApiException(status=status, reason="boom")

    with pytest.raises(exc_type) as exc:
        store.get(ResourceKind.REPLICA_GROUP, "e2e", "http-svc")

    assert isinstance(exc.value.__cause__, ApiException)
    if exc_type is AdapterError:
        assert exc.value.status == status


def test_create_sends_built_payload():
    store = _store()
    store.apps.create_namespaced_deployment.side_effect = lambda ns, body: _live(body)

    live = store.create(ResourceKind.REPLICA_GROUP, RG)

    assert live.uid == "abc-123"
    ns, body = store.apps.create_namespaced_deployment.call_args.args
    assert ns == "e2e"
    assert isinstance(body, client.V1Deployment)


def test_create_conflict_is_already_exists():
    store = _store()
    store.core.create_namespaced_service.side_effect = ApiException(status=409, reason="AlreadyExists")

    with pytest.raises(AlreadyExists):
        store.create(ResourceKind.SERVICE_ENDPOINT, SE)


def test_list_instances_uses_label_selector():
    store = _store()
    store.core.list_namespaced_pod.return_value = client.V1PodList(
        items=[client.V1Pod(metadata=client.V1ObjectMeta(name="a", namespace="e2e", labels={"app": "http-svc"}))]
    )

    out = store.list_instances("e2e", {"app": "http-svc"})

    assert [i.name for i in out] == ["a"]
    store.core.list_namespaced_pod.assert_called_once_with("e2e", label_selector="app=http-svc")


def test_store_never_deletes_or_updates():
    store = _store()
    store.core.list_namespaced_pod.return_value = client.V1PodList(items=[])
    store.core.create_namespaced_service.side_effect = lambda ns, body: _live(body)
    store.list_instances("e2e", {"app": "x"})
    store.create(ResourceKind.SERVICE_ENDPOINT, SE)

    called = {c[0].split(".")[0] for c in store.core.method_calls + store.apps.method_calls}
    assert not any(name.startswith(("delete", "patch", "replace")) for name in called)


def test_bad_kubeconfig_is_an_adapter_error(tmp_path):
    missing = tmp_path / "nope.yaml"
    with pytest.raises(AdapterError, match="Unable to load cluster configuration"):
        KubeStore.from_settings(Settings(kubeconfig=str(missing), in_cluster=False))


def test_connection_failure_is_an_adapter_error():
    store = _store()
    store.apps.read_namespaced_deployment.side_effect = MaxRetryError(None, "/apis/apps/v1", reason="connection refused")

    with pytest.raises(AdapterError, match="MaxRetryError") as exc:
        store.get(ResourceKind.REPLICA_GROUP, "e2e", "http-svc")

    assert exc.value.status is None
    assert isinstance(exc.value.__cause__, MaxRetryError)


def test_connection_failure_fails_the_provision_with_step_context():
    store = _store()
    store.apps.read_namespaced_deployment.side_effect = MaxRetryError(None, "/apis/apps/v1", reason="connection refused")
    prov = Provisioner(store, namespace="e2e", ready_timeout_s=0.1, poll_interval_s=0.01)

    with pytest.raises(StepFailed) as exc:
        prov.provision(WorkloadSpec(name="http-svc", image="echoserver:1.10", port=8080, replicas=1, namespace="e2e"))

    assert exc.value.step == "ensure_workload"
    assert isinstance(exc.value.cause, AdapterError)
    assert prov.state_of("http-svc") is ProvisionState.FAIL
    assert prov.last_error("http-svc") is exc.value


def test_list_instances_forwards_request_timeout():
    store = _store()
    store.core.list_namespaced_pod.return_value = client.V1PodList(items=[])

    store.list_instances("e2e", {"app": "http-svc"}, timeout_s=1.5)

    store.core.list_namespaced_pod.assert_called_once_with("e2e", label_selector="app=http-svc", _request_timeout=1.5)


def test_list_instances_read_timeout_is_an_adapter_error():
    store = _store()
    store.core.list_namespaced_pod.side_effect = ReadTimeoutError(None, "/api/v1/pods", "read timed out")

    with pytest.raises(AdapterError, match="ReadTimeoutError"):
        store.list_instances("e2e", {"app": "http-svc"}, timeout_s=0.1)


def test_resource_covers_both_kinds():
    assert set(typing.get_args(Resource)) == {ReplicaGroup, ServiceEndpoint}
