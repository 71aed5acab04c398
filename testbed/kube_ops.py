from __future__ import annotations

from typing import Protocol

from kubernetes import client, config
from kubernetes.client.rest import ApiException
from urllib3.exceptions import HTTPError

from .errors import AdapterError, AlreadyExists, NotFound
from .events import log_event
from .models import Instance, ReplicaGroup, ResourceKind, ServiceEndpoint
from .settings import Settings, settings


HTTP_NOT_FOUND = 404
HTTP_CONFLICT = 409

Resource = ReplicaGroup | ServiceEndpoint


class ObjectStore(Protocol):
    """What the provisioning core needs from the cluster. No delete, no update."""

    def get(self, kind: ResourceKind, namespace: str, name: str) -> Resource | None: ...

    def create(self, kind: ResourceKind, resource: Resource) -> Resource | None: ...

    def list_instances(
        self, namespace: str, selector: dict[str, str], timeout_s: float | None = None
    ) -> list[Instance]: ...


def selector_string(selector: dict[str, str]) -> str:
    """Render a match-labels dict the way the API expects (`a=b,c=d`)."""
    return ",".join(f"{k}={v}" for k, v in sorted(selector.items()))


def _translate(e: ApiException | HTTPError, what: str) -> Exception:
    if not isinstance(e, ApiException):
        # Connection refused, retries exhausted, read timeout: no HTTP status to map.
        return AdapterError(f"{what}: {type(e).__name__}: {e}")
    if e.status == HTTP_NOT_FOUND:
        return NotFound(f"{what} not found")
    if e.status == HTTP_CONFLICT:
        return AlreadyExists(f"{what} already exists")
    return AdapterError(f"{what}: HTTP {e.status} {e.reason}", status=e.status)


# --- ReplicaGroup <-> Deployment ---


def replica_group_to_deployment(rg: ReplicaGroup) -> client.V1Deployment:
    return client.V1Deployment(
        api_version="apps/v1",
        kind="Deployment",
        metadata=client.V1ObjectMeta(name=rg.name, namespace=rg.namespace),
        spec=client.V1DeploymentSpec(
            replicas=rg.replicas,
            selector=client.V1LabelSelector(match_labels=dict(rg.labels)),
            template=client.V1PodTemplateSpec(
                metadata=client.V1ObjectMeta(labels=dict(rg.labels)),
                spec=client.V1PodSpec(
                    termination_grace_period_seconds=rg.termination_grace_period_s,
                    containers=[
                        client.V1Container(
                            name=rg.name,
                            image=rg.image,
                            env=[],
                            ports=[client.V1ContainerPort(name=rg.port_name, container_port=rg.port)],
                        )
                    ],
                ),
            ),
        ),
    )


def deployment_to_replica_group(d: client.V1Deployment | None) -> ReplicaGroup | None:
    if d is None or d.metadata is None:
        return None
    spec = d.spec
    template = spec.template if spec else None
    pod_spec = template.spec if template else None
    container = pod_spec.containers[0] if pod_spec and pod_spec.containers else None
    port = container.ports[0] if container and container.ports else None
    return ReplicaGroup(
        namespace=d.metadata.namespace,
        name=d.metadata.name,
        image=container.image if container else "",
        port=port.container_port if port else 0,
        port_name=(port.name or "") if port else "",
        replicas=spec.replicas if spec and spec.replicas is not None else 1,
        labels=dict(template.metadata.labels or {}) if template and template.metadata else {},
        termination_grace_period_s=(pod_spec.termination_grace_period_seconds or 0) if pod_spec else 0,
        uid=d.metadata.uid,
    )


# --- ServiceEndpoint <-> Service ---


def service_endpoint_to_service(se: ServiceEndpoint) -> client.V1Service:
    return client.V1Service(
        api_version="v1",
        kind="Service",
        metadata=client.V1ObjectMeta(name=se.name, namespace=se.namespace),
        spec=client.V1ServiceSpec(
            selector=dict(se.selector),
            ports=[
                client.V1ServicePort(
                    name=se.port_name,
                    port=se.port,
                    target_port=se.target_port,
                    protocol=se.protocol,
                )
            ],
        ),
    )


def service_to_service_endpoint(s: client.V1Service | None) -> ServiceEndpoint | None:
    if s is None or s.metadata is None:
        return None
    spec = s.spec
    p = spec.ports[0] if spec and spec.ports else None
    target = p.target_port if p else 0
    # target_port is IntOrString; named ports stay strings.
    if isinstance(target, str) and target.isdigit():
        target = int(target)
    return ServiceEndpoint(
        namespace=s.metadata.namespace,
        name=s.metadata.name,
        target_port=target,
        selector=dict(spec.selector or {}) if spec else {},
        port=p.port if p else 0,
        protocol=(p.protocol or "TCP") if p else "TCP",
        port_name=(p.name or "") if p else "",
        uid=s.metadata.uid,
    )


def pod_to_instance(pod: client.V1Pod) -> Instance:
    status = pod.status
    conditions = {c.type: c.status for c in (status.conditions or [])} if status else {}
    return Instance(
        namespace=pod.metadata.namespace,
        name=pod.metadata.name,
        labels=dict(pod.metadata.labels or {}),
        phase=status.phase if status else None,
        conditions=conditions,
    )


class KubeStore:
    """ObjectStore backed by the Kubernetes API.

    ReplicaGroup maps to apps/v1 Deployment, ServiceEndpoint to v1 Service and
    Instance to v1 Pod. API failures come back as the exceptions in errors.py.
    """

    def __init__(
        self,
        api_client: client.ApiClient | None = None,
        apps: client.AppsV1Api | None = None,
        core: client.CoreV1Api | None = None,
    ):
        self.apps = apps or client.AppsV1Api(api_client)
        self.core = core or client.CoreV1Api(api_client)

    @classmethod
    def from_settings(cls, s: Settings = settings) -> "KubeStore":
        return cls(api_client=load_api_client(s))

    def get(self, kind: ResourceKind, namespace: str, name: str) -> Resource | None:
        what = f"{kind.value} {namespace}/{name}"
        try:
            if kind is ResourceKind.REPLICA_GROUP:
                return deployment_to_replica_group(self.apps.read_namespaced_deployment(name, namespace))
            return service_to_service_endpoint(self.core.read_namespaced_service(name, namespace))
        except (ApiException, HTTPError) as e:
            raise _translate(e, what) from e

    def create(self, kind: ResourceKind, resource: Resource) -> Resource | None:
        what = f"{kind.value} {resource.namespace}/{resource.name}"
        try:
            if kind is ResourceKind.REPLICA_GROUP:
                created = self.apps.create_namespaced_deployment(
                    resource.namespace, replica_group_to_deployment(resource)
                )
                return deployment_to_replica_group(created)
            created = self.core.create_namespaced_service(resource.namespace, service_endpoint_to_service(resource))
            return service_to_service_endpoint(created)
        except (ApiException, HTTPError) as e:
            raise _translate(e, what) from e

    def list_instances(
        self, namespace: str, selector: dict[str, str], timeout_s: float | None = None
    ) -> list[Instance]:
        label_selector = selector_string(selector)
        kwargs = {"label_selector": label_selector}
        if timeout_s is not None:
            kwargs["_request_timeout"] = timeout_s
        try:
            pods = self.core.list_namespaced_pod(namespace, **kwargs)
        except (ApiException, HTTPError) as e:
            raise _translate(e, f"pods {namespace}/{label_selector}") from e
        return [pod_to_instance(p) for p in (pods.items or [])]


def load_api_client(s: Settings = settings) -> client.ApiClient:
    """Load cluster credentials into a dedicated ApiClient.

    Authentication itself is out of scope: this only reads an existing
    in-cluster service account or kubeconfig.
    """
    cfg = client.Configuration()
    try:
        if s.in_cluster:
            config.load_incluster_config(client_configuration=cfg)
            mode = "in-cluster"
        else:
            config.load_kube_config(config_file=s.kubeconfig, context=s.kube_context, client_configuration=cfg)
            mode = f"kubeconfig ({s.kubeconfig or 'default'})"
    except config.ConfigException as e:
        raise AdapterError(f"Unable to load cluster configuration: {e}") from e
    log_event("INFO", f"Loaded cluster configuration from {mode}")
    return client.ApiClient(cfg)
