import copy
import sys
from pathlib import Path

import pytest
from kubernetes import client
from kubernetes.client.rest import ApiException

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from pipeline_operator import crd  # noqa: E402
from pipeline_operator.clouds import get_cloud  # noqa: E402
from pipeline_operator.config import OperatorConfig  # noqa: E402
from pipeline_operator.k8s import Clients  # noqa: E402
from pipeline_operator.reconcile import ReconcileContext  # noqa: E402


def not_found():
    return ApiException(status=404, reason="Not Found")


def already_exists():
    return ApiException(status=409, reason="AlreadyExists")


def conflict():
    return ApiException(status=409, reason="Conflict")


class FakeBatchApi:
    def __init__(self):
        self.jobs = {}
        self.create_calls = 0

    def create_namespaced_job(self, namespace, body, **kwargs):
        self.create_calls += 1
        key = (namespace, body.metadata.name)
        if key in self.jobs:
            raise already_exists()
        body.status = client.V1JobStatus()
        self.jobs[key] = body
        return body

    def read_namespaced_job(self, name, namespace, **kwargs):
        try:
            return self.jobs[(namespace, name)]
        except KeyError:
            raise not_found()

    def succeed(self, namespace, name):
        self.jobs[(namespace, name)].status = client.V1JobStatus(succeeded=1)

    def fail(self, namespace, name, count=1):
        self.jobs[(namespace, name)].status = client.V1JobStatus(failed=count)


class FakeCoreApi:
    def __init__(self):
        self.service_accounts = {}
        self.services = {}
        self.patches = []

    def create_namespaced_service_account(self, namespace, body, **kwargs):
        key = (namespace, body.metadata.name)
        if key in self.service_accounts:
            raise already_exists()
        self.service_accounts[key] = body
        return body

    def read_namespaced_service_account(self, name, namespace, **kwargs):
        try:
            return self.service_accounts[(namespace, name)]
        except KeyError:
            raise not_found()

    def patch_namespaced_service_account(self, name, namespace, body, **kwargs):
        self.patches.append((namespace, name, body))
        sa = self.service_accounts[(namespace, name)]
        annotations = dict(sa.metadata.annotations or {})
        annotations.update(body["metadata"]["annotations"])
        sa.metadata.annotations = annotations
        return sa

    def create_namespaced_service(self, namespace, body, **kwargs):
        key = (namespace, body.metadata.name)
        if key in self.services:
            raise already_exists()
        self.services[key] = body
        return body


class FakeAppsApi:
    def __init__(self):
        self.deployments = {}

    def create_namespaced_deployment(self, namespace, body, **kwargs):
        key = (namespace, body.metadata.name)
        if key in self.deployments:
            raise already_exists()
        body.status = client.V1DeploymentStatus()
        self.deployments[key] = body
        return body

    def read_namespaced_deployment(self, name, namespace, **kwargs):
        try:
            return self.deployments[(namespace, name)]
        except KeyError:
            raise not_found()

    def make_ready(self, namespace, name):
        self.deployments[(namespace, name)].status = client.V1DeploymentStatus(ready_replicas=1)


class FakeCustomObjectsApi:
    """Custom objects with API-server style resourceVersion checks on status writes."""

    def __init__(self):
        self.objects = {}
        self.status_patches = []
        self.version = 0

    def _bump(self, obj):
        self.version += 1
        obj["metadata"]["resourceVersion"] = str(self.version)

    def add(self, plural, body):
        obj = copy.deepcopy(body)
        self._bump(obj)
        metadata = obj["metadata"]
        self.objects[(plural, metadata.get("namespace", "default"), metadata["name"])] = obj

    def body(self, plural, name, namespace="default"):
        return self.objects[(plural, namespace, name)]

    def get_namespaced_custom_object(self, group, version, namespace, plural, name, **kwargs):
        assert group == crd.GROUP and version == crd.VERSION
        try:
            return copy.deepcopy(self.objects[(plural, namespace, name)])
        except KeyError:
            raise not_found()

    def patch_namespaced_custom_object_status(self, group, version, namespace, plural, name, body, **kwargs):
        obj = self.objects[(plural, namespace, name)]
        expected = (body.get("metadata") or {}).get("resourceVersion")
        if expected is not None and expected != obj["metadata"]["resourceVersion"]:
            raise conflict()
        self.status_patches.append((plural, namespace, name))
        self._bump(obj)
        status = obj.setdefault("status", {})
        status.update(copy.deepcopy(body["status"]))
        return copy.deepcopy(obj)


class FakeCloudManager:
    def __init__(self):
        self.binds = []
        self.checksum_calls = []
        self.checksum = "d41d8cd98f00b204e9800998ecf8427e"
        self.checksum_error = None
        self.closed = False

    def bind_identity(self, principal, namespace, service_account):
        self.binds.append((principal, namespace, service_account))

    def get_object_checksum(self, bucket, object_name):
        self.checksum_calls.append((bucket, object_name))
        if self.checksum_error is not None:
            raise self.checksum_error
        return self.checksum

    def close(self):
        self.closed = True


def resource_body(name, spec, status=None, uid=None, namespace="default", generation=1):
    body = {
        "apiVersion": crd.API_VERSION,
        "metadata": {
            "name": name,
            "namespace": namespace,
            "uid": uid or f"uid-{name}",
            "generation": generation,
        },
        "spec": spec,
    }
    if status is not None:
        body["status"] = status
    return body


@pytest.fixture
def operator_config():
    return OperatorConfig.from_env({"CLOUD": "gcp", "GCP_PROJECT_ID": "test-project"})


@pytest.fixture
def clients():
    return Clients(
        core=FakeCoreApi(),
        batch=FakeBatchApi(),
        apps=FakeAppsApi(),
        custom=FakeCustomObjectsApi(),
    )


@pytest.fixture
def manager():
    return FakeCloudManager()


@pytest.fixture
def cloud(operator_config, manager):
    return get_cloud(operator_config, manager)


@pytest.fixture
def ctx(clients, operator_config, cloud):
    return ReconcileContext(clients=clients, config=operator_config, cloud=cloud)
