"""
End-to-end tests for the staged Dataset, Model and Server reconcilers.
"""

import copy

import pytest
from kubernetes.client.rest import ApiException

from cloud_manager.client import PermanentCloudError, TransientCloudError
from conftest import resource_body
from pipeline_operator import crd
from pipeline_operator.conditions import Condition
from pipeline_operator.reconcile import reconcile
from pipeline_operator.resources import Kind, ResourceStatus

CONTAINER_READY = {
    "type": crd.CONDITION_CONTAINER_READY,
    "status": "True",
    "reason": crd.REASON_IMAGE_PROVIDED,
    "message": "",
    "lastTransitionTime": "2024-05-01T12:00:00Z",
}


def stored_status(clients, plural, name):
    return ResourceStatus.from_dict(clients.custom.body(plural, name).get("status"))


def condition(status, type_):
    for c in status.conditions:
        if c.type == type_:
            return c
    return None


def add_dataset(clients, name="squad", spec=None, status=None, uid="uid-1"):
    spec = spec if spec is not None else {"container": {"image": "loader:1"}, "filename": "train.jsonl"}
    clients.custom.add(crd.PLURAL_DATASETS, resource_body(name, spec, status=status, uid=uid))


def ready_status(url):
    return {
        "ready": True,
        "url": url,
        "conditions": [dict(CONTAINER_READY)],
    }


# ============================================================================
# Dataset
# ============================================================================


def test_dataset_loads_then_becomes_ready(ctx, clients, manager):
    add_dataset(clients, status={"conditions": [dict(CONTAINER_READY)]})

    result = reconcile(ctx, Kind.DATASET, "squad", "default")

    assert result.is_incomplete
    assert ("default", "data-loader") in clients.core.service_accounts
    sa = clients.core.service_accounts[("default", "data-loader")]
    assert sa.metadata.annotations == {
        "iam.gke.io/gcp-service-account": "ml-pipeline-data-loader@test-project.iam.gserviceaccount.com"
    }
    assert manager.binds == [
        ("ml-pipeline-data-loader@test-project.iam.gserviceaccount.com", "default", "data-loader")
    ]
    assert list(clients.batch.jobs) == [("default", "squad-data-loader")]

    status = stored_status(clients, crd.PLURAL_DATASETS, "squad")
    assert status.ready is False
    assert status.url == ""
    assert condition(status, crd.CONDITION_DATA_READY).status is False
    assert condition(status, crd.CONDITION_DATA_READY).reason == crd.REASON_LOADING

    clients.batch.succeed("default", "squad-data-loader")
    result = reconcile(ctx, Kind.DATASET, "squad", "default")

    assert result.is_success
    status = stored_status(clients, crd.PLURAL_DATASETS, "squad")
    assert status.ready is True
    assert condition(status, crd.CONDITION_DATA_READY).status is True
    assert status.url == "gcs://test-project-ml-artifacts/uid-1/data/train.jsonl"
    assert status.checksum == manager.checksum
    assert manager.checksum_calls == [("test-project-ml-artifacts", "uid-1/data/train.jsonl")]
    assert clients.batch.create_calls == 2
    assert len(clients.batch.jobs) == 1


def test_loader_job_layout(ctx, clients):
    add_dataset(clients, spec={
        "container": {"image": "loader:1"},
        "filename": "train.jsonl",
        "params": {"limit": 100},
    })

    reconcile(ctx, Kind.DATASET, "squad", "default")

    job = clients.batch.jobs[("default", "squad-data-loader")]
    pod = job.spec.template.spec
    container = pod.containers[0]
    assert pod.service_account_name == "data-loader"
    assert pod.restart_policy == "Never"
    assert job.spec.template.metadata.annotations["gke-gcsfuse/volumes"] == "true"
    assert container.image == "loader:1"
    assert container.args == ["load.sh"]
    env = {e.name: e.value for e in container.env}
    assert env == {"LOAD_DATA_PATH": "/data/train.jsonl", "PARAM_LIMIT": "100"}
    assert [(m.mount_path, m.sub_path) for m in container.volume_mounts] == [
        ("/data", "uid-1/data"),
        ("/dataset/logs", "uid-1/logs"),
    ]
    assert pod.volumes[0].csi.volume_attributes["bucketName"] == "test-project-ml-artifacts"


def test_populated_url_short_circuits_data_stage(ctx, clients, manager):
    add_dataset(clients, status={
        "url": "gcs://bucket/uid-1/data/train.jsonl",
        "conditions": [dict(CONTAINER_READY)],
    })

    result = reconcile(ctx, Kind.DATASET, "squad", "default")

    assert result.is_success
    assert clients.batch.jobs == {}
    assert clients.batch.create_calls == 0
    assert manager.binds == []
    assert stored_status(clients, crd.PLURAL_DATASETS, "squad").ready is True


def test_missing_dataset_is_ignored(ctx, clients):
    assert reconcile(ctx, Kind.DATASET, "gone", "default") is None
    assert clients.custom.status_patches == []


def test_unbuildable_spec_records_failed_condition(ctx, clients):
    add_dataset(clients, spec={"container": {"image": "loader:1"}})

    result = reconcile(ctx, Kind.DATASET, "squad", "default")

    assert result.is_fatal
    assert clients.batch.jobs == {}
    status = stored_status(clients, crd.PLURAL_DATASETS, "squad")
    data_ready = condition(status, crd.CONDITION_DATA_READY)
    assert data_ready.status is False
    assert data_ready.reason == crd.REASON_FAILED
    assert "filename" in data_ready.message
    assert status.ready is False


def test_missing_container_source_is_fatal(ctx, clients):
    add_dataset(clients, spec={"container": {}, "filename": "train.jsonl"})

    result = reconcile(ctx, Kind.DATASET, "squad", "default")

    assert result.is_fatal
    status = stored_status(clients, crd.PLURAL_DATASETS, "squad")
    assert condition(status, crd.CONDITION_CONTAINER_READY).reason == crd.REASON_FAILED
    assert condition(status, crd.CONDITION_DATA_READY) is None


def test_missing_loaded_object_is_fatal(ctx, clients, manager):
    add_dataset(clients)
    reconcile(ctx, Kind.DATASET, "squad", "default")
    clients.batch.succeed("default", "squad-data-loader")
    manager.checksum_error = PermanentCloudError("GetObjectChecksum failed (NOT_FOUND): missing")

    result = reconcile(ctx, Kind.DATASET, "squad", "default")

    assert result.is_fatal
    status = stored_status(clients, crd.PLURAL_DATASETS, "squad")
    assert status.url == ""
    assert condition(status, crd.CONDITION_DATA_READY).reason == crd.REASON_FAILED


def test_transient_cloud_errors_propagate(ctx, clients, manager):
    add_dataset(clients)
    reconcile(ctx, Kind.DATASET, "squad", "default")
    clients.batch.succeed("default", "squad-data-loader")
    manager.checksum_error = TransientCloudError("GetObjectChecksum failed (UNAVAILABLE): down")

    with pytest.raises(TransientCloudError):
        reconcile(ctx, Kind.DATASET, "squad", "default")


def test_container_built_from_git(ctx, clients):
    add_dataset(clients, spec={
        "container": {"git": {"url": "https://github.com/org/loaders", "path": "squad", "branch": "main"}},
        "filename": "train.jsonl",
    })

    result = reconcile(ctx, Kind.DATASET, "squad", "default")

    assert result.is_incomplete
    assert list(clients.batch.jobs) == [("default", "squad-container-builder")]
    builder = clients.batch.jobs[("default", "squad-container-builder")].spec.template.spec.containers[0]
    assert "--context=git://github.com/org/loaders.git#refs/heads/main" in builder.args
    assert "--context-sub-path=squad" in builder.args
    assert "--destination=gcr.io/test-project/dataset-default-squad:latest" in builder.args
    status = stored_status(clients, crd.PLURAL_DATASETS, "squad")
    assert condition(status, crd.CONDITION_CONTAINER_READY).reason == crd.REASON_BUILDING

    clients.batch.succeed("default", "squad-container-builder")
    result = reconcile(ctx, Kind.DATASET, "squad", "default")

    assert result.is_incomplete
    loader = clients.batch.jobs[("default", "squad-data-loader")].spec.template.spec.containers[0]
    assert loader.image == "gcr.io/test-project/dataset-default-squad:latest"
    status = stored_status(clients, crd.PLURAL_DATASETS, "squad")
    assert condition(status, crd.CONDITION_CONTAINER_READY).status is True


def test_unchanged_status_is_not_patched(ctx, clients):
    add_dataset(clients)
    reconcile(ctx, Kind.DATASET, "squad", "default")
    patches = len(clients.custom.status_patches)

    reconcile(ctx, Kind.DATASET, "squad", "default")

    assert len(clients.custom.status_patches) == patches


# ============================================================================
# Model
# ============================================================================


def add_model(clients, name="llama", spec=None, status=None, uid="uid-m"):
    spec = spec if spec is not None else {
        "container": {"image": "trainer:1"},
        "trainingDataset": {"name": "squad"},
        "params": {"epochs": 3},
    }
    clients.custom.add(crd.PLURAL_MODELS, resource_body(name, spec, status=status, uid=uid))


def test_model_waits_for_dataset(ctx, clients):
    add_model(clients)

    result = reconcile(ctx, Kind.MODEL, "llama", "default")

    assert result.is_incomplete
    assert result.reason == crd.REASON_DATASET_NOT_READY
    assert clients.batch.jobs == {}

    add_dataset(clients, status={"conditions": [dict(CONTAINER_READY)]})
    assert reconcile(ctx, Kind.MODEL, "llama", "default").reason == crd.REASON_DATASET_NOT_READY


def test_model_trains_on_ready_dataset(ctx, clients):
    add_dataset(clients, status=ready_status("gcs://datasets/uid-1/data/train.jsonl"))
    add_model(clients)

    result = reconcile(ctx, Kind.MODEL, "llama", "default")

    assert result.is_incomplete
    job = clients.batch.jobs[("default", "llama-modeller")]
    container = job.spec.template.spec.containers[0]
    assert container.args == ["train.sh"]
    assert [(m.mount_path, m.sub_path, m.read_only) for m in container.volume_mounts] == [
        ("/data", "uid-1/data", True),
        ("/model/trained", "uid-m/model", None),
        ("/model/logs", "uid-m/logs", None),
    ]
    volumes = {v.name: v.csi.volume_attributes["bucketName"] for v in job.spec.template.spec.volumes}
    assert volumes == {"data": "datasets", "model": "test-project-ml-artifacts"}

    clients.batch.succeed("default", "llama-modeller")
    result = reconcile(ctx, Kind.MODEL, "llama", "default")

    assert result.is_success
    status = stored_status(clients, crd.PLURAL_MODELS, "llama")
    assert status.ready is True
    assert status.url == "gcs://test-project-ml-artifacts/uid-m/model/"


def test_model_without_dataset_loads(ctx, clients):
    add_model(clients, spec={"container": {"image": "trainer:1"}})

    reconcile(ctx, Kind.MODEL, "llama", "default")

    container = clients.batch.jobs[("default", "llama-modeller")].spec.template.spec.containers[0]
    assert container.args == ["load.sh"]


def test_populated_url_short_circuits_model_stage(ctx, clients, manager):
    add_model(clients, status={
        "url": "gcs://test-project-ml-artifacts/uid-m/model/",
        "conditions": [dict(CONTAINER_READY)],
    })

    result = reconcile(ctx, Kind.MODEL, "llama", "default")

    assert result.is_success
    assert clients.batch.create_calls == 0
    assert manager.binds == []
    assert stored_status(clients, crd.PLURAL_MODELS, "llama").ready is True


def test_malformed_dataset_url_is_fatal(ctx, clients):
    add_dataset(clients, status=ready_status("not a url"))
    add_model(clients)

    result = reconcile(ctx, Kind.MODEL, "llama", "default")

    assert result.is_fatal
    assert isinstance(result.error, ValueError)
    assert clients.batch.jobs == {}
    status = stored_status(clients, crd.PLURAL_MODELS, "llama")
    assert condition(status, crd.CONDITION_MODEL_READY).reason == crd.REASON_FAILED


def test_dataset_reference_without_name_is_fatal(ctx, clients):
    add_model(clients, spec={"container": {"image": "trainer:1"}, "trainingDataset": {}})

    result = reconcile(ctx, Kind.MODEL, "llama", "default")

    assert result.is_fatal
    assert "trainingDataset.name" in result.message


def test_model_loads_from_ready_base_model(ctx, clients):
    add_model(clients, name="base", uid="uid-base", status=ready_status("gcs://b/uid-base/model/"))
    add_model(clients, spec={"container": {"image": "trainer:1"}, "baseModel": {"name": "base"}})

    result = reconcile(ctx, Kind.MODEL, "llama", "default")

    assert result.is_incomplete
    assert result.reason == crd.REASON_TRAINING
    job = clients.batch.jobs[("default", "llama-modeller")]
    container = job.spec.template.spec.containers[0]
    assert container.args == ["load.sh"]
    saved = container.volume_mounts[0]
    assert (saved.name, saved.mount_path, saved.sub_path, saved.read_only) == (
        "saved-model", "/model/saved", "uid-base/model", True,
    )
    volumes = {v.name: v.csi.volume_attributes["bucketName"] for v in job.spec.template.spec.volumes}
    assert volumes == {"saved-model": "b", "model": "test-project-ml-artifacts"}


def test_model_waits_for_base_model(ctx, clients):
    add_model(clients, name="base", uid="uid-base", status={"conditions": [dict(CONTAINER_READY)]})
    add_model(clients, spec={"container": {"image": "trainer:1"}, "baseModel": {"name": "base"}})

    result = reconcile(ctx, Kind.MODEL, "llama", "default")

    assert result.is_incomplete
    assert result.reason == crd.REASON_BASE_MODEL_NOT_READY
    assert clients.batch.jobs == {}
    status = stored_status(clients, crd.PLURAL_MODELS, "llama")
    assert condition(status, crd.CONDITION_MODEL_READY).reason == crd.REASON_BASE_MODEL_NOT_READY


def test_reference_given_as_plain_string_is_fatal(ctx, clients):
    add_model(clients, spec={"container": {"image": "trainer:1"}, "trainingDataset": "squad"})

    result = reconcile(ctx, Kind.MODEL, "llama", "default")

    assert result.is_fatal
    assert "trainingDataset" in result.message
    status = stored_status(clients, crd.PLURAL_MODELS, "llama")
    assert condition(status, crd.CONDITION_MODEL_READY).reason == crd.REASON_FAILED


# ============================================================================
# Server
# ============================================================================


def test_server_deploys_ready_model(ctx, clients):
    add_model(clients, status=ready_status("gcs://test-project-ml-artifacts/uid-m/model/"))
    clients.custom.add(crd.PLURAL_SERVERS, resource_body(
        "llama-server", {"container": {"image": "server:1"}, "model": {"name": "llama"}}, uid="uid-s",
    ))

    result = reconcile(ctx, Kind.SERVER, "llama-server", "default")

    assert result.is_incomplete
    assert result.reason == crd.REASON_DEPLOYING
    assert ("default", "llama-server-server") in clients.core.services
    deployment = clients.apps.deployments[("default", "llama-server-server")]
    assert deployment.metadata.owner_references[0].uid == "uid-s"
    mount = deployment.spec.template.spec.containers[0].volume_mounts[0]
    assert (mount.mount_path, mount.sub_path, mount.read_only) == ("/model/saved", "uid-m/model", True)

    clients.apps.make_ready("default", "llama-server-server")
    result = reconcile(ctx, Kind.SERVER, "llama-server", "default")

    assert result.is_success
    status = stored_status(clients, crd.PLURAL_SERVERS, "llama-server")
    assert status.ready is True
    assert condition(status, crd.CONDITION_SERVER_READY).reason == crd.REASON_DEPLOYED
    assert len(clients.apps.deployments) == 1


def test_server_waits_for_model(ctx, clients):
    clients.custom.add(crd.PLURAL_SERVERS, resource_body(
        "llama-server", {"container": {"image": "server:1"}, "model": {"name": "llama"}},
    ))

    result = reconcile(ctx, Kind.SERVER, "llama-server", "default")

    assert result.is_incomplete
    assert result.reason == crd.REASON_MODEL_NOT_READY
    assert clients.apps.deployments == {}


def test_stale_pass_cannot_overwrite_newer_status(ctx, clients):
    add_dataset(clients)
    reconcile(ctx, Kind.DATASET, "squad", "default")
    add_dataset(clients, status={"conditions": [dict(CONTAINER_READY)]})

    batch = clients.batch
    read_job = batch.read_namespaced_job
    job_events = []

    def read_while_job_completes(name, namespace, **kwargs):
        snapshot = copy.deepcopy(read_job(name, namespace))
        if not job_events:
            # The Job finishes and its event handler reconciles the owner
            # while this pass still holds the old Job.
            job_events.append(name)
            batch.succeed(namespace, name)
            assert reconcile(ctx, Kind.DATASET, "squad", "default").is_success
        return snapshot

    batch.read_namespaced_job = read_while_job_completes

    with pytest.raises(ApiException) as excinfo:
        reconcile(ctx, Kind.DATASET, "squad", "default")

    assert excinfo.value.status == 409
    status = stored_status(clients, crd.PLURAL_DATASETS, "squad")
    assert status.ready is True
    assert condition(status, crd.CONDITION_DATA_READY).status is True
    assert status.url == "gcs://test-project-ml-artifacts/uid-1/data/train.jsonl"


def test_condition_types_are_unique(ctx, clients):
    add_dataset(clients, status={"conditions": [dict(CONTAINER_READY)]})
    for _ in range(3):
        reconcile(ctx, Kind.DATASET, "squad", "default")

    status = stored_status(clients, crd.PLURAL_DATASETS, "squad")
    types = [c.type for c in status.conditions]
    assert sorted(types) == sorted(set(types))
    assert all(isinstance(c, Condition) for c in status.conditions)
