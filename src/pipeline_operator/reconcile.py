"""Core reconciliation logic.

Each kind runs a fixed, linear list of stages. A stage returns a Result:
success marks its condition true and moves on, incomplete stops the pass
until the next watch event, fatal records a failed condition and stops
without raising so a permanently broken spec is not retried in a hot loop.
Progress is re-derived from the stored status and live lookups on every
pass; nothing is kept in memory between passes.
"""

import logging
from dataclasses import dataclass

from kubernetes.client.rest import ApiException

from cloud_manager.client import PermanentCloudError

from . import crd, storage, templates
from .clouds import Cloud
from .conditions import all_ready, is_true, set_condition
from .config import OperatorConfig
from .errors import ArtifactURLError, InvalidSpecError
from .jobs import ensure_deployment, ensure_job, ensure_service, ensure_service_account
from .k8s import Clients, get_custom_object, is_conflict, patch_custom_object_status
from .resources import Kind, ManagedResource, ResourceStatus
from .result import Result

logger = logging.getLogger(__name__)

PERMANENT_ERRORS = (InvalidSpecError, ArtifactURLError, PermanentCloudError)


@dataclass
class ReconcileContext:
    clients: Clients
    config: OperatorConfig
    cloud: Cloud

    @property
    def timeout(self):
        return self.config.api_timeout


class Reconciler:
    """Generic staged lifecycle driver."""

    kind = None

    def __init__(self, ctx):
        self.ctx = ctx

    def stages(self):
        """Ordered ``(condition_type, stage)`` pairs."""
        raise NotImplementedError

    def reconcile(self, resource):
        status = resource.status
        status.observed_generation = resource.generation

        result = Result.success()
        for condition_type, stage in self.stages():
            result = self._run_stage(stage, resource)
            if result.is_success:
                set_condition(status.conditions, condition_type, True, result.reason, result.message)
                continue

            set_condition(status.conditions, condition_type, False, result.reason, result.message)
            if result.is_fatal:
                logger.error(
                    f"{self.kind.kind_name} {resource.namespace}/{resource.name} "
                    f"{condition_type} failed: {result.message}"
                )
            else:
                logger.info(
                    f"{self.kind.kind_name} {resource.namespace}/{resource.name} "
                    f"waiting on {condition_type}: {result.message or result.reason}"
                )
            break

        status.ready = all_ready(status.conditions, self.kind.required_conditions)
        if status.ready:
            logger.info(f"{self.kind.kind_name} {resource.namespace}/{resource.name} is ready")
        return result

    def _run_stage(self, stage, resource):
        try:
            return stage(resource)
        except PERMANENT_ERRORS as e:
            return Result.fatal(e)

    # Shared stage helpers

    def reconcile_container(self, resource):
        """Use the given image, or build one from git."""
        container = resource.container
        if container.get("image"):
            return Result.success(crd.REASON_IMAGE_PROVIDED)

        git = container.get("git") or {}
        if not git.get("url"):
            raise InvalidSpecError("spec.container must set either image or git.url")

        if is_true(resource.status.conditions, crd.CONDITION_CONTAINER_READY):
            return Result.success(crd.REASON_IMAGE_BUILT)

        self.ensure_identity(resource.namespace, crd.SA_CONTAINER_BUILDER)
        job = templates.builder_job(
            name=resource.child_name(crd.SUFFIX_CONTAINER_BUILDER),
            namespace=resource.namespace,
            git=git,
            destination=self.image_for(resource),
            service_account=crd.SA_CONTAINER_BUILDER,
        )
        return self.job_stage(resource, job, crd.REASON_BUILDING, crd.REASON_IMAGE_BUILT)

    def image_for(self, resource):
        image = resource.container.get("image")
        if image:
            return image
        kind = resource.kind.kind_name.lower()
        return f"{self.ctx.config.registry}/{kind}-{resource.namespace}-{resource.name}:latest"

    def ensure_identity(self, namespace, service_account):
        """Annotated service account bound to its cloud principal."""
        cloud = self.ctx.cloud
        manifest = templates.service_account_manifest(
            service_account, namespace, cloud.service_account_annotations(service_account)
        )
        ensure_service_account(self.ctx.clients.core, manifest, timeout=self.ctx.timeout)
        cloud.bind_identity(namespace, service_account)

    def job_stage(self, resource, job, waiting_reason, done_reason):
        result = ensure_job(self.ctx.clients.batch, resource, job, timeout=self.ctx.timeout)
        if result.is_success:
            return Result.success(done_reason)
        if result.reason == crd.REASON_JOB_NOT_COMPLETE:
            return Result.incomplete(waiting_reason, result.message)
        return result

    def ready_dependency(self, kind, namespace, ref, field_name):
        """The referenced resource if it is ready and has an artifact URL."""
        if not isinstance(ref, dict):
            raise InvalidSpecError(f"spec.{field_name} must be an object with a name, got {ref!r}")
        name = ref.get("name")
        if not name:
            raise InvalidSpecError(f"spec.{field_name}.name is required")
        body = get_custom_object(
            self.ctx.clients.custom, kind.plural, namespace, name, timeout=self.ctx.timeout
        )
        if body is None:
            return None
        dependency = ManagedResource.from_body(kind, body)
        if not dependency.status.ready or not dependency.status.url:
            return None
        return dependency


class DatasetReconciler(Reconciler):
    kind = Kind.DATASET

    def stages(self):
        return [
            (crd.CONDITION_CONTAINER_READY, self.reconcile_container),
            (crd.CONDITION_DATA_READY, self.reconcile_data),
        ]

    def reconcile_data(self, dataset):
        if dataset.status.url:
            return Result.success(crd.REASON_LOADED)

        filename = dataset.spec.get("filename")
        if not filename:
            raise InvalidSpecError("spec.filename is required")

        cloud = self.ctx.cloud
        bucket = cloud.artifact_bucket
        self.ensure_identity(dataset.namespace, crd.SA_DATA_LOADER)

        volume, mounts = storage.writer_mounts(
            cloud, bucket, dataset.uid, "data",
            {"/data": "data", "/dataset/logs": "logs"},
        )
        job = templates.loader_job(
            name=dataset.child_name(crd.SUFFIX_DATA_LOADER),
            namespace=dataset.namespace,
            image=self.image_for(dataset),
            filename=filename,
            params=dataset.params,
            resources=dataset.spec.get("resources"),
            service_account=crd.SA_DATA_LOADER,
            volume=volume,
            mounts=mounts,
            pod_annotations=cloud.pod_annotations(),
        )
        object_name = f"{dataset.uid}/data/{filename}"
        return self.job_stage(dataset, job, crd.REASON_LOADING, crd.REASON_LOADED).then(
            lambda: self._record_dataset(dataset, bucket, object_name)
        )

    def _record_dataset(self, dataset, bucket, object_name):
        checksum = self.ctx.cloud.get_object_checksum(bucket, object_name)
        dataset.status.checksum = checksum
        dataset.status.url = self.ctx.cloud.artifact_url(bucket, object_name)
        logger.info(f"Dataset {dataset.namespace}/{dataset.name} loaded to {dataset.status.url}")
        return Result.success(crd.REASON_LOADED)


class ModelReconciler(Reconciler):
    kind = Kind.MODEL

    def stages(self):
        return [
            (crd.CONDITION_CONTAINER_READY, self.reconcile_container),
            (crd.CONDITION_MODEL_READY, self.reconcile_model),
        ]

    def reconcile_model(self, model):
        if model.status.url:
            return Result.success(crd.REASON_TRAINED)

        cloud = self.ctx.cloud
        volumes = []
        mounts = []

        dataset_ref = model.spec.get("trainingDataset")
        if dataset_ref is not None:
            dataset = self.ready_dependency(Kind.DATASET, model.namespace, dataset_ref, "trainingDataset")
            if dataset is None:
                return Result.incomplete(
                    crd.REASON_DATASET_NOT_READY, f"Dataset {dataset_ref['name']} is not ready"
                )
            volume, mount = storage.reader_mount(cloud, dataset.status.url, "data", "/data")
            volumes.append(volume)
            mounts.append(mount)

        base_ref = model.spec.get("baseModel")
        if base_ref is not None:
            base = self.ready_dependency(Kind.MODEL, model.namespace, base_ref, "baseModel")
            if base is None:
                return Result.incomplete(
                    crd.REASON_BASE_MODEL_NOT_READY, f"Model {base_ref['name']} is not ready"
                )
            volume, mount = storage.reader_mount(cloud, base.status.url, "saved-model", "/model/saved")
            volumes.append(volume)
            mounts.append(mount)

        self.ensure_identity(model.namespace, crd.SA_MODELLER)

        bucket = cloud.artifact_bucket
        volume, writer = storage.writer_mounts(
            cloud, bucket, model.uid, "model",
            {"/model/trained": "model", "/model/logs": "logs"},
        )
        volumes.append(volume)
        mounts.extend(writer)

        job = templates.modeller_job(
            name=model.child_name(crd.SUFFIX_MODELLER),
            namespace=model.namespace,
            image=self.image_for(model),
            script="train.sh" if dataset_ref is not None else "load.sh",
            params=model.params,
            resources=model.spec.get("resources"),
            service_account=crd.SA_MODELLER,
            volumes=volumes,
            mounts=mounts,
            pod_annotations=cloud.pod_annotations(),
        )
        return self.job_stage(model, job, crd.REASON_TRAINING, crd.REASON_TRAINED).then(
            lambda: self._record_model(model, bucket)
        )

    def _record_model(self, model, bucket):
        model.status.url = self.ctx.cloud.artifact_url(bucket, f"{model.uid}/model/")
        logger.info(f"Model {model.namespace}/{model.name} saved to {model.status.url}")
        return Result.success(crd.REASON_TRAINED)


class ServerReconciler(Reconciler):
    kind = Kind.SERVER

    def stages(self):
        return [
            (crd.CONDITION_CONTAINER_READY, self.reconcile_container),
            (crd.CONDITION_SERVER_READY, self.reconcile_server),
        ]

    def reconcile_server(self, server):
        cloud = self.ctx.cloud
        model_ref = server.spec.get("model")
        model = self.ready_dependency(Kind.MODEL, server.namespace, model_ref, "model")
        if model is None:
            return Result.incomplete(
                crd.REASON_MODEL_NOT_READY, f"Model {model_ref['name']} is not ready"
            )

        volume, mount = storage.reader_mount(cloud, model.status.url, "model", "/model/saved")
        self.ensure_identity(server.namespace, crd.SA_MODEL_SERVER)

        name = server.child_name(crd.SUFFIX_SERVER)
        labels = server.labels()
        ensure_service(
            self.ctx.clients.core,
            server,
            templates.server_service(name, server.namespace, labels),
            timeout=self.ctx.timeout,
        )
        deployment = templates.server_deployment(
            name=name,
            namespace=server.namespace,
            labels=labels,
            image=self.image_for(server),
            params=server.params,
            resources=server.spec.get("resources"),
            service_account=crd.SA_MODEL_SERVER,
            volume=volume,
            mount=mount,
            pod_annotations=cloud.pod_annotations(),
        )
        result = ensure_deployment(self.ctx.clients.apps, server, deployment, timeout=self.ctx.timeout)
        if result.is_success:
            return Result.success(crd.REASON_DEPLOYED)
        return result


RECONCILERS = {
    Kind.DATASET: DatasetReconciler,
    Kind.MODEL: ModelReconciler,
    Kind.SERVER: ServerReconciler,
}


def reconcile(ctx, kind, name, namespace):
    """One reconcile pass for the named resource.

    Returns None when the resource no longer exists, otherwise the Result
    of the pass. Transient API and RPC errors propagate to the caller, as
    does the conflict raised when another pass wrote status after this one
    read it.
    """
    body = get_custom_object(ctx.clients.custom, kind.plural, namespace, name, timeout=ctx.timeout)
    if body is None:
        logger.info(f"{kind.kind_name} {namespace}/{name} not found, ignoring")
        return None

    resource = ManagedResource.from_body(kind, body)
    stored = ResourceStatus.from_dict(body.get("status")).to_dict()

    result = RECONCILERS[kind](ctx).reconcile(resource)

    updated = resource.status.to_dict()
    if updated != stored:
        try:
            patch_custom_object_status(
                ctx.clients.custom, kind.plural, namespace, name, updated,
                resource_version=resource.resource_version, timeout=ctx.timeout,
            )
        except ApiException as e:
            if is_conflict(e):
                logger.warning(f"{kind.kind_name} {namespace}/{name} changed during reconcile, discarding stale status")
            raise
    return result
