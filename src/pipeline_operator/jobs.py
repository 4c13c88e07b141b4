"""Idempotent creation and inspection of dependent objects.

Delivery of reconcile triggers is at-least-once, so every call here can be
repeated safely: "already exists" counts as success and progress is always
read back from the API server.
"""

import logging

from kubernetes.client.rest import ApiException

from . import crd
from .k8s import is_already_exists
from .result import Result

logger = logging.getLogger(__name__)


def adopt(owner, obj):
    """Attach owner reference and owner labels for cascading deletion."""
    obj.metadata.owner_references = [owner.owner_reference()]
    labels = dict(obj.metadata.labels or {})
    labels.update(owner.labels())
    obj.metadata.labels = labels
    return obj


def ensure_job(batch_api, owner, job, timeout=None):
    """Create ``job`` unless it exists, then report whether it succeeded.

    Incomplete is not an error: the owned Job is watched, so its next status
    change triggers another reconcile.
    """
    adopt(owner, job)
    name = job.metadata.name
    namespace = job.metadata.namespace

    try:
        batch_api.create_namespaced_job(namespace=namespace, body=job, _request_timeout=timeout)
        logger.info(f"Job {name} created")
    except ApiException as e:
        if not is_already_exists(e):
            logger.error(f"Error creating Job {name}: {e}")
            raise

    current = batch_api.read_namespaced_job(name=name, namespace=namespace, _request_timeout=timeout)
    status = current.status
    succeeded = (status.succeeded or 0) if status else 0
    if succeeded >= 1:
        return Result.success()

    failed = (status.failed or 0) if status else 0
    if failed:
        return Result.incomplete(crd.REASON_JOB_FAILED, f"Job {name} has {failed} failed pod(s)")
    return Result.incomplete(crd.REASON_JOB_NOT_COMPLETE, f"Waiting for Job {name} to complete")


def ensure_service_account(core_api, service_account, timeout=None):
    """Create or update a service account's annotations."""
    name = service_account.metadata.name
    namespace = service_account.metadata.namespace
    annotations = service_account.metadata.annotations or {}

    try:
        core_api.create_namespaced_service_account(
            namespace=namespace, body=service_account, _request_timeout=timeout
        )
        logger.info(f"ServiceAccount {name} created in {namespace}")
        return
    except ApiException as e:
        if not is_already_exists(e):
            logger.error(f"Error creating ServiceAccount {name}: {e}")
            raise

    existing = core_api.read_namespaced_service_account(
        name=name, namespace=namespace, _request_timeout=timeout
    )
    current = existing.metadata.annotations or {}
    if all(current.get(k) == v for k, v in annotations.items()):
        return

    core_api.patch_namespaced_service_account(
        name=name,
        namespace=namespace,
        body={"metadata": {"annotations": annotations}},
        _request_timeout=timeout,
    )
    logger.info(f"Updated ServiceAccount {name} annotations")


def ensure_deployment(apps_api, owner, deployment, timeout=None):
    """Create ``deployment`` unless it exists; success once a replica is ready."""
    adopt(owner, deployment)
    name = deployment.metadata.name
    namespace = deployment.metadata.namespace

    try:
        apps_api.create_namespaced_deployment(
            namespace=namespace, body=deployment, _request_timeout=timeout
        )
        logger.info(f"Deployment {name} created")
    except ApiException as e:
        if not is_already_exists(e):
            logger.error(f"Error creating Deployment {name}: {e}")
            raise

    current = apps_api.read_namespaced_deployment(
        name=name, namespace=namespace, _request_timeout=timeout
    )
    ready = (current.status.ready_replicas or 0) if current.status else 0
    if ready >= 1:
        return Result.success()
    return Result.incomplete(crd.REASON_DEPLOYING, f"Waiting for Deployment {name} to become ready")


def ensure_service(core_api, owner, service, timeout=None):
    adopt(owner, service)
    name = service.metadata.name
    try:
        core_api.create_namespaced_service(
            namespace=service.metadata.namespace, body=service, _request_timeout=timeout
        )
        logger.info(f"Service {name} created")
    except ApiException as e:
        if not is_already_exists(e):
            logger.error(f"Error creating Service {name}: {e}")
            raise
