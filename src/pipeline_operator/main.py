"""Main operator entrypoint using Kopf."""

import logging

import kopf

from cloud_manager.client import CloudManagerClient

from . import crd
from .clouds import get_cloud
from .config import OperatorConfig
from .k8s import init_clients
from .reconcile import ReconcileContext, reconcile
from .resources import Kind

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Backoff for resources that are waiting on something we do not watch,
# such as a referenced Dataset becoming ready.
REQUEUE_INTERVAL = 60
RETRY_DELAY = 30


@kopf.on.startup()
def configure(memo, **kwargs):
    """Build the per-process reconcile context."""
    config = OperatorConfig.from_env()
    clients = init_clients()
    manager = CloudManagerClient(config.cloud_manager_addr, timeout=config.rpc_timeout)
    memo.ctx = ReconcileContext(clients=clients, config=config, cloud=get_cloud(config, manager))
    logger.info(f"Operator configured for cloud {config.cloud}, cloud manager at {config.cloud_manager_addr}")


@kopf.on.cleanup()
def shutdown(memo, **kwargs):
    ctx = getattr(memo, "ctx", None)
    if ctx is not None:
        ctx.cloud.manager.close()


def handle(memo, kind, name, namespace):
    """Run one reconcile pass and translate its outcome for Kopf."""
    logger.info(f"Reconciling {kind.kind_name} {namespace}/{name}")
    try:
        result = reconcile(memo.ctx, kind, name, namespace)
    except Exception as e:
        logger.error(f"Reconciliation error: {e}", exc_info=True)
        raise kopf.TemporaryError(f"Reconciliation failed: {e}", delay=RETRY_DELAY)

    if result is not None and result.is_fatal:
        # The failure is recorded in status; retrying the same spec cannot help.
        raise kopf.PermanentError(result.message)


def needs_requeue(status, **kwargs):
    if status.get("ready"):
        return False
    return not any(c.get("reason") == crd.REASON_FAILED for c in status.get("conditions") or [])


@kopf.on.resume(crd.GROUP, crd.VERSION, crd.PLURAL_DATASETS)
@kopf.on.create(crd.GROUP, crd.VERSION, crd.PLURAL_DATASETS)
@kopf.on.update(crd.GROUP, crd.VERSION, crd.PLURAL_DATASETS)
def dataset_handler(name, namespace, memo, **kwargs):
    """Handle Dataset create/update events."""
    handle(memo, Kind.DATASET, name, namespace)


@kopf.on.resume(crd.GROUP, crd.VERSION, crd.PLURAL_MODELS)
@kopf.on.create(crd.GROUP, crd.VERSION, crd.PLURAL_MODELS)
@kopf.on.update(crd.GROUP, crd.VERSION, crd.PLURAL_MODELS)
def model_handler(name, namespace, memo, **kwargs):
    """Handle Model create/update events."""
    handle(memo, Kind.MODEL, name, namespace)


@kopf.on.resume(crd.GROUP, crd.VERSION, crd.PLURAL_SERVERS)
@kopf.on.create(crd.GROUP, crd.VERSION, crd.PLURAL_SERVERS)
@kopf.on.update(crd.GROUP, crd.VERSION, crd.PLURAL_SERVERS)
def server_handler(name, namespace, memo, **kwargs):
    """Handle Server create/update events."""
    handle(memo, Kind.SERVER, name, namespace)


@kopf.timer(crd.GROUP, crd.VERSION, crd.PLURAL_DATASETS, interval=REQUEUE_INTERVAL, when=needs_requeue)
def dataset_timer(name, namespace, memo, **kwargs):
    handle(memo, Kind.DATASET, name, namespace)


@kopf.timer(crd.GROUP, crd.VERSION, crd.PLURAL_MODELS, interval=REQUEUE_INTERVAL, when=needs_requeue)
def model_timer(name, namespace, memo, **kwargs):
    handle(memo, Kind.MODEL, name, namespace)


@kopf.timer(crd.GROUP, crd.VERSION, crd.PLURAL_SERVERS, interval=REQUEUE_INTERVAL, when=needs_requeue)
def server_timer(name, namespace, memo, **kwargs):
    handle(memo, Kind.SERVER, name, namespace)


def requeue_owners(memo, body):
    """Reconcile the resources owning a changed Job or Deployment."""
    metadata = body.get("metadata") or {}
    namespace = metadata.get("namespace")
    for ref in metadata.get("ownerReferences") or []:
        if ref.get("apiVersion") != crd.API_VERSION:
            continue
        try:
            kind = Kind.from_name(ref.get("kind"))
        except ValueError:
            continue
        logger.debug(f"{metadata.get('name')} changed, requeueing {kind.kind_name} {ref.get('name')}")
        reconcile(memo.ctx, kind, ref["name"], namespace)


@kopf.on.event("batch", "v1", "jobs", labels={crd.LABEL_MANAGED_BY: crd.MANAGED_BY})
def job_event(body, memo, **kwargs):
    """Owned Job status changes drive the next pass, not polling."""
    requeue_owners(memo, body)


@kopf.on.event("apps", "v1", "deployments", labels={crd.LABEL_MANAGED_BY: crd.MANAGED_BY})
def deployment_event(body, memo, **kwargs):
    requeue_owners(memo, body)


@kopf.on.delete(crd.GROUP, crd.VERSION, crd.PLURAL_DATASETS, optional=True)
@kopf.on.delete(crd.GROUP, crd.VERSION, crd.PLURAL_MODELS, optional=True)
@kopf.on.delete(crd.GROUP, crd.VERSION, crd.PLURAL_SERVERS, optional=True)
def resource_delete(name, namespace, **kwargs):
    """Handle resource deletion."""
    logger.info(f"{namespace}/{name} deleted, owned Jobs and Deployments are garbage collected")
    # Kubernetes owner references handle dependent deletion


def run():
    kopf.run(clusterwide=True)


if __name__ == "__main__":
    run()
