"""Kubernetes client helpers."""

import logging
from dataclasses import dataclass

from kubernetes import client, config
from kubernetes.client.rest import ApiException
from kubernetes.config.config_exception import ConfigException

from . import crd

logger = logging.getLogger(__name__)


@dataclass
class Clients:
    """API clients used by one operator process."""

    core: client.CoreV1Api
    batch: client.BatchV1Api
    apps: client.AppsV1Api
    custom: client.CustomObjectsApi


def load_config():
    """Load in-cluster config, falling back to the local kubeconfig."""
    try:
        config.load_incluster_config()
        logger.info("Loaded in-cluster Kubernetes config")
    except ConfigException:
        config.load_kube_config()
        logger.info("Loaded kubeconfig")


def init_clients():
    """Initialize Kubernetes clients."""
    load_config()
    return Clients(
        core=client.CoreV1Api(),
        batch=client.BatchV1Api(),
        apps=client.AppsV1Api(),
        custom=client.CustomObjectsApi(),
    )


def is_not_found(e):
    return isinstance(e, ApiException) and e.status == 404


def is_already_exists(e):
    return isinstance(e, ApiException) and e.status == 409


def is_conflict(e):
    """An update against a stale resourceVersion."""
    return isinstance(e, ApiException) and e.status == 409


def get_custom_object(custom_api, plural, namespace, name, timeout=None):
    """Fetch a custom resource body, or None if it does not exist."""
    try:
        return custom_api.get_namespaced_custom_object(
            group=crd.GROUP,
            version=crd.VERSION,
            namespace=namespace,
            plural=plural,
            name=name,
            _request_timeout=timeout,
        )
    except ApiException as e:
        if is_not_found(e):
            return None
        raise


def patch_custom_object_status(custom_api, plural, namespace, name, status, resource_version=None, timeout=None):
    """Merge-patch the status subresource.

    With ``resource_version`` the write only applies to the object as it was
    read; otherwise the API server answers 409.
    """
    body = {"status": status}
    if resource_version:
        body["metadata"] = {"resourceVersion": resource_version}
    return custom_api.patch_namespaced_custom_object_status(
        group=crd.GROUP,
        version=crd.VERSION,
        namespace=namespace,
        plural=plural,
        name=name,
        body=body,
        _request_timeout=timeout,
    )
