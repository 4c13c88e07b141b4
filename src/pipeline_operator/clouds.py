"""Per-cloud strategies.

Each cloud knows how to name the principal behind a generated service
account, how to annotate that service account for its federation mechanism,
and what a bucket volume looks like. Identity binding and checksums are
delegated to the cloud manager over RPC, so no cloud SDK is imported here.
"""

import logging

from kubernetes import client

from . import crd

logger = logging.getLogger(__name__)

CLOUDS = {}


def register_cloud(cls):
    CLOUDS[cls.name] = cls
    return cls


def get_cloud(config, manager):
    try:
        cloud_cls = CLOUDS[config.cloud]
    except KeyError:
        raise ValueError(f"Unsupported cloud: {config.cloud!r}. Known: {sorted(CLOUDS)}")
    return cloud_cls(config, manager)


class Cloud:
    name = None
    url_scheme = None
    csi_driver = None

    def __init__(self, config, manager):
        self.config = config
        self.manager = manager

    @property
    def artifact_bucket(self):
        return self.config.artifact_bucket

    def artifact_url(self, bucket, path):
        return f"{self.url_scheme}://{bucket}/{path}"

    def principal(self, service_account):
        raise NotImplementedError

    def service_account_annotations(self, service_account):
        raise NotImplementedError

    def pod_annotations(self):
        return {}

    def volume_attributes(self, bucket, read_only):
        raise NotImplementedError

    def volume_for(self, bucket, name, read_only):
        return client.V1Volume(
            name=name,
            csi=client.V1CSIVolumeSource(
                driver=self.csi_driver,
                read_only=read_only,
                volume_attributes=self.volume_attributes(bucket, read_only),
            ),
        )

    def bind_identity(self, namespace, service_account):
        principal = self.principal(service_account)
        logger.info(f"Binding {namespace}/{service_account} to {principal}")
        self.manager.bind_identity(principal, namespace, service_account)

    def get_object_checksum(self, bucket, object_name):
        return self.manager.get_object_checksum(bucket, object_name)


@register_cloud
class GCP(Cloud):
    name = "gcp"
    url_scheme = "gcs"
    csi_driver = "gcsfuse.csi.storage.gke.io"

    def principal(self, service_account):
        return (
            f"{self.config.principal_prefix}-{service_account}"
            f"@{self.config.gcp_project_id}.iam.gserviceaccount.com"
        )

    def service_account_annotations(self, service_account):
        return {"iam.gke.io/gcp-service-account": self.principal(service_account)}

    def pod_annotations(self):
        # GKE injects the GCS Fuse sidecar based on this annotation.
        return {"gke-gcsfuse/volumes": "true"}

    def volume_attributes(self, bucket, read_only):
        uid = 0 if read_only else crd.RUN_AS_USER
        return {
            "bucketName": bucket,
            "mountOptions": f"implicit-dirs,uid={uid},gid={crd.FS_GROUP}",
        }


@register_cloud
class AWS(Cloud):
    name = "aws"
    url_scheme = "s3"
    csi_driver = "s3.csi.aws.com"

    def principal(self, service_account):
        return (
            f"arn:aws:iam::{self.config.aws_account_id}:role/"
            f"{self.config.principal_prefix}-{service_account}"
        )

    def service_account_annotations(self, service_account):
        return {"eks.amazonaws.com/role-arn": self.principal(service_account)}

    def volume_attributes(self, bucket, read_only):
        options = [f"uid={crd.RUN_AS_USER}", f"gid={crd.FS_GROUP}", "allow-other"]
        if read_only:
            options.append("read-only")
        else:
            options.append("allow-delete")
        return {"bucketName": bucket, "mountOptions": ",".join(options)}
