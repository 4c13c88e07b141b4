"""GCP backend: GKE workload identity and GCS checksums."""

import base64
import logging

from google.api_core import exceptions as gcloud_exceptions
from google.cloud import storage
from googleapiclient import discovery
from googleapiclient.errors import HttpError

from . import cloudmanager_pb2, protocol
from .server import CloudBackend

logger = logging.getLogger(__name__)

WORKLOAD_IDENTITY_ROLE = "roles/iam.workloadIdentityUser"


def workload_identity_member(project_id, namespace, service_account):
    return f"serviceAccount:{project_id}.svc.id.goog[{namespace}/{service_account}]"


def merge_binding(policy, role, member):
    """Add ``member`` to the unconditional binding for ``role``.

    Other bindings and members are left untouched. Returns True if the
    policy changed.
    """
    bindings = policy.setdefault("bindings", [])
    for binding in bindings:
        if binding.get("role") == role and not binding.get("condition"):
            members = binding.setdefault("members", [])
            if member in members:
                return False
            members.append(member)
            return True
    bindings.append({"role": role, "members": [member]})
    return True


class GCPBackend(CloudBackend):
    name = "gcp"

    def __init__(self, project_id, iam_service=None, storage_client=None):
        self.project_id = project_id
        self.iam = iam_service or discovery.build("iam", "v1", cache_discovery=False)
        self.storage = storage_client or storage.Client(project=project_id)

    def bind_identity(self, request):
        resource = f"projects/-/serviceAccounts/{request.principal}"
        accounts = self.iam.projects().serviceAccounts()
        try:
            policy = accounts.getIamPolicy(resource=resource).execute()
        except HttpError as e:
            if e.resp.status == 404:
                raise protocol.NotFoundError(f"service account {request.principal} not found")
            if e.resp.status == 400:
                raise protocol.InvalidArgumentError(f"invalid principal {request.principal!r}")
            raise

        member = workload_identity_member(
            self.project_id, request.kubernetes_namespace, request.kubernetes_service_account
        )
        if not merge_binding(policy, WORKLOAD_IDENTITY_ROLE, member):
            logger.info(f"{member} already bound to {request.principal}")
            return cloudmanager_pb2.BindIdentityResponse()

        # The policy etag makes a concurrent writer fail instead of clobbering.
        accounts.setIamPolicy(resource=resource, body={"policy": policy}).execute()
        logger.info(f"Bound {member} to {request.principal}")
        return cloudmanager_pb2.BindIdentityResponse()

    def get_object_checksum(self, request):
        try:
            blob = self.storage.bucket(request.bucket_name).get_blob(request.object_name)
        except gcloud_exceptions.NotFound:
            raise protocol.NotFoundError(f"bucket {request.bucket_name} not found")
        if blob is None:
            raise protocol.NotFoundError(
                f"object gs://{request.bucket_name}/{request.object_name} not found"
            )
        if not blob.md5_hash:
            raise protocol.ChecksumUnavailableError(
                f"object gs://{request.bucket_name}/{request.object_name} has no MD5 hash"
            )
        return cloudmanager_pb2.GetObjectChecksumResponse(
            md5_checksum=base64.b64decode(blob.md5_hash).hex()
        )
