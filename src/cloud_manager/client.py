"""Client side of the cloud manager contract."""

import logging

import grpc

from . import cloudmanager_pb2, cloudmanager_pb2_grpc, protocol

logger = logging.getLogger(__name__)

# Retrying cannot fix these.
PERMANENT_CODES = frozenset(
    {
        grpc.StatusCode.NOT_FOUND,
        grpc.StatusCode.INVALID_ARGUMENT,
        grpc.StatusCode.FAILED_PRECONDITION,
        grpc.StatusCode.PERMISSION_DENIED,
    }
)


class CloudError(Exception):
    def __init__(self, message, code=None):
        super().__init__(message)
        self.code = code


class PermanentCloudError(CloudError):
    """Malformed input or missing cloud object; surfaced through status."""


class TransientCloudError(CloudError):
    """Backend unreachable or failing; the caller should retry later."""


class CloudManagerClient:
    def __init__(self, target=None, channel=None, timeout=10.0):
        if channel is None:
            channel = grpc.insecure_channel(target or f"localhost:{protocol.PORT}")
        self._channel = channel
        self._stub = cloudmanager_pb2_grpc.CloudManagerStub(channel)
        self.timeout = timeout

    def bind_identity(self, principal, namespace, service_account):
        request = cloudmanager_pb2.BindIdentityRequest(
            principal=principal,
            kubernetes_namespace=namespace,
            kubernetes_service_account=service_account,
        )
        self._invoke("BindIdentity", self._stub.BindIdentity, request)

    def get_object_checksum(self, bucket, object_name):
        request = cloudmanager_pb2.GetObjectChecksumRequest(bucket_name=bucket, object_name=object_name)
        response = self._invoke("GetObjectChecksum", self._stub.GetObjectChecksum, request)
        return response.md5_checksum

    def close(self):
        self._channel.close()

    def _invoke(self, name, method, request):
        try:
            return method(request, timeout=self.timeout)
        except grpc.RpcError as e:
            code = e.code()
            message = f"{name} failed ({code.name}): {e.details()}"
            if code in PERMANENT_CODES:
                raise PermanentCloudError(message, code) from e
            logger.warning(message)
            raise TransientCloudError(message, code) from e
