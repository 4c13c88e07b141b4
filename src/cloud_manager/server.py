"""gRPC server exposing a cloud backend."""

import logging
from concurrent import futures

import grpc

from . import cloudmanager_pb2_grpc, protocol

logger = logging.getLogger(__name__)


class CloudBackend:
    """Base class for cloud backends."""

    name = "base"

    def bind_identity(self, request):
        """Let workloads running as the Kubernetes service account assume the principal."""
        raise NotImplementedError

    def get_object_checksum(self, request):
        """Return the MD5 checksum (hex) of a stored object."""
        raise NotImplementedError


class CloudManagerServicer(cloudmanager_pb2_grpc.CloudManagerServicer):
    def __init__(self, backend):
        self.backend = backend

    def BindIdentity(self, request, context):
        logger.info(
            f"BindIdentity principal={request.principal} "
            f"serviceAccount={request.kubernetes_namespace}/{request.kubernetes_service_account}"
        )
        return self._call(self.backend.bind_identity, request, context)

    def GetObjectChecksum(self, request, context):
        logger.info(f"GetObjectChecksum {request.bucket_name}/{request.object_name}")
        return self._call(self.backend.get_object_checksum, request, context)

    def _call(self, handler, request, context):
        try:
            protocol.validate(request)
            return handler(request)
        except protocol.BackendError as e:
            logger.warning(f"{type(e).__name__}: {e}")
            context.abort(getattr(grpc.StatusCode, e.code), str(e))
        except Exception as e:
            logger.error(f"Backend call failed: {e}", exc_info=True)
            context.abort(grpc.StatusCode.INTERNAL, str(e))


def create_server(backend, port=protocol.PORT, host="[::]", max_workers=10):
    """Build an unstarted server; returns it with the bound port."""
    server = grpc.server(futures.ThreadPoolExecutor(max_workers=max_workers))
    cloudmanager_pb2_grpc.add_CloudManagerServicer_to_server(CloudManagerServicer(backend), server)
    bound_port = server.add_insecure_port(f"{host}:{port}")
    return server, bound_port


def serve(backend, port=protocol.PORT):
    server, bound_port = create_server(backend, port)
    server.start()
    logger.info(f"{backend.name} cloud manager listening on port {bound_port}")
    server.wait_for_termination()
