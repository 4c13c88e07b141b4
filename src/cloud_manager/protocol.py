"""Shared pieces of the cloud manager contract.

Messages and stubs are generated from ``cloudmanager.proto``; this module
holds the listening port and the errors backends raise, each naming the
gRPC status the server reports for it.
"""

PORT = 10443


class BackendError(Exception):
    """Raised by backends; ``code`` names the gRPC status to report."""

    code = "INTERNAL"


class NotFoundError(BackendError):
    code = "NOT_FOUND"


class InvalidArgumentError(BackendError):
    code = "INVALID_ARGUMENT"


class ChecksumUnavailableError(BackendError):
    """The object exists but the store has no plain MD5 for it."""

    code = "FAILED_PRECONDITION"


REQUIRED_FIELDS = {
    "BindIdentityRequest": ("principal", "kubernetes_namespace", "kubernetes_service_account"),
    "GetObjectChecksumRequest": ("bucket_name", "object_name"),
}


def validate(request):
    """Reject requests with empty required fields.

    proto3 strings have no presence, so an omitted field reads as "".
    """
    for field_name in REQUIRED_FIELDS.get(request.DESCRIPTOR.name, ()):
        if not getattr(request, field_name):
            raise InvalidArgumentError(f"{field_name} is required")
