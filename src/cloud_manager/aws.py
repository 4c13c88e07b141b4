"""AWS backend: IRSA trust policies and S3 checksums."""

import json
import logging
from urllib.parse import unquote

import boto3
from botocore.exceptions import ClientError

from . import cloudmanager_pb2, protocol
from .server import CloudBackend

logger = logging.getLogger(__name__)

WEB_IDENTITY_ACTION = "sts:AssumeRoleWithWebIdentity"
NOT_FOUND_CODES = {"NoSuchEntity", "NoSuchBucket", "NoSuchKey", "404"}


def trust_statement(oidc_provider_arn, oidc_provider_url, namespace, service_account):
    """Statement letting one Kubernetes service account assume a role."""
    return {
        "Effect": "Allow",
        "Principal": {"Federated": oidc_provider_arn},
        "Action": WEB_IDENTITY_ACTION,
        "Condition": {
            "StringEquals": {
                f"{oidc_provider_url}:sub": f"system:serviceaccount:{namespace}:{service_account}",
                f"{oidc_provider_url}:aud": "sts.amazonaws.com",
            }
        },
    }


def _binding_key(statement):
    principal = statement.get("Principal")
    federated = principal.get("Federated") if isinstance(principal, dict) else None
    action = statement.get("Action")
    if isinstance(action, list):
        action = tuple(sorted(action))
    equals = (statement.get("Condition") or {}).get("StringEquals") or {}
    subjects = tuple(sorted((k, v) for k, v in equals.items() if k.endswith(":sub")))
    return statement.get("Effect"), federated, action, subjects


def merge_statement(policy, statement):
    """Append ``statement`` unless an equivalent binding exists.

    Returns True if the policy changed.
    """
    statements = policy.get("Statement", [])
    if isinstance(statements, dict):
        statements = [statements]
    policy["Statement"] = statements

    key = _binding_key(statement)
    if any(_binding_key(existing) == key for existing in statements):
        return False
    statements.append(statement)
    return True


def role_name(principal):
    """Accept either a role name or a role ARN."""
    if principal.startswith("arn:"):
        return principal.rsplit("/", 1)[-1]
    return principal


def _error_code(e):
    return e.response.get("Error", {}).get("Code", "")


class AWSBackend(CloudBackend):
    name = "aws"

    def __init__(self, oidc_provider_url, oidc_provider_arn, iam_client=None, s3_client=None, region=None):
        self.oidc_provider_url = oidc_provider_url.replace("https://", "")
        self.oidc_provider_arn = oidc_provider_arn
        self.iam = iam_client or boto3.client("iam", region_name=region)
        self.s3 = s3_client or boto3.client("s3", region_name=region)

    def bind_identity(self, request):
        name = role_name(request.principal)
        try:
            role = self.iam.get_role(RoleName=name)["Role"]
        except ClientError as e:
            if _error_code(e) in NOT_FOUND_CODES:
                raise protocol.NotFoundError(f"role {name} not found")
            raise

        policy = role.get("AssumeRolePolicyDocument") or {}
        if isinstance(policy, str):
            policy = json.loads(unquote(policy))
        policy.setdefault("Version", "2012-10-17")

        statement = trust_statement(
            self.oidc_provider_arn,
            self.oidc_provider_url,
            request.kubernetes_namespace,
            request.kubernetes_service_account,
        )
        if not merge_statement(policy, statement):
            logger.info(f"Trust statement already present on role {name}")
            return cloudmanager_pb2.BindIdentityResponse()

        self.iam.update_assume_role_policy(RoleName=name, PolicyDocument=json.dumps(policy))
        logger.info(
            f"Added trust for {request.kubernetes_namespace}/{request.kubernetes_service_account} "
            f"to role {name}"
        )
        return cloudmanager_pb2.BindIdentityResponse()

    def get_object_checksum(self, request):
        try:
            head = self.s3.head_object(Bucket=request.bucket_name, Key=request.object_name)
        except ClientError as e:
            if _error_code(e) in NOT_FOUND_CODES:
                raise protocol.NotFoundError(
                    f"object s3://{request.bucket_name}/{request.object_name} not found"
                )
            raise

        etag = head.get("ETag", "").strip('"')
        # Multipart uploads get an ETag of the form <md5-of-md5s>-<parts>.
        if not etag or "-" in etag:
            raise protocol.ChecksumUnavailableError(
                f"object s3://{request.bucket_name}/{request.object_name} has no plain MD5 ETag"
            )
        return cloudmanager_pb2.GetObjectChecksumResponse(md5_checksum=etag)
