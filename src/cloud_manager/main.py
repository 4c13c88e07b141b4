"""Cloud manager entrypoint: one backend process per cloud."""

import argparse
import logging
import os
import sys

from . import protocol
from .server import serve

logger = logging.getLogger(__name__)


def build_backend(cloud, environ=None):
    env = os.environ if environ is None else environ

    if cloud == "gcp":
        from .gcp import GCPBackend

        project_id = env.get("GCP_PROJECT_ID")
        if not project_id:
            raise ValueError("GCP_PROJECT_ID is required for the gcp backend")
        return GCPBackend(project_id)

    if cloud == "aws":
        import boto3

        from .aws import AWSBackend

        region = env.get("AWS_REGION")
        oidc_url = env.get("OIDC_PROVIDER_URL")
        if not oidc_url:
            raise ValueError("OIDC_PROVIDER_URL is required for the aws backend")
        oidc_url = oidc_url.replace("https://", "")
        oidc_arn = env.get("OIDC_PROVIDER_ARN")
        if not oidc_arn:
            account = boto3.client("sts", region_name=region).get_caller_identity()["Account"]
            oidc_arn = f"arn:aws:iam::{account}:oidc-provider/{oidc_url}"
        return AWSBackend(oidc_url, oidc_arn, region=region)

    raise ValueError(f"Unsupported cloud: {cloud}")


def main(argv=None):
    parser = argparse.ArgumentParser(description="Cloud manager gRPC server")
    parser.add_argument("--cloud", default=os.environ.get("CLOUD"), choices=["gcp", "aws"],
                        help="Cloud backend to serve (default: $CLOUD)")
    parser.add_argument("--port", type=int, default=protocol.PORT,
                        help=f"Listening port (default: {protocol.PORT})")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    if not args.cloud:
        parser.error("--cloud or $CLOUD is required")

    try:
        backend = build_backend(args.cloud)
    except ValueError as e:
        logger.error(str(e))
        return 1

    serve(backend, args.port)
    return 0


if __name__ == "__main__":
    sys.exit(main())
