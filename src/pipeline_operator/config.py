"""Operator configuration loaded from the environment."""

import os
from dataclasses import dataclass
from typing import Mapping, Optional

SUPPORTED_CLOUDS = ("gcp", "aws")

DEFAULT_CLOUD_MANAGER_ADDR = "localhost:10443"
DEFAULT_PRINCIPAL_PREFIX = "ml-pipeline"


@dataclass(frozen=True)
class OperatorConfig:
    """Settings shared by every reconcile pass.

    Built once at startup and passed around explicitly; nothing here is
    mutated after construction.
    """

    cloud: str
    gcp_project_id: Optional[str] = None
    aws_account_id: Optional[str] = None
    aws_region: Optional[str] = None
    artifact_bucket: str = ""
    registry: str = ""
    cloud_manager_addr: str = DEFAULT_CLOUD_MANAGER_ADDR
    rpc_timeout: float = 10.0
    api_timeout: float = 30.0
    principal_prefix: str = DEFAULT_PRINCIPAL_PREFIX

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "OperatorConfig":
        env = os.environ if environ is None else environ

        cloud = env.get("CLOUD", "").strip().lower()
        if cloud not in SUPPORTED_CLOUDS:
            raise ValueError(
                f"CLOUD must be one of {list(SUPPORTED_CLOUDS)}, got {cloud!r}"
            )

        gcp_project_id = env.get("GCP_PROJECT_ID") or None
        aws_account_id = env.get("AWS_ACCOUNT_ID") or None
        aws_region = env.get("AWS_REGION") or None

        if cloud == "gcp":
            if not gcp_project_id:
                raise ValueError("GCP_PROJECT_ID is required when CLOUD=gcp")
            account = gcp_project_id
            default_registry = f"gcr.io/{gcp_project_id}"
        else:
            if not aws_account_id:
                raise ValueError("AWS_ACCOUNT_ID is required when CLOUD=aws")
            if not aws_region:
                raise ValueError("AWS_REGION is required when CLOUD=aws")
            account = aws_account_id
            default_registry = f"{aws_account_id}.dkr.ecr.{aws_region}.amazonaws.com"

        return cls(
            cloud=cloud,
            gcp_project_id=gcp_project_id,
            aws_account_id=aws_account_id,
            aws_region=aws_region,
            artifact_bucket=env.get("ARTIFACT_BUCKET") or f"{account}-ml-artifacts",
            registry=env.get("REGISTRY") or default_registry,
            cloud_manager_addr=env.get("CLOUD_MANAGER_ADDR") or DEFAULT_CLOUD_MANAGER_ADDR,
            rpc_timeout=_positive_float(env, "RPC_TIMEOUT", 10.0),
            api_timeout=_positive_float(env, "API_TIMEOUT", 30.0),
            principal_prefix=env.get("PRINCIPAL_PREFIX") or DEFAULT_PRINCIPAL_PREFIX,
        )


def _positive_float(env, key, default):
    raw = env.get(key)
    if raw is None or raw == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ValueError(f"{key} must be a number, got {raw!r}")
    if value <= 0:
        raise ValueError(f"{key} must be positive, got {raw!r}")
    return value
