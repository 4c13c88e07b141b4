"""Artifact URL parsing and bucket mounts."""

import posixpath
from dataclasses import dataclass
from urllib.parse import urlparse

from kubernetes import client

from .errors import ArtifactURLError


@dataclass(frozen=True)
class BucketURL:
    scheme: str
    bucket: str
    subpath: str


def parse_bucket_url(url):
    """Split ``<scheme>://<bucket>/<dir>/<file>`` into bucket and directory.

    >>> parse_bucket_url("gcs://my-bucket/a/b/c.json")
    BucketURL(scheme='gcs', bucket='my-bucket', subpath='a/b')
    """
    if not isinstance(url, str) or not url.strip():
        raise ArtifactURLError("artifact url is empty")
    if any(ch.isspace() for ch in url):
        raise ArtifactURLError(f"malformed artifact url {url!r}: contains whitespace")

    try:
        parsed = urlparse(url)
    except ValueError as e:
        raise ArtifactURLError(f"malformed artifact url {url!r}: {e}")

    if not parsed.scheme or not parsed.netloc:
        raise ArtifactURLError(
            f"malformed artifact url {url!r}: expected <scheme>://<bucket>/<path>"
        )

    subpath = posixpath.dirname(parsed.path).lstrip("/")
    return BucketURL(scheme=parsed.scheme, bucket=parsed.netloc, subpath=subpath)


def reader_mount(cloud, url, name, mount_path):
    """Read-only volume and mount for the directory holding an artifact."""
    parsed = parse_bucket_url(url)
    if parsed.scheme != cloud.url_scheme:
        raise ArtifactURLError(
            f"artifact url {url!r} uses scheme {parsed.scheme!r}, "
            f"cloud {cloud.name} serves {cloud.url_scheme!r}"
        )

    volume = cloud.volume_for(parsed.bucket, name, read_only=True)
    mount = client.V1VolumeMount(
        name=name,
        mount_path=mount_path,
        sub_path=parsed.subpath or None,
        read_only=True,
    )
    return volume, mount


def writer_mounts(cloud, bucket, uid, name, paths):
    """Writable volume plus mounts scoped under the owner's uid.

    ``paths`` maps mount path to the directory below ``<uid>/``, so two
    resources sharing a bucket never write to the same prefix.
    """
    if not uid:
        raise ArtifactURLError("cannot scope artifact paths without a resource uid")

    volume = cloud.volume_for(bucket, name, read_only=False)
    mounts = [
        client.V1VolumeMount(name=name, mount_path=mount_path, sub_path=f"{uid}/{suffix}")
        for mount_path, suffix in paths.items()
    ]
    return volume, mounts
