"""Errors that retrying cannot fix."""


class InvalidSpecError(ValueError):
    """The resource spec cannot produce a runnable workload."""


class ArtifactURLError(ValueError):
    """An artifact URL could not be parsed into bucket and path."""
