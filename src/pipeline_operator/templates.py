"""Kubernetes resource templates."""

from kubernetes import client

from . import crd

KANIKO_IMAGE = "gcr.io/kaniko-project/executor:latest"


def service_account_manifest(name, namespace, annotations):
    return client.V1ServiceAccount(
        metadata=client.V1ObjectMeta(
            name=name,
            namespace=namespace,
            labels={crd.LABEL_MANAGED_BY: crd.MANAGED_BY},
            annotations=dict(annotations),
        ),
    )


def param_env(params):
    """Parameters become ``PARAM_<KEY>`` environment variables."""
    return [
        client.V1EnvVar(name=f"PARAM_{key.upper()}", value=str(value))
        for key, value in sorted(params.items())
    ]


def container_resources(resources):
    """Map ``spec.resources`` ({cpu, memory, disk, gpu: {count}}) to requirements."""
    resources = resources or {}
    requests = {}
    limits = {}
    if resources.get("cpu"):
        requests["cpu"] = str(resources["cpu"])
    if resources.get("memory"):
        requests["memory"] = f"{resources['memory']}Gi"
    if resources.get("disk"):
        requests["ephemeral-storage"] = f"{resources['disk']}Gi"
    gpu_count = (resources.get("gpu") or {}).get("count", 0)
    if gpu_count:
        requests["nvidia.com/gpu"] = str(gpu_count)
        limits["nvidia.com/gpu"] = str(gpu_count)
    if not requests:
        return None
    return client.V1ResourceRequirements(requests=requests, limits=limits or None)


def _pod_security_context():
    return client.V1PodSecurityContext(
        run_as_user=crd.RUN_AS_USER,
        run_as_group=crd.RUN_AS_GROUP,
        fs_group=crd.FS_GROUP,
    )


def job_manifest(
    name,
    namespace,
    container,
    service_account,
    volumes=None,
    pod_annotations=None,
    security_context=True,
):
    """Run-to-completion Job wrapping a single container."""
    annotations = {crd.ANNOTATION_DEFAULT_CONTAINER: container.name}
    annotations.update(pod_annotations or {})

    return client.V1Job(
        api_version="batch/v1",
        kind="Job",
        metadata=client.V1ObjectMeta(
            # Cross-namespace owners are not allowed, jobs live with their owner.
            name=name,
            namespace=namespace,
        ),
        spec=client.V1JobSpec(
            template=client.V1PodTemplateSpec(
                metadata=client.V1ObjectMeta(annotations=annotations),
                spec=client.V1PodSpec(
                    restart_policy="Never",
                    service_account_name=service_account,
                    security_context=_pod_security_context() if security_context else None,
                    containers=[container],
                    volumes=volumes or [],
                ),
            ),
        ),
    )


def git_context(git):
    """Kaniko build context for a git repository."""
    url = git["url"]
    for prefix in ("https://", "http://", "git://"):
        if url.startswith(prefix):
            url = url[len(prefix):]
            break
    if not url.endswith(".git"):
        url += ".git"
    context = f"git://{url}"
    branch = git.get("branch")
    if branch:
        context += f"#refs/heads/{branch}"
    return context


def builder_job(name, namespace, git, destination, service_account, pod_annotations=None):
    args = [
        f"--context={git_context(git)}",
        "--dockerfile=Dockerfile",
        f"--destination={destination}",
        "--cache=true",
    ]
    if git.get("path"):
        args.append(f"--context-sub-path={git['path']}")

    container = client.V1Container(name="builder", image=KANIKO_IMAGE, args=args)
    # Kaniko needs root to unpack the base image filesystem.
    return job_manifest(
        name, namespace, container, service_account,
        pod_annotations=pod_annotations, security_context=False,
    )


def loader_job(name, namespace, image, filename, params, resources, service_account,
               volume, mounts, pod_annotations=None):
    container = client.V1Container(
        name="loader",
        image=image,
        args=["load.sh"],
        env=[client.V1EnvVar(name="LOAD_DATA_PATH", value=f"/data/{filename}")] + param_env(params),
        resources=container_resources(resources),
        volume_mounts=mounts,
    )
    return job_manifest(
        name, namespace, container, service_account,
        volumes=[volume], pod_annotations=pod_annotations,
    )


def modeller_job(name, namespace, image, script, params, resources, service_account,
                 volumes, mounts, pod_annotations=None):
    container = client.V1Container(
        name="model",
        image=image,
        args=[script],
        env=param_env(params),
        resources=container_resources(resources),
        volume_mounts=mounts,
    )
    return job_manifest(
        name, namespace, container, service_account,
        volumes=volumes, pod_annotations=pod_annotations,
    )


def server_deployment(name, namespace, labels, image, params, resources, service_account,
                      volume, mount, pod_annotations=None):
    selector = {crd.LABEL_OWNER_NAME: labels[crd.LABEL_OWNER_NAME],
                crd.LABEL_OWNER_KIND: labels[crd.LABEL_OWNER_KIND]}
    annotations = {crd.ANNOTATION_DEFAULT_CONTAINER: "server"}
    annotations.update(pod_annotations or {})

    container = client.V1Container(
        name="server",
        image=image,
        args=["serve.sh"],
        env=param_env(params),
        resources=container_resources(resources),
        ports=[client.V1ContainerPort(name="http", container_port=crd.SERVER_PORT)],
        readiness_probe=client.V1Probe(
            http_get=client.V1HTTPGetAction(path="/", port="http"),
            initial_delay_seconds=5,
            period_seconds=10,
        ),
        volume_mounts=[mount],
    )
    return client.V1Deployment(
        api_version="apps/v1",
        kind="Deployment",
        metadata=client.V1ObjectMeta(name=name, namespace=namespace),
        spec=client.V1DeploymentSpec(
            replicas=1,
            selector=client.V1LabelSelector(match_labels=selector),
            template=client.V1PodTemplateSpec(
                metadata=client.V1ObjectMeta(labels=dict(labels), annotations=annotations),
                spec=client.V1PodSpec(
                    service_account_name=service_account,
                    security_context=_pod_security_context(),
                    containers=[container],
                    volumes=[volume],
                ),
            ),
        ),
    )


def server_service(name, namespace, labels):
    selector = {crd.LABEL_OWNER_NAME: labels[crd.LABEL_OWNER_NAME],
                crd.LABEL_OWNER_KIND: labels[crd.LABEL_OWNER_KIND]}
    return client.V1Service(
        api_version="v1",
        kind="Service",
        metadata=client.V1ObjectMeta(name=name, namespace=namespace),
        spec=client.V1ServiceSpec(
            selector=selector,
            ports=[client.V1ServicePort(name="http", port=80, target_port="http")],
        ),
    )
