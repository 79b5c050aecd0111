"""
Desired State Builder - Render a FlinkSessionCluster into child manifests.

The cluster spec is validated with pydantic, then turned into a JobManager
deployment and service, a TaskManager deployment and, optionally, a job
that submits a jar to the session cluster.
"""

import logging
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from state import ClusterKey, DesiredClusterState, Resource

logger = logging.getLogger(__name__)

APP_LABEL = "flink"
FLINK_BIN = "/opt/flink/bin/flink"


class InvalidClusterSpec(ValueError):
    """The FlinkSessionCluster spec failed validation."""

    def __init__(self, cluster_key: ClusterKey, error: ValidationError):
        self.cluster_key = cluster_key
        self.error = error
        super().__init__(f"Invalid spec for {cluster_key}: {error}")


class SpecModel(BaseModel):
    """Base for spec models: camelCase field names, unknown keys ignored."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class JobManagerPorts(SpecModel):
    rpc: int = 6123
    blob: int = 6124
    query: int = 6125
    ui: int = 8081


class JobManagerSpec(SpecModel):
    replicas: int = Field(1, ge=1, description="JobManager replicas")
    ports: JobManagerPorts = Field(default_factory=JobManagerPorts)
    resources: Optional[Dict[str, Any]] = None


class TaskManagerSpec(SpecModel):
    replicas: int = Field(..., ge=1, description="TaskManager replicas")
    data_port: int = Field(6121, alias="dataPort")
    resources: Optional[Dict[str, Any]] = None


class JobSpec(SpecModel):
    jar_file: str = Field(..., alias="jarFile", description="Jar to submit")
    class_name: Optional[str] = Field(None, alias="className")
    args: List[str] = Field(default_factory=list)
    parallelism: Optional[int] = Field(None, ge=1)
    restart_policy: str = Field("OnFailure", alias="restartPolicy")

    @field_validator("restart_policy")
    @classmethod
    def validate_restart_policy(cls, v: str) -> str:
        if v not in ("OnFailure", "Never"):
            raise ValueError("restartPolicy must be 'OnFailure' or 'Never'")
        return v


class ClusterSpec(SpecModel):
    """Validated spec of a FlinkSessionCluster."""

    image: str = Field(..., description="Flink container image")
    image_pull_policy: Optional[str] = Field(None, alias="imagePullPolicy")
    job_manager: JobManagerSpec = Field(
        default_factory=JobManagerSpec, alias="jobManager"
    )
    task_manager: TaskManagerSpec = Field(..., alias="taskManager")
    job: Optional[JobSpec] = None
    flink_properties: Dict[str, str] = Field(
        default_factory=dict, alias="flinkProperties"
    )

    @field_validator("image")
    @classmethod
    def validate_image(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("image must not be empty")
        return v


def parse_cluster_spec(cluster: Resource) -> ClusterSpec:
    """
    Validate the spec of a FlinkSessionCluster resource.

    Raises:
        InvalidClusterSpec: If the spec is missing or malformed.
    """
    try:
        return ClusterSpec.model_validate(cluster.get("spec") or {})
    except ValidationError as e:
        raise InvalidClusterSpec(ClusterKey.from_resource(cluster), e) from e


def jobmanager_name(cluster_name: str) -> str:
    return f"{cluster_name}-jobmanager"


def taskmanager_name(cluster_name: str) -> str:
    return f"{cluster_name}-taskmanager"


def job_name(cluster_name: str) -> str:
    return f"{cluster_name}-job"


def _labels(cluster_name: str, component: str) -> Dict[str, str]:
    return {"app": APP_LABEL, "cluster": cluster_name, "component": component}


def _owner_reference(cluster: Resource) -> Dict[str, Any]:
    metadata = cluster["metadata"]
    return {
        "apiVersion": cluster["apiVersion"],
        "kind": cluster["kind"],
        "name": metadata["name"],
        "uid": metadata.get("uid", ""),
        "controller": True,
        "blockOwnerDeletion": False,
    }


def _metadata(cluster: Resource, name: str, component: str) -> Dict[str, Any]:
    key = ClusterKey.from_resource(cluster)
    return {
        "name": name,
        "namespace": key.namespace,
        "labels": _labels(key.name, component),
        "ownerReferences": [_owner_reference(cluster)],
    }


def _flink_properties(cluster_name: str, spec: ClusterSpec) -> str:
    properties = {
        "jobmanager.rpc.address": jobmanager_name(cluster_name),
        "jobmanager.rpc.port": str(spec.job_manager.ports.rpc),
        "blob.server.port": str(spec.job_manager.ports.blob),
        "query.server.port": str(spec.job_manager.ports.query),
        "rest.port": str(spec.job_manager.ports.ui),
        "taskmanager.data.port": str(spec.task_manager.data_port),
    }
    properties.update(spec.flink_properties)
    return "\n".join(f"{k}: {v}" for k, v in properties.items())


def _container(
    name: str,
    spec: ClusterSpec,
    resources: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    container: Dict[str, Any] = {"name": name, "image": spec.image}
    if spec.image_pull_policy:
        container["imagePullPolicy"] = spec.image_pull_policy
    if resources:
        container["resources"] = resources
    return container


def _deployment(
    cluster: Resource,
    name: str,
    component: str,
    replicas: int,
    container: Dict[str, Any],
) -> Resource:
    labels = _labels(cluster["metadata"]["name"], component)
    return {
        "apiVersion": "apps/v1",
        "kind": "Deployment",
        "metadata": _metadata(cluster, name, component),
        "spec": {
            "replicas": replicas,
            "selector": {"matchLabels": labels},
            "template": {
                "metadata": {"labels": labels},
                "spec": {"containers": [container]},
            },
        },
    }


def build_jobmanager_deployment(cluster: Resource, spec: ClusterSpec) -> Resource:
    cluster_name = cluster["metadata"]["name"]
    ports = spec.job_manager.ports
    container = _container("jobmanager", spec, spec.job_manager.resources)
    container["args"] = ["jobmanager"]
    container["ports"] = [
        {"name": "rpc", "containerPort": ports.rpc},
        {"name": "blob", "containerPort": ports.blob},
        {"name": "query", "containerPort": ports.query},
        {"name": "ui", "containerPort": ports.ui},
    ]
    container["env"] = [
        {"name": "FLINK_PROPERTIES", "value": _flink_properties(cluster_name, spec)}
    ]
    return _deployment(
        cluster,
        jobmanager_name(cluster_name),
        "jobmanager",
        spec.job_manager.replicas,
        container,
    )


def build_jobmanager_service(cluster: Resource, spec: ClusterSpec) -> Resource:
    cluster_name = cluster["metadata"]["name"]
    ports = spec.job_manager.ports
    return {
        "apiVersion": "v1",
        "kind": "Service",
        "metadata": _metadata(cluster, jobmanager_name(cluster_name), "jobmanager"),
        "spec": {
            "selector": _labels(cluster_name, "jobmanager"),
            "ports": [
                {"name": "rpc", "port": ports.rpc},
                {"name": "blob", "port": ports.blob},
                {"name": "query", "port": ports.query},
                {"name": "ui", "port": ports.ui},
            ],
        },
    }


def build_taskmanager_deployment(cluster: Resource, spec: ClusterSpec) -> Resource:
    cluster_name = cluster["metadata"]["name"]
    container = _container("taskmanager", spec, spec.task_manager.resources)
    container["args"] = ["taskmanager"]
    container["ports"] = [
        {"name": "data", "containerPort": spec.task_manager.data_port},
    ]
    container["env"] = [
        {"name": "FLINK_PROPERTIES", "value": _flink_properties(cluster_name, spec)}
    ]
    return _deployment(
        cluster,
        taskmanager_name(cluster_name),
        "taskmanager",
        spec.task_manager.replicas,
        container,
    )


def build_job(cluster: Resource, spec: ClusterSpec) -> Optional[Resource]:
    if spec.job is None:
        return None

    cluster_name = cluster["metadata"]["name"]
    job = spec.job
    command = [
        FLINK_BIN,
        "run",
        "-m",
        f"{jobmanager_name(cluster_name)}:{spec.job_manager.ports.ui}",
    ]
    if job.class_name:
        command += ["-c", job.class_name]
    if job.parallelism:
        command += ["-p", str(job.parallelism)]
    command.append(job.jar_file)
    command += job.args

    container = _container("job", spec)
    container["command"] = command
    return {
        "apiVersion": "batch/v1",
        "kind": "Job",
        "metadata": _metadata(cluster, job_name(cluster_name), "job"),
        "spec": {
            "template": {
                "metadata": {"labels": _labels(cluster_name, "job")},
                "spec": {
                    "restartPolicy": job.restart_policy,
                    "containers": [container],
                },
            },
        },
    }


def build_desired_state(cluster: Resource) -> DesiredClusterState:
    """
    Build the desired child resources of a FlinkSessionCluster.

    Args:
        cluster: The live FlinkSessionCluster resource.

    Returns:
        A new DesiredClusterState; ``job`` is None when no job is declared.

    Raises:
        InvalidClusterSpec: If the spec fails validation.
    """
    spec = parse_cluster_spec(cluster)
    return DesiredClusterState(
        control_plane=build_jobmanager_deployment(cluster, spec),
        endpoint=build_jobmanager_service(cluster, spec),
        worker_pool=build_taskmanager_deployment(cluster, spec),
        job=build_job(cluster, spec),
    )
