#!/usr/bin/env python3
"""
CLI tool for the Flink Session Cluster Operator.

Renders cluster manifests locally, previews the actions a reconcile pass
would take, and runs one-off passes against the cluster.
"""

import asyncio
import json

import click
import yaml
from kubernetes_asyncio.config import ConfigException
from tabulate import tabulate

from config import KubernetesConfig
from convergence import decide
from executor import ReconcileError
from kube.base import KubernetesAPIError
from kube.builder import InvalidClusterSpec, build_desired_state
from kube.client import KubernetesClient
from kube.observer import ClusterObserver
from reconciler import MANAGED_RESOURCES, ClusterReconciler
from state import ClusterKey, DesiredClusterState


def _load_manifest(filename: str) -> dict:
    """Load a FlinkSessionCluster manifest and check its shape."""
    with open(filename, "r") as f:
        try:
            if filename.endswith(".yaml") or filename.endswith(".yml"):
                manifest = yaml.safe_load(f)
            else:
                manifest = json.load(f)
        except (yaml.YAMLError, ValueError) as e:
            raise click.ClickException(f"Cannot parse {filename}: {e}")

    if not isinstance(manifest, dict):
        raise click.ClickException(f"{filename} does not contain a resource object")

    missing = [field for field in ("apiVersion", "kind") if not manifest.get(field)]
    metadata = manifest.get("metadata")
    if not isinstance(metadata, dict) or not metadata.get("name"):
        missing.append("metadata.name")
    if missing:
        raise click.ClickException(
            f"{filename} is missing required fields: {', '.join(missing)}"
        )
    return manifest


async def _make_client() -> KubernetesClient:
    try:
        return await KubernetesClient.from_config(KubernetesConfig.from_env())
    except ConfigException as e:
        raise click.ClickException(f"Cannot load Kubernetes configuration: {e}")


def _resource_name(resource) -> str:
    if resource is None:
        return "-"
    return resource.get("metadata", {}).get("name", "<unnamed>")


def plan_rows(observed, desired):
    """Table rows of kind, desired, observed and the decided action."""
    rows = []
    for managed in MANAGED_RESOURCES:
        desired_resource = managed.accessor(desired)
        observed_resource = managed.accessor(observed)
        action = decide(desired_resource, observed_resource)
        rows.append(
            [
                managed.kind.value,
                _resource_name(desired_resource),
                "present" if observed_resource is not None else "absent",
                action.action_type.value,
            ]
        )
    return rows


@click.group()
def cli():
    """Flink Session Cluster Operator CLI"""
    pass


@cli.command()
@click.argument("filename", type=click.Path(exists=True))
@click.option("--output", "-o", type=click.Choice(["yaml", "json"]), default="yaml")
def render(filename, output):
    """Render the child manifests of a FlinkSessionCluster file"""
    cluster = _load_manifest(filename)

    try:
        desired = build_desired_state(cluster)
    except InvalidClusterSpec as e:
        raise click.ClickException(str(e))

    manifests = [
        managed.accessor(desired)
        for managed in MANAGED_RESOURCES
        if managed.accessor(desired) is not None
    ]

    if output == "json":
        click.echo(json.dumps(manifests, indent=2))
    else:
        click.echo(yaml.safe_dump_all(manifests, default_flow_style=False), nl=False)


@cli.command()
@click.argument("namespace")
@click.argument("name")
def plan(namespace, name):
    """Show the actions a reconcile pass would take for a cluster"""
    key = ClusterKey(namespace, name)

    async def run():
        client = await _make_client()
        try:
            observed = await ClusterObserver(client).observe(key)
        finally:
            await client.close()
        if observed.cluster is None:
            return observed, DesiredClusterState()
        return observed, build_desired_state(observed.cluster)

    try:
        observed, desired = asyncio.run(run())
    except (KubernetesAPIError, InvalidClusterSpec) as e:
        raise click.ClickException(str(e))

    if observed.cluster is None:
        click.echo(f"Cluster {key} not found, no action to take")
        return

    headers = ["Kind", "Desired", "Observed", "Action"]
    click.echo(tabulate(plan_rows(observed, desired), headers=headers, tablefmt="grid"))


@cli.command()
@click.argument("namespace")
@click.argument("name")
def reconcile(namespace, name):
    """Run a single reconcile pass for a cluster"""
    key = ClusterKey(namespace, name)

    async def run():
        client = await _make_client()
        try:
            observed = await ClusterObserver(client).observe(key)
            if observed.cluster is None:
                return False
            desired = build_desired_state(observed.cluster)
            await ClusterReconciler(client).reconcile(observed, desired)
            return True
        finally:
            await client.close()

    try:
        found = asyncio.run(run())
    except (KubernetesAPIError, InvalidClusterSpec, ReconcileError) as e:
        raise click.ClickException(str(e))

    if found:
        click.echo(f"Cluster {key} reconciled successfully")
    else:
        click.echo(f"Cluster {key} not found, no action taken")


if __name__ == "__main__":
    cli()
