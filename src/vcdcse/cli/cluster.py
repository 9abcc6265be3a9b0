"""Cluster CLI commands."""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console

from vcdcse.cli._utils import (
    confirm_action,
    get_client,
    get_json_flag,
    handle_error,
    load_document,
    output_json,
    output_table,
)
from vcdcse.models.cluster import (
    DEFAULT_CSE_VERSION,
    ClusterSettings,
    ClusterUpdate,
    ControlPlaneUpdate,
    KubernetesCluster,
    WorkerPoolUpdate,
)

app = typer.Typer(help="Cluster management commands.")
console = Console()


def _parse_pools(values: list[str]) -> dict[str, WorkerPoolUpdate]:
    pools = {}
    for value in values:
        name, sep, count = value.partition("=")
        if not sep or not name or not count.strip().lstrip("-").isdigit():
            raise typer.BadParameter(f"expected NAME=COUNT, got '{value}'", param_hint="--pool")
        pools[name] = WorkerPoolUpdate(machine_count=int(count))
    return pools


def _print_cluster(cluster: KubernetesCluster) -> None:
    state_color = {
        "provisioned": "green",
        "provisioning": "blue",
        "error": "red",
    }.get(cluster.state, "white")

    console.print(f"[bold]Cluster: {cluster.name}[/bold] ({cluster.id})")
    console.print(f"  State: [{state_color}]{cluster.state or '-'}[/{state_color}]")
    console.print(f"  CSE: {cluster.cse_version}")
    if cluster.kubernetes_version:
        console.print(
            f"  Kubernetes: {cluster.kubernetes_version} (TKG {cluster.tkg_version or '-'})"
        )
    if cluster.kubernetes_template_ova_name:
        console.print(f"  Template: {cluster.kubernetes_template_ova_name}")
    console.print(f"  Owner: {cluster.owner or '-'}")
    console.print(
        f"  Control plane: {cluster.control_plane.machine_count} nodes"
        + (f", endpoint {cluster.control_plane.ip}" if cluster.control_plane.ip else "")
    )
    console.print(f"  Auto repair on errors: {'Yes' if cluster.auto_repair_on_errors else 'No'}")
    console.print(f"  Node health check: {'Yes' if cluster.node_health_check else 'No'}")

    if cluster.worker_pools:
        console.print("\n  Worker pools:")
        for pool in cluster.worker_pools:
            console.print(
                f"    {pool.name}: {pool.machine_count} nodes, {pool.disk_size_gi} GiB disk"
            )

    errors = [e for e in cluster.events if e.type == "error"]
    if errors:
        console.print(f"\n  [red]Latest error:[/red] {errors[0].details or errors[0].name}")


def _show(ctx: typer.Context, cluster: KubernetesCluster) -> None:
    if get_json_flag(ctx):
        output_json(cluster)
    else:
        _print_cluster(cluster)


@app.command("create")
def create(
    ctx: typer.Context,
    file: Path = typer.Option(
        ...,
        "--file",
        "-f",
        exists=True,
        dir_okay=False,
        help="YAML or JSON file with the cluster settings",
    ),
    no_wait: bool = typer.Option(
        False, "--no-wait", help="Return as soon as the cluster entity exists"
    ),
    timeout: float = typer.Option(0, "--timeout", "-t", help="Seconds to wait (0 = no limit)"),
) -> None:
    """Create a cluster.

    Example:
        vcdcse cluster create -f cluster.yaml --timeout 3600
    """
    client = get_client()
    try:
        settings = ClusterSettings.model_validate(load_document(file))

        if no_wait:
            cluster_id = client.clusters.create_async(settings)
            if get_json_flag(ctx):
                output_json({"id": cluster_id})
            else:
                console.print(f"[green]Cluster creation requested:[/green] {cluster_id}")
            return

        with console.status(f"Creating cluster '{settings.name}'..."):
            cluster = client.clusters.create(settings, timeout=timeout)
        _show(ctx, cluster)

    except Exception as e:
        handle_error(e)


@app.command("get")
def get(
    ctx: typer.Context,
    cluster_id: str = typer.Argument(..., help="Cluster ID"),
) -> None:
    """Show cluster details."""
    client = get_client()
    try:
        _show(ctx, client.clusters.get(cluster_id))

    except Exception as e:
        handle_error(e)


@app.command("list")
def list_clusters(
    ctx: typer.Context,
    name: str = typer.Option(..., "--name", "-n", help="Cluster name"),
    cse_version: str = typer.Option(
        DEFAULT_CSE_VERSION, "--cse-version", help="CSE version the clusters were created with"
    ),
) -> None:
    """List the clusters with a given name."""
    client = get_client()
    try:
        clusters = client.clusters.get_by_name(name, cse_version=cse_version)

        if get_json_flag(ctx):
            output_json(clusters)
        else:
            if not clusters:
                console.print("[dim]No clusters found.[/dim]")
                return

            output_table(
                clusters,
                columns=[
                    ("id", "ID"),
                    ("name", "Name"),
                    ("state", "State"),
                    ("kubernetes_version", "Kubernetes"),
                    ("owner", "Owner"),
                ],
                title="Clusters",
            )

    except Exception as e:
        handle_error(e)


@app.command("scale")
def scale(
    ctx: typer.Context,
    cluster_id: str = typer.Argument(..., help="Cluster ID"),
    control_plane: int | None = typer.Option(
        None, "--control-plane", "-c", help="Control plane nodes (odd number)"
    ),
    pools: list[str] = typer.Option(
        [], "--pool", "-p", help="Worker pool size as NAME=COUNT, repeatable"
    ),
) -> None:
    """Resize the control plane or worker pools.

    Example:
        vcdcse cluster scale urn:vcloud:entity:... --pool worker-pool-1=3
    """
    client = get_client()
    try:
        worker_pools = _parse_pools(pools)
        if control_plane is None and not worker_pools:
            raise typer.BadParameter("nothing to scale, pass --control-plane or --pool")

        update = ClusterUpdate(
            control_plane=(
                ControlPlaneUpdate(machine_count=control_plane)
                if control_plane is not None
                else None
            ),
            worker_pools=worker_pools or None,
        )
        cluster = client.clusters.update(client.clusters.get(cluster_id), update)
        _show(ctx, cluster)

    except typer.BadParameter:
        raise
    except Exception as e:
        handle_error(e)


@app.command("upgrade")
def upgrade(
    ctx: typer.Context,
    cluster_id: str = typer.Argument(..., help="Cluster ID"),
    ova_id: str = typer.Option(..., "--ova", help="ID of the Kubernetes template OVA"),
) -> None:
    """Upgrade a cluster to another Kubernetes template."""
    client = get_client()
    try:
        cluster = client.clusters.upgrade(client.clusters.get(cluster_id), ova_id)
        _show(ctx, cluster)

    except Exception as e:
        handle_error(e)


@app.command("upgrades")
def upgrades(
    ctx: typer.Context,
    cluster_id: str = typer.Argument(..., help="Cluster ID"),
) -> None:
    """List the templates a cluster can be upgraded to."""
    client = get_client()
    try:
        templates = client.clusters.get_supported_upgrades(client.clusters.get(cluster_id))

        if get_json_flag(ctx):
            output_json(templates)
        else:
            if not templates:
                console.print("[dim]No upgrades available.[/dim]")
                return

            output_table(
                templates,
                columns=[("id", "ID"), ("name", "Name"), ("catalog_name", "Catalog")],
                title="Available upgrades",
            )

    except Exception as e:
        handle_error(e)


@app.command("health-check")
def health_check(
    ctx: typer.Context,
    cluster_id: str = typer.Argument(..., help="Cluster ID"),
    enable: bool = typer.Option(
        ..., "--enable/--disable", help="Turn the node health check on or off"
    ),
) -> None:
    """Turn the machine health check of a cluster on or off."""
    client = get_client()
    try:
        cluster = client.clusters.set_health_check(client.clusters.get(cluster_id), enable)
        _show(ctx, cluster)

    except Exception as e:
        handle_error(e)


@app.command("delete")
def delete(
    cluster_id: str = typer.Argument(..., help="Cluster ID"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
    timeout: float = typer.Option(0, "--timeout", "-t", help="Seconds to wait (0 = no limit)"),
) -> None:
    """Delete a cluster and wait until it is gone."""
    if not yes and not confirm_action(f"Delete cluster {cluster_id}?"):
        console.print("[dim]Cancelled.[/dim]")
        raise typer.Exit(0)

    client = get_client()
    try:
        with console.status(f"Deleting cluster '{cluster_id}'..."):
            client.clusters.delete(cluster_id, timeout=timeout)
        console.print(f"[green]Deleted cluster:[/green] {cluster_id}")

    except Exception as e:
        handle_error(e)
