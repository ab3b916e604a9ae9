"""Provision and deprovision a Talos cluster on Hetzner Cloud.

This module sequences the ``hcloud``, ``dig``, ``talosctl``, and ``kubectl``
calls that turn a :class:`ClusterConfig` into a running cluster, and the
label-driven teardown that removes it again. Use it after configuration has
been resolved (typically via ``talos_hcloud/provision_cluster.py``).

Prerequisites
-------------
``hcloud``, ``kubectl``, ``talosctl`` and ``dig`` on the PATH and an active
``hcloud`` context. The operator must create the DNS ``A`` record for the
cluster endpoint when prompted.

Side Effects
------------
Creates or deletes Hetzner Cloud resources labelled ``cluster=<name>``, writes
Talos machine configs into ``clusterconfig_<name>/`` and the kubeconfig to
``<name>.kubeconfig`` (mode 600).

Examples
--------
>>> config = ClusterConfig("test-cluster", "k8s.example.test", worker_count=1)
>>> result = provision(config, assume_yes=True)  # doctest: +SKIP
>>> result.ready_nodes  # doctest: +SKIP
2
"""

from __future__ import annotations

import shutil
from dataclasses import dataclass, field
from pathlib import Path

from talos_hcloud import _commands, _hcloud, _network, _talos
from talos_hcloud._cluster_models import (
    KUBERNETES_API_PORT,
    TALOS_API_PORT,
    ClusterConfig,
    ServerInfo,
)
from talos_hcloud._kubernetes import Kubectl, wait_for_ready_nodes
from talos_hcloud._prompts import Reader, confirm, pause

REQUIRED_TOOLS: tuple[str, ...] = ("hcloud", "kubectl", "talosctl", "dig")
SEPARATOR = "-" * 64


@dataclass(slots=True)
class ProvisionResult:
    """Outcome of a provisioning run."""

    stable_ip: str
    control_planes: list[ServerInfo] = field(default_factory=list)
    workers: list[ServerInfo] = field(default_factory=list)
    kubeconfig: Path | None = None
    ready_nodes: int = 0


def preflight(tools: tuple[str, ...] = REQUIRED_TOOLS) -> None:
    """Check local tools and the active ``hcloud`` context."""

    print("Checking for required tools...")
    _commands.ensure_tools(tools)
    _hcloud.active_context()
    print("All required tools are present.")


def describe_config(config: ClusterConfig) -> None:
    print("Configuration:")
    print(f"  - Cluster Name: {config.cluster_name}")
    print(f"  - k8s Endpoint: {config.endpoint_url}")
    print(f"  - Hetzner Location: {config.location}")
    print(f"  - Control Plane: {config.control_plane_count}x {config.control_plane_type}")
    print(f"  - Workers: {config.worker_count}x {config.worker_type}")


def _ensure_servers(config: ClusterConfig, names: list[str], server_type: str) -> list[ServerInfo]:
    servers = []
    for name in names:
        _hcloud.ensure_server(config, name, server_type)
        _hcloud.boot_from_iso(config, name)
        servers.append(_hcloud.server_info(name))
    return servers


def _ensure_stable_ip(config: ClusterConfig, control_planes: list[ServerInfo]) -> str:
    if not config.is_ha:
        return _hcloud.ensure_floating_ip(config, control_planes[0].name)
    _hcloud.ensure_load_balancer(config)
    for server in control_planes:
        _hcloud.register_load_balancer_target(config, server)
    return _hcloud.load_balancer_ip(config)


def provision_infrastructure(config: ClusterConfig) -> ProvisionResult:
    """Create or adopt network, firewall, servers and the stable endpoint."""

    print(f"Provisioning Hetzner infrastructure for '{config.cluster_name}'...")
    _hcloud.ensure_network(config)
    _hcloud.ensure_firewall(config)
    control_planes = _ensure_servers(
        config, config.control_plane_names, config.control_plane_type
    )
    workers = _ensure_servers(config, config.worker_names, config.worker_type)
    stable_ip = _ensure_stable_ip(config, control_planes)
    return ProvisionResult(
        stable_ip=stable_ip,
        control_planes=control_planes,
        workers=workers,
    )


def await_dns(config: ClusterConfig, stable_ip: str) -> None:
    """Print the required ``A`` record and block until it resolves."""

    print("ACTION REQUIRED: Please create a DNS 'A' record if it doesn't exist:")
    print(f"  - Hostname: {config.endpoint_dns}")
    print(f"  - Value:    {stable_ip}")
    print("Waiting for DNS to propagate...")
    _network.wait_for_dns(config.endpoint_dns, stable_ip, config.waits)
    print(f"DNS record for {config.endpoint_dns} is correctly pointing to {stable_ip}.")


def _configure_nodes(config: ClusterConfig, nodes: list[ServerInfo], role: str) -> None:
    for node in nodes:
        print(f"Waiting for Talos API on {role} ({node.public_ipv4}:{TALOS_API_PORT})...")
        _network.wait_for_port(
            node.public_ipv4,
            TALOS_API_PORT,
            config.waits,
            timeout=config.waits.talos_api_timeout,
        )
        _talos.apply_config(config, node.public_ipv4, role)


def deploy_talos(config: ClusterConfig, result: ProvisionResult) -> ProvisionResult:
    """Generate and apply machine configs, bootstrap, and wait for the nodes."""

    version = config.kubernetes_version or _talos.fetch_stable_kubernetes_version()
    print(f"Using Kubernetes release: {version}")
    _talos.generate_config(config, version)

    _configure_nodes(config, result.control_planes, "controlplane")
    _configure_nodes(config, result.workers, "worker")
    print("All nodes have received their configuration and will reboot.")

    first = result.control_planes[0].public_ipv4
    _talos.wait_for_secure_api(config, first)
    _talos.bootstrap_etcd(config, first)

    print(f"Waiting for Kubernetes API server ({first}:{KUBERNETES_API_PORT})...")
    _network.wait_for_port(first, KUBERNETES_API_PORT, config.waits)
    print("Kubernetes API server is ready.")

    result.kubeconfig = _talos.fetch_kubeconfig(config, first)
    print("Waiting for all Kubernetes nodes to become 'Ready'...")
    result.ready_nodes = wait_for_ready_nodes(
        Kubectl(result.kubeconfig),
        config.total_nodes,
        interval=config.waits.node_poll_interval,
        timeout=config.waits.node_ready_timeout,
    )
    _talos.health_check(config, first)
    return result


def _print_summary(config: ClusterConfig, result: ProvisionResult) -> None:
    print()
    print(SEPARATOR)
    print(f"Your Talos Kubernetes cluster '{config.cluster_name}' is ready!")
    print(SEPARATOR)
    print(Kubectl(result.kubeconfig).run("get", "nodes", "-o", "wide"))
    print("To manage your cluster, use the generated kubeconfig:")
    print(f"export KUBECONFIG='{result.kubeconfig}'")
    print(f"The directory '{config.config_dir}' contains sensitive cluster PKI keys. Keep it safe.")
    print("To DESTROY ALL cloud resources for this cluster, rerun with --wipe.")


def provision(
    config: ClusterConfig,
    *,
    reader: Reader = input,
    assume_yes: bool = False,
) -> ProvisionResult:
    """Run the full provisioning sequence; any failing command aborts it."""

    print(f"Starting Talos cluster setup: {config.cluster_name}")
    print(SEPARATOR)
    preflight()
    describe_config(config)
    if not assume_yes:
        pause("Press [Enter] to provision this infrastructure, or [Ctrl+C] to abort...", reader)

    result = provision_infrastructure(config)
    await_dns(config, result.stable_ip)
    deploy_talos(config, result)
    _print_summary(config, result)
    return result


def deprovision(
    config: ClusterConfig,
    *,
    reader: Reader = input,
    assume_yes: bool = False,
) -> dict[str, list[str]]:
    """Delete every resource labelled for the cluster plus local artifacts.

    Returns
    -------
    dict[str, list[str]]
        Deleted resource names keyed by ``hcloud`` resource kind.
    """

    print(f"Deprovisioning all resources for cluster '{config.cluster_name}'...")
    print(
        "This will permanently delete all servers, floating IPs, load balancers, "
        f"firewalls, and networks with the label {config.label}."
    )
    if not assume_yes:
        confirm("Are you sure you want to continue?", reader)

    deleted: dict[str, list[str]] = {}
    for kind in _hcloud.LABELLED_KINDS:
        names = _hcloud.list_labelled(kind, config.label)
        if not names:
            print(f"No {kind} resources found to delete.")
            continue
        print(f"Deleting {kind}: {', '.join(names)}")
        _hcloud.delete_resources(kind, names)
        deleted[kind] = names

    print("Cleaning up local configuration files...")
    shutil.rmtree(config.config_dir, ignore_errors=True)
    config.kubeconfig_path.unlink(missing_ok=True)
    print(f"All resources for cluster '{config.cluster_name}' have been deprovisioned.")
    return deleted


__all__ = [
    "REQUIRED_TOOLS",
    "ProvisionResult",
    "await_dns",
    "deploy_talos",
    "deprovision",
    "describe_config",
    "preflight",
    "provision",
    "provision_infrastructure",
]
