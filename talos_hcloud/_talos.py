"""Talos machine configuration and bring-up helpers built on ``talosctl``."""

from __future__ import annotations

import logging
import os
from pathlib import Path

import requests
import yaml

from talos_hcloud import _commands
from talos_hcloud._cluster_errors import CommandError, ResourceError
from talos_hcloud._cluster_models import ClusterConfig
from talos_hcloud._polling import print_dot, wait_until

logger = logging.getLogger(__name__)

STABLE_RELEASE_URL = "https://dl.k8s.io/release/stable.txt"
HTTP_TIMEOUT_SECONDS = 30
GENERATED_FILES = ("controlplane.yaml", "worker.yaml", "talosconfig")


def fetch_stable_kubernetes_version(url: str = STABLE_RELEASE_URL) -> str:
    """Return the current stable Kubernetes release tag, e.g. ``v1.31.2``."""

    try:
        response = requests.get(url, timeout=HTTP_TIMEOUT_SECONDS)
        response.raise_for_status()
    except requests.RequestException as exc:
        msg = f"Failed to fetch the stable Kubernetes version from {url}: {exc}"
        raise ResourceError(msg) from exc
    version = response.text.strip()
    if not version.startswith("v"):
        msg = f"Unexpected Kubernetes version string from {url}: {version!r}"
        raise ResourceError(msg)
    return version


def controlplane_patch(config: ClusterConfig) -> list[dict[str, object]]:
    """Return the JSON patch applied to control plane machine configs.

    The endpoint name resolves to loopback on the node itself and the API
    server binds on every interface so the public endpoint is reachable.

    Examples
    --------
    >>> ops = controlplane_patch(ClusterConfig("c", "k8s.example.test"))
    >>> ops[0]["value"][0]["aliases"]
    ['k8s.example.test']
    """

    return [
        {
            "op": "add",
            "path": "/machine/network/extraHostEntries",
            "value": [{"ip": "127.0.0.1", "aliases": [config.endpoint_dns]}],
        },
        {
            "op": "add",
            "path": "/cluster/apiServer/extraArgs",
            "value": {"bind-address": "0.0.0.0"},
        },
    ]


def config_generated(config: ClusterConfig) -> bool:
    return all((config.config_dir / name).exists() for name in GENERATED_FILES)


def generate_config(config: ClusterConfig, kubernetes_version: str) -> bool:
    """Generate Talos secrets and machine configs into ``config.config_dir``.

    Existing output is kept so re-runs do not rotate the cluster PKI.

    Returns
    -------
    bool
        ``True`` when new configuration was generated.
    """

    if config_generated(config):
        print(f"Talos configuration already present in '{config.config_dir}', reusing.")
        return False

    config.config_dir.mkdir(parents=True, exist_ok=True)
    os.chmod(config.config_dir, 0o700)
    patch_file = config.config_dir / "controlplane-patch.yaml"
    patch_file.write_text(
        yaml.safe_dump(controlplane_patch(config), sort_keys=False),
        encoding="utf-8",
    )
    print(f"Generating Talos configuration files in '{config.config_dir}'...")
    try:
        _commands.run_command(
            "talosctl",
            "gen",
            "config",
            config.cluster_name,
            config.endpoint_url,
            "--output-dir",
            str(config.config_dir),
            "--kubernetes-version",
            kubernetes_version,
            "--with-kubespan=true",
            "--config-patch-control-plane",
            f"@{patch_file}",
        )
    finally:
        patch_file.unlink(missing_ok=True)
    print("Configuration files generated.")
    return True


def _secure_args(config: ClusterConfig, node_ip: str) -> list[str]:
    return [
        "--talosconfig",
        str(config.talosconfig_path),
        "--nodes",
        node_ip,
        "--endpoints",
        node_ip,
    ]


def apply_config(config: ClusterConfig, node_ip: str, role: str) -> None:
    """Push the machine config for *role* to a node in maintenance mode."""

    machine_config = config.config_dir / f"{role}.yaml"
    _commands.run_command(
        "talosctl",
        "apply-config",
        "--insecure",
        "--file",
        str(machine_config),
        "--nodes",
        node_ip,
    )
    print(f"Configuration applied to {role} {node_ip}.")


def secure_api_ready(config: ClusterConfig, node_ip: str) -> bool:
    """Return whether the node answers ``talosctl version`` with client certs."""

    return _commands.command_succeeds("talosctl", *_secure_args(config, node_ip), "version")


def wait_for_secure_api(config: ClusterConfig, node_ip: str) -> None:
    print(f"Waiting for secure Talos API on {node_ip} to return after reboot...")
    wait_until(
        lambda: secure_api_ready(config, node_ip),
        description=f"secure Talos API on {node_ip}",
        interval=config.waits.poll_interval,
        timeout=config.waits.talos_api_timeout,
        on_pending=print_dot,
    )
    print()
    print(f"Secure API on {node_ip} is responsive.")


def bootstrap_etcd(config: ClusterConfig, node_ip: str) -> bool:
    """Issue the one-time bootstrap call against *node_ip*.

    Returns
    -------
    bool
        ``False`` when the node reports it is already bootstrapped.
    """

    print(f"Bootstrapping the cluster on {node_ip}...")
    try:
        _commands.run_command("talosctl", "bootstrap", *_secure_args(config, node_ip))
    except CommandError as exc:
        if "AlreadyExists" in str(exc) or "already exists" in str(exc):
            print(f"Cluster on {node_ip} is already bootstrapped.")
            return False
        raise
    print("Bootstrap command sent successfully.")
    return True


def fetch_kubeconfig(config: ClusterConfig, node_ip: str) -> Path:
    """Write the admin kubeconfig to ``config.kubeconfig_path`` with mode 600."""

    path = config.kubeconfig_path
    _commands.run_command(
        "talosctl",
        "kubeconfig",
        *_secure_args(config, node_ip),
        "--force",
        str(path),
    )
    os.chmod(path, 0o600)
    print(f"Kubeconfig saved to {path} with secure permissions.")
    return path


def health_check(config: ClusterConfig, node_ip: str) -> None:
    print(f"Performing final cluster health check on {node_ip}...")
    _commands.run_command("talosctl", *_secure_args(config, node_ip), "health")
    print("Cluster health checks passed.")


__all__ = [
    "GENERATED_FILES",
    "apply_config",
    "bootstrap_etcd",
    "config_generated",
    "controlplane_patch",
    "fetch_kubeconfig",
    "fetch_stable_kubernetes_version",
    "generate_config",
    "health_check",
    "secure_api_ready",
    "wait_for_secure_api",
]
