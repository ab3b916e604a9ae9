"""Hetzner Cloud resource helpers built on the ``hcloud`` CLI.

Each ``ensure_*`` helper follows the same create-or-adopt pattern: describe the
resource by name, create it with the cluster label when the describe call
fails, otherwise adopt the existing resource untouched.

Examples
--------
>>> from talos_hcloud._cluster_models import ClusterConfig
>>> config = ClusterConfig("test-cluster", "k8s.example.test")
>>> ensure_network(config)  # doctest: +SKIP
True
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from talos_hcloud import _commands
from talos_hcloud._cluster_errors import (
    CloudContextError,
    CommandError,
    ResourceError,
)
from talos_hcloud._cluster_models import (
    KUBERNETES_API_PORT,
    KUBESPAN_PORT,
    TALOS_API_PORT,
    ClusterConfig,
    ServerInfo,
)
from talos_hcloud._polling import print_dot, wait_until

logger = logging.getLogger(__name__)

ANYWHERE = "0.0.0.0/0,::/0"

# Deletion order: servers release firewall and network attachments first.
LABELLED_KINDS: tuple[str, ...] = (
    "server",
    "floating-ip",
    "load-balancer",
    "firewall",
    "network",
)


def hcloud(*args: str) -> str:
    """Run ``hcloud`` with *args* and return standard output."""

    return _commands.run_command("hcloud", *args)


def active_context() -> str:
    """Return the name of the active ``hcloud`` context.

    Raises
    ------
    CloudContextError
        When no context is active.
    """

    try:
        name = hcloud("context", "active").strip()
    except CommandError as exc:
        msg = "No active Hetzner Cloud context. Please run 'hcloud context create <name>'."
        raise CloudContextError(msg) from exc
    if not name:
        msg = "No active Hetzner Cloud context. Please run 'hcloud context create <name>'."
        raise CloudContextError(msg)
    return name


def describe(kind: str, name: str) -> dict[str, Any] | None:
    """Return the JSON description of a resource, or ``None`` when absent."""

    try:
        payload = _commands.run_json("hcloud", kind, "describe", name, "-o", "json")
    except CommandError:
        return None
    if payload is None:
        return None
    if not isinstance(payload, dict):
        msg = f"hcloud {kind} describe {name} returned a non-object payload"
        raise ResourceError(msg)
    return payload


def resource_exists(kind: str, name: str) -> bool:
    return _commands.command_succeeds("hcloud", kind, "describe", name)


def ensure_network(config: ClusterConfig) -> bool:
    """Create the private network and its cloud subnet unless it exists.

    Returns
    -------
    bool
        ``True`` when the network was created, ``False`` when adopted.
    """

    name = config.network_name
    if resource_exists("network", name):
        print(f"Private network '{name}' already exists, adopting.")
        return False
    hcloud(
        "network",
        "create",
        "--name",
        name,
        "--ip-range",
        config.network_ip_range,
        "--label",
        config.label,
    )
    hcloud(
        "network",
        "add-subnet",
        name,
        "--network-zone",
        config.network_zone,
        "--type",
        "cloud",
        "--ip-range",
        config.network_ip_range,
    )
    print(f"Private network '{name}' created.")
    return True


def _firewall_rules(config: ClusterConfig) -> list[tuple[str, int, str]]:
    return [
        ("tcp", KUBERNETES_API_PORT, ANYWHERE),
        ("tcp", TALOS_API_PORT, ANYWHERE),
        ("udp", KUBESPAN_PORT, config.network_ip_range),
    ]


def ensure_firewall(config: ClusterConfig) -> bool:
    """Create the cluster firewall with its inbound rules unless it exists."""

    name = config.firewall_name
    if resource_exists("firewall", name):
        print(f"Firewall '{name}' already exists, adopting.")
        return False
    hcloud("firewall", "create", "--name", name, "--label", config.label)
    for protocol, port, sources in _firewall_rules(config):
        hcloud(
            "firewall",
            "add-rule",
            name,
            "--direction",
            "in",
            "--protocol",
            protocol,
            "--port",
            str(port),
            "--source-ips",
            sources,
        )
    print(f"Firewall '{name}' created.")
    return True


def ensure_server(config: ClusterConfig, name: str, server_type: str) -> bool:
    """Create server *name* attached to the cluster network and firewall."""

    if resource_exists("server", name):
        print(f"Server '{name}' already exists, adopting.")
        return False
    print(f"Creating server '{name}'...")
    hcloud(
        "server",
        "create",
        "--name",
        name,
        "--type",
        server_type,
        "--location",
        config.location,
        "--image",
        config.placeholder_image,
        "--network",
        config.network_name,
        "--firewall",
        config.firewall_name,
        "--label",
        config.label,
    )
    print(f"Server '{name}' created.")
    return True


def boot_from_iso(config: ClusterConfig, name: str) -> None:
    """Attach the Talos ISO and reset *name* so it boots into maintenance mode.

    Runs for adopted servers too so the boot media always matches.
    """

    print(f"Ensuring Talos ISO is attached to {name} and rebooting...")
    hcloud("server", "attach-iso", name, config.talos_iso)
    hcloud("server", "reset", name)


def server_info(name: str) -> ServerInfo:
    """Return the id and addresses of server *name*."""

    payload = describe("server", name)
    if payload is None:
        msg = f"Server '{name}' not found"
        raise ResourceError(msg)
    try:
        server_id = int(payload["id"])
        public_ipv4 = payload["public_net"]["ipv4"]["ip"]
    except (KeyError, TypeError, ValueError) as exc:
        msg = f"hcloud server describe {name} is missing id or public IPv4"
        raise ResourceError(msg) from exc
    private_nets = payload.get("private_net") or []
    private_ipv4 = private_nets[0].get("ip") if private_nets else None
    return ServerInfo(
        name=name,
        server_id=server_id,
        public_ipv4=str(public_ipv4),
        private_ipv4=private_ipv4,
    )


def _floating_ip_address(payload: dict[str, Any]) -> str | None:
    # ``create -o json`` wraps the resource; ``describe`` does not.
    inner = payload.get("floating_ip", payload)
    address = inner.get("ip") if isinstance(inner, dict) else None
    return str(address) if address else None


def ensure_floating_ip(config: ClusterConfig, server_name: str) -> str:
    """Create or adopt the floating IP and (re)assign it to *server_name*.

    Returns
    -------
    str
        The floating IPv4 address.
    """

    name = config.floating_ip_name
    existing = describe("floating-ip", name)
    if existing is None:
        created = _commands.run_json(
            "hcloud",
            "floating-ip",
            "create",
            "--type",
            "ipv4",
            "--name",
            name,
            "--home-location",
            config.location,
            "--label",
            config.label,
            "-o",
            "json",
        )
        address = _floating_ip_address(created or {})
        verb = "created"
    else:
        address = _floating_ip_address(existing)
        verb = "already exists, adopting"
    if not address:
        msg = f"Floating IP '{name}' has no address"
        raise ResourceError(msg)
    hcloud("floating-ip", "assign", name, server_name)
    print(f"Floating IP {address} {verb} and assigned to {server_name}.")
    return address


def _load_balancer_ipv4(payload: dict[str, Any] | None) -> str | None:
    if not payload:
        return None
    ipv4 = ((payload.get("public_net") or {}).get("ipv4") or {}).get("ip")
    return str(ipv4) if ipv4 else None


def _load_balancer_target_ids(payload: dict[str, Any] | None) -> set[int]:
    ids: set[int] = set()
    for target in (payload or {}).get("targets") or []:
        server = target.get("server") or {}
        if target.get("type") == "server" and server.get("id") is not None:
            ids.add(int(server["id"]))
    return ids


def ensure_load_balancer(config: ClusterConfig) -> bool:
    """Create the control plane load balancer unless it exists."""

    name = config.load_balancer_name
    if resource_exists("load-balancer", name):
        print(f"Load balancer '{name}' already exists, adopting.")
        return False
    hcloud(
        "load-balancer",
        "create",
        "--name",
        name,
        "--type",
        config.load_balancer_type,
        "--location",
        config.location,
        "--label",
        config.label,
    )
    hcloud("load-balancer", "attach-to-network", name, "--network", config.network_name)
    for port in (KUBERNETES_API_PORT, TALOS_API_PORT):
        hcloud(
            "load-balancer",
            "add-service",
            name,
            "--protocol",
            "tcp",
            "--listen-port",
            str(port),
            "--destination-port",
            str(port),
        )
    print(f"Load balancer '{name}' created.")
    return True


def register_load_balancer_target(config: ClusterConfig, server: ServerInfo) -> None:
    """Add *server* as a target, retrying until the load balancer lists it.

    Every attempt re-issues ``add-target``; failures are logged and retried
    because backend registration propagates asynchronously.
    """

    name = config.load_balancer_name

    def _registered() -> bool:
        if server.server_id in _load_balancer_target_ids(describe("load-balancer", name)):
            return True
        try:
            hcloud(
                "load-balancer",
                "add-target",
                name,
                "--server",
                server.name,
                "--use-private-ip",
            )
        except CommandError as exc:
            logger.warning("add-target for %s failed, retrying: %s", server.name, exc)
        return False

    wait_until(
        _registered,
        description=f"{server.name} to register with {name}",
        interval=config.waits.poll_interval,
        on_pending=print_dot,
    )
    print(f"Server {server.name} is a target of load balancer '{name}'.")


def load_balancer_ip(config: ClusterConfig) -> str:
    """Wait (bounded) for the load balancer to report its public IPv4."""

    name = config.load_balancer_name
    return wait_until(
        lambda: _load_balancer_ipv4(describe("load-balancer", name)),
        description=f"load balancer '{name}' public IPv4",
        interval=config.waits.poll_interval,
        timeout=config.waits.load_balancer_ip_timeout,
    )


def find_network_id(name: str) -> int:
    """Return the numeric id of network *name*."""

    payload = describe("network", name)
    if payload is None or payload.get("id") is None:
        msg = f"Network '{name}' not found"
        raise ResourceError(msg)
    return int(payload["id"])


def find_server_id(name: str) -> int | None:
    payload = describe("server", name)
    if payload is None or payload.get("id") is None:
        return None
    return int(payload["id"])


def list_labelled(kind: str, label: str) -> list[str]:
    """Return the names of *kind* resources carrying *label*."""

    stdout = hcloud(kind, "list", "-l", label, "-o", "columns=name", "-o", "noheader")
    return [line.strip() for line in stdout.splitlines() if line.strip()]


def delete_resources(kind: str, names: Iterable[str]) -> None:
    targets = list(names)
    if targets:
        hcloud(kind, "delete", *targets)


__all__ = [
    "LABELLED_KINDS",
    "active_context",
    "boot_from_iso",
    "delete_resources",
    "describe",
    "ensure_firewall",
    "ensure_floating_ip",
    "ensure_load_balancer",
    "ensure_network",
    "ensure_server",
    "find_network_id",
    "find_server_id",
    "list_labelled",
    "load_balancer_ip",
    "register_load_balancer_target",
    "resource_exists",
    "server_info",
]
