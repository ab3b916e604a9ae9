"""DNS and TCP reachability probes."""

from __future__ import annotations

import socket

from talos_hcloud import _commands
from talos_hcloud._cluster_models import WaitSettings
from talos_hcloud._polling import print_dot, wait_until


def tcp_port_open(host: str, port: int, timeout: float = 5.0) -> bool:
    """Return whether a TCP connection to ``host:port`` succeeds."""

    try:
        with socket.create_connection((host, port), timeout=timeout):
            return True
    except OSError:
        return False


def resolve_a_records(hostname: str) -> list[str]:
    """Return the A records ``dig`` reports for *hostname*.

    ``dig +short`` also prints CNAME targets; only dotted-quad lines count.
    """

    stdout = _commands.run_command("dig", "+short", hostname)
    records = []
    for line in stdout.splitlines():
        candidate = line.strip()
        parts = candidate.split(".")
        if len(parts) == 4 and all(part.isdigit() for part in parts):
            records.append(candidate)
    return records


def dns_points_to(hostname: str, address: str) -> bool:
    """Return whether *hostname* currently resolves to exactly *address*."""

    return address in resolve_a_records(hostname)


def wait_for_port(host: str, port: int, waits: WaitSettings, *, timeout: float | None = None) -> None:
    """Block until ``host:port`` accepts TCP connections."""

    wait_until(
        lambda: tcp_port_open(host, port),
        description=f"{host}:{port} to accept connections",
        interval=waits.poll_interval,
        timeout=timeout,
        on_pending=print_dot,
    )
    print()


def wait_for_dns(hostname: str, address: str, waits: WaitSettings) -> None:
    """Block until *hostname* resolves to *address*.

    Unbounded unless ``waits.dns_timeout`` is set; the record is created out of
    band by the operator.
    """

    wait_until(
        lambda: dns_points_to(hostname, address),
        description=f"DNS record {hostname} -> {address}",
        interval=waits.poll_interval,
        timeout=waits.dns_timeout,
        on_pending=print_dot,
    )
    print()


__all__ = [
    "dns_points_to",
    "resolve_a_records",
    "tcp_port_open",
    "wait_for_dns",
    "wait_for_port",
]
