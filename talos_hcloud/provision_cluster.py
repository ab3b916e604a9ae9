#!/usr/bin/env -S uv run python
# /// script
# requires-python = ">=3.12"
# dependencies = ["cyclopts>=2.9", "plumbum", "pyyaml", "requests"]
# ///
"""Provision a Talos Kubernetes cluster on Hetzner Cloud.

This script:
- creates (or adopts) the private network, firewall, servers and either a
  floating IP or a control plane load balancer, all labelled
  ``cluster=<name>``;
- waits for the endpoint DNS record the operator creates by hand;
- generates and applies Talos machine configs, bootstraps the control plane,
  and writes the kubeconfig; and
- with ``wipe`` / ``--wipe``, deletes every labelled resource instead.
"""

from __future__ import annotations

import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Annotated

from cyclopts import App, Parameter

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from talos_hcloud._cluster_errors import ClusterError
from talos_hcloud._cluster_models import ClusterConfig, WaitSettings
from talos_hcloud._input_resolution import (
    InputResolution,
    resolve_input,
    to_int,
    to_optional_seconds,
)
from talos_hcloud._provision_flow import deprovision, provision

app = App(help="Provision or wipe a Talos cluster on Hetzner Cloud.")
logger = logging.getLogger(__name__)

WIPE_ACTIONS = {"wipe", "--wipe"}


@dataclass(frozen=True, slots=True)
class RawClusterInputs:
    """Raw cluster inputs from CLI or defaults."""

    cluster_name: str | None = None
    endpoint_dns: str | None = None
    location: str | None = None
    control_plane_type: str | None = None
    control_plane_count: str | None = None
    worker_type: str | None = None
    worker_count: str | None = None
    talos_iso: str | None = None
    kubernetes_version: str | None = None
    work_dir: Path | None = None
    dns_timeout: str | None = None
    node_ready_timeout: str | None = None
    talos_api_timeout: str | None = None


def _opt(value: object | None) -> str | None:
    return None if value is None else str(value)


def resolve_cluster_config(
    raw: RawClusterInputs,
    env: dict[str, str] | None = None,
) -> ClusterConfig:
    """Resolve cluster configuration from CLI values, environment, and defaults.

    Examples
    --------
    >>> resolve_cluster_config(RawClusterInputs(cluster_name="test-cluster"), env={}).label
    'cluster=test-cluster'
    """

    def _resolved(value: str | Path | None, resolution: InputResolution) -> str | Path | None:
        return resolve_input(value, resolution, env=env)

    cluster_name = _resolved(
        raw.cluster_name,
        InputResolution(env_key="CLUSTER_NAME", default="divizend-ai-prod"),
    )
    endpoint_dns = _resolved(
        raw.endpoint_dns,
        InputResolution(env_key="CLUSTER_ENDPOINT_DNS", default="k8s-api.divizend.ai"),
    )
    location = _resolved(
        raw.location, InputResolution(env_key="HCLOUD_LOCATION", default="fsn1")
    )
    control_plane_type = _resolved(
        raw.control_plane_type,
        InputResolution(env_key="HCLOUD_CP_TYPE", default="cpx21"),
    )
    control_plane_count = _resolved(
        raw.control_plane_count,
        InputResolution(env_key="HCLOUD_CP_COUNT", default="1"),
    )
    worker_type = _resolved(
        raw.worker_type,
        InputResolution(env_key="HCLOUD_WORKER_TYPE", default="cpx21"),
    )
    worker_count = _resolved(
        raw.worker_count,
        InputResolution(env_key="HCLOUD_WORKER_COUNT", default="2"),
    )
    talos_iso = _resolved(
        raw.talos_iso, InputResolution(env_key="HCLOUD_TALOS_ISO", default="122630")
    )
    kubernetes_version = _resolved(
        raw.kubernetes_version, InputResolution(env_key="KUBERNETES_VERSION")
    )
    work_dir = _resolved(
        raw.work_dir,
        InputResolution(env_key="WORK_DIR", default=Path.cwd(), as_path=True),
    )
    dns_timeout = _resolved(raw.dns_timeout, InputResolution(env_key="DNS_TIMEOUT"))
    node_ready_timeout = _resolved(
        raw.node_ready_timeout, InputResolution(env_key="NODE_READY_TIMEOUT")
    )
    talos_api_timeout = _resolved(
        raw.talos_api_timeout, InputResolution(env_key="TALOS_API_TIMEOUT")
    )

    waits = WaitSettings(
        dns_timeout=to_optional_seconds(_opt(dns_timeout), name="DNS_TIMEOUT"),
        node_ready_timeout=to_optional_seconds(
            _opt(node_ready_timeout), name="NODE_READY_TIMEOUT"
        ),
        talos_api_timeout=to_optional_seconds(
            _opt(talos_api_timeout), name="TALOS_API_TIMEOUT"
        ),
    )
    return ClusterConfig(
        cluster_name=str(cluster_name),
        endpoint_dns=str(endpoint_dns),
        location=str(location),
        control_plane_type=str(control_plane_type),
        control_plane_count=to_int(
            _opt(control_plane_count), name="HCLOUD_CP_COUNT", minimum=1
        ),
        worker_type=str(worker_type),
        worker_count=to_int(_opt(worker_count), name="HCLOUD_WORKER_COUNT"),
        talos_iso=str(talos_iso),
        kubernetes_version=str(kubernetes_version) if kubernetes_version else None,
        work_dir=work_dir if isinstance(work_dir, Path) else Path(str(work_dir)),
        waits=waits,
    )


@app.default
def main(
    action: str | None = None,
    *,
    wipe: bool = False,
    yes: bool = False,
    verbose: bool = False,
    cluster_name: Annotated[str | None, Parameter(help="Cluster name and label value.")] = None,
    endpoint_dns: Annotated[str | None, Parameter(help="DNS name of the API endpoint.")] = None,
    location: Annotated[str | None, Parameter(help="Hetzner location.")] = None,
    control_plane_type: Annotated[str | None, Parameter(help="Control plane server type.")] = None,
    control_plane_count: Annotated[int | None, Parameter(help="Control plane nodes.")] = None,
    worker_type: Annotated[str | None, Parameter(help="Worker server type.")] = None,
    worker_count: Annotated[int | None, Parameter(help="Worker nodes.")] = None,
    talos_iso: Annotated[str | None, Parameter(help="Talos ISO name or ID.")] = None,
    kubernetes_version: Annotated[str | None, Parameter(help="Kubernetes release.")] = None,
    work_dir: Annotated[Path | None, Parameter(help="Directory for generated files.")] = None,
    dns_timeout: Annotated[float | None, Parameter(help="Seconds to wait for DNS.")] = None,
    node_ready_timeout: Annotated[
        float | None, Parameter(help="Seconds to wait for Ready nodes.")
    ] = None,
) -> int:
    """Provision the cluster, or deprovision it with ``wipe`` / ``--wipe``.

    Parameters
    ----------
    action
        Pass ``wipe`` to delete every resource labelled for the cluster.
    wipe
        Same as the ``wipe`` action.
    yes
        Skip the interactive prompts.
    verbose
        Log every external command.
    """

    logging.basicConfig(level=logging.DEBUG if verbose else logging.WARNING)
    if action is not None and action not in WIPE_ACTIONS:
        print(f"error: unknown action {action!r}; expected 'wipe'", file=sys.stderr)
        return 1

    raw_inputs = RawClusterInputs(
        cluster_name=cluster_name,
        endpoint_dns=endpoint_dns,
        location=location,
        control_plane_type=control_plane_type,
        control_plane_count=_opt(control_plane_count),
        worker_type=worker_type,
        worker_count=_opt(worker_count),
        talos_iso=talos_iso,
        kubernetes_version=kubernetes_version,
        work_dir=work_dir,
        dns_timeout=_opt(dns_timeout),
        node_ready_timeout=_opt(node_ready_timeout),
    )
    config = resolve_cluster_config(raw_inputs)
    logger.debug("Resolved cluster configuration: %s", config)

    try:
        if wipe or action in WIPE_ACTIONS:
            deprovision(config, assume_yes=yes)
        else:
            provision(config, assume_yes=yes)
    except ClusterError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\nerror: interrupted", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":  # pragma: no cover - CLI entrypoint
    raise SystemExit(app())
