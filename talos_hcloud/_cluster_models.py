"""Data models shared by the cluster provisioning and GitOps flows.

The models hold resolved configuration only; every piece of runtime state lives
in the Hetzner Cloud and Kubernetes APIs and is re-read on each run.

Examples
--------
>>> config = ClusterConfig(cluster_name="test-cluster", endpoint_dns="k8s.example.test")
>>> config.label
'cluster=test-cluster'
>>> config.total_nodes
3
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

KUBERNETES_API_PORT = 6443
TALOS_API_PORT = 50000
KUBESPAN_PORT = 50001


@dataclass(frozen=True, slots=True)
class WaitSettings:
    """Polling cadence and optional deadlines for the blocking waits.

    Attributes
    ----------
    poll_interval
        Seconds between attempts for DNS, port, and API probes.
    node_poll_interval
        Seconds between node readiness checks.
    dns_timeout, node_ready_timeout, talos_api_timeout
        Optional deadlines in seconds; ``None`` waits until the operator
        interrupts.
    load_balancer_ip_timeout
        Deadline in seconds for the load balancer to report a public IPv4.

    Examples
    --------
    >>> WaitSettings().dns_timeout is None
    True
    """

    poll_interval: float = 5.0
    node_poll_interval: float = 10.0
    dns_timeout: float | None = None
    node_ready_timeout: float | None = None
    talos_api_timeout: float | None = None
    load_balancer_ip_timeout: float = 300.0


@dataclass(frozen=True, slots=True)
class ClusterConfig:
    """Resolved configuration for one Talos cluster on Hetzner Cloud.

    Attributes
    ----------
    cluster_name
        Unique name used as a prefix for every resource and as the label value.
    endpoint_dns
        DNS name that must resolve to the cluster's stable public IP.
    location
        Hetzner location for servers, floating IPs, and load balancers.
    network_zone
        Network zone for the private subnet.
    control_plane_type, worker_type
        Hetzner server types.
    control_plane_count, worker_count
        Number of servers per role. More than one control plane switches the
        stable endpoint from a floating IP to a load balancer.
    talos_iso
        ISO name or ID attached to every server before reset.
    placeholder_image
        Image used to create servers before the ISO takes over.
    network_ip_range
        CIDR for the private network and its single cloud subnet.
    load_balancer_type
        Hetzner load balancer type for HA control planes.
    kubernetes_version
        Kubernetes release passed to ``talosctl gen config``; fetched from the
        stable channel when ``None``.
    work_dir
        Directory holding the generated config directory and kubeconfig.
    waits
        Polling settings.
    """

    cluster_name: str
    endpoint_dns: str
    location: str = "fsn1"
    network_zone: str = "eu-central"
    control_plane_type: str = "cpx21"
    worker_type: str = "cpx21"
    control_plane_count: int = 1
    worker_count: int = 2
    talos_iso: str = "122630"
    placeholder_image: str = "ubuntu-22.04"
    network_ip_range: str = "10.0.0.0/16"
    load_balancer_type: str = "lb11"
    kubernetes_version: str | None = None
    work_dir: Path = field(default_factory=Path.cwd)
    waits: WaitSettings = field(default_factory=WaitSettings)

    @property
    def label(self) -> str:
        """Return the ``key=value`` label attached to every resource."""

        return f"cluster={self.cluster_name}"

    @property
    def network_name(self) -> str:
        return f"{self.cluster_name}-net"

    @property
    def firewall_name(self) -> str:
        return f"{self.cluster_name}-fw"

    @property
    def floating_ip_name(self) -> str:
        return f"{self.cluster_name}-vip"

    @property
    def load_balancer_name(self) -> str:
        return f"{self.cluster_name}-lb"

    @property
    def control_plane_names(self) -> list[str]:
        """Return control plane server names in creation order.

        Examples
        --------
        >>> ClusterConfig("c", "k.example.test", control_plane_count=2).control_plane_names
        ['c-cp-1', 'c-cp-2']
        """

        return [
            f"{self.cluster_name}-cp-{index}"
            for index in range(1, self.control_plane_count + 1)
        ]

    @property
    def worker_names(self) -> list[str]:
        return [
            f"{self.cluster_name}-worker-{index}"
            for index in range(1, self.worker_count + 1)
        ]

    @property
    def total_nodes(self) -> int:
        return self.control_plane_count + self.worker_count

    @property
    def is_ha(self) -> bool:
        """Return whether the control plane sits behind a load balancer."""

        return self.control_plane_count > 1

    @property
    def endpoint_url(self) -> str:
        return f"https://{self.endpoint_dns}:{KUBERNETES_API_PORT}"

    @property
    def config_dir(self) -> Path:
        return self.work_dir / f"clusterconfig_{self.cluster_name}"

    @property
    def talosconfig_path(self) -> Path:
        return self.config_dir / "talosconfig"

    @property
    def kubeconfig_path(self) -> Path:
        return self.work_dir / f"{self.cluster_name}.kubeconfig"


@dataclass(frozen=True, slots=True)
class ServerInfo:
    """Addresses and identity of a Hetzner server.

    Examples
    --------
    >>> ServerInfo(name="c-cp-1", server_id=42, public_ipv4="203.0.113.10").server_id
    42
    """

    name: str
    server_id: int
    public_ipv4: str
    private_ipv4: str | None = None


@dataclass(frozen=True, slots=True)
class HelmRelease:
    """A Helm chart installed by the GitOps bootstrap.

    Attributes
    ----------
    name
        Release name.
    chart
        Chart reference in ``repo/chart`` form.
    repo_name, repo_url
        Helm repository registered before installation.
    namespace
        Target namespace (created when missing).
    version
        Optional chart version pin.
    values
        ``--set`` overrides as ``key=value`` pairs.
    deployment
        Deployment that must report ``Available`` before continuing.
    """

    name: str
    chart: str
    repo_name: str
    repo_url: str
    namespace: str
    version: str | None = None
    values: tuple[str, ...] = ()
    deployment: str | None = None


@dataclass(frozen=True, slots=True)
class GitOpsConfig:
    """Resolved configuration for the GitOps bootstrap.

    Attributes
    ----------
    repo_url, repo_path, branch
        Git coordinates reconciled by the root Argo CD application.
    app_name
        Name of the root Application.
    argocd_namespace
        Namespace for Argo CD and the root Application.
    cert_manager_version
        Pinned cert-manager chart version.
    install_ccm
        Whether to install the Hetzner cloud-controller-manager first.
    cluster_name
        Cluster label value used to locate the private network for the CCM.
    network_name
        Explicit Hetzner network name for the CCM; defaults to
        ``<cluster_name>-net``.
    ccm_manifest_url
        Manifest applied to install the cloud-controller-manager.
    ccm_settle_seconds
        Delay after installing the CCM before dependent steps run.
    kubeconfig
        Optional kubeconfig passed to ``kubectl`` and ``helm``.
    waits
        Polling settings.
    """

    repo_url: str
    repo_path: str
    branch: str
    app_name: str = "root-cluster-config"
    argocd_namespace: str = "argocd"
    cert_manager_version: str = "v1.13.2"
    install_ccm: bool = False
    cluster_name: str | None = None
    network_name: str | None = None
    ccm_manifest_url: str = (
        "https://github.com/hetznercloud/hcloud-cloud-controller-manager/"
        "releases/latest/download/ccm-networks.yaml"
    )
    ccm_settle_seconds: float = 30.0
    kubeconfig: Path | None = None
    waits: WaitSettings = field(default_factory=WaitSettings)

    @property
    def resolved_network_name(self) -> str | None:
        """Return the Hetzner network name the CCM should route through.

        Examples
        --------
        >>> GitOpsConfig("https://git", "apps", "main", cluster_name="c").resolved_network_name
        'c-net'
        """

        if self.network_name:
            return self.network_name
        if self.cluster_name:
            return f"{self.cluster_name}-net"
        return None


__all__ = [
    "KUBERNETES_API_PORT",
    "KUBESPAN_PORT",
    "TALOS_API_PORT",
    "ClusterConfig",
    "GitOpsConfig",
    "HelmRelease",
    "ServerInfo",
    "WaitSettings",
]
