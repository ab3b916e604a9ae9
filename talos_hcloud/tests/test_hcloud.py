"""Tests for the create-or-adopt Hetzner Cloud helpers."""

from __future__ import annotations

from dataclasses import replace

import pytest

from talos_hcloud import _hcloud
from talos_hcloud._cluster_errors import CloudContextError, ResourceError, WaitTimeoutError


def test_active_context_requires_a_context(fake_cloud) -> None:
    fake_cloud.active_context = None
    with pytest.raises(CloudContextError, match="hcloud context create"):
        _hcloud.active_context()


def test_ensure_network_creates_labelled_network_with_subnet(fake_cloud, cluster_config) -> None:
    assert _hcloud.ensure_network(cluster_config) is True

    create, subnet = fake_cloud.commands("hcloud")[1:]
    assert create[:2] == ("network", "create")
    assert ("--label", "cluster=test-cluster") == create[-2:]
    assert subnet == (
        "network",
        "add-subnet",
        "test-cluster-net",
        "--network-zone",
        "eu-central",
        "--type",
        "cloud",
        "--ip-range",
        "10.0.0.0/16",
    )


def test_ensure_network_adopts_existing(fake_cloud, cluster_config) -> None:
    fake_cloud.add("network", "test-cluster-net", "cluster=test-cluster")

    assert _hcloud.ensure_network(cluster_config) is False
    assert fake_cloud.creates() == []


def test_ensure_firewall_opens_api_ports(fake_cloud, cluster_config) -> None:
    _hcloud.ensure_firewall(cluster_config)

    rules = [args for args in fake_cloud.commands("hcloud") if args[1] == "add-rule"]
    ports = [(args[args.index("--protocol") + 1], args[args.index("--port") + 1]) for args in rules]
    assert ports == [("tcp", "6443"), ("tcp", "50000"), ("udp", "50001")]
    assert fake_cloud.get("firewall", "test-cluster-fw").labels == {"cluster": "test-cluster"}


def test_every_created_resource_carries_the_cluster_label(fake_cloud, cluster_config) -> None:
    _hcloud.ensure_network(cluster_config)
    _hcloud.ensure_firewall(cluster_config)
    _hcloud.ensure_server(cluster_config, "test-cluster-cp-1", "cpx21")
    _hcloud.ensure_floating_ip(cluster_config, "test-cluster-cp-1")
    _hcloud.ensure_load_balancer(cluster_config)

    assert len(fake_cloud.creates()) == 5
    for args in fake_cloud.creates():
        assert args[args.index("--label") + 1] == "cluster=test-cluster"


def test_boot_from_iso_runs_for_adopted_servers(fake_cloud, cluster_config) -> None:
    fake_cloud.add("server", "test-cluster-cp-1", "cluster=test-cluster")

    assert _hcloud.ensure_server(cluster_config, "test-cluster-cp-1", "cpx21") is False
    _hcloud.boot_from_iso(cluster_config, "test-cluster-cp-1")

    assert fake_cloud.commands("hcloud")[-2:] == [
        ("server", "attach-iso", "test-cluster-cp-1", "122630"),
        ("server", "reset", "test-cluster-cp-1"),
    ]


def test_server_info_reads_addresses(fake_cloud) -> None:
    server = fake_cloud.add("server", "test-cluster-cp-1", "cluster=test-cluster")

    info = _hcloud.server_info("test-cluster-cp-1")

    assert info.server_id == server.resource_id
    assert info.public_ipv4 == "203.0.113.1"
    assert info.private_ipv4 == "10.0.0.1"


def test_server_info_missing_server(fake_cloud) -> None:
    with pytest.raises(ResourceError, match="not found"):
        _hcloud.server_info("ghost")


def test_floating_ip_adopted_is_reassigned(fake_cloud, cluster_config) -> None:
    fake_cloud.add("floating-ip", "test-cluster-vip", "cluster=test-cluster", ip="198.51.100.7")

    address = _hcloud.ensure_floating_ip(cluster_config, "test-cluster-cp-1")

    assert address == "198.51.100.7"
    assert fake_cloud.creates() == []
    assert fake_cloud.commands("hcloud")[-1] == (
        "floating-ip",
        "assign",
        "test-cluster-vip",
        "test-cluster-cp-1",
    )


def test_floating_ip_created_reads_wrapped_payload(fake_cloud, cluster_config) -> None:
    address = _hcloud.ensure_floating_ip(cluster_config, "test-cluster-cp-1")

    assert address == fake_cloud.get("floating-ip", "test-cluster-vip").payload["ip"]


def test_load_balancer_forwards_both_api_ports(fake_cloud, cluster_config) -> None:
    _hcloud.ensure_load_balancer(cluster_config)

    services = [args for args in fake_cloud.commands("hcloud") if args[1] == "add-service"]
    assert [args[args.index("--listen-port") + 1] for args in services] == ["6443", "50000"]
    attach = ("load-balancer", "attach-to-network", "test-cluster-lb", "--network", "test-cluster-net")
    assert attach in fake_cloud.commands("hcloud")


def test_load_balancer_target_registration_retries_until_listed(
    fake_cloud, cluster_config
) -> None:
    _hcloud.ensure_load_balancer(cluster_config)
    fake_cloud.add("server", "test-cluster-cp-1", "cluster=test-cluster")
    server = _hcloud.server_info("test-cluster-cp-1")
    fake_cloud.lb_add_target_failures = 2
    fake_cloud.lb_registration_delay = 1

    _hcloud.register_load_balancer_target(cluster_config, server)

    add_targets = [args for args in fake_cloud.commands("hcloud") if args[1] == "add-target"]
    assert len(add_targets) == 4
    assert add_targets[0][-1] == "--use-private-ip"
    balancer = fake_cloud.get("load-balancer", "test-cluster-lb")
    assert balancer.payload["targets"] == [
        {"type": "server", "server": {"id": server.server_id}}
    ]


def test_load_balancer_target_already_registered_is_not_re_added(
    fake_cloud, cluster_config
) -> None:
    _hcloud.ensure_load_balancer(cluster_config)
    fake_cloud.add("server", "test-cluster-cp-1", "cluster=test-cluster")
    server = _hcloud.server_info("test-cluster-cp-1")
    _hcloud.register_load_balancer_target(cluster_config, server)
    calls_before = len(fake_cloud.calls)

    _hcloud.register_load_balancer_target(cluster_config, server)

    assert [call[2] for call in fake_cloud.calls[calls_before:]] == ["describe"]


def test_load_balancer_ip_times_out(fake_cloud, cluster_config) -> None:
    fake_cloud.add("load-balancer", "test-cluster-lb", "cluster=test-cluster", targets=[])
    waits = replace(cluster_config.waits, load_balancer_ip_timeout=0)
    config = replace(cluster_config, waits=waits)

    with pytest.raises(WaitTimeoutError, match="public IPv4"):
        _hcloud.load_balancer_ip(config)


def test_list_labelled_filters_by_label(fake_cloud) -> None:
    fake_cloud.add("server", "test-cluster-cp-1", "cluster=test-cluster")
    fake_cloud.add("server", "other-cp-1", "cluster=other")

    assert _hcloud.list_labelled("server", "cluster=test-cluster") == ["test-cluster-cp-1"]
