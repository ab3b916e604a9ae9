"""Tests for CLI and environment input resolution."""

from __future__ import annotations

from pathlib import Path

import pytest

from talos_hcloud._input_resolution import (
    InputResolution,
    resolve_input,
    to_bool,
    to_int,
    to_optional_seconds,
)
from talos_hcloud.bootstrap_gitops import RawGitOpsInputs, resolve_gitops_config
from talos_hcloud.provision_cluster import RawClusterInputs, resolve_cluster_config


def test_resolve_input_prefers_cli_value() -> None:
    resolution = InputResolution(env_key="CLUSTER_NAME", default="fallback")
    assert resolve_input("cli", resolution, env={"CLUSTER_NAME": "env"}) == "cli"


def test_resolve_input_ignores_empty_environment_value() -> None:
    resolution = InputResolution(env_key="CLUSTER_NAME", default="fallback")
    assert resolve_input(None, resolution, env={"CLUSTER_NAME": ""}) == "fallback"


def test_resolve_input_required_raises() -> None:
    with pytest.raises(SystemExit, match="CLUSTER_NAME is required"):
        resolve_input(None, InputResolution(env_key="CLUSTER_NAME", required=True), env={})


def test_to_int_rejects_values_below_minimum() -> None:
    with pytest.raises(SystemExit, match="at least 1"):
        to_int("0", name="HCLOUD_CP_COUNT", minimum=1)


def test_to_int_rejects_garbage() -> None:
    with pytest.raises(SystemExit, match="must be an integer"):
        to_int("three", name="HCLOUD_WORKER_COUNT")


@pytest.mark.parametrize("value", [None, "", "0", "-5"])
def test_to_optional_seconds_treats_empty_and_non_positive_as_unbounded(
    value: str | None,
) -> None:
    assert to_optional_seconds(value, name="DNS_TIMEOUT") is None


def test_to_bool_falls_back_on_unknown_value() -> None:
    assert to_bool("maybe", default=True) is True
    assert to_bool("off", default=True) is False


def test_cluster_config_defaults(tmp_path: Path) -> None:
    config = resolve_cluster_config(RawClusterInputs(work_dir=tmp_path), env={})
    assert config.cluster_name == "divizend-ai-prod"
    assert config.endpoint_dns == "k8s-api.divizend.ai"
    assert config.location == "fsn1"
    assert config.control_plane_count == 1
    assert config.worker_count == 2
    assert config.talos_iso == "122630"
    assert config.kubernetes_version is None
    assert config.waits.dns_timeout is None
    assert config.waits.node_ready_timeout is None


def test_cluster_config_reads_environment() -> None:
    env = {
        "CLUSTER_NAME": "test-cluster",
        "HCLOUD_CP_COUNT": "3",
        "HCLOUD_WORKER_COUNT": "0",
        "WORK_DIR": "/srv/clusters",
        "DNS_TIMEOUT": "600",
        "TALOS_API_TIMEOUT": "120",
    }
    config = resolve_cluster_config(RawClusterInputs(), env=env)
    assert config.label == "cluster=test-cluster"
    assert config.control_plane_count == 3
    assert config.is_ha
    assert config.worker_count == 0
    assert config.work_dir == Path("/srv/clusters")
    assert config.waits.dns_timeout == 600.0
    assert config.waits.talos_api_timeout == 120.0


def test_cluster_config_cli_overrides_environment() -> None:
    config = resolve_cluster_config(
        RawClusterInputs(cluster_name="cli-cluster", worker_count="1"),
        env={"CLUSTER_NAME": "env-cluster", "HCLOUD_WORKER_COUNT": "4"},
    )
    assert config.cluster_name == "cli-cluster"
    assert config.worker_count == 1


def test_gitops_config_defaults() -> None:
    config = resolve_gitops_config(RawGitOpsInputs(), env={})
    assert config.repo_url == "https://github.com/divizend/seed"
    assert config.repo_path == "cluster-manifests"
    assert config.branch == "main"
    assert config.install_ccm is False
    assert config.kubeconfig is None


def test_gitops_config_enables_ccm_from_environment() -> None:
    config = resolve_gitops_config(
        RawGitOpsInputs(),
        env={"INSTALL_CCM": "true", "CLUSTER_NAME": "test-cluster", "KUBECONFIG": "/tmp/kc"},
    )
    assert config.install_ccm is True
    assert config.resolved_network_name == "test-cluster-net"
    assert config.kubeconfig == Path("/tmp/kc")


def test_gitops_cli_flag_beats_environment() -> None:
    config = resolve_gitops_config(
        RawGitOpsInputs(install_ccm=False), env={"INSTALL_CCM": "true"}
    )
    assert config.install_ccm is False
