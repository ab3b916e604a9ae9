"""Tests for the Hetzner cloud-controller-manager installer."""

from __future__ import annotations

import json
from dataclasses import replace
from pathlib import Path

import pytest
import yaml

from talos_hcloud import _ccm
from talos_hcloud._cluster_errors import CloudContextError, ResourceError
from talos_hcloud._cluster_models import GitOpsConfig
from talos_hcloud._gitops_flow import bootstrap
from talos_hcloud._kubernetes import Kubectl

CLI_CONFIG = """\
active_context = "test-context"

[[contexts]]
name = "other"
token = "other-token"

[[contexts]]
name = "test-context"
token = "test-token"
"""


@pytest.fixture
def cli_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    path = tmp_path / "cli.toml"
    path.write_text(CLI_CONFIG, encoding="utf-8")
    monkeypatch.setenv("HCLOUD_CONFIG", str(path))
    monkeypatch.delenv("HCLOUD_TOKEN", raising=False)
    return path


@pytest.fixture
def ccm_config() -> GitOpsConfig:
    return GitOpsConfig(
        repo_url="https://github.com/divizend/seed",
        repo_path="cluster-manifests",
        branch="main",
        install_ccm=True,
        cluster_name="test-cluster",
        ccm_settle_seconds=0,
    )


def test_token_read_for_active_context(fake_cloud, cli_config: Path) -> None:
    assert _ccm.hcloud_token() == "test-token"


def test_environment_token_wins(
    fake_cloud, cli_config: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("HCLOUD_TOKEN", "env-token")

    assert _ccm.hcloud_token() == "env-token"
    assert fake_cloud.calls == []


def test_token_missing_for_context(fake_cloud, cli_config: Path) -> None:
    fake_cloud.active_context = "unknown"

    with pytest.raises(CloudContextError, match="No token stored for hcloud context 'unknown'"):
        _ccm.hcloud_token()


def test_secret_manifest_carries_token_and_network() -> None:
    secret = yaml.safe_load(_ccm.render_secret("test-token", 42))

    assert secret["metadata"] == {"name": "hcloud", "namespace": "kube-system"}
    assert secret["stringData"] == {"token": "test-token", "network": "42"}


def test_stamp_provider_ids_patches_only_unset_nodes(fake_cloud) -> None:
    fake_cloud.auto_provider_ids = False
    cp = fake_cloud.add("server", "test-cluster-cp-1", "cluster=test-cluster")
    worker = fake_cloud.add("server", "test-cluster-worker-1", "cluster=test-cluster")
    fake_cloud.provider_ids["test-cluster-cp-1"] = f"hcloud://{cp.resource_id}"

    patched = _ccm.stamp_provider_ids(Kubectl())

    assert patched == ["test-cluster-worker-1"]
    (patch_call,) = [args for args in fake_cloud.commands("kubectl") if args[0] == "patch"]
    assert patch_call[:3] == ("patch", "node", "test-cluster-worker-1")
    assert json.loads(patch_call[-1]) == {
        "spec": {"providerID": f"hcloud://{worker.resource_id}"}
    }


def test_install_ccm_requires_network_name(fake_cloud, ccm_config: GitOpsConfig) -> None:
    with pytest.raises(ResourceError, match="network name"):
        _ccm.install_ccm(replace(ccm_config, cluster_name=None), Kubectl())


def test_bootstrap_installs_ccm_before_addons(
    fake_cloud, cli_config: Path, ccm_config: GitOpsConfig
) -> None:
    fake_cloud.auto_provider_ids = False
    network = fake_cloud.add("network", "test-cluster-net", "cluster=test-cluster")
    fake_cloud.add("server", "test-cluster-cp-1", "cluster=test-cluster")

    bootstrap(ccm_config, assume_yes=True)

    secret = yaml.safe_load(fake_cloud.stdin[0])
    assert secret["stringData"] == {"token": "test-token", "network": str(network.resource_id)}
    assert "test-cluster-cp-1" in fake_cloud.provider_ids

    ccm_apply = next(
        i
        for i, call in enumerate(fake_cloud.calls)
        if call[:4] == ("kubectl", "apply", "-f", ccm_config.ccm_manifest_url)
    )
    first_helm = next(i for i, call in enumerate(fake_cloud.calls) if call[0] == "helm")
    assert ccm_apply < first_helm
