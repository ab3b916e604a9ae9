from __future__ import annotations

import sys
from pathlib import Path

import pytest

REPO_ROOT = Path(__file__).resolve().parents[2]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from talos_hcloud._cluster_models import (  # imported after sys.path mutation
    ClusterConfig,
    WaitSettings,
)
from talos_hcloud.tests._fakes import FakeCloud  # imported after sys.path mutation


@pytest.fixture
def fake_cloud(monkeypatch: pytest.MonkeyPatch) -> FakeCloud:
    """Route every external command through an in-memory fake."""

    cloud = FakeCloud()
    monkeypatch.setattr("talos_hcloud._commands.run_command", cloud)
    monkeypatch.setattr("talos_hcloud._commands.collect_missing", lambda _tools: [])
    monkeypatch.setattr("talos_hcloud._network.tcp_port_open", lambda *_args, **_kw: True)
    monkeypatch.setattr("talos_hcloud._ccm.time.sleep", lambda _seconds: None)
    return cloud


@pytest.fixture
def waits() -> WaitSettings:
    return WaitSettings(poll_interval=0, node_poll_interval=0, load_balancer_ip_timeout=5)


@pytest.fixture
def cluster_config(tmp_path: Path, waits: WaitSettings) -> ClusterConfig:
    return ClusterConfig(
        cluster_name="test-cluster",
        endpoint_dns="k8s.example.test",
        control_plane_count=1,
        worker_count=1,
        kubernetes_version="v1.31.2",
        work_dir=tmp_path,
        waits=waits,
    )
