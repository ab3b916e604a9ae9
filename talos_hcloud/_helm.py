"""Helm release helpers used by the GitOps bootstrap."""

from __future__ import annotations

import logging
from pathlib import Path

from talos_hcloud import _commands
from talos_hcloud._cluster_errors import CommandError
from talos_hcloud._cluster_models import HelmRelease

logger = logging.getLogger(__name__)


def _kubeconfig_args(kubeconfig: Path | None) -> list[str]:
    return ["--kubeconfig", str(kubeconfig)] if kubeconfig else []


def add_repository(release: HelmRelease) -> None:
    _commands.run_command(
        "helm", "repo", "add", release.repo_name, release.repo_url, "--force-update"
    )
    _commands.run_command("helm", "repo", "update", release.repo_name)


def upgrade_install(release: HelmRelease, kubeconfig: Path | None = None) -> None:
    """Install or upgrade *release* and block until its resources are ready."""

    args = [
        "upgrade",
        "--install",
        release.name,
        release.chart,
        "--namespace",
        release.namespace,
        "--create-namespace",
    ]
    if release.version:
        args.extend(["--version", release.version])
    for value in release.values:
        args.extend(["--set", value])
    args.append("--wait")
    _commands.run_command("helm", *_kubeconfig_args(kubeconfig), *args)


def uninstall(release: HelmRelease, kubeconfig: Path | None = None) -> bool:
    """Uninstall *release*; a missing release is reported, not raised.

    Returns
    -------
    bool
        ``True`` when helm removed the release.
    """

    try:
        _commands.run_command(
            "helm",
            *_kubeconfig_args(kubeconfig),
            "uninstall",
            release.name,
            "--namespace",
            release.namespace,
        )
    except CommandError as exc:
        logger.warning("helm uninstall %s skipped: %s", release.name, exc)
        return False
    return True


__all__ = ["add_repository", "uninstall", "upgrade_install"]
