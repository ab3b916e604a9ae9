#!/usr/bin/env -S uv run python
# /// script
# requires-python = ">=3.12"
# dependencies = ["cyclopts>=2.9", "plumbum", "pyyaml"]
# ///
"""Bootstrap a Kubernetes cluster for GitOps management with Argo CD.

This script:
- optionally installs the Hetzner cloud-controller-manager;
- installs ingress-nginx, cert-manager and Argo CD via Helm;
- creates the root Argo CD Application pointing at a Git repository path; and
- with ``wipe`` / ``--wipe``, removes all of the above.
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
from talos_hcloud._cluster_models import GitOpsConfig
from talos_hcloud._gitops_flow import bootstrap, wipe as wipe_gitops
from talos_hcloud._input_resolution import InputResolution, resolve_input, to_bool

app = App(help="Bootstrap or wipe the GitOps toolchain on a running cluster.")
logger = logging.getLogger(__name__)

WIPE_ACTIONS = {"wipe", "--wipe"}


@dataclass(frozen=True, slots=True)
class RawGitOpsInputs:
    """Raw GitOps inputs from CLI or defaults."""

    repo_url: str | None = None
    repo_path: str | None = None
    branch: str | None = None
    install_ccm: bool | str | None = None
    cluster_name: str | None = None
    network_name: str | None = None
    kubeconfig: Path | None = None


def resolve_gitops_config(
    raw: RawGitOpsInputs,
    env: dict[str, str] | None = None,
) -> GitOpsConfig:
    """Resolve GitOps configuration from CLI values, environment, and defaults."""

    def _resolved(value: str | Path | None, resolution: InputResolution) -> str | Path | None:
        return resolve_input(value, resolution, env=env)

    repo_url = _resolved(
        raw.repo_url,
        InputResolution(
            env_key="GIT_REPO_URL",
            default="https://github.com/divizend/seed",
        ),
    )
    repo_path = _resolved(
        raw.repo_path, InputResolution(env_key="GIT_REPO_PATH", default="cluster-manifests")
    )
    branch = _resolved(raw.branch, InputResolution(env_key="GIT_REPO_BRANCH", default="main"))
    install_ccm_raw = (
        raw.install_ccm
        if isinstance(raw.install_ccm, bool)
        else _resolved(raw.install_ccm, InputResolution(env_key="INSTALL_CCM"))
    )
    cluster_name = _resolved(raw.cluster_name, InputResolution(env_key="CLUSTER_NAME"))
    network_name = _resolved(raw.network_name, InputResolution(env_key="HCLOUD_NETWORK"))
    kubeconfig = _resolved(
        raw.kubeconfig, InputResolution(env_key="KUBECONFIG", as_path=True)
    )

    return GitOpsConfig(
        repo_url=str(repo_url),
        repo_path=str(repo_path),
        branch=str(branch),
        install_ccm=to_bool(install_ccm_raw, default=False),  # type: ignore[arg-type]
        cluster_name=str(cluster_name) if cluster_name else None,
        network_name=str(network_name) if network_name else None,
        kubeconfig=Path(kubeconfig) if kubeconfig else None,
    )


@app.default
def main(
    action: str | None = None,
    *,
    wipe: bool = False,
    yes: bool = False,
    verbose: bool = False,
    repo_url: Annotated[str | None, Parameter(help="Git repository URL.")] = None,
    repo_path: Annotated[str | None, Parameter(help="Path reconciled by Argo CD.")] = None,
    branch: Annotated[str | None, Parameter(help="Git branch.")] = None,
    with_ccm: Annotated[bool | None, Parameter(negative="")] = None,
    cluster_name: Annotated[str | None, Parameter(help="Cluster name for the CCM.")] = None,
    network_name: Annotated[str | None, Parameter(help="Hetzner network for the CCM.")] = None,
    kubeconfig: Annotated[Path | None, Parameter(help="Kubeconfig path.")] = None,
) -> int:
    """Bootstrap GitOps on the current cluster, or remove it with ``wipe``.

    Parameters
    ----------
    action
        Pass ``wipe`` to uninstall everything the bootstrap created.
    wipe
        Same as the ``wipe`` action.
    yes
        Skip the interactive prompts.
    verbose
        Log every external command.
    with_ccm
        Install the Hetzner cloud-controller-manager before the add-ons.
    """

    logging.basicConfig(level=logging.DEBUG if verbose else logging.WARNING)
    if action is not None and action not in WIPE_ACTIONS:
        print(f"error: unknown action {action!r}; expected 'wipe'", file=sys.stderr)
        return 1

    config = resolve_gitops_config(
        RawGitOpsInputs(
            repo_url=repo_url,
            repo_path=repo_path,
            branch=branch,
            install_ccm=with_ccm,
            cluster_name=cluster_name,
            network_name=network_name,
            kubeconfig=kubeconfig,
        )
    )
    logger.debug("Resolved GitOps configuration: %s", config)

    try:
        if wipe or action in WIPE_ACTIONS:
            wipe_gitops(config, assume_yes=yes)
        else:
            bootstrap(config, assume_yes=yes)
    except ClusterError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\nerror: interrupted", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":  # pragma: no cover - CLI entrypoint
    raise SystemExit(app())
