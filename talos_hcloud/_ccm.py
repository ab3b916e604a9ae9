"""Install and remove the Hetzner cloud-controller-manager.

The nodes joined the cluster before any cloud integration existed, so each
one is stamped with its ``hcloud://<server-id>`` provider ID by hand before the
controller starts.
"""

from __future__ import annotations

import json
import logging
import os
import time
import tomllib
from pathlib import Path

import yaml

from talos_hcloud import _hcloud
from talos_hcloud._cluster_errors import CloudContextError, CommandError, ResourceError
from talos_hcloud._cluster_models import GitOpsConfig
from talos_hcloud._kubernetes import Kubectl

logger = logging.getLogger(__name__)

CCM_NAMESPACE = "kube-system"
CCM_SECRET_NAME = "hcloud"
DEFAULT_CLI_CONFIG = Path.home() / ".config" / "hcloud" / "cli.toml"


def _cli_config_path() -> Path:
    override = os.environ.get("HCLOUD_CONFIG")
    return Path(override) if override else DEFAULT_CLI_CONFIG


def hcloud_token(config_path: Path | None = None) -> str:
    """Return the API token of the operator's active ``hcloud`` session.

    ``HCLOUD_TOKEN`` in the environment takes precedence, as it does for the
    ``hcloud`` CLI itself.
    """

    env_token = os.environ.get("HCLOUD_TOKEN")
    if env_token:
        return env_token

    context = _hcloud.active_context()
    path = config_path or _cli_config_path()
    try:
        data = tomllib.loads(path.read_text(encoding="utf-8"))
    except (OSError, tomllib.TOMLDecodeError) as exc:
        msg = f"Cannot read hcloud CLI config {path}: {exc}"
        raise CloudContextError(msg) from exc
    for entry in data.get("contexts", []):
        if entry.get("name") == context and entry.get("token"):
            return str(entry["token"])
    msg = f"No token stored for hcloud context {context!r} in {path}"
    raise CloudContextError(msg)


def render_secret(token: str, network_id: int) -> str:
    """Render the credential secret consumed by the controller.

    Examples
    --------
    >>> "network: '7'" in render_secret("t", 7)
    True
    """

    manifest = {
        "apiVersion": "v1",
        "kind": "Secret",
        "metadata": {"name": CCM_SECRET_NAME, "namespace": CCM_NAMESPACE},
        "type": "Opaque",
        "stringData": {"token": token, "network": str(network_id)},
    }
    return yaml.safe_dump(manifest, sort_keys=False)


def stamp_provider_ids(kubectl: Kubectl) -> list[str]:
    """Set ``spec.providerID`` on nodes that lack it.

    Returns
    -------
    list[str]
        Names of the nodes that were patched.
    """

    patched = []
    for node in kubectl.list_nodes():
        name = (node.get("metadata") or {}).get("name")
        if not name:
            continue
        if (node.get("spec") or {}).get("providerID"):
            continue
        server_id = _hcloud.find_server_id(name)
        if server_id is None:
            logger.warning("No Hetzner server named %s; leaving providerID unset", name)
            continue
        patch = json.dumps({"spec": {"providerID": f"hcloud://{server_id}"}})
        kubectl.run("patch", "node", name, "-p", patch)
        print(f"Node {name} stamped with providerID hcloud://{server_id}.")
        patched.append(name)
    return patched


def install_ccm(config: GitOpsConfig, kubectl: Kubectl) -> None:
    """Store credentials, stamp provider IDs, and install the controller."""

    network_name = config.resolved_network_name
    if not network_name:
        msg = "A cluster name or network name is required to install the cloud-controller-manager"
        raise ResourceError(msg)

    print("Installing Hetzner cloud-controller-manager...")
    token = hcloud_token()
    network_id = _hcloud.find_network_id(network_name)
    kubectl.apply(render_secret(token, network_id))
    print(f"Secret '{CCM_SECRET_NAME}' stored in {CCM_NAMESPACE} for network {network_name}.")

    stamp_provider_ids(kubectl)
    kubectl.run("apply", "-f", config.ccm_manifest_url)
    print(f"Waiting {config.ccm_settle_seconds:g}s for the cloud-controller-manager to settle...")
    time.sleep(config.ccm_settle_seconds)
    print("Cloud-controller-manager installed.")


def remove_ccm(config: GitOpsConfig, kubectl: Kubectl) -> None:
    try:
        kubectl.run("delete", "-f", config.ccm_manifest_url, "--ignore-not-found=true")
    except CommandError as exc:
        logger.warning("Cloud-controller-manager manifest not deleted: %s", exc)
    kubectl.run(
        "delete",
        "secret",
        CCM_SECRET_NAME,
        "-n",
        CCM_NAMESPACE,
        "--ignore-not-found=true",
    )


__all__ = [
    "CCM_NAMESPACE",
    "CCM_SECRET_NAME",
    "hcloud_token",
    "install_ccm",
    "remove_ccm",
    "render_secret",
    "stamp_provider_ids",
]
