"""Bootstrap a running cluster for GitOps management with Argo CD.

Installs an ingress controller, cert-manager and Argo CD via Helm, optionally
preceded by the Hetzner cloud-controller-manager, then hands the cluster to a
root "app of apps" Application that reconciles a Git repository path.
"""

from __future__ import annotations

import base64
import binascii
import logging

import yaml

from talos_hcloud import _ccm, _commands, _helm, _hcloud
from talos_hcloud._cluster_errors import CommandError
from talos_hcloud._cluster_models import GitOpsConfig, HelmRelease
from talos_hcloud._kubernetes import Kubectl
from talos_hcloud._polling import print_dot, wait_until
from talos_hcloud._prompts import Reader, confirm, pause

logger = logging.getLogger(__name__)

REQUIRED_TOOLS: tuple[str, ...] = ("kubectl", "helm")
IN_CLUSTER_SERVER = "https://kubernetes.default.svc"
SEPARATOR = "-" * 64


def ingress_release() -> HelmRelease:
    return HelmRelease(
        name="ingress-nginx",
        chart="ingress-nginx/ingress-nginx",
        repo_name="ingress-nginx",
        repo_url="https://kubernetes.github.io/ingress-nginx",
        namespace="ingress-nginx",
    )


def cert_manager_release(config: GitOpsConfig) -> HelmRelease:
    return HelmRelease(
        name="cert-manager",
        chart="jetstack/cert-manager",
        repo_name="jetstack",
        repo_url="https://charts.jetstack.io",
        namespace="cert-manager",
        version=config.cert_manager_version,
        values=("installCRDs=true",),
        deployment="cert-manager-webhook",
    )


def argocd_release(config: GitOpsConfig) -> HelmRelease:
    return HelmRelease(
        name="argocd",
        chart="argo/argo-cd",
        repo_name="argo",
        repo_url="https://argoproj.github.io/argo-helm",
        namespace=config.argocd_namespace,
        deployment="argocd-server",
    )


def releases(config: GitOpsConfig) -> list[HelmRelease]:
    """Return the add-ons in installation order."""

    return [ingress_release(), cert_manager_release(config), argocd_release(config)]


def render_root_application(config: GitOpsConfig) -> str:
    """Render the root Argo CD Application manifest.

    Examples
    --------
    >>> manifest = render_root_application(GitOpsConfig("https://github.com/o/r", "apps", "main"))
    >>> "selfHeal: true" in manifest
    True
    """

    application = {
        "apiVersion": "argoproj.io/v1alpha1",
        "kind": "Application",
        "metadata": {"name": config.app_name, "namespace": config.argocd_namespace},
        "spec": {
            "project": "default",
            "source": {
                "repoURL": config.repo_url,
                "path": config.repo_path,
                "targetRevision": config.branch,
                "directory": {"recurse": True},
            },
            "destination": {
                "server": IN_CLUSTER_SERVER,
                "namespace": config.argocd_namespace,
            },
            "syncPolicy": {
                "automated": {"prune": True, "selfHeal": True},
                "syncOptions": ["CreateNamespace=true"],
            },
        },
    }
    return yaml.safe_dump(application, sort_keys=False)


def preflight(config: GitOpsConfig, kubectl: Kubectl) -> None:
    print("Checking for required tools...")
    tools = (*REQUIRED_TOOLS, "hcloud") if config.install_ccm else REQUIRED_TOOLS
    _commands.ensure_tools(tools)
    print("Verifying Kubernetes cluster connectivity...")
    kubectl.ensure_reachable()
    if config.install_ccm:
        _hcloud.active_context()
    print("All prerequisites met. Connected to cluster.")


def _ingress_ip(kubectl: Kubectl, release: HelmRelease) -> str:
    try:
        return kubectl.run(
            "get",
            "svc",
            f"{release.name}-controller",
            "-n",
            release.namespace,
            "-o",
            "jsonpath={.status.loadBalancer.ingress[0].ip}",
        ).strip()
    except CommandError:
        return ""


def install_release(config: GitOpsConfig, kubectl: Kubectl, release: HelmRelease) -> None:
    """Install *release* and wait for its gating deployment when it has one."""

    _helm.add_repository(release)
    _helm.upgrade_install(release, config.kubeconfig)
    if release.deployment:
        print(f"Waiting for {release.deployment} to become available...")
        kubectl.wait_available(release.deployment, release.namespace)
    print(f"{release.name} is installed and ready.")


def install_ingress(config: GitOpsConfig, kubectl: Kubectl) -> str:
    """Install the ingress controller and return its public IP."""

    release = ingress_release()
    install_release(config, kubectl, release)
    print("Waiting for the ingress controller public IP...")
    address = wait_until(
        lambda: _ingress_ip(kubectl, release),
        description="ingress controller public IP",
        interval=config.waits.poll_interval,
        timeout=config.waits.load_balancer_ip_timeout,
        on_pending=print_dot,
    )
    print()
    print(f"Ingress controller is exposed at public IP: {address}")
    return address


def apply_root_application(config: GitOpsConfig, kubectl: Kubectl) -> None:
    kubectl.apply(render_root_application(config), namespace=config.argocd_namespace)
    print(
        f"Root application '{config.app_name}' created. Argo CD will now synchronise "
        f"the cluster with {config.repo_url}."
    )


def admin_password(config: GitOpsConfig, kubectl: Kubectl) -> str | None:
    """Return the Argo CD initial admin password, if the secret still exists."""

    try:
        encoded = kubectl.run(
            "-n",
            config.argocd_namespace,
            "get",
            "secret",
            "argocd-initial-admin-secret",
            "-o",
            "jsonpath={.data.password}",
        ).strip()
    except CommandError as exc:
        logger.warning("Argo CD initial admin secret unavailable: %s", exc)
        return None
    try:
        return base64.b64decode(encoded).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        logger.warning("Argo CD initial admin secret is not valid base64")
        return None


def _print_next_steps(config: GitOpsConfig, kubectl: Kubectl) -> None:
    print()
    print(SEPARATOR)
    print("Your cluster is now bootstrapped for GitOps management!")
    print(SEPARATOR)
    password = admin_password(config, kubectl)
    if password:
        print(f"Your Argo CD admin password is: {password}")
    print("To access the Argo CD UI, run:")
    print(f"kubectl port-forward svc/argocd-server -n {config.argocd_namespace} 8080:443")
    print("Then open https://localhost:8080 and log in as 'admin'.")
    print(
        "Define further cluster components as Argo CD Applications inside the "
        f"'{config.repo_path}' directory of your repository."
    )


def bootstrap(
    config: GitOpsConfig,
    *,
    reader: Reader = input,
    assume_yes: bool = False,
) -> None:
    """Run the GitOps bootstrap sequence."""

    kubectl = Kubectl(config.kubeconfig)
    print("Starting Kubernetes GitOps bootstrap...")
    print(SEPARATOR)
    preflight(config, kubectl)
    if not assume_yes:
        pause("Press [Enter] to bootstrap the cluster, or [Ctrl+C] to abort...", reader)

    if config.install_ccm:
        _ccm.install_ccm(config, kubectl)

    install_ingress(config, kubectl)
    install_release(config, kubectl, cert_manager_release(config))
    install_release(config, kubectl, argocd_release(config))

    print(f"This will create a root Application in Argo CD pointing to {config.repo_url}.")
    if not assume_yes:
        pause("Press [Enter] to apply the root application manifest...", reader)
    apply_root_application(config, kubectl)
    _print_next_steps(config, kubectl)


def wipe(
    config: GitOpsConfig,
    *,
    reader: Reader = input,
    assume_yes: bool = False,
) -> None:
    """Remove everything :func:`bootstrap` installed, ingress first."""

    kubectl = Kubectl(config.kubeconfig)
    print("Wiping all bootstrapped GitOps components from the cluster...")
    print("This will delete Argo CD, cert-manager, ingress-nginx, and related resources.")
    if not assume_yes:
        confirm("Are you sure you want to continue?", reader)

    print("Deleting the root Argo CD application...")
    try:
        kubectl.run(
            "delete",
            "application",
            config.app_name,
            "-n",
            config.argocd_namespace,
            "--ignore-not-found=true",
        )
    except CommandError as exc:
        # The Application CRD is gone once Argo CD was uninstalled.
        logger.warning("Root application not deleted: %s", exc)

    print("Uninstalling Helm charts...")
    for release in releases(config):
        _helm.uninstall(release, config.kubeconfig)

    print("Removing the cloud-controller-manager...")
    _ccm.remove_ccm(config, kubectl)

    print("Deleting namespaces...")
    for namespace in ("ingress-nginx", "cert-manager", config.argocd_namespace):
        kubectl.run("delete", "namespace", namespace, "--ignore-not-found=true")
    print("GitOps components have been wiped from the cluster.")


__all__ = [
    "REQUIRED_TOOLS",
    "admin_password",
    "apply_root_application",
    "argocd_release",
    "bootstrap",
    "cert_manager_release",
    "ingress_release",
    "install_ingress",
    "install_release",
    "preflight",
    "releases",
    "render_root_application",
    "wipe",
]
