"""Exception hierarchy for the Talos on Hetzner Cloud helpers.

Every failure surfaced by the provisioning, deprovisioning, and GitOps flows
derives from :class:`ClusterError` so the CLI entrypoints can catch a single
base error and translate it into exit status ``1``.

Examples
--------
>>> raise CommandError("hcloud server create failed: quota exceeded")
"""

from __future__ import annotations


class ClusterError(Exception):
    """Base error for cluster orchestration helpers.

    Parameters
    ----------
    message
        Human-readable error message describing the failure.

    Examples
    --------
    >>> raise ClusterError("unexpected cluster failure")
    """


class MissingToolError(ClusterError):
    """Raised when a required command-line tool is not on ``PATH``.

    Examples
    --------
    >>> raise MissingToolError("'talosctl' is not installed")
    """


class CloudContextError(ClusterError):
    """Raised when no active Hetzner Cloud CLI context is available."""


class ClusterConnectivityError(ClusterError):
    """Raised when the Kubernetes API cannot be reached with the kubeconfig."""


class CommandError(ClusterError):
    """Raised when an external command exits with a non-zero status.

    Examples
    --------
    >>> raise CommandError("Command 'kubectl' failed: connection refused")
    """


class ResourceError(ClusterError):
    """Raised when an external tool reports data in an unexpected shape."""


class ConfirmationDeclined(ClusterError):
    """Raised when the operator declines a destructive action."""


class WaitTimeoutError(ClusterError):
    """Raised when a bounded poll does not converge before its deadline.

    Examples
    --------
    >>> raise WaitTimeoutError("Timed out after 300s waiting for load balancer IP")
    """


__all__ = [
    "CloudContextError",
    "ClusterConnectivityError",
    "ClusterError",
    "CommandError",
    "ConfirmationDeclined",
    "MissingToolError",
    "ResourceError",
    "WaitTimeoutError",
]
