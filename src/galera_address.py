# Copyright 2024 Canonical Ltd.
# See LICENSE file for licensing details.

"""Addressing of Galera cluster members.

Members are StatefulSet pods, reachable through the governing headless service
at `<name>-<ordinal>.<service>.<namespace>.svc.<cluster-domain>`.
"""

import ipaddress
import logging
import socket
from typing import TYPE_CHECKING

from custom_exceptions import FormatError, NoReplicasError, PodIndexError, ResolutionError

if TYPE_CHECKING:
    from galera_types import ClusterMeta, ClusterSpec

logger = logging.getLogger(__name__)


def pod_name(meta: "ClusterMeta", ordinal: int) -> str:
    """Return the name of the pod at a given ordinal."""
    return f"{meta.name}-{ordinal}"


def pod_index(name: str) -> int:
    """Return the ordinal encoded in the trailing `-N` suffix of a pod name.

    Raises:
        PodIndexError: when the suffix is absent or not numeric.
    """
    suffix = name.rsplit("-", 1)[-1]
    if not (suffix.isascii() and suffix.isdigit()):
        raise PodIndexError(f"invalid Pod name: {name}")
    return int(suffix)


def service_fqdn(meta: "ClusterMeta") -> str:
    """Return the FQDN of the governing service."""
    return f"{meta.service}.{meta.namespace}.svc.{meta.cluster_domain}"


def pod_fqdn(meta: "ClusterMeta", ordinal: int) -> str:
    """Return the FQDN of the pod at a given ordinal."""
    return f"{pod_name(meta, ordinal)}.{service_fqdn(meta)}"


def cluster_address(spec: "ClusterSpec", meta: "ClusterMeta") -> str:
    """Return the `gcomm://` membership URI of the declared topology.

    Every ordinal in `0..replicas-1` is listed in ascending order, whether or
    not the member is currently healthy.

    Raises:
        NoReplicasError: when the cluster declares zero replicas.
    """
    if spec.replicas == 0:
        raise NoReplicasError()

    hosts = [pod_fqdn(meta, ordinal) for ordinal in range(spec.replicas)]
    return "gcomm://" + ",".join(hosts)


def node_address(name: str, meta: "ClusterMeta") -> str:
    """Resolve the IPv4 address of a member from its pod name.

    Only the first address returned by DNS is used.

    Raises:
        PodIndexError: when the ordinal cannot be derived from the pod name.
        ResolutionError: when the lookup fails or returns no IPv4 address.
    """
    fqdn = pod_fqdn(meta, pod_index(name))
    try:
        addresses = socket.getaddrinfo(fqdn, None, socket.AF_INET, socket.SOCK_STREAM)
    except OSError as e:
        logger.warning(f"Unable to resolve {fqdn=}: {e}")
        raise ResolutionError(f"error resolving {fqdn}: {e}")

    if not addresses:
        raise ResolutionError(f"no IPv4 address found for {fqdn}")

    address = addresses[0][4][0]
    logger.debug(f"Resolved {fqdn=} to {address=}")
    return address


def _parse_ip(ip: str):
    try:
        return ipaddress.ip_address(ip)
    except ValueError:
        raise FormatError(f"error in parsing ip address: {ip}")


def wrap_ip_address(ip: str) -> str:
    """Return an address usable in `host:port` form, bracketing IPv6 literals."""
    if _parse_ip(ip).version == 6:
        return f"[{ip}]"
    return ip


def listen_address(ip: str) -> str:
    """Return the wildcard address of the same family as `ip`."""
    if _parse_ip(ip).version == 6:
        return "::"
    return "0.0.0.0"  # noqa: S104
