# Copyright 2024 Canonical Ltd.
# See LICENSE file for licensing details.

"""Rendering of the per-member Galera configuration file."""

import logging
from typing import TYPE_CHECKING, Optional

import jinja2

from constants import (
    GALERA_CLUSTER_NAME,
    GALERA_GCOMM_PORT,
    GALERA_IST_PORT,
    GALERA_SST_PORT,
    ROOT_USERNAME,
)
from custom_exceptions import GaleraNotEnabledError, NoReplicasError
from galera_address import cluster_address, listen_address, node_address, wrap_ip_address
from galera_options import (
    WSREP_OPT_GMCAST_LISTEN_ADDR,
    WSREP_OPT_IST_RECV_ADDR,
    KVOption,
    ProviderOptions,
)
from galera_types import SSTMethod

if TYPE_CHECKING:
    from galera_types import ClusterMeta, ClusterSpec

logger = logging.getLogger(__name__)

WSREP_NODE_ADDRESS_KEY = "wsrep_node_address"

GALERA_CONFIG_TEMPLATE = """\
[mariadb]
bind_address=*
default_storage_engine=InnoDB
binlog_format=row
innodb_autoinc_lock_mode=2

# Cluster
wsrep_on=ON
wsrep_cluster_address="{{ cluster_address }}"
wsrep_cluster_name={{ cluster_name }}
wsrep_slave_threads={{ threads }}

# Node
{{ node_address_key }}="{{ node_address }}"
wsrep_node_name="{{ pod_name }}"

# Provider
wsrep_provider={{ galera_lib_path }}
{{ provider_options }}

# SST
wsrep_sst_method="{{ sst }}"
{%- if sst_auth %}
wsrep_sst_auth="{{ root_user }}:{{ root_password }}"
{%- endif %}
wsrep_sst_receive_address="{{ wrapped_node_address }}:{{ sst_port }}"
"""

BOOTSTRAP_MARKER = b'[galera]\nwsrep_new_cluster="ON"\n'


def render_galera_config(
    spec: "ClusterSpec",
    meta: "ClusterMeta",
    pod_name: str,
    root_password: str,
    node_ip: Optional[str] = None,
) -> bytes:
    """Render the Galera configuration file of a cluster member.

    The output only depends on the arguments, identical inputs render
    identical bytes.

    Args:
        spec: declared cluster state
        meta: naming of the workload running the members
        pod_name: name of the member pod the file is rendered for
        root_password: password of the root user, embedded for SST methods
            that log into the donor
        node_ip: address of the member, resolved through DNS when absent

    Raises:
        GaleraNotEnabledError: when Galera is disabled.
        NoReplicasError: when the cluster declares zero replicas.
        SSTFormatError: on an unknown SST method.
        ResolutionError: when the member address cannot be resolved.
    """
    if not spec.galera_enabled:
        raise GaleraNotEnabledError()
    if spec.replicas < 1:
        raise NoReplicasError()

    address = cluster_address(spec, meta)
    sst = SSTMethod.mariadb_format(spec.sst_method)
    sst_auth = SSTMethod.from_value(spec.sst_method).requires_auth

    if node_ip is None:
        node_ip = node_address(pod_name, meta)
    wrapped_node_ip = wrap_ip_address(node_ip)
    gcomm_listen_address = wrap_ip_address(listen_address(node_ip))

    provider_options = ProviderOptions({
        WSREP_OPT_GMCAST_LISTEN_ADDR: f"tcp://{gcomm_listen_address}:{GALERA_GCOMM_PORT}",
        WSREP_OPT_IST_RECV_ADDR: f"{wrapped_node_ip}:{GALERA_IST_PORT}",
    })
    provider_options.update(spec.provider_options)
    provider_options_directive = KVOption(
        "wsrep_provider_options", provider_options.marshal(), quoted=True
    )

    env = jinja2.Environment(
        undefined=jinja2.StrictUndefined,
        keep_trailing_newline=True,
        autoescape=False,  # noqa: S701
    )
    template = env.from_string(GALERA_CONFIG_TEMPLATE)
    rendered = template.render(
        cluster_address=address,
        cluster_name=GALERA_CLUSTER_NAME,
        threads=spec.replica_threads,
        node_address_key=WSREP_NODE_ADDRESS_KEY,
        node_address=node_ip,
        pod_name=pod_name,
        galera_lib_path=spec.galera_lib_path,
        provider_options=provider_options_directive.marshal(),
        sst=sst,
        sst_auth=sst_auth,
        root_user=ROOT_USERNAME,
        root_password=root_password,
        wrapped_node_address=wrapped_node_ip,
        sst_port=GALERA_SST_PORT,
    )
    logger.debug(f"Rendered Galera config for {pod_name=} with {sst=}")
    return rendered.encode("utf-8")


def bootstrap_marker() -> bytes:
    """Return the file instructing a member to seed a new cluster."""
    return BOOTSTRAP_MARKER
