# Copyright 2024 Canonical Ltd.
# See LICENSE file for licensing details.

"""Targeting of the one-shot Galera recovery job.

The recovery job runs `mariadbd --wsrep-recover` against the persistent state
of a single member. It must mount exactly the volumes the member itself mounts
and, when pinned, run on the node holding the member's local storage.
"""

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Dict, List, Optional

from lightkube.models.core_v1 import (
    PersistentVolumeClaimVolumeSource,
    Volume,
    VolumeMount,
)
from pydantic import BaseModel, ConfigDict

from constants import (
    GALERA_CONFIG_MOUNT_PATH,
    GALERA_CONFIG_VOLUME,
    MARIADB_DATA_DIR,
    NODE_SELECTOR_HOSTNAME_KEY,
    STORAGE_VOLUME,
)
from custom_exceptions import MemberVolumeNotFoundError, PodNotScheduledError

if TYPE_CHECKING:
    from galera_types import ClusterMeta, RecoveryTarget

logger = logging.getLogger(__name__)


class VolumeLayout(BaseModel):
    """Volume layout shared by the members and their recovery jobs."""

    model_config = ConfigDict(frozen=True)

    storage_volume: str = STORAGE_VOLUME
    config_volume: str = GALERA_CONFIG_VOLUME
    storage_mount_path: str = MARIADB_DATA_DIR
    config_mount_path: str = GALERA_CONFIG_MOUNT_PATH
    reuse_storage_volume: bool = False
    storage_sub_path: Optional[str] = STORAGE_VOLUME
    config_sub_path: Optional[str] = GALERA_CONFIG_VOLUME


@dataclass(frozen=True)
class RecoveryJobPlan:
    """Node pinning and volumes of a recovery job."""

    pod_name: str
    ordinal: int
    node_selector: Optional[Dict[str, str]]
    volumes: List[Volume]
    volume_mounts: List[VolumeMount]


def member_volume_layout(mounts: List[VolumeMount]) -> VolumeLayout:
    """Return the volume layout of a member from the mounts of its database container.

    The data directory and the Galera config directory either come from two
    volumes, or from sub-paths of a single one.

    Raises:
        MemberVolumeNotFoundError: when either directory is not mounted.
    """
    by_path = {mount.mountPath: mount for mount in mounts}
    storage = by_path.get(MARIADB_DATA_DIR)
    config = by_path.get(GALERA_CONFIG_MOUNT_PATH)
    for path, mount in ((MARIADB_DATA_DIR, storage), (GALERA_CONFIG_MOUNT_PATH, config)):
        if mount is None:
            raise MemberVolumeNotFoundError(f"no volume mounted at {path}")

    if storage.name == config.name:
        return VolumeLayout(
            storage_volume=storage.name,
            config_volume=config.name,
            reuse_storage_volume=True,
            storage_sub_path=storage.subPath,
            config_sub_path=config.subPath,
        )
    return VolumeLayout(storage_volume=storage.name, config_volume=config.name)


def claim_name(volume: str, meta: "ClusterMeta", ordinal: int) -> str:
    """Return the name of the claim a StatefulSet creates for a volume template."""
    return f"{volume}-{meta.name}-{ordinal}"


def _volume(volume: str, meta: "ClusterMeta", ordinal: int) -> Volume:
    return Volume(
        name=volume,
        persistentVolumeClaim=PersistentVolumeClaimVolumeSource(
            claimName=claim_name(volume, meta, ordinal)
        ),
    )


def plan_volumes(meta: "ClusterMeta", ordinal: int, layout: VolumeLayout) -> List[Volume]:
    """Return the claims backing the member at `ordinal`."""
    volumes = [_volume(layout.storage_volume, meta, ordinal)]
    if not layout.reuse_storage_volume:
        volumes.append(_volume(layout.config_volume, meta, ordinal))
    return volumes


def plan_volume_mounts(layout: VolumeLayout) -> List[VolumeMount]:
    """Return the mounts of the member volumes.

    When the storage volume is reused, data and Galera config live in sub-paths
    of the same claim.
    """
    if layout.reuse_storage_volume:
        return [
            VolumeMount(
                name=layout.storage_volume,
                mountPath=layout.storage_mount_path,
                subPath=layout.storage_sub_path,
            ),
            VolumeMount(
                name=layout.storage_volume,
                mountPath=layout.config_mount_path,
                subPath=layout.config_sub_path,
            ),
        ]
    return [
        VolumeMount(name=layout.storage_volume, mountPath=layout.storage_mount_path),
        VolumeMount(name=layout.config_volume, mountPath=layout.config_mount_path),
    ]


def plan_recovery_job(
    target: "RecoveryTarget", meta: "ClusterMeta", layout: Optional[VolumeLayout] = None
) -> RecoveryJobPlan:
    """Plan the recovery job of a member.

    Args:
        target: member to recover and whether to pin the job to its node
        meta: naming of the workload running the members
        layout: volume layout of the members

    Raises:
        PodIndexError: when the ordinal cannot be derived from the pod name.
        PodNotScheduledError: when pinning is requested for an unscheduled pod.
    """
    layout = layout or VolumeLayout()
    member = target.member
    ordinal = member.ordinal

    node_selector = None
    if target.pin_to_node:
        if not member.node_name:
            logger.debug(f"Recovery of {member.pod_name} postponed, pod not scheduled")
            raise PodNotScheduledError()
        node_selector = {NODE_SELECTOR_HOSTNAME_KEY: member.node_name}

    plan = RecoveryJobPlan(
        pod_name=member.pod_name,
        ordinal=ordinal,
        node_selector=node_selector,
        volumes=plan_volumes(meta, ordinal, layout),
        volume_mounts=plan_volume_mounts(layout),
    )
    logger.info(
        f"Planned recovery job for {member.pod_name} on node {member.node_name or '<any>'}"
    )
    return plan
