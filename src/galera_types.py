# Copyright 2024 Canonical Ltd.
# See LICENSE file for licensing details.

"""Value objects describing a Galera cluster and its members."""

from enum import Enum
from typing import Dict, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from constants import (
    DEFAULT_CLUSTER_DOMAIN,
    DEFAULT_GALERA_LIB_PATH,
)
from custom_exceptions import SSTFormatError
from galera_address import pod_index


class SSTMethod(str, Enum):
    """State snapshot transfer methods."""

    RSYNC = "rsync"
    MARIABACKUP = "mariabackup"
    MYSQLDUMP = "mysqldump"

    @classmethod
    def from_value(cls, value: str) -> "SSTMethod":
        """Return the method for a configured value.

        Raises:
            SSTFormatError: when the value is not a known method.
        """
        try:
            return cls(value)
        except ValueError:
            raise SSTFormatError(f"invalid SST: {value}")

    @classmethod
    def mariadb_format(cls, value: str) -> str:
        """Return the form of a configured method used in the MariaDB config file."""
        return SST_MARIADB_FORMATS[cls.from_value(value)]

    @property
    def requires_auth(self) -> bool:
        """Whether the method logs into the donor and needs `wsrep_sst_auth`."""
        return self in (SSTMethod.MARIABACKUP, SSTMethod.MYSQLDUMP)


SST_MARIADB_FORMATS = {
    SSTMethod.RSYNC: "rsync",
    SSTMethod.MARIABACKUP: "mariabackup",
    SSTMethod.MYSQLDUMP: "mysqldump",
}


class UpdateStrategyType(str, Enum):
    """Declared update policies for the database StatefulSet."""

    REPLICAS_FIRST_PRIMARY_LAST = "ReplicasFirstPrimaryLast"
    ROLLING_UPDATE = "RollingUpdate"
    ON_DELETE = "OnDelete"


class RollingUpdateParams(BaseModel):
    """Caller supplied parameters of a native rolling update."""

    model_config = ConfigDict(frozen=True)

    partition: Optional[int] = Field(default=None, ge=0)
    max_unavailable: Optional[Union[int, str]] = None


class ClusterSpec(BaseModel):
    """Declared state of a Galera cluster."""

    model_config = ConfigDict(frozen=True)

    replicas: int = Field(ge=0)
    sst_method: str = SSTMethod.MARIABACKUP.value
    replica_threads: int = Field(default=1, ge=1)
    bootstrap_requested: bool = False
    galera_enabled: bool = True
    galera_lib_path: str = DEFAULT_GALERA_LIB_PATH
    provider_options: Dict[str, str] = Field(default_factory=dict)
    update_strategy: str = UpdateStrategyType.REPLICAS_FIRST_PRIMARY_LAST.value
    rolling_update: Optional[RollingUpdateParams] = None


class ClusterMeta(BaseModel):
    """Naming of the workload that runs the cluster members."""

    model_config = ConfigDict(frozen=True)

    name: str
    namespace: str
    service: str
    cluster_domain: str = DEFAULT_CLUSTER_DOMAIN


class MemberIdentity(BaseModel):
    """A cluster member, identified by its pod and, once scheduled, its node."""

    model_config = ConfigDict(frozen=True)

    pod_name: str
    node_name: Optional[str] = None

    @property
    def ordinal(self) -> int:
        """Position of the member in the declared topology."""
        return pod_index(self.pod_name)


class RecoveryTarget(BaseModel):
    """A member selected for a one-shot recovery procedure."""

    model_config = ConfigDict(frozen=True)

    member: MemberIdentity
    pin_to_node: bool = True
