#!/usr/bin/env python3
# Copyright 2024 Canonical Ltd.
# See LICENSE file for licensing details.

"""Structured configuration for the MariaDB Galera charm."""

import logging
import re
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, field_validator

from constants import DEFAULT_CLUSTER_DOMAIN, DEFAULT_GALERA_LIB_PATH
from custom_exceptions import ParseError
from galera_options import ProviderOptions
from galera_types import ClusterSpec, RollingUpdateParams

logger = logging.getLogger(__name__)

DNS_NAME_PATTERN = r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?(\.[a-z0-9]([-a-z0-9]*[a-z0-9])?)*$"


class CharmConfig(BaseModel):
    """Manager for the structured configuration.

    Fields are read from the charm options under their `-` separated names.
    """

    model_config = ConfigDict(
        alias_generator=lambda name: name.replace("_", "-"), populate_by_name=True
    )

    sst_method: str = "mariabackup"
    replica_threads: int = 1
    galera_lib_path: str = DEFAULT_GALERA_LIB_PATH
    provider_options: Optional[str] = None
    update_strategy: str = "ReplicasFirstPrimaryLast"
    rolling_update_partition: Optional[int] = None
    rolling_update_max_unavailable: Optional[str] = None
    recovery_pod_affinity: bool = True
    recovery_image: str = "mariadb:11.4"
    cluster_domain: str = DEFAULT_CLUSTER_DOMAIN

    @classmethod
    def from_charm_config(cls, config) -> "CharmConfig":
        """Validate the charm config."""
        return cls.model_validate(dict(config))

    @field_validator("replica_threads")
    @classmethod
    def replica_threads_validator(cls, value: int) -> int:
        """Check the replica thread count is positive."""
        if value < 1:
            raise ValueError("replica-threads must be at least 1")

        return value

    @field_validator("provider_options")
    @classmethod
    def provider_options_validator(cls, value: Optional[str]) -> Optional[str]:
        """Check provider options are `key=value` pairs separated by `;`."""
        if not value:
            return None

        try:
            ProviderOptions.unmarshal(value)
        except ParseError as e:
            raise ValueError(f"invalid provider-options: {e.message}")

        return value

    @field_validator("rolling_update_partition")
    @classmethod
    def rolling_update_partition_validator(cls, value: Optional[int]) -> Optional[int]:
        """Check partition is not negative."""
        if value is not None and value < 0:
            raise ValueError("rolling-update-partition must not be negative")

        return value

    @field_validator("cluster_domain")
    @classmethod
    def cluster_domain_validator(cls, value: str) -> str:
        """Check the cluster domain is a DNS name."""
        if not re.match(DNS_NAME_PATTERN, value):
            raise ValueError("cluster-domain must be a valid DNS name")

        return value

    @property
    def provider_options_dict(self) -> Dict[str, str]:
        """User provider options as a mapping."""
        if not self.provider_options:
            return {}
        return ProviderOptions.unmarshal(self.provider_options).entries

    @property
    def rolling_update(self) -> Optional[RollingUpdateParams]:
        """Rolling update parameters, when any is set."""
        if self.rolling_update_partition is None and self.rolling_update_max_unavailable is None:
            return None

        max_unavailable = self.rolling_update_max_unavailable
        if max_unavailable is not None and max_unavailable.isdigit():
            max_unavailable = int(max_unavailable)
        return RollingUpdateParams(
            partition=self.rolling_update_partition, max_unavailable=max_unavailable
        )

    def cluster_spec(self, replicas: int, bootstrap_requested: bool = False) -> ClusterSpec:
        """Return the declared cluster state for a number of replicas."""
        return ClusterSpec(
            replicas=replicas,
            sst_method=self.sst_method,
            replica_threads=self.replica_threads,
            bootstrap_requested=bootstrap_requested,
            galera_lib_path=self.galera_lib_path,
            provider_options=self.provider_options_dict,
            update_strategy=self.update_strategy,
            rolling_update=self.rolling_update,
        )
