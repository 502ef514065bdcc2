#!/usr/bin/env python3
# Copyright 2024 Canonical Ltd.
# See LICENSE file for licensing details.

"""Charm for MariaDB Galera."""

import logging
from typing import Dict, List, Optional, Tuple

import ops
from ops.charm import ActionEvent, CharmBase
from ops.main import main
from ops.model import ActiveStatus, BlockedStatus, Container, WaitingStatus
from ops.pebble import Layer
from pydantic import ValidationError

from config import CharmConfig
from constants import (
    APP_SCOPE,
    CONTAINER_NAME,
    GALERA_BOOTSTRAP_FILE_NAME,
    GALERA_CONFIG_FILE_NAME,
    GALERA_STATE_FILE,
    GALERA_STATE_KEY,
    MARIADB_CONFIG_DIR,
    MARIADB_PORT,
    MARIADB_SERVICE,
    MARIADB_SYSTEM_GROUP,
    MARIADB_SYSTEM_USER,
    PASSWORD_LENGTH,
    PEER,
    RECOVERED_POSITION_KEY,
    RECOVERY_LOG_FILE,
    ROOT_PASSWORD_KEY,
    SECRET_ID_KEY,
    UNIT_SCOPE,
)
from custom_exceptions import (
    FormatError,
    ParseError,
    PreconditionError,
    ResolutionError,
    SecretError,
    UnsupportedUpdateStrategyError,
)
from galera_config import bootstrap_marker, render_galera_config
from galera_state import GaleraState, RecoveredPosition, bootstrap_source
from galera_types import ClusterMeta, ClusterSpec, RecoveryTarget
from k8s_helpers import KubernetesClientError, KubernetesHelpers
from recovery import plan_recovery_job
from update_strategy import select_update_strategy
from utils import content_hash, generate_random_password

logger = logging.getLogger(__name__)


class GaleraOperatorCharm(CharmBase):
    """Operator framework charm for MariaDB Galera."""

    def __init__(self, *args):
        super().__init__(*args)

        self.framework.observe(self.on.mariadb_pebble_ready, self._on_config_changed)
        self.framework.observe(self.on.config_changed, self._on_config_changed)
        self.framework.observe(self.on.leader_elected, self._on_leader_elected)
        self.framework.observe(self.on.update_status, self._on_update_status)
        self.framework.observe(self.on[PEER].relation_changed, self._on_config_changed)
        self.framework.observe(self.on.bootstrap_cluster_action, self._on_bootstrap_cluster)
        self.framework.observe(self.on.recover_member_action, self._on_recover_member)

        self.k8s_helpers = KubernetesHelpers(self)

    @property
    def peers(self) -> Optional[ops.model.Relation]:
        """Retrieve the peer relation."""
        return self.model.get_relation(PEER)

    @property
    def app_peer_data(self):
        """Application peer relation data object."""
        if self.peers is None:
            return {}
        return self.peers.data[self.app]

    @property
    def unit_peer_data(self):
        """Unit peer relation data object."""
        if self.peers is None:
            return {}
        return self.peers.data[self.unit]

    @property
    def typed_config(self) -> CharmConfig:
        """Return the validated charm configuration."""
        return CharmConfig.from_charm_config(self.model.config)

    @property
    def pod_name(self) -> str:
        """Name of the pod running this unit."""
        return self.unit.name.replace("/", "-")

    @property
    def cluster_meta(self) -> ClusterMeta:
        """Naming of the StatefulSet running the members."""
        return ClusterMeta(
            name=self.app.name,
            namespace=self.model.name,
            service=f"{self.app.name}-endpoints",
            cluster_domain=self.typed_config.cluster_domain,
        )

    @property
    def cluster_spec(self) -> ClusterSpec:
        """Declared cluster state for the planned number of units."""
        return self.typed_config.cluster_spec(self.app.planned_units())

    @property
    def _pebble_layer(self) -> Layer:
        """Return a layer for the mariadbd pebble service."""
        layer = {
            "summary": "mariadbd services layer",
            "description": "pebble config layer for mariadbd",
            "services": {
                MARIADB_SERVICE: {
                    "override": "replace",
                    "summary": "mariadbd",
                    "command": MARIADB_SERVICE,
                    "startup": "enabled",
                    "user": MARIADB_SYSTEM_USER,
                    "group": MARIADB_SYSTEM_GROUP,
                },
            },
        }
        return Layer(layer)  # pyright: ignore [reportArgumentType]

    def _peer_data(self, scope: str):
        if scope == APP_SCOPE:
            return self.app_peer_data
        if scope == UNIT_SCOPE:
            return self.unit_peer_data
        raise ValueError("Unknown secret scope")

    def get_secret(self, scope: str, key: str) -> Optional[str]:
        """Get a value from the Juju secret of a scope.

        The secret id is kept in the peer relation databag of the scope.
        """
        secret_id = self._peer_data(scope).get(SECRET_ID_KEY)
        if not secret_id:
            return None
        secret = self.model.get_secret(id=secret_id)
        return secret.get_content(refresh=True).get(key)

    def set_secret(self, scope: str, key: str, value: str) -> None:
        """Set a value in the Juju secret of a scope, creating the secret if needed."""
        peer_data = self._peer_data(scope)
        if scope == APP_SCOPE and not self.unit.is_leader():
            raise SecretError("Can only set app secrets on the leader unit")
        if self.peers is None:
            logger.warning("Peer relation unavailable.")
            return

        secret_id = peer_data.get(SECRET_ID_KEY)
        if secret_id:
            secret = self.model.get_secret(id=secret_id)
            secret.set_content({**secret.get_content(refresh=True), key: value})
            return

        owner = self.app if scope == APP_SCOPE else self.unit
        secret = owner.add_secret({key: value}, label=f"{PEER}.{self.app.name}.{scope}")
        peer_data[SECRET_ID_KEY] = secret.id

    def _on_leader_elected(self, _) -> None:
        """Set the root password in the application secret if not already set."""
        if self.peers is None:
            return
        if not self.get_secret(APP_SCOPE, ROOT_PASSWORD_KEY):
            logger.info("Generating root credentials")
            self.set_secret(
                APP_SCOPE, ROOT_PASSWORD_KEY, generate_random_password(PASSWORD_LENGTH)
            )

    def _on_update_status(self, _) -> None:
        container = self.unit.get_container(CONTAINER_NAME)
        if container.can_connect():
            self._publish_galera_state(container)

    def _on_config_changed(self, event) -> None:
        """Render the Galera configuration and apply the update strategy."""
        container = self.unit.get_container(CONTAINER_NAME)
        if not container.can_connect():
            # configuration also take places on pebble ready handler
            return

        self._publish_galera_state(container)

        root_password = self.get_secret(APP_SCOPE, ROOT_PASSWORD_KEY)
        if not root_password:
            self.unit.status = WaitingStatus("Waiting for leader election.")
            logger.debug("Leader not ready yet, waiting...")
            return

        try:
            config = self.typed_config
        except ValidationError as e:
            logger.error(f"Invalid charm configuration: {e}")
            self.unit.status = BlockedStatus("invalid configuration")
            return

        try:
            changed = self._reconcile_galera_config(container, root_password)
            if self.unit.is_leader():
                self.k8s_helpers.set_update_strategy(
                    select_update_strategy(config.update_strategy, config.rolling_update)
                )
        except PreconditionError as e:
            logger.info(f"Galera configuration not ready: {e.message}")
            self.unit.status = WaitingStatus(e.message)
            return
        except ResolutionError as e:
            logger.warning(f"Galera member address not resolvable yet: {e.message}")
            self.unit.status = WaitingStatus("waiting for member address")
            event.defer()
            return
        except (FormatError, UnsupportedUpdateStrategyError) as e:
            logger.error(f"Galera configuration invalid: {e.message}")
            self.unit.status = BlockedStatus(e.message)
            return
        except KubernetesClientError:
            self.unit.status = BlockedStatus("failed to patch statefulset, `juju trust` needed?")
            return

        self._reconcile_pebble_layer(container, restart=changed)
        self._open_ports()
        self.unit.status = ActiveStatus()

    def _reconcile_galera_config(self, container: Container, root_password: str) -> bool:
        """Write the Galera configuration when the file in the container differs.

        Returns:
            whether the file content changed
        """
        config = render_galera_config(
            self.cluster_spec, self.cluster_meta, self.pod_name, root_password
        )
        path = f"{MARIADB_CONFIG_DIR}/{GALERA_CONFIG_FILE_NAME}"
        if container.exists(path):
            current = container.pull(path, encoding=None).read()
            if content_hash(current) == content_hash(config):
                logger.debug("Galera configuration unchanged")
                return False

        logger.info("Writing Galera configuration")
        container.push(
            path,
            config,
            make_dirs=True,
            permissions=0o600,
            user=MARIADB_SYSTEM_USER,
            group=MARIADB_SYSTEM_GROUP,
        )
        return True

    def _reconcile_pebble_layer(self, container: Container, restart: bool = False) -> None:
        """Reconcile the pebble layer, restarting mariadbd on configuration changes."""
        current_layer = container.get_plan()
        new_layer = self._pebble_layer

        if new_layer.services != current_layer.services:
            logger.info("Adding pebble layer")
            container.add_layer(MARIADB_SERVICE, new_layer, combine=True)
            container.replan()
            return

        if restart:
            logger.info("Restarting mariadbd to apply the Galera configuration")
            container.restart(MARIADB_SERVICE)

    def _publish_galera_state(self, container: Container) -> None:
        """Share the saved and recovered positions of this member with its peers."""
        if self.peers is None:
            return

        sources = (
            (GALERA_STATE_FILE, GALERA_STATE_KEY, GaleraState),
            (RECOVERY_LOG_FILE, RECOVERED_POSITION_KEY, RecoveredPosition),
        )
        for path, key, model in sources:
            if not container.exists(path):
                continue
            try:
                state = model.unmarshal(container.pull(path).read())
            except ParseError as e:
                logger.warning(f"Unable to parse {path}: {e.message}")
                continue
            self.unit_peer_data[key] = state.marshal().decode("utf-8")

    def _recovery_states(
        self,
    ) -> Tuple[Dict[str, GaleraState], Dict[str, RecoveredPosition]]:
        """Return the positions published by every member, by pod name."""
        states = {}
        recovered = {}
        if self.peers is None:
            return states, recovered

        for unit in [self.unit, *self.peers.units]:
            data = self.peers.data[unit]
            pod = unit.name.replace("/", "-")
            if data.get(GALERA_STATE_KEY):
                states[pod] = GaleraState.unmarshal(data[GALERA_STATE_KEY])
            if data.get(RECOVERED_POSITION_KEY):
                recovered[pod] = RecoveredPosition.unmarshal(data[RECOVERED_POSITION_KEY])
        return states, recovered

    @property
    def _member_pod_names(self) -> List[str]:
        return [f"{self.app.name}-{ordinal}" for ordinal in range(self.app.planned_units())]

    def _on_bootstrap_cluster(self, event: ActionEvent) -> None:
        """Seed a new cluster from this unit, when it holds the most recent data."""
        container = self.unit.get_container(CONTAINER_NAME)
        if not container.can_connect():
            event.fail("Container not ready")
            return

        self._publish_galera_state(container)
        force_pod = self.pod_name if event.params.get("force") else None
        try:
            states, recovered = self._recovery_states()
            source = bootstrap_source(
                self._member_pod_names, states, recovered, force_pod=force_pod
            )
        except PreconditionError as e:
            logger.info(f"Bootstrap source not available yet: {e.message}")
            event.fail(f"{e.message}, retry later")
            return
        except FormatError as e:
            logger.error(f"Invalid recovery state: {e.message}")
            event.fail(f"Invalid recovery state: {e.message}")
            return

        if source != self.pod_name:
            event.fail(f"Cluster must be bootstrapped from {source}")
            return

        bootstrap_path = f"{MARIADB_CONFIG_DIR}/{GALERA_BOOTSTRAP_FILE_NAME}"
        logger.info(f"Bootstrapping a new cluster from {self.pod_name}")
        container.push(
            bootstrap_path,
            bootstrap_marker(),
            make_dirs=True,
            user=MARIADB_SYSTEM_USER,
            group=MARIADB_SYSTEM_GROUP,
        )
        try:
            container.restart(MARIADB_SERVICE)
        finally:
            # the marker only applies to the next start
            container.remove_path(bootstrap_path)
        event.set_results({"bootstrapped": self.pod_name})

    def _on_recover_member(self, event: ActionEvent) -> None:
        """Create a recovery job for a member."""
        if not self.unit.is_leader():
            event.fail("Action must be run on the leader unit")
            return

        pod_name = event.params.get("pod-name") or self.pod_name
        try:
            config = self.typed_config
        except ValidationError:
            event.fail("Invalid charm configuration")
            return

        try:
            member = self.k8s_helpers.get_member(pod_name)
            plan = plan_recovery_job(
                RecoveryTarget(member=member, pin_to_node=config.recovery_pod_affinity),
                self.cluster_meta,
                self.k8s_helpers.get_member_volume_layout(pod_name),
            )
            job_name = self.k8s_helpers.create_recovery_job(
                plan, config.recovery_image, labels={"app.kubernetes.io/part-of": self.app.name}
            )
        except PreconditionError as e:
            logger.info(f"Recovery of {pod_name} not possible yet: {e.message}")
            event.fail(f"{e.message}, retry later")
            return
        except KubernetesClientError:
            event.fail("Failed to create recovery job")
            return

        event.set_results({"job-name": job_name, "node": member.node_name or ""})

    def _open_ports(self) -> None:
        """Open ports if supported."""
        try:
            self.unit.set_ports(MARIADB_PORT)
        except ops.ModelError:
            logger.exception("failed to open port")


if __name__ == "__main__":
    main(GaleraOperatorCharm)
