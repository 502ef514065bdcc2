# Copyright 2024 Canonical Ltd.
# See LICENSE file for licensing details.

"""File containing constants to be used in the charm."""

PASSWORD_LENGTH = 24
PEER = "database-peers"
CONTAINER_NAME = "mariadb"
MARIADB_SERVICE = "mariadbd"
MARIADB_SYSTEM_USER = "mysql"
MARIADB_SYSTEM_GROUP = "mysql"
ROOT_USERNAME = "root"
ROOT_PASSWORD_KEY = "root-password"  # noqa: S105
SECRET_ID_KEY = "secret-id"  # noqa: S105
APP_SCOPE = "app"
UNIT_SCOPE = "unit"
GALERA_STATE_KEY = "galera-state"
RECOVERED_POSITION_KEY = "recovered-position"
MARIADB_PORT = 3306
MARIADB_DATA_DIR = "/var/lib/mysql"
MARIADB_CONFIG_DIR = "/etc/mysql/mariadb.conf.d"
GALERA_CONFIG_MOUNT_PATH = MARIADB_CONFIG_DIR
GALERA_CONFIG_FILE_NAME = "0-galera.cnf"
GALERA_BOOTSTRAP_FILE_NAME = "1-bootstrap.cnf"
GALERA_CLUSTER_NAME = "mariadb-operator"
GALERA_GCOMM_PORT = 4567
GALERA_IST_PORT = 4568
GALERA_SST_PORT = 4444
DEFAULT_GALERA_LIB_PATH = "/usr/lib/galera/libgalera_smm.so"
DEFAULT_CLUSTER_DOMAIN = "cluster.local"
STORAGE_VOLUME = "storage"
GALERA_CONFIG_VOLUME = "galera"
NODE_SELECTOR_HOSTNAME_KEY = "kubernetes.io/hostname"
RECOVERY_JOB_SUFFIX = "recovery"
RECOVERY_LOG_FILE = f"{MARIADB_DATA_DIR}/mariadb-recovery.log"
GALERA_STATE_FILE = f"{MARIADB_DATA_DIR}/grastate.dat"
APP_NAME_LABEL = "app.kubernetes.io/name"
APP_INSTANCE_LABEL = "app.kubernetes.io/instance"
APP_COMPONENT_LABEL = "app.kubernetes.io/component"
MANAGED_BY_LABEL = "app.kubernetes.io/managed-by"
MANAGED_BY = "mariadb-galera-k8s"
