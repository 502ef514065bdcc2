# Copyright 2024 Canonical Ltd.
# See LICENSE file for licensing details.

"""Kubernetes helpers."""

import logging
import typing
from typing import Dict, Optional

from lightkube.core.client import Client
from lightkube.core.exceptions import ApiError
from lightkube.models.batch_v1 import JobSpec
from lightkube.models.core_v1 import Container, PodSpec, PodTemplateSpec
from lightkube.resources.apps_v1 import StatefulSet
from lightkube.resources.batch_v1 import Job
from lightkube.resources.core_v1 import Pod
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_fixed

from constants import CONTAINER_NAME, RECOVERY_JOB_SUFFIX, RECOVERY_LOG_FILE
from custom_exceptions import MemberVolumeNotFoundError
from galera_types import MemberIdentity
from k8s_metadata import MetadataBuilder
from recovery import RecoveryJobPlan, VolumeLayout, member_volume_layout

if typing.TYPE_CHECKING:
    from lightkube.models.apps_v1 import StatefulSetUpdateStrategy

    from charm import GaleraOperatorCharm

logger = logging.getLogger(__name__)

# http{x,core} clutter the logs with debug messages
logging.getLogger("httpcore").setLevel(logging.ERROR)
logging.getLogger("httpx").setLevel(logging.ERROR)

RECOVERY_JOB_BACKOFF_LIMIT = 3


class KubernetesClientError(Exception):
    """Exception raised when client can't execute."""


class KubernetesHelpers:
    """Kubernetes helpers for the Galera members and their recovery jobs."""

    def __init__(self, charm: "GaleraOperatorCharm"):
        """Initialize Kubernetes helpers.

        Args:
            charm: a `CharmBase` parent object
        """
        self.pod_name = charm.unit.name.replace("/", "-")
        self.namespace = charm.model.name
        self.app_name = charm.model.app.name
        self.client = Client()  # type: ignore

    @retry(
        retry=retry_if_exception_type(KubernetesClientError),
        stop=stop_after_attempt(3),
        wait=wait_fixed(1),
        reraise=True,
    )
    def _get_pod(self, pod_name: str) -> Pod:
        try:
            return self.client.get(Pod, name=pod_name, namespace=self.namespace)
        except ApiError as e:
            if e.status.code == 403:
                logger.error("Kubernetes pod lookup failed: `juju trust` needed")
            else:
                logger.exception("Kubernetes pod lookup failed: %s", e)
            raise KubernetesClientError

    def get_member(self, pod_name: str) -> MemberIdentity:
        """Return the identity of a member from its pod.

        Args:
            pod_name: name of the member pod
        """
        pod = self._get_pod(pod_name)
        node_name = pod.spec.nodeName if pod.spec else None
        return MemberIdentity(pod_name=pod_name, node_name=node_name)

    def get_member_volume_layout(self, pod_name: str) -> VolumeLayout:
        """Return the volume layout of a member, as mounted by its database container.

        Raises:
            MemberVolumeNotFoundError: when the pod does not run the database container
                or does not mount its directories.
        """
        pod = self._get_pod(pod_name)
        containers = pod.spec.containers if pod.spec else []
        for container in containers:
            if container.name == CONTAINER_NAME:
                return member_volume_layout(container.volumeMounts or [])
        raise MemberVolumeNotFoundError(f"no {CONTAINER_NAME} container in pod {pod_name}")

    def set_update_strategy(self, strategy: "StatefulSetUpdateStrategy") -> None:
        """Patch the statefulSet's `spec.updateStrategy`.

        Args:
            strategy: update strategy to set
        """
        try:
            patch = {"spec": {"updateStrategy": strategy.to_dict()}}
            self.client.patch(StatefulSet, name=self.app_name, namespace=self.namespace, obj=patch)
            logger.debug(f"Kubernetes statefulset update strategy set to {strategy.type}")
        except ApiError as e:
            if e.status.code == 403:
                logger.error("Kubernetes statefulset patch failed: `juju trust` needed")
            else:
                logger.exception("Kubernetes statefulset patch failed")
            raise KubernetesClientError

    def build_recovery_job(
        self,
        plan: RecoveryJobPlan,
        image: str,
        labels: Optional[Dict[str, str]] = None,
    ) -> Job:
        """Return the recovery job running `mariadbd --wsrep-recover` for a member.

        Args:
            plan: node pinning and volumes of the job
            image: database image of the members
            labels: labels inherited from the application
        """
        job_name = f"{plan.pod_name}-{RECOVERY_JOB_SUFFIX}"
        metadata = (
            MetadataBuilder(job_name, self.namespace)
            .with_defaults(self.app_name)
            .with_inherited(labels=labels)
            .with_component(RECOVERY_JOB_SUFFIX)
            .with_override(labels={"statefulset.kubernetes.io/pod-name": plan.pod_name})
            .build()
        )
        container = Container(
            name=CONTAINER_NAME,
            image=image,
            command=["mariadbd"],
            args=["--wsrep-recover", f"--log-error={RECOVERY_LOG_FILE}"],
            volumeMounts=plan.volume_mounts,
        )
        return Job(
            metadata=metadata,
            spec=JobSpec(
                backoffLimit=RECOVERY_JOB_BACKOFF_LIMIT,
                template=PodTemplateSpec(
                    spec=PodSpec(
                        containers=[container],
                        volumes=plan.volumes,
                        nodeSelector=plan.node_selector,
                        restartPolicy="OnFailure",
                    )
                ),
            ),
        )

    def create_recovery_job(
        self,
        plan: RecoveryJobPlan,
        image: str,
        labels: Optional[Dict[str, str]] = None,
    ) -> str:
        """Create the recovery job of a member and return its name.

        An existing job for the same member is left in place.
        """
        job = self.build_recovery_job(plan, image, labels)
        try:
            self.client.create(job)
            logger.info(f"Kubernetes recovery job {job.metadata.name} created")
        except ApiError as e:
            if e.status.code == 409:
                logger.warning(f"Kubernetes recovery job {job.metadata.name} already exists")
                return job.metadata.name
            if e.status.code == 403:
                logger.error("Kubernetes job creation failed: `juju trust` needed")
            else:
                logger.exception("Kubernetes job creation failed: %s", e)
            raise KubernetesClientError
        return job.metadata.name
