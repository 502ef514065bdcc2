# Copyright 2024 Canonical Ltd.
# See LICENSE file for licensing details.

"""Selection of the StatefulSet update strategy for the Galera members."""

import logging
from typing import Optional

from lightkube.models.apps_v1 import RollingUpdateStatefulSetStrategy, StatefulSetUpdateStrategy

from custom_exceptions import UnsupportedUpdateStrategyError
from galera_types import RollingUpdateParams, UpdateStrategyType

logger = logging.getLogger(__name__)

ON_DELETE = "OnDelete"
ROLLING_UPDATE = "RollingUpdate"


def select_update_strategy(
    strategy_type: Optional[str], rolling_update: Optional[RollingUpdateParams] = None
) -> StatefulSetUpdateStrategy:
    """Map a declared update policy to a quorum-safe StatefulSet update strategy.

    `ReplicasFirstPrimaryLast` maps to `OnDelete`: members are deleted one by
    one by the reconcile loop, replicas first and the primary last, and the
    orchestrator must not roll pods ahead of that ordering.

    Args:
        strategy_type: declared update policy
        rolling_update: partition and max unavailable of a native rolling update,
            passed through unmodified

    Raises:
        UnsupportedUpdateStrategyError: on an unset or unknown policy.
    """
    try:
        declared = UpdateStrategyType(strategy_type)
    except ValueError:
        logger.error(f"Unsupported update strategy {strategy_type=}")
        raise UnsupportedUpdateStrategyError()

    if declared == UpdateStrategyType.REPLICAS_FIRST_PRIMARY_LAST:
        return StatefulSetUpdateStrategy(type=ON_DELETE)
    if declared == UpdateStrategyType.ON_DELETE:
        return StatefulSetUpdateStrategy(type=ON_DELETE)
    if declared == UpdateStrategyType.ROLLING_UPDATE:
        if rolling_update is None:
            return StatefulSetUpdateStrategy(type=ROLLING_UPDATE)
        return StatefulSetUpdateStrategy(
            type=ROLLING_UPDATE,
            rollingUpdate=RollingUpdateStatefulSetStrategy(
                partition=rolling_update.partition,
                maxUnavailable=rolling_update.max_unavailable,
            ),
        )
    raise UnsupportedUpdateStrategyError()
