# Copyright 2024 Canonical Ltd.
# See LICENSE file for licensing details.

import pytest
from lightkube.models.apps_v1 import RollingUpdateStatefulSetStrategy, StatefulSetUpdateStrategy

from custom_exceptions import UnsupportedUpdateStrategyError
from galera_types import RollingUpdateParams
from update_strategy import select_update_strategy


@pytest.mark.parametrize("strategy_type", ["ReplicasFirstPrimaryLast", "OnDelete"])
def test_on_delete_strategies(strategy_type):
    strategy = select_update_strategy(strategy_type)

    assert strategy == StatefulSetUpdateStrategy(type="OnDelete")
    assert strategy.rollingUpdate is None


def test_replicas_first_primary_last_ignores_rolling_update():
    strategy = select_update_strategy(
        "ReplicasFirstPrimaryLast", RollingUpdateParams(partition=1, max_unavailable=1)
    )

    assert strategy == StatefulSetUpdateStrategy(type="OnDelete")


def test_rolling_update_without_params():
    strategy = select_update_strategy("RollingUpdate")

    assert strategy == StatefulSetUpdateStrategy(type="RollingUpdate")
    assert strategy.rollingUpdate is None


@pytest.mark.parametrize(
    "params,expected",
    [
        (
            RollingUpdateParams(partition=2),
            RollingUpdateStatefulSetStrategy(partition=2),
        ),
        (
            RollingUpdateParams(max_unavailable="25%"),
            RollingUpdateStatefulSetStrategy(maxUnavailable="25%"),
        ),
        (
            RollingUpdateParams(partition=0, max_unavailable=1),
            RollingUpdateStatefulSetStrategy(partition=0, maxUnavailable=1),
        ),
    ],
)
def test_rolling_update_params_passed_through(params, expected):
    strategy = select_update_strategy("RollingUpdate", params)

    assert strategy.type == "RollingUpdate"
    assert strategy.rollingUpdate == expected


def test_rolling_update_to_dict():
    strategy = select_update_strategy("RollingUpdate", RollingUpdateParams(partition=1))

    assert strategy.to_dict() == {"type": "RollingUpdate", "rollingUpdate": {"partition": 1}}


@pytest.mark.parametrize("strategy_type", [None, "", "Recreate", "replicasfirstprimarylast"])
def test_unsupported_strategies(strategy_type):
    with pytest.raises(UnsupportedUpdateStrategyError) as e:
        select_update_strategy(strategy_type)

    assert e.value.message == "unsupported update strategy type"
