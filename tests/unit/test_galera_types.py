# Copyright 2024 Canonical Ltd.
# See LICENSE file for licensing details.

import pytest

from custom_exceptions import FormatError, SSTFormatError
from galera_types import SSTMethod


@pytest.mark.parametrize(
    "value,expected",
    [("rsync", "rsync"), ("mariabackup", "mariabackup"), ("mysqldump", "mysqldump")],
)
def test_mariadb_format(value, expected):
    assert SSTMethod.mariadb_format(value) == expected


def test_mariadb_format_every_method():
    for method in SSTMethod:
        assert SSTMethod.mariadb_format(method.value)


@pytest.mark.parametrize("value", ["xtrabackup", "", "RSYNC"])
def test_mariadb_format_invalid(value):
    with pytest.raises(SSTFormatError) as e:
        SSTMethod.mariadb_format(value)

    assert isinstance(e.value, FormatError)
    assert e.value.message == f"invalid SST: {value}"


def test_requires_auth():
    assert not SSTMethod.RSYNC.requires_auth
    assert SSTMethod.MARIABACKUP.requires_auth
    assert SSTMethod.MYSQLDUMP.requires_auth
