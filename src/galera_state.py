# Copyright 2024 Canonical Ltd.
# See LICENSE file for licensing details.

"""Galera recovery state: `grastate.dat` and `--wsrep-recover` positions."""

import logging
import uuid
from typing import Dict, List, Optional, Union

from pydantic import BaseModel

from custom_exceptions import ParseError, PreconditionError

logger = logging.getLogger(__name__)

RECOVERED_POSITION_PREFIX = "WSREP: Recovered position: "
# a member with this uuid and seqno -1 needs SST to rejoin and cannot seed
EMPTY_UUID = "00000000-0000-0000-0000-000000000000"


class RecoveryIncompleteError(PreconditionError):
    """Exception raised when not every member has reported its position yet."""


class BootstrapSourceNotFoundError(PreconditionError):
    """Exception raised when no member qualifies to seed the cluster."""


def _validate_uuid(value: str) -> str:
    try:
        uuid.UUID(value)
    except ValueError:
        raise ParseError(f"invalid uuid: {value}")
    return value


def _parse_int_bool(value: str) -> bool:
    try:
        i = int(value)
    except ValueError:
        raise ParseError(f"error parsing integer bool: {value}")
    if i not in (0, 1):
        raise ParseError(f"invalid integer bool: {i}")
    return i == 1


class GaleraState(BaseModel):
    """Contents of the `grastate.dat` file of a member."""

    version: str
    uuid: str
    seqno: int
    safe_to_bootstrap: bool = False

    def marshal(self) -> bytes:
        """Render the state file."""
        _validate_uuid(self.uuid)
        return (
            f"version: {self.version}\n"
            f"uuid: {self.uuid}\n"
            f"seqno: {self.seqno}\n"
            f"safe_to_bootstrap: {int(self.safe_to_bootstrap)}"
        ).encode("utf-8")

    @classmethod
    def unmarshal(cls, text: Union[str, bytes]) -> "GaleraState":
        """Parse a state file, ignoring comments and unknown keys.

        Raises:
            ParseError: on invalid values or missing keys.
        """
        if isinstance(text, bytes):
            text = text.decode("utf-8")

        values = {}
        for line in text.splitlines():
            parts = line.split(":")
            if len(parts) != 2:
                continue
            key, value = parts[0].strip(), parts[1].strip()
            if key == "version":
                values["version"] = value
            elif key == "uuid":
                values["uuid"] = _validate_uuid(value)
            elif key == "seqno":
                try:
                    values["seqno"] = int(value)
                except ValueError:
                    raise ParseError(f"error parsing seqno: {value}")
            elif key == "safe_to_bootstrap":
                values["safe_to_bootstrap"] = _parse_int_bool(value)

        missing = {"version", "uuid", "seqno", "safe_to_bootstrap"} - values.keys()
        if missing:
            raise ParseError(f"invalid galera state file, missing: {', '.join(sorted(missing))}")
        return cls(**values)


class RecoveredPosition(BaseModel):
    """Last committed position reported by `mariadbd --wsrep-recover`."""

    uuid: str
    seqno: int

    def marshal(self) -> bytes:
        """Render the position as the recovery log line reporting it."""
        _validate_uuid(self.uuid)
        return f"{RECOVERED_POSITION_PREFIX}{self.uuid}:{self.seqno}".encode("utf-8")

    @classmethod
    def unmarshal(cls, text: Union[str, bytes]) -> "RecoveredPosition":
        """Parse the recovery log, keeping the last reported position.

        Raises:
            ParseError: when no position is found or it is malformed.
        """
        if isinstance(text, bytes):
            text = text.decode("utf-8")

        position = None
        for line in text.splitlines():
            parts = line.split(RECOVERED_POSITION_PREFIX)
            if len(parts) != 2:
                continue
            parts = parts[1].split(":")
            if len(parts) != 2:
                continue
            current_uuid = _validate_uuid(parts[0].strip())
            position = (current_uuid, _parse_seqno(parts[1].strip()))

        if position is None:
            raise ParseError("unable to find uuid and seqno")
        return cls(uuid=position[0], seqno=position[1])


def _parse_seqno(raw: str) -> int:
    """Parse a seqno, taking the first integer of a comma separated list."""
    if "," not in raw:
        try:
            return int(raw)
        except ValueError:
            raise ParseError(f"error parsing seqno: {raw}")

    for part in raw.split(","):
        part = part.strip()
        if not part:
            logger.info("Ignoring empty seqno")
            continue
        try:
            return int(part)
        except ValueError:
            logger.debug(f"Unable to parse seqno {part=}. Skipping...")
    raise ParseError(f"unable to parse seqno: {raw}")


Recoverer = Union[GaleraState, RecoveredPosition]


def _valid_seqno(recoverer: Optional[Recoverer]) -> bool:
    return recoverer is not None and recoverer.seqno >= 0


def _should_skip(recoverer: Optional[Recoverer]) -> bool:
    return recoverer is not None and recoverer.uuid == EMPTY_UUID and recoverer.seqno == -1


def is_recovery_complete(
    pod_names: List[str],
    states: Dict[str, GaleraState],
    recovered: Dict[str, RecoveredPosition],
) -> bool:
    """Whether enough members reported their position to pick a bootstrap source."""
    if not pod_names:
        logger.info("Recovery status not completed: no Pods found for recovery")
        return False

    skipped = 0
    complete = True
    for pod in pod_names:
        state = states.get(pod)
        position = recovered.get(pod)

        if state is not None and state.safe_to_bootstrap:
            return True
        if _should_skip(position):
            skipped += 1
            continue
        if _valid_seqno(state) or _valid_seqno(position):
            continue
        complete = False

    if skipped == len(pod_names):
        logger.info("Recovery status not completed: all Pods have been skipped")
        return False
    return complete


def bootstrap_source(
    pod_names: List[str],
    states: Dict[str, GaleraState],
    recovered: Dict[str, RecoveredPosition],
    force_pod: Optional[str] = None,
) -> str:
    """Return the member that must seed the cluster after a full outage.

    A forced pod wins, then a member marked safe to bootstrap, then the member
    with the highest seqno. Ties go to the highest ordinal.

    Raises:
        BootstrapSourceNotFoundError: when the forced pod is unknown or no member qualifies.
        RecoveryIncompleteError: when some members have not reported yet.
    """
    if force_pod is not None:
        if force_pod in pod_names:
            return force_pod
        raise BootstrapSourceNotFoundError(
            f"Pod '{force_pod}' used to forcefully bootstrap not found"
        )

    if not is_recovery_complete(pod_names, states, recovered):
        raise RecoveryIncompleteError("recovery status not completed")

    current: Optional[Recoverer] = None
    current_pod = None
    for pod in pod_names:
        state = states.get(pod)
        position = recovered.get(pod)

        if state is not None and state.safe_to_bootstrap:
            return pod
        if _should_skip(position):
            logger.info(f"Skipping {pod=} while looking for a bootstrap source")
            continue
        for candidate in (state, position):
            if _valid_seqno(candidate) and (current is None or candidate.seqno >= current.seqno):
                current = candidate
                current_pod = pod

    if current_pod is None:
        raise BootstrapSourceNotFoundError("bootstrap source not found")
    return current_pod
