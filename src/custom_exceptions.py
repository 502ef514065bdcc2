#!/usr/bin/env python3
# Copyright 2024 Canonical Ltd.
# See LICENSE file for licensing details.

"""Custom exceptions for the MariaDB Galera operator.

Precondition errors mean "not ready yet" and are retried by the caller.
Format errors point to a configuration bug and block the application.
Resolution errors are transient and retried with backoff by the caller.
"""


class Error(Exception):
    """Base class for exceptions in this charm."""

    def __init__(self, message: str = "") -> None:
        """Initialize the Error class.

        Args:
            message: Optional message to pass to the exception.
        """
        super().__init__(message)
        self.message = message

    def __repr__(self):
        """String representation of the Error class."""
        return "<{}.{} {}>".format(type(self).__module__, type(self).__name__, self.args)

    @property
    def name(self):
        """Return a string representation of the model plus class."""
        return "<{}.{}>".format(type(self).__module__, type(self).__name__)


class ConfigError(Error):
    """Exception raised when a Galera configuration artifact cannot be computed."""


class PreconditionError(ConfigError):
    """Exception raised when the cluster is not ready for the requested operation."""


class GaleraNotEnabledError(PreconditionError):
    """Exception raised when Galera is disabled for the cluster."""

    def __init__(self, message="MariaDB Galera not enabled, unable to render config file"):
        super().__init__(message)


class NoReplicasError(PreconditionError):
    """Exception raised when the cluster declares zero replicas."""

    def __init__(self, message="at least one replica required"):
        super().__init__(message)


class PodIndexError(PreconditionError):
    """Exception raised when the ordinal cannot be derived from a pod name."""


class PodNotScheduledError(PreconditionError):
    """Exception raised when a pod has not been placed on a node yet."""

    def __init__(self, message="pod has no assigned node"):
        super().__init__(message)


class MemberVolumeNotFoundError(PreconditionError):
    """Exception raised when a member pod does not mount an expected volume."""


class FormatError(ConfigError):
    """Exception raised on malformed configuration values."""


class ParseError(FormatError):
    """Exception raised when option text cannot be parsed."""


class SSTFormatError(FormatError):
    """Exception raised on an unknown SST method."""


class ResolutionError(Error):
    """Exception raised when a member address cannot be resolved."""


class UnsupportedUpdateStrategyError(Error):
    """Exception raised on an update strategy type that has no quorum-safe mapping."""

    def __init__(self, message="unsupported update strategy type"):
        super().__init__(message)


class SecretError(Error):
    """Exception raised when a charm secret cannot be stored."""
