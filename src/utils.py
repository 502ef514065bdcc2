# Copyright 2024 Canonical Ltd.
# See LICENSE file for licensing details.

"""A collection of utility functions that are used in the charm."""

import hashlib
import secrets
import string


def generate_random_password(length: int) -> str:
    """Randomly generate a string intended to be used as a password.

    Args:
        length: length of the randomly generated string to be returned
    Returns:
        A randomly generated string intended to be used as a password.
    """
    choices = string.ascii_letters + string.digits
    return "".join([secrets.choice(choices) for _ in range(length)])


def content_hash(content: bytes) -> str:
    """Return the hash used to detect changes in rendered files.

    Args:
        content: rendered file content
    """
    return hashlib.sha256(content).hexdigest()
