"""Optional password memory in the OS keyring.

Only used when the ``remember_passwords`` preference is on.
"""

import logging

import keyring
from keyring.errors import KeyringError

log = logging.getLogger(__name__)

SERVICE_NAME = "vela-sftp"


def store_password(profile_name: str, password: str):
    try:
        keyring.set_password(SERVICE_NAME, profile_name, password)
    except KeyringError as e:
        log.warning("Failed to store password: %s", e)


def get_password(profile_name: str) -> str | None:
    try:
        return keyring.get_password(SERVICE_NAME, profile_name)
    except KeyringError as e:
        log.warning("Failed to retrieve password: %s", e)
    return None


def delete_password(profile_name: str):
    try:
        keyring.delete_password(SERVICE_NAME, profile_name)
    except KeyringError as e:
        log.warning("Failed to delete password: %s", e)
