"""
Arcwallet Configuration

Supports testnet and mainnet with separate configurations.

All values are read from ARCWALLET_* environment variables at import time.
On mainnet the co-admin passkey domain must be set explicitly, since binding
an address to it grants admin-equivalent rights on every account.
"""

from __future__ import annotations

import logging
import os
from enum import Enum

logger = logging.getLogger(__name__)


class NetworkType(Enum):
    TESTNET = "testnet"
    MAINNET = "mainnet"


class ConfigurationError(Exception):
    """Raised when required configuration is missing or invalid."""
    pass


def _get_required_setting(env_var: str, network: str, testnet_default: str) -> str:
    """Get a required setting from environment, with mainnet enforcement.

    On mainnet, missing settings raise ConfigurationError.
    On testnet, missing settings fall back to a default with a warning.
    """
    value = os.getenv(env_var, "").strip()
    if value:
        return value

    if network.lower() == "mainnet":
        raise ConfigurationError(
            f"CRITICAL: {env_var} environment variable required for mainnet."
        )

    logger.warning(
        "%s not set, using testnet default %r",
        env_var,
        testnet_default,
        extra={"event": "config.default_used", "env_var": env_var},
    )
    return testnet_default


# Get network type from environment variable
NETWORK = os.getenv("ARCWALLET_NETWORK", "testnet")  # Default to testnet for safety

# Passkeys bound to this domain are co-admins of the account
CO_ADMIN_DOMAIN = _get_required_setting("ARCWALLET_CO_ADMIN_DOMAIN", NETWORK, "co-admin.arcwallet")

DEFAULT_ACCOUNT_VERSION = os.getenv("ARCWALLET_ACCOUNT_VERSION", "0.1.0")
MAX_GROUP_SIZE = int(os.getenv("ARCWALLET_MAX_GROUP_SIZE", "16"))
MAX_PLUGIN_NAME_BYTES = int(os.getenv("ARCWALLET_MAX_PLUGIN_NAME_BYTES", "63"))
REKEY_NOTE = os.getenv("ARCWALLET_REKEY_NOTE", "rekeying abstracted account").encode()

# Last valid round for grants that never expire
NEVER_EXPIRES = 2**64 - 1

LOG_LEVEL = os.getenv("ARCWALLET_LOG_LEVEL", "INFO").upper()
LOG_FILE = os.getenv("ARCWALLET_LOG_FILE", "").strip() or None


class TestnetConfig:
    """Testnet Configuration"""

    NETWORK_TYPE = NetworkType.TESTNET
    CO_ADMIN_DOMAIN = CO_ADMIN_DOMAIN
    DEFAULT_ACCOUNT_VERSION = DEFAULT_ACCOUNT_VERSION
    MAX_GROUP_SIZE = MAX_GROUP_SIZE
    MAX_PLUGIN_NAME_BYTES = MAX_PLUGIN_NAME_BYTES
    REKEY_NOTE = REKEY_NOTE
    NEVER_EXPIRES = NEVER_EXPIRES
    LOG_LEVEL = LOG_LEVEL
    LOG_FILE = LOG_FILE
    ENVIRONMENT = "development"


class MainnetConfig:
    """Mainnet Configuration"""

    NETWORK_TYPE = NetworkType.MAINNET
    CO_ADMIN_DOMAIN = CO_ADMIN_DOMAIN
    DEFAULT_ACCOUNT_VERSION = DEFAULT_ACCOUNT_VERSION
    MAX_GROUP_SIZE = MAX_GROUP_SIZE
    MAX_PLUGIN_NAME_BYTES = MAX_PLUGIN_NAME_BYTES
    REKEY_NOTE = REKEY_NOTE
    NEVER_EXPIRES = NEVER_EXPIRES
    LOG_LEVEL = LOG_LEVEL
    LOG_FILE = LOG_FILE
    ENVIRONMENT = "production"


# Select config based on network
if NETWORK.lower() == "mainnet":
    Config = MainnetConfig
    if MAX_GROUP_SIZE < 2:
        raise ConfigurationError(
            "CRITICAL: ARCWALLET_MAX_GROUP_SIZE must allow at least a delegation and its return."
        )
else:
    Config = TestnetConfig


def as_dict() -> dict:
    """Effective configuration as plain values."""
    return {
        "network": Config.NETWORK_TYPE.value,
        "co_admin_domain": Config.CO_ADMIN_DOMAIN,
        "default_account_version": Config.DEFAULT_ACCOUNT_VERSION,
        "max_group_size": Config.MAX_GROUP_SIZE,
        "max_plugin_name_bytes": Config.MAX_PLUGIN_NAME_BYTES,
        "rekey_note": Config.REKEY_NOTE.decode(errors="replace"),
        "log_level": Config.LOG_LEVEL,
        "log_file": Config.LOG_FILE,
    }


# Export config
__all__ = [
    "Config",
    "ConfigurationError",
    "NetworkType",
    "TestnetConfig",
    "MainnetConfig",
    "CO_ADMIN_DOMAIN",
    "NEVER_EXPIRES",
    "as_dict",
]
