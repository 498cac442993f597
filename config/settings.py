"""Project configuration settings.

Constants used across the code base, with environment overrides where a user
may reasonably want to change them.
"""

import logging
import os

# Credential store
SERVICE_NAME = os.environ.get("WELLKEPT_SERVICE_NAME", "wellkept-secrets")
INDEX_ACCOUNT = "__index__"
CREDENTIALS_VERSION = 1

# Vault file format
VERSION_TAG = "A"  # prefix of every encrypted vault file
BUNDLE_VERSION = 1

# Security / crypto
DEFAULT_ITERATIONS = 100_000
SALT_LENGTH = 16
KEY_LENGTH = 32  # AES-256
IV_LENGTH = 12   # GCM nonce
AUTH_TAG_LENGTH = 16  # GCM tag length

# Listing fan-out
LIST_WORKERS = int(os.environ.get("WELLKEPT_LIST_WORKERS", "8"))

# External tools
ENVCHAIN_BIN = os.environ.get("ENVCHAIN_BIN", "envchain")

# Logging
def resolve_log_level(value, default="WARNING"):
	"""Upper-cased level name if logging knows it, otherwise `default`."""
	name = (value or "").strip().upper()
	return name if isinstance(logging.getLevelName(name), int) else default

LOG_LEVEL = resolve_log_level(os.environ.get("WELLKEPT_LOG_LEVEL"))
LOG_FORMAT = "%(levelname)s %(name)s: %(message)s"

__all__ = [
	'SERVICE_NAME','INDEX_ACCOUNT','CREDENTIALS_VERSION','VERSION_TAG','BUNDLE_VERSION',
	'DEFAULT_ITERATIONS','SALT_LENGTH','KEY_LENGTH','IV_LENGTH','AUTH_TAG_LENGTH',
	'LIST_WORKERS','ENVCHAIN_BIN','LOG_LEVEL','LOG_FORMAT','resolve_log_level'
]
