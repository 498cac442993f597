"""wellkept: encrypted secrets vaults registered in the OS keychain."""
from __future__ import annotations
from typing import TYPE_CHECKING, List

if TYPE_CHECKING:
	from .lib.model import Secret

__version__ = '0.1.0'


def get_secrets_for_domain(domain_name: str) -> List[Secret]:
	"""Secrets of `domain_name`, read through the user's registered vaults."""
	from .lib.crypto import VaultCrypto
	from .lib.keychain import KeyringSecretsStorage
	from .lib.storage import VaultFileSystem
	from .lib.vaults import WellKeptSecrets
	return WellKeptSecrets(KeyringSecretsStorage(), VaultFileSystem(), VaultCrypto()).get_secrets(domain_name)
