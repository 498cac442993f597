"""Vault resolution and mutation.

Vault state is never cached: every operation re-lists the credential store and
re-reads the vault files, so what it acts on is the current on-disk and
in-keychain truth. Operations are "look, validate, act"; there is no
transaction spanning the file store and the credential store.
"""
from __future__ import annotations
import logging
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, List, Optional, Sequence, Tuple
import click
from config.settings import LIST_WORKERS
from .crypto import CryptoError
from .editor import TextEditor
from .errors import UserError
from .keychain import CredentialsInfo, EnvchainStorage, SecretsStorage
from .model import Domain, DomainsBundle, Secret
from .storage import StorageError

log = logging.getLogger(__name__)


class VaultStatus(str, Enum):
	OK = 'ok'
	MISSING = 'missing'
	BROKEN_KEY = 'broken_key'
	CANNOT_READ = 'cannot_read'
	CANNOT_DECRYPT = 'cannot_decrypt'
	CANNOT_PARSE = 'cannot_parse'


@dataclass(frozen=True)
class VaultReading:
	status: VaultStatus
	domains_bundle: Optional[DomainsBundle] = None
	error: Optional[str] = None


@dataclass(frozen=True)
class VaultInfo:
	credentials_record_id: Any
	vault_filepath: str
	password: str
	status: VaultStatus
	domains_bundle: Optional[DomainsBundle] = None
	error: Optional[str] = None

	def describe_status(self) -> str:
		return f'{self.status.value} {self.error}' if self.error else self.status.value


@dataclass(frozen=True)
class DomainStats:
	name: str
	num_secrets: int


@dataclass(frozen=True)
class VaultStats:
	vault_filepath: str
	ok: bool
	status: str
	domains: List[DomainStats] = field(default_factory=list)


class UserInput(ABC):
	@abstractmethod
	def choose_new_password(self) -> str: ...

	@abstractmethod
	def enter_password(self) -> str: ...


class ClickUserInput(UserInput):
	def choose_new_password(self) -> str:
		first = click.prompt('Choose a password', hide_input=True, default='', show_default=False)
		second = click.prompt('Repeat password', hide_input=True, default='', show_default=False)
		if first != second:
			raise UserError('Passwords do not match')
		if not first:
			raise UserError('Password cannot be empty')
		return first

	def enter_password(self) -> str:
		return click.prompt('Password', hide_input=True)


class WellKeptSecrets:
	"""Read side: resolves credential records into vault states."""

	def __init__(self, secrets_storage: SecretsStorage, file_system, encryption, max_workers: int = LIST_WORKERS):
		self.secrets_storage = secrets_storage
		self.file_system = file_system
		self.encryption = encryption
		self.max_workers = max_workers

	def get_secrets(self, domain_name: str) -> List[Secret]:
		matches = [
			v for v in self.list_vaults()
			if v.status is VaultStatus.OK and v.domains_bundle.contains_domain(domain_name)
		]
		if not matches:
			raise UserError(f'No vaults found containing domain "{domain_name}"')
		if len(matches) > 1:
			paths = ', '.join(v.vault_filepath for v in matches)
			raise UserError(f'More than one vault found containing domain "{domain_name}": {paths}')
		return list(matches[0].domains_bundle.get_domain(domain_name).secrets)

	def list_vaults(self) -> List[VaultInfo]:
		credentials = self.secrets_storage.list_credentials()
		if not credentials:
			return []
		with ThreadPoolExecutor(max_workers=max(1, min(self.max_workers, len(credentials)))) as pool:
			return list(pool.map(self._resolve, credentials))

	def _resolve(self, creds: CredentialsInfo) -> VaultInfo:
		if not creds.status.ok:
			return VaultInfo(creds.credentials_record_id, creds.vault_filepath, creds.password,
				VaultStatus.BROKEN_KEY, error=creds.status.error_message)
		reading = self.read_vault(creds.vault_filepath, creds.password)
		return VaultInfo(creds.credentials_record_id, creds.vault_filepath, creds.password,
			reading.status, reading.domains_bundle, reading.error)

	def read_vault(self, filepath: str, password: str) -> VaultReading:
		if not self.file_system.check_file_exists(filepath):
			return VaultReading(VaultStatus.MISSING)
		try:
			encrypted = self.file_system.read_vault_file(filepath)
		except StorageError as e:
			log.debug('Cannot read %s: %s', filepath, e)
			return VaultReading(VaultStatus.CANNOT_READ, error=str(e))
		try:
			content = self.encryption.decrypt(encrypted, password)
		except CryptoError as e:
			log.debug('Cannot decrypt %s: %s', filepath, e)
			return VaultReading(VaultStatus.CANNOT_DECRYPT, error=str(e))
		try:
			bundle = DomainsBundle.parse_json(content)
		except UserError as e:
			log.debug('Cannot parse %s: %s', filepath, e)
			return VaultReading(VaultStatus.CANNOT_PARSE, error=str(e))
		return VaultReading(VaultStatus.OK, bundle)


def _validator(parse: Callable[[str], Any]) -> Callable[[str], Optional[str]]:
	def is_valid(text: str) -> Optional[str]:
		try:
			parse(text)
		except UserError as e:
			return str(e)
		return None
	return is_valid


def _parse_domain_text(text: str) -> Domain:
	return Domain.parse_ini(DomainsBundle.pre_process_ini_lines(text))


class VaultManager(WellKeptSecrets):
	"""Write side: create, register, edit and remove vaults."""

	def __init__(self, secrets_storage: SecretsStorage, file_system, encryption, user_input: UserInput, **kw):
		super().__init__(secrets_storage, file_system, encryption, **kw)
		self.user_input = user_input

	def _vaults_at(self, filepath: str) -> List[VaultInfo]:
		return [v for v in self.list_vaults() if v.vault_filepath == filepath]

	def create_vault(self, filepath: str) -> None:
		self._check_can_create(filepath)
		self._persist_new_vault(filepath, DomainsBundle())

	def import_from_envchain(self, filepath: str, namespaces: Sequence[str], envchain: EnvchainStorage) -> None:
		self._check_can_create(filepath)
		if not all(namespaces):
			raise UserError('Envchain namespace cannot be empty')
		domains = [
			Domain(ns, tuple(Secret(s.key, s.value) for s in envchain.list_envchain_secrets_for_namespace(ns)))
			for ns in namespaces
		]
		self._persist_new_vault(filepath, DomainsBundle(tuple(domains)))

	def _check_can_create(self, filepath: str) -> None:
		if self._vaults_at(filepath):
			raise UserError(f'Vault with path {filepath} already registered')
		if self.file_system.check_file_exists(filepath):
			raise UserError(f'File {filepath} already exists')

	def _persist_new_vault(self, filepath: str, bundle: DomainsBundle) -> None:
		password = self.user_input.choose_new_password()
		self.file_system.write_vault_file(filepath, self.encryption.encrypt(bundle.to_json(), password))
		self.secrets_storage.add_credentials(filepath, password)
		log.info('Vault created: %s (%d domains)', filepath, len(bundle.domains))

	def register_vault(self, filepath: str) -> None:
		if self._vaults_at(filepath):
			raise UserError(f'Vault with path {filepath} already registered')
		if not self.file_system.check_file_exists(filepath):
			raise UserError(f'File {filepath} does not exist')
		password = self.user_input.enter_password()
		reading = self.read_vault(filepath, password)
		if reading.status is not VaultStatus.OK:
			detail = f' {reading.error}' if reading.error else ''
			raise UserError(f'Invalid vault: {reading.status.value}{detail}')
		self.secrets_storage.add_credentials(filepath, password)
		log.info('Vault registered: %s', filepath)

	def deregister_vault(self, filepath: str) -> None:
		record_ids = [v.credentials_record_id for v in self._vaults_at(filepath)]
		if not record_ids:
			raise UserError(f'Vault not found with path {filepath}')
		for record_id in record_ids:
			self.secrets_storage.delete_credentials(record_id)
		log.info('Vault deregistered: %s (%d records)', filepath, len(record_ids))

	def _single_ok(self, vaults: List[VaultInfo], none_msg: str, many_msg: str) -> VaultInfo:
		if not vaults:
			raise UserError(none_msg)
		if len(vaults) > 1:
			raise UserError(many_msg)
		vault = vaults[0]
		if vault.status is not VaultStatus.OK:
			raise UserError(f'Invalid vault: {vault.describe_status()}')
		return vault

	def _save(self, vault: VaultInfo, bundle: DomainsBundle) -> None:
		self.file_system.write_vault_file(vault.vault_filepath, self.encryption.encrypt(bundle.to_json(), vault.password))

	def edit_vault(self, filepath: str, editor: TextEditor) -> bool:
		"""Edit a whole vault as INI text. Returns False when nothing changed."""
		vault = self._single_ok(self._vaults_at(filepath),
			f'Vault not found with path {filepath}', f'Multiple vaults found with path {filepath}')
		input_text = vault.domains_bundle.to_ini()
		output_text = editor.edit_text(input_text, filepath, _validator(DomainsBundle.parse_ini_text))
		if output_text == input_text:
			return False
		self._save(vault, DomainsBundle.parse_ini_text(output_text))
		return True

	def edit_domain(self, domain_name: str, editor: TextEditor) -> Tuple[bool, Optional[str]]:
		"""Edit one domain wherever it lives. Returns (changed, vault filepath)."""
		vault = self._single_ok(
			[v for v in self.list_vaults() if v.domains_bundle is not None and v.domains_bundle.contains_domain(domain_name)],
			f'No vault contains domain {domain_name}', f'Multiple vaults contain domain {domain_name}')
		bundle = vault.domains_bundle
		# trailing newline so editors that append one do not register a change
		input_text = bundle.get_domain(domain_name).to_ini() + '\n'

		def parse_into_bundle(text: str) -> DomainsBundle:
			return bundle.replace_domain(domain_name, _parse_domain_text(text))

		output_text = editor.edit_text(input_text, f'{vault.vault_filepath} [{domain_name}]', _validator(parse_into_bundle))
		if output_text == input_text:
			return False, None
		self._save(vault, parse_into_bundle(output_text))
		return True, vault.vault_filepath

	def get_vaults_and_stats(self) -> List[VaultStats]:
		stats = []
		for v in self.list_vaults():
			domains = [DomainStats(d.name, len(d.secrets)) for d in v.domains_bundle.domains] if v.domains_bundle else []
			stats.append(VaultStats(v.vault_filepath, v.status is VaultStatus.OK, v.describe_status(), domains))
		return stats
