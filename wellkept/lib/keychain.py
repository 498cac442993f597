"""Credential store adapters.

A vault's password lives in the OS keychain, keyed by an account name that
encodes the vault's path. The core only ever lists, adds and deletes records;
it never looks one up by path.
"""
from __future__ import annotations
import json, logging, shutil, subprocess
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Optional
import keyring
from keyring.errors import KeyringError, PasswordDeleteError
from config.settings import SERVICE_NAME, INDEX_ACCOUNT, CREDENTIALS_VERSION, ENVCHAIN_BIN
from .errors import UserError

log = logging.getLogger(__name__)


class KeychainError(Exception): ...
class EnvchainError(UserError): ...


class CredentialsStatusCode(str, Enum):
	OK = 'ok'
	BROKEN_CREDENTIALS = 'broken_credentials'
	UNKNOWN_VERSION = 'unknown_version'


@dataclass(frozen=True)
class CredentialsStatus:
	code: CredentialsStatusCode
	error_message: Optional[str] = None

	@property
	def ok(self) -> bool:
		return self.code is CredentialsStatusCode.OK


CREDENTIALS_OK = CredentialsStatus(CredentialsStatusCode.OK)


@dataclass(frozen=True)
class CredentialsInfo:
	credentials_record_id: Any
	vault_filepath: str
	password: str
	status: CredentialsStatus = CREDENTIALS_OK


class SecretsStorage(ABC):
	@abstractmethod
	def list_credentials(self) -> List[CredentialsInfo]:
		"""Every credential record, sorted by vault filepath."""

	@abstractmethod
	def add_credentials(self, filepath: str, password: str) -> None: ...

	@abstractmethod
	def delete_credentials(self, credentials_record_id: Any) -> None: ...


class KeyringSecretsStorage(SecretsStorage):
	"""Credentials kept in the OS keyring under one service name.

	keyring cannot enumerate items, so the account names are also recorded in
	an index item (account ``__index__``) holding a JSON list.
	"""

	def __init__(self, service_name: str = SERVICE_NAME, backend=None):
		self.service_name = service_name
		self._keyring = backend if backend is not None else keyring.get_keyring()

	def _load_index(self) -> List[str]:
		raw = self._keyring.get_password(self.service_name, INDEX_ACCOUNT)
		if not raw:
			return []
		try:
			accounts = json.loads(raw)
		except json.JSONDecodeError as e:
			raise KeychainError(f'Keychain index for {self.service_name} is corrupt: {e}') from e
		if not isinstance(accounts, list) or not all(isinstance(a, str) for a in accounts):
			raise KeychainError(f'Keychain index for {self.service_name} is corrupt')
		return accounts

	def _save_index(self, accounts: List[str]) -> None:
		self._keyring.set_password(self.service_name, INDEX_ACCOUNT, json.dumps(sorted(set(accounts))))

	@staticmethod
	def _parse_account(account: str, password: Optional[str], missing_message: str = 'Password missing from keychain') -> CredentialsInfo:
		def broken(code: CredentialsStatusCode, msg: str) -> CredentialsInfo:
			return CredentialsInfo(account, account, password or '', CredentialsStatus(code, msg))
		try:
			data = json.loads(account)
		except json.JSONDecodeError:
			return broken(CredentialsStatusCode.BROKEN_CREDENTIALS, 'Cannot parse the credentials')
		if not isinstance(data, dict):
			return broken(CredentialsStatusCode.BROKEN_CREDENTIALS, 'Cannot parse the credentials')
		v = data.get('v')
		if isinstance(v, bool) or v != CREDENTIALS_VERSION:
			return broken(CredentialsStatusCode.UNKNOWN_VERSION, 'Unknown credentials version, try upgrading the app')
		filepath = data.get('filepath')
		if not filepath or not isinstance(filepath, str):
			return broken(CredentialsStatusCode.BROKEN_CREDENTIALS, 'Missing data in credentials')
		if password is None:
			return CredentialsInfo(account, filepath, '', CredentialsStatus(
				CredentialsStatusCode.BROKEN_CREDENTIALS, missing_message))
		return CredentialsInfo(account, filepath, password)

	def list_credentials(self) -> List[CredentialsInfo]:
		try:
			accounts = self._load_index()
		except KeyringError as e:
			raise KeychainError(f'Cannot access keychain: {e}') from e
		results = []
		for account in accounts:
			try:
				password = self._keyring.get_password(self.service_name, account)
			except KeyringError as e:
				log.warning('Cannot retrieve password for %s: %s', account, e)
				results.append(self._parse_account(account, None, f'Cannot retrieve password: {e}'))
				continue
			results.append(self._parse_account(account, password))
		return sorted(results, key=lambda c: c.vault_filepath)

	def add_credentials(self, filepath: str, password: str) -> None:
		account = json.dumps({'v': CREDENTIALS_VERSION, 'filepath': filepath})
		try:
			self._keyring.set_password(self.service_name, account, password)
			self._save_index(self._load_index() + [account])
		except KeyringError as e:
			raise KeychainError(f'Cannot store credentials: {e}') from e
		log.info('Credentials added for %s', filepath)

	def delete_credentials(self, credentials_record_id: Any) -> None:
		try:
			try:
				self._keyring.delete_password(self.service_name, credentials_record_id)
			except PasswordDeleteError:
				log.warning('Credentials %s already gone from keychain', credentials_record_id)
			self._save_index([a for a in self._load_index() if a != credentials_record_id])
		except KeyringError as e:
			raise KeychainError(f'Cannot delete credentials: {e}') from e
		log.info('Credentials deleted: %s', credentials_record_id)


@dataclass(frozen=True)
class EnvchainSecret:
	key: str
	value: str


class EnvchainStorage(ABC):
	@abstractmethod
	def list_envchain_secrets_for_namespace(self, namespace: str) -> List[EnvchainSecret]: ...


class EnvchainCli(EnvchainStorage):
	"""Reads an envchain namespace through the envchain binary."""

	def __init__(self, binary: str = ENVCHAIN_BIN):
		self.binary = binary

	def list_envchain_secrets_for_namespace(self, namespace: str) -> List[EnvchainSecret]:
		if shutil.which(self.binary) is None:
			raise EnvchainError(f'envchain binary not found: {self.binary}')
		proc = subprocess.run(
			[self.binary, '--list', '--show-value', namespace],
			capture_output=True, text=True,
		)
		if proc.returncode != 0:
			raise EnvchainError(f'envchain failed for namespace {namespace}: {proc.stderr.strip()}')
		secrets = []
		for line in proc.stdout.splitlines():
			if not line.strip():
				continue
			key, sep, value = line.partition('=')
			if not sep:
				raise EnvchainError(f'Unexpected envchain output for namespace {namespace}: {line!r}')
			if not key:
				raise EnvchainError(f'Empty variable name in envchain namespace {namespace}')
			secrets.append(EnvchainSecret(key, value))
		return secrets
