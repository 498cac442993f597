"""Byte-level vault file access."""
from __future__ import annotations
import logging, os, tempfile
from pathlib import Path

log = logging.getLogger(__name__)

class StorageError(Exception): ...

class VaultFileSystem:
	def check_file_exists(self, filepath: str) -> bool:
		return Path(filepath).is_file()

	def read_vault_file(self, filepath: str) -> str:
		try:
			return Path(filepath).read_text(encoding='utf-8')
		except (OSError, UnicodeDecodeError) as e:
			raise StorageError(f'Cannot read {filepath}: {e}') from e

	def write_vault_file(self, filepath: str, encrypted_content: str) -> None:
		"""Replace the file atomically: write a sibling temp file, then rename over."""
		path = Path(filepath)
		try:
			path.parent.mkdir(parents=True, exist_ok=True)
			fd, tmp = tempfile.mkstemp(prefix=f'.{path.name}.', suffix='.tmp', dir=path.parent)
			try:
				with os.fdopen(fd, 'w', encoding='utf-8') as f:
					f.write(encrypted_content)
				os.replace(tmp, path)
			except BaseException:
				Path(tmp).unlink(missing_ok=True)
				raise
		except OSError as e:
			raise StorageError(f'Cannot write {filepath}: {e}') from e
		log.info('Vault written -> %s', path)
