"""Vault encryption: PBKDF2 key derivation + AES-256-GCM.

Encrypted vault layout (text):
	"A" + base64(salt | iv | ciphertext | tag)
The leading character tags the scheme so a future scheme can be told apart
from a wrong password.
"""
from __future__ import annotations
import base64, binascii, json, secrets
from typing import Any
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from config.settings import (
	VERSION_TAG, DEFAULT_ITERATIONS, SALT_LENGTH, KEY_LENGTH, IV_LENGTH, AUTH_TAG_LENGTH
)

class CryptoError(Exception):
	pass

class VersionMismatchError(CryptoError):
	pass

class VaultCrypto:
	def __init__(self, iterations: int = DEFAULT_ITERATIONS):
		self.iterations = iterations

	def derive_key(self, password: str, salt: bytes) -> bytes:
		if not password:
			raise CryptoError("Password empty")
		kdf = PBKDF2HMAC(algorithm=hashes.SHA256(), length=KEY_LENGTH, salt=salt, iterations=self.iterations)
		return kdf.derive(password.encode('utf-8'))

	def encrypt(self, data: Any, password: str) -> str:
		"""JSON-encode `data` and encrypt it under `password`."""
		salt = secrets.token_bytes(SALT_LENGTH)
		key = self.derive_key(password, salt)
		iv = secrets.token_bytes(IV_LENGTH)
		enc = Cipher(algorithms.AES(key), modes.GCM(iv)).encryptor()
		ct = enc.update(json.dumps(data).encode('utf-8')) + enc.finalize()
		return VERSION_TAG + base64.b64encode(salt + iv + ct + enc.tag).decode('ascii')

	def decrypt(self, token: str, password: str) -> Any:
		"""Inverse of `encrypt`.

		Raises VersionMismatchError for an unknown scheme tag (checked before the
		password is used) and CryptoError for anything else that goes wrong.
		"""
		if not token.startswith(VERSION_TAG):
			raise VersionMismatchError(f"Unknown encryption version {token[:1]!r}, try upgrading the app")
		try:
			blob = base64.b64decode(token[len(VERSION_TAG):].strip(), validate=True)
		except (binascii.Error, ValueError) as e:
			raise CryptoError(f"Malformed ciphertext: {e}") from e
		if len(blob) < SALT_LENGTH + IV_LENGTH + AUTH_TAG_LENGTH: raise CryptoError("Ciphertext too short")
		salt = blob[:SALT_LENGTH]; iv = blob[SALT_LENGTH:SALT_LENGTH + IV_LENGTH]
		ct = blob[SALT_LENGTH + IV_LENGTH:-AUTH_TAG_LENGTH]; tag = blob[-AUTH_TAG_LENGTH:]
		key = self.derive_key(password, salt)
		dec = Cipher(algorithms.AES(key), modes.GCM(iv, tag)).decryptor()
		try:
			plaintext = dec.update(ct) + dec.finalize()
		except InvalidTag as e:
			raise CryptoError("Decrypt failed: wrong password or corrupted vault") from e
		try:
			return json.loads(plaintext.decode('utf-8'))
		except (UnicodeDecodeError, json.JSONDecodeError) as e:
			raise CryptoError(f"Decrypted content is not JSON: {e}") from e
