"""Secrets data model and its two serializations.

- canonical JSON (``{"v": 1, "domains": [...]}``), the only persisted form
- INI-like text, used as the buffer for interactive editing
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, TypeVar
from config.settings import BUNDLE_VERSION
from .errors import DuplicateNameError, ParseError

T = TypeVar('T', 'Secret', 'Domain')


def _unique_sorted(elements: Iterable[T]) -> Tuple[T, ...]:
	seen = set()
	items = list(elements)
	for e in items:
		if e.name in seen:
			raise DuplicateNameError(f'Duplicate name {e.name}')
		seen.add(e.name)
	return tuple(sorted(items, key=lambda e: e.name))


@dataclass(frozen=True)
class Secret:
	name: str
	value: str

	def __post_init__(self):
		if not self.name:
			raise ParseError('Secret: empty name')

	@classmethod
	def parse_json(cls, data: Any) -> 'Secret':
		if not isinstance(data, dict): raise ParseError('Secret: expected object')
		if 'name' not in data or data['name'] == '': raise ParseError('Secret: missing "name"')
		if not isinstance(data['name'], str): raise ParseError('Secret: "name" is not a string')
		if not isinstance(data.get('value'), str): raise ParseError('Secret: "value" is not a string')
		return cls(data['name'], data['value'])

	@classmethod
	def parse_ini(cls, line: str) -> 'Secret':
		if line.startswith('['):
			raise ParseError('Domain: invalid character "[" in variable name')
		name, sep, value = line.partition('=')
		if not sep:
			raise ParseError(f'Domain: missing "=" sign in variable row "{line}"')
		if not name:
			raise ParseError(f'Domain: empty variable name in row "{line}"')
		return cls(name, value)

	def to_ini(self) -> str:
		return f'{self.name}={self.value}'

	def to_json(self) -> Dict[str, str]:
		return {'name': self.name, 'value': self.value}


@dataclass(frozen=True)
class Domain:
	"""A named group of secrets; secrets are unique by name and kept sorted."""
	name: str
	secrets: Tuple[Secret, ...] = ()

	def __post_init__(self):
		if not self.name:
			raise ParseError('Domain: empty name')
		object.__setattr__(self, 'secrets', _unique_sorted(self.secrets))

	@classmethod
	def parse_json(cls, data: Any) -> 'Domain':
		if not isinstance(data, dict): raise ParseError('Domain: expected object')
		if not data.get('name'): raise ParseError('Domain: missing "name"')
		if not isinstance(data['name'], str): raise ParseError('Domain: "name" is not a string')
		if 'secrets' not in data: raise ParseError('Domain: missing "secrets"')
		if not isinstance(data['secrets'], list): raise ParseError('Domain: "secrets" is not an array')
		return cls(data['name'], tuple(Secret.parse_json(s) for s in data['secrets']))

	@classmethod
	def parse_ini(cls, lines: Sequence[str]) -> 'Domain':
		if not lines:
			raise ParseError('Domain: no lines')
		header = lines[0]
		if not header.startswith('[') or not header.endswith(']'):
			raise ParseError('Domain: first line should be "[section]"')
		name = header[1:-1]
		if not name:
			raise ParseError('Domain: empty section name "[]"')
		return cls(name, tuple(Secret.parse_ini(line) for line in lines[1:]))

	def to_ini(self) -> str:
		return '\n'.join([f'[{self.name}]'] + [s.to_ini() for s in self.secrets])

	def to_json(self) -> Dict[str, Any]:
		return {'name': self.name, 'secrets': [s.to_json() for s in self.secrets]}


@dataclass(frozen=True)
class DomainsBundle:
	"""Full decrypted content of one vault file."""
	domains: Tuple[Domain, ...] = ()

	def __post_init__(self):
		object.__setattr__(self, 'domains', _unique_sorted(self.domains))

	@classmethod
	def parse_json(cls, data: Any) -> 'DomainsBundle':
		if not isinstance(data, dict):
			raise ParseError('DomainsBundle: expected object')
		if 'domains' not in data:
			raise ParseError('DomainsBundle: missing "domains"')
		v = data.get('v')
		# bool is an int subclass; True must not pass for version 1
		if isinstance(v, bool) or v != BUNDLE_VERSION:
			raise ParseError('DomainsBundle: unknown version, try upgrading the app')
		if not isinstance(data['domains'], list):
			raise ParseError('DomainsBundle: "domains" is not an array')
		return cls(tuple(Domain.parse_json(d) for d in data['domains']))

	@staticmethod
	def pre_process_ini_lines(text: str) -> List[str]:
		return [line.strip() for line in text.split('\n') if line.strip()]

	@classmethod
	def parse_ini(cls, lines: Sequence[str]) -> 'DomainsBundle':
		blocks: List[List[str]] = []
		for line in lines:
			if line.startswith('[') or not blocks:
				blocks.append([])
			blocks[-1].append(line)
		return cls(tuple(Domain.parse_ini(b) for b in blocks))

	@classmethod
	def parse_ini_text(cls, text: str) -> 'DomainsBundle':
		return cls.parse_ini(cls.pre_process_ini_lines(text))

	def to_ini(self) -> str:
		return '\n\n'.join(d.to_ini() for d in self.domains) + '\n'

	def to_json(self) -> Dict[str, Any]:
		return {'v': BUNDLE_VERSION, 'domains': [d.to_json() for d in self.domains]}

	def contains_domain(self, name: str) -> bool:
		return self.get_domain(name) is not None

	def get_domain(self, name: str) -> Optional[Domain]:
		for d in self.domains:
			if d.name == name:
				return d
		return None

	def replace_domain(self, old_name: str, domain: Domain) -> 'DomainsBundle':
		"""Return a new bundle with `old_name` swapped for `domain`, other domains kept as-is.

		Renaming onto an existing domain name fails with DuplicateNameError.
		"""
		others = tuple(d for d in self.domains if d.name != old_name)
		return DomainsBundle(others + (domain,))
