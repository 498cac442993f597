"""Run a child program with a domain's secrets in its environment."""
from __future__ import annotations
import logging, os, subprocess
from typing import Iterable, Sequence
from .errors import UserError
from .model import Secret

log = logging.getLogger(__name__)

def build_env(secrets: Iterable[Secret], base: dict | None = None) -> dict:
	env = dict(os.environ if base is None else base)
	for s in secrets:
		env[s.name] = s.value
	return env

def run_with_secrets(command: str, args: Sequence[str], secrets: Iterable[Secret]) -> int:
	"""Run `command args...` with inherited stdio; returns the child's exit code."""
	env = build_env(secrets)
	log.debug('Running %s with %d extra variables', command, len(env) - len(os.environ))
	try:
		return subprocess.run([command, *args], env=env).returncode
	except FileNotFoundError as e:
		raise UserError(f'Command not found: {command}') from e
