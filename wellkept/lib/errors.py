"""Error types shared by the vault layers."""
from __future__ import annotations


class UserError(Exception):
	"""A failure caused by the user's input or by the state of their vaults.

	The CLI prints these as a one-line message; anything else is a bug or an
	environment problem and is reported with a traceback.
	"""


class DuplicateNameError(UserError):
	pass


class ParseError(UserError):
	pass
