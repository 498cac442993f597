"""Interactive text editing through the user's $EDITOR."""
from __future__ import annotations
import logging
from abc import ABC, abstractmethod
from typing import Callable, Optional
import click
from .errors import UserError

log = logging.getLogger(__name__)

TextValidator = Callable[[str], Optional[str]]


class TextEditor(ABC):
	@abstractmethod
	def edit_text(self, text: str, label: str, is_valid: TextValidator) -> str:
		"""Let the user edit `text`; only return text that `is_valid` accepts (returns None)."""


class ClickTextEditor(TextEditor):
	"""Opens `click.edit` until the buffer validates or the user gives up.

	An invalid buffer is never thrown away silently: the editor is re-opened on
	the user's own text so a typo can be fixed in place.
	"""

	def __init__(self, editor: Optional[str] = None, extension: str = '.ini'):
		self.editor = editor
		self.extension = extension

	def edit_text(self, text: str, label: str, is_valid: TextValidator) -> str:
		click.echo(f'Editing {label}')
		current = text
		while True:
			edited = click.edit(current, editor=self.editor, extension=self.extension, require_save=False)
			if edited is None:
				edited = current
			error = is_valid(edited)
			if error is None:
				return edited
			log.debug('Edited buffer rejected: %s', error)
			click.secho(f'Invalid content: {error}', fg='red', err=True)
			if not click.confirm('Re-open the editor to fix it?', default=True):
				raise UserError('Edit aborted, vault left unchanged')
			current = edited
