"""CLI commands implemented with click.

Collaborators (keychain, file store, crypto, editor, envchain) are built once
per invocation and handed to the commands through ``ctx.obj``; tests pass
their own ``AppContext`` via ``CliRunner.invoke(..., obj=...)``.
"""
from __future__ import annotations
import functools, logging, traceback
from dataclasses import dataclass
from typing import Callable
import click
from config.settings import LOG_LEVEL, LOG_FORMAT
from wellkept.lib.crypto import VaultCrypto
from wellkept.lib.editor import ClickTextEditor, TextEditor
from wellkept.lib.errors import UserError
from wellkept.lib.keychain import EnvchainCli, EnvchainStorage, KeyringSecretsStorage
from wellkept.lib.runner import run_with_secrets
from wellkept.lib.storage import VaultFileSystem
from wellkept.lib.vaults import ClickUserInput, VaultManager

log = logging.getLogger(__name__)


@dataclass
class AppContext:
	manager: VaultManager
	editor: TextEditor
	envchain: EnvchainStorage
	runner: Callable = run_with_secrets

	@classmethod
	def default(cls) -> 'AppContext':
		manager = VaultManager(KeyringSecretsStorage(), VaultFileSystem(), VaultCrypto(), ClickUserInput())
		return cls(manager, ClickTextEditor(), EnvchainCli())


def handle_errors(fn):
	"""User errors become a one-line message (exit 1), anything else a traceback (exit 2)."""
	@functools.wraps(fn)
	def wrapper(*args, **kwargs):
		try:
			return fn(*args, **kwargs)
		except (click.ClickException, click.Abort, click.exceptions.Exit):
			raise
		except UserError as e:
			click.secho(f'Error: {e}', fg='red', err=True)
			raise SystemExit(1)
		except Exception:
			log.debug('Unexpected failure', exc_info=True)
			click.secho('Unexpected error', fg='red', err=True)
			click.echo(traceback.format_exc(), err=True)
			raise SystemExit(2)
	return wrapper


@click.group()
@click.option('-v', '--verbose', is_flag=True, help='Log debug output to stderr.')
@click.pass_context
def cli(ctx, verbose):
	"""Keep secrets in encrypted vaults whose passwords live in the OS keychain."""
	logging.basicConfig(level=logging.DEBUG if verbose else LOG_LEVEL, format=LOG_FORMAT)
	if ctx.obj is None:
		ctx.obj = AppContext.default()


@cli.command('run', context_settings={'ignore_unknown_options': True, 'allow_interspersed_args': False})
@click.argument('domain')
@click.argument('command')
@click.argument('args', nargs=-1, type=click.UNPROCESSED)
@click.pass_obj
@handle_errors
def run_cmd(app: AppContext, domain, command, args):
	"""Run COMMAND with the secrets of DOMAIN as environment variables."""
	secrets = app.manager.get_secrets(domain)
	code = app.runner(command, list(args), secrets)
	raise SystemExit(code)


@cli.command()
@click.argument('path')
@click.pass_obj
@handle_errors
def create(app: AppContext, path):
	"""Create and register a new empty vault."""
	app.manager.create_vault(path)
	click.secho('Vault created', fg='green')


@cli.command()
@click.argument('path')
@click.pass_obj
@handle_errors
def register(app: AppContext, path):
	"""Register an existing vault."""
	app.manager.register_vault(path)
	click.secho('Vault registered', fg='green')


@cli.command()
@click.argument('path')
@click.pass_obj
@handle_errors
def deregister(app: AppContext, path):
	"""Deregister a vault, leaving the file in place. Use "register" to add it back."""
	app.manager.deregister_vault(path)
	click.secho('Vault deregistered', fg='green')


@cli.command('edit-vault')
@click.argument('path')
@click.pass_obj
@handle_errors
def edit_vault(app: AppContext, path):
	"""Edit an entire vault."""
	if app.manager.edit_vault(path, app.editor):
		click.secho('Vault updated', fg='green')
	else:
		click.secho('No changes applied', fg='green')


@cli.command('edit')
@click.argument('domain')
@click.pass_obj
@handle_errors
def edit_domain(app: AppContext, domain):
	"""Edit a single domain in whichever vault holds it."""
	changed, vault_filepath = app.manager.edit_domain(domain, app.editor)
	if changed:
		click.secho(f'Vault {vault_filepath} updated', fg='green')
	else:
		click.secho('No changes applied', fg='green')


@cli.command('list')
@click.argument('domain', required=False)
@click.pass_obj
@handle_errors
def list_cmd(app: AppContext, domain):
	"""List registered vaults and their domains, or the secret names (not values) of DOMAIN."""
	if domain:
		secrets = app.manager.get_secrets(domain)
		if not secrets:
			click.echo('No secrets')
		for s in secrets:
			click.echo(s.name)
		return
	stats = app.manager.get_vaults_and_stats()
	if not stats:
		click.echo('No vaults registered')
		return
	for vs in stats:
		click.echo(f'\n{vs.vault_filepath}: ' + click.style(vs.status, fg='green' if vs.ok else 'red'))
		if not vs.domains:
			click.echo('    No secrets')
		for d in vs.domains:
			click.echo(f'    [{d.name}]: {d.num_secrets} secrets')


@cli.command('import-envchain')
@click.argument('path')
@click.argument('namespaces', nargs=-1)
@click.pass_obj
@handle_errors
def import_envchain(app: AppContext, path, namespaces):
	"""Create a new vault holding one domain per envchain NAMESPACE."""
	app.manager.import_from_envchain(path, list(namespaces), app.envchain)
	click.secho(f'Vault created with {len(namespaces)} domains', fg='green')
