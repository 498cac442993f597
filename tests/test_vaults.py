import pytest
from fakes import FixedUserInput, ScriptedEditor
from wellkept.lib.errors import UserError
from wellkept.lib.keychain import CredentialsStatus, CredentialsStatusCode, EnvchainSecret, EnvchainStorage
from wellkept.lib.model import DomainsBundle, Secret
from wellkept.lib.vaults import ClickUserInput, VaultManager, VaultStatus


# --- reading and listing ---

def test_read_vault_ok(manager, add_vault):
    bundle = add_vault('/v/a', {'prod': {'A': '1'}}, register=False)
    reading = manager.read_vault('/v/a', 'pw')
    assert reading.status is VaultStatus.OK
    assert reading.domains_bundle == bundle


def test_read_vault_failures(manager, fs, crypto, add_vault):
    assert manager.read_vault('/v/none', 'pw').status is VaultStatus.MISSING
    add_vault('/v/a', {}, register=False)
    fs.unreadable.add('/v/a')
    assert manager.read_vault('/v/a', 'pw').status is VaultStatus.CANNOT_READ
    add_vault('/v/b', {}, register=False)
    wrong = manager.read_vault('/v/b', 'other')
    assert wrong.status is VaultStatus.CANNOT_DECRYPT and 'wrong password' in wrong.error
    fs.files['/v/c'] = 'Z' + fs.files['/v/b'][1:]
    version = manager.read_vault('/v/c', 'pw')
    assert version.status is VaultStatus.CANNOT_DECRYPT and 'version' in version.error
    fs.files['/v/d'] = crypto.encrypt({'v': 2, 'domains': []}, 'pw')
    parse = manager.read_vault('/v/d', 'pw')
    assert parse.status is VaultStatus.CANNOT_PARSE and 'unknown version' in parse.error
    assert parse.domains_bundle is None


def test_list_vaults_joins_credentials_and_files(manager, storage, fs, add_vault):
    add_vault('/v/ok', {'prod': {'A': '1'}})
    storage.seed('/v/gone', 'pw')
    storage.seed('/v/broken', 'pw', CredentialsStatus(CredentialsStatusCode.BROKEN_CREDENTIALS, 'Cannot parse the credentials'))
    add_vault('/v/wrongpw', {}, password='right', register=False)
    storage.seed('/v/wrongpw', 'wrong')
    vaults = {v.vault_filepath: v for v in manager.list_vaults()}
    assert vaults['/v/ok'].status is VaultStatus.OK
    assert vaults['/v/ok'].domains_bundle.contains_domain('prod')
    assert vaults['/v/gone'].status is VaultStatus.MISSING
    assert vaults['/v/broken'].status is VaultStatus.BROKEN_KEY
    assert vaults['/v/broken'].error == 'Cannot parse the credentials'
    assert vaults['/v/wrongpw'].status is VaultStatus.CANNOT_DECRYPT
    assert vaults['/v/wrongpw'].domains_bundle is None
    assert [v.vault_filepath for v in manager.list_vaults()] == ['/v/broken', '/v/gone', '/v/ok', '/v/wrongpw']


def test_broken_key_does_not_touch_file(manager, storage, fs):
    storage.seed('/v/x', 'pw', CredentialsStatus(CredentialsStatusCode.UNKNOWN_VERSION, 'upgrade'))
    fs.unreadable.add('/v/x'); fs.files['/v/x'] = 'A'
    [v] = manager.list_vaults()
    assert v.status is VaultStatus.BROKEN_KEY


def test_listing_is_never_cached(manager, fs, add_vault):
    add_vault('/v/a', {'prod': {}})
    assert manager.list_vaults()[0].status is VaultStatus.OK
    del fs.files['/v/a']
    assert manager.list_vaults()[0].status is VaultStatus.MISSING


# --- get_secrets ---

def test_get_secrets_single_match(manager, add_vault):
    add_vault('/v/a', {'dev': {'X': '0'}})
    add_vault('/v/b', {'prod': {'B': '2', 'A': '1'}})
    add_vault('/v/c', {'stage': {}})
    assert manager.get_secrets('prod') == [Secret('A', '1'), Secret('B', '2')]


def test_get_secrets_empty_domain_is_not_an_error(manager, add_vault):
    add_vault('/v/a', {'prod': {}})
    assert manager.get_secrets('prod') == []


def test_get_secrets_ambiguous(manager, add_vault):
    add_vault('/v/a', {'prod': {'A': '1'}})
    add_vault('/v/b', {'prod': {'A': '2'}})
    add_vault('/v/c', {'dev': {}})
    with pytest.raises(UserError, match='More than one vault'):
        manager.get_secrets('prod')


def test_get_secrets_not_found(manager, add_vault, storage):
    add_vault('/v/a', {'dev': {}})
    storage.seed('/v/missing', 'pw')
    with pytest.raises(UserError, match='No vaults found'):
        manager.get_secrets('prod')


# --- create / import ---

def test_create_vault(manager, storage, fs):
    manager.create_vault('/v/new')
    assert storage.added == ['/v/new']
    [v] = manager.list_vaults()
    assert v.status is VaultStatus.OK and v.domains_bundle == DomainsBundle()


def test_create_vault_refuses_registered_path(manager, storage, fs):
    storage.seed('/v/a', 'pw')
    with pytest.raises(UserError, match='already registered'):
        manager.create_vault('/v/a')
    assert fs.writes == []


def test_create_vault_refuses_existing_file(manager, storage, fs):
    fs.files['/v/a'] = 'A...'
    with pytest.raises(UserError, match='already exists'):
        manager.create_vault('/v/a')
    assert storage.added == [] and fs.writes == []


class FakeEnvchain(EnvchainStorage):
    def __init__(self, data):
        self.data = data

    def list_envchain_secrets_for_namespace(self, namespace):
        return [EnvchainSecret(k, v) for k, v in self.data[namespace].items()]


def test_import_from_envchain(manager, storage):
    envchain = FakeEnvchain({'aws': {'AWS_SECRET': 's', 'AWS_ID': 'i'}, 'gh': {'GH_TOKEN': 't'}})
    manager.import_from_envchain('/v/imported', ['gh', 'aws'], envchain)
    assert storage.added == ['/v/imported']
    assert manager.get_secrets('aws') == [Secret('AWS_ID', 'i'), Secret('AWS_SECRET', 's')]
    assert manager.get_secrets('gh') == [Secret('GH_TOKEN', 't')]


def test_import_duplicate_namespace_fails_before_writing(manager, fs, storage):
    envchain = FakeEnvchain({'aws': {}})
    with pytest.raises(UserError, match='Duplicate name aws'):
        manager.import_from_envchain('/v/x', ['aws', 'aws'], envchain)
    assert fs.writes == [] and storage.added == []


# --- register / deregister ---

def test_register_vault_with_right_password(storage, fs, crypto, add_vault):
    add_vault('/v/a', {'prod': {}}, password='secret', register=False)
    manager = VaultManager(storage, fs, crypto, FixedUserInput('secret'))
    manager.register_vault('/v/a')
    assert storage.added == ['/v/a']
    assert fs.writes == []
    assert crypto.encrypt_calls == 0


def test_register_vault_with_wrong_password(storage, fs, crypto, add_vault):
    add_vault('/v/a', {'prod': {}}, password='secret', register=False)
    manager = VaultManager(storage, fs, crypto, FixedUserInput('guess'))
    with pytest.raises(UserError, match='cannot_decrypt'):
        manager.register_vault('/v/a')
    assert storage.added == [] and storage.records == {}


def test_register_preconditions(manager, storage, add_vault):
    with pytest.raises(UserError, match='does not exist'):
        manager.register_vault('/v/none')
    add_vault('/v/a', {})
    with pytest.raises(UserError, match='already registered'):
        manager.register_vault('/v/a')


def test_deregister_removes_every_matching_record(manager, storage, fs, add_vault):
    add_vault('/v/a', {})
    storage.seed('/v/a', 'pw')
    keep = storage.seed('/v/b', 'pw')
    manager.deregister_vault('/v/a')
    assert list(storage.records) == [keep]
    assert '/v/a' in fs.files


def test_deregister_unknown(manager):
    with pytest.raises(UserError, match='Vault not found'):
        manager.deregister_vault('/v/none')


# --- edit vault ---

def test_edit_vault_unchanged_is_a_noop(manager, fs, crypto, add_vault):
    add_vault('/v/a', {'prod': {'A': '1'}})
    editor = ScriptedEditor()
    assert manager.edit_vault('/v/a', editor) is False
    assert editor.shown == ['[prod]\nA=1\n']
    assert fs.writes == [] and crypto.encrypt_calls == 0


def test_edit_vault_writes_new_content(manager, fs, crypto, add_vault):
    add_vault('/v/a', {'prod': {'A': '1'}})
    editor = ScriptedEditor(lambda text: text + '\n[dev]\nB=2\n')
    assert manager.edit_vault('/v/a', editor) is True
    assert fs.writes == ['/v/a'] and crypto.encrypt_calls == 1
    assert manager.get_secrets('dev') == [Secret('B', '2')]
    assert manager.get_secrets('prod') == [Secret('A', '1')]


def test_edit_vault_validator_matches_parser(manager, add_vault):
    add_vault('/v/a', {})
    editor = ScriptedEditor()
    manager.edit_vault('/v/a', editor)
    is_valid = editor.validators[0]
    assert is_valid('[x]\nA=1') is None
    assert 'missing "="' in is_valid('[x]\nA')


def test_edit_vault_invalid_output_never_written(manager, fs, add_vault):
    add_vault('/v/a', {'prod': {}})
    with pytest.raises(UserError):
        manager.edit_vault('/v/a', ScriptedEditor(lambda text: 'garbage'))
    assert fs.writes == []


def test_edit_vault_requires_single_ok_vault(manager, storage, add_vault):
    with pytest.raises(UserError, match='Vault not found'):
        manager.edit_vault('/v/none', ScriptedEditor())
    add_vault('/v/a', {})
    storage.seed('/v/a', 'pw')
    with pytest.raises(UserError, match='Multiple vaults'):
        manager.edit_vault('/v/a', ScriptedEditor())
    storage.seed('/v/gone', 'pw')
    with pytest.raises(UserError, match='Invalid vault: missing'):
        manager.edit_vault('/v/gone', ScriptedEditor())


# --- edit domain ---

def test_edit_domain_splices_back(manager, fs, add_vault):
    add_vault('/v/a', {'prod': {'A': '1'}, 'dev': {'D': '0'}})
    add_vault('/v/b', {'other': {}})
    editor = ScriptedEditor(lambda text: text.replace('A=1', 'A=2\nB=3'))
    assert manager.edit_domain('prod', editor) == (True, '/v/a')
    assert editor.shown == ['[prod]\nA=1\n']
    assert fs.writes == ['/v/a']
    assert manager.get_secrets('prod') == [Secret('A', '2'), Secret('B', '3')]
    assert manager.get_secrets('dev') == [Secret('D', '0')]


def test_edit_domain_rename(manager, add_vault):
    add_vault('/v/a', {'prod': {'A': '1'}, 'dev': {}})
    manager.edit_domain('prod', ScriptedEditor(lambda text: text.replace('[prod]', '[production]')))
    assert manager.get_secrets('production') == [Secret('A', '1')]
    with pytest.raises(UserError, match='No vaults found'):
        manager.get_secrets('prod')


def test_edit_domain_rename_onto_sibling_is_rejected_by_validator(manager, add_vault):
    add_vault('/v/a', {'prod': {}, 'dev': {}})
    editor = ScriptedEditor()
    manager.edit_domain('prod', editor)
    assert 'Duplicate name dev' in editor.validators[0]('[dev]\nA=1')
    assert 'first line' in editor.validators[0]('A=1')


def test_edit_domain_unchanged(manager, fs, crypto, add_vault):
    add_vault('/v/a', {'prod': {'A': '1'}})
    assert manager.edit_domain('prod', ScriptedEditor()) == (False, None)
    assert fs.writes == [] and crypto.encrypt_calls == 0


def test_edit_domain_lookup_errors(manager, add_vault):
    with pytest.raises(UserError, match='No vault contains domain prod'):
        manager.edit_domain('prod', ScriptedEditor())
    add_vault('/v/a', {'prod': {}})
    add_vault('/v/b', {'prod': {}})
    with pytest.raises(UserError, match='Multiple vaults contain domain prod'):
        manager.edit_domain('prod', ScriptedEditor())


# --- stats ---

def test_vaults_and_stats(manager, storage, add_vault):
    add_vault('/v/a', {'prod': {'A': '1', 'B': '2'}, 'dev': {}})
    add_vault('/v/b', {}, password='x', register=False)
    storage.seed('/v/b', 'y')
    stats = manager.get_vaults_and_stats()
    assert stats[0].ok and stats[0].status == 'ok'
    assert [(d.name, d.num_secrets) for d in stats[0].domains] == [('dev', 0), ('prod', 2)]
    assert not stats[1].ok and stats[1].status.startswith('cannot_decrypt ')
    assert stats[1].domains == []


# --- password prompts ---

def prompts(monkeypatch, answers):
    monkeypatch.setattr('click.prompt', lambda *a, **kw: answers.pop(0))


def test_choose_new_password(monkeypatch):
    prompts(monkeypatch, ['s3cret', 's3cret'])
    assert ClickUserInput().choose_new_password() == 's3cret'


def test_choose_new_password_mismatch(monkeypatch):
    prompts(monkeypatch, ['one', 'two'])
    with pytest.raises(UserError, match='do not match'):
        ClickUserInput().choose_new_password()


def test_choose_new_password_empty(monkeypatch):
    prompts(monkeypatch, ['', ''])
    with pytest.raises(UserError, match='cannot be empty'):
        ClickUserInput().choose_new_password()


class RecordingEnvchain(EnvchainStorage):
    def __init__(self, data):
        self.data = data
        self.queried = []

    def list_envchain_secrets_for_namespace(self, namespace):
        self.queried.append(namespace)
        return [EnvchainSecret(k, v) for k, v in self.data.get(namespace, [])]


def test_import_empty_namespace_rejected_before_querying(manager, fs, storage):
    envchain = RecordingEnvchain({'': [('A', '1')]})
    with pytest.raises(UserError, match='namespace cannot be empty'):
        manager.import_from_envchain('/v/x', ['ok', ''], envchain)
    assert envchain.queried == []
    assert fs.writes == [] and storage.added == []


def test_import_empty_variable_name_never_persisted(manager, fs, storage):
    envchain = RecordingEnvchain({'ns': [('', 'value')]})
    with pytest.raises(UserError, match='empty name'):
        manager.import_from_envchain('/v/x', ['ns'], envchain)
    assert fs.writes == [] and storage.added == []


def test_import_checks_destination_before_querying_envchain(manager, fs, storage, add_vault):
    envchain = RecordingEnvchain({'aws': [('K', 'v')]})
    add_vault('/v/taken', {})
    with pytest.raises(UserError, match='already registered'):
        manager.import_from_envchain('/v/taken', ['aws'], envchain)
    fs.files['/v/file'] = 'A...'
    with pytest.raises(UserError, match='already exists'):
        manager.import_from_envchain('/v/file', ['aws'], envchain)
    assert envchain.queried == []
    assert fs.writes == []
