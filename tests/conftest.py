import pytest
from fakes import CountingCrypto, FixedUserInput, MemoryFileSystem, MemorySecretsStorage
from wellkept.lib.model import Domain, DomainsBundle, Secret
from wellkept.lib.vaults import VaultManager


@pytest.fixture
def storage():
    return MemorySecretsStorage()


@pytest.fixture
def fs():
    return MemoryFileSystem()


@pytest.fixture
def crypto():
    return CountingCrypto()


@pytest.fixture
def user_input():
    return FixedUserInput('pw')


@pytest.fixture
def manager(storage, fs, crypto, user_input):
    return VaultManager(storage, fs, crypto, user_input, max_workers=4)


@pytest.fixture
def add_vault(storage, fs, crypto):
    """Write an encrypted vault into the fake file store and register it."""
    def _add(path, domains, password='pw', register=True):
        bundle = DomainsBundle(tuple(
            Domain(name, tuple(Secret(k, v) for k, v in secrets.items())) for name, secrets in domains.items()
        ))
        fs.files[path] = crypto.encrypt(bundle.to_json(), password)
        crypto.encrypt_calls = 0
        if register:
            storage.seed(path, password)
        return bundle
    return _add
