import os, json
import pytest

FIXTURES = os.path.join(os.path.dirname(__file__), 'fixtures')

def pytest_addoption(parser):
    parser.addoption("--device", action="store_true", default=False,
                     help="run tests that need a real authenticator (and your finger)")

def pytest_configure(config):
    config.addinivalue_line("markers", "device: needs a real authenticator")

@pytest.fixture(scope='session')
def dev(request):
    # a connected security key, only when asked for on command line
    if not request.config.getoption("--device"):
        raise pytest.skip("need --device for this test")

    from celari.transport import find_first

    a = find_first()
    if a is None:
        raise pytest.fail('no authenticator found')
    return a

@pytest.fixture
def soft():
    # fresh software authenticator, nothing saved to disk
    from celari.emulator import SoftAuthenticator
    return SoftAuthenticator()

@pytest.fixture
def gateway(soft):
    from celari.proto import PasskeyGateway
    return PasskeyGateway(soft)

@pytest.fixture
def store():
    from celari.storage import MemoryKeyStore
    return MemoryKeyStore()

@pytest.fixture
def memory_keyring():
    # swap OS keychain for a dict, for the duration of one test
    import keyring, keyring.errors
    from keyring.backend import KeyringBackend

    class DictKeyring(KeyringBackend):
        priority = 1

        def __init__(self):
            super().__init__()
            self.items = {}

        def get_password(self, service, username):
            return self.items.get((service, username))

        def set_password(self, service, username, password):
            self.items[(service, username)] = password

        def delete_password(self, service, username):
            if (service, username) not in self.items:
                raise keyring.errors.PasswordDeleteError(username)
            del self.items[(service, username)]

    was = keyring.get_keyring()
    kr = DictKeyring()
    keyring.set_keyring(kr)
    yield kr
    keyring.set_keyring(was)

@pytest.fixture(scope='session')
def fixture_json():
    # load one of the files generated by the browser-side code
    def doit(fname):
        with open(os.path.join(FIXTURES, fname), 'rt') as fd:
            return json.load(fd)
    return doit

@pytest.fixture(scope='session')
def p256_vector(fixture_json):
    return {k: (v if k == 'pkcs8' else bytes.fromhex(v))
                for k, v in fixture_json('p256-key.json').items()}

# EOF
