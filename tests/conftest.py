import pytest

from fake_server import ACCOUNT_KEY
from fake_server import CLIENT_UUID
from fake_server import DOMAIN
from fake_server import FakeServer
from fake_server import PASSWORD
from fake_server import ScriptedUi
from fake_server import USERNAME
from fake_server import build_account
from fake_server import generate_rsa_keys
from vaultaccess.backend import MemoryStore
from vaultaccess.config import ClientConfiguration
from vaultaccess.credentials import Credentials
from vaultaccess.transport import RestClient
from vaultaccess.ui import Passcode


@pytest.fixture(scope='session')
def rsa_keys():
    return generate_rsa_keys()


@pytest.fixture
def account(rsa_keys):
    return build_account(rsa_keys)


@pytest.fixture
def server(account):
    account_info, keysets, item_batches = account

    return FakeServer(account_info=account_info, keysets=keysets, item_batches=item_batches)


@pytest.fixture
def config():
    return ClientConfiguration(domain=DOMAIN)


@pytest.fixture
def credentials():
    return Credentials(
        username=USERNAME,
        password=PASSWORD,
        account_key=ACCOUNT_KEY,
        uuid=CLIENT_UUID,
        domain=DOMAIN
    )


@pytest.fixture
def storage():
    return MemoryStore()


@pytest.fixture
def ui():
    return ScriptedUi(Passcode(code='123456', remember_me=True))


@pytest.fixture
def rest(server, config):
    return RestClient(transport=server, base_url=config.api_url, client_id=config.client_id)
