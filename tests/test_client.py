import copy

import pytest

from fake_server import ACCOUNT_KEY
from fake_server import CLIENT_UUID
from fake_server import DOMAIN
from fake_server import FakeServer
from fake_server import GITHUB_PASSWORD
from fake_server import PASSWORD
from fake_server import USERNAME
from fake_server import build_account
from vaultaccess import client
from vaultaccess.errors import IncorrectCredentialsException
from vaultaccess.errors import InternalErrorException
from vaultaccess.errors import InvalidResponseException
from vaultaccess.errors import VaultCorruptedException
from vaultaccess.vault import Field
from vaultaccess.vault import Url


def open_vaults(server, ui, storage, config, password=PASSWORD):
    return client.open_all_vaults(
        username=USERNAME,
        password=password,
        account_key=ACCOUNT_KEY,
        uuid=CLIENT_UUID,
        domain=DOMAIN,
        ui=ui,
        storage=storage,
        config=config,
        transport=server
    )


def test_opens_the_readable_vault(server, ui, storage, config):
    vaults = open_vaults(server, ui, storage, config)

    assert len(vaults) == 1

    personal = vaults[0]

    assert personal.id == 'vault1'
    assert personal.name == 'Personal'
    assert personal.description == 'Everyday logins'
    assert len(personal.accounts) == 1

    github = personal.accounts[0]

    assert github.id == 'item1'
    assert github.name == 'GitHub'
    assert github.username == 'octocat'
    assert github.password == GITHUB_PASSWORD
    assert github.url == 'https://github.com'
    assert github.note == 'Personal account'
    assert github.urls == (Url('website', 'https://github.com'),)
    assert github.fields == (Field('pin', '1234', 'Recovery'),)

    assert server.signed_out == 1


def test_opening_twice_gives_the_same_result(server, ui, storage, config):
    assert open_vaults(server, ui, storage, config) == open_vaults(server, ui, storage, config)
    assert len(server.sessions) == 2


def test_inaccessible_vault_items_are_never_requested(server, ui, storage, config):
    open_vaults(server, ui, storage, config)

    item_requests = [path for method, path in server.requests if path.endswith('/items')]

    assert item_requests == ['v1/vault/vault1/0/items']


def test_only_the_exact_trash_marker_hides_an_item(rsa_keys, ui, storage, config):
    account_info, keysets, item_batches = build_account(rsa_keys, trashed_markers=('Y', 'y', ' Y', ''))
    server = FakeServer(account_info=account_info, keysets=keysets, item_batches=item_batches)

    accounts = open_vaults(server, ui, storage, config)[0].accounts

    assert [single.id for single in accounts] == ['item1', 'trashed1', 'trashed2', 'trashed3']


def test_default_configuration_is_built_from_the_domain(server, ui, storage):
    vaults = open_vaults(server, ui, storage, config=None)

    assert vaults[0].name == 'Personal'


def test_failed_sign_out_is_an_error(server, ui, storage, config):
    server.sign_out_succeeds = False

    with pytest.raises(InternalErrorException):
        open_vaults(server, ui, storage, config)


def test_signs_out_after_a_failure(server, ui, storage, config):
    server.keysets = {'keysets': []}

    with pytest.raises(InvalidResponseException):
        open_vaults(server, ui, storage, config)

    assert server.signed_out == 1


def test_sign_out_failure_does_not_hide_the_original_error(server, ui, storage, config):
    server.keysets = {'keysets': []}
    server.sign_out_succeeds = False

    with pytest.raises(InvalidResponseException):
        open_vaults(server, ui, storage, config)

    assert server.signed_out == 1


def test_missing_vault_key_fails_the_whole_run(server, ui, storage, config):
    broken = copy.deepcopy(server.account_info)

    for single_access in broken['me']['vaultAccess']:
        if single_access['vaultUuid'] == 'vault1':
            del single_access['encVaultKey']

    server.account_info = broken

    with pytest.raises(VaultCorruptedException):
        open_vaults(server, ui, storage, config)

    assert server.signed_out == 1


def test_wrong_password_never_signs_out(server, ui, storage, config):
    with pytest.raises(IncorrectCredentialsException):
        open_vaults(server, ui, storage, config, password='wrong')

    assert server.signed_out == 0


class TestGenerateRandomUuid:

    def test_format(self):
        uuid = client.generate_random_uuid()

        assert len(uuid) == 26
        assert uuid == uuid.lower()
        assert '=' not in uuid

    def test_uses_the_entropy_source(self):
        assert client.generate_random_uuid(entropy_source=lambda size: bytes(size)) == 'a' * 26

    def test_is_different_every_time(self):
        assert client.generate_random_uuid() != client.generate_random_uuid()
