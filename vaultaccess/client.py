"""
The public entry point: log in, unlock the keys, download and decrypt every
readable vault, sign out.
"""

import logging
import os

from vaultaccess import api
from vaultaccess import keyset
from vaultaccess import login
from vaultaccess import vault
from vaultaccess.byte_string import ByteString
from vaultaccess.config import ClientConfiguration
from vaultaccess.config import get_domain
from vaultaccess.credentials import Credentials
from vaultaccess.errors import InternalErrorException
from vaultaccess.errors import VaultAccessException
from vaultaccess.transport import RequestsTransport
from vaultaccess.transport import RestClient


logger = logging.getLogger(__name__)

_BITS_PER_BYTE = 8
_UUID_SIZE = 128 // _BITS_PER_BYTE

ACCOUNT_INFO_ENDPOINT = (
    "v1/account?attrs=billing,counts,groups,invite,me,settings,tier,user-flags,users,vaults"
)
KEYSETS_ENDPOINT = "v1/account/keysets"
SIGN_OUT_ENDPOINT = "v1/session/signout"

__all__ = [
    'generate_random_uuid',
    'get_domain',
    'open_all_vaults',
]


def generate_random_uuid(entropy_source=os.urandom):
    """A fresh client instance id, 26 lowercase base32 characters."""

    generated_bytes = ByteString(entropy_source(_UUID_SIZE))

    return generated_bytes.base32_encode_and_unpad_and_lower()


def open_all_vaults(
        username,
        password,
        account_key,
        uuid,
        domain,
        ui,
        storage,
        config=None,
        transport=None
):
    """
    Returns every vault the user can read with all the login items in it.

    :param str username:
    :param str password:
    :param str account_key: as printed on the emergency kit
    :param str uuid: the client instance id, see ``generate_random_uuid``
    :param str domain: e.g. ``my.1password.com``, see ``get_domain``
    :param vaultaccess.ui.Ui ui: asked for a second factor code when needed
    :param vaultaccess.backend.ValueSource storage: keeps the "remember me"
        token between runs
    :param vaultaccess.config.ClientConfiguration config:
    :param transport: anything with ``get``, ``post`` and ``put``, a
        ``RequestsTransport`` by default
    :rtype: list[vaultaccess.vault.Vault]
    """

    if config is None:
        config = ClientConfiguration(domain=domain)
    elif config.domain != domain:
        config = config._replace(domain=domain)

    if transport is None:
        transport = RequestsTransport(timeout=config.timeout)

    credentials = Credentials(
        username=username,
        password=password,
        account_key=account_key,
        uuid=uuid,
        domain=domain
    )

    vaults = open_all_vaults_with_client_info(
        credentials=credentials,
        ui=ui,
        storage=storage,
        config=config,
        transport=transport
    )

    return vaults


def open_all_vaults_with_client_info(credentials, ui, storage, config, transport):
    rest = RestClient(
        transport=transport,
        base_url=config.api_url,
        client_id=config.client_id
    )

    login_result = login.login(
        credentials=credentials,
        ui=ui,
        storage=storage,
        rest=rest,
        config=config
    )

    session_key = login_result.session_key
    rest = login_result.rest

    try:
        account_info = get_account_info(session_key=session_key, rest=rest)
        keysets = get_keysets(session_key=session_key, rest=rest)

        keychain = keyset.decrypt_all_keys(
            account_info=account_info,
            keysets=keysets,
            credentials=credentials,
            master_key_id=config.master_key_id
        )

        vaults = vault.get_vaults(
            account_info=account_info,
            session_key=session_key,
            keychain=keychain,
            rest=rest,
            config=config
        )

    except BaseException as e:
        sign_out_safely(rest=rest, in_flight_error=e)

        raise

    sign_out(rest)

    return vaults


def get_account_info(session_key, rest):
    return api.get_encrypted_json(rest, ACCOUNT_INFO_ENDPOINT, session_key)


def get_keysets(session_key, rest):
    return api.get_encrypted_json(rest, KEYSETS_ENDPOINT, session_key)


def sign_out(rest):
    response = api.put_json(rest, SIGN_OUT_ENDPOINT)

    if not isinstance(response, dict) or response.get('success') != 1:
        raise InternalErrorException("Failed to sign out")

    logger.info("signed out")


def sign_out_safely(rest, in_flight_error=None):
    """
    Signs out.  When ``in_flight_error`` is already on its way up, a failure
    here is only logged so it doesn't replace the original one.
    """

    try:
        sign_out(rest)

    except VaultAccessException as e:
        if in_flight_error is None:
            raise

        logger.warning("failed to sign out after an earlier error: %s", e)
