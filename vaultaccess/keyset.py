"""
Unlocks every key the account owns.  The master key is derived from the
password and the account key, it opens the first keyset, each keyset opens
the next and the RSA keys finally open the vault keys.
"""

import binascii
import logging

from vaultaccess import api
from vaultaccess.byte_string import ByteString
from vaultaccess.errors import InvalidResponseException
from vaultaccess.errors import VaultCorruptedException
from vaultaccess.keys import AesKey
from vaultaccess.keys import EncryptedContainer
from vaultaccess.keys import Keychain
from vaultaccess.keys import RsaKey


logger = logging.getLogger(__name__)

MASTER_KEY_ID = 'mp'


def _decrypt(encrypted_json, keychain):
    try:
        container = EncryptedContainer.parse(encrypted_json)
    except InvalidResponseException as e:
        raise VaultCorruptedException("Encrypted key is malformed") from e

    return keychain.decrypt(container)


def _require_list(json_value, name):
    if not isinstance(json_value, list):
        message = "Invalid response: '{name}' must be a list".format(name=name)

        raise InvalidResponseException(message)

    return json_value


def decrypt_all_keys(account_info, keysets, credentials, master_key_id=MASTER_KEY_ID):
    """
    :param dict account_info: response to ``v1/account``
    :param dict keysets: response to ``v1/account/keysets``
    :param vaultaccess.credentials.Credentials credentials:
    :param str master_key_id:
    :rtype: vaultaccess.keys.Keychain
    """

    if not isinstance(keysets, dict) or not isinstance(account_info, dict):
        raise InvalidResponseException("Invalid account or keyset information")

    keychain = Keychain()

    decrypt_keysets(
        keysets=_require_list(keysets.get('keysets'), 'keysets'),
        credentials=credentials,
        keychain=keychain,
        master_key_id=master_key_id
    )

    me = account_info.get('me')
    access_list = me.get('vaultAccess', []) if isinstance(me, dict) else []

    decrypt_vault_keys(
        access_list=_require_list(access_list, 'vaultAccess'),
        keychain=keychain
    )

    logger.debug(
        "unlocked AES keys: %s",
        api.abbreviate_ids(keychain.aes_key_ids)
    )

    return keychain


def _is_encrypted_by_master_key(keyset, master_key_id):
    return keyset.get('encryptedBy') == master_key_id


def sort_keysets(keysets, master_key_id=MASTER_KEY_ID):
    """Master key keysets first, then the newest ones."""

    for single_keyset in keysets:
        if not isinstance(single_keyset, dict):
            raise InvalidResponseException("Invalid keyset structure")

    try:
        sorted_keysets = sorted(
            keysets,
            key=lambda keyset: (
                not _is_encrypted_by_master_key(keyset, master_key_id),
                -int(keyset.get('sn', 0))
            )
        )

    except (TypeError, ValueError) as e:
        raise InvalidResponseException("Invalid keyset serial number") from e

    if not sorted_keysets or not _is_encrypted_by_master_key(sorted_keysets[0], master_key_id):
        message = "Invalid keyset structure, the first key must be encrypted by '{id}'".format(
            id=master_key_id
        )

        raise InvalidResponseException(message)

    return sorted_keysets


def derive_master_key(algorithm, iterations, salt, credentials, master_key_id=MASTER_KEY_ID):
    raw_master_key = credentials.derive_two_secret_key(
        algorithm=algorithm,
        iterations=iterations,
        salt=salt
    )

    master_key = AesKey(key_id=master_key_id, key=raw_master_key)

    return master_key


def decrypt_keysets(keysets, credentials, keychain, master_key_id=MASTER_KEY_ID):
    sorted_keysets = sort_keysets(keysets=keysets, master_key_id=master_key_id)
    symmetric_key_data = sorted_keysets[0].get('encSymKey')

    try:
        master_key = derive_master_key(
            algorithm=str(symmetric_key_data['alg']),
            iterations=int(symmetric_key_data['p2c']),
            salt=ByteString.from_base64(symmetric_key_data['p2s']),
            credentials=credentials,
            master_key_id=master_key_id
        )

    except (KeyError, TypeError, ValueError, binascii.Error) as e:
        raise VaultCorruptedException(
            "Master key derivation parameters are missing or malformed"
        ) from e

    keychain.add_aes_key(master_key)

    for single_keyset in sorted_keysets:
        decrypt_keyset(keyset=single_keyset, keychain=keychain)


def decrypt_keyset(keyset, keychain):
    decrypt_aes_key(encrypted_json=keyset.get('encSymKey'), keychain=keychain)
    decrypt_rsa_key(
        encrypted_json=keyset.get('encPriKey'),
        keychain=keychain,
        default_key_id=str(keyset.get('uuid', ''))
    )


def decrypt_aes_key(encrypted_json, keychain):
    plaintext = _decrypt(encrypted_json, keychain)
    key = AesKey.parse(plaintext)
    keychain.add_aes_key(key)

    return key


def decrypt_rsa_key(encrypted_json, keychain, default_key_id):
    """
    The private key comes either as a JWK or as PKCS#8 DER; the latter has
    no id of its own and is filed under ``default_key_id``.
    """

    plaintext = _decrypt(encrypted_json, keychain)

    if plaintext.lstrip()[:1] == b'{':
        key = RsaKey.parse(plaintext)
    else:
        key = RsaKey.from_pkcs8(key_id=default_key_id, der=plaintext)

    keychain.add_rsa_key(key)

    return key


def decrypt_vault_keys(access_list, keychain):
    for single_access in access_list:
        if not isinstance(single_access, dict):
            raise VaultCorruptedException("Vault access record is malformed")

        decrypt_aes_key(encrypted_json=single_access.get('encVaultKey'), keychain=keychain)
