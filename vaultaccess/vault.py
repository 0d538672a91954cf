"""
Vaults and the login items inside them.
"""

import collections
import logging

from vaultaccess import api
from vaultaccess.errors import InvalidResponseException
from vaultaccess.errors import VaultCorruptedException


logger = logging.getLogger(__name__)

TRASHED_MARKER = 'Y'


Vault = collections.namedtuple('Vault', ['id', 'name', 'description', 'accounts'])

Account = collections.namedtuple(
    'Account',
    [
        'id',
        'name',
        'username',
        'password',
        'url',
        'note',
        'urls',
        'fields',
    ]
)

Url = collections.namedtuple('Url', ['name', 'value'])

Field = collections.namedtuple('Field', ['name', 'value', 'section'])


def _string_at(json_object, key, default=''):
    if not isinstance(json_object, dict):
        return default

    value = json_object.get(key, default)

    if value is None:
        return default

    return str(value)


def _list_at(json_object, key):
    if not isinstance(json_object, dict):
        return []

    value = json_object.get(key)

    if not isinstance(value, list):
        return []

    return value


def _decrypt_json(encrypted_json, keychain, what):
    try:
        decrypted_json = api.decrypt_json(encrypted_json, keychain)
    except InvalidResponseException as e:
        message = "Failed to decrypt {what}".format(what=what)

        raise VaultCorruptedException(message) from e

    return decrypted_json


def build_list_of_accessible_vaults(account_info, read_access_flag=32):
    me = account_info.get('me') if isinstance(account_info, dict) else None
    accessible = []

    for single_access in _list_at(me, 'vaultAccess'):
        try:
            acl = int(single_access.get('acl', 0))
        except (TypeError, ValueError) as e:
            raise InvalidResponseException("Vault access list is malformed") from e

        if acl & read_access_flag:
            accessible.append(_string_at(single_access, 'vaultUuid'))

    return accessible


def get_vaults(account_info, session_key, keychain, rest, config):
    """
    Fetches every vault the user can read.

    :param dict account_info:
    :param vaultaccess.keys.AesKey session_key:
    :param vaultaccess.keys.Keychain keychain: fully populated
    :param vaultaccess.transport.RestClient rest:
    :param vaultaccess.config.ClientConfiguration config:
    :rtype: list[Vault]
    """

    accessible_vaults = set(
        build_list_of_accessible_vaults(
            account_info=account_info,
            read_access_flag=config.read_access_flag
        )
    )

    all_vaults = _list_at(account_info, 'vaults')
    all_vault_ids = set(_string_at(single_vault, 'uuid') for single_vault in all_vaults)

    logger.info("accessible vaults: %s", api.abbreviate_ids(accessible_vaults))
    logger.info(
        "inaccessible vaults: %s",
        api.abbreviate_ids(all_vault_ids - accessible_vaults)
    )

    vaults = [
        get_vault(
            vault_info=single_vault,
            session_key=session_key,
            keychain=keychain,
            rest=rest,
            config=config
        )
        for single_vault
        in all_vaults
        if _string_at(single_vault, 'uuid') in accessible_vaults
    ]

    return vaults


def get_vault(vault_info, session_key, keychain, rest, config):
    vault_id = _string_at(vault_info, 'uuid')
    attributes = _decrypt_json(vault_info.get('encAttrs'), keychain, "vault attributes")

    vault = Vault(
        id=vault_id,
        name=_string_at(attributes, 'name'),
        description=_string_at(attributes, 'desc'),
        accounts=get_vault_accounts(
            vault_id=vault_id,
            session_key=session_key,
            keychain=keychain,
            rest=rest,
            config=config
        )
    )

    return vault


def get_vault_accounts(vault_id, session_key, keychain, rest, config):
    # Every pass over the generator goes to the network again
    items = list(enumerate_items_in_vault(vault_id=vault_id, session_key=session_key, rest=rest))

    template_counts = collections.Counter(
        _string_at(single_item, 'templateUuid', 'unknown') for single_item in items
    )

    logger.debug(
        "item template count in '%s': %s",
        api.abbreviate_id(vault_id),
        ", ".join(
            "{template}: {count}".format(template=template, count=count)
            for template, count
            in sorted(template_counts.items())
        )
    )

    accounts = tuple(
        parse_account(item=single_item, keychain=keychain)
        for single_item
        in items
        if should_keep_account(item=single_item, template_id=config.account_template_id)
    )

    return accounts


def enumerate_items_in_vault(vault_id, session_key, rest):
    """
    Yields raw items batch by batch.  The last batch says
    ``"batchComplete": true``, a missing flag means the same.
    """

    batch_id = 0

    while True:
        endpoint = "v1/vault/{id}/{batch_id}/items".format(id=vault_id, batch_id=batch_id)
        response = api.get_encrypted_json(rest, endpoint, session_key)

        if not isinstance(response, dict):
            raise InvalidResponseException("Invalid response to the item batch request")

        for single_item in _list_at(response, 'items'):
            yield single_item

        if response.get('batchComplete', True):
            return

        try:
            next_batch_id = int(response['contentVersion'])
        except (KeyError, TypeError, ValueError) as e:
            raise InvalidResponseException(
                "Incomplete item batch without a 'contentVersion'"
            ) from e

        # Batches only move forward
        if next_batch_id <= batch_id:
            raise InvalidResponseException(
                "Item batch {next} does not follow batch {current}".format(
                    next=next_batch_id,
                    current=batch_id
                )
            )

        batch_id = next_batch_id


def should_keep_account(item, template_id='001'):
    if _string_at(item, 'templateUuid') != template_id:
        return False

    # Only the exact marker means deleted
    if _string_at(item, 'trashed') == TRASHED_MARKER:
        return False

    return True


def parse_account(item, keychain):
    overview = _decrypt_json(item.get('encOverview'), keychain, "item overview")
    details = _decrypt_json(item.get('encDetails'), keychain, "item details")
    fields = _list_at(details, 'fields')

    account = Account(
        id=_string_at(item, 'uuid'),
        name=_string_at(overview, 'title'),
        username=find_account_field(fields, 'username'),
        password=find_account_field(fields, 'password'),
        url=_string_at(overview, 'url'),
        note=_string_at(details, 'notesPlain'),
        urls=extract_urls(overview),
        fields=extract_fields(details)
    )

    return account


def find_account_field(fields, name):
    for single_field in fields:
        if _string_at(single_field, 'designation') == name:
            return _string_at(single_field, 'value')

    return ''


def extract_urls(overview):
    urls = tuple(
        Url(name=_string_at(single_url, 'l'), value=_string_at(single_url, 'u'))
        for single_url
        in _list_at(overview, 'URLs')
    )

    return urls


def extract_fields(details):
    fields = []

    for single_section in _list_at(details, 'sections'):
        section_name = _string_at(single_section, 'title')

        for single_field in _list_at(single_section, 'fields'):
            fields.append(
                Field(
                    name=_string_at(single_field, 't'),
                    value=_string_at(single_field, 'v'),
                    section=section_name
                )
            )

    return tuple(fields)
