"""
Request helpers shared by the login and the vault code: plain and encrypted
JSON calls plus the mapping of failed responses onto our exceptions.
"""

import json

from vaultaccess.errors import IncorrectCredentialsException
from vaultaccess.errors import InternalErrorException
from vaultaccess.errors import InvalidResponseException
from vaultaccess.errors import NetworkException
from vaultaccess.keys import EncryptedContainer


INCORRECT_CREDENTIALS_ERROR_CODE = 102


def parse_server_error(text):
    """Returns None when ``text`` is not an error reported by the server."""

    try:
        error = json.loads(text)
    except (TypeError, ValueError):
        return None

    if not isinstance(error, dict) or 'errorCode' not in error:
        return None

    code = error.get('errorCode')
    message = error.get('errorMessage', '')

    if code == INCORRECT_CREDENTIALS_ERROR_CODE:
        return IncorrectCredentialsException(
            "Username, password or account key is incorrect"
        )

    return InternalErrorException(
        "The server responded with the error code {code} and the message '{message}'".format(
            code=code,
            message=message
        )
    )


def make_error(response):
    """
    :param vaultaccess.transport.RestResponse response: a failed response
    :rtype: vaultaccess.errors.VaultAccessException
    """

    if response.is_network_error:
        error = NetworkException("Network error has occurred")
        error.__cause__ = response.error

        return error

    server_error = parse_server_error(response.content)

    if server_error is not None:
        return server_error

    return InvalidResponseException(
        "Invalid or unexpected response from the server (HTTP status: {status})".format(
            status=response.status_code
        )
    )


def get_json(rest, endpoint):
    response = rest.get(endpoint)

    if not response.is_successful:
        raise make_error(response)

    return response.json()


def post_json(rest, endpoint, payload):
    response = rest.post_json(endpoint, payload)

    if not response.is_successful:
        raise make_error(response)

    return response.json()


def put_json(rest, endpoint):
    response = rest.put(endpoint)

    if not response.is_successful:
        raise make_error(response)

    return response.json()


def decrypt_json(encrypted_json, decryptor):
    """
    :param dict encrypted_json: the ``{"kid", "enc", ...}`` envelope
    :param decryptor: anything with ``decrypt(EncryptedContainer)``, an
        ``AesKey`` or a ``Keychain``
    """

    container = EncryptedContainer.parse(encrypted_json)
    plaintext = decryptor.decrypt(container)

    try:
        decrypted_json = json.loads(plaintext.decode('utf-8'))
    except (UnicodeDecodeError, ValueError) as e:
        raise InvalidResponseException(
            "Failed to parse JSON in response from the server"
        ) from e

    return decrypted_json


def get_encrypted_json(rest, endpoint, session_key):
    encrypted_json = get_json(rest, endpoint)
    decrypted_json = decrypt_json(encrypted_json, session_key)

    return decrypted_json


def post_encrypted_json(rest, endpoint, payload, session_key):
    payload_as_json = json.dumps(payload, separators=(",", ":"))
    encrypted_payload = session_key.encrypt(payload_as_json.encode('utf-8'))

    encrypted_json = post_json(rest, endpoint, encrypted_payload.to_dict())
    decrypted_json = decrypt_json(encrypted_json, session_key)

    return decrypted_json


def abbreviate_id(identifier):
    if len(identifier) > 4:
        return identifier[:4] + "..."

    return identifier


def abbreviate_ids(identifiers):
    abbreviated = (
        "'{id}'".format(id=abbreviate_id(single_id))
        for single_id
        in sorted(identifiers)
    )

    return ", ".join(abbreviated)
