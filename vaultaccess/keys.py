import binascii
import json

from vaultaccess import crypto
from vaultaccess.asn1 import RsaParameters
from vaultaccess.asn1 import parse_private_key_pkcs8
from vaultaccess.byte_string import ByteString
from vaultaccess.errors import InvalidResponseException
from vaultaccess.errors import UnsupportedFeatureException
from vaultaccess.errors import VaultCorruptedException


AES_GCM_SCHEME = 'A256GCM'
AES_CBC_SCHEME = 'A256CBC'
AES_CBC_HMAC_SCHEME = 'A256CBC-HS256'
RSA_OAEP_SCHEME = 'RSA-OAEP'
RSA_OAEP_SHA256_SCHEME = 'RSA-OAEP-256'
RSA_PKCS1_SCHEME = 'RSA1_5'

AES_SCHEMES = (AES_GCM_SCHEME, AES_CBC_SCHEME, AES_CBC_HMAC_SCHEME)
RSA_SCHEMES = (RSA_OAEP_SCHEME, RSA_OAEP_SHA256_SCHEME, RSA_PKCS1_SCHEME)

DEFAULT_CONTAINER = 'b5+jwk+json'

_IV_SIZES = {
    AES_GCM_SCHEME: crypto.AES_GCM_IV_SIZE,
    AES_CBC_SCHEME: crypto.AES_CBC_IV_SIZE,
    AES_CBC_HMAC_SCHEME: crypto.AES_CBC_IV_SIZE,
}


def _load_json_object(value):
    if isinstance(value, dict):
        return value

    try:
        if isinstance(value, bytes):
            value = value.decode('utf-8')

        loaded = json.loads(value)

    except (UnicodeDecodeError, ValueError) as e:
        raise VaultCorruptedException("Key material is not valid JSON") from e

    if not isinstance(loaded, dict):
        raise VaultCorruptedException("Key material must be a JSON object")

    return loaded


def _decode_key_field(key_data, field_name):
    try:
        decoded = ByteString.from_base64(key_data[field_name])

    except KeyError as e:
        message = "Key is missing the '{field}' field".format(field=field_name)

        raise VaultCorruptedException(message) from e

    except (binascii.Error, ValueError, TypeError) as e:
        message = "Key field '{field}' is not valid base64".format(
            field=field_name
        )

        raise VaultCorruptedException(message) from e

    return decoded


class EncryptedContainer:
    """The wire envelope: ``{"kid", "enc", "cty", "iv", "data"}``."""

    def __init__(self, key_id, scheme, container, initialization_vector, ciphertext):
        self._key_id = key_id
        self._scheme = scheme
        self._container = container
        self._initialization_vector = initialization_vector
        self._ciphertext = ciphertext

    @classmethod
    def parse(cls, json_object):
        if not isinstance(json_object, dict):
            raise InvalidResponseException("Encrypted envelope must be a JSON object")

        try:
            key_id = str(json_object['kid'])
            scheme = str(json_object['enc'])
            encoded_ciphertext = json_object['data']

        except KeyError as e:
            message = "Encrypted envelope is missing {field}".format(field=e)

            raise InvalidResponseException(message) from e

        encoded_initialization_vector = json_object.get('iv')

        try:
            ciphertext = ByteString.from_base64(encoded_ciphertext)

            if encoded_initialization_vector is None:
                initialization_vector = None
            else:
                initialization_vector = ByteString.from_base64(
                    encoded_initialization_vector
                )

        except (binascii.Error, ValueError, TypeError) as e:
            raise InvalidResponseException(
                "Encrypted envelope contains invalid base64"
            ) from e

        new_container = cls(
            key_id=key_id,
            scheme=scheme,
            container=json_object.get('cty', DEFAULT_CONTAINER),
            initialization_vector=initialization_vector,
            ciphertext=ciphertext
        )

        return new_container

    @property
    def key_id(self):
        return self._key_id

    @property
    def scheme(self):
        return self._scheme

    @property
    def container(self):
        return self._container

    @property
    def initialization_vector(self):
        return self._initialization_vector

    @property
    def ciphertext(self):
        return self._ciphertext

    def to_dict(self):
        envelope = {
            'kid': self._key_id,
            'enc': self._scheme,
            'cty': self._container,
            'data': ByteString(self._ciphertext).urlsafe_base64_encode_and_unpad(),
        }

        if self._initialization_vector is not None:
            envelope['iv'] = ByteString(
                self._initialization_vector
            ).urlsafe_base64_encode_and_unpad()

        return envelope


class AesKey:

    def __init__(self, key_id, key):
        self._key_id = key_id
        self._key = ByteString(key)

    @classmethod
    def parse(cls, json_value):
        key_data = _load_json_object(json_value)

        try:
            key_id = str(key_data['kid'])
        except KeyError as e:
            raise VaultCorruptedException("AES key is missing the 'kid' field") from e

        raw_key = _decode_key_field(key_data=key_data, field_name='k')
        new_key = cls(key_id=key_id, key=raw_key)

        return new_key

    @property
    def key_id(self):
        return self._key_id

    @property
    def key(self):
        return self._key

    def _require_initialization_vector(self, container):
        if container.initialization_vector is None:
            message = "Container encrypted with {scheme} has no IV".format(
                scheme=container.scheme
            )

            raise VaultCorruptedException(message)

        return container.initialization_vector

    def decrypt(self, container):
        """
        :param EncryptedContainer container:
        :rtype: ByteString
        """

        scheme = container.scheme
        initialization_vector = self._require_initialization_vector(container)

        if scheme == AES_GCM_SCHEME:
            plaintext = crypto.decrypt_aes_gcm(
                key=self._key,
                initialization_vector=initialization_vector,
                ciphertext=container.ciphertext
            )

        elif scheme == AES_CBC_SCHEME:
            plaintext = crypto.decrypt_aes_cbc(
                key=self._key,
                initialization_vector=initialization_vector,
                ciphertext=container.ciphertext
            )

        elif scheme == AES_CBC_HMAC_SCHEME:
            plaintext = crypto.decrypt_aes_cbc_hmac(
                key=self._key,
                initialization_vector=initialization_vector,
                ciphertext=container.ciphertext
            )

        else:
            message = "Encryption scheme '{scheme}' is not supported by AES keys".format(
                scheme=scheme
            )

            raise UnsupportedFeatureException(message)

        return plaintext

    def encrypt(self, plaintext, initialization_vector=None, scheme=AES_GCM_SCHEME):
        if scheme not in _IV_SIZES:
            message = "Encryption scheme '{scheme}' is not supported by AES keys".format(
                scheme=scheme
            )

            raise UnsupportedFeatureException(message)

        if initialization_vector is None:
            initialization_vector = crypto.random_bytes(_IV_SIZES[scheme])

        if scheme == AES_GCM_SCHEME:
            ciphertext = crypto.encrypt_aes_gcm(
                key=self._key,
                initialization_vector=initialization_vector,
                plaintext=plaintext
            )

        elif scheme == AES_CBC_SCHEME:
            ciphertext = crypto.encrypt_aes_cbc(
                key=self._key,
                initialization_vector=initialization_vector,
                plaintext=plaintext
            )

        else:
            ciphertext = crypto.encrypt_aes_cbc_hmac(
                key=self._key,
                initialization_vector=initialization_vector,
                plaintext=plaintext
            )

        container = EncryptedContainer(
            key_id=self._key_id,
            scheme=scheme,
            container=DEFAULT_CONTAINER,
            initialization_vector=ByteString(initialization_vector),
            ciphertext=ciphertext
        )

        return container


class RsaKey:
    _MODULUS_KEY = 'n'
    _PUBLIC_EXPONENT_KEY = 'e'
    _PRIVATE_EXPONENT_KEY = 'd'
    _FIRST_PRIME_FACTOR_KEY = 'p'
    _SECOND_PRIME_FACTOR_KEY = 'q'
    _FIRST_CRT_EXPONENT_KEY = 'dp'
    _SECOND_CRT_EXPONENT_KEY = 'dq'
    _CRT_COEFFICIENT_KEY = 'qi'

    def __init__(self, key_id, parameters):
        """

        :param str key_id:
        :param RsaParameters parameters:
        """

        self._key_id = key_id
        self._parameters = parameters

    @classmethod
    def parse(cls, json_value):
        key_data = _load_json_object(json_value)

        try:
            key_id = str(key_data['kid'])
        except KeyError as e:
            raise VaultCorruptedException("RSA key is missing the 'kid' field") from e

        field_names = (
            cls._MODULUS_KEY,
            cls._PUBLIC_EXPONENT_KEY,
            cls._PRIVATE_EXPONENT_KEY,
            cls._FIRST_PRIME_FACTOR_KEY,
            cls._SECOND_PRIME_FACTOR_KEY,
            cls._FIRST_CRT_EXPONENT_KEY,
            cls._SECOND_CRT_EXPONENT_KEY,
            cls._CRT_COEFFICIENT_KEY,
        )

        typed_parameters = (
            _decode_key_field(key_data=key_data, field_name=single_field).to_integer()
            for single_field
            in field_names
        )

        parameters = RsaParameters(*typed_parameters)
        new_key = cls(key_id=key_id, parameters=parameters)

        return new_key

    @classmethod
    def from_pkcs8(cls, key_id, der):
        parameters = parse_private_key_pkcs8(der)
        new_key = cls(key_id=key_id, parameters=parameters)

        return new_key

    @property
    def key_id(self):
        return self._key_id

    @property
    def parameters(self):
        return self._parameters

    def decrypt(self, container):
        scheme = container.scheme

        if scheme == RSA_OAEP_SCHEME:
            plaintext = crypto.decrypt_rsa_oaep(
                parameters=self._parameters,
                ciphertext=container.ciphertext
            )

        elif scheme == RSA_OAEP_SHA256_SCHEME:
            plaintext = crypto.decrypt_rsa_oaep_sha256(
                parameters=self._parameters,
                ciphertext=container.ciphertext
            )

        elif scheme == RSA_PKCS1_SCHEME:
            plaintext = crypto.decrypt_rsa_pkcs1(
                parameters=self._parameters,
                ciphertext=container.ciphertext
            )

        else:
            message = "Encryption scheme '{scheme}' is not supported by RSA keys".format(
                scheme=scheme
            )

            raise UnsupportedFeatureException(message)

        return plaintext


class Keychain:
    """
    Decrypted keys by id.  An id may own an AES key, an RSA key or both.
    """

    def __init__(self):
        self._aes_keys = {}
        self._rsa_keys = {}

    def add_aes_key(self, key):
        self._aes_keys[key.key_id] = key

    def add_rsa_key(self, key):
        self._rsa_keys[key.key_id] = key

    def has_aes_key(self, key_id):
        return key_id in self._aes_keys

    def has_rsa_key(self, key_id):
        return key_id in self._rsa_keys

    @property
    def aes_key_ids(self):
        return sorted(self._aes_keys)

    @property
    def rsa_key_ids(self):
        return sorted(self._rsa_keys)

    def retrieve_aes_key(self, key_id):
        try:
            key = self._aes_keys[key_id]
        except KeyError as e:
            message = "AES key '{key_id}' is not in the keychain".format(
                key_id=key_id
            )

            raise VaultCorruptedException(message) from e

        return key

    def retrieve_rsa_key(self, key_id):
        try:
            key = self._rsa_keys[key_id]
        except KeyError as e:
            message = "RSA key '{key_id}' is not in the keychain".format(
                key_id=key_id
            )

            raise VaultCorruptedException(message) from e

        return key

    def decrypt(self, container):
        """
        :param EncryptedContainer container:
        :rtype: ByteString
        """

        scheme = container.scheme

        if scheme in AES_SCHEMES:
            key = self.retrieve_aes_key(key_id=container.key_id)

        elif scheme in RSA_SCHEMES:
            key = self.retrieve_rsa_key(key_id=container.key_id)

        else:
            message = "Encryption scheme '{scheme}' is not supported".format(
                scheme=scheme
            )

            raise UnsupportedFeatureException(message)

        plaintext = key.decrypt(container=container)

        return plaintext
