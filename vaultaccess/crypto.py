"""
Cryptographic primitives used by the login and decryption code.

Everything here is a pure function over bytes.  Failures caused by bad
ciphertext, a wrong key or a broken padding are reported as
``VaultCorruptedException`` so the callers never have to know which library
produced them.
"""

import hashlib
import hmac
import os

import cryptography.exceptions
import cryptography.hazmat.primitives.ciphers.aead as aead
from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from Crypto.Cipher import PKCS1_OAEP
from Crypto.Cipher import PKCS1_v1_5
from Crypto.Hash import SHA1
from Crypto.Hash import SHA256
from Crypto.PublicKey import RSA

from vaultaccess.byte_string import ByteString
from vaultaccess.errors import UnsupportedFeatureException
from vaultaccess.errors import VaultCorruptedException


AES_KEY_SIZE = 32
AES_GCM_IV_SIZE = 12
AES_CBC_IV_SIZE = 16
HMAC_SHA256_SIZE = 32

_AES_BLOCK_SIZE_IN_BITS = 128
_SHA256_DIGEST_SIZE = 32

_PBES2_HASH_NAMES = {
    'PBES2-HS256': 'sha256',
    'PBES2g-HS256': 'sha256',
    'PBES2-HS512': 'sha512',
    'PBES2g-HS512': 'sha512',
}


def _to_bytes(value):
    if isinstance(value, str):
        value = value.encode('utf-8')

    return bytes(value)


def random_bytes(size, entropy_source=os.urandom):
    generated_bytes = entropy_source(size)
    byte_string = ByteString(generated_bytes)

    return byte_string


def sha256(value):
    hashed_value = hashlib.sha256(_to_bytes(value))
    byte_string = ByteString(hashed_value.digest())

    return byte_string


def hmac_sha256(key, message):
    new_hmac = hmac.new(
        key=_to_bytes(key),
        msg=_to_bytes(message),
        digestmod=hashlib.sha256
    )

    byte_string = ByteString(new_hmac.digest())

    return byte_string


def hkdf_expand(prk, info):
    """The expand half of RFC 5869 with the output fixed to one block."""

    expanded = hmac_sha256(key=prk, message=_to_bytes(info) + b'\x01')

    return expanded


def hkdf(salt, ikm, info, length=_SHA256_DIGEST_SIZE):
    """
    HKDF-SHA256 (RFC 5869), extract followed by expand.

    :param bytes|str salt:
    :param bytes|str ikm:
    :param bytes|str info:
    :param int length:
    :rtype: ByteString
    """

    pseudo_random_key = hmac_sha256(key=salt, message=ikm)
    info_bytes = _to_bytes(info)

    output = b''
    previous_block = b''
    counter = 1

    while len(output) < length:
        previous_block = hmac_sha256(
            key=pseudo_random_key,
            message=previous_block + info_bytes + bytes([counter])
        )

        output += previous_block
        counter += 1

    byte_string = ByteString(output[:length])

    return byte_string


def pbkdf2(hash_name, password, salt, iterations, length=AES_KEY_SIZE):
    derived = hashlib.pbkdf2_hmac(
        hash_name,
        _to_bytes(password),
        _to_bytes(salt),
        iterations,
        dklen=length
    )

    byte_string = ByteString(derived)

    return byte_string


def pbes2(algorithm, password, salt, iterations):
    try:
        hash_name = _PBES2_HASH_NAMES[algorithm]
    except KeyError as e:
        message = "Key derivation method '{algorithm}' is not supported".format(
            algorithm=algorithm
        )

        raise UnsupportedFeatureException(message) from e

    derived = pbkdf2(
        hash_name=hash_name,
        password=password,
        salt=salt,
        iterations=iterations,
        length=AES_KEY_SIZE
    )

    return derived


def encrypt_aes_gcm(key, initialization_vector, plaintext):
    internal_key = aead.AESGCM(key=bytes(key))
    ciphertext = internal_key.encrypt(
        bytes(initialization_vector),
        _to_bytes(plaintext),
        None
    )

    return ByteString(ciphertext)


def decrypt_aes_gcm(key, initialization_vector, ciphertext):
    try:
        internal_key = aead.AESGCM(key=bytes(key))
        plaintext = internal_key.decrypt(
            bytes(initialization_vector),
            bytes(ciphertext),
            None
        )

    except (cryptography.exceptions.InvalidTag, ValueError) as e:
        raise VaultCorruptedException("AES-GCM decryption failed") from e

    return ByteString(plaintext)


def encrypt_aes_cbc(key, initialization_vector, plaintext):
    padder = padding.PKCS7(_AES_BLOCK_SIZE_IN_BITS).padder()
    padded = padder.update(_to_bytes(plaintext)) + padder.finalize()

    cipher = Cipher(
        algorithms.AES(bytes(key)),
        modes.CBC(bytes(initialization_vector))
    )

    encryptor = cipher.encryptor()
    ciphertext = encryptor.update(padded) + encryptor.finalize()

    return ByteString(ciphertext)


def decrypt_aes_cbc(key, initialization_vector, ciphertext):
    try:
        cipher = Cipher(
            algorithms.AES(bytes(key)),
            modes.CBC(bytes(initialization_vector))
        )

        decryptor = cipher.decryptor()
        padded = decryptor.update(bytes(ciphertext)) + decryptor.finalize()

        unpadder = padding.PKCS7(_AES_BLOCK_SIZE_IN_BITS).unpadder()
        plaintext = unpadder.update(padded) + unpadder.finalize()

    except ValueError as e:
        raise VaultCorruptedException("AES-CBC decryption failed") from e

    return ByteString(plaintext)


def split_aes_cbc_hmac_key(key):
    """
    Returns the (encryption key, MAC key) pair.  A 64 byte key holds both
    halves, a 32 byte key is stretched with HKDF-expand.
    """

    if len(key) == 2 * AES_KEY_SIZE:
        return ByteString(key[:AES_KEY_SIZE]), ByteString(key[AES_KEY_SIZE:])

    if len(key) == AES_KEY_SIZE:
        encryption_key = hkdf_expand(prk=key, info=b'enc')
        mac_key = hkdf_expand(prk=key, info=b'mac')

        return encryption_key, mac_key

    raise VaultCorruptedException(
        "AES-CBC-HMAC key must be 32 or 64 bytes long"
    )


def encrypt_aes_cbc_hmac(key, initialization_vector, plaintext):
    encryption_key, mac_key = split_aes_cbc_hmac_key(key=key)
    ciphertext = encrypt_aes_cbc(
        key=encryption_key,
        initialization_vector=initialization_vector,
        plaintext=plaintext
    )

    mac = hmac_sha256(
        key=mac_key,
        message=bytes(initialization_vector) + ciphertext
    )

    return ByteString(ciphertext + mac)


def decrypt_aes_cbc_hmac(key, initialization_vector, ciphertext):
    if len(ciphertext) < HMAC_SHA256_SIZE:
        raise VaultCorruptedException("AES-CBC-HMAC ciphertext is too short")

    encryption_key, mac_key = split_aes_cbc_hmac_key(key=key)
    encrypted_data = bytes(ciphertext[:-HMAC_SHA256_SIZE])
    stored_mac = bytes(ciphertext[-HMAC_SHA256_SIZE:])

    computed_mac = hmac_sha256(
        key=mac_key,
        message=bytes(initialization_vector) + encrypted_data
    )

    if not hmac.compare_digest(bytes(computed_mac), stored_mac):
        raise VaultCorruptedException("AES-CBC-HMAC checksum mismatch")

    plaintext = decrypt_aes_cbc(
        key=encryption_key,
        initialization_vector=initialization_vector,
        ciphertext=encrypted_data
    )

    return plaintext


def _construct_rsa_key(parameters):
    try:
        # noinspection PyArgumentList
        rsa_key = RSA.construct((
            parameters.n,
            parameters.e,
            parameters.d,
            parameters.p,
            parameters.q
        ))

    except ValueError as e:
        raise VaultCorruptedException("Invalid RSA private key") from e

    return rsa_key


def decrypt_rsa_oaep(parameters, ciphertext, hash_algorithm=SHA1):
    rsa_key = _construct_rsa_key(parameters=parameters)
    rsa_cipher = PKCS1_OAEP.new(key=rsa_key, hashAlgo=hash_algorithm)

    try:
        plaintext = rsa_cipher.decrypt(bytes(ciphertext))

    except (ValueError, TypeError) as e:
        raise VaultCorruptedException("RSA-OAEP decryption failed") from e

    return ByteString(plaintext)


def decrypt_rsa_oaep_sha256(parameters, ciphertext):
    plaintext = decrypt_rsa_oaep(
        parameters=parameters,
        ciphertext=ciphertext,
        hash_algorithm=SHA256
    )

    return plaintext


def decrypt_rsa_pkcs1(parameters, ciphertext):
    rsa_key = _construct_rsa_key(parameters=parameters)
    rsa_cipher = PKCS1_v1_5.new(rsa_key)

    try:
        plaintext = rsa_cipher.decrypt(bytes(ciphertext), None)

    except (ValueError, TypeError) as e:
        raise VaultCorruptedException("RSA PKCS#1 decryption failed") from e

    if plaintext is None:
        raise VaultCorruptedException("RSA PKCS#1 padding is invalid")

    return ByteString(plaintext)
