"""
Minimal DER reader, just enough to pull an RSA private key out of a PKCS#8
PrivateKeyInfo structure (RFC 5208, RFC 3447 appendix A.1.2).
"""

import collections

from vaultaccess.errors import VaultCorruptedException


INTEGER = 0x02
OCTET_STRING = 0x04
NULL = 0x05
OBJECT_IDENTIFIER = 0x06
SEQUENCE = 0x30

_LONG_FORM_FLAG = 0x80
_MAX_LENGTH_BYTES = 4


RsaParameters = collections.namedtuple(
    'RsaParameters',
    ['n', 'e', 'd', 'p', 'q', 'dp', 'dq', 'qi']
)


class Asn1Reader:

    def __init__(self, data):
        self._data = bytes(data)
        self._position = 0

    @property
    def position(self):
        return self._position

    def at_end(self):
        return self._position >= len(self._data)

    def _read_bytes(self, count):
        end = self._position + count

        if count < 0 or end > len(self._data):
            raise VaultCorruptedException("ASN.1 item runs past the end of data")

        chunk = self._data[self._position:end]
        self._position = end

        return chunk

    def _read_length(self):
        first_byte = self._read_bytes(1)[0]

        if not first_byte & _LONG_FORM_FLAG:
            return first_byte

        length_size = first_byte & ~_LONG_FORM_FLAG

        if length_size == 0 or length_size > _MAX_LENGTH_BYTES:
            raise VaultCorruptedException("Unsupported ASN.1 length encoding")

        length_bytes = self._read_bytes(length_size)
        length = int.from_bytes(length_bytes, 'big')

        return length

    def read_item(self):
        tag = self._read_bytes(1)[0]
        length = self._read_length()
        value = self._read_bytes(length)

        return tag, value

    def read(self, expected_tag):
        tag, value = self.read_item()

        if tag != expected_tag:
            message = (
                "ASN.1 decoding failed, expected tag 0x{expected:02x}, "
                "got 0x{actual:02x}"
            ).format(expected=expected_tag, actual=tag)

            raise VaultCorruptedException(message)

        return value

    def read_unsigned_integer(self):
        value = self.read(INTEGER)
        stripped = value.lstrip(b'\x00')

        return int.from_bytes(stripped, 'big')


def parse_private_key_pkcs8(der):
    """
    :param bytes der: PKCS#8 PrivateKeyInfo, DER encoded
    :rtype: RsaParameters
    """

    private_key_info = Asn1Reader(der).read(SEQUENCE)

    info_reader = Asn1Reader(private_key_info)
    info_reader.read(INTEGER)
    info_reader.read(SEQUENCE)
    private_key = info_reader.read(OCTET_STRING)

    rsa_private_key = Asn1Reader(private_key).read(SEQUENCE)

    key_reader = Asn1Reader(rsa_private_key)
    key_reader.read(INTEGER)

    integers = [key_reader.read_unsigned_integer() for _ in RsaParameters._fields]
    parameters = RsaParameters(*integers)

    return parameters
