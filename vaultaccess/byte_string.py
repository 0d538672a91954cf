import base64
import binascii


_BITS_PER_HEX_CHARACTER = 16
_BASE64_BLOCK_SIZE = 4


class ByteString(bytes):
    _HEX_FORMAT_SPEC = 'x'
    _PADDING_CHARACTER = '='

    @classmethod
    def from_integer(cls, integer):
        as_hex = format(integer, cls._HEX_FORMAT_SPEC)

        if len(as_hex) % 2:
            as_hex = "0" + as_hex

        byte_string = cls(binascii.unhexlify(as_hex))

        return byte_string

    @classmethod
    def from_hexlified_string(cls, hexlified_string):
        as_text = str(hexlified_string)

        if len(as_text) % 2:
            as_text = "0" + as_text

        byte_string = cls(binascii.unhexlify(as_text))

        return byte_string

    @classmethod
    def from_text(cls, text):
        encoded = str(text).encode('utf-8')
        byte_string = cls(encoded)

        return byte_string

    @classmethod
    def from_base64(cls, encoded_string):
        """
        Decodes both the standard and the URL-safe alphabets, with or
        without the trailing padding.

        :param str encoded_string:
        :rtype: ByteString
        """

        if isinstance(encoded_string, bytes):
            encoded_string = encoded_string.decode('ascii')

        compact = "".join(str(encoded_string).split())
        standard_alphabet = compact.replace('-', '+').replace('_', '/')
        unpadded = standard_alphabet.rstrip(cls._PADDING_CHARACTER)
        missing_padding = -len(unpadded) % _BASE64_BLOCK_SIZE
        padded = unpadded + cls._PADDING_CHARACTER * missing_padding
        decoded = base64.b64decode(padded, validate=True)
        byte_string = cls(decoded)

        return byte_string

    def hexlify(self):
        as_hex = binascii.hexlify(self).decode('ascii')

        return as_hex

    def to_integer(self):
        if not self:
            return 0

        as_integer = int(self.hexlify(), _BITS_PER_HEX_CHARACTER)

        return as_integer

    def to_text(self):
        decoded = self.decode('utf-8')

        return decoded

    def urlsafe_base64_encode_and_unpad(self):
        encoded = base64.urlsafe_b64encode(self).decode('ascii')
        unpadded = encoded.replace(self._PADDING_CHARACTER, "")

        return unpadded

    def base32_encode_and_unpad_and_lower(self):
        encoded = base64.b32encode(self).decode('ascii')
        unpadded = encoded.replace(self._PADDING_CHARACTER, "")
        lowered = unpadded.lower()

        return lowered

    def __xor__(self, other):
        if len(self) != len(other):
            raise ValueError("Cannot xor byte strings of different length.")

        xored_result = bytes(
            self_byte ^ other_byte
            for self_byte, other_byte
            in zip(self, other)
        )

        byte_string = self.__class__(xored_result)

        return byte_string

    def __getitem__(self, item):
        super_result = super(ByteString, self).__getitem__(item)

        if isinstance(item, slice):
            super_result = self.__class__(super_result)

        return super_result

    def __add__(self, other):
        concatenated = self.__class__(bytes(self) + bytes(other))

        return concatenated
