import unicodedata

from vaultaccess import crypto
from vaultaccess.byte_string import ByteString
from vaultaccess.errors import IncorrectCredentialsException


class AccountKey:
    """
    The secret key printed on the emergency kit, e.g.
    ``A3-ASWWYB-798JRY-LJVD4-23DC2-86TVM-H43EB``: format, key UUID and the
    secret itself.
    """

    _SUPPORTED_FORMATS = ('A2', 'A3')
    _FORMAT_LENGTH = 2
    _UUID_LENGTH = 6

    def __init__(self, key_format, uuid, key):
        self._format = key_format
        self._uuid = uuid
        self._key = key

    @classmethod
    def parse(cls, text):
        compact = str(text).strip().upper().replace("-", "")
        key_format = compact[:cls._FORMAT_LENGTH]
        uuid_end = cls._FORMAT_LENGTH + cls._UUID_LENGTH

        if key_format not in cls._SUPPORTED_FORMATS or len(compact) <= uuid_end:
            raise IncorrectCredentialsException("The account key format is invalid")

        account_key = cls(
            key_format=key_format,
            uuid=compact[cls._FORMAT_LENGTH:uuid_end],
            key=compact[uuid_end:]
        )

        return account_key

    @property
    def format(self):
        return self._format

    @property
    def uuid(self):
        return self._uuid

    @property
    def key(self):
        return self._key

    def hash(self):
        hashed = crypto.hkdf(salt=self._uuid, ikm=self._key, info=self._format)

        return hashed

    def combine_with(self, other):
        combined = self.hash() ^ ByteString(other)

        return combined


class Credentials:
    """
    Everything the caller supplies to log in.  Never changes after it has
    been created.

    :param str username:
    :param str password:
    :param AccountKey|str account_key:
    :param str uuid: the client instance id, see ``generate_random_uuid``
    :param str domain:
    """

    def __init__(self, username, password, account_key, uuid, domain):
        if not isinstance(account_key, AccountKey):
            account_key = AccountKey.parse(account_key)

        self._username = username
        self._password = password
        self._account_key = account_key
        self._uuid = uuid
        self._domain = domain

    @property
    def username(self):
        return self._username

    @property
    def password(self):
        return self._password

    @property
    def account_key(self):
        return self._account_key

    @property
    def uuid(self):
        return self._uuid

    @property
    def domain(self):
        return self._domain

    def derive_two_secret_key(self, algorithm, iterations, salt):
        """
        Combines the master password and the account key into one 32 byte
        key.  The same derivation produces both the SRP ``x`` and the key
        that unlocks the first keyset.
        """

        salt_username_hkdf = crypto.hkdf(
            salt=self._username.lower(),
            ikm=salt,
            info=algorithm
        )

        normalized_password = unicodedata.normalize('NFKD', self._password)
        password_based_key = crypto.pbes2(
            algorithm=algorithm,
            password=normalized_password,
            salt=salt_username_hkdf,
            iterations=iterations
        )

        combined = self._account_key.combine_with(password_based_key)

        return combined
