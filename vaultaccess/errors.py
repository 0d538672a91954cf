class VaultAccessException(Exception):
    pass


class NetworkException(VaultAccessException):
    """The transport failed before a response was received."""


class IncorrectCredentialsException(VaultAccessException):
    pass


class IncorrectSecondFactorCodeException(VaultAccessException):
    pass


class OutdatedRememberMeTokenException(VaultAccessException):
    """The stored "remember me" token was rejected by the server."""


class UserCancelledMfaException(VaultAccessException):
    pass


class UnsupportedFeatureException(VaultAccessException):
    pass


class InvalidResponseException(VaultAccessException):
    """The server sent something we could not make sense of."""


class VaultCorruptedException(VaultAccessException):
    """A key or an item could not be decrypted or is missing a dependency."""


class InternalErrorException(VaultAccessException):
    pass
