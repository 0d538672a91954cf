import collections
import enum
import os

from vaultaccess.backend import SecretValue


DEFAULT_DOMAIN = 'my.1password.com'
DEFAULT_CLIENT_NAME = '1Password Extension'
# Bump every now and then, the server refuses clients that are too old.
DEFAULT_CLIENT_VERSION = '20088'
DEFAULT_TIMEOUT = 30

CONFIGURATION_PATH_ENVIRONMENT_VARIABLE = 'VAULTACCESS_CONFIGURATION_FILE_PATH'
DEFAULT_CONFIGURATION_PATH = os.path.join('~', '.vaultaccess.json')


class Region(enum.Enum):
    GLOBAL = 'my.1password.com'
    EUROPE = 'my.1password.eu'
    CANADA = 'my.1password.ca'


class SecondFactor(enum.Enum):
    GOOGLE_AUTHENTICATOR = 'totp'
    REMEMBER_ME_TOKEN = 'dsecret'


_ClientConfiguration = collections.namedtuple(
    '_ClientConfiguration',
    [
        'domain',
        'client_name',
        'client_version',
        'timeout',
        'master_key_id',
        'remember_me_token_key',
        'account_template_id',
        'read_access_flag',
        'second_factor_priority',
    ]
)


class ClientConfiguration(_ClientConfiguration):
    """
    Process wide constants.  Built once and handed to everything that needs
    them; namedtuple makes sure nobody changes them on the way.
    """

    __slots__ = ()

    def __new__(
            cls,
            domain=DEFAULT_DOMAIN,
            client_name=DEFAULT_CLIENT_NAME,
            client_version=DEFAULT_CLIENT_VERSION,
            timeout=DEFAULT_TIMEOUT,
            master_key_id='mp',
            remember_me_token_key='remember-me-token',
            account_template_id='001',
            read_access_flag=32,
            second_factor_priority=(SecondFactor.GOOGLE_AUTHENTICATOR,)
    ):

        return super(ClientConfiguration, cls).__new__(
            cls,
            domain=domain,
            client_name=client_name,
            client_version=client_version,
            timeout=timeout,
            master_key_id=master_key_id,
            remember_me_token_key=remember_me_token_key,
            account_template_id=account_template_id,
            read_access_flag=read_access_flag,
            second_factor_priority=tuple(second_factor_priority)
        )

    @classmethod
    def from_sources(cls, sources):
        """
        :param list[vaultaccess.backend.ValueSource] sources: searched in order
        """

        def lookup(name, default):
            secret_value = SecretValue(value_name=name, sources=sources)

            return secret_value.retrieve_value(default=default)

        configuration = cls(
            domain=lookup('domain', DEFAULT_DOMAIN),
            client_name=lookup('client_name', DEFAULT_CLIENT_NAME),
            client_version=str(lookup('client_version', DEFAULT_CLIENT_VERSION)),
            timeout=float(lookup('timeout', DEFAULT_TIMEOUT))
        )

        return configuration

    @property
    def client_id(self):
        return "{name}/{version}".format(
            name=self.client_name,
            version=self.client_version
        )

    @property
    def api_url(self):
        return "https://{domain}/api".format(domain=self.domain)


def get_domain(region):
    try:
        domain = Region(region).value
    except ValueError:
        try:
            domain = Region[str(region).upper()].value
        except KeyError as e:
            raise ValueError("Region value is invalid: {region}".format(region=region)) from e

    return domain
