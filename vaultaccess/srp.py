"""
Secure Remote Password exchange in the flavor the server speaks: a 4096-bit
group, the session id as the multiplier and hex strings on the wire.
"""

import logging

from vaultaccess import api
from vaultaccess import crypto
from vaultaccess.byte_string import ByteString
from vaultaccess.errors import IncorrectCredentialsException
from vaultaccess.errors import InvalidResponseException
from vaultaccess.errors import UnsupportedFeatureException
from vaultaccess.keys import AesKey


logger = logging.getLogger(__name__)

_SECRET_SIZE = 32
SUPPORTED_METHOD = 'SRPg-4096'

# RFC 5054, 4096-bit group
PUBLIC_PRIME = 1044388881413152506679602719846529545831269060992135009022588756444338172022322690710444046669809783930111585737890362691860127079270495454517218673016928427459146001866885779762982229321192368303346235204368051010309155674155697460347176946394076535157284994895284821633700921811716738972451834979455897010306333468590751358365138782250372269117968985194322444535687415522007151638638141456178420621277822674995027990278673458629544391736919766299005511505446177668154446234882665961680796576903199116089347634947187778906528008004756692571666922964122566174582776707332452371001272163776841229318324903125740713574141005124561965913888899753461735347970011693256316751660678950830027510255804846105583465055446615090444309583050775808509297040039680057435342253926566240898195863631588888936364129920059308455669454034010391478238784189888594672336242763795138176353222845524644040094258962433613354036104643881925238489224010194193088911666165584229424668165441688927790460608264864204237717002054744337988941974661214699689706521543006262604535890998125752275942608772174376107314217749233048217904944409836238235772306749874396760463376480215133461333478395682746608242585133953883882226786118030184028136755970045385534758453247

PUBLIC_ROOT_MODULO = 5


def to_hex(integer):
    return ByteString.from_integer(integer).hexlify()


class KeyExchange:

    def __init__(
            self,
            credentials,
            session,
            client_secret_value,
            public_root_modulo=PUBLIC_ROOT_MODULO,
            public_prime=PUBLIC_PRIME
    ):
        """

        :param vaultaccess.credentials.Credentials credentials:
        :param vaultaccess.login.Session session:
        :param int client_secret_value:
        :param int public_root_modulo:
        :param int public_prime:
        """

        self._credentials = credentials
        self._session = session
        self._client_secret_value = client_secret_value
        self._public_root_modulo = public_root_modulo
        self._public_prime = public_prime

    @property
    def client_public_value(self):
        public_value = pow(
            self._public_root_modulo,
            self._client_secret_value,
            self._public_prime
        )

        return public_value

    def compute_x(self):
        session = self._session

        if session.srp_method != SUPPORTED_METHOD:
            message = "SRP method '{method}' is not supported".format(
                method=session.srp_method
            )

            raise UnsupportedFeatureException(message)

        if session.iterations <= 0:
            raise UnsupportedFeatureException(
                "Key derivation with {count} iterations is not supported".format(
                    count=session.iterations
                )
            )

        secure_remote_password_key = self._credentials.derive_two_secret_key(
            algorithm=session.key_method,
            iterations=session.iterations,
            salt=session.salt
        )

        return secure_remote_password_key.to_integer()

    def validate_server_public_value(self, server_public_value):
        if server_public_value % self._public_prime == 0:
            raise IncorrectCredentialsException(
                "SRP exchange failed, the server public value is invalid"
            )

    def derive_session_key(self, server_public_value):
        self.validate_server_public_value(server_public_value)

        concatenated_hexlified_public_values = (
            to_hex(self.client_public_value)
            + to_hex(server_public_value)
        )

        public_values_as_integer = crypto.sha256(
            concatenated_hexlified_public_values
        ).to_integer()

        secure_remote_password_key_as_integer = self.compute_x()
        session_id_as_integer = ByteString.from_text(self._session.id).to_integer()

        public_secure_remote_password_value = pow(
            self._public_root_modulo,
            secure_remote_password_key_as_integer,
            self._public_prime
        )

        server_public_value_minus_public_remote_cross = (
            server_public_value
            - public_secure_remote_password_value * session_id_as_integer
        )

        crossed_values_added_to_secret = (
            self._client_secret_value
            + public_values_as_integer * secure_remote_password_key_as_integer
        )

        derived_key_as_integer = pow(
            server_public_value_minus_public_remote_cross,
            crossed_values_added_to_secret,
            self._public_prime
        )

        hashed_derived_key = crypto.sha256(to_hex(derived_key_as_integer))
        session_key = AesKey(key_id=self._session.id, key=hashed_derived_key)

        return session_key


def exchange_public_values(session, client_public_value, rest):
    response = api.post_json(
        rest,
        "v1/auth",
        {
            'sessionID': session.id,
            'userA': to_hex(client_public_value),
        }
    )

    if not isinstance(response, dict) or response.get('sessionID') != session.id:
        raise InvalidResponseException(
            "Invalid response: session ID doesn't match"
        )

    try:
        server_public_value = int(response['userB'], 16)
    except (KeyError, TypeError, ValueError) as e:
        raise InvalidResponseException(
            "Invalid response: missing or malformed 'userB'"
        ) from e

    return server_public_value


def perform(credentials, session, rest, entropy_source=crypto.random_bytes):
    """
    Runs the exchange and returns the session key.

    :param vaultaccess.credentials.Credentials credentials:
    :param vaultaccess.login.Session session:
    :param vaultaccess.transport.RestClient rest:
    :rtype: vaultaccess.keys.AesKey
    """

    client_secret_value = entropy_source(_SECRET_SIZE)
    key_exchange = KeyExchange(
        credentials=credentials,
        session=session,
        client_secret_value=ByteString(client_secret_value).to_integer()
    )

    server_public_value = exchange_public_values(
        session=session,
        client_public_value=key_exchange.client_public_value,
        rest=rest
    )

    session_key = key_exchange.derive_session_key(
        server_public_value=server_public_value
    )

    logger.debug("SRP exchange complete for session %s", api.abbreviate_id(session.id))

    return session_key
