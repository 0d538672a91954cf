"""
The login sequence:

    start session -> (register or reauthorize the device -> start session)
        -> SRP exchange -> verify the session key -> second factor
        -> authenticated

A login attempt is repeated once, from scratch, when the stored "remember
me" token turns out to be stale.  Nothing else is retried.
"""

import binascii
import collections
import enum
import logging

from vaultaccess import api
from vaultaccess import crypto
from vaultaccess import srp
from vaultaccess.byte_string import ByteString
from vaultaccess.config import SecondFactor
from vaultaccess.errors import IncorrectCredentialsException
from vaultaccess.errors import IncorrectSecondFactorCodeException
from vaultaccess.errors import InternalErrorException
from vaultaccess.errors import InvalidResponseException
from vaultaccess.errors import OutdatedRememberMeTokenException
from vaultaccess.errors import UnsupportedFeatureException
from vaultaccess.errors import UserCancelledMfaException
from vaultaccess.transport import MacRequestSigner


logger = logging.getLogger(__name__)

MAX_LOGIN_ATTEMPTS = 2

_STATUS_OK = 'ok'
_STATUS_DEVICE_NOT_REGISTERED = 'device-not-registered'
_STATUS_DEVICE_DELETED = 'device-deleted'


Session = collections.namedtuple(
    'Session',
    [
        'id',
        'key_format',
        'key_uuid',
        'srp_method',
        'key_method',
        'iterations',
        'salt',
    ]
)

LoginResult = collections.namedtuple('LoginResult', ['session_key', 'rest'])


class VerifyStatus(enum.Enum):
    SUCCESS = 'success'
    SECOND_FACTOR_REQUIRED = 'second-factor-required'


VerifyResult = collections.namedtuple('VerifyResult', ['status', 'factors'])


class LoginOutcome:
    """Either a ``LoginResult`` or the error that allows another attempt."""

    def __init__(self, result=None, retry_error=None):
        self._result = result
        self._retry_error = retry_error

    @property
    def succeeded(self):
        return self._result is not None

    @property
    def result(self):
        return self._result

    @property
    def retry_error(self):
        return self._retry_error


def login(credentials, ui, storage, rest, config):
    """
    :param vaultaccess.credentials.Credentials credentials:
    :param vaultaccess.ui.Ui ui:
    :param vaultaccess.backend.ValueSource storage:
    :param vaultaccess.transport.RestClient rest: not bound to a session yet
    :param vaultaccess.config.ClientConfiguration config:
    :rtype: LoginResult
    """

    outcome = None

    for attempt in range(1, MAX_LOGIN_ATTEMPTS + 1):
        outcome = attempt_login(
            credentials=credentials,
            ui=ui,
            storage=storage,
            rest=rest,
            config=config
        )

        if outcome.succeeded:
            return outcome.result

        logger.info(
            "login attempt %d of %d: %s",
            attempt,
            MAX_LOGIN_ATTEMPTS,
            outcome.retry_error
        )

    raise outcome.retry_error


def attempt_login(credentials, ui, storage, rest, config):
    try:
        result = perform_login_attempt(
            credentials=credentials,
            ui=ui,
            storage=storage,
            rest=rest,
            config=config
        )

    except OutdatedRememberMeTokenException as e:
        return LoginOutcome(retry_error=e)

    return LoginOutcome(result=result)


def perform_login_attempt(credentials, ui, storage, rest, config):
    session = start_new_session(credentials=credentials, rest=rest, config=config)

    # Everything from here on is bound to the session
    rest = rest.clone(session_id=session.id)
    session_key = srp.perform(credentials=credentials, session=session, rest=rest)

    # and signed with the session key
    rest = rest.clone(
        session_id=session.id,
        signer=MacRequestSigner(session=session, session_key=session_key)
    )

    verify_result = verify_session_key(
        session=session,
        session_key=session_key,
        rest=rest,
        config=config
    )

    if verify_result.status is VerifyStatus.SECOND_FACTOR_REQUIRED:
        perform_second_factor_authentication(
            factors=verify_result.factors,
            session=session,
            session_key=session_key,
            ui=ui,
            storage=storage,
            rest=rest,
            config=config
        )

    logger.info("logged in, session %s", api.abbreviate_id(session.id))

    return LoginResult(session_key=session_key, rest=rest)


def _parse_session(response):
    try:
        user_auth = response['userAuth']
        session = Session(
            id=str(response['sessionID']),
            key_format=str(response['accountKeyFormat']),
            key_uuid=str(response['accountKeyUuid']),
            srp_method=str(user_auth['method']),
            key_method=str(user_auth['alg']),
            iterations=int(user_auth['iterations']),
            salt=ByteString.from_base64(user_auth['salt'])
        )

    except (KeyError, TypeError, ValueError, binascii.Error) as e:
        raise InvalidResponseException(
            "Invalid response to the new session request"
        ) from e

    return session


def start_new_session(credentials, rest, config):
    """
    Asks for a new session.  An unknown or deleted device is registered or
    reauthorized first, then a fresh session is requested.
    """

    device_handled = False

    while True:
        account_key = credentials.account_key
        endpoint = "v2/auth/{username}/{key_format}/{key_uuid}/{uuid}".format(
            username=credentials.username,
            key_format=account_key.format,
            key_uuid=account_key.uuid,
            uuid=credentials.uuid
        )

        response = api.get_json(rest, endpoint)

        if not isinstance(response, dict):
            raise InvalidResponseException("Invalid response to the new session request")

        status = response.get('status')

        if status == _STATUS_OK:
            session = _parse_session(response)

            if session.key_uuid != account_key.uuid:
                raise IncorrectCredentialsException("The account key is incorrect")

            return session

        if status not in (_STATUS_DEVICE_NOT_REGISTERED, _STATUS_DEVICE_DELETED):
            raise InvalidResponseException(
                "Failed to start a new session, unsupported response status '{status}'".format(
                    status=status
                )
            )

        if device_handled:
            raise InternalErrorException(
                "The server keeps rejecting the device '{uuid}'".format(
                    uuid=credentials.uuid
                )
            )

        session_rest = rest.clone(session_id=str(response.get('sessionID', '')))

        if status == _STATUS_DEVICE_NOT_REGISTERED:
            register_device(credentials=credentials, rest=session_rest, config=config)
        else:
            reauthorize_device(credentials=credentials, rest=session_rest)

        device_handled = True


def _check_success(response, message):
    if not isinstance(response, dict) or response.get('success') != 1:
        raise InternalErrorException(message)


def register_device(credentials, rest, config):
    logger.info("registering device %s", api.abbreviate_id(credentials.uuid))

    response = api.post_json(
        rest,
        "v1/device",
        {
            'uuid': credentials.uuid,
            'clientName': config.client_name,
            'clientVersion': config.client_version,
        }
    )

    _check_success(
        response,
        "Failed to register the device '{uuid}'".format(uuid=credentials.uuid)
    )


def reauthorize_device(credentials, rest):
    logger.info("reauthorizing device %s", api.abbreviate_id(credentials.uuid))

    endpoint = "v1/device/{uuid}/reauthorize".format(uuid=credentials.uuid)
    response = api.put_json(rest, endpoint)

    _check_success(
        response,
        "Failed to reauthorize the device '{uuid}'".format(uuid=credentials.uuid)
    )


def create_client_verify_hash(session):
    key_uuid_hash = crypto.sha256(session.key_uuid)
    session_id_hash = crypto.sha256(session.id)

    hash_of_combined_hashes = crypto.sha256(key_uuid_hash + session_id_hash)
    encoded = hash_of_combined_hashes.urlsafe_base64_encode_and_unpad()

    return encoded


def hash_remember_me_token(token, session):
    decoded_token = ByteString.from_base64(token)
    token_hmac = crypto.hmac_sha256(key=decoded_token, message=session.id)

    return token_hmac.urlsafe_base64_encode_and_unpad()


def verify_session_key(session, session_key, rest, config):
    response = api.post_encrypted_json(
        rest,
        "v2/auth/verify",
        {
            'sessionID': session.id,
            'clientVerifyHash': create_client_verify_hash(session),
            'client': config.client_id,
        },
        session_key
    )

    mfa = response.get('mfa') if isinstance(response, dict) else None

    if not mfa:
        return VerifyResult(status=VerifyStatus.SUCCESS, factors=())

    return VerifyResult(
        status=VerifyStatus.SECOND_FACTOR_REQUIRED,
        factors=get_second_factors(mfa)
    )


def _is_enabled(mfa, name):
    factor_info = mfa.get(name)

    return isinstance(factor_info, dict) and factor_info.get('enabled') is True


def get_second_factors(mfa):
    factors = []

    if _is_enabled(mfa, SecondFactor.GOOGLE_AUTHENTICATOR.value):
        factors.append(SecondFactor.GOOGLE_AUTHENTICATOR)

    if _is_enabled(mfa, SecondFactor.REMEMBER_ME_TOKEN.value):
        factors.append(SecondFactor.REMEMBER_ME_TOKEN)

    if not factors:
        raise UnsupportedFeatureException("No supported 2FA methods found")

    return tuple(factors)


def perform_second_factor_authentication(
        factors,
        session,
        session_key,
        ui,
        storage,
        rest,
        config
):

    remembered = try_submit_remember_me_token(
        factors=factors,
        session=session,
        session_key=session_key,
        storage=storage,
        rest=rest,
        config=config
    )

    if remembered:
        return

    factor = choose_interactive_second_factor(
        factors=factors,
        priority=config.second_factor_priority
    )

    passcode = get_second_factor_passcode(factor=factor, ui=ui)

    if passcode is None or not passcode.code:
        raise UserCancelledMfaException("Second factor step is canceled by the user")

    token = submit_second_factor_code(
        factor=factor,
        code=passcode.code,
        session=session,
        session_key=session_key,
        rest=rest,
        config=config
    )

    if passcode.remember_me and token:
        storage.store_string(config.remember_me_token_key, token)


def try_submit_remember_me_token(factors, session, session_key, storage, rest, config):
    if SecondFactor.REMEMBER_ME_TOKEN not in factors:
        return False

    token = storage.load_string(config.remember_me_token_key)

    if not token:
        return False

    try:
        submit_second_factor_code(
            factor=SecondFactor.REMEMBER_ME_TOKEN,
            code=token,
            session=session,
            session_key=session_key,
            rest=rest,
            config=config
        )

    except IncorrectSecondFactorCodeException as e:
        storage.store_string(config.remember_me_token_key, None)

        raise OutdatedRememberMeTokenException("'Remember me' token got rejected") from e

    logger.info("logged in with the stored 'remember me' token")

    return True


def choose_interactive_second_factor(factors, priority):
    if not factors:
        raise InternalErrorException("The list of 2FA methods could not be empty")

    for single_factor in priority:
        if single_factor in factors:
            return single_factor

    raise UnsupportedFeatureException(
        "The list of 2FA methods doesn't contain anything we support"
    )


def get_second_factor_passcode(factor, ui):
    if factor is SecondFactor.GOOGLE_AUTHENTICATOR:
        return ui.provide_google_auth_passcode()

    raise UnsupportedFeatureException(
        "2FA method {factor} is not supported".format(factor=factor.name)
    )


def submit_second_factor_code(factor, code, session, session_key, rest, config):
    """Returns the "remember me" token the server hands out, if any."""

    if factor is SecondFactor.GOOGLE_AUTHENTICATOR:
        data = {'code': code}

    elif factor is SecondFactor.REMEMBER_ME_TOKEN:
        try:
            data = {'dshmac': hash_remember_me_token(token=code, session=session)}
        except (binascii.Error, ValueError) as e:
            raise IncorrectSecondFactorCodeException(
                "The stored 'remember me' token is malformed"
            ) from e

    else:
        raise UnsupportedFeatureException(
            "2FA method {factor} is not supported".format(factor=factor)
        )

    try:
        response = api.post_encrypted_json(
            rest,
            "v1/auth/mfa",
            {
                'sessionID': session.id,
                'client': config.client_id,
                factor.value: data,
            },
            session_key
        )

    except IncorrectCredentialsException as e:
        raise IncorrectSecondFactorCodeException("Incorrect second factor code") from e

    if not isinstance(response, dict):
        return None

    return response.get('dsecret')
