"""
An in-process stand-in for the server.  It speaks the same REST dialect,
runs the server half of SRP, checks request signatures and hands out
encrypted account data built from real keys.
"""

import base64
import hashlib
import hmac
import json
import os
import urllib.parse

from Crypto.Cipher import PKCS1_OAEP
from Crypto.PublicKey import RSA

from vaultaccess import srp
from vaultaccess.byte_string import ByteString
from vaultaccess.credentials import Credentials
from vaultaccess.keys import AesKey
from vaultaccess.keys import EncryptedContainer
from vaultaccess.keys import RSA_OAEP_SCHEME
from vaultaccess.transport import MAC_HEADER
from vaultaccess.transport import SESSION_ID_HEADER
from vaultaccess.transport import TransportResponse
from vaultaccess.ui import Ui


USERNAME = 'Alice@Example.com'
PASSWORD = 'correct horse battery staple'
ACCOUNT_KEY = 'A3-ASWWYB-798JRY-LJVD4-23DC2-86TVM-H43EB'
CLIENT_UUID = 'rz64r4uhyvgew672nm4ncaqonq'
DOMAIN = 'my.1password.com'

KEY_METHOD = 'PBES2g-HS256'
ITERATIONS = 100
GITHUB_PASSWORD = 'hunter2-but-longer'

INCORRECT_CREDENTIALS = 102


def b64url(data):
    return base64.urlsafe_b64encode(bytes(data)).decode('ascii').rstrip('=')


def to_json_bytes(value):
    return json.dumps(value).encode('utf-8')


def rsa_jwk(key_id, rsa_key):
    def encode(integer):
        return b64url(ByteString.from_integer(integer))

    jwk = {
        'kid': key_id,
        'kty': 'RSA',
        'alg': 'RSA-OAEP',
        'n': encode(rsa_key.n),
        'e': encode(rsa_key.e),
        'd': encode(rsa_key.d),
        'p': encode(rsa_key.p),
        'q': encode(rsa_key.q),
        'dp': encode(rsa_key.d % (rsa_key.p - 1)),
        'dq': encode(rsa_key.d % (rsa_key.q - 1)),
        'qi': encode(pow(rsa_key.q, -1, rsa_key.p)),
    }

    return jwk


def aes_jwk(key_id, raw_key):
    return {'kid': key_id, 'kty': 'oct', 'alg': 'A256GCM', 'k': b64url(raw_key)}


def rsa_encrypt(key_id, rsa_key, plaintext):
    cipher = PKCS1_OAEP.new(rsa_key.publickey())
    ciphertext = cipher.encrypt(plaintext)

    return {
        'kid': key_id,
        'enc': RSA_OAEP_SCHEME,
        'cty': 'b5+jwk+json',
        'data': b64url(ciphertext),
    }


def build_account(rsa_keys, password=PASSWORD, trashed_markers=('Y',)):
    """
    Two keysets (the first unlocked by the master key, the second by the
    first), two vaults (only one readable) and login items in the readable
    one: a normal item plus one item per trashed marker.

    Returns ``(account_info, keysets, items)``.
    """

    first_rsa_key, second_rsa_key = rsa_keys

    credentials = Credentials(
        username=USERNAME,
        password=password,
        account_key=ACCOUNT_KEY,
        uuid=CLIENT_UUID,
        domain=DOMAIN
    )

    keyset_salt = os.urandom(16)
    master_key = AesKey(
        key_id='mp',
        key=credentials.derive_two_secret_key(
            algorithm=KEY_METHOD,
            iterations=ITERATIONS,
            salt=keyset_salt
        )
    )

    first_symmetric_key = AesKey(key_id='keyset1', key=os.urandom(32))
    second_symmetric_key = AesKey(key_id='keyset2', key=os.urandom(32))
    personal_vault_key = AesKey(key_id='vaultkey1', key=os.urandom(32))
    shared_vault_key = AesKey(key_id='vaultkey2', key=os.urandom(32))

    master_encrypted_key = master_key.encrypt(
        to_json_bytes(aes_jwk('keyset1', first_symmetric_key.key))
    ).to_dict()
    master_encrypted_key.update({'alg': KEY_METHOD, 'p2c': ITERATIONS, 'p2s': b64url(keyset_salt)})

    keysets = {
        'keysets': [
            {
                'uuid': 'keyset2',
                'sn': 2,
                'encryptedBy': 'keyset1',
                'encSymKey': first_symmetric_key.encrypt(
                    to_json_bytes(aes_jwk('keyset2', second_symmetric_key.key))
                ).to_dict(),
                'encPriKey': second_symmetric_key.encrypt(
                    second_rsa_key.export_key(format='DER', pkcs=8)
                ).to_dict(),
            },
            {
                'uuid': 'keyset1',
                'sn': 1,
                'encryptedBy': 'mp',
                'encSymKey': master_encrypted_key,
                'encPriKey': first_symmetric_key.encrypt(
                    to_json_bytes(rsa_jwk('keyset1', first_rsa_key))
                ).to_dict(),
            },
        ]
    }

    account_info = {
        'me': {
            'vaultAccess': [
                {
                    'vaultUuid': 'vault1',
                    'acl': 32 | 16,
                    'encVaultKey': rsa_encrypt(
                        'keyset2',
                        second_rsa_key,
                        to_json_bytes(aes_jwk('vaultkey1', personal_vault_key.key))
                    ),
                },
                {
                    'vaultUuid': 'vault2',
                    'acl': 16,
                    'encVaultKey': rsa_encrypt(
                        'keyset1',
                        first_rsa_key,
                        to_json_bytes(aes_jwk('vaultkey2', shared_vault_key.key))
                    ),
                },
            ],
        },
        'vaults': [
            {
                'uuid': 'vault1',
                'encAttrs': personal_vault_key.encrypt(
                    to_json_bytes({'name': 'Personal', 'desc': 'Everyday logins'})
                ).to_dict(),
            },
            {
                'uuid': 'vault2',
                'encAttrs': shared_vault_key.encrypt(
                    to_json_bytes({'name': 'Shared', 'desc': ''})
                ).to_dict(),
            },
        ],
    }

    def make_item(uuid, title, trashed):
        overview = {
            'title': title,
            'url': 'https://github.com',
            'URLs': [{'l': 'website', 'u': 'https://github.com'}],
        }

        details = {
            'fields': [
                {'designation': 'username', 'value': 'octocat'},
                {'designation': 'password', 'value': GITHUB_PASSWORD},
            ],
            'notesPlain': 'Personal account',
            'sections': [
                {'title': 'Recovery', 'fields': [{'t': 'pin', 'v': '1234'}]},
            ],
        }

        return {
            'uuid': uuid,
            'templateUuid': '001',
            'trashed': trashed,
            'encOverview': personal_vault_key.encrypt(to_json_bytes(overview)).to_dict(),
            'encDetails': personal_vault_key.encrypt(to_json_bytes(details)).to_dict(),
        }

    items = [make_item('item1', 'GitHub', 'N')]
    items.extend(
        make_item('trashed{index}'.format(index=index), 'Old GitHub', marker)
        for index, marker
        in enumerate(trashed_markers)
    )

    return account_info, keysets, {'vault1': {0: {'items': items, 'batchComplete': True}}}


class FakeServer:
    """
    Implements the transport interface (``get``, ``post``, ``put``).  All the
    knobs are plain attributes, tests flip them before a run.
    """

    def __init__(self, account_info, keysets, item_batches, password=PASSWORD):
        self.account_info = account_info
        self.keysets = keysets
        self.item_batches = item_batches

        self.credentials = Credentials(
            username=USERNAME,
            password=password,
            account_key=ACCOUNT_KEY,
            uuid=CLIENT_UUID,
            domain=DOMAIN
        )

        self.registered_devices = {CLIENT_UUID}
        self.deleted_devices = set()
        self.mfa = None
        self.totp_code = '123456'
        self.remember_me_tokens = set()
        self.issued_token = b64url(os.urandom(32))
        self.sign_out_succeeds = True
        self.account_key_uuid = self.credentials.account_key.uuid

        self.requests = []
        self.sessions = []
        self.mfa_submissions = []
        self.signed_out = 0

        self._session_id = None
        self._session_key = None
        self._signing_key = None
        self._expected_request_id = None
        self._auth_salt = None

    # Plumbing

    @staticmethod
    def _respond(status_code, body):
        return TransportResponse(status_code=status_code, body=json.dumps(body), error=None)

    def _error(self, status_code, code, message):
        return self._respond(status_code, {'errorCode': code, 'errorMessage': message})

    def _encrypt(self, payload):
        container = self._session_key.encrypt(to_json_bytes(payload))

        return self._respond(200, container.to_dict())

    def _decrypt(self, body):
        envelope = json.loads(body)
        plaintext = self._session_key.decrypt(EncryptedContainer.parse(envelope))

        return json.loads(plaintext.decode('utf-8'))

    def _check_signature(self, method, url, headers):
        if self._signing_key is None:
            return True

        split_url = urllib.parse.urlsplit(url)
        message = "|".join([
            self._session_id,
            method,
            "{host}{path}?{query}".format(
                host=split_url.netloc,
                path=split_url.path,
                query=split_url.query
            ),
            'v1',
            str(self._expected_request_id),
        ])

        mac = hmac.new(self._signing_key, message.encode('utf-8'), hashlib.sha256).digest()
        expected = "v1|{id}|{mac}".format(id=self._expected_request_id, mac=b64url(mac[:12]))

        self._expected_request_id += 1

        return headers.get(MAC_HEADER) == expected and headers.get(SESSION_ID_HEADER) == self._session_id

    def _dispatch(self, method, url, headers, body=None):
        path = urllib.parse.urlsplit(url).path.split('/api/', 1)[1]
        query = urllib.parse.urlsplit(url).query
        self.requests.append((method, path))

        parts = path.split('/')

        if method == 'GET' and parts[:2] == ['v2', 'auth']:
            return self._start_session(parts[2:])

        if method == 'POST' and path == 'v1/device':
            return self._register_device(json.loads(body))

        if method == 'PUT' and parts[:2] == ['v1', 'device'] and parts[-1] == 'reauthorize':
            self.deleted_devices.discard(parts[2])

            return self._respond(200, {'success': 1})

        if method == 'POST' and path == 'v1/auth':
            return self._exchange_public_values(json.loads(body))

        if method == 'POST' and path == 'v2/auth/verify':
            return self._verify(method, url, headers, body)

        if not self._check_signature(method, url, headers):
            return self._error(401, 105, "Invalid signature")

        if method == 'POST' and path == 'v1/auth/mfa':
            return self._submit_mfa(body)

        if method == 'GET' and path == 'v1/account':
            assert 'attrs=' in query

            return self._encrypt(self.account_info)

        if method == 'GET' and path == 'v1/account/keysets':
            return self._encrypt(self.keysets)

        if method == 'GET' and parts[:2] == ['v1', 'vault'] and parts[-1] == 'items':
            batches = self.item_batches.get(parts[2], {})
            batch = batches.get(int(parts[3]))

            if batch is None:
                return self._error(404, 404, "No such batch")

            return self._encrypt(batch)

        if method == 'PUT' and path == 'v1/session/signout':
            self.signed_out += 1

            if not self.sign_out_succeeds:
                return self._respond(200, {'success': 0})

            return self._respond(200, {'success': 1})

        return self._error(404, 404, "Not found")

    # Endpoints

    def _start_session(self, arguments):
        username, key_format, key_uuid, client_uuid = arguments
        session_id = ByteString(os.urandom(16)).base32_encode_and_unpad_and_lower()

        self._session_id = session_id
        self._session_key = None
        self._signing_key = None
        self.sessions.append(session_id)

        if client_uuid not in self.registered_devices:
            return self._respond(200, {'status': 'device-not-registered', 'sessionID': session_id})

        if client_uuid in self.deleted_devices:
            return self._respond(200, {'status': 'device-deleted', 'sessionID': session_id})

        self._auth_salt = os.urandom(16)

        return self._respond(200, {
            'status': 'ok',
            'sessionID': session_id,
            'accountKeyFormat': key_format,
            'accountKeyUuid': self.account_key_uuid,
            'userAuth': {
                'method': srp.SUPPORTED_METHOD,
                'alg': KEY_METHOD,
                'iterations': ITERATIONS,
                'salt': b64url(self._auth_salt),
            },
        })

    def _register_device(self, payload):
        self.registered_devices.add(payload['uuid'])

        return self._respond(200, {'success': 1})

    def _exchange_public_values(self, payload):
        if payload['sessionID'] != self._session_id:
            return self._error(400, 100, "Unknown session")

        prime = srp.PUBLIC_PRIME
        generator = srp.PUBLIC_ROOT_MODULO

        x = self.credentials.derive_two_secret_key(
            algorithm=KEY_METHOD,
            iterations=ITERATIONS,
            salt=self._auth_salt
        ).to_integer()

        verifier = pow(generator, x, prime)
        server_secret = int.from_bytes(os.urandom(32), 'big')
        multiplier = int.from_bytes(self._session_id.encode('utf-8'), 'big')
        server_public = (multiplier * verifier + pow(generator, server_secret, prime)) % prime

        client_public = int(payload['userA'], 16)

        def to_hex(integer):
            as_hex = format(integer, 'x')

            return "0" + as_hex if len(as_hex) % 2 else as_hex

        scrambler = int.from_bytes(
            hashlib.sha256((to_hex(client_public) + to_hex(server_public)).encode('ascii')).digest(),
            'big'
        )

        shared = pow(client_public * pow(verifier, scrambler, prime), server_secret, prime)
        raw_session_key = hashlib.sha256(to_hex(shared).encode('ascii')).digest()

        self._session_key = AesKey(key_id=self._session_id, key=raw_session_key)
        self._signing_key = hmac.new(
            raw_session_key,
            b"He never wears a Mac, in the pouring rain. Very strange.",
            hashlib.sha256
        ).digest()
        self._expected_request_id = 1

        return self._respond(200, {'sessionID': self._session_id, 'userB': to_hex(server_public)})

    def _verify(self, method, url, headers, body):
        signature_valid = self._check_signature(method, url, headers)

        # A wrong password shows up as a session key mismatch
        try:
            payload = self._decrypt(body)
        except Exception:
            return self._error(401, INCORRECT_CREDENTIALS, "Authentication failed")

        if not signature_valid:
            return self._error(401, 105, "Invalid signature")

        key_uuid_hash = hashlib.sha256(self.account_key_uuid.encode('utf-8')).digest()
        session_id_hash = hashlib.sha256(self._session_id.encode('utf-8')).digest()
        expected_hash = b64url(hashlib.sha256(key_uuid_hash + session_id_hash).digest())

        if payload.get('clientVerifyHash') != expected_hash:
            return self._error(401, INCORRECT_CREDENTIALS, "Authentication failed")

        if self.mfa:
            return self._encrypt({'mfa': self.mfa})

        return self._encrypt({})

    def _submit_mfa(self, body):
        payload = self._decrypt(body)
        self.mfa_submissions.append(payload)

        if 'totp' in payload:
            accepted = payload['totp'].get('code') == self.totp_code

        elif 'dsecret' in payload:
            accepted = any(
                payload['dsecret'].get('dshmac') == b64url(
                    hmac.new(
                        base64.urlsafe_b64decode(token + '=' * (-len(token) % 4)),
                        self._session_id.encode('utf-8'),
                        hashlib.sha256
                    ).digest()
                )
                for token
                in self.remember_me_tokens
            )

        else:
            accepted = False

        if not accepted:
            return self._error(401, INCORRECT_CREDENTIALS, "Invalid code")

        return self._encrypt({'dsecret': self.issued_token})

    # Transport interface

    def get(self, url, headers):
        return self._dispatch('GET', url, headers)

    def post(self, url, body, headers):
        return self._dispatch('POST', url, headers, body)

    def put(self, url, headers):
        return self._dispatch('PUT', url, headers)


def generate_rsa_keys(count=2, bits=2048):
    return tuple(RSA.generate(bits) for _ in range(count))


class ScriptedUi(Ui):
    """Hands out the prepared answers in order and counts the prompts."""

    def __init__(self, *answers):
        self.answers = list(answers)
        self.prompts = 0

    def provide_google_auth_passcode(self):
        self.prompts += 1

        return self.answers.pop(0) if self.answers else None
