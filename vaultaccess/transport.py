"""
HTTP plumbing: a thin wrapper over ``requests`` that never raises on network
problems, and a REST client that adds the client id, session id and request
signature headers to every call.
"""

import collections
import json
import logging
import urllib.parse

import requests

from vaultaccess import crypto
from vaultaccess.errors import InvalidResponseException


logger = logging.getLogger(__name__)

CLIENT_HEADER = 'X-AgileBits-Client'
SESSION_ID_HEADER = 'X-AgileBits-Session-ID'
MAC_HEADER = 'X-AgileBits-MAC'

_SUCCESS_STATUS_CODES = range(200, 300)


TransportResponse = collections.namedtuple(
    'TransportResponse',
    ['status_code', 'body', 'error']
)


class RequestsTransport:

    def __init__(self, request_factory=requests, timeout=30):
        self._request_factory = request_factory
        self._timeout = timeout

    def _perform(self, method_name, url, headers, data=None):
        request_method = getattr(self._request_factory, method_name)

        try:
            response = request_method(
                url,
                headers=headers,
                data=data,
                timeout=self._timeout
            )

        except requests.RequestException as e:
            logger.debug("%s request failed: %s", method_name.upper(), e)

            return TransportResponse(status_code=None, body=None, error=e)

        transport_response = TransportResponse(
            status_code=response.status_code,
            body=response.text,
            error=None
        )

        return transport_response

    def get(self, url, headers):
        return self._perform(method_name='get', url=url, headers=headers)

    def post(self, url, body, headers):
        return self._perform(method_name='post', url=url, headers=headers, data=body)

    def put(self, url, headers):
        return self._perform(method_name='put', url=url, headers=headers)


class RestResponse:

    def __init__(self, transport_response):
        self._transport_response = transport_response

    @property
    def status_code(self):
        return self._transport_response.status_code

    @property
    def content(self):
        return self._transport_response.body

    @property
    def error(self):
        return self._transport_response.error

    @property
    def is_network_error(self):
        return self._transport_response.error is not None

    @property
    def is_successful(self):
        successful = (
            not self.is_network_error
            and self.status_code in _SUCCESS_STATUS_CODES
        )

        return successful

    def json(self):
        try:
            parsed = json.loads(self.content)
        except (TypeError, ValueError) as e:
            raise InvalidResponseException(
                "Failed to parse JSON in response from the server"
            ) from e

        return parsed


class MacRequestSigner:
    """
    Signs every request with a truncated HMAC over the session id, method,
    URL and a running request counter.
    """

    _SIGNING_KEY_MESSAGE = "He never wears a Mac, in the pouring rain. Very strange."
    _VERSION = 'v1'
    _MAC_LENGTH = 12

    def __init__(self, session, session_key, first_request_id=1):
        self._session_id = session.id
        self._signing_key = crypto.hmac_sha256(
            key=session_key.key,
            message=self._SIGNING_KEY_MESSAGE
        )

        self._request_id = first_request_id

    @property
    def next_request_id(self):
        return self._request_id

    @staticmethod
    def _normalize_url(url):
        split_url = urllib.parse.urlsplit(url)
        normalized = "{host}{path}?{query}".format(
            host=split_url.netloc,
            path=split_url.path,
            query=split_url.query
        )

        return normalized

    def create_mac_header(self, method, url, request_id):
        message = "|".join(
            [
                self._session_id,
                method.upper(),
                self._normalize_url(url),
                self._VERSION,
                str(request_id),
            ]
        )

        mac = crypto.hmac_sha256(key=self._signing_key, message=message)
        encoded_mac = mac[:self._MAC_LENGTH].urlsafe_base64_encode_and_unpad()

        assembled_header = "|".join(
            [self._VERSION, str(request_id), encoded_mac]
        )

        return assembled_header

    def sign(self, method, url, headers):
        signed_headers = dict(headers)
        signed_headers[MAC_HEADER] = self.create_mac_header(
            method=method,
            url=url,
            request_id=self._request_id
        )

        self._request_id += 1

        return signed_headers


class RestClient:

    def __init__(self, transport, base_url, client_id, session_id=None, signer=None):
        self._transport = transport
        self._base_url = base_url.rstrip("/")
        self._client_id = client_id
        self._session_id = session_id
        self._signer = signer

    @property
    def session_id(self):
        return self._session_id

    def clone(self, session_id=None, signer=None):
        """
        Same transport and base URL, a different session.  The signer is
        carried over unless a new one is given.
        """

        new_client = self.__class__(
            transport=self._transport,
            base_url=self._base_url,
            client_id=self._client_id,
            session_id=session_id,
            signer=signer or self._signer
        )

        return new_client

    def make_url(self, endpoint):
        return "/".join([self._base_url, endpoint.lstrip("/")])

    def _create_headers(self, method, url, extra_headers=None):
        headers = {CLIENT_HEADER: self._client_id}

        if self._session_id:
            headers[SESSION_ID_HEADER] = self._session_id

        if extra_headers:
            headers.update(extra_headers)

        if self._signer is not None:
            headers = self._signer.sign(method=method, url=url, headers=headers)

        return headers

    def _log_response(self, method, endpoint, response):
        if response.is_network_error:
            logger.debug("%s %s: network error", method, endpoint)
        else:
            logger.debug("%s %s: HTTP %s", method, endpoint, response.status_code)

    def get(self, endpoint):
        url = self.make_url(endpoint)
        headers = self._create_headers(method='GET', url=url)
        response = RestResponse(self._transport.get(url, headers))
        self._log_response('GET', endpoint, response)

        return response

    def post_json(self, endpoint, payload):
        url = self.make_url(endpoint)
        headers = self._create_headers(
            method='POST',
            url=url,
            extra_headers={'Content-Type': 'application/json'}
        )

        body = json.dumps(payload, separators=(",", ":"))
        response = RestResponse(self._transport.post(url, body, headers))
        self._log_response('POST', endpoint, response)

        return response

    def put(self, endpoint):
        url = self.make_url(endpoint)
        headers = self._create_headers(method='PUT', url=url)
        response = RestResponse(self._transport.put(url, headers))
        self._log_response('PUT', endpoint, response)

        return response
