"""
Low-level access to the ConsumerView HTTP API.

Each method issues exactly one transport call and maps any non-200 status
onto the error taxonomy in `consumerview.errors`. Most applications should use
`consumerview.client.LookupOrchestrator`, which adds token caching, retries
and result enrichment on top of this class.
"""

import json
from typing import Any, Dict, List, Mapping, Optional, Sequence

from .errors import (
    ApiHttpError,
    BadCredentials,
    BatchTooLarge,
    EndpointNotFound,
    HttpVersionUnsupported,
    MalformedRequest,
    MalformedResponse,
    ServerError,
    ServerRefreshing,
    UnhandledHttpError,
)
from .logger import get_logger, fingerprint
from .transport import RequestsTransport, Transport

logger = get_logger()

PRODUCTION_URL = "https://neartime.experian.co.uk"
STAGING_URL = "https://stg.neartime.experian.co.uk"

LOGIN_PATH = "/overture/login"
SINGLE_LOOKUP_PATH = "/overture/lookup"
BATCH_LOOKUP_PATH = "/overture/batch"

MAX_BATCH_SIZE = 5000

SERVER_REFRESHING_TEXT = "Internal refresh in progress"

_STATUS_ERRORS = {
    401: BadCredentials,
    404: EndpointNotFound,
    417: MalformedRequest,
    500: ServerError,
    515: HttpVersionUnsupported,
}


def extract_response_text(body: Any) -> str:
    """
    Pull the "response" message out of an error body.

    Bodies arrive as None, raw JSON text (str or bytes), or already-parsed
    dicts depending on the transport. Never raises; anything unexpected
    yields an empty string.
    """
    try:
        if isinstance(body, (bytes, bytearray)):
            body = body.decode("utf-8")
        if isinstance(body, str):
            if not body.strip():
                return ""
            body = json.loads(body)
        if isinstance(body, Mapping):
            response = body.get("response")
            return "" if response is None else str(response)
    except (ValueError, TypeError):
        return ""
    return ""


def check_http_status(status: int, body: Any) -> None:
    """Raise the mapped ApiHttpError for any status other than 200."""
    if status == 200:
        return

    response = extract_response_text(body)
    if status == 503:
        if response == SERVER_REFRESHING_TEXT:
            raise ServerRefreshing(status, response)
        raise ServerError(status, response)

    raise _STATUS_ERRORS.get(status, UnhandledHttpError)(status, response)


def _parse_json(body: Any, what: str) -> Any:
    if isinstance(body, (dict, list)):
        return body
    try:
        return json.loads(body)
    except (ValueError, TypeError) as e:
        raise MalformedResponse(f"{what} response is not valid JSON: {e}") from e


class AuthenticatedApiClient:
    """
    Thin, stateless wrapper over the three ConsumerView endpoints.

    Safe to share between threads: the only state is the transport.
    """

    def __init__(self, base_url: str = PRODUCTION_URL, transport: Optional[Transport] = None, timeout: float = 30):
        """
        Args:
            base_url: API root; PRODUCTION_URL or STAGING_URL
            transport: Anything with `post(path, json_body) -> (status, body)`
            timeout: Request timeout used when building the default transport
        """
        self.base_url = base_url
        self.transport = transport or RequestsTransport(base_url, timeout=timeout)

    def _post(self, path: str, payload: Dict[str, Any]) -> Any:
        status, body = self.transport.post(path, payload)
        try:
            check_http_status(status, body)
        except ApiHttpError as e:
            logger.record_error(type(e).__name__)
            logger.warning("ConsumerView API error", path=path, status=status, error=type(e).__name__)
            raise
        return body

    def login(self, user_id: str, password: str) -> str:
        """
        Log in and return a time-limited auth token.

        Logging in again revokes any token previously issued for the same
        credentials.
        """
        logger.debug("Logging in to ConsumerView", user_id=user_id)
        try:
            body = self._post(LOGIN_PATH, {"userid": user_id, "password": password})
        except ApiHttpError:
            logger.record_login_failure()
            raise

        data = _parse_json(body, "Login")
        token = data.get("token") if isinstance(data, dict) else None
        if not token:
            logger.record_login_failure()
            raise MalformedResponse("Login response did not contain a token")

        logger.record_login()
        logger.info("Obtained ConsumerView token", user_id=user_id, token=fingerprint(token))
        return token

    def single_lookup(
        self,
        user_id: str,
        token: str,
        client_id: str,
        asset_id: str,
        search_key: Mapping[str, Any],
    ) -> Dict[str, Any]:
        """
        Look up one individual, household or postcode.

        Returns:
            The raw attribute record, or an empty dict if nothing matched
        """
        payload = {"ssoId": user_id, "token": token, "clientId": client_id, "assetId": asset_id}
        payload.update(search_key)

        body = self._post(SINGLE_LOOKUP_PATH, payload)
        logger.record_single_lookup()

        record = _parse_json(body, "Lookup")
        if not isinstance(record, dict):
            raise MalformedResponse(f"Lookup response must be an object, got {type(record).__name__}")
        return record

    def batch_lookup(
        self,
        user_id: str,
        token: str,
        client_id: str,
        asset_id: str,
        batch: Sequence[Mapping[str, Any]],
    ) -> List[Dict[str, Any]]:
        """
        Look up a batch of search keys in one request.

        Element i of the returned list holds the record for element i of
        `batch`; unmatched items come back as empty dicts.

        Raises:
            BatchTooLarge: If `batch` exceeds MAX_BATCH_SIZE (no request is made)
        """
        if len(batch) > MAX_BATCH_SIZE:
            raise BatchTooLarge(len(batch), MAX_BATCH_SIZE)

        payload = {
            "ssoId": user_id,
            "token": token,
            "clientId": client_id,
            "assetId": asset_id,
            "batch": list(batch),
        }

        body = self._post(BATCH_LOOKUP_PATH, payload)
        logger.record_batch_lookup(len(batch))

        records = _parse_json(body, "Batch lookup")
        if not isinstance(records, list):
            raise MalformedResponse(f"Batch lookup response must be an array, got {type(records).__name__}")
        return records
