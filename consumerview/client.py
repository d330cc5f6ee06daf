"""
Top-level ConsumerView lookup client.

LookupOrchestrator logs in on demand, caches the auth token, sends all search
items as one ordered batch, re-attaches results to the caller's identifiers by
position and enriches each record through an attribute transformer.

The default token cache is in-memory, which suits a single process. Every
login revokes the previous token for the same credentials, so processes that
each keep their own cache will keep invalidating one another; give them a
shared store (consumerview.database.SqlTokenStore) instead.
"""

from typing import Any, Callable, Dict, Mapping, Optional

from .api import AuthenticatedApiClient
from .errors import InvalidSearchItems, MalformedResponse, ResultSizeMismatch, RETRYABLE_ERRORS
from .logger import get_logger
from .retry import call_with_retries
from .schema import RESERVED_FIELDS, validate_search_items, validate_search_key
from .token_cache import MemoryTokenStore, TokenCache, token_cache_key
from .transformers import default_registry

logger = get_logger()

DEFAULT_AUTO_RETRIES = 1


class LookupOrchestrator:
    """
    Looks up individuals, households or postcodes and returns enriched results.

    Holds no per-call state, so one instance can serve many concurrent lookups.
    """

    def __init__(
        self,
        user_id: str,
        password: str,
        client_id: str,
        asset_id: str,
        api: Optional[AuthenticatedApiClient] = None,
        token_cache: Optional[TokenCache] = None,
        transformer: Optional[Any] = None,
    ):
        """
        Args:
            user_id: Username / email authorised for the ConsumerView API
            password: Password for `user_id`
            client_id: 5-digit Experian client ID
            asset_id: 6-character Experian asset ID
            api: Low-level client (default: production endpoint)
            token_cache: Token cache (default: in-memory, keyed by user_id)
            transformer: Object with `transform(record)` (default: default_registry())
        """
        self.user_id = user_id
        self._password = password
        self.client_id = client_id
        self.asset_id = asset_id
        self.api = api or AuthenticatedApiClient()
        self.token_cache = token_cache or TokenCache(MemoryTokenStore(), key=token_cache_key(user_id))
        self.transformer = transformer if transformer is not None else default_registry()

    def _login(self) -> str:
        return self.api.login(self.user_id, self._password)

    def auth_token(self, force_refresh: bool = False) -> str:
        """Cached token for these credentials, logging in only when the cache needs one."""
        return self.token_cache.get_or_refresh(self._login, force_refresh=force_refresh)

    def _call_with_token(self, call: Callable[[str], Any], auto_retries: int, operation: str) -> Any:
        """Run `call(token)`, re-logging in and retrying on retryable API errors."""
        token = self.auth_token()

        def attempt():
            return call(token)

        def on_retry(attempt_number: int, error: Exception):
            nonlocal token
            logger.record_auth_retry()
            logger.warning(
                "Retrying lookup with a fresh token",
                operation=operation,
                attempt=attempt_number,
                error=type(error).__name__,
                status=getattr(error, "status", None),
            )
            token = self.auth_token(force_refresh=True)

        return call_with_retries(attempt, auto_retries, RETRYABLE_ERRORS, on_retry)

    def _enrich(self, record: Any) -> Any:
        if record is None:
            record = {}
        if not isinstance(record, Mapping):
            raise MalformedResponse(f"Lookup record must be an object, got {type(record).__name__}")
        return self.transformer.transform(record)

    def lookup(self, search_items: Mapping[Any, Mapping[str, Any]], auto_retries: int = DEFAULT_AUTO_RETRIES) -> Dict[Any, Any]:
        """
        Look up one or more items in a single batch.

        Args:
            search_items: Identifier -> search key, e.g.
                {"PersonA": {"email": "person.a@example.com"},
                 "Postcode1": {"postcode": "SW1A 1AA"}}.
                Identifiers are only used to key the results; they are not sent.
            auto_retries: Times to retry after a rejected token or a server data
                refresh, logging in again before each retry

        Returns:
            Identifier -> enriched record. Items with no match map to {}.

        Raises:
            InvalidSearchItems: Malformed input (no request is made)
            BatchTooLarge: More than MAX_BATCH_SIZE items
            ResultSizeMismatch: The API returned a different number of records
            UnrecognizedAttributeValue: A code missing from its code table
            ApiHttpError subclasses and RefreshFailed: API or login failures
        """
        if auto_retries < 0:
            raise ValueError(f"auto_retries must be >= 0, got {auto_retries}")
        errors = validate_search_items(search_items)
        if errors:
            raise InvalidSearchItems(errors)
        if not search_items:
            return {}

        # One fixed order for the whole call; results are matched back by position.
        identifiers = list(search_items.keys())
        batch = [dict(search_items[identifier]) for identifier in identifiers]

        logger.debug("Starting batch lookup", items=len(batch), auto_retries=auto_retries)
        records = self._call_with_token(
            lambda token: self.api.batch_lookup(self.user_id, token, self.client_id, self.asset_id, batch),
            auto_retries,
            "batch_lookup",
        )

        if len(records) != len(identifiers):
            logger.error("Batch result size mismatch", expected=len(identifiers), actual=len(records))
            raise ResultSizeMismatch(len(identifiers), len(records))

        return {identifier: self._enrich(record) for identifier, record in zip(identifiers, records)}

    def lookup_single(self, search_key: Mapping[str, Any], auto_retries: int = DEFAULT_AUTO_RETRIES) -> Any:
        """
        Look up a single item through the single-lookup endpoint.

        Same token and retry policy as `lookup`; returns the enriched record.
        """
        if auto_retries < 0:
            raise ValueError(f"auto_retries must be >= 0, got {auto_retries}")
        errors = validate_search_key("Search key", search_key, reserved=RESERVED_FIELDS)
        if errors:
            raise InvalidSearchItems(errors)

        record = self._call_with_token(
            lambda token: self.api.single_lookup(self.user_id, token, self.client_id, self.asset_id, search_key),
            auto_retries,
            "single_lookup",
        )
        return self._enrich(record)
