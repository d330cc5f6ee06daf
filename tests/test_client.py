"""
Tests for LookupOrchestrator end-to-end behaviour against a fake transport.
"""

import json

import pytest

from consumerview.api import BATCH_LOOKUP_PATH, LOGIN_PATH, MAX_BATCH_SIZE, SINGLE_LOOKUP_PATH
from consumerview.client import LookupOrchestrator
from consumerview.errors import (
    BadCredentials,
    BatchTooLarge,
    InvalidSearchItems,
    MalformedResponse,
    RefreshFailed,
    ResultSizeMismatch,
    ServerError,
    ServerRefreshing,
    UnhandledHttpError,
    UnrecognizedAttributeValue,
)
from consumerview.token_cache import MemoryTokenStore, TokenCache
from consumerview.transformers import (
    AttributeCodeTable,
    AttributeTransformerRegistry,
    NoOpTransformer,
)

from conftest import ASSET_ID, AUTH_TOKEN, CLIENT_ID, PASSWORD, USER_ID


class TestHappyPath:
    """Lookups where every call succeeds."""

    def test_login_and_lookup(self, orchestrator, happy_transport, search_items, expected_result):
        """Logs in, looks up the batch and enriches every record."""
        assert orchestrator.lookup(search_items) == expected_result

        assert happy_transport.count(LOGIN_PATH) == 1
        assert happy_transport.count(BATCH_LOOKUP_PATH) == 1

    def test_request_payloads(self, orchestrator, happy_transport, search_items, lookup_batch):
        """Login and batch bodies carry the expected envelope fields."""
        orchestrator.lookup(search_items)

        assert happy_transport.bodies(LOGIN_PATH) == [{"userid": USER_ID, "password": PASSWORD}]
        assert happy_transport.bodies(BATCH_LOOKUP_PATH) == [{
            "ssoId": USER_ID,
            "token": AUTH_TOKEN,
            "clientId": CLIENT_ID,
            "assetId": ASSET_ID,
            "batch": lookup_batch,
        }]

    def test_caches_token_across_lookups(self, orchestrator, happy_transport, search_items, expected_result):
        """Two lookups inside the TTL share one login."""
        assert orchestrator.lookup(search_items) == expected_result
        assert orchestrator.lookup(search_items) == expected_result

        assert happy_transport.count(LOGIN_PATH) == 1
        assert happy_transport.count(BATCH_LOOKUP_PATH) == 2

    def test_result_keys_match_input_keys(self, orchestrator, happy_transport, search_items):
        """No identifiers are added or dropped."""
        result = orchestrator.lookup(search_items)
        assert set(result) == set(search_items)

    def test_unmatched_item_maps_to_empty_record(self, orchestrator, transport, login_response, search_items):
        """An empty record from the API stays empty after enrichment."""
        transport.queue(LOGIN_PATH, 200, login_response)
        transport.queue(BATCH_LOOKUP_PATH, 200, json.dumps([{"pc_mosaic_uk_6_group": "A", "Match": "P"}, {}]))

        result = orchestrator.lookup(search_items)

        assert result["Postcode1"] == {}
        assert result["PersonA"]["Match"] == {"api_code": "P", "match_level": "person"}

    def test_no_matches_at_all(self, orchestrator, transport, login_response, search_items):
        """Every item unmatched gives an empty record per identifier."""
        transport.queue(LOGIN_PATH, 200, login_response)
        transport.queue(BATCH_LOOKUP_PATH, 200, json.dumps([{}, {}]))

        assert orchestrator.lookup(search_items) == {"PersonA": {}, "Postcode1": {}}

    def test_null_record_treated_as_no_match(self, orchestrator, transport, login_response, search_items):
        """A JSON null in the result array is an unmatched item."""
        transport.queue(LOGIN_PATH, 200, login_response)
        transport.queue(BATCH_LOOKUP_PATH, 200, json.dumps([None, {"Match": "H"}]))

        result = orchestrator.lookup(search_items)

        assert result["PersonA"] == {}
        assert result["Postcode1"] == {"Match": {"api_code": "H", "match_level": "household"}}

    def test_non_object_record_rejected(self, orchestrator, transport, login_response, search_items):
        """A record that is not an object cannot be enriched."""
        transport.queue(LOGIN_PATH, 200, login_response)
        transport.queue(BATCH_LOOKUP_PATH, 200, json.dumps(["P", {}]))

        with pytest.raises(MalformedResponse):
            orchestrator.lookup(search_items)

    def test_empty_search_items_makes_no_requests(self, orchestrator, transport):
        """Nothing to look up means no login and no batch call."""
        assert orchestrator.lookup({}) == {}
        assert transport.calls == []


class TestResultOrdering:
    """Results are tied to identifiers purely by position."""

    @staticmethod
    def _echo_match(request):
        # Person searches match at person level, postcode searches at postcode level.
        return json.dumps([
            {"Match": "P"} if "email" in key else {"Match": "PC"}
            for key in request["batch"]
        ])

    @pytest.mark.parametrize("order", [
        ["PersonA", "Postcode1", "PersonB"],
        ["Postcode1", "PersonB", "PersonA"],
        ["PersonB", "PersonA", "Postcode1"],
    ])
    def test_permuted_input_keeps_association(self, orchestrator, transport, login_response, order):
        """Whatever the input order, each identifier gets its own record."""
        keys = {
            "PersonA": {"email": "a@example.com"},
            "PersonB": {"email": "b@example.com"},
            "Postcode1": {"postcode": "SW1A 1AA"},
        }
        transport.queue(LOGIN_PATH, 200, login_response)
        transport.queue(BATCH_LOOKUP_PATH, 200, self._echo_match)

        result = orchestrator.lookup({identifier: keys[identifier] for identifier in order})

        assert result["PersonA"]["Match"]["match_level"] == "person"
        assert result["PersonB"]["Match"]["match_level"] == "person"
        assert result["Postcode1"]["Match"]["match_level"] == "postcode"
        assert transport.bodies(BATCH_LOOKUP_PATH)[0]["batch"] == [keys[i] for i in order]
        assert list(result) == order

    def test_too_few_results(self, orchestrator, transport, login_response, search_items):
        """One record for two items is a mismatch."""
        transport.queue(LOGIN_PATH, 200, login_response)
        transport.queue(BATCH_LOOKUP_PATH, 200, json.dumps([{"Match": "P"}]))

        with pytest.raises(ResultSizeMismatch) as exc_info:
            orchestrator.lookup(search_items)

        assert exc_info.value.expected == 2
        assert exc_info.value.actual == 1
        assert transport.count(BATCH_LOOKUP_PATH) == 1

    def test_too_many_results(self, orchestrator, transport, login_response, search_items):
        """Three records for two items is a mismatch."""
        transport.queue(LOGIN_PATH, 200, login_response)
        transport.queue(BATCH_LOOKUP_PATH, 200, json.dumps([{"Match": "P"}, {"Match": "PC"}, {}]))

        with pytest.raises(ResultSizeMismatch):
            orchestrator.lookup(search_items)

        assert transport.count(LOGIN_PATH) == 1
        assert transport.count(BATCH_LOOKUP_PATH) == 1


class TestAutoRetry:
    """Retry on rejected tokens and server refreshes."""

    def test_retries_once_after_401(self, orchestrator, transport, lookup_response, search_items, expected_result):
        """A 401 forces a new login and the retry uses the new token."""
        transport.queue(LOGIN_PATH, 200, json.dumps({"token": "old-token"}))
        transport.queue(LOGIN_PATH, 200, json.dumps({"token": "new-token"}))
        transport.queue(BATCH_LOOKUP_PATH, 401)
        transport.queue(BATCH_LOOKUP_PATH, 200, lookup_response)

        assert orchestrator.lookup(search_items) == expected_result

        assert transport.count(LOGIN_PATH) == 2
        assert transport.count(BATCH_LOOKUP_PATH) == 2
        tokens = [body["token"] for body in transport.bodies(BATCH_LOOKUP_PATH)]
        assert tokens == ["old-token", "new-token"]

    def test_gives_up_after_budget(self, orchestrator, transport, login_response, search_items):
        """Two consecutive 401s with one retry raise BadCredentials."""
        transport.queue(LOGIN_PATH, 200, login_response, times=2)
        transport.queue(BATCH_LOOKUP_PATH, 401, times=2)

        with pytest.raises(BadCredentials):
            orchestrator.lookup(search_items)

        assert transport.count(LOGIN_PATH) == 2
        assert transport.count(BATCH_LOOKUP_PATH) == 2

    def test_larger_budget(self, orchestrator, transport, login_response, search_items):
        """auto_retries=2 allows three attempts."""
        transport.queue(LOGIN_PATH, 200, login_response)
        transport.queue(BATCH_LOOKUP_PATH, 401, times=3)

        with pytest.raises(BadCredentials):
            orchestrator.lookup(search_items, auto_retries=2)

        assert transport.count(LOGIN_PATH) == 3
        assert transport.count(BATCH_LOOKUP_PATH) == 3

    def test_no_retries(self, orchestrator, transport, login_response, search_items):
        """auto_retries=0 surfaces the first 401."""
        transport.queue(LOGIN_PATH, 200, login_response)
        transport.queue(BATCH_LOOKUP_PATH, 401)

        with pytest.raises(BadCredentials):
            orchestrator.lookup(search_items, auto_retries=0)

        assert transport.count(LOGIN_PATH) == 1
        assert transport.count(BATCH_LOOKUP_PATH) == 1

    def test_retries_server_refresh(self, orchestrator, transport, login_response, lookup_response, search_items):
        """A 503 refresh-in-progress is retried like a 401."""
        transport.queue(LOGIN_PATH, 200, login_response)
        transport.queue(BATCH_LOOKUP_PATH, 503, json.dumps({"response": "Internal refresh in progress"}))
        transport.queue(BATCH_LOOKUP_PATH, 200, lookup_response)

        result = orchestrator.lookup(search_items)

        assert set(result) == set(search_items)
        assert transport.count(LOGIN_PATH) == 2
        assert transport.count(BATCH_LOOKUP_PATH) == 2

    def test_server_refresh_exhausted(self, orchestrator, transport, login_response, search_items):
        """Persistent refreshing is re-raised once the budget is spent."""
        transport.queue(LOGIN_PATH, 200, login_response)
        transport.queue(BATCH_LOOKUP_PATH, 503, json.dumps({"response": "Internal refresh in progress"}))

        with pytest.raises(ServerRefreshing):
            orchestrator.lookup(search_items)

        assert transport.count(BATCH_LOOKUP_PATH) == 2

    @pytest.mark.parametrize("status,body,error", [
        (500, None, ServerError),
        (503, json.dumps({"response": "Server error"}), ServerError),
        (501, None, UnhandledHttpError),
    ])
    def test_other_errors_not_retried(self, orchestrator, transport, login_response, search_items, status, body, error):
        """Non-retryable errors propagate on first occurrence."""
        transport.queue(LOGIN_PATH, 200, login_response)
        transport.queue(BATCH_LOOKUP_PATH, status, body)

        with pytest.raises(error):
            orchestrator.lookup(search_items)

        assert transport.count(LOGIN_PATH) == 1
        assert transport.count(BATCH_LOOKUP_PATH) == 1

    def test_failed_relogin_raises_refresh_failed(self, orchestrator, transport, login_response, search_items):
        """If the forced login itself fails the caller sees RefreshFailed."""
        transport.queue(LOGIN_PATH, 200, login_response)
        transport.queue(LOGIN_PATH, 401)
        transport.queue(BATCH_LOOKUP_PATH, 401)

        with pytest.raises(RefreshFailed) as exc_info:
            orchestrator.lookup(search_items)

        assert isinstance(exc_info.value.__cause__, BadCredentials)
        assert transport.count(BATCH_LOOKUP_PATH) == 1

    def test_negative_budget_rejected(self, orchestrator, search_items):
        with pytest.raises(ValueError):
            orchestrator.lookup(search_items, auto_retries=-1)


class TestInputValidation:
    """Bad input is rejected before any request."""

    def test_batch_too_large(self, orchestrator, transport, login_response):
        """MAX_BATCH_SIZE + 1 items never reach the batch endpoint."""
        transport.queue(LOGIN_PATH, 200, login_response)
        items = {f"item{i}": {"postcode": f"AB{i}"} for i in range(MAX_BATCH_SIZE + 1)}

        with pytest.raises(BatchTooLarge):
            orchestrator.lookup(items)

        assert transport.count(BATCH_LOOKUP_PATH) == 0
        assert transport.count(LOGIN_PATH) <= 1

    def test_max_batch_size_allowed(self, orchestrator, transport, login_response):
        """Exactly MAX_BATCH_SIZE items is accepted."""
        items = {f"item{i}": {"postcode": f"AB{i}"} for i in range(MAX_BATCH_SIZE)}
        transport.queue(LOGIN_PATH, 200, login_response)
        transport.queue(BATCH_LOOKUP_PATH, 200, json.dumps([{}] * MAX_BATCH_SIZE))

        result = orchestrator.lookup(items)

        assert len(result) == MAX_BATCH_SIZE

    def test_malformed_search_key(self, orchestrator, transport):
        """A search key that is not a mapping raises InvalidSearchItems."""
        with pytest.raises(InvalidSearchItems) as exc_info:
            orchestrator.lookup({"PersonA": "person.a@example.com"})

        assert exc_info.value.errors
        assert transport.calls == []

    def test_reserved_field_rejected_for_single_lookup(self, orchestrator, transport):
        """A single search key may not override envelope fields."""
        with pytest.raises(InvalidSearchItems):
            orchestrator.lookup_single({"token": "sneaky"})

        assert transport.calls == []

    def test_envelope_names_allowed_in_batch(self, orchestrator, transport, login_response):
        """Batch entries sit under "batch", so they are sent as given."""
        transport.queue(LOGIN_PATH, 200, login_response)
        transport.queue(BATCH_LOOKUP_PATH, 200, json.dumps([{}]))

        orchestrator.lookup({"PersonA": {"token": "field-value"}})

        body = transport.bodies(BATCH_LOOKUP_PATH)[0]
        assert body["token"] == AUTH_TOKEN
        assert body["batch"] == [{"token": "field-value"}]


class TestTransformers:
    """Choice of transformer changes only the enrichment step."""

    def _orchestrator(self, api, transformer):
        return LookupOrchestrator(
            user_id=USER_ID,
            password=PASSWORD,
            client_id=CLIENT_ID,
            asset_id=ASSET_ID,
            api=api,
            token_cache=TokenCache(MemoryTokenStore()),
            transformer=transformer,
        )

    def test_noop_transformer_returns_raw_records(self, api, happy_transport, search_items):
        """The identity transformer passes API codes through."""
        orchestrator = self._orchestrator(api, NoOpTransformer())

        assert orchestrator.lookup(search_items) == {
            "PersonA": {"pc_mosaic_uk_6_group": "A", "Match": "P"},
            "Postcode1": {"pc_mosaic_uk_6_type": "66", "Match": "PC"},
        }

    def test_custom_registry(self, api, happy_transport, search_items):
        """Only attributes in a custom registry are enriched."""
        registry = AttributeTransformerRegistry()
        registry.register_attribute("Match", AttributeCodeTable("Match", {
            "P": {"code": "P", "matchLevel": "person"},
            "PC": {"code": "PC", "matchLevel": "postcode"},
        }))
        orchestrator = self._orchestrator(api, registry)

        result = orchestrator.lookup(search_items)

        assert result["PersonA"] == {"pc_mosaic_uk_6_group": "A", "Match": {"code": "P", "matchLevel": "person"}}

    def test_unrecognised_code_aborts_lookup(self, orchestrator, transport, login_response, search_items):
        """An unknown code fails the whole call."""
        transport.queue(LOGIN_PATH, 200, login_response)
        transport.queue(BATCH_LOOKUP_PATH, 200, json.dumps([{"Match": "P"}, {"Match": "ZZ"}]))

        with pytest.raises(UnrecognizedAttributeValue) as exc_info:
            orchestrator.lookup(search_items)

        assert exc_info.value.attribute == "Match"
        assert exc_info.value.code == "ZZ"


class TestLookupSingle:
    """Single-item lookups share the token and retry policy."""

    def test_single_lookup(self, orchestrator, transport, login_response):
        transport.queue(LOGIN_PATH, 200, login_response)
        transport.queue(SINGLE_LOOKUP_PATH, 200, json.dumps({"Match": "PC", "pc_mosaic_uk_6_group": "G"}))

        result = orchestrator.lookup_single({"postcode": "SW1A 1AA"})

        assert result == {
            "Match": {"api_code": "PC", "match_level": "postcode"},
            "pc_mosaic_uk_6_group": {"api_code": "G", "group": "G", "description": "Domestic Success"},
        }
        assert transport.bodies(SINGLE_LOOKUP_PATH) == [{
            "ssoId": USER_ID,
            "token": AUTH_TOKEN,
            "clientId": CLIENT_ID,
            "assetId": ASSET_ID,
            "postcode": "SW1A 1AA",
        }]

    def test_single_lookup_retries_401(self, orchestrator, transport, login_response):
        transport.queue(LOGIN_PATH, 200, login_response)
        transport.queue(SINGLE_LOOKUP_PATH, 401)
        transport.queue(SINGLE_LOOKUP_PATH, 200, json.dumps({}))

        assert orchestrator.lookup_single({"email": "a@example.com"}) == {}
        assert transport.count(LOGIN_PATH) == 2
        assert transport.count(SINGLE_LOOKUP_PATH) == 2

    def test_single_lookup_shares_cached_token(self, orchestrator, happy_transport, search_items):
        happy_transport.queue(SINGLE_LOOKUP_PATH, 200, json.dumps({}))

        orchestrator.lookup(search_items)
        orchestrator.lookup_single({"email": "a@example.com"})

        assert happy_transport.count(LOGIN_PATH) == 1
