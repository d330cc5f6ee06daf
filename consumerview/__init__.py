"""ConsumerView API client: cached login, ordered batch lookups, enriched results."""

__version__ = "0.1.0"

from .api import (
    AuthenticatedApiClient,
    MAX_BATCH_SIZE,
    PRODUCTION_URL,
    STAGING_URL,
    extract_response_text,
)
from .client import DEFAULT_AUTO_RETRIES, LookupOrchestrator
from .errors import (
    ApiHttpError,
    BadCredentials,
    BatchTooLarge,
    ConfigurationError,
    ConsumerViewError,
    EndpointNotFound,
    HttpVersionUnsupported,
    InvalidSearchItems,
    MalformedRequest,
    MalformedResponse,
    RefreshFailed,
    ResultSizeMismatch,
    RETRYABLE_ERRORS,
    ServerError,
    ServerRefreshing,
    UnhandledHttpError,
    UnrecognizedAttributeValue,
)
from .token_cache import (
    CachedTokenEntry,
    DEFAULT_RACE_GRACE_WINDOW,
    DEFAULT_TOKEN_TTL,
    MemoryTokenStore,
    TokenCache,
    TokenState,
    TokenStore,
)
from .transformers import (
    AttributeCodeTable,
    AttributeTransformerRegistry,
    NoOpTransformer,
    default_registry,
)
from .transport import RequestsTransport, Transport, TransportError
