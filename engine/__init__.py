"""netspeed engine -- endpoint selection, measurement, and persistence."""

from .catalog import (
    Capabilities,
    CustomProvider,
    Endpoint,
    KnownProvider,
    catalog,
    regional_hubs,
)
from .download import DownloadTester
from .geolocation import GeoLocator, LocationInfo
from .grading import ConnectionQuality, rate_connection
from .health import HealthRecord, InMemoryHealthStore, JsonHealthStore
from .latency import LatencyResult, LatencyTester
from .retry import ProbeOutcome, probe_with_retries
from .scoring import score
from .selector import (
    EndpointSelector,
    NoResponsiveEndpoint,
    ScoredEndpoint,
    SelectionConfig,
    SelectionResult,
    select_endpoint,
)
from .stats import TransferResult
from .transport import HttpTransport, TransportError
from .upload import UploadTester

__all__ = [
    "Capabilities",
    "ConnectionQuality",
    "CustomProvider",
    "DownloadTester",
    "Endpoint",
    "EndpointSelector",
    "GeoLocator",
    "HealthRecord",
    "HttpTransport",
    "InMemoryHealthStore",
    "JsonHealthStore",
    "KnownProvider",
    "LatencyResult",
    "LatencyTester",
    "LocationInfo",
    "NoResponsiveEndpoint",
    "ProbeOutcome",
    "ScoredEndpoint",
    "SelectionConfig",
    "SelectionResult",
    "TransferResult",
    "TransportError",
    "UploadTester",
    "catalog",
    "probe_with_retries",
    "rate_connection",
    "regional_hubs",
    "score",
    "select_endpoint",
]
