"""Skland and Hypergryph upstream clients."""

from .client import GameApiClient, UserAgents
from .device_id import DeviceIdProvider, SubprocessDeviceIdProvider
from .exchange import CredentialExchange, ExchangeResult
from .hg_device import HypergryphDevice, HypergryphDeviceRegistry
from .signature import SignResult, build_query_string, sign
from .tokens import TokenCache
from .transport import AiohttpTransport, HttpResponse, RetryPolicy, Transport

__all__ = [
    "GameApiClient",
    "UserAgents",
    "DeviceIdProvider",
    "SubprocessDeviceIdProvider",
    "CredentialExchange",
    "ExchangeResult",
    "HypergryphDevice",
    "HypergryphDeviceRegistry",
    "SignResult",
    "build_query_string",
    "sign",
    "TokenCache",
    "AiohttpTransport",
    "HttpResponse",
    "RetryPolicy",
    "Transport",
]
