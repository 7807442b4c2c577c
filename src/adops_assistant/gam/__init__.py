# Author: Green Mountain Systems AI Inc.
# Donated to IAB Tech Lab

"""Google Ad Manager SOAP forecasting: auth, queueing, XML compile and decode."""

from .auth import CredentialCache, Credential, ServiceAccountTokenExchange
from .decoder import UNKNOWN_FAULT, decode_fault, decode_forecast_response
from .errors import (
    CompileError,
    CredentialError,
    DecodeError,
    ForecastError,
    QueueFullError,
    RemoteFault,
    TransportError,
)
from .request_queue import RequestQueue
from .soap import SoapConfig, compile_forecast_request

__all__ = [
    # Credentials
    "Credential",
    "CredentialCache",
    "ServiceAccountTokenExchange",
    # Scheduling
    "RequestQueue",
    # XML
    "SoapConfig",
    "compile_forecast_request",
    "decode_forecast_response",
    "decode_fault",
    "UNKNOWN_FAULT",
    # Errors
    "ForecastError",
    "CredentialError",
    "CompileError",
    "TransportError",
    "DecodeError",
    "QueueFullError",
    "RemoteFault",
]
