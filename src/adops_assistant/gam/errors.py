# Author: Green Mountain Systems AI Inc.
# Donated to IAB Tech Lab

"""Failure taxonomy for the GAM forecast client."""

from typing import Optional

from ..models.forecast import SoapFault


class ForecastError(Exception):
    """Base class for every failed forecast call."""


class CredentialError(ForecastError):
    """Access token exchange failed."""


class CompileError(ForecastError):
    """Request could not be compiled to SOAP XML."""


class TransportError(ForecastError):
    """The forecast endpoint could not be reached."""


class DecodeError(ForecastError):
    """A success envelope did not have the expected shape."""


class QueueFullError(ForecastError):
    """The request queue is at its configured bound."""


class RemoteFault(ForecastError):
    """GAM rejected the request with a SOAP fault."""

    def __init__(self, fault: SoapFault, status_code: Optional[int] = None):
        self.fault = fault
        self.status_code = status_code
        super().__init__(
            f"SOAP request failed with status: {status_code}, Fault: {fault.fault_string}"
        )

    @property
    def fault_string(self) -> str:
        return self.fault.fault_string
