# Author: Green Mountain Systems AI Inc.
# Donated to IAB Tech Lab

"""Pytest configuration and fixtures."""

import pytest

from adops_assistant.gam.soap import SoapConfig

SOAP_NS = "http://schemas.xmlsoap.org/soap/envelope/"
GAM_NS = "https://www.google.com/apis/ads/publisher/v202502"


def _forecast_envelope(rval: str) -> str:
    """Wrap an ``rval`` body in a getAvailabilityForecastResponse envelope."""
    return f"""<?xml version="1.0" encoding="UTF-8"?>
<soap:Envelope xmlns:soap="{SOAP_NS}">
  <soap:Header>
    <ResponseHeader xmlns="{GAM_NS}">
      <requestId>5f1c0c7e2f4b</requestId>
      <responseTime>812</responseTime>
    </ResponseHeader>
  </soap:Header>
  <soap:Body>
    <getAvailabilityForecastResponse xmlns="{GAM_NS}">
      <rval>{rval}</rval>
    </getAvailabilityForecastResponse>
  </soap:Body>
</soap:Envelope>"""


def _fault_envelope(fault_string: str) -> str:
    """A SOAP fault envelope as GAM returns it with HTTP 500."""
    return f"""<?xml version="1.0" encoding="UTF-8"?>
<soap:Envelope xmlns:soap="{SOAP_NS}">
  <soap:Body>
    <soap:Fault>
      <faultcode>soap:Server</faultcode>
      <faultstring>{fault_string}</faultstring>
      <detail>
        <ApiExceptionFault xmlns="{GAM_NS}">
          <message>{fault_string}</message>
        </ApiExceptionFault>
      </detail>
    </soap:Fault>
  </soap:Body>
</soap:Envelope>"""


@pytest.fixture
def soap_config() -> SoapConfig:
    """Fixed network settings for compiled envelopes."""
    return SoapConfig(
        network_code="12345678",
        application_name="adops-assistant-test",
        api_version="v202502",
        time_zone="Europe/Copenhagen",
    )


@pytest.fixture
def sample_request_data() -> dict:
    """Forecast request using every targeting option."""
    return {
        "dateRange": {"start": "2025-06-01", "end": "2025-06-30"},
        "creativeSizes": [{"width": 300, "height": 250}, {"width": 728, "height": 90}],
        "goalImpressions": 500000,
        "targetedAdUnitIds": [111, 222],
        "excludedAdUnitIds": [333],
        "targetedPlacementIds": [444],
        "audienceSegmentIds": ["555"],
        "customTargeting": [{"keyId": "666", "valueIds": ["777", "778"]}],
        "frequencyCap": {"maxImpressions": 3, "timeUnit": "DAY"},
        "geoTargeting": {"targetedLocationIds": [2208], "excludedLocationIds": [9040]},
    }


@pytest.fixture
def full_rval() -> str:
    """Forecast result body with line items and breakdowns."""
    return """
        <unitType>IMPRESSIONS</unitType>
        <availableUnits>1000000</availableUnits>
        <deliveredUnits>1200</deliveredUnits>
        <matchedUnits>950000</matchedUnits>
        <possibleUnits>990000</possibleUnits>
        <reservedUnits>50000</reservedUnits>
        <targetingCriteriaBreakdowns>
          <targetingDimension>AD_UNIT</targetingDimension>
          <targetingCriteriaId>111</targetingCriteriaId>
          <targetingCriteriaName>jv.dk</targetingCriteriaName>
          <excluded>false</excluded>
          <availableUnits>600000</availableUnits>
          <matchedUnits>700000</matchedUnits>
        </targetingCriteriaBreakdowns>
        <targetingCriteriaBreakdowns>
          <targetingDimension>GEOGRAPHY</targetingDimension>
          <targetingCriteria>Denmark</targetingCriteria>
          <excluded>false</excluded>
          <availableUnits>400000</availableUnits>
          <matchedUnits>250000</matchedUnits>
        </targetingCriteriaBreakdowns>
        <contendingLineItems>
          <lineItemId>9001</lineItemId>
          <contendingImpressions>25000</contendingImpressions>
        </contendingLineItems>
        <contendingLineItems>
          <lineItemId>9002</lineItemId>
          <name>Summer Sponsorship</name>
          <priority>4</priority>
          <contendingImpressions>12000</contendingImpressions>
        </contendingLineItems>
    """


@pytest.fixture
def forecast_envelope():
    """Factory for success envelopes."""
    return _forecast_envelope


@pytest.fixture
def fault_envelope():
    """Factory for fault envelopes."""
    return _fault_envelope
