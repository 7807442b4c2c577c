# Author: Green Mountain Systems AI Inc.
# Donated to IAB Tech Lab

"""Compiles a ForecastRequest into a ForecastService SOAP envelope.

The element order and nesting follow the ``getAvailabilityForecast``
schema of the GAM SOAP API. The envelope is built as an element tree, so
any text that ever reaches it is escaped on serialization.
"""

import xml.etree.ElementTree as ET
from dataclasses import dataclass
from datetime import date
from typing import Optional

from ..models.forecast import (
    CustomTargeting,
    ForecastRequest,
    FrequencyCap,
    GeoTargeting,
)
from .errors import CompileError

SOAPENV_NS = "http://schemas.xmlsoap.org/soap/envelope/"
XSD_NS = "http://www.w3.org/2001/XMLSchema"
XSI_NS = "http://www.w3.org/2001/XMLSchema-instance"
SOAP_ACTOR_NEXT = "http://schemas.xmlsoap.org/soap/actor/next"


def gam_namespace(api_version: str) -> str:
    """Schema namespace for a GAM API version, e.g. ``v202502``."""
    return f"https://www.google.com/apis/ads/publisher/{api_version}"


@dataclass(frozen=True)
class SoapConfig:
    """Fixed per-deployment values baked into every request."""

    network_code: str
    application_name: str
    api_version: str = "v202502"
    time_zone: str = "Europe/Copenhagen"

    @classmethod
    def from_settings(cls, settings) -> "SoapConfig":
        """Build from application settings."""
        return cls(
            network_code=settings.get_network_code(),
            application_name=settings.gam_application_name,
            api_version=settings.gam_api_version,
            time_zone=settings.gam_time_zone,
        )


def _sub(parent: ET.Element, tag: str, text: Optional[object] = None, **attrib: str) -> ET.Element:
    element = ET.SubElement(parent, tag, attrib)
    if text is not None:
        element.text = str(text)
    return element


def _date_time(parent: ET.Element, tag: str, day: date, hms: tuple[int, int, int], time_zone: str) -> None:
    block = _sub(parent, tag)
    date_el = _sub(block, "date")
    _sub(date_el, "year", day.year)
    _sub(date_el, "month", day.month)
    _sub(date_el, "day", day.day)
    hour, minute, second = hms
    _sub(block, "hour", hour)
    _sub(block, "minute", minute)
    _sub(block, "second", second)
    _sub(block, "timeZoneId", time_zone)


def _frequency_cap(parent: ET.Element, cap: Optional[FrequencyCap]) -> None:
    if cap is None or not cap.max_impressions:
        return
    caps = _sub(parent, "frequencyCaps")
    _sub(caps, "maxImpressions", cap.max_impressions)
    _sub(caps, "timeUnit", cap.time_unit.value)


def _geo_targeting(parent: ET.Element, geo: Optional[GeoTargeting]) -> None:
    if geo is None or geo.is_empty:
        return
    geo_el = _sub(parent, "geoTargeting")
    if geo.targeted_location_ids:
        targeted = _sub(geo_el, "targetedLocations")
        for location_id in geo.targeted_location_ids:
            _sub(targeted, "id", location_id)
    if geo.excluded_location_ids:
        excluded = _sub(geo_el, "excludedLocations")
        for location_id in geo.excluded_location_ids:
            _sub(excluded, "id", location_id)


def _inventory_targeting(parent: ET.Element, request: ForecastRequest) -> None:
    inventory = _sub(parent, "inventoryTargeting")
    for ad_unit_id in request.targeted_ad_unit_ids or []:
        unit = _sub(inventory, "targetedAdUnits")
        _sub(unit, "adUnitId", ad_unit_id)
        _sub(unit, "includeDescendants", "true")
    for ad_unit_id in request.excluded_ad_unit_ids or []:
        unit = _sub(inventory, "excludedAdUnits")
        _sub(unit, "adUnitId", ad_unit_id)
        _sub(unit, "includeDescendants", "true")
    for placement_id in request.targeted_placement_ids or []:
        _sub(inventory, "targetedPlacementIds", placement_id)


def _custom_targeting(parent: ET.Element, request: ForecastRequest) -> None:
    groups: list[ET.Element] = []

    if request.audience_segment_ids:
        segments = ET.Element("children", {"xsi:type": "AudienceSegmentCriteria"})
        _sub(segments, "operator", "IS")
        for segment_id in request.audience_segment_ids:
            _sub(segments, "audienceSegmentIds", segment_id)
        groups.append(segments)

    for entry in request.custom_targeting or []:
        groups.append(_custom_criteria(entry))

    if not groups:
        return

    container = _sub(parent, "customTargeting")
    # AND across several groups; a lone group gets OR, which GAM treats the same
    _sub(container, "logicalOperator", "AND" if len(groups) > 1 else "OR")
    container.extend(groups)


def _custom_criteria(entry: CustomTargeting) -> ET.Element:
    criteria = ET.Element("children", {"xsi:type": "CustomCriteria"})
    _sub(criteria, "keyId", entry.key_id)
    for value_id in entry.value_ids:
        _sub(criteria, "valueIds", value_id)
    _sub(criteria, "operator", entry.operator.value)
    return criteria


def _check_contract(request: ForecastRequest) -> None:
    """Reject requests that bypassed model validation (e.g. ``model_construct``)."""
    if not isinstance(request, ForecastRequest):
        raise CompileError(f"Expected ForecastRequest, got {type(request).__name__}")
    if not request.creative_sizes:
        raise CompileError("At least one creative size is required")
    date_range = request.date_range
    if not date_range.is_immediate and date_range.end < date_range.start:
        raise CompileError(
            f"End date {date_range.end} is before start date {date_range.start}"
        )
    for entry in request.custom_targeting or []:
        if not entry.value_ids:
            raise CompileError(f"Custom targeting key {entry.key_id} has no values")


def build_envelope(request: ForecastRequest, config: SoapConfig) -> ET.Element:
    """Build the SOAP envelope element tree for a forecast request."""
    namespace = gam_namespace(config.api_version)

    envelope = ET.Element(
        "soapenv:Envelope",
        {"xmlns:soapenv": SOAPENV_NS, "xmlns:xsd": XSD_NS, "xmlns:xsi": XSI_NS},
    )

    header = _sub(envelope, "soapenv:Header")
    request_header = _sub(
        header,
        "ns1:RequestHeader",
        **{
            "soapenv:actor": SOAP_ACTOR_NEXT,
            "soapenv:mustUnderstand": "0",
            "xmlns:ns1": namespace,
        },
    )
    _sub(request_header, "ns1:networkCode", config.network_code)
    _sub(request_header, "ns1:applicationName", config.application_name)

    body = _sub(envelope, "soapenv:Body")
    call = _sub(body, "getAvailabilityForecast", xmlns=namespace)
    line_item = _sub(_sub(call, "lineItem"), "lineItem")

    date_range = request.date_range
    if date_range.is_immediate:
        _sub(line_item, "startDateTimeType", "IMMEDIATELY")
    else:
        _date_time(line_item, "startDateTime", date_range.start, (0, 0, 0), config.time_zone)
    _date_time(line_item, "endDateTime", date_range.end, (23, 59, 59), config.time_zone)

    _frequency_cap(line_item, request.frequency_cap)
    _sub(line_item, "lineItemType", "STANDARD")
    _sub(line_item, "costType", "CPM")

    for size in request.creative_sizes:
        size_el = _sub(_sub(line_item, "creativePlaceholders"), "size")
        _sub(size_el, "width", size.width)
        _sub(size_el, "height", size.height)
        _sub(size_el, "isAspectRatio", "false")

    goal = _sub(line_item, "primaryGoal")
    _sub(goal, "goalType", "LIFETIME")
    _sub(goal, "unitType", "IMPRESSIONS")
    if request.goal_impressions:
        _sub(goal, "units", request.goal_impressions)

    targeting = _sub(line_item, "targeting")
    _geo_targeting(targeting, request.geo_targeting)
    _inventory_targeting(targeting, request)
    _custom_targeting(targeting, request)

    options = _sub(call, "forecastOptions", **{"xsi:type": "AvailabilityForecastOptions"})
    _sub(options, "includeTargetingCriteriaBreakdown", "true")
    _sub(options, "includeContendingLineItems", "true")

    return envelope


def compile_forecast_request(request: ForecastRequest, config: SoapConfig) -> str:
    """Compile a forecast request to the SOAP XML body.

    Pure and deterministic: equal requests produce identical strings.

    Args:
        request: Validated forecast request
        config: Network/application identifiers, API version and time zone

    Returns:
        Serialized SOAP envelope

    Raises:
        CompileError: The request does not have the documented shape
    """
    try:
        _check_contract(request)
        envelope = build_envelope(request, config)
    except (AttributeError, TypeError, ValueError) as e:
        raise CompileError(f"Could not compile forecast request: {e}") from e
    ET.indent(envelope, space="  ")
    return ET.tostring(envelope, encoding="unicode")
