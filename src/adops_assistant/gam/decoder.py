# Author: Green Mountain Systems AI Inc.
# Donated to IAB Tech Lab

"""Decodes ForecastService SOAP responses.

The parsed tree is first normalized so every child key maps to a list of
nodes (a repeated element and a single element look the same), with
namespace prefixes dropped. Typed extraction then works on that shape.
"""

import logging
import xml.etree.ElementTree as ET
from typing import Any, Optional, Union

from ..models.forecast import (
    ContendingLineItem,
    ForecastResult,
    SoapFault,
    TargetingBreakdown,
)
from .errors import DecodeError

logger = logging.getLogger(__name__)

UNKNOWN_FAULT = "Unknown fault"

TEXT = "#text"

Node = dict[str, Any]

_COUNTERS = {
    "available_units": "availableUnits",
    "matched_units": "matchedUnits",
    "possible_units": "possibleUnits",
    "delivered_units": "deliveredUnits",
    "reserved_units": "reservedUnits",
}


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1].split(":")[-1]


def normalize(element: ET.Element) -> Node:
    """Convert an element into ``{child_name: [node, ...], "#text": str}``."""
    node: Node = {TEXT: (element.text or "").strip()}
    for child in element:
        node.setdefault(_local_name(child.tag), []).append(normalize(child))
    return node


def children(node: Optional[Node], key: str) -> list[Node]:
    """All child nodes named ``key`` (empty when absent)."""
    if not node:
        return []
    return node.get(key, [])


def first(node: Optional[Node], *path: str) -> Optional[Node]:
    """Follow ``path`` taking the first node at each step."""
    for key in path:
        found = children(node, key)
        if not found:
            return None
        node = found[0]
    return node


def text(node: Optional[Node], key: str) -> Optional[str]:
    """Text of the first child named ``key``, or None if missing or empty."""
    child = first(node, key)
    if child is None or not child[TEXT]:
        return None
    return child[TEXT]


def integer(node: Optional[Node], key: str, default: Optional[int] = 0) -> Optional[int]:
    """Integer value of a child element, ``default`` when it is absent."""
    value = text(node, key)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        raise DecodeError(f"Field {key} is not an integer: {value!r}") from None


def _parse(xml_text: Union[str, bytes]) -> Node:
    root = ET.fromstring(xml_text)
    if _local_name(root.tag) != "Envelope":
        raise ValueError(f"Expected a SOAP Envelope, got <{_local_name(root.tag)}>")
    return normalize(root)


def _fault_string(tree: Node) -> Optional[str]:
    return text(first(tree, "Body", "Fault"), "faultstring")


def decode_fault(xml_text: Union[str, bytes]) -> SoapFault:
    """Extract the fault string from a fault envelope.

    Never raises: unparseable bodies yield ``"Unknown fault"``.
    """
    try:
        fault_string = _fault_string(_parse(xml_text))
    except Exception as e:
        logger.error(f"Failed to parse SOAP fault response: {e}")
        return SoapFault(fault_string=UNKNOWN_FAULT)

    if fault_string is None:
        logger.warning("SOAP response has no faultstring")
        return SoapFault(fault_string=UNKNOWN_FAULT)

    logger.info(f"Parsed fault string: {fault_string}")
    return SoapFault(fault_string=fault_string)


def _contending_line_item(node: Node) -> ContendingLineItem:
    line_item_id = integer(node, "lineItemId", default=None)
    impressions = integer(node, "contendingImpressions", default=None)
    if line_item_id is None or impressions is None:
        raise DecodeError("Contending line item without lineItemId or contendingImpressions")
    return ContendingLineItem(
        line_item_id=line_item_id,
        name=text(node, "name"),
        priority=integer(node, "priority", default=None),
        contending_impressions=impressions,
    )


def _breakdown(node: Node) -> TargetingBreakdown:
    # Older API versions name the criterion targetingCriteria
    criterion = text(node, "targetingCriteriaName") or text(node, "targetingCriteria") or ""
    return TargetingBreakdown(
        criterion=criterion,
        dimension=text(node, "targetingDimension") or "",
        available_units=integer(node, "availableUnits"),
        matched_units=integer(node, "matchedUnits"),
    )


def decode_result(tree: Node) -> ForecastResult:
    """Build a ForecastResult from a normalized success envelope."""
    rval = first(tree, "Body", "getAvailabilityForecastResponse", "rval")
    if rval is None:
        raise DecodeError("Response has no getAvailabilityForecastResponse/rval element")

    counters = {field: integer(rval, key) for field, key in _COUNTERS.items()}
    return ForecastResult(
        **counters,
        contending_line_items=[
            _contending_line_item(node) for node in children(rval, "contendingLineItems")
        ],
        targeting_breakdown=[
            _breakdown(node) for node in children(rval, "targetingCriteriaBreakdowns")
        ],
    )


def decode_forecast_response(
    xml_text: Union[str, bytes], status_code: int
) -> Union[ForecastResult, SoapFault]:
    """Decode a ForecastService response.

    Args:
        xml_text: Response body
        status_code: HTTP status of the response

    Returns:
        ForecastResult on success, SoapFault when GAM returned a fault

    Raises:
        DecodeError: A success response was not a usable forecast envelope
    """
    if status_code != 200:
        return decode_fault(xml_text)

    try:
        tree = _parse(xml_text)
    except (ET.ParseError, ValueError) as e:
        raise DecodeError(f"Unparseable forecast response: {e}") from e

    fault_string = _fault_string(tree)
    if fault_string is not None:
        return SoapFault(fault_string=fault_string)

    return decode_result(tree)
