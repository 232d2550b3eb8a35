#!/usr/bin/env python3
# Copyright 2022 Canonical Ltd.
# See LICENSE file for licensing details.

"""Typed readers for Contour annotations.

Values are looked up under the current ``projectcontour.io/`` namespace first
and fall back to the deprecated ``contour.heptio.com/`` one. None of the
readers raise: malformed values degrade to a safe default.
"""
import logging
import re
from datetime import timedelta
from typing import Any, Dict, Mapping, Optional, Set

from resources import as_annotated

logger = logging.getLogger(__name__)

LEGACY_PREFIX = "contour.heptio.com/"
CURRENT_PREFIX = "projectcontour.io/"

ALLOW_HTTP_ANNOTATION = "kubernetes.io/ingress.allow-http"
FORCE_SSL_REDIRECT_ANNOTATION = "ingress.kubernetes.io/force-ssl-redirect"

UPSTREAM_PROTOCOL = "upstream-protocol"
# Order matters: a token claimed by several protocols ends up with the last one.
UPSTREAM_PROTOCOLS = ("h2", "h2c", "tls")

WEBSOCKET_ROUTES = "websocket-routes"
NUM_RETRIES = "num-retries"
RETRY_ON = "retry-on"
PER_TRY_TIMEOUT = "per-try-timeout"
RESPONSE_TIMEOUT = "response-timeout"
MAX_CONNECTIONS = "max-connections"
MAX_PENDING_REQUESTS = "max-pending-requests"
MAX_REQUESTS = "max-requests"
MAX_RETRIES = "max-retries"
TLS_MINIMUM_PROTOCOL_VERSION = "tls-minimum-protocol-version"

MAX_UINT32 = 2**32 - 1
INFINITY = "infinity"

_DIGITS = re.compile(r"[0-9]+")
_DURATION = re.compile(r"(?:(?:[0-9]+(?:\.[0-9]*)?|\.[0-9]+)(?:ns|us|µs|μs|ms|s|m|h))+")
_DURATION_PART = re.compile(r"([0-9]*\.?[0-9]*)(ns|us|µs|μs|ms|s|m|h)")
_UNIT_SECONDS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "μs": 1e-6,
    "ms": 1e-3,
    "s": 1,
    "m": 60,
    "h": 3600,
}


def parse_list(value: str, sep: str = ",") -> Set[str]:
    """Split ``value`` on ``sep`` into a set of stripped, non-empty tokens."""
    return {token.strip() for token in value.split(sep) if token.strip()}


def parse_uint32(value: str) -> int:
    """Parse ``value`` as an unsigned 32 bit integer.

    Returns 0 for anything that is not a plain string of decimal digits or
    that does not fit in 32 bits; callers can't tell "0" from garbage.
    """
    if not _DIGITS.fullmatch(value):
        if value:
            logger.debug(f"ignoring non-numeric value {value!r}")
        return 0
    digits = value.lstrip("0") or "0"
    if len(digits) > len(str(MAX_UINT32)) or int(digits) > MAX_UINT32:
        logger.debug(f"ignoring value {value!r}: out of range for uint32")
        return 0
    return int(digits)


def parse_timeout(value: str) -> Optional[timedelta]:
    """Parse a duration such as ``"1h30m"`` or ``"250ms"``.

    An empty value means "use the default" and yields ``timedelta(0)``.
    ``"infinity"`` yields None, i.e. no timeout, and so does anything that
    can't be parsed.
    """
    if value == "":
        return timedelta(0)
    if value == INFINITY:
        return None
    if value == "0":
        return timedelta(0)
    if not _DURATION.fullmatch(value):
        logger.debug(f"cannot parse timeout {value!r}; assuming no timeout")
        return None

    seconds = 0.0
    for number, unit in _DURATION_PART.findall(value):
        seconds += float(number) * _UNIT_SECONDS[unit]
    try:
        return timedelta(seconds=seconds)
    except OverflowError:
        logger.debug(f"timeout {value!r} is out of range; assuming no timeout")
        return None


def compat_annotation(obj: Any, name: str) -> str:
    """Return the value of annotation ``name`` under either namespace.

    The current namespace wins whenever its key is present, even if empty.
    """
    return _compat_value(as_annotated(obj).annotations, name)


def _compat_value(annotations: Mapping[str, str], name: str) -> str:
    current = CURRENT_PREFIX + name
    if current in annotations:
        return annotations[current]
    return annotations.get(LEGACY_PREFIX + name, "")


def parse_upstream_protocols(annotations: Optional[Mapping[str, str]]) -> Dict[str, str]:
    """Map each port or scheme listed in the upstream-protocol annotations to its protocol."""
    annotations = annotations or {}
    protocols = {}
    for protocol in UPSTREAM_PROTOCOLS:
        value = _compat_value(annotations, f"{UPSTREAM_PROTOCOL}.{protocol}")
        for token in parse_list(value):
            protocols[token] = protocol
    return protocols


def upstream_protocols(obj: Any) -> Dict[str, str]:
    """Upstream protocol overrides of a Service, keyed by port or scheme."""
    return parse_upstream_protocols(as_annotated(obj).annotations)


def websocket_routes(obj: Any) -> Set[str]:
    """Paths of an Ingress that should be upgraded to websockets.

    Both namespaces contribute; their routes are merged.
    """
    annotations = as_annotated(obj).annotations
    return parse_list(annotations.get(LEGACY_PREFIX + WEBSOCKET_ROUTES, "")) | parse_list(
        annotations.get(CURRENT_PREFIX + WEBSOCKET_ROUTES, "")
    )


def http_allowed(obj: Any) -> bool:
    """Whether the Ingress may be served over plain HTTP.

    Only the exact value ``"false"`` disallows it.
    """
    return as_annotated(obj).annotations.get(ALLOW_HTTP_ANNOTATION) != "false"


def tls_required(obj: Any) -> bool:
    """Whether plain HTTP requests should be redirected to HTTPS."""
    return as_annotated(obj).annotations.get(FORCE_SSL_REDIRECT_ANNOTATION) == "true"


def num_retries(obj: Any) -> int:
    """Number of retries for an Ingress route; 0 if unset or invalid."""
    return parse_uint32(compat_annotation(obj, NUM_RETRIES))


def retry_on(obj: Any) -> str:
    """Retry policy conditions for an Ingress route, verbatim."""
    return compat_annotation(obj, RETRY_ON)


def per_try_timeout(obj: Any) -> Optional[timedelta]:
    """Timeout of each retry attempt; see :func:`parse_timeout`."""
    return parse_timeout(compat_annotation(obj, PER_TRY_TIMEOUT))


def response_timeout(obj: Any) -> Optional[timedelta]:
    """Timeout for the whole response; see :func:`parse_timeout`."""
    return parse_timeout(compat_annotation(obj, RESPONSE_TIMEOUT))


def max_connections(obj: Any) -> int:
    """Circuit breaker limit on upstream connections; 0 if unset or invalid."""
    return parse_uint32(compat_annotation(obj, MAX_CONNECTIONS))


def max_pending_requests(obj: Any) -> int:
    """Circuit breaker limit on queued requests; 0 if unset or invalid."""
    return parse_uint32(compat_annotation(obj, MAX_PENDING_REQUESTS))


def max_requests(obj: Any) -> int:
    """Circuit breaker limit on parallel requests; 0 if unset or invalid."""
    return parse_uint32(compat_annotation(obj, MAX_REQUESTS))


def max_retries(obj: Any) -> int:
    """Circuit breaker limit on parallel retries; 0 if unset or invalid."""
    return parse_uint32(compat_annotation(obj, MAX_RETRIES))


def min_tls_version(obj: Any) -> str:
    """Minimum TLS version for an Ingress: ``"1.3"``, ``"1.2"``, or the default ``"1.1"``."""
    version = compat_annotation(obj, TLS_MINIMUM_PROTOCOL_VERSION)
    if version in ("1.3", "1.2"):
        return version
    return "1.1"
