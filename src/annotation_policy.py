#!/usr/bin/env python3
# Copyright 2022 Canonical Ltd.
# See LICENSE file for licensing details.

"""Which annotations are legal on which resource kinds."""
import logging
from types import MappingProxyType
from typing import Any, FrozenSet, List, Mapping

from annotations import (
    MAX_CONNECTIONS,
    MAX_PENDING_REQUESTS,
    MAX_REQUESTS,
    MAX_RETRIES,
    NUM_RETRIES,
    PER_TRY_TIMEOUT,
    RESPONSE_TIMEOUT,
    RETRY_ON,
    TLS_MINIMUM_PROTOCOL_VERSION,
    UPSTREAM_PROTOCOL,
    UPSTREAM_PROTOCOLS,
    WEBSOCKET_ROUTES,
)
from resources import as_annotated

logger = logging.getLogger(__name__)

INGRESS_CLASS = "ingress.class"

# Keyed by bare name: "projectcontour.io/max-requests" and
# "contour.heptio.com/max-requests" are the same annotation here.
ANNOTATIONS_BY_KIND: Mapping[str, FrozenSet[str]] = MappingProxyType(
    {
        "Service": frozenset(
            [
                MAX_CONNECTIONS,
                MAX_PENDING_REQUESTS,
                MAX_REQUESTS,
                MAX_RETRIES,
                *(f"{UPSTREAM_PROTOCOL}.{protocol}" for protocol in UPSTREAM_PROTOCOLS),
            ]
        ),
        "Ingress": frozenset(
            [
                "force-ssl-redirect",
                "ingress.allow-http",
                INGRESS_CLASS,
                NUM_RETRIES,
                PER_TRY_TIMEOUT,
                RESPONSE_TIMEOUT,
                RETRY_ON,
                TLS_MINIMUM_PROTOCOL_VERSION,
                WEBSOCKET_ROUTES,
            ]
        ),
        "HTTPProxy": frozenset([INGRESS_CLASS]),
        "IngressRoute": frozenset([INGRESS_CLASS]),
    }
)

_KNOWN_ANNOTATIONS = frozenset().union(*ANNOTATIONS_BY_KIND.values())


def bare_name(key: str) -> str:
    """Strip the ``<namespace>/`` prefix off an annotation key."""
    _, sep, name = key.partition("/")
    return name if sep else key


def annotation_is_known(key: str) -> bool:
    """Whether any kind accepts this annotation, whatever its namespace."""
    return bare_name(key) in _KNOWN_ANNOTATIONS


def valid_annotation_for_kind(kind: str, key: str) -> bool:
    """Whether ``key`` is legal on objects of ``kind``.

    Only the key is checked, never the value. A key can be known and still be
    invalid for a given kind.
    """
    return bare_name(key) in ANNOTATIONS_BY_KIND.get(kind, frozenset())


def invalid_annotations(obj: Any) -> List[str]:
    """Known annotation keys on ``obj`` that are not legal for its kind, sorted.

    Annotations nobody registered (e.g. ones owned by other controllers) are
    not reported.
    """
    annotated = as_annotated(obj)
    kind = annotated.kind
    invalid = sorted(
        key
        for key in annotated.annotations
        if annotation_is_known(key) and not valid_annotation_for_kind(kind, key)
    )
    if invalid:
        logger.debug(f"{kind} carries annotations invalid for its kind: {invalid}")
    return invalid
