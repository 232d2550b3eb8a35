# Copyright 2022 Canonical Ltd.
# See LICENSE file for licensing details.

import unittest

import pytest
from lightkube.models.meta_v1 import ObjectMeta
from lightkube.resources.core_v1 import Secret, Service
from lightkube.resources.networking_v1 import Ingress

from annotation_policy import (
    ANNOTATIONS_BY_KIND,
    annotation_is_known,
    bare_name,
    invalid_annotations,
    valid_annotation_for_kind,
)
from resources import HTTPProxy, IngressRoute, to_kind

KINDS = ("Service", "Ingress", "HTTPProxy", "IngressRoute")


@pytest.mark.parametrize(
    "key, expected",
    (
        ("projectcontour.io/max-requests", "max-requests"),
        ("contour.heptio.com/max-requests", "max-requests"),
        ("kubernetes.io/ingress.class", "ingress.class"),
        ("max-requests", "max-requests"),
        ("a/b/c", "b/c"),
        ("", ""),
    ),
)
def test_bare_name(key, expected):
    assert bare_name(key) == expected


@pytest.mark.parametrize(
    "kind, name",
    [(kind, name) for kind in KINDS for name in sorted(ANNOTATIONS_BY_KIND[kind])],
)
@pytest.mark.parametrize("prefix", ("projectcontour.io/", "contour.heptio.com/", ""))
def test_registered_annotations_are_known_and_valid(kind, name, prefix):
    key = prefix + name
    assert annotation_is_known(key)
    assert valid_annotation_for_kind(kind, key)


@pytest.mark.parametrize(
    "kind, key, known, valid",
    (
        ("Service", "foo.heptio.com/annotation", False, False),
        ("Service", "contour.heptio.com/annotation", False, False),
        ("Service", "projectcontour.io/annotation", False, False),
        ("Service", "projectcontour.io/websocket-routes", True, False),
        ("Ingress", "contour.heptio.com/max-requests", True, False),
        ("Ingress", "kubernetes.io/ingress.allow-http", True, True),
        ("Ingress", "ingress.kubernetes.io/force-ssl-redirect", True, True),
        ("HTTPProxy", "projectcontour.io/max-requests", True, False),
        ("HTTPProxy", "projectcontour.io/websocket-routes", True, False),
        ("HTTPProxy", "kubernetes.io/ingress.class", True, True),
        ("IngressRoute", "contour.heptio.com/ingress.class", True, True),
        ("IngressRoute", "contour.heptio.com/retry-on", True, False),
        ("Secret", "projectcontour.io/ingress.class", True, False),
        ("Secret", "foo.io/secret-sauce", False, False),
    ),
)
def test_annotation_kind_validation(kind, key, known, valid):
    assert annotation_is_known(key) is known
    assert valid_annotation_for_kind(kind, key) is valid


def test_unknown_annotation_is_invalid_everywhere():
    for kind in KINDS + ("Secret", ""):
        assert not valid_annotation_for_kind(kind, "example.com/whatever")


def test_registry_is_frozen():
    with pytest.raises(TypeError):
        ANNOTATIONS_BY_KIND["Secret"] = frozenset(["ingress.class"])  # type: ignore[index]
    with pytest.raises(AttributeError):
        ANNOTATIONS_BY_KIND["Service"].add("ingress.class")  # type: ignore[attr-defined]


class TestInvalidAnnotations(unittest.TestCase):
    def test_kinds_of_lightkube_resources(self):
        self.assertEqual(to_kind(Service()), "Service")
        self.assertEqual(to_kind(Ingress()), "Ingress")
        self.assertEqual(to_kind(Secret()), "Secret")
        self.assertEqual(to_kind(HTTPProxy()), "HTTPProxy")
        self.assertEqual(to_kind(IngressRoute()), "IngressRoute")

    def test_service_with_ingress_annotation(self):
        svc = Service(
            metadata=ObjectMeta(
                name="svc",
                annotations={
                    "projectcontour.io/websocket-routes": "/ws",
                    "projectcontour.io/max-connections": "10",
                    "prometheus.io/scrape": "true",
                },
            )
        )
        self.assertEqual(invalid_annotations(svc), ["projectcontour.io/websocket-routes"])

    def test_valid_httpproxy(self):
        proxy = HTTPProxy(
            metadata=ObjectMeta(
                name="proxy", annotations={"projectcontour.io/ingress.class": "contour"}
            )
        )
        self.assertEqual(invalid_annotations(proxy), [])

    def test_report_is_sorted(self):
        proxy = HTTPProxy(
            metadata=ObjectMeta(
                name="proxy",
                annotations={
                    "projectcontour.io/retry-on": "5xx",
                    "contour.heptio.com/max-requests": "1",
                },
            )
        )
        self.assertEqual(
            invalid_annotations(proxy),
            ["contour.heptio.com/max-requests", "projectcontour.io/retry-on"],
        )

    def test_no_annotations(self):
        self.assertEqual(invalid_annotations(Ingress()), [])
