#!/usr/bin/env python3
# Copyright 2022 Canonical Ltd.
# See LICENSE file for licensing details.

"""Resource objects the annotation readers operate on.

Anything exposing an annotation mapping and a kind name can be handed to the
readers in :mod:`annotations` and :mod:`annotation_policy`. Lightkube resources
(core and generic alike) are adapted with :class:`KubernetesObject`.
"""
import logging
from typing import Any, Mapping, Protocol, runtime_checkable

from lightkube.core.resource import Resource
from lightkube.generic_resource import create_namespaced_resource

logger = logging.getLogger(__name__)

# Contour's own CRDs; registering them also teaches lightkube's codecs to load them.
HTTPProxy = create_namespaced_resource(
    "projectcontour.io", "v1", "HTTPProxy", "httpproxies"
)
IngressRoute = create_namespaced_resource(
    "contour.heptio.com", "v1beta1", "IngressRoute", "ingressroutes"
)


@runtime_checkable
class AnnotatedObject(Protocol):
    """An object that carries annotations and knows its resource kind."""

    @property
    def annotations(self) -> Mapping[str, str]:
        """Annotation map of the object; read-only."""
        ...

    @property
    def kind(self) -> str:
        """Resource kind, e.g. ``Service`` or ``HTTPProxy``."""
        ...


def _resource_kind(resource: Any) -> str:
    kind = getattr(resource, "kind", None)
    if kind:
        return kind
    api_info = getattr(type(resource), "_api_info", None)
    if api_info is not None:
        return api_info.resource.kind
    logger.debug(f"{type(resource).__name__} has no kind; using its class name")
    return type(resource).__name__


class KubernetesObject:
    """Adapt a lightkube resource to :class:`AnnotatedObject`."""

    def __init__(self, resource: Any):
        self._resource = resource

    @property
    def resource(self) -> Any:
        """The wrapped lightkube resource."""
        return self._resource

    @property
    def annotations(self) -> Mapping[str, str]:
        """Annotations of the wrapped resource, empty if unset."""
        metadata = self._resource.metadata
        if metadata is None:
            return {}
        return metadata.annotations or {}

    @property
    def kind(self) -> str:
        """Kind of the wrapped resource."""
        return _resource_kind(self._resource)

    @property
    def name(self) -> str:
        """``<kind>/<namespace>/<name>``, for messages."""
        metadata = self._resource.metadata
        if metadata is None:
            return f"{self.kind}/<unnamed>"
        return f"{self.kind}/{metadata.namespace or 'default'}/{metadata.name}"

    def __repr__(self):
        return f"<KubernetesObject {self.name}>"


def as_annotated(obj: Any) -> AnnotatedObject:
    """Return ``obj`` itself if it already is an AnnotatedObject, else wrap it."""
    # Generic resources answer None for any attribute, so check them first.
    if isinstance(obj, Resource):
        return KubernetesObject(obj)
    if isinstance(obj, AnnotatedObject):
        return obj
    return KubernetesObject(obj)


def to_kind(obj: Any) -> str:
    """Return the resource kind of ``obj``."""
    return as_annotated(obj).kind
