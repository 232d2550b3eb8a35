#!/usr/bin/env python3
# Copyright 2022 Canonical Ltd.
# See LICENSE file for licensing details.

"""Report Contour annotations that are not legal for the kind they sit on."""
import argparse
import logging
import sys
from typing import IO, Iterable, List, Optional, Sequence, Tuple

import yaml
from lightkube import codecs
from lightkube.core.exceptions import LoadResourceError

from annotation_policy import invalid_annotations
from resources import KubernetesObject

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_INVALID = 1
EXIT_LOAD_ERROR = 2


class AnnotationsError(Exception):
    """Base class for errors raised by this module."""


class ManifestLoadError(AnnotationsError):
    """Raised when a manifest file can't be read or decoded."""


def load_manifests(stream: IO[str], source: str = "<stream>") -> List[KubernetesObject]:
    """Load every resource in a multi-document YAML stream."""
    try:
        return [KubernetesObject(obj) for obj in codecs.load_all_yaml(stream)]
    except (yaml.YAMLError, LoadResourceError) as e:
        raise ManifestLoadError(f"{source}: {e}") from e


def _open_and_load(path: str) -> List[KubernetesObject]:
    if path == "-":
        return load_manifests(sys.stdin, "<stdin>")
    try:
        with open(path) as f:
            return load_manifests(f, path)
    except OSError as e:
        raise ManifestLoadError(f"{path}: {e.strerror}") from e


def find_invalid(objects: Iterable[KubernetesObject]) -> List[Tuple[KubernetesObject, str]]:
    """Pair each object with every annotation on it that its kind doesn't accept."""
    return [(obj, key) for obj in objects for key in invalid_annotations(obj)]


def _parse_args(argv: Optional[Sequence[str]]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="contour-annotations",
        description="Check that Contour annotations in Kubernetes manifests "
        "are legal for the resource kind they are set on.",
    )
    parser.add_argument("files", nargs="+", metavar="FILE", help="manifest file, or - for stdin")
    parser.add_argument("-v", "--verbose", action="store_true", help="enable debug logging")
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Entry point of the ``contour-annotations`` command."""
    args = _parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    status = EXIT_OK
    for path in args.files:
        try:
            objects = _open_and_load(path)
        except ManifestLoadError as e:
            logger.error(f"failed to load manifests: {e}")
            status = EXIT_LOAD_ERROR
            continue

        logger.debug(f"{path}: loaded {len(objects)} resources")
        for obj, key in find_invalid(objects):
            print(f'{path}: {obj.name}: "{key}" annotation is invalid for {obj.kind}')
            if status == EXIT_OK:
                status = EXIT_INVALID
    return status


if __name__ == "__main__":
    sys.exit(main())
