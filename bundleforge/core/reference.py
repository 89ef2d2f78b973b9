"""Image reference parsing and digest pinning.

Follows the Docker distribution reference grammar::

    reference  := name [ ":" tag ] [ "@" digest ]
    name       := [domain "/"] path-component ["/" path-component]*
    tag        := [\\w][\\w.-]{0,127}
    digest     := algorithm ":" hex

Only the parts the pipeline needs are exposed: ``parse_reference`` to
validate and split, ``split_repository_tag`` for push, and ``pin_digest``
to rewrite ``name:tag`` into ``name@digest``.
"""

from __future__ import annotations

import re
from typing import NamedTuple

from docker.utils import parse_repository_tag

from bundleforge.errors import ReferenceParseError

_ALPHANUMERIC = r"[a-z0-9]+"
_SEPARATOR = r"(?:__|[._]|-+)"
_PATH_COMPONENT = rf"{_ALPHANUMERIC}(?:{_SEPARATOR}{_ALPHANUMERIC})*"
_DOMAIN_COMPONENT = r"(?:[a-zA-Z0-9]|[a-zA-Z0-9][a-zA-Z0-9-]*[a-zA-Z0-9])"
_DOMAIN = rf"{_DOMAIN_COMPONENT}(?:\.{_DOMAIN_COMPONENT})*(?::[0-9]+)?"
_NAME = rf"(?:{_DOMAIN}/)?{_PATH_COMPONENT}(?:/{_PATH_COMPONENT})*"
_TAG = r"[\w][\w.-]{0,127}"
_DIGEST = r"[A-Za-z][A-Za-z0-9]*(?:[-_+.][A-Za-z][A-Za-z0-9]*)*:[0-9a-fA-F]{32,}"

_REFERENCE_RE = re.compile(
    rf"^(?P<name>{_NAME})(?::(?P<tag>{_TAG}))?(?:@(?P<digest>{_DIGEST}))?$"
)
_DIGEST_RE = re.compile(rf"^{_DIGEST}$")

NAME_TOTAL_LENGTH_MAX = 255


class ImageReference(NamedTuple):
    name: str
    tag: str | None
    digest: str | None


def parse_reference(image: str) -> ImageReference:
    """Validate *image* and split it into name, tag and digest.

    Raises ``ReferenceParseError`` when the reference is malformed.

    Examples
    --------
    >>> parse_reference("registry/app:v1")
    ImageReference(name='registry/app', tag='v1', digest=None)
    """
    match = _REFERENCE_RE.match(image or "")
    if match is None:
        raise ReferenceParseError(f"invalid image reference: {image!r}")
    name = match.group("name")
    if len(name) > NAME_TOTAL_LENGTH_MAX:
        raise ReferenceParseError(
            f"repository name must not be more than {NAME_TOTAL_LENGTH_MAX} characters: {image!r}"
        )
    return ImageReference(name, match.group("tag"), match.group("digest"))


def split_repository_tag(image: str) -> tuple[str, str | None]:
    """Split *image* into (repository, tag) for the engine's push call."""
    parse_reference(image)
    return parse_repository_tag(image)


def pin_digest(image: str, digest: str) -> str:
    """Rewrite *image* to ``name@digest``, dropping any tag.

    Examples
    --------
    >>> pin_digest("registry/app:v1", "sha256:deadbeef")
    'registry/app@sha256:deadbeef'
    """
    ref = parse_reference(image)
    if not digest:
        raise ReferenceParseError(f"no digest to pin {image!r} to")
    return f"{ref.name}@{digest}"
