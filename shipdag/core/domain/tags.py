"""Artifact tag derivation.

The same functions are used when an image is published and when it is
pulled back, so both phases always agree on the spelling of the mutable tag.

>>> derive_tags("2/merge", "abc123")
('2-merge', 'abc123')
>>> sanitize("Feature/Add_Login!!")
'feature-add_login'
>>> sanitize("///")
'unknown-ref'
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

from shipdag.core.domain.models import ArtifactTag, TagKind

if TYPE_CHECKING:
    from shipdag.core.config.models import RepositoryIdentity

DEFAULT_MAX_TAG_LENGTH = 128
DEFAULT_PLACEHOLDER_TAG = "unknown-ref"

_DISALLOWED = re.compile(r"[^a-z0-9._-]")
_DASH_RUNS = re.compile(r"-{2,}")
_REF_PREFIXES = ("refs/heads/", "refs/tags/", "refs/pull/")


def _normalize(value: str, max_length: int) -> str:
    value = _DISALLOWED.sub("-", value.lower())
    value = _DASH_RUNS.sub("-", value).lstrip("-.").rstrip("-")
    return value[:max_length].rstrip("-")


def sanitize(
    ref_name: str,
    *,
    max_length: int = DEFAULT_MAX_TAG_LENGTH,
    placeholder: str = DEFAULT_PLACEHOLDER_TAG,
) -> str:
    """Turn a ref name into a registry-safe mutable tag.

    Lower-cases the input, replaces every character outside ``[a-z0-9._-]``
    with ``-``, collapses runs of ``-``, trims leading ``-``/``.`` and
    trailing ``-``, then truncates to ``max_length``. Total and idempotent:
    ``sanitize(sanitize(x)) == sanitize(x)``. An empty result is replaced by
    ``placeholder`` (itself normalized, so a bad placeholder cannot produce an
    invalid tag).

    Parameters
    ----------
    ref_name : str
        Branch name or pull-request merge ref as reported by the CI system
    max_length : int
        Maximum tag length (registries accept 128)
    placeholder : str
        Token used when nothing survives sanitization

    Returns
    -------
    str
        The mutable tag
    """
    max_length = max(1, max_length)
    tag = _normalize(ref_name, max_length)
    if tag:
        return tag
    return _normalize(placeholder, max_length) or _normalize(DEFAULT_PLACEHOLDER_TAG, max_length)


def derive_tags(
    ref_name: str,
    commit_id: str,
    *,
    max_length: int = DEFAULT_MAX_TAG_LENGTH,
    placeholder: str = DEFAULT_PLACEHOLDER_TAG,
) -> tuple[str, str]:
    """Return ``(mutable_tag, immutable_tag)`` for a ref and commit.

    The immutable tag is the commit identifier, used verbatim.
    """
    return sanitize(ref_name, max_length=max_length, placeholder=placeholder), commit_id


def artifact_tags(
    ref_name: str,
    commit_id: str,
    repository: RepositoryIdentity,
    *,
    max_length: int = DEFAULT_MAX_TAG_LENGTH,
    placeholder: str = DEFAULT_PLACEHOLDER_TAG,
) -> tuple[ArtifactTag, ArtifactTag]:
    """Derive both tags and bind them to a registry repository.

    Returns
    -------
    tuple[ArtifactTag, ArtifactTag]
        ``(mutable, immutable)``
    """
    mutable, immutable = derive_tags(
        ref_name, commit_id, max_length=max_length, placeholder=placeholder
    )
    base = {
        "registry": repository.registry,
        "namespace": repository.namespace.lower(),
        "repository": repository.repository.lower(),
    }
    return (
        ArtifactTag(**base, tag=mutable, kind=TagKind.MUTABLE),
        ArtifactTag(**base, tag=immutable, kind=TagKind.IMMUTABLE),
    )


def short_ref_name(ref: str) -> str:
    """Strip a fully qualified git ref down to the name CI systems report.

    >>> short_ref_name("refs/heads/main")
    'main'
    >>> short_ref_name("refs/pull/2/merge")
    '2/merge'
    >>> short_ref_name("release/1.0")
    'release/1.0'
    """
    for prefix in _REF_PREFIXES:
        if ref.startswith(prefix):
            return ref[len(prefix) :]
    return ref
