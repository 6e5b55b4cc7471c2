"""Derive a client slug and repository name from a production domain."""

from .config import REPO_PREFIX
from .errors import InvalidDomainError

KNOWN_SUFFIXES = (
    "com", "net", "org", "io", "co", "biz", "info", "us", "uk", "ca", "au",
    "de", "fr", "es", "it", "nl", "be", "ch", "at", "co.uk", "com.au", "co.nz",
)

# Longest first so "co.uk" wins over "uk".
_SUFFIXES_BY_LENGTH = sorted(KNOWN_SUFFIXES, key=len, reverse=True)


def normalize_domain(raw: str) -> str:
    domain = (raw or "").strip().lower()
    for scheme in ("https://", "http://"):
        if domain.startswith(scheme):
            domain = domain[len(scheme):]
            break
    domain = domain.split("/", 1)[0].rstrip(".")
    if domain.startswith("www."):
        domain = domain[len("www."):]
    return domain


def matched_suffix(domain: str) -> str | None:
    lowered = domain.lower()
    for suffix in _SUFFIXES_BY_LENGTH:
        if lowered.endswith("." + suffix):
            return suffix
    return None


def is_recognized_suffix(domain: str) -> bool:
    return matched_suffix(normalize_domain(domain)) is not None


def derive_slug(domain: str) -> str:
    """Strip one recognized top-level suffix from ``domain``.

    Unrecognized suffixes leave the domain as-is; callers should warn.
    """
    normalized = normalize_domain(domain)
    if not normalized:
        raise InvalidDomainError("Production domain is required")
    if normalized in KNOWN_SUFFIXES:
        raise InvalidDomainError(f"'{domain}' is only a top-level suffix")

    suffix = matched_suffix(normalized)
    slug = normalized[: -(len(suffix) + 1)] if suffix else normalized
    if not slug or slug.startswith("."):
        raise InvalidDomainError(f"'{domain}' has no name before its suffix")
    return slug


def repo_name_for(slug: str) -> str:
    return f"{REPO_PREFIX}{slug}"
