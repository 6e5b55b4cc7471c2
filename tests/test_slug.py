from __future__ import annotations

import pytest

from client_repo_cli.errors import InvalidDomainError
from client_repo_cli.slug import derive_slug, is_recognized_suffix, normalize_domain, repo_name_for


@pytest.mark.parametrize(
    ("domain", "expected"),
    [
        ("acme-hvac.com", "acme-hvac"),
        ("acme.net", "acme"),
        ("acme.io", "acme"),
        ("acme.co", "acme"),
        ("acme.co.uk", "acme"),
        ("acme.com.au", "acme"),
        ("acme.co.nz", "acme"),
        ("acme.uk", "acme"),
        ("shop.acme.com", "shop.acme"),
        ("ACME-HVAC.COM", "acme-hvac"),
    ],
)
def test_derive_slug_strips_known_suffix(domain: str, expected: str):
    assert derive_slug(domain) == expected


def test_compound_suffix_wins_over_last_label():
    assert derive_slug("acme.co.uk") != "acme.co"


def test_only_one_suffix_is_stripped():
    assert derive_slug("acme.com.com") == "acme.com"


def test_unknown_suffix_is_left_alone():
    assert derive_slug("acme.xyz") == "acme.xyz"
    assert not is_recognized_suffix("acme.xyz")
    assert is_recognized_suffix("acme.com")


def test_normalize_domain_drops_scheme_www_and_path():
    assert normalize_domain("  https://www.Acme-HVAC.com/about/  ") == "acme-hvac.com"
    assert normalize_domain("acme.com.") == "acme.com"


@pytest.mark.parametrize("domain", ["", "   ", ".com", "https://", "com", "co.uk", "com.au", "https://www.co.nz/"])
def test_derive_slug_rejects_empty_names(domain: str):
    with pytest.raises(InvalidDomainError):
        derive_slug(domain)


def test_repo_name_for_prefixes_client():
    assert repo_name_for("acme-hvac") == "client-acme-hvac"
