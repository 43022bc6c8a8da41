"""Origin pattern compilation and cookie matching.

A ``sync_urls`` entry looks like ``https://example.com/*``,
``http://*.example.com`` or a bare ``example.com``.  Compilation keeps the
scheme (``https`` when omitted, any for ``*://``) and the host, dropping
path, userinfo and port.  A leading ``*.`` on the host turns the pattern
into a subdomain wildcard.

Wildcard patterns match strict subdomains only: ``https://*.example.com``
matches ``sub.example.com`` but not ``example.com``.  List the apex as a
separate pattern to cover both.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from .models import CompiledPattern, Scheme

_SCHEME_PREFIXES = (
    ("https://", Scheme.HTTPS),
    ("http://", Scheme.HTTP),
    ("*://", Scheme.ANY),
)


def _compile_one(raw: str) -> CompiledPattern | None:
    text = raw.strip()
    if not text:
        return None

    scheme = Scheme.HTTPS
    lowered = text.lower()
    for prefix, candidate in _SCHEME_PREFIXES:
        if lowered.startswith(prefix):
            scheme = candidate
            text = text[len(prefix):]
            break

    host = text.split("/", 1)[0]
    host = host.rsplit("@", 1)[-1]
    host = host.split(":", 1)[0]

    allow_subdomains = False
    if host.startswith("*."):
        allow_subdomains = True
        host = host[2:]

    host = host.strip(".").lower()
    if not host or host == "*":
        return None
    return CompiledPattern(
        scheme=scheme, host=host, allow_subdomains=allow_subdomains
    )


def compile_patterns(raw_patterns: Iterable[str]) -> list[CompiledPattern]:
    """Compile origin patterns, dropping entries without a usable host."""
    compiled = []
    for raw in raw_patterns:
        pattern = _compile_one(raw)
        if pattern is not None:
            compiled.append(pattern)
    return compiled


def cookie_host(cookie: Mapping[str, Any]) -> str:
    return str(cookie.get("domain") or "").lstrip(".").lower()


def cookie_scheme(cookie: Mapping[str, Any]) -> Scheme:
    return Scheme.HTTPS if cookie.get("secure") else Scheme.HTTP


def pattern_matches(
    pattern: CompiledPattern, host: str, scheme: Scheme
) -> bool:
    if pattern.scheme != Scheme.ANY and pattern.scheme != scheme:
        return False
    if pattern.allow_subdomains:
        return host.endswith("." + pattern.host)
    return host == pattern.host


def matches(
    cookie: Mapping[str, Any], patterns: Iterable[CompiledPattern]
) -> bool:
    """True if *cookie* (``domain``, ``secure``) is covered by any pattern."""
    host = cookie_host(cookie)
    if not host:
        return False
    scheme = cookie_scheme(cookie)
    return any(pattern_matches(p, host, scheme) for p in patterns)


def origin_for_cookie(cookie: Mapping[str, Any]) -> str:
    """Origin pattern covering exactly this cookie's host and scheme."""
    return f"{cookie_scheme(cookie).value}://{cookie_host(cookie)}/*"
