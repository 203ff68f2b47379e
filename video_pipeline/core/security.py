"""
Security Utilities
==================

Guards for the two places untrusted input reaches the pipeline: asset
references handed to the assembly engine (local paths and remote URLs) and
free text that ends up in provider prompts, object keys or logs.
"""

import ipaddress
import logging
import re
from pathlib import Path
from typing import Optional, Set, Union
from urllib.parse import urlparse

from .exceptions import SecurityError

logger = logging.getLogger(__name__)


IMAGE_SUFFIXES = frozenset({".jpg", ".jpeg", ".png", ".webp", ".gif", ".bmp"})

# Phrases stripped from prompts before they reach a provider
_INJECTION_RE = re.compile(
    r"ignore previous instructions|disregard above|system prompt"
    r"|\[/?INST\]|<\|im_(?:start|end)\|>",
    re.IGNORECASE,
)

_SECRET_PATTERNS = [
    (
        re.compile(r"(PIAPI_API_KEY|RUNWAY_API_KEY|AWS_SECRET_ACCESS_KEY|AWS_ACCESS_KEY_ID)=\S+"),
        r"\1=***REDACTED***",
    ),
    (re.compile(r"Bearer\s+[\w.\-]+", re.IGNORECASE), "Bearer ***REDACTED***"),
    (re.compile(r"X-API-Key['\"]?\s*[:=]\s*['\"]?[\w\-]+", re.IGNORECASE), "X-API-Key: ***REDACTED***"),
    (re.compile(r"key_[A-Za-z0-9]{16,}"), "key_***REDACTED***"),
    (re.compile(r"api[_-]?key['\"]?\s*[:=]\s*['\"]?[\w\-]+", re.IGNORECASE), "api_key: ***REDACTED***"),
]


class PathValidator:
    """
    Keeps local asset references inside an asset root.

    Usage:
        validator = PathValidator("/srv/assets")
        validator.validate("logos/brand.png")    # /srv/assets/logos/brand.png
        validator.validate("../../etc/passwd")   # SecurityError
    """

    def __init__(self, asset_root: Union[str, Path]):
        """
        Args:
            asset_root: Directory every local asset must resolve inside;
                        created if missing
        """
        self.base_path = Path(asset_root).resolve()
        self.base_path.mkdir(parents=True, exist_ok=True)

    def validate(self, path: Union[str, Path]) -> Path:
        """
        Resolve an asset path against the root.

        Relative paths are joined to the root; absolute paths are accepted
        only when they already point inside it. Symlinks are resolved first.

        Raises:
            SecurityError: If the path escapes the root or cannot be resolved
        """
        raw = str(path)
        if "\x00" in raw:
            raise SecurityError("Null byte in asset path", attempted_path=raw, security_type="invalid_path")

        candidate = Path(raw).expanduser() if raw.startswith("~") else Path(raw)
        try:
            resolved = (candidate if candidate.is_absolute() else self.base_path / candidate).resolve()
        except (ValueError, OSError) as e:
            raise SecurityError(f"Invalid asset path: {e}", attempted_path=raw, security_type="invalid_path")

        if resolved != self.base_path and self.base_path not in resolved.parents:
            logger.warning(f"Blocked asset outside {self.base_path}: {resolved}")
            raise SecurityError(
                "Asset path is outside the asset root",
                attempted_path=raw,
                security_type="path_traversal",
            )
        return resolved

    def validate_image(self, path: Union[str, Path]) -> Path:
        """Like ``validate``, and the file must carry an image suffix (watermarks, stills)."""
        resolved = self.validate(path)
        if resolved.suffix.lower() not in IMAGE_SUFFIXES:
            raise SecurityError(
                f"Not an image asset: {resolved.suffix or resolved.name}",
                attempted_path=str(path),
                security_type="invalid_extension",
            )
        return resolved


def validate_url(url: str, allowed_hosts: Optional[Set[str]] = None) -> str:
    """
    Reject URLs that would make the pipeline fetch from its own network.

    Only http(s) is accepted. ``localhost`` names and IP literals that are
    loopback, private, link-local (cloud metadata), multicast, reserved or
    unspecified are refused. Hostnames are not resolved.

    Args:
        url: URL to check
        allowed_hosts: Optional allow-list of hostnames

    Returns:
        The URL unchanged

    Raises:
        SecurityError: If the URL is refused
    """
    if not url:
        raise SecurityError("Empty URL", security_type="invalid_url")

    try:
        parsed = urlparse(url)
        hostname = (parsed.hostname or "").lower()
    except ValueError as e:
        raise SecurityError(f"Invalid URL format: {e}", security_type="invalid_url")

    if parsed.scheme not in ("http", "https"):
        raise SecurityError(f"Invalid URL scheme: {parsed.scheme}", security_type="invalid_url_scheme")
    if not hostname:
        raise SecurityError("URL has no host", security_type="invalid_url")

    if hostname == "localhost" or hostname.endswith(".localhost"):
        raise SecurityError("URLs to local addresses are not allowed", security_type="blocked_host")

    try:
        address = ipaddress.ip_address(hostname)
    except ValueError:
        address = None

    if address is not None and (
        address.is_loopback
        or address.is_private
        or address.is_link_local
        or address.is_multicast
        or address.is_reserved
        or address.is_unspecified
    ):
        logger.warning(f"Blocked fetch from non-public address {hostname}")
        raise SecurityError("URLs to private or local addresses are not allowed", security_type="blocked_host")

    if allowed_hosts and hostname not in allowed_hosts:
        raise SecurityError(f"Host not in allowed list: {hostname}", security_type="blocked_host")

    return url


def is_http_url(value: Optional[str]) -> bool:
    """True when ``value`` is an http(s) URL string."""
    return isinstance(value, str) and value.startswith(("http://", "https://"))


def sanitize_filename(filename: str, max_length: int = 255) -> str:
    """
    Reduce a name to a safe path segment for object keys.

    Anything outside word characters, dot and hyphen becomes ``_``; runs
    collapse, and over-long names keep their suffix.
    """
    cleaned = re.sub(r"_+", "_", re.sub(r"[^\w.\-]+", "_", filename or "")).strip("._-")
    if len(cleaned) > max_length:
        suffix = Path(cleaned).suffix
        cleaned = cleaned[:max_length - len(suffix)] + suffix
    return cleaned if cleaned and cleaned not in (".", "..") else "unnamed"


def sanitize_prompt(prompt: str, max_length: int = 2000) -> str:
    """
    Strip control characters and prompt-injection phrases from user text.

    Applied to every prompt regardless of generation mode. The visual
    text-removal pass for text-to-video lives in ``providers.prompts``.
    """
    if not prompt:
        return ""

    printable = "".join(ch for ch in prompt if ch.isprintable() or ch in "\n\t")
    sanitized = _INJECTION_RE.sub("", printable)

    if len(sanitized) > max_length:
        logger.warning(f"Prompt truncated from {len(prompt)} to {max_length} characters")
        sanitized = sanitized[:max_length]

    return sanitized.strip()


def redact_api_key(text: str) -> str:
    """Mask provider keys, bearer tokens and AWS credentials before text is logged or stored."""
    if not text:
        return text
    for pattern, replacement in _SECRET_PATTERNS:
        text = pattern.sub(replacement, text)
    return text


def escape_drawtext(text: str) -> str:
    """Escape text for use inside an ffmpeg ``drawtext=text='...'`` option."""
    return (
        text.replace("\\", "\\\\")
        .replace("'", "\\'")
        .replace(":", "\\:")
        .replace("%", "\\%")
    )
