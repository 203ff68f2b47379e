"""
Result Extractors
=================

Completion payloads put the media URL in different places depending on the
provider and API version. Each extractor knows one location; adapters try an
ordered tuple of them and take the first http(s) URL.
"""

from typing import Any, Callable, Dict, Iterable, Optional

from ..core.security import is_http_url

Extractor = Callable[[Dict[str, Any]], Optional[str]]


def _dig(payload: Any, *path: Any) -> Any:
    current = payload
    for key in path:
        if isinstance(key, int):
            if not isinstance(current, list) or len(current) <= key:
                return None
        elif not isinstance(current, dict):
            return None
        current = current[key] if isinstance(key, int) else current.get(key)
        if current is None:
            return None
    return current


def _url(value: Any) -> Optional[str]:
    return value if is_http_url(value) else None


# -----------------------------------------------------------------------------
# Gateway (task envelope under "data")
# -----------------------------------------------------------------------------


def data_output_video_url(payload: Dict[str, Any]) -> Optional[str]:
    return _url(_dig(payload, "data", "output", "video_url"))


def data_output_video(payload: Dict[str, Any]) -> Optional[str]:
    return _url(_dig(payload, "data", "output", "video"))


def data_video_url(payload: Dict[str, Any]) -> Optional[str]:
    return _url(_dig(payload, "data", "video_url"))


def data_result_video_url(payload: Dict[str, Any]) -> Optional[str]:
    return _url(_dig(payload, "data", "result", "video_url"))


def data_output_works(payload: Dict[str, Any]) -> Optional[str]:
    """Kling-style ``output.works[0].video.resource`` payloads."""
    video = _dig(payload, "data", "output", "works", 0, "video")
    if not isinstance(video, dict):
        return None
    return _url(video.get("resource_without_watermark")) or _url(video.get("resource"))


def data_output_list(payload: Dict[str, Any]) -> Optional[str]:
    """``data.output`` as a list of ``{video_url|url}`` entries."""
    entries = _dig(payload, "data", "output")
    if not isinstance(entries, list):
        return None
    for entry in entries:
        if isinstance(entry, dict):
            found = _url(entry.get("video_url")) or _url(entry.get("url"))
            if found:
                return found
    return None


# -----------------------------------------------------------------------------
# Flat payloads
# -----------------------------------------------------------------------------


def output_video_url(payload: Dict[str, Any]) -> Optional[str]:
    return _url(_dig(payload, "output", "video_url"))


def video_url(payload: Dict[str, Any]) -> Optional[str]:
    return _url(payload.get("video_url")) if isinstance(payload, dict) else None


def output_first_item(payload: Dict[str, Any]) -> Optional[str]:
    """Runway-style ``output: ["https://..."]``."""
    return _url(_dig(payload, "output", 0))


def artifacts_first_url(payload: Dict[str, Any]) -> Optional[str]:
    return _url(_dig(payload, "artifacts", 0, "url"))


GATEWAY_EXTRACTORS = (
    data_output_video_url,
    data_output_video,
    data_video_url,
    data_result_video_url,
    output_video_url,
    video_url,
    data_output_list,
    data_output_works,
)

DIRECT_EXTRACTORS = (
    output_first_item,
    artifacts_first_url,
    output_video_url,
    video_url,
)


def extract_media_url(
    payload: Dict[str, Any],
    extractors: Iterable[Extractor],
) -> Optional[str]:
    """
    Run extractors in order and return the first http(s) URL found.

    Args:
        payload: Completion payload from the provider
        extractors: Ordered extractor functions

    Returns:
        Media URL, or None if no extractor matched
    """
    if not isinstance(payload, dict):
        return None
    for extractor in extractors:
        found = extractor(payload)
        if found:
            return found
    return None
