"""Field extraction from remote service response envelopes.

The generation service answers in several layouts. Image URLs are located by
an ordered list of strategies; the first one that yields a non-empty list wins.
"""

from typing import Any, Callable, List, Mapping, Optional, Tuple

ExtractionStrategy = Callable[[Mapping[str, Any]], Optional[List[str]]]

STATUS_SUCCEEDED = "SUCCEEDED"
STATUS_FAILED = "FAILED"


def _clean(value: Any) -> Optional[str]:
    if isinstance(value, str):
        stripped = value.strip()
        if stripped:
            return stripped
    return None


def _urls_from_records(records: Any) -> Optional[List[str]]:
    if not isinstance(records, list):
        return None
    urls = [
        url
        for url in (
            _clean(record.get("url")) for record in records if isinstance(record, dict)
        )
        if url
    ]
    return urls or None


def from_results_array(payload: Mapping[str, Any]) -> Optional[List[str]]:
    """``{"results": [{"url": ...}, ...]}``"""
    return _urls_from_records(payload.get("results"))


def from_image_url(payload: Mapping[str, Any]) -> Optional[List[str]]:
    """``{"image_url": ...}``"""
    url = _clean(payload.get("image_url"))
    return [url] if url else None


def from_data_array(payload: Mapping[str, Any]) -> Optional[List[str]]:
    """``{"data": [{"url": ...}, ...]}``"""
    return _urls_from_records(payload.get("data"))


URL_STRATEGIES: Tuple[ExtractionStrategy, ...] = (
    from_results_array,
    from_image_url,
    from_data_array,
)


def extract_image_urls(
    payload: Mapping[str, Any],
    strategies: Tuple[ExtractionStrategy, ...] = URL_STRATEGIES,
) -> List[str]:
    """Return the URLs found by the first matching strategy, or an empty list."""
    for strategy in strategies:
        urls = strategy(payload)
        if urls:
            return urls
    return []


def extract_image_count(payload: Mapping[str, Any], fallback: int) -> int:
    """Image count reported by the service (usage or task metrics), else ``fallback``."""
    usage = payload.get("usage")
    if isinstance(usage, dict) and isinstance(usage.get("image_count"), int):
        return usage["image_count"]

    metrics = payload.get("task_metrics")
    if isinstance(metrics, dict) and isinstance(metrics.get("TOTAL"), int):
        return metrics["TOTAL"]

    return fallback


def get_output(payload: Any) -> Optional[Mapping[str, Any]]:
    if isinstance(payload, dict) and isinstance(payload.get("output"), dict):
        return payload["output"]
    return None


def first_string(payload: Mapping[str, Any], *keys: str) -> Optional[str]:
    """Value of the first key holding a non-empty string."""
    for key in keys:
        value = _clean(payload.get(key))
        if value:
            return value
    return None


def extract_status(output: Mapping[str, Any]) -> str:
    """Normalized (uppercase) job or task status; empty when absent."""
    status = first_string(output, "status", "job_status", "task_status")
    return status.upper() if status else ""


def extract_file_id(payload: Any) -> Optional[str]:
    """``{"data": {"uploaded_files": [{"file_id": ...}]}}``"""
    if not isinstance(payload, dict):
        return None
    data = payload.get("data")
    if not isinstance(data, dict):
        return None
    uploaded = data.get("uploaded_files")
    if not isinstance(uploaded, list) or not uploaded or not isinstance(uploaded[0], dict):
        return None
    return _clean(uploaded[0].get("file_id"))


def extract_job_id(payload: Any) -> Optional[str]:
    output = get_output(payload)
    return first_string(output, "job_id") if output else None


def extract_task_id(output: Mapping[str, Any]) -> Optional[str]:
    return first_string(output, "task_id")


def extract_resource_id(output: Mapping[str, Any]) -> Optional[str]:
    return first_string(output, "finetuned_output", "finetuned_resource_id")


def extract_error_message(output: Mapping[str, Any], default: str) -> str:
    return first_string(output, "error_msg", "message") or default
