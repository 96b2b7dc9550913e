from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from cineclub.core.schemas import Candidate

logger = logging.getLogger(__name__)

# Greedy: from the first "{" to the last "}" so nested objects stay intact.
_JSON_OBJECT_SPAN = re.compile(r"\{[\s\S]*\}")
_RAW_LOG_LIMIT = 1000


@dataclass(frozen=True)
class ExtractFailure:
    """The model's text could not be turned into a JSON object."""

    reason: str
    raw_text: str


def extract_payload(raw_text: str | None) -> Any:
    """Parse generated text, tolerating chatter around the JSON body.

    Returns the decoded value, or an :class:`ExtractFailure` when neither the
    whole text nor its first ``{...}`` span is valid JSON.
    """
    text = (raw_text or "").strip()
    if not text:
        return ExtractFailure("empty response", raw_text or "")

    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass

    match = _JSON_OBJECT_SPAN.search(text)
    if match:
        try:
            return json.loads(match.group(0))
        except json.JSONDecodeError:
            pass

    logger.warning(
        "Generated text is not valid JSON; raw=%r", text[:_RAW_LOG_LIMIT]
    )
    return ExtractFailure("unparseable payload", text)


def extract_object(raw_text: str | None) -> Dict[str, Any] | ExtractFailure:
    payload = extract_payload(raw_text)
    if isinstance(payload, ExtractFailure):
        return payload
    if not isinstance(payload, dict):
        logger.warning(
            "Generated JSON is a %s, expected an object; raw=%r",
            type(payload).__name__,
            (raw_text or "")[:_RAW_LOG_LIMIT],
        )
        return {}
    return payload


def extract_candidates(
    raw_text: str | None,
    list_field: str = "recommendations",
    reason_field: str = "reason",
) -> List[Candidate] | ExtractFailure:
    """Read ``{list_field: [{title, year?, reason_field?, tmdbId?}, ...]}``.

    A payload of the wrong shape yields an empty list rather than an error.
    """
    payload = extract_object(raw_text)
    if isinstance(payload, ExtractFailure):
        return payload
    entries = payload.get(list_field)
    if not isinstance(entries, list):
        if entries is not None:
            logger.warning(
                "Field '%s' is a %s, expected a list; treating as empty.",
                list_field,
                type(entries).__name__,
            )
        return []
    candidates = []
    for entry in entries:
        candidate = candidate_from_entry(entry, reason_field)
        if candidate is not None:
            candidates.append(candidate)
    return candidates


def candidate_from_entry(entry: Any, reason_field: str = "reason") -> Optional[Candidate]:
    if not isinstance(entry, dict):
        return None
    return Candidate(
        title=_text(entry.get("title")) or "",
        year=_year(entry.get("year")),
        reason=_text(entry.get(reason_field)),
        tmdb_id=_positive_int(entry.get("tmdbId", entry.get("tmdb_id"))),
    )


def _text(value: Any) -> Optional[str]:
    if value is None or isinstance(value, (dict, list, bool)):
        return None
    text = str(value).strip()
    return text or None


def _year(value: Any) -> Optional[str]:
    if isinstance(value, bool):
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return _text(value)


def _positive_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        iid = int(value)
    except (TypeError, ValueError):
        return None
    return iid if iid > 0 else None
