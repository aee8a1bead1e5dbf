import json
import re

_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


def parse_llm_json(text: str | None):
    if not text:
        return {}
    candidate = _FENCE.sub("", text.strip())
    try:
        return json.loads(candidate)
    except Exception:
        pass

    # Extract first JSON object/array if model wrapped content in prose.
    match = re.search(r"(\{.*\}|\[.*\])", candidate, re.DOTALL)
    if not match:
        return {}
    snippet = match.group(1)
    try:
        return json.loads(snippet)
    except Exception:
        return {}


def extract_list(payload, key: str | None = None) -> list:
    """Return the list at ``payload[key]`` (or payload itself when it is a list); [] otherwise."""
    if isinstance(payload, list):
        return payload
    if key and isinstance(payload, dict):
        value = payload.get(key)
        if isinstance(value, list):
            return value
    return []
