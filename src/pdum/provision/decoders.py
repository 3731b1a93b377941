"""Decoders that pull named fields out of control-plane responses.

Responses are normally JSON, but gcloud occasionally prefixes its JSON with warnings
or returns a truncated document. The strict decoder handles well-formed payloads;
the pattern decoder is the permissive fallback. ``default_decoder`` chains them.
"""

from __future__ import annotations

import json
import re
from typing import Any, Iterable, Optional, Protocol


class ResponseDecoder(Protocol):
    def field(self, payload: str, name: str) -> Optional[str]:
        """Return the first non-empty value of ``name`` in ``payload``, or None."""


def _search(node: Any, name: str) -> Optional[Any]:
    """Depth-first search for ``name``; mappings are checked before their children."""
    if isinstance(node, dict):
        value = node.get(name)
        if value not in (None, ""):
            return value
        children: Iterable[Any] = node.values()
    elif isinstance(node, list):
        children = node
    else:
        return None

    for child in children:
        found = _search(child, name)
        if found is not None:
            return found
    return None


class JsonDecoder:
    """Strict decoder: the payload must be a JSON document.

    ``name`` may be a dotted path (``"response.keyString"``); a leading dot is
    ignored so jq-style names work. A bare name is searched for anywhere in the
    document, because the secret is wrapped differently depending on whether the
    long-running operation has been unwrapped.
    """

    def field(self, payload: str, name: str) -> Optional[str]:
        try:
            document = json.loads(payload)
        except (TypeError, ValueError):
            return None

        path = name.lstrip(".").split(".")
        if len(path) == 1:
            value = _search(document, path[0])
        else:
            value = document
            for part in path:
                if not isinstance(value, dict):
                    return None
                value = value.get(part)

        if value is None or isinstance(value, (dict, list)):
            return None
        text = str(value)
        return text or None


class PatternDecoder:
    """Permissive decoder: finds ``"name": value`` anywhere in the raw text."""

    def field(self, payload: str, name: str) -> Optional[str]:
        if not payload:
            return None
        key = re.escape(name.lstrip(".").split(".")[-1])
        quoted = re.search(rf'"{key}"\s*:\s*"([^"]*)"', payload)
        if quoted:
            return quoted.group(1) or None
        bare = re.search(rf'"{key}"\s*:\s*([^,}}\s]+)', payload)
        if bare and bare.group(1) != "null":
            return bare.group(1)
        return None


class FallbackDecoder:
    """Try each decoder in order and return the first hit."""

    def __init__(self, *decoders: ResponseDecoder):
        if not decoders:
            raise ValueError("FallbackDecoder needs at least one decoder")
        self.decoders = decoders

    def field(self, payload: str, name: str) -> Optional[str]:
        for decoder in self.decoders:
            value = decoder.field(payload, name)
            if value:
                return value
        return None


def default_decoder() -> ResponseDecoder:
    return FallbackDecoder(JsonDecoder(), PatternDecoder())


__all__ = [
    "FallbackDecoder",
    "JsonDecoder",
    "PatternDecoder",
    "ResponseDecoder",
    "default_decoder",
]
