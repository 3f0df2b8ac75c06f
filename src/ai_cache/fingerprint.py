"""Deterministic cache keys for AI requests.

A fingerprint is the SHA-256 digest of a canonical JSON document built
from the normalized prompt, the model name and the generation
parameters. Keys are sorted at every nesting level, so two parameter
mappings with the same content always produce the same key.
"""

import hashlib
import json
import unicodedata
from collections.abc import Mapping
from typing import Any

from ai_cache.errors import InvalidKeyError

KEY_PREFIX = "ai:"


def normalize_prompt(prompt: str) -> str:
    """Return the prompt in the form used for fingerprinting.

    Applies Unicode NFC normalization and strips surrounding whitespace.
    Inner whitespace is kept.
    """
    if not isinstance(prompt, str):
        raise InvalidKeyError(f"prompt must be a string, got {type(prompt).__name__}")
    return unicodedata.normalize("NFC", prompt).strip()


def _canonical_json(document: dict[str, Any]) -> str:
    try:
        return json.dumps(
            document,
            sort_keys=True,
            separators=(",", ":"),
            ensure_ascii=False,
            allow_nan=False,
        )
    except (TypeError, ValueError) as e:
        raise InvalidKeyError(f"parameters are not JSON serializable: {e}") from e


def fingerprint(prompt: str, model: str, params: Mapping[str, Any] | None = None) -> str:
    """Compute the cache key for a (prompt, model, params) request.

    Args:
        prompt: The prompt text sent to the AI service
        model: Name of the model that will answer
        params: Generation parameters (temperature, max tokens, ...)

    Returns:
        Cache key of the form ``ai:<sha256 hex>``

    Raises:
        InvalidKeyError: If the prompt or model is empty, or params is not
            a JSON-serializable mapping
    """
    normalized = normalize_prompt(prompt)
    if not normalized:
        raise InvalidKeyError("prompt must not be empty")

    if not isinstance(model, str) or not model.strip():
        raise InvalidKeyError("model must be a non-empty string")

    if params is None:
        params = {}
    elif not isinstance(params, Mapping):
        raise InvalidKeyError(f"params must be a mapping, got {type(params).__name__}")

    payload = _canonical_json(
        {
            "prompt": normalized,
            "model": model.strip(),
            "parameters": dict(params),
        }
    )
    digest = hashlib.sha256(payload.encode("utf-8")).hexdigest()
    return f"{KEY_PREFIX}{digest}"


def prompt_hash(prompt: str) -> str:
    """SHA-256 hex digest of the raw prompt, kept for audits.

    Unlike ``fingerprint`` this ignores model and parameters and applies
    no normalization, so it stays stable if the key scheme changes.
    """
    if not isinstance(prompt, str) or not prompt:
        raise InvalidKeyError("prompt must be a non-empty string")
    return hashlib.sha256(prompt.encode("utf-8")).hexdigest()
