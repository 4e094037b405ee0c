"""Batch envelope decoding.

Only the envelope is enforced: a JSON object holding a non-empty,
bounded list of occurrences. Individual occurrences are parsed
leniently; an entry that cannot be read at all is dropped with a
warning rather than failing the batch.
"""

from __future__ import annotations

import json
import logging
from typing import Any

import pydantic

from bubblemon.errors import ValidationError
from bubblemon.models.occurrence import Batch, Occurrence

logger = logging.getLogger("bubblemon.ingest.decoder")

DEFAULT_MAX_BATCH_SIZE = 50

# Older SDK builds send the array under "payloads".
LEGACY_OCCURRENCES_KEY = "payloads"


def _envelope_version(raw: Any) -> int:
    if isinstance(raw, bool):
        return 1
    try:
        return int(raw)
    except (TypeError, ValueError):
        return 1


def decode_batch(raw_body: bytes, max_batch_size: int = DEFAULT_MAX_BATCH_SIZE) -> Batch:
    """Parse and structurally validate a batch envelope.

    Raises:
        ValidationError: body is not a JSON object, or the occurrence
            array is missing, not a list, empty or larger than
            ``max_batch_size``.
    """
    try:
        envelope = json.loads(raw_body)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ValidationError(f"body is not valid JSON: {e}") from e

    if not isinstance(envelope, dict):
        raise ValidationError("envelope must be a JSON object")

    items = envelope.get("occurrences")
    if items is None:
        items = envelope.get(LEGACY_OCCURRENCES_KEY)

    if not isinstance(items, list):
        raise ValidationError("occurrences must be an array")
    if not items:
        raise ValidationError("occurrences must not be empty")
    if len(items) > max_batch_size:
        raise ValidationError(
            f"too many occurrences: {len(items)} > {max_batch_size}"
        )

    occurrences: list[Occurrence] = []
    for i, item in enumerate(items):
        if not isinstance(item, dict):
            logger.warning("Dropping occurrence %d: not an object", i)
            continue
        try:
            occurrences.append(Occurrence.model_validate(item))
        except pydantic.ValidationError as e:
            logger.warning(
                "Dropping occurrence %d: %s (payload=%s)",
                i, e.errors(include_url=False), json.dumps(item, default=str),
            )

    return Batch(
        version=_envelope_version(envelope.get("version", 1)),
        occurrences=occurrences,
        received=len(items),
    )
