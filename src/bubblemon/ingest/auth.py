"""Request authentication.

Clients sign the raw request body with HMAC-SHA256 using their app
secret and send the hex digest in ``X-BM-Signature`` alongside their
public key in ``X-BM-Key``. The signature is checked over the exact
bytes received, before any parsing.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
from typing import Optional

import pydantic

from bubblemon.errors import AuthError
from bubblemon.models.records import App
from bubblemon.store.base import Collection, Store

logger = logging.getLogger("bubblemon.ingest.auth")


def sign(secret: str, body: bytes) -> str:
    """Hex HMAC-SHA256 of ``body`` under ``secret``."""
    return hmac.new(secret.encode(), msg=body, digestmod=hashlib.sha256).hexdigest()


def timing_safe_equal(expected: str, claimed: str) -> bool:
    """Constant-time string comparison.

    Strings of different length are rejected before comparing, so only
    the length (never the position of the first difference) is
    observable.
    """
    if len(expected) != len(claimed):
        return False
    return hmac.compare_digest(expected.encode(), claimed.encode())


async def authenticate(
    store: Store,
    key: Optional[str],
    signature: Optional[str],
    raw_body: bytes,
) -> App:
    """Resolve the calling app and verify the body signature.

    Raises:
        AuthError: headers missing, key unknown, app row unusable, or
            signature mismatch.
        StoreError: the app lookup itself failed.
    """
    if not key or not signature:
        logger.warning("Rejected batch: missing key or signature header")
        raise AuthError("missing headers")

    apps = await store.select(Collection.APPS, {"public_key": key}, limit=1)
    if not apps:
        logger.warning("Rejected batch: unknown app key %s", key)
        raise AuthError("invalid app key")

    try:
        app = App.model_validate(apps[0])
    except pydantic.ValidationError as e:
        logger.warning("Rejected batch: app record for key %s is invalid: %s", key, e)
        raise AuthError("invalid app record") from e

    if not timing_safe_equal(sign(app.secret, raw_body), signature):
        logger.warning("Rejected batch for app %s: bad signature", app.id)
        raise AuthError("bad signature")

    return app
