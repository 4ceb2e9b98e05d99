"""Idempotency keys for order creation.

A client that retries ``POST /api/orders/`` with the same
``Idempotency-Key`` gets the stored response instead of a second order
(and a second stock reservation). Reusing a key with a different payload
is a conflict.
"""

import hashlib
import json

from django.db import IntegrityError, transaction

from .models import IdempotencyKey


def _hash(payload: dict) -> str:
    """Stable SHA-256 of a JSON-serialisable payload (sorted keys, compact)."""
    body = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(body.encode("utf-8")).hexdigest()


@transaction.atomic
def get_or_create_idempotent(key: str, payload: dict) -> tuple[bool, IdempotencyKey]:
    """Get-or-create the record for ``key``.

    Returns:
        ``(existing, rec)``: ``existing`` is False when this call created the
        record (the caller processes the request and then ``finalize``\\ s
        it) and True when a record with the same payload already existed.

    Raises:
        ValueError: ``"IDEMPOTENCY_CONFLICT"`` when the key exists with a
            different payload hash.
    """
    h = _hash(payload)

    try:
        # savepoint: an IntegrityError only rolls back this block
        with transaction.atomic():
            rec = IdempotencyKey.objects.create(key=key, request_hash=h, response_status=0, response_body={})
            return False, rec
    except IntegrityError:
        rec = IdempotencyKey.objects.select_for_update().get(key=key)
        if rec.request_hash != h:
            raise ValueError("IDEMPOTENCY_CONFLICT")
        return True, rec


def finalize(rec: IdempotencyKey, status_code: int, body: dict, order_id=None) -> None:
    """Store the response so retries can replay it without side effects."""
    rec.response_status = status_code
    rec.response_body = body
    if order_id is not None:
        rec.order_id = order_id
    rec.save(update_fields=["response_status", "response_body", "order"])
