"""Caller document <-> CouchDB document conversion.

Stored documents carry ``_id``, ``_rev`` and (in a shared database) a
discriminator field naming their model. Callers see ``id`` instead of
``_id`` and never see the revision or the discriminator.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from .ports import Document

ID_KEY = "_id"
REV_KEY = "_rev"
LOGICAL_ID = "id"


def encode_document(
    data: Mapping[str, Any],
    transformed: Mapping[str, Any],
    *,
    discriminator: tuple[str, str] | None = None,
) -> Document:
    """Build the document to insert for a create.

    ``data`` is the caller's input, ``transformed`` its schema-layer form;
    transformed values win, but fields the schema layer renamed away are
    kept. ``discriminator`` is ``(field, model)`` for shared databases.
    """
    doc: Document = {**data, **transformed}
    doc.pop(REV_KEY, None)
    logical_id = doc.pop(LOGICAL_ID, None)
    if not doc.get(ID_KEY) and logical_id not in (None, ""):
        doc[ID_KEY] = str(logical_id)
    if not doc.get(ID_KEY):
        doc.pop(ID_KEY, None)
    if discriminator is not None:
        field, model = discriminator
        doc[field] = model
    return doc


def encode_changes(
    transformed: Mapping[str, Any], *, discriminator_field: str | None = None
) -> Document:
    """Return the fields an update may write.

    Identity, revision and discriminator are owned by the stored document.
    """
    protected = {ID_KEY, REV_KEY, LOGICAL_ID}
    if discriminator_field:
        protected.add(discriminator_field)
    return {key: value for key, value in transformed.items() if key not in protected}


def merge_changes(existing: Mapping[str, Any], changes: Mapping[str, Any]) -> Document:
    """Overlay ``changes`` on ``existing``, pinning ``_id`` and ``_rev``."""
    merged: Document = {**existing, **changes}
    merged[ID_KEY] = existing[ID_KEY]
    if REV_KEY in existing:
        merged[REV_KEY] = existing[REV_KEY]
    return merged


def decode_document(
    doc: Mapping[str, Any], *, discriminator_field: str | None = None
) -> Document:
    """Strip store-internal fields and expose ``_id`` as ``id``."""
    hidden = {REV_KEY, ID_KEY}
    if discriminator_field:
        hidden.add(discriminator_field)
    cleaned: Document = {k: v for k, v in doc.items() if k not in hidden}
    if ID_KEY in doc:
        cleaned[LOGICAL_ID] = doc[ID_KEY]
    return cleaned


def merge_original_fields(
    transformed: Mapping[str, Any], original: Mapping[str, Any]
) -> Document:
    """Reinstate fields the schema layer dropped from ``transformed``.

    Keeps stored field names that an output rename would otherwise lose,
    e.g. a schema mapping ``email`` to ``email_address``. A key the schema
    layer left as ``None`` counts as dropped when the stored value is set.
    """
    result: Document = dict(transformed)
    for key, value in original.items():
        if key in (ID_KEY, REV_KEY, LOGICAL_ID):
            continue
        if result.get(key) is None:
            result[key] = value
    if result.get(LOGICAL_ID) is None and LOGICAL_ID in original:
        result[LOGICAL_ID] = original[LOGICAL_ID]
    return result


def project_fields(doc: Document, select: Iterable[str] | None) -> Document:
    """Keep only ``select`` fields (plus ``id``); ``None`` keeps everything."""
    if not select:
        return doc
    wanted = set(select) | {LOGICAL_ID}
    return {key: value for key, value in doc.items() if key in wanted}
