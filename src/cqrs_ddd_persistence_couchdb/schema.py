"""Host schema layers: model and field renaming around adapter calls."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import replace
from typing import Any

from .ports import Document, WriteAction
from .where import Condition, Expression, LogicalExpression, normalise_where


class PassthroughSchema:
    """Schema layer that changes nothing."""

    def model_name(self, model: str) -> str:
        return model

    def field_name(self, model: str, field: str) -> str:  # noqa: ARG002
        return field

    def transform_input(
        self,
        data: Document,
        model: str,  # noqa: ARG002
        action: WriteAction,  # noqa: ARG002
    ) -> Document:
        return dict(data)

    def transform_output(self, doc: Document, model: str) -> Document:  # noqa: ARG002
        return dict(doc)

    def transform_where(self, where: Any, model: str) -> Any:  # noqa: ARG002
        return where


class FieldMappingSchema(PassthroughSchema):
    """
    Rename models and fields between the caller's names and stored names.

    ``fields`` maps ``model -> {logical_field: stored_field}``. Input
    documents and filters are renamed logical -> stored; output documents
    stored -> logical. ``None`` values are dropped on input, mirroring a
    schema layer that only writes populated fields.
    """

    def __init__(
        self,
        *,
        model_names: Mapping[str, str] | None = None,
        fields: Mapping[str, Mapping[str, str]] | None = None,
    ) -> None:
        self._model_names = dict(model_names or {})
        self._fields = {model: dict(m) for model, m in (fields or {}).items()}
        self._reverse = {
            model: {stored: logical for logical, stored in m.items()}
            for model, m in self._fields.items()
        }

    def model_name(self, model: str) -> str:
        return self._model_names.get(model, model)

    def field_name(self, model: str, field: str) -> str:
        return self._fields.get(model, {}).get(field, field)

    def transform_input(
        self,
        data: Document,
        model: str,
        action: WriteAction,  # noqa: ARG002
    ) -> Document:
        return {
            self.field_name(model, key): value
            for key, value in data.items()
            if value is not None
        }

    def transform_output(self, doc: Document, model: str) -> Document:
        reverse = self._reverse.get(model, {})
        return {reverse.get(key, key): value for key, value in doc.items()}

    def transform_where(self, where: Any, model: str) -> Expression | None:
        return self._rename(normalise_where(where), model)

    def _rename(self, node: Expression | None, model: str) -> Expression | None:
        if node is None:
            return None
        if isinstance(node, LogicalExpression):
            return LogicalExpression(
                node.kind,
                tuple(
                    child
                    for child in (self._rename(c, model) for c in node.children)
                    if child is not None
                ),
            )
        if isinstance(node, Condition) and not node.is_identifier:
            return replace(node, field=self.field_name(model, node.field))
        return node
