"""Backend-independent filter expressions over scalar payload fields."""

import json
from typing import Literal

from pydantic import BaseModel

ScalarValue = str | int | bool


class FilterCondition(BaseModel):
    """A single condition: equality (op="eq") or list membership (op="in")."""

    field: str
    op: Literal["eq", "in"] = "eq"
    value: ScalarValue | list[ScalarValue]


class FilterExpression(BaseModel):
    """A conjunction of conditions. The RAG clients reject empty expressions."""

    conditions: list[FilterCondition] = []

    @classmethod
    def equals(cls, field: str, value: ScalarValue) -> "FilterExpression":
        return cls(conditions=[FilterCondition(field=field, op="eq", value=value)])

    @classmethod
    def one_of(cls, field: str, values: list[ScalarValue]) -> "FilterExpression":
        return cls(conditions=[FilterCondition(field=field, op="in", value=list(values))])

    def and_equals(self, field: str, value: ScalarValue) -> "FilterExpression":
        return FilterExpression(conditions=[*self.conditions, FilterCondition(field=field, op="eq", value=value)])

    def is_empty(self) -> bool:
        return not self.conditions

    ##########################################
    ############### TRANSLATION ##############
    ##########################################

    def to_qdrant(self) -> dict:
        """Translate into a Qdrant filter object.

        Returns:
            dict: {"must": [{"key": ..., "match": {"value": ...}} | {"key": ..., "match": {"any": [...]}}]}
        """
        must = []
        for condition in self.conditions:
            if condition.op == "in":
                must.append({"key": condition.field, "match": {"any": list(condition.value)}})
            else:
                must.append({"key": condition.field, "match": {"value": condition.value}})
        return {"must": must}

    def to_milvus(self, field_map: dict[str, str] | None = None) -> str:
        """Translate into a Milvus boolean expression.

        Args:
            field_map (dict[str, str] | None): Renames payload fields to collection field names.

        Returns:
            str: e.g. 'document_uuid == "abc" and chunk_index in [1, 2]'
        """
        field_map = field_map or {}
        parts = []
        for condition in self.conditions:
            field = field_map.get(condition.field, condition.field)
            if condition.op == "in":
                values = ", ".join(_milvus_literal(v) for v in condition.value)
                parts.append(f"{field} in [{values}]")
            else:
                parts.append(f"{field} == {_milvus_literal(condition.value)}")
        return " and ".join(parts)


def _milvus_literal(value: ScalarValue) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    # JSON string escaping matches the Milvus string literal syntax
    return json.dumps(str(value))
