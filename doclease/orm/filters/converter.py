# Copyright (c) Nex-AGI. All rights reserved.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Filter converters.

Turns Filter DSL trees into SQLAlchemy ``ColumnElement[bool]`` expressions or
evaluates them directly against Python records.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel
from sqlalchemy import ColumnElement, and_, literal
from sqlmodel import SQLModel

from .dsl import AndFilter, ComparisonFilter, Filter, FilterOperator


def to_sqlalchemy(
    filter_: Filter,
    model_class: type[SQLModel],
) -> ColumnElement[bool]:
    """Convert a Filter DSL tree into a SQLAlchemy expression.

    Args:
        filter_: Filter DSL instance
        model_class: SQLModel class providing the column definitions

    Returns:
        SQLAlchemy ColumnElement[bool] expression

    Raises:
        ValueError: If a field does not exist on model_class
    """
    if isinstance(filter_, ComparisonFilter):
        return _convert_comparison_filter(filter_, model_class)
    return _convert_and_filter(filter_, model_class)


def _get_column(
    model_class: type[SQLModel],
    field_name: str,
) -> ColumnElement[object]:
    if not hasattr(model_class, field_name):
        raise ValueError(f"Field '{field_name}' not found in model {model_class.__name__}")

    column: ColumnElement[object] = getattr(model_class, field_name)
    return column


def _convert_comparison_filter(
    filter_: ComparisonFilter,
    model_class: type[SQLModel],
) -> ColumnElement[bool]:
    column = _get_column(model_class, filter_.field)
    op = filter_.op
    value = filter_.value

    if op == FilterOperator.EQ:
        return column == value
    elif op == FilterOperator.LT:
        return column < value
    else:
        raise ValueError(f"Unsupported operator: {op}")


def _convert_and_filter(
    filter_: AndFilter,
    model_class: type[SQLModel],
) -> ColumnElement[bool]:
    if not filter_.filters:
        # Identity element for AND
        return literal(True)

    sub_expressions = [to_sqlalchemy(sub_filter, model_class) for sub_filter in filter_.filters]
    return and_(*sub_expressions)


def evaluate(
    filter_: Filter,
    record: Mapping[str, Any] | BaseModel,
) -> bool:
    """Evaluate a Filter DSL tree against a record in Python.

    Args:
        filter_: Filter DSL instance
        record: A mapping or a Pydantic/SQLModel instance

    Returns:
        True when the record matches

    Examples:
        >>> filter_ = ComparisonFilter.eq("holder_id", "alice")
        >>> evaluate(filter_, {"holder_id": "alice"})
        True
    """
    record_dict: Mapping[str, Any]
    if isinstance(record, BaseModel):
        record_dict = record.model_dump()
    else:
        record_dict = record

    if isinstance(filter_, ComparisonFilter):
        return _evaluate_comparison_filter(filter_, record_dict)
    return all(evaluate(sub_filter, record_dict) for sub_filter in filter_.filters)


def _safe_less_than(a: object, b: object) -> bool:
    """Order two values, treating incomparable types as a non-match."""
    try:
        return a < b  # type: ignore[operator]
    except TypeError:
        return False


def _evaluate_comparison_filter(
    filter_: ComparisonFilter,
    record: Mapping[str, Any],
) -> bool:
    # Missing fields evaluate as None, like a NULL column
    field_value = record.get(filter_.field, None)
    op = filter_.op
    filter_value = filter_.value

    if op == FilterOperator.EQ:
        return field_value == filter_value
    elif op == FilterOperator.LT:
        if field_value is None or filter_value is None:
            return False
        return _safe_less_than(field_value, filter_value)
    else:
        raise ValueError(f"Unsupported operator: {op}")
