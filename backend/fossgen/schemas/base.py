"""Base schema classes with camelCase alias generation.

All API schemas inherit from these instead of BaseModel directly.
Backend Python code stays snake_case. API JSON output becomes camelCase.
"""
from typing import Any

from pydantic import BaseModel
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Accepts and outputs camelCase, still populated by snake_case names."""
    model_config = {
        "alias_generator": to_camel,
        "populate_by_name": True,
        "protected_namespaces": (),
    }


def camelize(data: dict[str, Any]) -> dict[str, Any]:
    """Rename top-level snake_case keys of a free-form payload to camelCase."""
    return {to_camel(key): value for key, value in data.items()}
