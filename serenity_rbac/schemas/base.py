"""
Shared schema helpers.
"""

from typing import Any, Type, TypeVar

from pydantic import BaseModel, ValidationError

from serenity_rbac.core.errors import RBACValidationError

SchemaT = TypeVar("SchemaT", bound=BaseModel)


def parse_input(schema: Type[SchemaT], data: SchemaT | dict[str, Any]) -> SchemaT:
    """
    Validate caller input against a schema.

    Accepts an already-built schema instance or a plain dict. pydantic
    errors are re-raised as RBACValidationError with the error list as
    details.
    """
    if isinstance(data, schema):
        return data
    if isinstance(data, BaseModel):
        data = data.model_dump(exclude_unset=True)
    try:
        return schema.model_validate(data)
    except ValidationError as e:
        raise RBACValidationError(
            f"Invalid {schema.__name__} input",
            details={"errors": e.errors(include_url=False, include_context=False)},
        ) from e
