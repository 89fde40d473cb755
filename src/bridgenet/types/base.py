"""Reusable pydantic base models for harness value types."""

from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """
    A base model whose wire names are camel case.

    Relay configuration files use camel-cased keys (e.g. `stateEndpoint`).
    Python code reads and writes the snake-cased attribute instead.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        validate_default=True,
        validate_assignment=True,
    )

    def to_wire(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dict using wire (alias) names."""
        return self.model_dump(mode="json", by_alias=True)


class PassThroughModel(CamelModel):
    """
    A mutable camel-case model that keeps unknown keys.

    Templates may carry keys the harness does not know about.
    Those keys survive a decode/encode round trip unchanged.
    """

    model_config = CamelModel.model_config | {"extra": "allow"}


class StrictBaseModel(BaseModel):
    """A strict, immutable pydantic base model."""

    model_config = ConfigDict(
        extra="forbid",
        frozen=True,
        strict=True,
    )


def flatten_errors(exc: ValidationError) -> list[tuple[str, str]]:
    """Turn a pydantic validation error into (location, message) pairs."""
    pairs: list[tuple[str, str]] = []
    for err in exc.errors():
        location = ".".join(str(part) for part in err["loc"]) or "<root>"
        pairs.append((location, err["msg"]))
    return pairs
