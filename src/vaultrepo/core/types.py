"""Core value types and configuration for VaultRepo.

Sort and page requests are plain pydantic models so they can be built from
CLI input or JSON and compared by value.
"""

from __future__ import annotations

from collections.abc import Callable
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class Direction(StrEnum):
    """Sort direction."""

    ASC = "asc"
    DESC = "desc"

    @classmethod
    def values(cls) -> list[str]:
        """Return all valid direction values."""
        return [d.value for d in cls]


class KeyspaceNaming(StrEnum):
    """How a keyspace is derived from an entity class name."""

    SIMPLE_NAME = "simple_name"  # Credential -> Credential
    LOWERCASE = "lowercase"  # CreditCard -> creditcard
    SNAKE_CASE = "snake_case"  # CreditCard -> credit_card

    @classmethod
    def values(cls) -> list[str]:
        """Return all valid naming strategy values."""
        return [n.value for n in cls]


class Order(BaseModel):
    """A single sort order on one entity property."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Entity property name")
    direction: Direction = Field(default=Direction.ASC)

    @property
    def ascending(self) -> bool:
        return self.direction == Direction.ASC


class Sort(BaseModel):
    """Ordered list of sort orders; the first order is the primary key."""

    model_config = ConfigDict(frozen=True)

    orders: tuple[Order, ...] = ()

    @classmethod
    def by(cls, *properties: str, direction: Direction | str = Direction.ASC) -> Sort:
        """Sort by one or more properties in the same direction."""
        return cls(
            orders=tuple(Order(name=p, direction=Direction(direction)) for p in properties)
        )

    @classmethod
    def parse(cls, expression: str) -> Sort:
        """Parse ``"name,desc;created"`` style expressions.

        Orders are separated by ``;``; each order is ``property[,direction]``.
        """
        orders = []
        for part in expression.split(";"):
            part = part.strip()
            if not part:
                continue
            prop, _, direction = part.partition(",")
            orders.append(
                Order(name=prop.strip(), direction=Direction(direction.strip().lower() or "asc"))
            )
        return cls(orders=tuple(orders))

    def __bool__(self) -> bool:
        return bool(self.orders)


class PageRequest(BaseModel):
    """Caller-supplied window (and optional sort) over a query result."""

    model_config = ConfigDict(frozen=True)

    offset: int = Field(default=0, ge=0)
    limit: int | None = Field(default=None, gt=0)
    sort: Sort | None = None

    @classmethod
    def of(cls, page: int, size: int, sort: Sort | None = None) -> PageRequest:
        """Build a request for zero-based page ``page`` of ``size`` elements."""
        return cls(offset=page * size, limit=size, sort=sort)


class ScalarConverter(BaseModel):
    """Custom mapping for one Python type, applied before default conversion.

    ``write`` turns a value of ``source_type`` into its stored representation,
    ``read`` turns the stored representation back.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    source_type: type
    write: Callable[[Any], Any]
    read: Callable[[Any], Any]


class RepositoryConfig(BaseModel):
    """Configuration shared by repositories and the entity converter."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    keyspace_naming: KeyspaceNaming = Field(default=KeyspaceNaming.SIMPLE_NAME)
    custom_converters: list[ScalarConverter] = Field(default_factory=list)
    discriminator_key: str = Field(default="_class", min_length=1)
