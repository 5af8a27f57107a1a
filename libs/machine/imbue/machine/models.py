from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic.alias_generators import to_pascal


class FrozenModel(BaseModel):
    """Base class for immutable pydantic models that prevent attribute mutation after construction."""

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        arbitrary_types_allowed=False,
    )


class MutableModel(BaseModel):
    """Base class for mutable pydantic models that allow attribute mutation after construction."""

    model_config = ConfigDict(
        frozen=False,
        extra="forbid",
        arbitrary_types_allowed=False,
        validate_assignment=True,
    )


class PersistedFrozenModel(FrozenModel):
    """Immutable model stored in a host's config.json.

    Keys on disk are PascalCase (e.g. ``CaCertPath``). Unknown keys are ignored so that
    records written by newer or older versions still load.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        alias_generator=to_pascal,
        populate_by_name=True,
    )


class PersistedMutableModel(MutableModel):
    """Mutable counterpart of PersistedFrozenModel (used by drivers, which update their own state)."""

    model_config = ConfigDict(
        frozen=False,
        extra="ignore",
        alias_generator=to_pascal,
        populate_by_name=True,
        validate_assignment=True,
    )
