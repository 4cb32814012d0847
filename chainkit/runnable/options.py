"""Runnable options - Per-call configuration passed between Runnables

Options follow an immutable pattern: merging returns a new instance rather
than mutating either side. The merge order is

    library defaults  <  bound defaults (Runnable.bind)  <  call-time options

where "library defaults" are the field defaults of the options class plus
the [runnable] section of the configuration file.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from chainkit.config import config


class RunnableOptions(BaseModel):
    """Options accepted by every Runnable call

    Only fields the caller set explicitly take part in a merge, so an options
    object never resets a bound value back to its default.

    Attributes:
        run_name: Optional name for the call, used in logs
        tags: Free-form tags
        metadata: Free-form metadata
        max_concurrency: Cap on concurrent invocations inside a batch
    """
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    run_name: Optional[str] = Field(default=None, description="Name of this call, used in logs")
    tags: List[str] = Field(default_factory=list, description="Free-form tags")
    metadata: Dict[str, Any] = Field(default_factory=dict, description="Free-form metadata")
    max_concurrency: Optional[int] = Field(
        default=None,
        ge=1,
        description="Maximum concurrent invocations in a batch (None = library default)",
    )

    def merge(self, other: Optional["RunnableOptions"]) -> "RunnableOptions":
        """Return new options where fields explicitly set on ``other`` win

        The result has the more specific class of the two; fields that class
        does not know are dropped.

        Args:
            other: Options taking precedence (None returns self)

        Returns:
            New RunnableOptions instance
        """
        if other is None:
            return self
        target = type(other) if isinstance(other, type(self)) else type(self)
        values = {name: getattr(self, name) for name in self.model_fields_set}
        values.update({name: getattr(other, name) for name in other.model_fields_set})
        return target(**{k: v for k, v in values.items() if k in target.model_fields})


def merge_options(*layers: Optional[RunnableOptions]) -> Optional[RunnableOptions]:
    """Merge option layers from lowest to highest precedence, skipping None"""
    merged: Optional[RunnableOptions] = None
    for layer in layers:
        if layer is None:
            continue
        merged = layer if merged is None else merged.merge(layer)
    return merged


def default_max_concurrency() -> Optional[int]:
    """Library default from the [runnable] configuration section"""
    return config.runnable.max_concurrency
