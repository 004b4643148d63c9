"""
Pydantic models for router decisions.

The router returns exactly one of the defined shapes. Callers branch on
the type; no exception crosses the router boundary.
"""
from typing import Any, Dict, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

RouteFailureReason = Literal[
    "handlers-unavailable",
    "prediction-error",
    "no-match",
    "internal-exception",
]


class RouteMatch(BaseModel):
    """Router resolved the text to a handler in the manifest."""

    handler: str = Field(..., description="Target name of the executable unit")
    handler_key: str = Field(..., description="Manifest key that matched")
    debug: Dict[str, Any] = Field(
        default_factory=dict, description="Raw model answer and fallback info"
    )

    model_config = ConfigDict(extra="forbid")


class RouteFailure(BaseModel):
    """Router could not produce a usable handler."""

    reason: RouteFailureReason
    detail: str = ""

    model_config = ConfigDict(extra="forbid")


RouteDecision = Union[RouteMatch, RouteFailure]
