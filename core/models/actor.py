"""The staff member performing an operation."""

from pydantic import BaseModel, Field


class Actor(BaseModel):
    """
    Explicit acting user, passed into every service operation.

    Authentication happens outside this service; callers hand over who they are.
    """

    id: str
    name: str = Field(..., max_length=200)
    role: str = "vendedor"

    model_config = {"frozen": True}
