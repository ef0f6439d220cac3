# taskboard/schemas/common.py
from pydantic import BaseModel, ConfigDict


class StrictBaseModel(BaseModel):
    """Request bodies: unknown fields are rejected."""

    model_config = ConfigDict(extra="forbid")


EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"
