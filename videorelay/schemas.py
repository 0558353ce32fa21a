"""
Request types for the video endpoints.
"""

from typing import Literal

from pydantic import BaseModel, Field

# clip lengths the video API accepts, as sent in the create form
VideoSeconds = Literal["4", "8", "12"]


class RemixVideoRequest(BaseModel):
    """Request to remix a completed job with a new prompt."""
    prompt: str = Field(min_length=1)
