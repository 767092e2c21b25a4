"""
Request schemas for the session API.
"""

from typing import Optional

from pydantic import BaseModel, Field, model_validator


class PointRequest(BaseModel):
    """A pointer position in viewport pixels (relative to the preview element)."""

    x: float = Field(..., description="X offset from the left edge of the preview")
    y: float = Field(..., description="Y offset from the top edge of the preview")


class RegionCreateRequest(BaseModel):
    """A complete viewport-space rectangle drawn client-side."""

    x: float = Field(..., description="X coordinate of top-left corner")
    y: float = Field(..., description="Y coordinate of top-left corner")
    width: float = Field(..., ge=0, description="Width of the rectangle")
    height: float = Field(..., ge=0, description="Height of the rectangle")

    class Config:
        json_schema_extra = {
            "example": {"x": 100, "y": 100, "width": 50, "height": 30}
        }


class ProcessRequest(BaseModel):
    """
    Request to remove the selected regions.

    The rendered size is the on-screen size of the preview at the moment the
    user triggers processing. Native size defaults to the probed upload size.
    """

    rendered_width: float = Field(..., gt=0, description="Rendered preview width in pixels")
    rendered_height: float = Field(..., gt=0, description="Rendered preview height in pixels")
    native_width: Optional[int] = Field(
        default=None, gt=0, description="Override for the decoded video width"
    )
    native_height: Optional[int] = Field(
        default=None, gt=0, description="Override for the decoded video height"
    )

    @model_validator(mode="after")
    def validate_native_pair(self) -> "ProcessRequest":
        """Native overrides must be given together."""
        if (self.native_width is None) != (self.native_height is None):
            raise ValueError("native_width and native_height must be provided together")
        return self

    class Config:
        json_schema_extra = {
            "example": {"rendered_width": 800, "rendered_height": 450}
        }
