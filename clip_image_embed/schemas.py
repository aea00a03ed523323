from pydantic import BaseModel, Field
from typing import List, Optional


class EmbedRequest(BaseModel):
    model: Optional[str] = None

    # Base64-encoded image bytes (png/jpg), raw or "data:image/png;base64,...."
    image_b64: str = Field(..., description="base64 of image bytes")

    # Overrides server default if provided
    norm: Optional[bool] = None


class EmbedResponse(BaseModel):
    model: str
    dim: int
    norm: bool
    embedding: List[float]


class HealthzResponse(BaseModel):
    ok: bool
    model: str
    provider: str
    input_name: str
    image_size: int
    profile: str
    output: str
