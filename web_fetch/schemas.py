from pydantic import BaseModel, Field
from typing import Optional

class FetchRequest(BaseModel):
    url: str = Field(description="Fully-formed URL to fetch (e.g., https://example.com/page)")
    prompt: Optional[str] = Field(
        None,
        description="What information to extract from the page. Omit to get the extracted content itself."
    )

class FetchResponse(BaseModel):
    content: str
    is_error: bool = False
    cached: bool = Field(default=False, description="Whether the page text was served from cache")
