from typing import List, Optional
from pydantic import BaseModel


class WorkModel(BaseModel):
    """Bibliographic record as read by the pipeline."""

    id: int
    title: str
    authors: List[str] = []
    year: Optional[int] = None
    doi: Optional[str] = None
    url: Optional[str] = None

    model_config = {"from_attributes": True}
