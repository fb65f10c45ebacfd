from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ORMModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class OperationResult(BaseModel):
    """Structured success/failure payload returned by every boundary operation."""

    success: bool
    message: Optional[str] = None
    error: Optional[str] = None
    errors: List[str] = Field(default_factory=list)
    data: Any = None
