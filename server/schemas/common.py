"""通用响应模式"""

from datetime import datetime
from typing import Generic, TypeVar

from pydantic import BaseModel, Field

T = TypeVar('T')


class BaseResponse(BaseModel, Generic[T]):
    success: bool = Field(default=True)
    code: int = Field(default=200)
    message: str = Field(default="")
    data: T | None = Field(default=None)
    timestamp: datetime = Field(default_factory=datetime.now)
