"""上传文件模式"""

from pydantic import BaseModel, Field


class UploadMetadata(BaseModel):
    """写盘前的上传文件描述"""

    fieldname: str
    originalname: str
    encoding: str = Field(default="7bit")
    mimetype: str = Field(default="application/octet-stream")


class SavedFile(UploadMetadata):
    """已写盘的上传文件，提供给下游处理函数"""

    destination: str
    filename: str
    path: str
    size: int
