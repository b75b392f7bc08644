from server.schemas.common import BaseResponse
from server.schemas.upload import SavedFile, UploadMetadata

__all__ = ["BaseResponse", "SavedFile", "UploadMetadata"]
