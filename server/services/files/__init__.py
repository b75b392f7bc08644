"""文件服务"""
from server.services.files.upload_storage import NamingPolicy, UploadStorage, base_filename, original_filename_policy

__all__ = [
    "NamingPolicy",
    "UploadStorage",
    "base_filename",
    "original_filename_policy",
]
