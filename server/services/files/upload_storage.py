"""上传文件存储策略

文件保存位置由注入的命名策略决定：``(UploadMetadata) -> Path``。
默认策略使用客户端提供的原始文件名（去掉目录部分），同名文件互相覆盖。
"""
import os
from pathlib import Path, PurePosixPath, PureWindowsPath
from typing import Callable

import aiofiles
from fastapi import HTTPException, Request, status
from loguru import logger
from starlette.datastructures import UploadFile

from server.schemas.upload import SavedFile, UploadMetadata

NamingPolicy = Callable[[UploadMetadata], Path]


def base_filename(name: str) -> str:
    """去掉客户端文件名中的目录部分（兼容 / 与 \\ 分隔符）"""
    return PurePosixPath(PureWindowsPath(name).name).name


def original_filename_policy(destination) -> NamingPolicy:
    """目标目录 + 原始文件名，不做去重与重命名，只保留文件名部分"""
    destination = Path(destination)

    def policy(metadata: UploadMetadata) -> Path:
        return destination / base_filename(metadata.originalname)

    return policy


class UploadStorage:
    """上传文件存储，以 FastAPI 依赖的形式提供给路由"""

    CHUNK_SIZE = 1024 * 1024  # 1MB

    def __init__(self, destination, naming_policy: NamingPolicy | None = None):
        self.destination = Path(destination)
        self.naming_policy = naming_policy or original_filename_policy(self.destination)

    @staticmethod
    def describe(fieldname: str, upload: UploadFile) -> UploadMetadata:
        """构造上传文件描述"""
        headers = upload.headers or {}
        return UploadMetadata(
            fieldname=fieldname,
            originalname=upload.filename,
            encoding=headers.get("content-transfer-encoding", "7bit"),
            mimetype=upload.content_type or "application/octet-stream",
        )

    def resolve_path(self, metadata: UploadMetadata) -> Path:
        return Path(self.naming_policy(metadata))

    def _inside_destination(self, path: Path) -> bool:
        root = os.path.abspath(self.destination)
        target = os.path.abspath(path)
        return target != root and os.path.commonpath([root, target]) == root

    async def save(self, fieldname: str, upload: UploadFile) -> SavedFile:
        """写入单个文件，返回已保存文件信息"""
        metadata = self.describe(fieldname, upload)
        path = self.resolve_path(metadata)
        if not self._inside_destination(path):
            logger.warning(f"拒绝写入目标目录之外的路径: {path}")
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Invalid filename: {metadata.originalname}")

        size = 0
        try:
            await upload.seek(0)
            async with aiofiles.open(path, "wb") as f:
                while chunk := await upload.read(self.CHUNK_SIZE):
                    size += len(chunk)
                    await f.write(chunk)
        except OSError as e:
            logger.error(f"上传文件保存失败: {path}: {e}")
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"保存失败: {e}")

        logger.debug(f"上传文件已保存: {path} ({size} bytes)")
        return SavedFile(
            **metadata.model_dump(),
            destination=str(path.parent),
            filename=path.name,
            path=str(path),
            size=size,
        )

    @staticmethod
    def _select(form, limits: dict | None) -> list[tuple[str, UploadFile]]:
        """按字段限制挑选文件；limits 为 None 时接受任意字段"""
        selected = []
        counts = {}
        for name, value in form.multi_items():
            if not isinstance(value, UploadFile) or not value.filename:
                continue
            if limits is not None:
                if name not in limits:
                    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Unexpected field: {name}")
                counts[name] = counts.get(name, 0) + 1
                max_count = limits[name]
                if max_count is not None and counts[name] > max_count:
                    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Too many files for field: {name}")
            selected.append((name, value))
        return selected

    async def _save_form(self, request: Request, limits: dict | None) -> list[SavedFile]:
        async with request.form() as form:
            selected = self._select(form, limits)
            saved = []
            for name, upload in selected:
                saved.append(await self.save(name, upload))
        return saved

    def single(self, fieldname: str):
        """单文件字段，依赖返回 SavedFile 或 None"""

        async def dependency(request: Request) -> SavedFile | None:
            saved = await self._save_form(request, {fieldname: 1})
            request.state.file = saved[0] if saved else None
            return request.state.file

        return dependency

    def array(self, fieldname: str, max_count: int | None = None):
        """同一字段的多个文件"""

        async def dependency(request: Request) -> list[SavedFile]:
            request.state.files = await self._save_form(request, {fieldname: max_count})
            return request.state.files

        return dependency

    def fields(self, specs):
        """多个字段，specs 为 ``[(name, max_count), ...]``，依赖返回按字段分组的文件"""
        limits = {name: max_count for name, max_count in specs}

        async def dependency(request: Request) -> dict[str, list[SavedFile]]:
            grouped = {}
            for saved in await self._save_form(request, limits):
                grouped.setdefault(saved.fieldname, []).append(saved)
            request.state.files = grouped
            return grouped

        return dependency

    def any(self):
        """接受任意字段的文件"""

        async def dependency(request: Request) -> list[SavedFile]:
            request.state.files = await self._save_form(request, None)
            return request.state.files

        return dependency
