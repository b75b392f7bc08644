"""
上传存储测试

测试命名策略、文件写入和同名覆盖
"""

import io
from pathlib import Path

import pytest
from fastapi import HTTPException
from starlette.datastructures import Headers, UploadFile

from server.schemas.upload import UploadMetadata
from server.services.files import UploadStorage, base_filename, original_filename_policy


class TestNamingPolicy:
    """命名策略（无磁盘操作）"""

    def test_original_filename_kept_verbatim(self):
        policy = original_filename_policy("/srv/public/assets")
        metadata = UploadMetadata(fieldname="picture", originalname="My Photo (1).JPG")

        assert policy(metadata) == Path("/srv/public/assets") / "My Photo (1).JPG"

    def test_same_name_maps_to_same_path(self):
        policy = original_filename_policy("/srv/public/assets")
        first = UploadMetadata(fieldname="a", originalname="avatar.png", mimetype="image/png")
        second = UploadMetadata(fieldname="b", originalname="avatar.png", mimetype="image/jpeg")

        assert policy(first) == policy(second)

    def test_storage_uses_injected_policy(self, tmp_path):
        storage = UploadStorage(tmp_path, naming_policy=lambda m: tmp_path / f"{m.fieldname}-{m.originalname}")

        path = storage.resolve_path(UploadMetadata(fieldname="cover", originalname="x.png"))

        assert path == tmp_path / "cover-x.png"

    def test_default_policy_targets_destination(self, tmp_path):
        storage = UploadStorage(tmp_path)

        path = storage.resolve_path(UploadMetadata(fieldname="cover", originalname="x.png"))

        assert path == tmp_path / "x.png"

    def test_directory_parts_stripped(self):
        policy = original_filename_policy("/srv/public/assets")

        for name in ("../escaped.txt", "/etc/escaped.txt", "..\\..\\escaped.txt", "C:\\temp\\escaped.txt"):
            metadata = UploadMetadata(fieldname="picture", originalname=name)
            assert policy(metadata) == Path("/srv/public/assets") / "escaped.txt"

    def test_base_filename(self):
        assert base_filename("a/b/c.txt") == "c.txt"
        assert base_filename("My Photo (1).JPG") == "My Photo (1).JPG"
        assert base_filename(".") == ""

    @pytest.mark.asyncio
    async def test_path_outside_destination_rejected(self, tmp_path):
        destination = tmp_path / "assets"
        destination.mkdir()
        storage = UploadStorage(destination, naming_policy=lambda m: tmp_path / m.originalname)
        upload = UploadFile(file=io.BytesIO(b"x"), filename="outside.txt")

        with pytest.raises(HTTPException) as exc_info:
            await storage.save("picture", upload)

        assert exc_info.value.status_code == 400
        assert not (tmp_path / "outside.txt").exists()

    @pytest.mark.asyncio
    async def test_bare_dot_filename_rejected(self, tmp_path):
        storage = UploadStorage(tmp_path)
        upload = UploadFile(file=io.BytesIO(b"x"), filename="..")

        with pytest.raises(HTTPException) as exc_info:
            await storage.save("picture", upload)

        assert exc_info.value.status_code == 400

    def test_describe_upload(self):
        upload = UploadFile(
            file=None,
            filename="a.txt",
            headers=Headers({"content-type": "text/plain"}),
        )

        metadata = UploadStorage.describe("doc", upload)

        assert metadata.fieldname == "doc"
        assert metadata.originalname == "a.txt"
        assert metadata.mimetype == "text/plain"
        assert metadata.encoding == "7bit"


class TestUploadEndpoints:
    """上传依赖"""

    @pytest.mark.asyncio
    async def test_single_file_written(self, client, assets_dir):
        response = await client.post("/upload", files={"picture": ("cat.png", b"meow", "image/png")})

        assert response.status_code == 200
        saved = response.json()["file"]
        assert saved["filename"] == "cat.png"
        assert saved["originalname"] == "cat.png"
        assert saved["mimetype"] == "image/png"
        assert saved["size"] == 4
        assert saved["destination"] == str(assets_dir)
        assert Path(saved["path"]) == assets_dir / "cat.png"
        assert (assets_dir / "cat.png").read_bytes() == b"meow"

    @pytest.mark.asyncio
    async def test_relative_parent_filename_stays_in_assets(self, client, assets_dir):
        response = await client.post("/upload", files={"picture": ("../escaped.txt", b"contained", "text/plain")})

        assert response.status_code == 200
        assert response.json()["file"]["filename"] == "escaped.txt"
        assert (assets_dir / "escaped.txt").read_bytes() == b"contained"
        assert not (assets_dir.parent / "escaped.txt").exists()

    @pytest.mark.asyncio
    async def test_absolute_filename_stays_in_assets(self, client, assets_dir, tmp_path):
        target = tmp_path / "abs.txt"

        response = await client.post("/upload", files={"picture": (str(target), b"contained", "text/plain")})

        assert response.status_code == 200
        assert (assets_dir / "abs.txt").read_bytes() == b"contained"
        assert not target.exists()

    @pytest.mark.asyncio
    async def test_same_name_overwrites(self, client):
        first = await client.post("/upload", files={"picture": ("dup.txt", b"first version", "text/plain")})
        second = await client.post("/upload", files={"picture": ("dup.txt", b"second", "text/plain")})

        assert first.status_code == 200
        assert second.status_code == 200

        response = await client.get("/assets/dup.txt")
        assert response.status_code == 200
        assert response.content == b"second"

    @pytest.mark.asyncio
    async def test_form_fields_alongside_file(self, client, assets_dir):
        response = await client.post(
            "/upload",
            data={"caption": "hello"},
            files={"picture": ("p.txt", b"x", "text/plain")},
        )

        assert response.status_code == 200
        assert (assets_dir / "p.txt").exists()

    @pytest.mark.asyncio
    async def test_no_file_returns_none(self, client):
        response = await client.post("/upload", data={"caption": "hello"})

        assert response.status_code == 200
        assert response.json() == {"file": None}

    @pytest.mark.asyncio
    async def test_unexpected_field_rejected(self, client, assets_dir):
        response = await client.post("/upload", files={"other": ("o.txt", b"x", "text/plain")})

        assert response.status_code == 400
        assert not (assets_dir / "o.txt").exists()

    @pytest.mark.asyncio
    async def test_array_of_files(self, client, assets_dir):
        files = [
            ("photos", ("one.txt", b"1", "text/plain")),
            ("photos", ("two.txt", b"22", "text/plain")),
        ]

        response = await client.post("/upload/many", files=files)

        assert response.status_code == 200
        assert [f["filename"] for f in response.json()["files"]] == ["one.txt", "two.txt"]
        assert (assets_dir / "two.txt").read_bytes() == b"22"

    @pytest.mark.asyncio
    async def test_array_max_count(self, client):
        files = [("photos", (f"{i}.txt", b"x", "text/plain")) for i in range(3)]

        response = await client.post("/upload/many", files=files)

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_fields_grouped(self, client):
        files = [
            ("avatar", ("me.png", b"a", "image/png")),
            ("gallery", ("g1.png", b"b", "image/png")),
            ("gallery", ("g2.png", b"c", "image/png")),
        ]

        response = await client.post("/upload/fields", files=files)

        assert response.status_code == 200
        assert response.json() == {"fields": {"avatar": ["me.png"], "gallery": ["g1.png", "g2.png"]}}

    @pytest.mark.asyncio
    async def test_missing_destination_fails_per_request(self, make_app, tmp_path):
        import httpx

        app = make_app(ASSETS_DIR=str(tmp_path / "missing"))
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as http_client:
            response = await http_client.post("/upload", files={"picture": ("a.txt", b"x", "text/plain")})

        assert response.status_code == 500
        assert not (tmp_path / "missing").exists()

    def test_storage_registered_on_app(self, app, settings):
        assert isinstance(app.state.upload, UploadStorage)
        assert app.state.upload.destination == Path(settings.ASSETS_DIR)
