"""
Tests for the /upload endpoint.
Uses httpx AsyncClient for normal requests and raw ASGI calls for
transport-level cases.
"""
import asyncio
import pytest
from botocore.exceptions import ClientError
from httpx import AsyncClient

from tests.conftest import FakeStorage, call_asgi


def _auth_error() -> ClientError:
    return ClientError(
        {"Error": {"Code": "InvalidAccessKeyId", "Message": "The access key ID you provided does not exist"}},
        "PutObject",
    )


class TestUploadSuccess:
    """Tests for successful uploads."""

    @pytest.mark.asyncio
    async def test_upload_png_bytes(self, client: AsyncClient, storage: FakeStorage):
        """Test the stored object equals the request body byte for byte."""
        body = bytes([0x89, 0x50, 0x4E, 0x47])
        response = await client.post(
            "/upload",
            headers={"x-file-name": "a.png"},
            content=body,
        )

        assert response.status_code == 201
        assert response.content == b""
        assert storage.fetch("a.png") == body

    @pytest.mark.asyncio
    async def test_upload_empty_body(self, client: AsyncClient, storage: FakeStorage):
        """Test a zero-length body is stored as an empty object."""
        response = await client.post(
            "/upload",
            headers={"x-file-name": "empty.txt", "content-length": "0"},
            content=b"",
        )

        assert response.status_code == 201
        assert storage.fetch("empty.txt") == b""

    @pytest.mark.asyncio
    async def test_upload_streamed_body(self, client: AsyncClient, storage: FakeStorage):
        """Test a chunked body is read completely before storing."""
        async def chunks():
            yield b"hello "
            yield b"chunked "
            yield b"world"

        response = await client.post(
            "/upload",
            headers={"x-file-name": "streamed.txt"},
            content=chunks(),
        )

        assert response.status_code == 201
        assert storage.fetch("streamed.txt") == b"hello chunked world"

    @pytest.mark.asyncio
    async def test_upload_overwrites_existing_key(self, client: AsyncClient, storage: FakeStorage):
        """Test last write wins for the same key."""
        await client.post("/upload", headers={"x-file-name": "k"}, content=b"first")
        response = await client.post("/upload", headers={"x-file-name": "k"}, content=b"second")

        assert response.status_code == 201
        assert storage.fetch("k") == b"second"

    @pytest.mark.asyncio
    async def test_header_name_is_case_insensitive(self, client: AsyncClient, storage: FakeStorage):
        """Test X-File-Name is accepted regardless of case."""
        response = await client.post(
            "/upload",
            headers={"X-File-Name": "nested/path/file.bin"},
            content=b"\x00\x01",
        )

        assert response.status_code == 201
        assert storage.fetch("nested/path/file.bin") == b"\x00\x01"

    @pytest.mark.asyncio
    async def test_concurrent_uploads(self, client: AsyncClient, storage: FakeStorage):
        """Test parallel uploads to different keys all land."""
        responses = await asyncio.gather(*[
            client.post("/upload", headers={"x-file-name": f"file-{i}"}, content=str(i).encode())
            for i in range(10)
        ])

        assert all(r.status_code == 201 for r in responses)
        assert {k: v for k, v in storage.objects.items()} == {
            f"file-{i}": str(i).encode() for i in range(10)
        }


class TestUploadRejections:
    """Tests for caller mistakes."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("method", ["GET", "PUT", "PATCH", "DELETE", "OPTIONS"])
    async def test_non_post_method_not_allowed(self, client: AsyncClient, storage: FakeStorage, method: str):
        """Test every non-POST method returns 405 without storing."""
        response = await client.request(
            method,
            "/upload",
            headers={"x-file-name": "a.png"},
        )

        assert response.status_code == 405
        assert response.text == "Method not allowed"
        assert response.headers["allow"] == "POST"
        assert response.headers["content-type"].startswith("text/plain")
        assert storage.calls == []

    @pytest.mark.asyncio
    async def test_head_method_not_allowed(self, client: AsyncClient, storage: FakeStorage):
        """Test HEAD gets a 405 as well."""
        response = await client.head("/upload")

        assert response.status_code == 405
        assert storage.calls == []

    @pytest.mark.asyncio
    async def test_missing_file_name_header(self, client: AsyncClient, storage: FakeStorage):
        """Test a missing x-file-name header is rejected."""
        response = await client.post("/upload", content=b"hello")

        assert response.status_code == 400
        assert response.text == "Missing x-file-name header"
        assert storage.calls == []

    @pytest.mark.asyncio
    async def test_empty_file_name_header(self, client: AsyncClient, storage: FakeStorage):
        """Test an empty x-file-name header is rejected."""
        response = await client.post(
            "/upload",
            headers={"x-file-name": ""},
            content=b"hello",
        )

        assert response.status_code == 400
        assert response.text == "Missing x-file-name header"
        assert storage.calls == []

    @pytest.mark.asyncio
    async def test_missing_body(self, app, storage: FakeStorage):
        """Test a request that declares no body is rejected."""
        async def receive():
            return {"type": "http.request", "body": b"", "more_body": False}

        response = await call_asgi(app, "POST", [("x-file-name", "a.png")], receive)

        assert response["status"] == 400
        assert response["body"] == b"Missing request body"
        assert storage.calls == []

    @pytest.mark.asyncio
    async def test_unknown_path_not_found(self, client: AsyncClient, storage: FakeStorage):
        """Test only /upload is served."""
        response = await client.post("/uploads", headers={"x-file-name": "a"}, content=b"x")

        assert response.status_code == 404
        assert storage.calls == []


class TestUploadFailures:
    """Tests for server-side failures."""

    @pytest.mark.asyncio
    async def test_storage_auth_error(self, client: AsyncClient, storage: FakeStorage):
        """Test a backend authentication failure surfaces as 500 with its message."""
        storage.error = _auth_error()

        response = await client.post(
            "/upload",
            headers={"x-file-name": "ok.txt"},
            content=b"hello",
        )

        assert response.status_code == 500
        assert response.text.startswith("Error uploading file: ")
        assert "The access key ID you provided does not exist" in response.text
        assert "ok.txt" not in storage.objects

    @pytest.mark.asyncio
    async def test_body_read_error(self, app, storage: FakeStorage):
        """Test a transport failure while reading the body returns 500."""
        messages = [{"type": "http.request", "body": b"partial", "more_body": True}]

        async def receive():
            if messages:
                return messages.pop(0)
            raise RuntimeError("connection reset by peer")

        response = await call_asgi(
            app,
            "POST",
            [("x-file-name", "a.bin"), ("content-length", "1000")],
            receive,
        )

        assert response["status"] == 500
        assert response["body"] == b"Error reading request body: connection reset by peer"
        assert storage.calls == []


class TestUploadCancellation:
    """Tests for client disconnects."""

    @pytest.mark.asyncio
    async def test_disconnect_during_read(self, app, storage: FakeStorage):
        """Test a disconnect before the body is complete never reaches storage."""
        messages = [
            {"type": "http.request", "body": b"part", "more_body": True},
            {"type": "http.disconnect"},
        ]

        async def receive():
            return messages.pop(0)

        await call_asgi(
            app,
            "POST",
            [("x-file-name", "a.bin"), ("content-length", "100")],
            receive,
        )

        assert storage.calls == []
        assert storage.objects == {}

    @pytest.mark.asyncio
    async def test_disconnect_during_store_cancels_upload(self, app, storage: FakeStorage):
        """Test the in-flight store is cancelled when the client goes away."""
        storage.block = True
        body_sent = False

        async def receive():
            nonlocal body_sent
            if not body_sent:
                body_sent = True
                return {"type": "http.request", "body": b"data", "more_body": False}
            # Client drops once the store has started
            await storage.started.wait()
            return {"type": "http.disconnect"}

        await asyncio.wait_for(
            call_asgi(
                app,
                "POST",
                [("x-file-name", "a.bin"), ("content-length", "4")],
                receive,
            ),
            timeout=5,
        )

        assert storage.calls == ["a.bin"]
        assert storage.cancelled is True
        assert storage.objects == {}

    @pytest.mark.asyncio
    async def test_request_task_cancel_cancels_store(self, app, storage: FakeStorage):
        """Test cancelling the request task propagates into the store call."""
        storage.block = True
        body_sent = False

        async def receive():
            nonlocal body_sent
            if not body_sent:
                body_sent = True
                return {"type": "http.request", "body": b"data", "more_body": False}
            await asyncio.Event().wait()

        task = asyncio.ensure_future(
            call_asgi(app, "POST", [("x-file-name", "a.bin"), ("content-length", "4")], receive)
        )
        await storage.started.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert storage.cancelled is True
        assert storage.objects == {}
