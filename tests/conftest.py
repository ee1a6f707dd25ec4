import asyncio
import socket

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from factories import PDF_BYTES, SVG_TEXT


@pytest.fixture
def sample_files(tmp_path):
    pdf = tmp_path / "sample.pdf"
    svg = tmp_path / "template.svg"
    pdf.write_bytes(PDF_BYTES)
    svg.write_text(SVG_TEXT)
    return pdf, svg


@pytest.fixture
def unused_port():
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


class UploadApp:
    """Tiny target service recording what it receives."""

    def __init__(self):
        self.uploads = []
        self.json_bodies = []
        self.queries = []
        self.app = web.Application()
        self.app.router.add_post("/upload", self.upload)
        self.app.router.add_post("/fail", self.fail)
        self.app.router.add_post("/limited", self.limited)
        self.app.router.add_post("/slow", self.slow)
        self.app.router.add_post("/json", self.json)

    async def upload(self, request):
        form = await request.post()
        self.uploads.append({
            name: (field.filename, field.content_type, field.file.read())
            for name, field in form.items()
        })
        return web.json_response({"ok": True})

    async def fail(self, request):
        await request.read()
        return web.json_response({"error": "boom"}, status=500)

    async def limited(self, request):
        await request.read()
        return web.json_response({"error": {"code": 429}}, status=429)

    async def slow(self, request):
        await request.read()
        await asyncio.sleep(1.0)
        return web.json_response({"ok": True})

    async def json(self, request):
        self.json_bodies.append(await request.json())
        self.queries.append(dict(request.query))
        return web.json_response({"ok": True})


@pytest_asyncio.fixture
async def upload_server():
    target = UploadApp()
    server = TestServer(target.app)
    await server.start_server()
    server.target = target
    try:
        yield server
    finally:
        await server.close()
