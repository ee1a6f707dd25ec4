"""
Request payload builders and input file pre-flight checks.

Two payload shapes are supported:
- multipart upload of a PDF and an SVG template (form fields `pdf` and `svg`)
- Gemini-style `generateContent` JSON carrying the PDF as base64 inline data
  and the SVG inside the prompt text

Builders are plain callables returning a `RequestPayload`; they raise
`PayloadError` when the payload cannot be built.
"""

import base64
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import aiohttp

from errors import PayloadError, ResourceError

PDF_CONTENT_TYPE = "application/pdf"
SVG_CONTENT_TYPE = "image/svg+xml"


@dataclass
class RequestPayload:
    """Body and request options for a single POST."""
    data: Optional[aiohttp.FormData] = None
    json: Optional[Dict[str, Any]] = None
    headers: Dict[str, str] = field(default_factory=dict)
    params: Dict[str, str] = field(default_factory=dict)


def _read_bytes(path: Path) -> bytes:
    try:
        return path.read_bytes()
    except OSError as e:
        raise PayloadError(f"File error: {e}") from e


def check_files_readable(*paths) -> None:
    """
    Pre-flight check that every input file exists and is readable.
    Raises ResourceError naming every file that is not.
    """
    missing = [str(p) for p in paths if not (Path(p).is_file() and os.access(p, os.R_OK))]
    if missing:
        raise ResourceError(
            "Cannot access test files. Please ensure these files exist and are readable: "
            + ", ".join(missing)
        )


class MultipartUploadPayload:
    """Multipart form with the PDF and SVG template attached as files."""

    def __init__(self, pdf_path, svg_path):
        self.pdf_path = Path(pdf_path)
        self.svg_path = Path(svg_path)

    def check_ready(self) -> None:
        check_files_readable(self.pdf_path, self.svg_path)

    def __call__(self) -> RequestPayload:
        # A FormData instance can only be sent once, so build a fresh one per request
        form = aiohttp.FormData()
        form.add_field(
            "pdf",
            _read_bytes(self.pdf_path),
            filename=self.pdf_path.name,
            content_type=PDF_CONTENT_TYPE,
        )
        form.add_field(
            "svg",
            _read_bytes(self.svg_path),
            filename=self.svg_path.name,
            content_type=SVG_CONTENT_TYPE,
        )
        return RequestPayload(data=form)


class GeminiPayload:
    """
    JSON body for a Gemini `generateContent` call summarising the PDF and
    the SVG abstract. The PDF is encoded once and reused for every request.
    """

    def __init__(
        self,
        pdf_path,
        svg_path=None,
        api_key: Optional[str] = None,
        label: str = "LOAD",
    ):
        self.pdf_path = Path(pdf_path)
        self.svg_path = Path(svg_path) if svg_path else None
        self.api_key = api_key
        self.label = label
        self._pdf_base64: Optional[str] = None
        self._svg_content: Optional[str] = None

    def check_ready(self) -> None:
        paths = [self.pdf_path] + ([self.svg_path] if self.svg_path else [])
        check_files_readable(*paths)

    def _load(self):
        if self._pdf_base64 is None:
            self._pdf_base64 = base64.b64encode(_read_bytes(self.pdf_path)).decode("ascii")
        if self._svg_content is None:
            if self.svg_path is None:
                self._svg_content = ""
            else:
                self._svg_content = _read_bytes(self.svg_path).decode("utf-8", errors="replace")
        return self._pdf_base64, self._svg_content

    def build_body(self) -> Dict[str, Any]:
        pdf_base64, svg_content = self._load()
        prompt = (
            f"{self.label} - summarize the following:\n"
            f"1. Research paper PDF attached.\n"
            f"2. This SVG abstract:\n{svg_content}"
        )
        return {
            "contents": [
                {
                    "parts": [
                        {"text": prompt},
                        {"inlineData": {"mimeType": PDF_CONTENT_TYPE, "data": pdf_base64}},
                    ]
                }
            ]
        }

    def __call__(self) -> RequestPayload:
        params = {"key": self.api_key} if self.api_key else {}
        return RequestPayload(
            json=self.build_body(),
            headers={"Content-Type": "application/json"},
            params=params,
        )
