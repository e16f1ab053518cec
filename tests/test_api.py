from __future__ import annotations

import json
import time
from io import BytesIO
from pathlib import Path
from zipfile import ZipFile

import fitz
import pytest
from fastapi.testclient import TestClient
from PIL import Image

from api.app import create_app
from core.image_to_pdf.config import AppConfig, RuntimeConfig


def build_client(tmp_path: Path, **runtime_overrides: object) -> TestClient:
    runtime = RuntimeConfig(output_dir=tmp_path / "runs", enable_local_api=True)
    runtime.jobs.worker_pool_size = 1
    for key, value in runtime_overrides.items():
        setattr(runtime, key, value)
    return TestClient(create_app(AppConfig(runtime=runtime)))


def png_upload(name: str, size: tuple[int, int] = (80, 60)) -> tuple[str, tuple[str, bytes, str]]:
    buffer = BytesIO()
    Image.new("RGB", size, (0, 100, 200)).save(buffer, format="PNG")
    return ("files", (name, buffer.getvalue(), "image/png"))


def test_create_app_requires_local_api(tmp_path):
    with pytest.raises(RuntimeError):
        create_app(AppConfig(runtime=RuntimeConfig(output_dir=tmp_path)))


def test_health(tmp_path):
    with build_client(tmp_path) as client:
        response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_convert_returns_pdf(tmp_path):
    options = json.dumps({"page_size": "FIT", "margin": 0})
    with build_client(tmp_path) as client:
        response = client.post(
            "/convert",
            files=[png_upload("one.png", (80, 60)), png_upload("two.png", (30, 90))],
            data={"options": options},
        )

    assert response.status_code == 200
    assert response.headers["content-type"] == "application/pdf"
    assert response.headers["x-page-count"] == "2"
    assert 'filename="images_2_pages.pdf"' in response.headers["content-disposition"]
    with fitz.open(stream=response.content, filetype="pdf") as pdf:
        assert [(page.rect.width, page.rect.height) for page in pdf] == [(80, 60), (30, 90)]


def test_batch_returns_zip(tmp_path):
    uploads = [png_upload(f"p{index}.png") for index in range(3)]
    with build_client(tmp_path) as client:
        response = client.post("/batch", files=uploads, data={"images_per_pdf": "2"})

    assert response.status_code == 200
    assert response.headers["content-type"] == "application/zip"
    assert response.headers["x-pdf-count"] == "2"
    assert response.headers["x-image-count"] == "3"
    with ZipFile(BytesIO(response.content)) as archive:
        assert archive.namelist() == ["images_part_001.pdf", "images_part_002.pdf"]


def test_invalid_options_are_rejected(tmp_path):
    with build_client(tmp_path) as client:
        response = client.post(
            "/convert", files=[png_upload("a.png")], data={"options": json.dumps({"margin": -5})}
        )
    assert response.status_code == 400
    assert response.json()["error_code"] == "VALIDATION_FAILED"


def test_corrupt_upload_reports_file(tmp_path):
    with build_client(tmp_path) as client:
        response = client.post(
            "/convert",
            files=[png_upload("a.png"), ("files", ("bad.png", b"\x89PNG\r\n\x1a\n", "image/png"))],
        )
    assert response.status_code == 400
    body = response.json()
    assert body["error_code"] == "CORRUPT_IMAGE"
    assert body["file_name"] == "bad.png"


def test_oversized_upload_is_413(tmp_path):
    big = ("files", ("big.png", b"\x00" * (1024 * 1024 + 10), "image/png"))
    with build_client(tmp_path, max_file_size_mb=1) as client:
        response = client.post("/convert", files=[big])
    assert response.status_code == 413
    assert response.json()["error_code"] == "SIZE_LIMIT"


def test_job_lifecycle(tmp_path):
    with build_client(tmp_path) as client:
        submitted = client.post("/api/v1/jobs", files=[png_upload("a.png"), png_upload("b.png")])
        assert submitted.status_code == 202
        job_id = submitted.json()["job_id"]

        for _ in range(200):
            status = client.get(f"/api/v1/jobs/{job_id}").json()
            if status["status"] == "succeeded":
                break
            time.sleep(0.05)
        assert status["status"] == "succeeded"
        assert status["artifacts"]["page_count"] == 2

        result = client.get(f"/api/v1/jobs/{job_id}/result")
        assert result.status_code == 200
        assert result.content.startswith(b"%PDF-")

        listing = client.get("/api/v1/jobs").json()
        assert job_id in [item["job_id"] for item in listing["jobs"]]

        assert client.post(f"/api/v1/jobs/{job_id}/cancel").status_code == 409


def test_unknown_job_is_404(tmp_path):
    with build_client(tmp_path) as client:
        assert client.get("/api/v1/jobs/job-missing").status_code == 404
        assert client.get("/api/v1/jobs/job-missing/result").status_code == 404
