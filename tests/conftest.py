from __future__ import annotations

import pytest

from lyrics_video.config import get_settings


@pytest.fixture(autouse=True)
def _test_env(
    tmp_path_factory: pytest.TempPathFactory, monkeypatch: pytest.MonkeyPatch
) -> None:
    root = tmp_path_factory.mktemp("lv_test")
    for name in ("uploads", "output", "logs"):
        (root / name).mkdir(parents=True, exist_ok=True)

    monkeypatch.setenv("APP_ROOT", str(root))
    monkeypatch.setenv("UPLOADS_DIR", str(root / "uploads"))
    monkeypatch.setenv("OUTPUT_DIR", str(root / "output"))
    monkeypatch.setenv("LOG_DIR", str(root / "logs"))
    monkeypatch.setenv("PUBLIC_BASE_URL", "http://testserver")
    monkeypatch.setenv("CANCEL_GRACE_SEC", "0.05")
    monkeypatch.delenv("STAGING_DIR", raising=False)
    monkeypatch.delenv("REMOTION_ENTRY", raising=False)
    monkeypatch.delenv("VARIANT_FAILURE_POLICY", raising=False)
    get_settings.cache_clear()
