"""Tests for LM Studio model validation helper."""

import json
from http import HTTPStatus
from typing import Any

import httpx
import pytest

import photo_captioner.main as m
from photo_captioner.errors import ConfigError


class _DummyResponse:
    """Minimal httpx-style response stub for validation tests."""

    def __init__(self, status_code: int, payload: Any) -> None:  # noqa: ANN401
        self.status_code = status_code
        self._payload = payload

    def json(self) -> Any:  # noqa: ANN401
        return self._payload

    @property
    def text(self) -> str:
        return json.dumps(self._payload)


def _patch_httpx_get(
    monkeypatch: pytest.MonkeyPatch,
    response: _DummyResponse,
) -> list[dict[str, Any]]:
    calls: list[dict[str, Any]] = []

    def fake_get(url: str, *, headers: dict[str, str], timeout: float) -> _DummyResponse:
        calls.append({"url": url, "headers": headers, "timeout": timeout})
        return response

    monkeypatch.setattr(m.httpx, "get", fake_get)  # type: ignore[attr-defined]
    return calls


def test_validate_lmstudio_model_passes_when_list_contains_id(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """The helper returns quietly when the requested model identifier is present."""
    payload = {"data": [{"id": "vision-pro"}]}
    calls = _patch_httpx_get(monkeypatch, _DummyResponse(HTTPStatus.OK, payload))

    m._validate_lmstudio_model("http://localhost:1234/v1", "vision-pro", "secret")  # noqa: SLF001

    assert calls, "Expected httpx.get to be invoked"
    recorded = calls[0]
    assert recorded["url"] == "http://localhost:1234/v1/models"
    assert recorded["timeout"] == pytest.approx(5.0)
    assert recorded["headers"].get("Accept") == "application/json"
    assert recorded["headers"].get("Authorization") == "Bearer secret"


def test_validate_lmstudio_model_raises_when_model_missing(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """ConfigError is raised when the requested model identifier is absent."""
    payload = {"data": [{"id": "other-model"}]}
    _patch_httpx_get(monkeypatch, _DummyResponse(HTTPStatus.OK, payload))

    with pytest.raises(ConfigError) as excinfo:
        m._validate_lmstudio_model("http://localhost:1234/v1", "vision-pro", None)  # noqa: SLF001

    assert excinfo.value.hint == "Available: other-model"


def test_validate_lmstudio_model_raises_on_http_error(monkeypatch: pytest.MonkeyPatch) -> None:
    _patch_httpx_get(monkeypatch, _DummyResponse(HTTPStatus.INTERNAL_SERVER_ERROR, {}))

    with pytest.raises(ConfigError, match="HTTP 500"):
        m._validate_lmstudio_model("http://localhost:1234/v1", "vision-pro", None)  # noqa: SLF001


def test_validate_lmstudio_model_raises_when_unreachable(monkeypatch: pytest.MonkeyPatch) -> None:
    def fake_get(url: str, **_kwargs: object) -> None:
        raise httpx.ConnectError("refused", request=httpx.Request("GET", url))

    monkeypatch.setattr(m.httpx, "get", fake_get)  # type: ignore[attr-defined]

    with pytest.raises(ConfigError, match="cannot reach"):
        m._validate_lmstudio_model("http://localhost:1234/v1", "vision-pro", None)  # noqa: SLF001


def test_validate_lmstudio_model_rejects_bad_scheme() -> None:
    with pytest.raises(ConfigError, match="invalid"):
        m._validate_lmstudio_model("ftp://localhost/v1", "vision-pro", None)  # noqa: SLF001
