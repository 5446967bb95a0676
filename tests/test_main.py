"""
Tests for backend/main.py - the melody analysis HTTP API.

Uploads are built in memory with soundfile / numpy and sent through
FastAPI's TestClient.
"""

import io

import numpy as np
import pytest
import soundfile as sf
from fastapi.testclient import TestClient

import main
from conftest import SR, make_silence, make_tone


@pytest.fixture
def client():
    return TestClient(main.app)


def _wav_bytes(audio: np.ndarray, sr: int = SR) -> bytes:
    buf = io.BytesIO()
    sf.write(buf, audio, sr, format="WAV", subtype="PCM_16")
    return buf.getvalue()


def _pcm_bytes(audio: np.ndarray) -> bytes:
    return (np.clip(audio, -1, 1) * 32767).astype("<i2").tobytes()


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


class TestHealth:
    def test_root(self, client):
        resp = client.get("/")
        assert resp.status_code == 200
        assert "running" in resp.json()["message"]

    def test_health(self, client):
        body = client.get("/health").json()
        assert body["status"] == "healthy"
        assert body["version"] == "1.0.0"


# ---------------------------------------------------------------------------
# build_results
# ---------------------------------------------------------------------------


class TestBuildResults:
    def test_summary_fields(self):
        audio = np.zeros(SR)
        body = main.build_results(["A3", "A4"], audio, SR)
        assert body["notes"] == ["A3", "A4"]
        assert body["midi_notes"] == [57, 69]
        summary = body["analysis_summary"]
        assert summary["total_windows"] == 39
        assert summary["total_notes"] == 2
        assert summary["duration_seconds"] == pytest.approx(1.0)
        assert summary["sample_rate"] == SR

    def test_drops_labels_outside_melodic_range(self):
        """The player only accepts C3..C6; anything else is filtered out."""
        body = main.build_results(["B2", "C3", "C6", "C#6", "bogus"], np.zeros(SR), SR)
        assert body["notes"] == ["C3", "C6"]
        assert body["midi_notes"] == [48, 84]

    def test_short_audio_has_zero_windows(self):
        body = main.build_results([], np.zeros(100), SR)
        assert body["analysis_summary"]["total_windows"] == 0


# ---------------------------------------------------------------------------
# POST /analyze
# ---------------------------------------------------------------------------


class TestAnalyzeFile:
    def test_wav_upload(self, client):
        data = _wav_bytes(make_tone(440.0, 1.0))
        resp = client.post("/analyze", files={"file": ("hum.wav", data, "audio/wav")})
        assert resp.status_code == 200
        body = resp.json()
        assert body["notes"]
        assert set(body["notes"]) == {"A4"}
        assert set(body["midi_notes"]) == {69}
        assert body["file_info"]["filename"] == "hum.wav"
        assert body["file_info"]["processed_sample_rate"] == SR

    def test_silent_upload_is_success(self, client):
        data = _wav_bytes(make_silence(1.0))
        resp = client.post("/analyze", files={"file": ("quiet.wav", data, "audio/wav")})
        assert resp.status_code == 200
        assert resp.json()["notes"] == []

    def test_unsupported_type(self, client):
        resp = client.post("/analyze", files={"file": ("notes.txt", b"hello", "text/plain")})
        assert resp.status_code == 400
        assert "Unsupported file type" in resp.json()["detail"]

    def test_undecodable_audio(self, client):
        resp = client.post("/analyze", files={"file": ("bad.wav", b"not a wav file", "audio/wav")})
        assert resp.status_code == 400

    def test_too_large(self, client, monkeypatch):
        monkeypatch.setattr(main, "MAX_UPLOAD_BYTES", 10)
        data = _wav_bytes(make_tone(440.0, 0.1))
        resp = client.post("/analyze", files={"file": ("big.wav", data, "audio/wav")})
        assert resp.status_code == 413

    def test_analysis_crash_is_500(self, client, monkeypatch):
        def explode(audio, sr):
            raise RuntimeError("kaboom")

        monkeypatch.setattr(main, "analyze_melody", explode)
        data = _wav_bytes(make_tone(440.0, 0.5))
        resp = client.post("/analyze", files={"file": ("hum.wav", data, "audio/wav")})
        assert resp.status_code == 500
        assert "kaboom" in resp.json()["detail"]


# ---------------------------------------------------------------------------
# POST /analyze-raw
# ---------------------------------------------------------------------------


class TestAnalyzeRaw:
    def _post(self, client, content, sample_rate=SR):
        return client.post(
            f"/analyze-raw?sample_rate={sample_rate}",
            files={"audio_data": ("recording.raw", content, "application/octet-stream")},
        )

    def test_pcm_tone(self, client):
        resp = self._post(client, _pcm_bytes(make_tone(220.0, 1.0)))
        assert resp.status_code == 200
        body = resp.json()
        assert set(body["notes"]) == {"A3"}
        assert body["analysis_summary"]["total_windows"] == 39
        assert body["file_info"]["content_type"] == "audio/raw"

    def test_other_sample_rate(self, client):
        audio = make_tone(440.0, 1.0, sr=22050)
        resp = self._post(client, _pcm_bytes(audio), sample_rate=22050)
        assert resp.status_code == 200
        assert set(resp.json()["notes"]) == {"A4"}

    def test_short_recording_is_empty_success(self, client):
        resp = self._post(client, _pcm_bytes(make_tone(440.0, 0.01)))
        assert resp.status_code == 200
        assert resp.json()["notes"] == []

    def test_empty_body_is_400(self, client):
        assert self._post(client, b"").status_code == 400

    def test_odd_byte_count_is_400(self, client):
        assert self._post(client, b"\x00\x01\x02").status_code == 400

    def test_non_positive_sample_rate_is_400(self, client):
        resp = self._post(client, _pcm_bytes(make_tone(440.0, 0.5)), sample_rate=0)
        assert resp.status_code == 400
