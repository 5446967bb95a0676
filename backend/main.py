from io import BytesIO
import logging

from fastapi.concurrency import run_in_threadpool
import numpy as np
import uvicorn
import librosa
from detect_melody import InvalidAudioError, analyze_melody, count_windows
from melody_config import DEFAULT_CONFIG, LOG_LEVEL, MAX_UPLOAD_MB, PORT, SAMPLE_RATE
from note_names import note_name_to_semitone
from fastapi import FastAPI, File, HTTPException, UploadFile
from fastapi.middleware.cors import CORSMiddleware

logger = logging.getLogger(__name__)

ALLOWED_TYPES = [
    'audio/wav', 'audio/wave', 'audio/x-wav', 'audio/webm', 'audio/ogg',
    'audio/aac', 'audio/mpeg', 'audio/mp3',
]
MAX_UPLOAD_BYTES = MAX_UPLOAD_MB * 1024 * 1024

# Create FastAPI instance
app = FastAPI(
    title="Hum-to-Melody Analysis API",
    description="Monophonic melody extraction from hummed or sung recordings",
    version="1.0.0"
)

# Add CORS middleware so the recording frontend can connect
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # In production, specify your frontend domain
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def build_results(notes, audio, sr):
    """
    Response body for a finished analysis. Labels whose MIDI number falls
    outside the melodic range are dropped, matching what the player accepts.
    """
    kept, midi_notes = [], []
    for note in notes:
        midi = note_name_to_semitone(note)
        if midi.ok and DEFAULT_CONFIG.min_midi <= midi.value <= DEFAULT_CONFIG.max_midi:
            kept.append(note)
            midi_notes.append(midi.value)
        else:
            logger.warning("Dropping note %r from response: %s", note, midi.error or "out of range")

    total_windows = count_windows(len(audio), DEFAULT_CONFIG.window_size, DEFAULT_CONFIG.step_size)
    return {
        "notes": kept,
        "midi_notes": midi_notes,
        "analysis_summary": {
            "total_windows": max(0, int(total_windows)),
            "total_notes": len(kept),
            "duration_seconds": float(len(audio) / sr),
            "sample_rate": int(sr)
        }
    }

async def run_analysis(audio, sr):
    try:
        notes = await run_in_threadpool(analyze_melody, audio, sr)
    except InvalidAudioError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.exception("Melody analysis failed")
        raise HTTPException(
            status_code=500,
            detail=f"Audio analysis failed: {str(e)}"
        )
    logger.info("Analysed %.2fs of audio: %d notes", len(audio) / sr, len(notes))
    return build_results(notes, audio, sr)

@app.get("/")
async def root():
    """Health check endpoint"""
    return {"message": "Hum-to-Melody Analysis API is running"}

@app.get("/health")
async def health_check():
    """Detailed health check"""
    return {
        "status": "healthy",
        "service": "Hum-to-Melody Analysis API",
        "version": "1.0.0"
    }

@app.post("/analyze")
async def analyze_audio_file(file: UploadFile = File(...)):
    """
    Analyze an uploaded recording and return the detected melody.

    Args:
        file: Audio file (WAV, WebM, OGG, MP3, ...)

    Returns:
        JSON with note labels, MIDI numbers, analysis summary and file info
    """
    if file.content_type not in ALLOWED_TYPES:
        raise HTTPException(
            status_code=400,
            detail=f"Unsupported file type: {file.content_type}. Supported types: {ALLOWED_TYPES}"
        )

    data = await file.read()
    if len(data) > MAX_UPLOAD_BYTES:
        raise HTTPException(413, "File too large")
    logger.info("upload filename=%r content_type=%r size=%d bytes",
                file.filename, file.content_type, len(data))

    try:
        audio, sr = librosa.load(BytesIO(data), sr=SAMPLE_RATE, mono=True)
    except Exception as e:
        logger.warning("Could not decode %r: %s", file.filename, e)
        raise HTTPException(
            status_code=400,
            detail=f"File processing failed: {str(e)}"
        )

    results = await run_analysis(audio, sr)
    results["file_info"] = {
        "filename": file.filename,
        "content_type": file.content_type,
        "processed_sample_rate": int(sr),
        "channels": 1
    }
    return results

@app.post("/analyze-raw")
async def analyze_raw_audio(
    sample_rate: int = SAMPLE_RATE,
    audio_data: UploadFile = File(...)
):
    """
    Analyze raw 16-bit little-endian mono PCM (recorded audio from the frontend).

    Args:
        audio_data: Raw PCM bytes
        sample_rate: Sample rate of the audio data

    Returns:
        JSON with analysis results
    """
    if sample_rate <= 0:
        raise HTTPException(400, f"Sample rate must be positive, got {sample_rate}")

    content = await audio_data.read()
    if len(content) > MAX_UPLOAD_BYTES:
        raise HTTPException(413, "File too large")
    if len(content) % 2:
        raise HTTPException(400, "Raw audio must be 16-bit PCM (even number of bytes)")

    # Convert bytes to numpy array and normalize to [-1, 1]
    audio = np.frombuffer(content, dtype='<i2').astype(np.float32)
    audio = audio / 32768.0

    results = await run_analysis(audio, sample_rate)
    results["file_info"] = {
        "filename": "recorded_audio",
        "content_type": "audio/raw",
        "processed_sample_rate": sample_rate,
        "channels": 1
    }
    return results

if __name__ == "__main__":
    logging.basicConfig(level=LOG_LEVEL.upper())

    # Run the server
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=PORT,
        log_level=LOG_LEVEL
    )
