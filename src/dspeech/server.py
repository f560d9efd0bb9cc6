"""FastAPI WebSocket server for streaming DeepSpeech transcription.

Each WebSocket connection owns one ``Stream`` on a shared ``Model``.
Native calls block, so they run in the default executor, one at a time
per model: neither models nor streams may be called from two threads at
once.
"""

import argparse
import asyncio
import logging
import threading
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, WebSocket, WebSocketDisconnect

from dspeech.audio import pcm16_to_int16, validate_audio_format
from dspeech.constants import CHUNK_BYTES
from dspeech.errors import DeepSpeechError
from dspeech.model import Model, version
from dspeech.stream import Stream

logger = logging.getLogger(__name__)

EOS = b"EOS"


class StreamSession:
    """Per-connection streaming state."""

    def __init__(self, session_id: str, stream: Stream, chunk_threshold: int = CHUNK_BYTES):
        """Initialize a stream session.

        Args:
            session_id: Unique identifier for this session.
            stream: Native stream owned by this session.
            chunk_threshold: New audio bytes before an intermediate decode.
        """
        self.session_id = session_id
        self.stream = stream
        self.chunk_threshold = chunk_threshold
        self._pending_bytes = 0

    @property
    def pending_bytes(self) -> int:
        """Audio bytes fed since the last intermediate decode."""
        return self._pending_bytes

    def append(self, data: bytes) -> None:
        """Feed PCM16 audio to the stream."""
        self.stream.feed_audio(pcm16_to_int16(data))
        self._pending_bytes += len(data)

    def has_enough_data(self) -> bool:
        """Check if enough new audio arrived for an intermediate decode."""
        return self._pending_bytes >= self.chunk_threshold

    def intermediate(self) -> str:
        self._pending_bytes = 0
        return self.stream.intermediate_decode()

    def finish(self) -> str:
        return self.stream.finish()

    def close(self) -> None:
        """Discard the stream if it has not been finished."""
        if not self.stream.finished:
            self.stream.discard()


def create_app(model: Model, chunk_threshold: int = CHUNK_BYTES, close_model: bool = False) -> FastAPI:
    """Create a FastAPI application serving ``model``.

    Models and streams are not thread-safe, so every native call made by
    the application (health reads included) runs in the default executor
    while holding one lock per model.

    Args:
        model: Loaded DeepSpeech model shared by all connections.
        chunk_threshold: New audio bytes between intermediate decodes.
        close_model: Close the model when the application shuts down.

    Returns:
        Configured FastAPI application.
    """
    native_lock = threading.Lock()

    def locked(fn, *args):
        with native_lock:
            return fn(*args)

    def run_native(fn, *args) -> asyncio.Future:
        return asyncio.get_running_loop().run_in_executor(None, locked, fn, *args)

    def model_info() -> dict:
        return {
            "version": version(model.library),
            "sample_rate": model.sample_rate,
            "beam_width": model.beam_width,
            "scorer": model.scorer_path is not None,
        }

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        if close_model:
            await run_native(model.close)

    app = FastAPI(title="DeepSpeech STT Service", lifespan=lifespan)

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        return {"status": "ok", **(await run_native(model_info))}

    @app.websocket("/v1/stream")
    async def stream_transcribe(websocket: WebSocket):
        """WebSocket endpoint for streaming audio transcription.

        Protocol:
        - Client sends binary PCM16 audio chunks (mono, model sample rate)
        - Client sends b"EOS" to signal end of stream
        - Server responds with JSON: {"text": "...", "final": bool}
        - Server sends {"status": "complete"} when done
        """
        await websocket.accept()
        session_id = str(id(websocket))

        stream = await run_native(model.create_stream)
        session = StreamSession(session_id, stream, chunk_threshold)
        logger.debug("Session %s opened", session_id)

        try:
            while True:
                data = await websocket.receive_bytes()

                # Handle end-of-stream signal
                if data == EOS:
                    try:
                        text = await run_native(session.finish)
                        await websocket.send_json({"text": text, "final": True})
                    except DeepSpeechError as e:
                        logger.error("Session %s: %s", session_id, e)
                        await websocket.send_json({"error": str(e)})
                    await websocket.send_json({"status": "complete"})
                    break

                # Validate audio format
                if not validate_audio_format(data):
                    await websocket.send_json(
                        {"error": "Invalid audio format (must be PCM16)"}
                    )
                    continue

                await run_native(session.append, data)

                if session.has_enough_data():
                    try:
                        text = await run_native(session.intermediate)
                    except DeepSpeechError as e:
                        logger.error("Session %s: %s", session_id, e)
                        await websocket.send_json({"error": str(e)})
                        continue
                    if text.strip():
                        await websocket.send_json({"text": text, "final": False})

        except WebSocketDisconnect:
            logger.debug("Session %s disconnected", session_id)
        finally:
            # Submitted before the await, so it runs even if this task is
            # cancelled; the lock orders it after a call still in flight
            await asyncio.shield(run_native(session.close))

    return app


def main() -> None:
    """Serve a model with uvicorn.

    Usage:
        python -m dspeech.server MODEL [--scorer SCORER] [--host H] [--port P]
    """
    parser = argparse.ArgumentParser(description="DeepSpeech streaming WebSocket server")
    parser.add_argument("model", help="Path to the model file")
    parser.add_argument("--scorer", help="Path to the external scorer file")
    parser.add_argument("--beam-width", type=int, default=None)
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8000)
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO)
    model = Model(args.model)
    if args.beam_width is not None:
        model.set_beam_width(args.beam_width)
    if args.scorer:
        model.enable_external_scorer(args.scorer)
    uvicorn.run(create_app(model, close_model=True), host=args.host, port=args.port)


if __name__ == "__main__":
    main()
