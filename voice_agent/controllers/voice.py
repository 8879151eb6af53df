"""Voice conversation endpoint.

`POST /voice/conversation` runs one turn of
`voice_agent.pipelines.voice.VoiceConversationPipeline`: validation,
transcoding, session and context resolution, transcription, generation,
synthesis and persistence. The reply audio is the response body and the
text of both sides of the turn travels in response headers.
"""

from __future__ import annotations

import logging
from typing import Optional
from urllib.parse import quote

from fastapi import APIRouter, File, Form, Response, UploadFile

from voice_agent.controllers.dependencies import CurrentOwnerDep, PipelineDep
from voice_agent.errors import ValidationFailed
from voice_agent.pipelines.voice import AudioUpload, TurnResult
from voice_agent.views import ErrorResponse

router = APIRouter(prefix="/voice", tags=["voice"])

logger = logging.getLogger(__name__)

_AUDIO_FILE_UPLOAD = File(default=None)
_SESSION_ID_FORM = Form(default=None, alias="sessionId")

# Characters encodeURIComponent leaves untouched.
_HEADER_SAFE = "-_.!~*'()"


def encode_header_text(text: str) -> str:
    return quote(text, safe=_HEADER_SAFE)


def turn_headers(result: TurnResult) -> dict[str, str]:
    headers = {
        "X-Session-Id": str(result.session_id),
        "X-Transcript": encode_header_text(result.transcript),
        "X-Response-Text": encode_header_text(result.reply),
        "X-Turn-Persisted": "true" if result.persisted else "false",
    }
    if result.storage_error:
        headers["X-Turn-Error"] = result.storage_error
    return headers


async def read_audio_bytes(audio_file: UploadFile) -> bytes:
    """Load the upload fully into memory and close it."""

    try:
        return await audio_file.read()
    finally:
        await audio_file.close()


@router.post(
    "/conversation",
    response_class=Response,
    responses={
        200: {"content": {"audio/mpeg": {}}, "description": "Synthesized reply"},
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        429: {"model": ErrorResponse},
        502: {"model": ErrorResponse},
        504: {"model": ErrorResponse},
    },
)
async def voice_conversation(
    owner: CurrentOwnerDep,
    pipeline: PipelineDep,
    audio: Optional[UploadFile] = _AUDIO_FILE_UPLOAD,
    session_id: Optional[str] = _SESSION_ID_FORM,
) -> Response:
    """Answer an uploaded utterance with synthesized speech."""

    if audio is None:
        raise ValidationFailed("Audio file is required")

    upload = AudioUpload(
        data=await read_audio_bytes(audio),
        filename=audio.filename,
        media_type=audio.content_type,
    )
    result = await pipeline.run(owner, upload, session_id)
    return Response(
        content=result.audio,
        media_type=result.media_type,
        headers=turn_headers(result),
    )
