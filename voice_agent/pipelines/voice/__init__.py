"""Voice conversation pipeline package.

Modules follow the order in which one turn executes:

1. `ingestion` – resolve the media type and validate size, format, duration.
2. `transcoding` – normalize the upload to 16 kHz mono WAV with ffmpeg.
3. `sessions` / `context` – resolve the session and load recent messages.
4. `transcription` – stream the audio to Amazon Transcribe.
5. `generation` – assemble the prompt and call Amazon Bedrock.
6. `synthesis` – turn the reply into speech with Amazon Polly.
7. `persistence` – append the user and assistant messages.
8. `artifacts` – remove every temporary file the turn created.

`flow` holds the turn state machine and `orchestrator` sequences the stages.
"""

from .artifacts import ArtifactScope, sanitize_filename
from .context import ContextLoader
from .flow import PipelineStage, TurnStateMachine
from .generation import ResponseGenerator, build_prompt
from .ingestion import AudioValidator, probe_duration, resolve_media_type
from .orchestrator import NO_SPEECH_MESSAGE, VoiceConversationPipeline
from .persistence import TurnRecorder
from .sessions import SessionResolver, parse_session_id
from .synthesis import SpeechSynthesizer
from .transcoding import AudioTranscoder
from .transcription import TranscriptionClient, build_stream_payload
from .types import AudioUpload, Owner, PreparedAudio, TurnResult, ValidationResult

__all__ = [
    "ArtifactScope",
    "AudioTranscoder",
    "AudioUpload",
    "AudioValidator",
    "ContextLoader",
    "NO_SPEECH_MESSAGE",
    "Owner",
    "PipelineStage",
    "PreparedAudio",
    "ResponseGenerator",
    "SessionResolver",
    "SpeechSynthesizer",
    "TranscriptionClient",
    "TurnRecorder",
    "TurnResult",
    "TurnStateMachine",
    "ValidationResult",
    "VoiceConversationPipeline",
    "build_prompt",
    "build_stream_payload",
    "parse_session_id",
    "probe_duration",
    "resolve_media_type",
    "sanitize_filename",
]
