"""
TTS (Text-to-Speech) Services Package.

This package turns queued script segments into playable audio:

- text_segmenter: Cleans script text and splits it into provider-sized chunks
- google_tts: Google Cloud Text-to-Speech REST client
- synthesizer: Per-segment synthesis, audio persistence and ready-state update

Architecture Overview:

    ┌─────────────┐     ┌───────────────┐     ┌─────────────┐
    │   Segment   │────▶│ TextSegmenter │────▶│ GoogleTTS   │  (one call per chunk)
    │   (pending) │     └───────────────┘     └─────────────┘
    └─────────────┘                                  │
                                                     ▼
                                              ┌─────────────┐
                                              │ concatenate │
                                              └─────────────┘
                                                     │
                                                     ▼
                                    current/segment-<id>.mp3 + status=ready

Chunk audio is joined byte-wise, which is valid for MP3 frames and Ogg pages.
"""

from .google_tts import GoogleTTSClient, VoiceConfig
from .synthesizer import SpeechProvider, SpeechSynthesizer
from .text_segmenter import TextSegmenter, clean_script_text

__all__ = [
    "GoogleTTSClient",
    "SpeechProvider",
    "SpeechSynthesizer",
    "TextSegmenter",
    "VoiceConfig",
    "clean_script_text",
]
