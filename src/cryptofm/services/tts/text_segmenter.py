"""
Text cleaning and chunking for the speech synthesizer.

Google Cloud TTS rejects requests above 5000 characters, so long radio
segments are split into chunks below a configurable limit before synthesis.

Splitting rules, in order of preference:
    1. after the last sentence end (. ! ?) inside the window
    2. after the last comma inside the window
    3. a hard cut at the window boundary

A punctuation mark only counts as a break when whitespace follows it, so
prices such as "$64,250.75" are never split. Chunks are exact slices of the
input: joining them gives back the original text.

Usage:
    segmenter = TextSegmenter(max_chars=4500)
    for chunk in segmenter.split(clean_script_text(raw)):
        audio += await provider.synthesize(chunk.strip())
"""

import re
from typing import List, Optional

_STAGE_DIRECTION = re.compile(r"\[.*?\]")
_PHONEME_TAG = re.compile(r"<phoneme[^>]*>([^<]*)</phoneme>")
_MARKUP_TAG = re.compile(r"<[^>]+>")


def clean_script_text(text: str) -> str:
    """Remove bracketed stage directions and SSML/markup tags.

    Phoneme tags keep their spoken content: ``<phoneme ph="x">Bitcoin</phoneme>``
    becomes ``Bitcoin``.
    """
    cleaned = _STAGE_DIRECTION.sub("", text)
    cleaned = _PHONEME_TAG.sub(r"\1", cleaned)
    cleaned = _MARKUP_TAG.sub("", cleaned)
    return cleaned.strip()


class TextSegmenter:
    """
    Split text into provider-sized chunks at natural speech boundaries.

    Attributes:
        max_chars: Maximum characters per chunk (provider limit minus margin)
        sentence_endings: Characters that close a sentence
        clause_breaks: Fallback break characters when no sentence end fits
    """

    DEFAULT_SENTENCE_ENDINGS = ".!?"
    DEFAULT_CLAUSE_BREAKS = ","

    def __init__(
        self,
        max_chars: int = 4500,
        sentence_endings: Optional[str] = None,
        clause_breaks: Optional[str] = None,
    ):
        if max_chars < 1:
            raise ValueError("max_chars must be positive")
        self.max_chars = max_chars
        self.sentence_endings = sentence_endings or self.DEFAULT_SENTENCE_ENDINGS
        self.clause_breaks = clause_breaks or self.DEFAULT_CLAUSE_BREAKS

    def split(self, text: str) -> List[str]:
        """
        Split ``text`` into chunks of at most ``max_chars`` characters.

        Args:
            text: Already cleaned text

        Returns:
            Ordered chunks whose concatenation equals ``text``
        """
        if not text:
            return []

        chunks: List[str] = []
        start = 0
        while len(text) - start > self.max_chars:
            window_end = start + self.max_chars
            end = (
                self._find_break(text, start, window_end, self.sentence_endings)
                or self._find_break(text, start, window_end, self.clause_breaks)
                or window_end
            )
            chunks.append(text[start:end])
            start = end

        chunks.append(text[start:])
        return chunks

    @staticmethod
    def _find_break(text: str, start: int, window_end: int, marks: str) -> Optional[int]:
        """Return the offset just past the last usable break mark in the window."""
        for index in range(window_end - 1, start - 1, -1):
            if text[index] not in marks:
                continue
            following = index + 1
            if following == len(text) or text[following].isspace():
                return following
        return None


__all__ = ["TextSegmenter", "clean_script_text"]
