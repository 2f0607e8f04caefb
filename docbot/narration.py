"""
Narration Module

Summarizes content into a spoken-style script of a target length and,
optionally, voices it with text-to-speech.

Pipeline:
    Sources → SourceLoader → usable Documents → joined text
    → 2000/200 chunks (first 5 only) → one LLM call → script → TTS

Only the first chunks are summarized, which bounds the prompt size for
long inputs at the cost of ignoring their tail.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

from docbot.chunker import DocumentChunker
from docbot.config.settings import get_settings, NarrationConfig
from docbot.errors import NoDocumentsLoaded
from docbot.llm_service import LLMService, SamplingParams
from docbot.loaders import Source, SourceLoader
from docbot.tts import ElevenLabsClient, to_data_url

logger = logging.getLogger(__name__)


@dataclass
class Narration:
    """
    A narration script and its audio.

    Attributes:
        text: Spoken-style summary
        audio_bytes: MPEG audio
        voice_id: Voice used for synthesis
    """
    text: str
    audio_bytes: bytes
    voice_id: str

    @property
    def audio_data_url(self) -> str:
        return to_data_url(self.audio_bytes)


def target_word_count(target_minutes: int, words_per_minute: int = 150) -> int:
    """Approximate word count for a spoken length."""
    return target_minutes * words_per_minute


def build_narration_prompt(
    content: str,
    target_minutes: int,
    target_words: int,
    custom_prompt: Optional[str] = None,
) -> str:
    """
    Build the summarization prompt.

    A custom prompt replaces the default instructions; the target length and
    the content are always appended.
    """
    if custom_prompt:
        return (
            f"{custom_prompt}\n\n"
            f"Target length: {target_words} words (about {target_minutes} minute(s) when spoken)\n\n"
            f"Content to summarize:\n{content}"
        )

    return (
        "Create a conversational summary of the following content. The summary should:\n"
        f"1. Be approximately {target_words} words (about {target_minutes} minute(s) when spoken)\n"
        "2. Be engaging and natural-sounding for text-to-speech\n"
        "3. Maintain a conversational tone as if explaining to a listener\n"
        "4. Cover the most important points from the content\n"
        "5. Include brief pauses and natural transitions\n\n"
        f"Here's the content to summarize:\n{content}"
    )


class NarrationPipeline:
    """
    Produces narration scripts from sources or raw text.

    Example:
        pipeline = NarrationPipeline(loader, llm_service)
        script = pipeline.summarize(text=article, target_minutes=2)
        narration = pipeline.narrate(text=article, tts=ElevenLabsClient())
    """

    def __init__(
        self,
        loader: SourceLoader,
        llm_service: LLMService,
        config: Optional[NarrationConfig] = None,
        tts: Optional[ElevenLabsClient] = None,
    ):
        self.loader = loader
        self.llm_service = llm_service
        self.config = config or get_settings().narration
        self.tts = tts

        self.chunker = DocumentChunker(
            chunk_size=self.config.chunk_size,
            chunk_overlap=self.config.chunk_overlap,
            strategy="recursive",
        )

    def _collect_text(self, sources: Optional[List[Source]], text: Optional[str]) -> str:
        if text and text.strip():
            return text

        if not sources:
            raise NoDocumentsLoaded("Nothing to summarize: no text and no sources given")

        documents = [d for d in self.loader.load_all(sources) if d.is_usable]
        if not documents:
            raise NoDocumentsLoaded(f"None of the {len(sources)} sources produced usable text")

        return " ".join(d.text for d in documents)

    def build_prompt(
        self,
        content: str,
        target_minutes: int = 1,
        custom_prompt: Optional[str] = None,
    ) -> str:
        """Chunk content, keep the first chunks, and wrap them in the prompt."""
        chunks = self.chunker.split_text(content)[:self.config.max_chunks]
        return build_narration_prompt(
            content="\n\n".join(chunks),
            target_minutes=target_minutes,
            target_words=target_word_count(target_minutes, self.config.words_per_minute),
            custom_prompt=custom_prompt,
        )

    def summarize(
        self,
        sources: Optional[List[Source]] = None,
        text: Optional[str] = None,
        target_minutes: int = 1,
        custom_prompt: Optional[str] = None,
    ) -> str:
        """
        Summarize content into a spoken-style script.

        Args:
            sources: Sources to load (ignored when ``text`` is given)
            text: Raw text to summarize
            target_minutes: Spoken length in minutes (>= 1)
            custom_prompt: Instructions replacing the default ones

        Returns:
            Narration script

        Raises:
            ValueError: If target_minutes < 1
            NoDocumentsLoaded: If there is nothing usable to summarize
            ProviderError: If the LLM call fails
        """
        if target_minutes < 1:
            raise ValueError(f"target_minutes must be at least 1, got {target_minutes}")

        content = self._collect_text(sources, text)
        prompt = self.build_prompt(content, target_minutes, custom_prompt)

        response = self.llm_service.complete(
            prompt=prompt,
            params=SamplingParams(temperature=self.config.temperature),
            model=self.config.model,
        )

        script = response.content.strip()
        logger.info(
            f"Generated narration of {len(script.split())} words "
            f"(target {target_word_count(target_minutes, self.config.words_per_minute)})"
        )
        return script

    def narrate(
        self,
        sources: Optional[List[Source]] = None,
        text: Optional[str] = None,
        target_minutes: int = 1,
        custom_prompt: Optional[str] = None,
        voice_id: Optional[str] = None,
        tts: Optional[ElevenLabsClient] = None,
    ) -> Narration:
        """
        Summarize and voice content.

        Raises:
            ProviderError: If summarization or speech synthesis fails
        """
        tts = tts or self.tts or ElevenLabsClient()
        voice_id = voice_id or tts.config.default_voice_id

        script = self.summarize(
            sources=sources,
            text=text,
            target_minutes=target_minutes,
            custom_prompt=custom_prompt,
        )
        audio = tts.synthesize(script, voice_id=voice_id)

        return Narration(text=script, audio_bytes=audio, voice_id=voice_id)
