"""Token-bounded text chunking with three strategies.

Splits extracted document text into :class:`~src.models.rag.ChunkCandidate`
objects sized for embedding models.  The token unit is a whitespace-delimited
word; every candidate records the inclusive ``start_token``/``end_token``
range it covers in the token stream of the *whole* text, and its content is
sliced verbatim from the source text between those tokens.

Strategies:

1. **fixed** -- a window of ``max_tokens`` words slides forward by
   ``max_tokens - overlap``.  Overlap is clamped to ``max_tokens - 1`` so the
   window always advances.  For ``T`` tokens this yields
   ``ceil((T - overlap) / (max_tokens - overlap))`` chunks.

2. **semantic** -- paragraphs (blank-line separated) are packed greedily
   until the next one would overflow ``max_tokens``.  A paragraph that is
   too large on its own is cut with the fixed window.

3. **recursive** (default) -- semantic packing first; any oversized
   paragraph is then re-packed sentence by sentence using an
   abbreviation-aware splitter, and a single sentence that still overflows
   is cut with the fixed window.

Whatever the strategy, positions are renumbered ``0..n-1`` at the end.
"""

from __future__ import annotations

import re
from typing import Any, NamedTuple

import structlog

from src.models.rag import ChunkCandidate, ChunkerOptions, ChunkingStrategy
from src.utils.text import Token, count_words, split_sentences, tokenize

logger = structlog.get_logger(logger_name=__name__)

_PARAGRAPH_BREAK = re.compile(r"\n\s*\n")


class _Span(NamedTuple):
    """Half-open ``[start, end)`` token range plus chunk metadata."""

    start: int
    end: int
    metadata: dict[str, Any]


class _Paragraph(NamedTuple):
    index: int
    start: int
    end: int

    @property
    def size(self) -> int:
        return self.end - self.start


class TextChunker:
    """Splits text into token-bounded chunks.

    Parameters
    ----------
    defaults:
        Options used when :meth:`chunk` is called without any.
    """

    def __init__(self, defaults: ChunkerOptions | None = None) -> None:
        self._defaults = defaults or ChunkerOptions()

    @property
    def defaults(self) -> ChunkerOptions:
        return self._defaults

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def chunk(self, text: str, options: ChunkerOptions | None = None) -> list[ChunkCandidate]:
        """Split *text* into ordered chunk candidates.

        Parameters
        ----------
        text:
            The full extracted document text.
        options:
            Strategy, ``max_tokens`` and ``overlap``; falls back to the
            chunker's defaults.

        Returns
        -------
        list[ChunkCandidate]
            Candidates with positions ``0..n-1``.  Empty or whitespace-only
            input returns an empty list.
        """
        opts = options or self._defaults
        tokens = tokenize(text) if text else []
        if not tokens:
            return []

        if opts.strategy == ChunkingStrategy.FIXED:
            spans = self._fixed(0, len(tokens), opts, {"strategy": ChunkingStrategy.FIXED.value})
        elif opts.strategy == ChunkingStrategy.SEMANTIC:
            spans = self._semantic(text, tokens, opts, split_oversized=True)
        else:
            spans = self._recursive(text, tokens, opts)

        candidates = [
            ChunkCandidate(
                content=text[tokens[span.start].start : tokens[span.end - 1].end],
                position=position,
                token_count=span.end - span.start,
                start_token=span.start,
                end_token=span.end - 1,
                metadata=span.metadata,
            )
            for position, span in enumerate(spans)
        ]

        logger.debug(
            "chunking_complete",
            strategy=opts.strategy.value,
            num_chunks=len(candidates),
            total_tokens=len(tokens),
            max_tokens=opts.max_tokens,
        )
        return candidates

    # ------------------------------------------------------------------
    # Strategies
    # ------------------------------------------------------------------

    @staticmethod
    def _fixed(
        start: int,
        end: int,
        opts: ChunkerOptions,
        metadata: dict[str, Any],
    ) -> list[_Span]:
        """Slide a ``max_tokens`` window over tokens ``[start, end)``."""
        window = max(1, opts.max_tokens)
        overlap = min(max(0, opts.overlap), window - 1)
        stamped = {**metadata, "window": window, "overlap": overlap}

        spans: list[_Span] = []
        cursor = start
        while cursor < end:
            stop = min(end, cursor + window)
            spans.append(_Span(cursor, stop, dict(stamped)))
            if stop == end:
                break
            cursor = stop - overlap
        return spans

    def _semantic(
        self,
        text: str,
        tokens: list[Token],
        opts: ChunkerOptions,
        split_oversized: bool,
    ) -> list[_Span]:
        """Pack whole paragraphs into spans of at most ``max_tokens``.

        With ``split_oversized=False`` a paragraph larger than ``max_tokens``
        is emitted as its own span and left for the caller to refine.
        """
        max_tokens = max(1, opts.max_tokens)
        strategy = {"strategy": ChunkingStrategy.SEMANTIC.value}
        spans: list[_Span] = []
        buffer: list[_Paragraph] = []

        def flush() -> None:
            if buffer:
                spans.append(
                    _Span(
                        buffer[0].start,
                        buffer[-1].end,
                        {
                            **strategy,
                            "paragraph_start": buffer[0].index,
                            "paragraph_end": buffer[-1].index,
                        },
                    )
                )
                buffer.clear()

        for paragraph in self._paragraphs(text, tokens):
            buffered = sum(p.size for p in buffer)
            if buffer and buffered + paragraph.size > max_tokens:
                flush()

            if paragraph.size > max_tokens:
                flush()
                if split_oversized:
                    spans.extend(
                        self._fixed(
                            paragraph.start,
                            paragraph.end,
                            opts,
                            {**strategy, "paragraph_index": paragraph.index},
                        )
                    )
                else:
                    spans.append(
                        _Span(
                            paragraph.start,
                            paragraph.end,
                            {
                                **strategy,
                                "paragraph_start": paragraph.index,
                                "paragraph_end": paragraph.index,
                            },
                        )
                    )
                continue

            buffer.append(paragraph)

        flush()
        return spans

    def _recursive(self, text: str, tokens: list[Token], opts: ChunkerOptions) -> list[_Span]:
        """Semantic packing, then sentence-level refinement of oversized spans."""
        max_tokens = max(1, opts.max_tokens)
        refined: list[_Span] = []

        for span in self._semantic(text, tokens, opts, split_oversized=False):
            if span.end - span.start <= max_tokens:
                refined.append(span)
            else:
                refined.extend(self._split_by_sentences(text, tokens, span, opts))

        if not refined:
            return self._fixed(0, len(tokens), opts, {"strategy": ChunkingStrategy.FIXED.value})
        return refined

    def _split_by_sentences(
        self,
        text: str,
        tokens: list[Token],
        span: _Span,
        opts: ChunkerOptions,
    ) -> list[_Span]:
        """Re-pack one oversized span sentence by sentence.

        Sentence boundaries always fall on whitespace, so walking the
        sentences and counting their words advances a cursor through the
        span's tokens exactly.
        """
        max_tokens = max(1, opts.max_tokens)
        base = {
            "strategy": ChunkingStrategy.RECURSIVE.value,
            "source_strategy": span.metadata.get("strategy"),
        }
        content = text[tokens[span.start].start : tokens[span.end - 1].end]

        spans: list[_Span] = []
        buffer_start = span.start
        buffer_tokens = 0
        cursor = span.start

        for sentence in split_sentences(content):
            size = count_words(sentence)
            if size == 0:
                continue

            if buffer_tokens and buffer_tokens + size > max_tokens:
                spans.append(_Span(buffer_start, buffer_start + buffer_tokens, {**base, "split": "sentence"}))
                buffer_tokens = 0

            if size > max_tokens:
                spans.extend(self._fixed(cursor, cursor + size, opts, {**base, "split": "fixed"}))
                cursor += size
                buffer_start = cursor
                continue

            if buffer_tokens == 0:
                buffer_start = cursor
            buffer_tokens += size
            cursor += size

        if buffer_tokens:
            spans.append(_Span(buffer_start, buffer_start + buffer_tokens, {**base, "split": "sentence"}))
        return spans

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _paragraphs(text: str, tokens: list[Token]) -> list[_Paragraph]:
        """Map blank-line separated paragraphs onto token ranges.

        Tokens never contain whitespace, so each one falls entirely inside a
        single paragraph.  Paragraphs without tokens are skipped but still
        consume an index.
        """
        bounds: list[tuple[int, int]] = []
        last = 0
        for match in _PARAGRAPH_BREAK.finditer(text):
            bounds.append((last, match.start()))
            last = match.end()
        bounds.append((last, len(text)))

        paragraphs: list[_Paragraph] = []
        cursor = 0
        for index, (_, end_char) in enumerate(bounds):
            first = cursor
            while cursor < len(tokens) and tokens[cursor].end <= end_char:
                cursor += 1
            if cursor > first:
                paragraphs.append(_Paragraph(index, first, cursor))
        return paragraphs
