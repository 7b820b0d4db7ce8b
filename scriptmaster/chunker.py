"""Split long scripts into sentence-aligned chunks for plan generation."""
from __future__ import annotations

import re

from .config import MAX_WORDS_PER_CHUNK
from .schemas import ScriptStats

_TOKEN_RE = re.compile(r"\S+")
_WORD_RE = re.compile(r"\b\w+\b")
_PARAGRAPH_RE = re.compile(r"\n\s*\n")

SENTENCE_END = (".", "!", "?")
# closing quotes/brackets that may trail the terminal mark: `"Stop!"` or `(done.)`
_TRAILING_CLOSERS = "\"')]}”’"


def ends_sentence(word: str) -> bool:
    return word.rstrip(_TRAILING_CLOSERS).endswith(SENTENCE_END)


def count_words(text: str) -> int:
    """Whitespace-separated token count, the unit the chunker and pacing work in."""
    return len(_TOKEN_RE.findall(text))


def split_script(text: str, max_words: int = MAX_WORDS_PER_CHUNK) -> list[str]:
    """Split *text* into ordered, non-overlapping chunks of roughly *max_words*.

    Once a chunk holds ``max_words`` words, it is closed at the next word
    that ends a sentence so no sentence is split. If the script runs out
    first, the final chunk just ends at the last word. Each chunk is the
    original text between its first and last word, so line breaks inside
    a chunk are kept and joining the chunks' words gives back the original
    word sequence.

    Scripts shorter than ``max_words`` come back as a single chunk equal to
    the stripped input. Blank input gives an empty list.
    """
    if max_words < 1:
        raise ValueError(f"max_words must be >= 1, got {max_words}")

    tokens = list(_TOKEN_RE.finditer(text))
    if not tokens:
        return []
    if len(tokens) < max_words:
        return [text.strip()]

    chunks: list[str] = []
    start = tokens[0].start()
    count = 0
    for i, tok in enumerate(tokens):
        count += 1
        if count >= max_words and ends_sentence(tok.group()):
            chunks.append(text[start:tok.end()])
            count = 0
            if i + 1 < len(tokens):
                start = tokens[i + 1].start()
    if count:
        chunks.append(text[start:tokens[-1].end()])
    return chunks


def script_stats(text: str) -> ScriptStats:
    paragraphs = [p for p in _PARAGRAPH_RE.split(text) if p.strip()]
    return ScriptStats(
        words=len(_WORD_RE.findall(text)),
        chars=len(text),
        paragraphs=len(paragraphs),
    )
