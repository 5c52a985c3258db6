"""
Speaker name recognition from transcript text.

Looks for self-introduction cues ("meu nome é Ana", "aqui é o Carlos
falando", "my name is Ana") and returns the name that follows. This is a
best-effort heuristic: anything ambiguous yields None.
"""

import re
from typing import List, Optional

# Cues where the next word is a name even if the engine lowercased it
STRONG_CUES = [
    r"meu nome (?:é|e)",
    r"me chamo",
    r"my name is",
    r"my name's",
]

# Cues where the next word must be capitalized to count as a name
WEAK_CUES = [
    r"aqui (?:é|e|quem fala é)(?: (?:o|a))?",
    r"quem fala é(?: (?:o|a))?",
    r"eu sou(?: (?:o|a))?",
    r"sou (?:o|a)",
    r"this is",
    r"i am",
    r"i'm",
]

# Lowercase connectors allowed inside compound names ("Maria da Silva")
NAME_CONNECTORS = {"da", "de", "do", "das", "dos", "e"}

# Words that follow a cue but are not names
STOPWORDS = {
    # Portuguese
    "a", "o", "as", "os", "um", "uma", "que", "não", "nao", "sim", "eu", "você",
    "voce", "ele", "ela", "nós", "nos", "isso", "isto", "aquilo", "muito", "bem",
    "mais", "também", "tambem", "agora", "aqui", "então", "entao", "responsável",
    "responsavel", "novo", "nova", "gerente", "diretor", "diretora",
    # English
    "the", "a", "an", "not", "just", "here", "going", "sure", "sorry", "so",
    "very", "really", "also", "now", "glad", "happy", "fine", "good", "great",
    "okay", "ok", "it", "that", "this", "what", "speaking",
}

MAX_NAME_TOKENS = 3

_WORD = r"[^\W\d_]+(?:['\-][^\W\d_]+)*"
_CUE_PATTERN = re.compile(
    r"(?<!\w)(?P<cue>" + "|".join(STRONG_CUES + WEAK_CUES) + r")\s+(?P<rest>.+)",
    re.IGNORECASE | re.DOTALL,
)
_STRONG_PATTERN = re.compile(r"^(?:" + "|".join(STRONG_CUES) + r")$", re.IGNORECASE)
_WORD_PATTERN = re.compile(_WORD)


def _is_strong_cue(cue: str) -> bool:
    return bool(_STRONG_PATTERN.match(" ".join(cue.split())))


def _leading_words(text: str) -> List[str]:
    """Words at the start of ``text`` up to the first punctuation mark."""
    words = []
    for token in text.split():
        match = _WORD_PATTERN.match(token)
        if not match:
            break
        words.append(match.group(0))
        if match.end() < len(token):
            # Punctuation right after the word ends the phrase
            break
    return words


def _collect_name(words: List[str], require_capital: bool) -> Optional[str]:
    """Take up to MAX_NAME_TOKENS name words, allowing lowercase connectors between them."""
    if not words:
        return None

    first = words[0]
    if first.lower() in STOPWORDS:
        return None
    if require_capital and not first[0].isupper():
        return None

    name_tokens = [first]
    i = 1
    while i < len(words) and len(name_tokens) < MAX_NAME_TOKENS:
        word = words[i]
        if word[0].isupper() and word.lower() not in STOPWORDS:
            name_tokens.append(word)
            i += 1
        elif (word in NAME_CONNECTORS and i + 1 < len(words)
              and words[i + 1][0].isupper() and len(name_tokens) + 1 < MAX_NAME_TOKENS):
            name_tokens.extend([word, words[i + 1]])
            i += 2
        else:
            break

    if not require_capital:
        name_tokens = [t if t in NAME_CONNECTORS else t[0].upper() + t[1:] for t in name_tokens]
    return " ".join(name_tokens)


def recognize_name(text: str) -> Optional[str]:
    """
    Extract a self-introduced speaker name from segment text.

    Args:
        text: Recognized text of one segment

    Returns:
        The first name found after a self-introduction cue, or None
    """
    if not text or not text.strip():
        return None

    search_from = 0
    while True:
        match = _CUE_PATTERN.search(text, search_from)
        if not match:
            return None

        words = _leading_words(match.group("rest"))
        name = _collect_name(words, require_capital=not _is_strong_cue(match.group("cue")))
        if name:
            return name
        search_from = match.start("rest")


class NameRecognizer:
    """Stateless wrapper so the recognizer can be injected and replaced in tests."""

    def recognize_name(self, text: str) -> Optional[str]:
        return recognize_name(text)
