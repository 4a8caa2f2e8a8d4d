"""
Greedy decode and post-processing of per-timestep class scores.

    pred [B, T, C] -> argmax per timestep -> raw symbol string
                   -> collapse_repeats (fixed width, length preserved)
                   -> segment_abbreviations (literal text / prosign expansions)

collapse_repeats and segment_abbreviations are pure string functions and can be
used on their own.
"""

import re
from dataclasses import dataclass
from typing import Dict, List, Mapping, Sequence

import numpy as np

from core.errors import InferenceFailure

_REPEAT_RE = re.compile(r"(\S)\1+")


@dataclass(frozen=True)
class TextSegment:
    text: str
    is_abbreviation: bool = False

    def to_dict(self) -> Dict[str, object]:
        return {"text": self.text, "isAbbreviation": self.is_abbreviation}


def segments_to_text(segments: Sequence[TextSegment]) -> str:
    """Concatenate segment texts into the display line."""
    return "".join(s.text for s in segments)


def greedy_ids(scores: np.ndarray) -> np.ndarray:
    """Argmax over the class axis of a [T, C] array; ties resolve to the lowest index."""
    return np.argmax(scores, axis=-1)


def ids_to_symbols(ids: Sequence[int], vocabulary: Sequence[str]) -> str:
    """Map class ids to symbols; ids outside the vocabulary map to ''."""
    size = len(vocabulary)
    return "".join(vocabulary[i] if 0 <= i < size else "" for i in (int(x) for x in ids))


def collapse_repeats(text: str) -> str:
    """
    Replace each run of k identical non-whitespace characters with the character
    followed by k - 1 spaces.

        "EEE A" -> "E   A"
    """
    return _REPEAT_RE.sub(lambda m: m.group(1) + " " * (len(m.group(0)) - 1), text)


def segment_abbreviations(text: str, abbreviations: Mapping[str, str]) -> List[TextSegment]:
    """
    Split `text` into literal and abbreviation segments.

    Keys are matched as literal substrings in one left-to-right alternation scan,
    longer keys tried first. Matched keys are replaced by their expansion.

    Returns:
        Ordered segments; [] for an empty string, a single literal segment when
        nothing matches.
    """
    if not text:
        return []
    keys = [k for k in abbreviations if k]
    if not keys:
        return [TextSegment(text, False)]

    keys.sort(key=len, reverse=True)
    pattern = re.compile("|".join(re.escape(k) for k in keys))

    segments: List[TextSegment] = []
    last = 0
    for match in pattern.finditer(text):
        if match.start() > last:
            segments.append(TextSegment(text[last:match.start()], False))
        segments.append(TextSegment(abbreviations[match.group(0)], True))
        last = match.end()
    if last < len(text):
        segments.append(TextSegment(text[last:], False))
    return segments


def decode_predictions(
    pred: np.ndarray,
    vocabulary: Sequence[str],
    abbreviations: Mapping[str, str],
) -> List[List[TextSegment]]:
    """
    Decode a [batch, time_steps, num_classes] score tensor.

    Returns:
        One list of TextSegment per batch element.
    """
    pred = np.asarray(pred)
    if pred.ndim != 3:
        raise InferenceFailure(f"Expected prediction of shape [batch, time, classes], got {pred.shape}")

    out: List[List[TextSegment]] = []
    for batch_scores in pred:
        raw = ids_to_symbols(greedy_ids(batch_scores), vocabulary)
        out.append(segment_abbreviations(collapse_repeats(raw), abbreviations))
    return out
