"""Similarity measures used outside the store."""

import re

import numpy as np

_PUNCTUATION = re.compile(r"[^\w\s]")


def cosine_similarity(vector_a: list[float], vector_b: list[float]) -> float:
    """Cosine similarity of two vectors; 0.0 when either is empty or zero."""
    if not vector_a or not vector_b or len(vector_a) != len(vector_b):
        return 0.0

    a = np.asarray(vector_a, dtype=float)
    b = np.asarray(vector_b, dtype=float)

    norm_a = np.linalg.norm(a)
    norm_b = np.linalg.norm(b)
    if norm_a == 0 or norm_b == 0:
        return 0.0

    return float(np.dot(a, b) / (norm_a * norm_b))


def tokenize(text: str) -> set[str]:
    return {word for word in _PUNCTUATION.sub("", text.lower()).split() if len(word) > 2}


def text_similarity(text_a: str, text_b: str) -> float:
    """Jaccard index over lowercase word tokens longer than two characters."""
    tokens_a = tokenize(text_a)
    tokens_b = tokenize(text_b)
    if not tokens_a or not tokens_b:
        return 0.0
    return len(tokens_a & tokens_b) / len(tokens_a | tokens_b)
