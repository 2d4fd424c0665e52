"""
similarity.py — Token-set Jaccard similarity for report text.

Catches near-identical titles / descriptions ("Trash dumped near river" vs
"trash dumped near the river"). It does not catch paraphrases, and isn't
meant to.
"""


def tokenize(text: str) -> set[str]:
    """Lower-cased, whitespace-delimited token set."""
    return set(text.lower().split())


def jaccard_similarity(a: str, b: str) -> float:
    """|A ∩ B| / |A ∪ B| over the token sets of *a* and *b*, in [0, 1].

    Two empty strings have no tokens at all; that counts as no similarity (0.0).
    """
    tokens_a = tokenize(a or "")
    tokens_b = tokenize(b or "")
    union = tokens_a | tokens_b
    if not union:
        return 0.0
    return len(tokens_a & tokens_b) / len(union)
