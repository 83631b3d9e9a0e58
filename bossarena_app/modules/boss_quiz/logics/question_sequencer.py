"""
Question Sequencer - deterministic per-student question order.

This module contains ONLY pure Python logic.
NO database, NO Flask, NO model dependencies allowed.

The order must be reproducible by any other implementation, so both the seed
hash and the generator are spelled out here instead of using ``random``:

* seed  = FNV-1a (32-bit) over the UTF-8 bytes of ``"{user_id}:{quiz_id}"``
* PRNG  = xorshift32 (Marsaglia, shifts 13 / 17 / 5)
* order = Fisher-Yates from the last index down, ``j = next() % (i + 1)``
"""
from __future__ import annotations

from typing import Any, Iterable, List, Optional, Sequence, Tuple

from .modifier_engine import Modifier, filter_question_pool

FNV_OFFSET_BASIS = 0x811C9DC5
FNV_PRIME = 0x01000193
MASK_32 = 0xFFFFFFFF

# xorshift32 is stuck at zero forever, so a zero seed is swapped for this.
ZERO_SEED_REPLACEMENT = 0x9E3779B9


def stable_hash(text: str) -> int:
    """
    32-bit FNV-1a hash.

    Examples:
        >>> stable_hash('')
        2166136261
        >>> stable_hash('a')
        3826002220
    """
    h = FNV_OFFSET_BASIS
    for byte in text.encode('utf-8'):
        h ^= byte
        h = (h * FNV_PRIME) & MASK_32
    return h


def sequence_seed(user_id: Any, quiz_id: Any) -> int:
    return stable_hash(f"{user_id}:{quiz_id}")


class XorShift32:
    """Marsaglia's xorshift32 generator."""

    def __init__(self, seed: int):
        self.state = (seed & MASK_32) or ZERO_SEED_REPLACEMENT

    def next(self) -> int:
        x = self.state
        x ^= (x << 13) & MASK_32
        x ^= x >> 17
        x ^= (x << 5) & MASK_32
        self.state = x & MASK_32
        return self.state


def seeded_shuffle(items: Sequence[Any], seed: int) -> List[Any]:
    """Return a new list with ``items`` shuffled by xorshift32 Fisher-Yates."""
    result = list(items)
    rng = XorShift32(seed)
    for i in range(len(result) - 1, 0, -1):
        j = rng.next() % (i + 1)
        result[i], result[j] = result[j], result[i]
    return result


def _canonical_key(question: Any) -> Tuple[int, int]:
    position = getattr(question, 'position', None)
    question_id = getattr(question, 'question_id', None)
    return (position if position is not None else 0, question_id if question_id is not None else 0)


def questions_for(
    questions: Iterable[Any],
    user_id: Any,
    quiz_id: Any,
    modifiers: Iterable[Modifier] = (),
) -> Tuple[Any, ...]:
    """
    Personalized question order for one student in one quiz.

    The pool is put in canonical order (position, question_id) first so the
    result does not depend on how the caller loaded it, then FILTERING
    modifiers run, then the seeded shuffle.

    Returns a tuple: finite and safe to iterate again.
    """
    pool = sorted(questions, key=_canonical_key)
    pool = filter_question_pool(pool, modifiers)
    return tuple(seeded_shuffle(pool, sequence_seed(user_id, quiz_id)))


def next_question(sequence: Sequence[Any], answered_ids: Iterable[Any]) -> Optional[Any]:
    """First question in ``sequence`` not yet answered, or None once exhausted."""
    answered = set(answered_ids or ())
    for question in sequence:
        if getattr(question, 'question_id', None) not in answered:
            return question
    return None


def is_exhausted(sequence: Sequence[Any], answered_ids: Iterable[Any]) -> bool:
    return next_question(sequence, answered_ids) is None
