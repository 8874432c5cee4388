"""Exponential backoff with uniform jitter."""

import random


def compute_backoff(
    retry_index: int,
    initial: float,
    *,
    jitter: float = 0.5,
    max_backoff: float | None = None,
    rng: random.Random | None = None,
) -> float:
    """
    Compute the delay before a retry.

    The base delay is ``initial * 2**retry_index``; the returned delay is drawn
    uniformly from ``[base * (1 - jitter), base * (1 + jitter)]`` and then
    capped at ``max_backoff``.

    Args:
        retry_index (int): Zero-based retry number.
        initial (float): Delay in seconds before the first retry.
        jitter (float): Relative jitter in ``[0, 1)``.
        max_backoff (float | None): Upper bound for the returned delay.
        rng (random.Random | None): Random source; defaults to the module RNG.

    Returns:
        float: Delay in seconds.
    """
    if retry_index < 0:
        raise ValueError("retry_index must be >= 0")
    base = initial * (2**retry_index)
    draw = (rng or random).uniform(1.0 - jitter, 1.0 + jitter)
    delay = base * draw
    if max_backoff is not None:
        delay = min(delay, max_backoff)
    return delay
