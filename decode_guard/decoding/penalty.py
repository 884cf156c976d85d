"""
Repetition penalty - discourage re-emitting recently generated tokens.

For every distinct token in the last ``window`` tokens of history, the token's
score is pushed towards "less likely":

    score > 0   ->  score / penalty
    score <= 0  ->  score * penalty

A penalty of exactly 1.0 disables the adjustment and returns the input tensor
object untouched, so no floating point rounding is introduced.

Each distinct token value is penalised once per call, no matter how many times
it occurs inside the window.

Example:
    ```python
    import torch
    from decode_guard.decoding.penalty import apply_repetition_penalty

    scores = torch.ones(5)
    penalized = apply_repetition_penalty(scores, [1, 1, 2], penalty=1.2, window=3)
    # tensor([1.0000, 0.8333, 0.8333, 1.0000, 1.0000])
    ```
"""

import logging
import math
from typing import List, Sequence

import torch
from torch import Tensor

from decode_guard.errors import ConfigurationError, ScoreShapeError

logger = logging.getLogger(__name__)


def validate_penalty(repetition_penalty: float, repetition_penalty_last_n: int) -> None:
    """
    Validate repetition penalty settings.

    Raises:
        ConfigurationError: If the penalty is not a positive finite number or
            the window is not a non-negative integer
    """
    if isinstance(repetition_penalty, bool) or not isinstance(repetition_penalty, (int, float)):
        raise ConfigurationError(
            f"repetition_penalty must be a number, got {type(repetition_penalty).__name__}"
        )
    if not math.isfinite(repetition_penalty) or repetition_penalty <= 0:
        raise ConfigurationError(
            f"repetition_penalty must be positive and finite, got {repetition_penalty}"
        )
    if isinstance(repetition_penalty_last_n, bool) or not isinstance(repetition_penalty_last_n, int):
        raise ConfigurationError(
            f"repetition_penalty_last_n must be an integer, "
            f"got {type(repetition_penalty_last_n).__name__}"
        )
    if repetition_penalty_last_n < 0:
        raise ConfigurationError(
            f"repetition_penalty_last_n must be >= 0, got {repetition_penalty_last_n}"
        )


def penalty_window(history: Sequence[int], window: int) -> Sequence[int]:
    """Return the last ``min(window, len(history))`` tokens of history."""
    if window <= 0:
        return history[:0]
    return history[-window:]


def penalized_token_ids(history: Sequence[int], window: int, vocab_size: int) -> List[int]:
    """
    Distinct in-vocabulary token ids from the penalty window, in first-seen order.

    Ids outside ``[0, vocab_size)`` are skipped.
    """
    seen = set()
    token_ids = []

    for token_id in penalty_window(history, window):
        if token_id in seen:
            continue
        seen.add(token_id)

        if 0 <= token_id < vocab_size:
            token_ids.append(token_id)
        else:
            logger.debug(f"Skipping out-of-vocabulary token {token_id} in penalty window")

    return token_ids


def apply_repetition_penalty(
    scores: Tensor,
    history: Sequence[int],
    penalty: float,
    window: int,
) -> Tensor:
    """
    Apply repetition penalty to a 1-D score vector.

    Args:
        scores: Tensor of shape (vocab_size,)
        history: Token ids generated so far, oldest first
        penalty: Penalty scalar (1.0 = disabled)
        window: Number of most recent history tokens to consider

    Returns:
        Tensor: ``scores`` itself when the penalty is disabled, otherwise a new
        tensor with the penalised entries adjusted

    Raises:
        ScoreShapeError: If scores is not 1-D
    """
    if penalty == 1.0:
        return scores

    if scores.dim() != 1:
        raise ScoreShapeError(
            f"Expected scores of shape (vocab_size,), got {tuple(scores.shape)}"
        )

    token_ids = penalized_token_ids(history, window, scores.shape[0])
    if not token_ids:
        return scores

    index = torch.tensor(token_ids, dtype=torch.long, device=scores.device)
    selected = scores.index_select(0, index)
    adjusted = torch.where(selected > 0, selected / penalty, selected * penalty)

    penalized = scores.clone()
    penalized[index] = adjusted

    logger.debug(f"Applied repetition penalty {penalty} to {len(token_ids)} tokens")

    return penalized
