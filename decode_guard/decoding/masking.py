"""
Constraint masking - forbid tokens the automaton does not allow.

The mask is an additive tensor: 0 for allowed tokens, -inf for everything
else. Adding it to the (already penalised) scores leaves allowed scores
exactly unchanged and makes every other token impossible to sample.

Masking must run after the repetition penalty so the penalty can never
bring a forbidden token back.

Allowance handling:
    - OPEN: tokens in the allowed set keep their score
    - EXHAUSTED: nothing is allowed, every score becomes -inf
    - COMPLETE: no mask is applied; the stop checks end generation instead

Allowed ids outside the vocabulary are ignored when building the mask.
"""

import logging

import torch
from torch import Tensor

from decode_guard.decoding.automaton import Allowance, AllowanceKind
from decode_guard.errors import ScoreShapeError

logger = logging.getLogger(__name__)


def create_constraint_mask(
    allowance: Allowance,
    vocab_size: int,
    device: torch.device,
    dtype: torch.dtype = torch.float32,
) -> Tensor:
    """
    Create the additive mask for an allowance.

    Args:
        allowance: Classified allowed_tokens() result
        vocab_size: Size of vocabulary
        device: Torch device (cpu/cuda/mps)
        dtype: Floating point dtype of the scores

    Returns:
        Tensor: Shape (vocab_size,), 0 where allowed and -inf elsewhere.
        All zeros for a COMPLETE allowance, all -inf for EXHAUSTED.

    Example:
        ```python
        mask = create_constraint_mask(Allowance.of({1, 3}), vocab_size=5, device='cpu')
        # tensor([-inf, 0., -inf, 0., -inf])
        ```
    """
    if allowance.kind is AllowanceKind.COMPLETE:
        return torch.zeros((vocab_size,), dtype=dtype, device=device)

    mask = torch.full((vocab_size,), float('-inf'), dtype=dtype, device=device)

    if allowance.kind is AllowanceKind.EXHAUSTED:
        return mask

    in_range = [token_id for token_id in allowance.tokens if 0 <= token_id < vocab_size]
    if len(in_range) != len(allowance.tokens):
        logger.debug(
            f"Ignoring {len(allowance.tokens) - len(in_range)} allowed tokens "
            f"outside vocabulary of size {vocab_size}"
        )

    if in_range:
        index = torch.tensor(in_range, dtype=torch.long, device=device)
        mask[index] = 0.0

    return mask


def apply_constraint_mask(scores: Tensor, allowance: Allowance) -> Tensor:
    """
    Return ``scores + mask`` for the given allowance.

    A COMPLETE allowance returns ``scores`` itself.

    Raises:
        ScoreShapeError: If scores is not 1-D
    """
    if scores.dim() != 1:
        raise ScoreShapeError(
            f"Expected scores of shape (vocab_size,), got {tuple(scores.shape)}"
        )

    if allowance.kind is AllowanceKind.COMPLETE:
        return scores

    mask = create_constraint_mask(allowance, scores.shape[0], scores.device, scores.dtype)
    return scores + mask
