"""
Samplers - draw one token id from a (penalised, masked) score vector.

The decoding controller treats the sampler as an opaque draw. Temperature,
top-p and seeding are configured on the sampler itself.

Usage:
    ```python
    from decode_guard.sampling import TorchSampler

    sampler = TorchSampler(temperature=0.7, top_p=0.9, seed=42)
    token_id = sampler.draw(scores)

    greedy = TorchSampler(temperature=0.0)
    token_id = greedy.draw(scores)  # argmax
    ```
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional

import torch
from torch import Tensor

from decode_guard.errors import ConfigurationError, SamplingError, ScoreShapeError

logger = logging.getLogger(__name__)

GREEDY_TEMPERATURE = 1e-7


class Sampler(ABC):
    """Draws a token id from a 1-D score vector."""

    @abstractmethod
    def draw(self, scores: Tensor) -> int:
        """
        Draw one token id.

        Raises:
            SamplingError: If no token can be drawn from ``scores``
        """


class TorchSampler(Sampler):
    """
    Temperature / nucleus sampler on torch tensors.

    Attributes:
        temperature: Softmax temperature; at or below 1e-7 the draw is argmax
        top_p: Nucleus probability mass, None or 1.0 to disable
        seed: Seed for the private torch.Generator
    """

    def __init__(
        self,
        temperature: Optional[float] = 1.0,
        top_p: Optional[float] = None,
        seed: Optional[int] = None,
    ):
        if temperature is not None and temperature < 0:
            raise ConfigurationError(f"temperature must be >= 0, got {temperature}")
        if top_p is not None and not 0.0 < top_p <= 1.0:
            raise ConfigurationError(f"top_p must be in (0, 1], got {top_p}")

        self.temperature = temperature
        self.top_p = top_p
        self.seed = seed

        self._generator = torch.Generator()
        if seed is not None:
            self._generator.manual_seed(seed)

    @property
    def is_greedy(self) -> bool:
        return self.temperature is None or self.temperature < GREEDY_TEMPERATURE

    def draw(self, scores: Tensor) -> int:
        if scores.dim() != 1:
            raise ScoreShapeError(
                f"Expected scores of shape (vocab_size,), got {tuple(scores.shape)}"
            )

        # Sampling runs on CPU in float32 so the seeded generator applies everywhere
        logits = scores.detach().to(device='cpu', dtype=torch.float32)

        if not torch.isfinite(logits).any():
            raise SamplingError("Cannot sample: no token has a finite score")
        if torch.isnan(logits).any():
            raise SamplingError("Cannot sample: scores contain NaN")

        if self.is_greedy:
            return int(torch.argmax(logits).item())

        logits = logits / self.temperature

        if self.top_p is not None and self.top_p < 1.0:
            logits = self._filter_top_p(logits, self.top_p)

        probs = torch.softmax(logits, dim=-1)
        token_id = torch.multinomial(probs, num_samples=1, generator=self._generator)
        return int(token_id.item())

    @staticmethod
    def _filter_top_p(logits: Tensor, top_p: float) -> Tensor:
        sorted_logits, sorted_indices = torch.sort(logits, descending=True)
        cumulative_probs = torch.cumsum(torch.softmax(sorted_logits, dim=-1), dim=-1)

        # Keep the first token that crosses the threshold
        to_remove = cumulative_probs > top_p
        to_remove[1:] = to_remove[:-1].clone()
        to_remove[0] = False

        filtered = logits.clone()
        filtered[sorted_indices[to_remove]] = float('-inf')
        return filtered

    def __repr__(self) -> str:
        return (
            f"TorchSampler(temperature={self.temperature}, top_p={self.top_p}, "
            f"seed={self.seed})"
        )
