"""
Shared fixtures: scripted samplers, a toy tokenizer and a fake backend.
"""

from typing import Dict, List, Optional, Sequence

import pytest
import torch
from torch import Tensor

from decode_guard.backends.base import Backend
from decode_guard.decoding.automaton import TokenTransitionTable
from decode_guard.sampling import Sampler

VOCAB = ["<eos>", " yes", " no", " maybe", ".", " hello", " world", "Answer:"]
EOS = 0
YES, NO, MAYBE, DOT, HELLO, WORLD, ANSWER = 1, 2, 3, 4, 5, 6, 7


class ArgmaxSampler(Sampler):
    """Greedy draw that records every score vector it sees."""

    def __init__(self):
        self.seen: List[Tensor] = []

    def draw(self, scores: Tensor) -> int:
        self.seen.append(scores.clone())
        return int(torch.argmax(scores).item())


class ScriptedSampler(Sampler):
    """Returns pre-set tokens in order, ignoring the scores."""

    def __init__(self, tokens: Sequence[int]):
        self.tokens = list(tokens)
        self.seen: List[Tensor] = []

    def draw(self, scores: Tensor) -> int:
        self.seen.append(scores.clone())
        return self.tokens.pop(0)


class ToyTokenizer:
    """Greedy longest-match tokenizer over VOCAB."""

    eos_token_id = EOS

    def encode(self, text: str) -> List[int]:
        ids = []
        pos = 0
        pieces = sorted(enumerate(VOCAB), key=lambda item: -len(item[1]))
        while pos < len(text):
            for token_id, piece in pieces:
                if token_id != EOS and text.startswith(piece, pos):
                    ids.append(token_id)
                    pos += len(piece)
                    break
            else:
                raise ValueError(f"Cannot tokenize {text[pos:]!r}")
        return ids

    def decode(self, token_ids: Sequence[int], skip_special_tokens: bool = True) -> str:
        return "".join(
            VOCAB[t] for t in token_ids
            if not (skip_special_tokens and t == EOS)
        )

    def __len__(self) -> int:
        return len(VOCAB)


class FakeBackend(Backend):
    """
    Backend that strongly prefers a scripted token at each step.

    After the script runs out it prefers EOS.
    """

    def __init__(self, preferences: Sequence[int]):
        self.model_id = "fake"
        self.device = "cpu"
        self.preferences = list(preferences)
        self.tokenizer = ToyTokenizer()
        self.calls: List[List[int]] = []
        self.resets = 0
        self._step = 0

    def next_token_scores(self, token_ids: Sequence[int]) -> Tensor:
        self.calls.append(list(token_ids))
        preferred = self.preferences[self._step] if self._step < len(self.preferences) else EOS
        self._step += 1

        scores = torch.zeros(len(VOCAB))
        scores[preferred] = 10.0
        return scores

    def reset(self) -> None:
        self.resets += 1
        self._step = 0

    def get_tokenizer(self):
        return self.tokenizer

    def get_model_info(self) -> Dict[str, object]:
        return {'model_id': self.model_id, 'device': self.device, 'vocab_size': len(VOCAB)}


def make_table(
    transitions: Dict,
    initial="S0",
    complete_states: Optional[Sequence] = None,
) -> TokenTransitionTable:
    return TokenTransitionTable(transitions, initial=initial, complete_states=complete_states)


@pytest.fixture
def yes_no_table() -> TokenTransitionTable:
    """' yes' or ' no', then only EOS, then completion."""
    return make_table(
        {
            ("S0", YES): "S1",
            ("S0", NO): "S1",
            ("S1", EOS): "END",
        },
        complete_states=["END"],
    )


@pytest.fixture
def toy_tokenizer() -> ToyTokenizer:
    return ToyTokenizer()
