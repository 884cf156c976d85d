"""
llama.cpp backend for GGUF models.

Scores come from ``Llama.eval`` so sampling, penalties and constraints are
handled by the DecodingController exactly as for the transformers backend.

Usage:
    ```python
    from decode_guard.backends.llamacpp_backend import LlamaCppBackend

    backend = LlamaCppBackend(
        "models/mistral-7b-q4.gguf",
        n_gpu_layers=-1  # All layers on GPU (Metal)
    )

    ids = backend.get_tokenizer().encode("Hello")
    scores = backend.next_token_scores(ids)
    ```
"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Sequence

import torch
from torch import Tensor

from decode_guard.backends.base import Backend

logger = logging.getLogger(__name__)


class LlamaCppTokenizer:
    """
    Tokenizer adapter exposing the HF-style calls the generator uses.

    Attributes:
        llm: llama_cpp.Llama instance
        eos_token_id: End-of-sequence token id
        bos_token_id: Beginning-of-sequence token id
    """

    def __init__(self, llm: Any):
        self.llm = llm
        self.eos_token_id = llm.token_eos()
        self.bos_token_id = llm.token_bos()

    def encode(self, text: str, add_special_tokens: bool = True) -> List[int]:
        return self.llm.tokenize(text.encode("utf-8"), add_bos=add_special_tokens)

    def decode(self, token_ids: Sequence[int], skip_special_tokens: bool = True) -> str:
        if skip_special_tokens:
            special = {self.eos_token_id, self.bos_token_id}
            token_ids = [t for t in token_ids if t not in special]
        return self.llm.detokenize(list(token_ids)).decode("utf-8", errors="ignore")

    def __len__(self) -> int:
        return self.llm.n_vocab()


class LlamaCppBackend(Backend):
    """
    Backend for llama.cpp (GGUF) models.

    Attributes:
        model_path: Path to GGUF model file
        llm: llama_cpp.Llama instance
        n_gpu_layers: Number of layers on GPU (-1 = all)
        n_ctx: Context length
    """

    def __init__(
        self,
        model_path: str,
        n_gpu_layers: int = -1,
        n_ctx: int = 2048,
        n_batch: int = 512,
        use_mlock: bool = True,
        **kwargs
    ):
        """
        Initialize llama.cpp backend.

        Args:
            model_path: Path to GGUF model file
            n_gpu_layers: Number of layers to offload to GPU (-1 = all)
            n_ctx: Context window size
            n_batch: Batch size for prompt processing
            use_mlock: Lock model in memory (prevents swapping)
            **kwargs: Additional llama.cpp options

        Raises:
            FileNotFoundError: If the model file does not exist
        """
        self.model_path = Path(model_path)
        self.model_id = str(model_path)
        self.device = "gpu" if n_gpu_layers != 0 else "cpu"
        self.n_gpu_layers = n_gpu_layers
        self.n_ctx = n_ctx
        self.n_batch = n_batch
        self.use_mlock = use_mlock
        self.llm = None
        self.tokenizer = None

        logger.info(
            f"Initializing LlamaCppBackend: model={model_path}, "
            f"n_gpu_layers={n_gpu_layers}"
        )

        if not self.model_path.exists():
            raise FileNotFoundError(f"Model file not found: {model_path}")

        self._load_model(**kwargs)

    def _load_model(self, **kwargs):
        """Load llama.cpp model."""
        try:
            from llama_cpp import Llama
        except ImportError:
            raise ImportError(
                "llama-cpp-python is required. "
                "Install with: pip install 'decode-guard[llamacpp]'"
            )

        logger.info(f"Loading GGUF model: {self.model_path}")

        load_kwargs = {
            'model_path': str(self.model_path),
            'n_gpu_layers': self.n_gpu_layers,
            'n_ctx': self.n_ctx,
            'n_batch': self.n_batch,
            'use_mlock': self.use_mlock,
            'logits_all': False,
            'verbose': False,
        }
        load_kwargs.update(kwargs)

        try:
            self.llm = Llama(**load_kwargs)
            self.tokenizer = LlamaCppTokenizer(self.llm)
            logger.info("Model loaded successfully")

        except Exception as e:
            logger.error(f"Failed to load model: {e}")
            raise

    def next_token_scores(self, token_ids: Sequence[int]) -> Tensor:
        """
        Evaluate new tokens and return the last position's scores.

        The llama.cpp context is reused when ``token_ids`` extends the tokens
        already evaluated; otherwise it is reset first.
        """
        token_ids = list(token_ids)
        if not token_ids:
            raise ValueError("Cannot score an empty token sequence")

        evaluated = self.llm.n_tokens
        current = [int(t) for t in self.llm.input_ids[:evaluated]]

        if 0 < evaluated < len(token_ids) and token_ids[:evaluated] == current:
            new_ids = token_ids[evaluated:]
        else:
            self.llm.reset()
            new_ids = token_ids

        self.llm.eval(new_ids)

        logits = self.llm.scores[self.llm.n_tokens - 1, :]
        return torch.from_numpy(logits.copy()).float()

    def reset(self) -> None:
        if self.llm is not None:
            self.llm.reset()

    def get_tokenizer(self) -> Any:
        return self.tokenizer

    def get_model_info(self) -> Dict[str, Any]:
        info = {
            'model_id': self.model_id,
            'device': self.device,
            'backend': 'llamacpp',
            'n_ctx': self.n_ctx,
            'n_gpu_layers': self.n_gpu_layers,
        }

        if self.llm is not None:
            info['vocab_size'] = self.llm.n_vocab()
            info['context_length'] = self.llm.n_ctx()

        return info

    def __repr__(self) -> str:
        return f"LlamaCppBackend(model={self.model_path}, n_gpu_layers={self.n_gpu_layers})"
