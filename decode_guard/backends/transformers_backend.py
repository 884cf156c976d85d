"""
HuggingFace Transformers backend.

Features:
    - Auto model loading with device detection (MPS > CUDA > CPU)
    - Half-precision (float16) on GPU devices
    - KV-cache reuse between decoding steps of the same sequence

Usage:
    ```python
    from decode_guard.backends.transformers_backend import TransformersBackend

    backend = TransformersBackend("TinyLlama/TinyLlama-1.1B-Chat-v1.0", device="mps")

    ids = backend.get_tokenizer().encode("Hello")
    scores = backend.next_token_scores(ids)   # shape (vocab_size,)
    ```
"""

import logging
from typing import Any, Dict, List, Optional, Sequence

import torch
from torch import Tensor
from transformers import AutoModelForCausalLM, AutoTokenizer

from decode_guard.backends.base import Backend
from decode_guard.backends.device_utils import get_optimal_device, validate_device

logger = logging.getLogger(__name__)


class TransformersBackend(Backend):
    """
    Backend for HuggingFace transformers models.

    Attributes:
        model_id: HuggingFace model identifier
        device: Device to run on (mps, cuda, cpu)
        model: Loaded AutoModelForCausalLM instance
        tokenizer: Loaded AutoTokenizer instance
        torch_dtype: Data type for model (float16 or float32)
    """

    def __init__(
        self,
        model_id: str,
        device: Optional[str] = None,
        torch_dtype: Optional[torch.dtype] = None,
        **kwargs
    ):
        """
        Initialize Transformers backend.

        Args:
            model_id: HuggingFace model identifier (e.g., "gpt2")
            device: Device to use ("mps", "cuda", "cpu", or None for auto)
            torch_dtype: PyTorch data type (None for auto: float16 on GPU, float32 on CPU)
            **kwargs: Additional arguments for model loading
        """
        self.model_id = model_id
        self.model = None
        self.tokenizer = None

        if device is None:
            device = get_optimal_device()
        elif not validate_device(device):
            raise RuntimeError(f"Device '{device}' is not available")

        self.device = device

        if torch_dtype is None:
            self.torch_dtype = torch.float16 if device in ["mps", "cuda"] else torch.float32
        else:
            self.torch_dtype = torch_dtype

        self._past_key_values = None
        self._cached_ids: List[int] = []

        logger.info(
            f"Initializing TransformersBackend: model={model_id}, "
            f"device={device}, dtype={self.torch_dtype}"
        )

        self._load_model(**kwargs)
        self._load_tokenizer()

    def _load_model(self, **kwargs):
        """Load HuggingFace model."""
        logger.info(f"Loading model: {self.model_id}")

        load_kwargs = {
            'torch_dtype': self.torch_dtype,
            'low_cpu_mem_usage': True,
        }
        load_kwargs.update(kwargs)

        try:
            self.model = AutoModelForCausalLM.from_pretrained(self.model_id, **load_kwargs)
            self.model = self.model.to(torch.device(self.device))
            self.model.eval()

            logger.info(f"Model loaded successfully on {self.device}")

        except Exception as e:
            logger.error(f"Failed to load model: {e}")
            raise

    def _load_tokenizer(self):
        """Load HuggingFace tokenizer."""
        logger.info(f"Loading tokenizer: {self.model_id}")

        try:
            self.tokenizer = AutoTokenizer.from_pretrained(self.model_id)
            logger.info("Tokenizer loaded successfully")

        except Exception as e:
            logger.error(f"Failed to load tokenizer: {e}")
            raise

    def next_token_scores(self, token_ids: Sequence[int]) -> Tensor:
        """
        Score the next token, reusing the KV cache when ``token_ids`` extends
        the previously scored sequence.
        """
        token_ids = list(token_ids)
        if not token_ids:
            raise ValueError("Cannot score an empty token sequence")

        cached = len(self._cached_ids)
        reuse = (
            self._past_key_values is not None
            and cached < len(token_ids)
            and token_ids[:cached] == self._cached_ids
        )

        if reuse:
            new_ids = token_ids[cached:]
            past = self._past_key_values
        else:
            new_ids = token_ids
            past = None

        input_ids = torch.tensor([new_ids], dtype=torch.long, device=self.device)

        with torch.no_grad():
            outputs = self.model(input_ids=input_ids, past_key_values=past, use_cache=True)

        self._past_key_values = outputs.past_key_values
        self._cached_ids = token_ids

        return outputs.logits[0, -1, :].float()

    def reset(self) -> None:
        self._past_key_values = None
        self._cached_ids = []

    def get_tokenizer(self) -> Any:
        return self.tokenizer

    def get_model_info(self) -> Dict[str, Any]:
        """
        Get model metadata.

        Example:
            ```python
            info = backend.get_model_info()
            print(f"Vocab size: {info['vocab_size']}")
            ```
        """
        info = {
            'model_id': self.model_id,
            'device': self.device,
            'dtype': str(self.torch_dtype),
            'backend': 'transformers'
        }

        if self.tokenizer:
            info['vocab_size'] = len(self.tokenizer)

        if self.model and hasattr(self.model, 'config'):
            config = self.model.config
            if hasattr(config, 'max_position_embeddings'):
                info['context_length'] = config.max_position_embeddings
            if hasattr(config, 'num_hidden_layers'):
                info['num_layers'] = config.num_hidden_layers

        return info

    def __repr__(self) -> str:
        return (
            f"TransformersBackend(model={self.model_id}, "
            f"device={self.device}, dtype={self.torch_dtype})"
        )
