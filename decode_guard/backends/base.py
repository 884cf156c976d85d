"""
Backend abstraction - unified interface for next-token scoring.

A backend wraps a language model runtime and exposes exactly what the
decoding loop needs: the raw next-token scores for a token sequence and the
tokenizer. Sampling, penalties and constraints all live in the
DecodingController, so every backend gets identical decoding behaviour.

Backend Protocol:
    - next_token_scores(token_ids): 1-D float tensor of shape (vocab_size,)
    - get_tokenizer(): encode / decode / eos_token_id
    - get_model_info(): model metadata
    - reset(): drop any cached model state before a new sequence

Usage:
    ```python
    from decode_guard.backends import BackendFactory

    backend = BackendFactory.create("gpt2", device="cpu")
    tokenizer = backend.get_tokenizer()

    ids = tokenizer.encode("Hello")
    scores = backend.next_token_scores(ids)
    ```
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence

from torch import Tensor


class Backend(ABC):
    """
    Abstract base class for model backends.

    Attributes:
        model_id: Model identifier (HF model name or file path)
        device: Device to run on (cpu, cuda, mps)
    """

    @abstractmethod
    def next_token_scores(self, token_ids: Sequence[int]) -> Tensor:
        """
        Compute raw scores for the token following ``token_ids``.

        Backends may cache model state between calls as long as
        ``token_ids`` extends the previous call's sequence; any other
        sequence must be scored from scratch.

        Args:
            token_ids: Full sequence so far (prompt + generated)

        Returns:
            Tensor: Shape (vocab_size,) with unnormalised scores
        """
        pass

    @abstractmethod
    def get_tokenizer(self) -> Any:
        """
        Get the tokenizer instance.

        The tokenizer must provide ``encode(text) -> List[int]``,
        ``decode(ids, skip_special_tokens=...) -> str`` and ``eos_token_id``.
        """
        pass

    @abstractmethod
    def get_model_info(self) -> Dict[str, Any]:
        """
        Get model metadata.

        Returns:
            Dict with at least model_id, device and vocab_size
        """
        pass

    def reset(self) -> None:
        """Drop cached model state. Called before each new sequence."""
        pass

    def __repr__(self) -> str:
        info = self.get_model_info()
        return (
            f"{self.__class__.__name__}("
            f"model={info.get('model_id', 'unknown')}, "
            f"device={info.get('device', 'unknown')})"
        )


class BackendFactory:
    """
    Factory for creating backend instances.

    Usage:
        ```python
        # Auto-detect HuggingFace model
        backend = BackendFactory.create("gpt2", device="mps")

        # Auto-detect GGUF file
        backend = BackendFactory.create("models/mistral-7b.gguf")
        ```
    """

    @staticmethod
    def create(
        model_id: str,
        backend_type: Optional[str] = None,
        device: Optional[str] = None,
        **kwargs
    ) -> Backend:
        """
        Create appropriate backend for model.

        Args:
            model_id: Model identifier or file path
            backend_type: "transformers" or "llamacpp"; auto-detected if None
            device: Device to use (transformers only)
            **kwargs: Backend-specific options

        Raises:
            ValueError: If backend type is unsupported
        """
        if backend_type is None:
            backend_type = BackendFactory.detect_backend_type(model_id)

        if backend_type == "transformers":
            from decode_guard.backends.transformers_backend import TransformersBackend
            return TransformersBackend(model_id, device=device, **kwargs)

        elif backend_type == "llamacpp":
            from decode_guard.backends.llamacpp_backend import LlamaCppBackend
            return LlamaCppBackend(model_id, **kwargs)

        raise ValueError(f"Unsupported backend type: {backend_type}")

    @staticmethod
    def detect_backend_type(model_id: str) -> str:
        """
        Auto-detect backend type from model identifier.

        Strategy:
            - If ends with .gguf or .ggml -> llamacpp
            - Otherwise -> transformers
        """
        if model_id.lower().endswith(('.gguf', '.ggml')):
            return "llamacpp"
        return "transformers"

    @staticmethod
    def list_available_backends() -> List[str]:
        """List backends whose runtime library is importable."""
        available = []

        try:
            import transformers  # noqa: F401
            available.append("transformers")
        except ImportError:
            pass

        try:
            import llama_cpp  # noqa: F401
            available.append("llamacpp")
        except ImportError:
            pass

        return available
