"""
Model backend abstraction module.

Backends turn a token sequence into next-token scores. All decoding policy
(penalty, constraint masking, sampling, stopping) stays in the
DecodingController, so switching runtimes never changes decoding behaviour.

Components:
    - base: Abstract Backend protocol and BackendFactory
    - transformers_backend: HuggingFace transformers implementation
    - llamacpp_backend: llama.cpp implementation (optional dependency)
    - device_utils: Device detection (MPS, CUDA, CPU)

Example:
    ```python
    from decode_guard.backends import BackendFactory

    backend = BackendFactory.create("gpt2", device="cpu")
    scores = backend.next_token_scores(backend.get_tokenizer().encode("Hi"))
    ```
"""

from decode_guard.backends.base import Backend, BackendFactory
from decode_guard.backends.device_utils import (
    get_device_info,
    get_optimal_device,
    is_cuda_available,
    is_mps_available,
)

__all__ = [
    "Backend",
    "BackendFactory",
    "get_optimal_device",
    "is_mps_available",
    "is_cuda_available",
    "get_device_info",
]
