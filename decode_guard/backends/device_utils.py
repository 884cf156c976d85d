"""
Device detection utilities.

Device Priority:
    1. MPS (Apple Silicon Metal Performance Shaders)
    2. CUDA (NVIDIA GPUs)
    3. CPU (fallback)

Usage:
    ```python
    from decode_guard.backends import get_optimal_device

    device = get_optimal_device()  # "mps", "cuda" or "cpu"
    ```
"""

import logging
import platform
from typing import Any, Dict

import torch

logger = logging.getLogger(__name__)


def get_optimal_device(prefer_gpu: bool = True) -> str:
    """
    Detect and return the optimal device for model inference.

    Args:
        prefer_gpu: If True, prefer GPU over CPU. If False, use CPU.

    Returns:
        str: Device string ("mps", "cuda", "cpu")
    """
    if not prefer_gpu:
        logger.info("GPU disabled by user, using CPU")
        return "cpu"

    if is_mps_available():
        logger.info("Using Apple Silicon MPS (Metal Performance Shaders)")
        return "mps"

    if is_cuda_available():
        logger.info("Using CUDA (NVIDIA GPU)")
        return "cuda"

    logger.info("Using CPU (no GPU detected)")
    return "cpu"


def is_mps_available() -> bool:
    try:
        return torch.backends.mps.is_available()
    except AttributeError:
        return False


def is_cuda_available() -> bool:
    return torch.cuda.is_available()


def validate_device(device: str) -> bool:
    """
    Validate that a device is available.

    Raises:
        ValueError: If device is not supported
    """
    if device == "mps":
        available = is_mps_available()
        if not available:
            logger.warning("MPS requested but not available")
        return available

    elif device == "cuda":
        available = is_cuda_available()
        if not available:
            logger.warning("CUDA requested but not available")
        return available

    elif device == "cpu":
        return True

    else:
        raise ValueError(f"Unknown device: {device}. Use 'mps', 'cuda', or 'cpu'")


def get_device_info() -> Dict[str, Any]:
    """
    Get information about available devices.

    Returns:
        Dict with platform, processor, mps_available, cuda_available,
        cuda_device_count and optimal_device
    """
    info = {
        'platform': platform.system(),
        'processor': platform.machine(),
        'mps_available': is_mps_available(),
        'cuda_available': is_cuda_available(),
        'cuda_device_count': 0,
        'optimal_device': get_optimal_device(),
    }

    if info['cuda_available']:
        info['cuda_device_count'] = torch.cuda.device_count()

    return info
