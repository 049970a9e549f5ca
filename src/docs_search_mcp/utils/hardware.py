"""
Hardware Detection Module

Best-effort memory and device detection used to decide whether the
embedding model should be loaded at all, and on which device.
"""

import logging
from typing import Any, Dict, Optional

import psutil
import torch

logger = logging.getLogger(__name__)

_GB = 1024**3


def get_system_memory() -> Dict[str, float]:
    """Get system RAM statistics."""
    memory = psutil.virtual_memory()
    return {
        "total_gb": memory.total / _GB,
        "available_gb": memory.available / _GB,
        "used_gb": memory.used / _GB,
        "percent": memory.percent,
    }


def available_memory_gb() -> Optional[float]:
    """Available RAM in GB, or None when it cannot be determined."""
    try:
        return get_system_memory()["available_gb"]
    except Exception as e:
        logger.warning(f"Could not read system memory: {e}")
        return None


def get_gpu_info(gpu_id: int = 0) -> Dict[str, Any]:
    """Get GPU information."""
    if not torch.cuda.is_available():
        return {"cuda_available": False}

    props = torch.cuda.get_device_properties(gpu_id)
    return {
        "cuda_available": True,
        "device_name": props.name,
        "total_memory_gb": props.total_memory / _GB,
        "free_memory_gb": (props.total_memory - torch.cuda.memory_allocated(gpu_id))
        / _GB,
    }


def select_device(preference: str = "auto", min_free_gb: float = 1.0) -> str:
    """
    Resolve a device preference to a torch device string.

    Preference values:
    - 'cpu': always CPU
    - 'cuda' / 'gpu': CUDA if available, CPU otherwise
    - 'auto' (default): CUDA when available with enough free memory
    """
    preference = (preference or "auto").lower()

    if preference == "cpu":
        logger.info("GPU usage disabled by configuration")
        return "cpu"

    if not torch.cuda.is_available():
        if preference in ("cuda", "gpu"):
            logger.warning("GPU forced but CUDA not available, using CPU")
        return "cpu"

    if preference in ("cuda", "gpu"):
        return "cuda"

    info = get_gpu_info()
    if info["free_memory_gb"] < min_free_gb:
        logger.warning(
            f"Low GPU memory ({info['free_memory_gb']:.2f}GB free), using CPU"
        )
        return "cpu"

    logger.info(f"Using GPU: {info['device_name']}")
    return "cuda"
