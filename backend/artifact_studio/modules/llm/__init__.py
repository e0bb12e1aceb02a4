from .base import GenerationSource
from .factory import build_generation_source

__all__ = ["GenerationSource", "build_generation_source"]
