"""
Optional inference backends for detect_kit.

Backends are kept in a separate module so pre/post-processing stays
importable without an inference runtime installed. Each backend exposes a
synchronous `infer(blob) -> np.ndarray`.
"""

from __future__ import annotations

__all__ = []
