"""Input defenses for untrusted text."""

from .injection import InjectionCheck, SanitizedInput, block_marker, is_block_marker, sanitize_input

__all__ = ["InjectionCheck", "SanitizedInput", "block_marker", "is_block_marker", "sanitize_input"]
