"""
Shared utilities for GhostLayer components.

This package contains common functionality used across the control plane and its launchers:
- logging_config: Consistent logging setup
- token_utils: Record identifiers and access-code generation
"""
