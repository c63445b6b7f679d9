"""
Config Service - Configuration Validation

Responsibilities:
- Check loaded configuration before the operator starts
"""

from .validator import ConfigValidator

__all__ = ["ConfigValidator"]
