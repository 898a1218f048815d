"""Utility modules"""

from .logger import get_logger, mask_token, setup_logging

__all__ = ['get_logger', 'mask_token', 'setup_logging']
