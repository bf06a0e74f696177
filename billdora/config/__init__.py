"""
Configuration module for the billing core.
"""
from .settings import BilldoraConfig, get_config, load_config, reload_config

__all__ = [
    'BilldoraConfig',
    'get_config',
    'load_config',
    'reload_config'
]
