"""
Connection settings, loaded from layered configuration files.
"""
from btcommand.config.config import ConnectionSettings, load_settings

__all__ = ['ConnectionSettings', 'load_settings']
