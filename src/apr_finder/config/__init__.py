"""Configuration system."""

from apr_finder.config.credentials import Credentials, CredentialSpec, resolve_credentials
from apr_finder.config.loader import load_config
from apr_finder.config.schema import AppConfig

__all__ = [
    "AppConfig",
    "CredentialSpec",
    "Credentials",
    "load_config",
    "resolve_credentials",
]
