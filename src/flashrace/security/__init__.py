"""Signer key resolution"""

from .secrets_manager import SecretsManager, create_secrets_manager

__all__ = ['SecretsManager', 'create_secrets_manager']
