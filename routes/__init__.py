# routes/__init__.py

from .chat import chat_bp

__all__ = [
    'chat_bp'
]
