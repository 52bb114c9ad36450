"""Worker module for the overlay AI backend.

Job handlers for each job type and the client they use to reach the AI provider.
"""

from .dispatcher import HandlerRegistry, JobHandler
from .handlers import ImageEditHandler, ChatHandler, build_handler_registry
from .provider import AIProviderClient, ProviderConfig, MOCK_API_KEY
from .exceptions import WorkerError, HandlerNotFoundError, InvalidImageError

__all__ = [
    'HandlerRegistry',
    'JobHandler',
    'ImageEditHandler',
    'ChatHandler',
    'build_handler_registry',
    'AIProviderClient',
    'ProviderConfig',
    'MOCK_API_KEY',
    'WorkerError',
    'HandlerNotFoundError',
    'InvalidImageError',
]

__version__ = '1.0.0'
