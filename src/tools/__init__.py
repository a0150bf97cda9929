"""
Tool handlers

Every operation exposed over MCP and REST lives here as an async function
taking a ToolContext and flat parameters, returning a JSON envelope.
"""

from .context import ToolContext, utcnow
from .dispatch import PARAM_ALIASES, RESULT_KEYS, TOOLS, call, result_key
from .envelopes import AI_GENERATED_NOTE, AI_HINT, failure, success
from .errors import InvalidParameterError, NotFoundError, classify_error
from .countries import COUNTRY_BOXES, country_box

__all__ = [
    # Context
    'ToolContext',
    'utcnow',

    # Dispatch
    'PARAM_ALIASES',
    'RESULT_KEYS',
    'TOOLS',
    'call',
    'result_key',

    # Envelopes
    'AI_GENERATED_NOTE',
    'AI_HINT',
    'failure',
    'success',

    # Errors
    'InvalidParameterError',
    'NotFoundError',
    'classify_error',

    # Reference data
    'COUNTRY_BOXES',
    'country_box'
]
