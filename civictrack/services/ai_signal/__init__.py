"""
External priority signal providers.

Optional: submissions are prioritised without them when disabled or failing.
"""

from civictrack.services.ai_signal.base import SignalProvider
from civictrack.services.ai_signal.gemini_provider import GeminiSignalProvider
from civictrack.services.ai_signal.registry import SignalProviderRegistry, get_signal_registry

__all__ = [
    "SignalProvider",
    "GeminiSignalProvider",
    "SignalProviderRegistry",
    "get_signal_registry",
]
