"""
Signal Provider Registry.

Tries the configured providers in order and returns the first signal.
Returns None when AI is disabled or every provider fails; callers then
decide priority without an external opinion.
"""

from typing import List, Optional
import logging

from civictrack.core.settings import settings
from civictrack.models.issue import ExternalSignal
from civictrack.services.ai_signal.base import SignalProvider
from civictrack.services.ai_signal.gemini_provider import GeminiSignalProvider

logger = logging.getLogger(__name__)


class SignalProviderRegistry:

    def __init__(self, providers: Optional[List[SignalProvider]] = None):
        if providers is not None:
            self.providers = providers
        else:
            self.providers = []
            self._initialize_providers()

    def _initialize_providers(self):
        if not settings.AI_ENABLED:
            logger.info("⚠️ AI is disabled globally (AI_ENABLED=false), no external priority signal")
            return

        gemini_provider = GeminiSignalProvider()
        if gemini_provider.is_enabled():
            self.providers.append(gemini_provider)
            logger.info("✅ Gemini signal provider registered")

    def get_signal(
        self,
        category: str,
        description: str,
        images: Optional[List[bytes]] = None,
    ) -> Optional[ExternalSignal]:
        for provider in self.providers:
            if not provider.is_enabled():
                continue
            name = provider.get_model_info()["name"]
            try:
                signal = provider.classify(category, description, images)
                logger.info(f"✅ External signal from {name}: {signal.priority.label} ({signal.confidence:.2f})")
                return signal
            except Exception as e:
                logger.warning(f"Signal provider {name} failed: {e}")
                continue

        return None


_registry: Optional[SignalProviderRegistry] = None


def get_signal_registry() -> SignalProviderRegistry:
    """Get or create the SignalProviderRegistry singleton."""
    global _registry
    if _registry is None:
        _registry = SignalProviderRegistry()
    return _registry
