"""
External priority signal provider interface.

A provider asks a hosted classifier for a priority opinion on a submission.
The result is advisory: PriorityFusion decides how much weight it gets.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from civictrack.models.issue import ExternalSignal


class SignalProvider(ABC):
    """
    Abstract base class for external signal providers.

    classify() may raise on network, timeout or parse failures; the registry
    catches those and moves on to the next provider.
    """

    @abstractmethod
    def is_enabled(self) -> bool:
        pass

    @abstractmethod
    def get_model_info(self) -> Dict[str, str]:
        """Dict with 'name' and 'version' keys."""
        pass

    @abstractmethod
    def get_timeout_seconds(self) -> float:
        pass

    @abstractmethod
    def classify(
        self,
        category: str,
        description: str,
        images: Optional[List[bytes]] = None,
    ) -> ExternalSignal:
        """
        Classify a submission.

        Args:
            category: User-selected category
            description: Free-text description
            images: Optional raw image bytes (JPEG)

        Returns:
            ExternalSignal with priority and confidence
        """
        pass
