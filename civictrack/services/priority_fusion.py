"""
Priority Fusion Service - combines several priority signals into one decision.

Signals:
1. Category baseline (fixed table)
2. Text urgency (keyword tiers, first match wins: CRITICAL -> HIGH -> MEDIUM)
3. Optional external classifier signal with a confidence score

A confident external signal (confidence > AI_OVERRIDE_CONFIDENCE) decides
alone. Otherwise the highest-ranked signal wins. The external signal is
never required: any failure obtaining or parsing it degrades to
baseline + text, and this service never raises to its caller.
"""

from typing import Any, Dict, List, Optional, Union
import logging

from civictrack.core.settings import settings
from civictrack.models.issue import ExternalSignal, Priority, PriorityResult
from civictrack.services.ai_signal.registry import SignalProviderRegistry, get_signal_registry

logger = logging.getLogger(__name__)


class PriorityFusionService:

    # Configuration: category baselines (unknown categories -> LOW)
    CATEGORY_BASELINES = {
        "water": Priority.MEDIUM,
        "pothole": Priority.MEDIUM,
        "streetlight": Priority.LOW,
        "drainage": Priority.MEDIUM,
        "garbage": Priority.LOW,
        "road": Priority.MEDIUM,
        "other": Priority.LOW,
    }

    # Configuration: urgency keyword tiers, checked in this order
    URGENCY_KEYWORDS = [
        (Priority.CRITICAL, ["fire", "flood", "collapse", "emergency", "danger", "accident"]),
        (Priority.HIGH, ["urgent", "serious", "major", "severe", "hazard", "unsafe"]),
        (Priority.MEDIUM, ["broken", "damaged", "leaking", "blocked"]),
    ]

    def __init__(
        self,
        signal_registry: Optional[SignalProviderRegistry] = None,
        override_confidence: Optional[float] = None,
        default_confidence: Optional[float] = None,
        fallback_confidence: Optional[float] = None,
    ):
        self.signal_registry = signal_registry
        self.override_confidence = (
            override_confidence if override_confidence is not None else settings.AI_OVERRIDE_CONFIDENCE
        )
        self.default_confidence = (
            default_confidence if default_confidence is not None else settings.DEFAULT_PRIORITY_CONFIDENCE
        )
        self.fallback_confidence = (
            fallback_confidence if fallback_confidence is not None else settings.FALLBACK_PRIORITY_CONFIDENCE
        )

    def get_category_baseline(self, category: Optional[str]) -> Priority:
        if not category:
            return Priority.LOW
        return self.CATEGORY_BASELINES.get(category.strip().lower(), Priority.LOW)

    def analyze_text_urgency(self, description: Optional[str]) -> Priority:
        text = (description or "").lower()
        for priority, keywords in self.URGENCY_KEYWORDS:
            if any(keyword in text for keyword in keywords):
                return priority
        return Priority.LOW

    def combine_priorities(
        self,
        baseline: Priority,
        text: Priority,
        external: Optional[ExternalSignal] = None,
    ) -> Priority:
        """Confident external signal wins; otherwise the highest rank wins."""
        if external is not None and external.confidence > self.override_confidence:
            return external.priority

        candidates = [baseline, text]
        if external is not None:
            candidates.append(external.priority)
        return max(candidates, key=lambda p: p.rank)

    def determine_priority(
        self,
        category: str,
        description: str,
        external_signal: Union[ExternalSignal, Dict[str, Any], None] = None,
        images: Optional[List[bytes]] = None,
    ) -> PriorityResult:
        """
        Determine the final priority of a submission.

        Args:
            category: User-selected category
            description: Free-text description
            external_signal: Classifier output already obtained upstream. When
                None, the signal registry (if any) is asked once.
            images: Optional image bytes passed to the signal provider

        Returns:
            PriorityResult with priority, confidence, reasoning and the
            component signals for audit
        """
        baseline = self.get_category_baseline(category)
        text_urgency = Priority.LOW
        try:
            text_urgency = self.analyze_text_urgency(description)

            signal, signal_error = self._resolve_signal(category, description, external_signal, images)
            final_priority = self.combine_priorities(baseline, text_urgency, signal)

            analysis = {
                "baseline": baseline.label,
                "textUrgency": text_urgency.label,
                "externalPriority": signal.priority.label if signal else None,
                "externalConfidence": signal.confidence if signal else None,
                "safetyRisk": signal.safety_risk if signal else None,
                "suggestedAction": signal.suggested_action if signal else None,
                "externalOverride": bool(signal and signal.confidence > self.override_confidence),
            }

            if signal is not None:
                confidence = signal.confidence
                reasoning = signal.reasoning or f"Priority determined from external signal and category ({category})"
            elif signal_error:
                analysis["error"] = signal_error
                confidence = self.fallback_confidence
                reasoning = (
                    f"External signal unavailable ({signal_error}), "
                    f"priority based on category ({category}) and text analysis"
                )
            else:
                confidence = self.default_confidence
                reasoning = f"Priority determined based on category ({category}) and text analysis"

            reasoning = f"{reasoning} [{self._describe_signals(baseline, text_urgency, signal)}]"

            logger.info(
                f"Final priority {final_priority.label} ({confidence:.2f}) for category={category}: "
                f"baseline={baseline.label}, text={text_urgency.label}, "
                f"external={signal.priority.label if signal else None}"
            )
            return PriorityResult(
                priority=final_priority,
                confidence=confidence,
                reasoning=reasoning,
                analysis=analysis,
            )

        except Exception as e:
            logger.error(f"❌ Priority fusion failed for category={category}: {e}")
            fallback = max([baseline, text_urgency], key=lambda p: p.rank)
            return PriorityResult(
                priority=fallback,
                confidence=self.fallback_confidence,
                reasoning="Error in priority analysis, using category baseline and text analysis",
                analysis={"baseline": baseline.label, "textUrgency": text_urgency.label, "error": str(e)},
            )

    def _resolve_signal(self, category, description, external_signal, images):
        """Returns (signal or None, error message or None). Never raises."""
        if external_signal is not None:
            if isinstance(external_signal, ExternalSignal):
                return external_signal, None
            try:
                return ExternalSignal.model_validate(external_signal), None
            except Exception as e:
                logger.warning(f"Discarding malformed external signal: {e}")
                return None, f"malformed external signal: {e}"

        registry = self.signal_registry
        if registry is None or not registry.providers:
            return None, None
        try:
            signal = registry.get_signal(category, description, images)
        except Exception as e:
            logger.warning(f"External signal lookup failed: {e}")
            return None, str(e)
        if signal is None:
            return None, "no provider returned a signal"
        return signal, None

    @staticmethod
    def _describe_signals(baseline: Priority, text: Priority, signal: Optional[ExternalSignal]) -> str:
        parts = [f"baseline={baseline.label}", f"text={text.label}"]
        if signal is not None:
            parts.append(f"external={signal.priority.label}@{signal.confidence:.2f}")
        return ", ".join(parts)


_priority_fusion_service: Optional[PriorityFusionService] = None


def get_priority_fusion_service() -> PriorityFusionService:
    """Get or create the PriorityFusionService singleton (uses the configured signal providers)."""
    global _priority_fusion_service
    if _priority_fusion_service is None:
        _priority_fusion_service = PriorityFusionService(signal_registry=get_signal_registry())
    return _priority_fusion_service
