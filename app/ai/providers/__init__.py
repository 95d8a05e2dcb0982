"""Provider implementations."""

from app.ai.providers.gemini import GeminiImageClassifier, GeminiPlannerModel, GeminiStyleDescriber, GeminiTextModerator, build_gemini_client
from app.ai.providers.replicate import ReplicateSynthesisService

__all__ = ["GeminiImageClassifier", "GeminiPlannerModel", "GeminiStyleDescriber", "GeminiTextModerator", "ReplicateSynthesisService", "build_gemini_client"]
