from openai import AsyncOpenAI

from chauffeur_bot.config import ModelConfig
from chauffeur_bot.inference.base import LanguageInferenceService
from chauffeur_bot.inference.keyword import KeywordFieldExtractor
from chauffeur_bot.inference.openai_extractor import OpenAIFieldExtractor


def create_inference_service(config: ModelConfig) -> LanguageInferenceService:
    """OpenAI-backed inference when a key is configured, keyword rules otherwise."""
    if config.openai_api_key:
        return OpenAIFieldExtractor(
            client=AsyncOpenAI(api_key=config.openai_api_key),
            model=config.llm_model,
            temperature=config.llm_temperature,
            transcription_model=config.transcription_model,
            vision_model=config.vision_model,
        )
    return KeywordFieldExtractor()


__all__ = [
    "LanguageInferenceService",
    "KeywordFieldExtractor",
    "OpenAIFieldExtractor",
    "create_inference_service",
]
