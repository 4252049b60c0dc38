"""
Intelligence Module
LLM abstraction, tolerant JSON parsing and instructional classification
"""
from .llm import (
    BaseLLM,
    LLMResponse,
    Message,
    OpenAILLM,
    AnthropicLLM,
    get_llm,
)
from .json_extract import extract_json_object
from .classifier import InstructionalClassifier, detect_content_type, parse_classification

__all__ = [
    "BaseLLM",
    "LLMResponse",
    "Message",
    "OpenAILLM",
    "AnthropicLLM",
    "get_llm",
    "extract_json_object",
    "InstructionalClassifier",
    "detect_content_type",
    "parse_classification",
]
