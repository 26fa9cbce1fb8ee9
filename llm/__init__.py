"""
LLM Module

Patch generation for the correction loop.

This module provides:
- Unified BaseLLMProvider chat interface
- OpenAI-compatible (OpenAI, DeepSeek, GLM) and scripted fake providers
- Error-fix and failed-edit retry prompt templates
- Retry logic with exponential backoff
- Patch response parsing and the PatchGenerator adapter
"""

__version__ = "0.1.0"
