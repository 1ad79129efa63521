"""
UAPS Configuration
Centralized settings for the AI layers
"""

# OpenAI Model Configuration
# Each list is a fallback chain: tried in order, one call per model.
OPENAI_INFERENCE_MODELS = ["gpt-5.2-2025-12-11", "gpt-4.1", "gpt-4o-mini"]
OPENAI_EXTRACTION_MODELS = ["gpt-4.1-mini", "gpt-4o-mini", "gpt-4.1-nano"]
OPENAI_EXPERT_MODELS = ["gpt-4o-search-preview", "gpt-4o-mini-search-preview"]

OPENAI_TEMPERATURE = 0.0  # Deterministic for consistent results
OPENAI_SEED = 42  # Fixed seed for reproducibility

# Per-attempt timeout; a timeout counts as a failed attempt in the chain
AI_CALL_TIMEOUT_SECONDS = 30.0

# Review extraction batch limit
MAX_EXTRACTION_BATCH = 20
