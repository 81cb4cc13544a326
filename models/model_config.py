from dataclasses import dataclass
from typing import List, Optional

@dataclass(frozen=True)
class ModelDescriptor:
    name: str
    tier: str
    daily_limit: int
    description: str

# Rotation order. Names must be unique; they are the only identifier.
MODEL_CONFIGS: List[ModelDescriptor] = [
    ModelDescriptor(
        name="microsoft/Phi-4",
        tier="low",
        daily_limit=150,
        description="High quota, excellent for general conversation"
    ),
    ModelDescriptor(
        name="meta-llama/Llama-3.3-70B-Instruct",
        tier="low",
        daily_limit=150,
        description="High quota, great for complex reasoning"
    ),
    ModelDescriptor(
        name="openai/gpt-4o-mini",
        tier="high",
        daily_limit=50,
        description="Premium model, good for complex tasks"
    ),
    ModelDescriptor(
        name="xai/grok-3-mini",
        tier="grok",
        daily_limit=30,
        description="Conversational AI with personality"
    ),
    ModelDescriptor(
        name="openai/gpt-4o",
        tier="high",
        daily_limit=50,
        description="Most capable model for complex requests"
    ),
]

def get_model_config(name: str, configs: Optional[List[ModelDescriptor]] = None) -> Optional[ModelDescriptor]:
    """Look up a descriptor by model name"""
    for config in (configs if configs is not None else MODEL_CONFIGS):
        if config.name == name:
            return config
    return None

def validate_model_configs(configs: List[ModelDescriptor]) -> None:
    """Raise ValueError on an empty list, duplicate names or non-positive limits"""
    if not configs:
        raise ValueError("At least one model must be configured")

    seen = set()
    for config in configs:
        if config.name in seen:
            raise ValueError(f"Duplicate model name: {config.name}")
        if config.daily_limit <= 0:
            raise ValueError(f"daily_limit must be positive for {config.name}")
        seen.add(config.name)
