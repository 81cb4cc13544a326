import os
import logging
from typing import Dict, List, Optional

from openai import OpenAI

from utils.errors import MissingCredential

logger = logging.getLogger(__name__)

DEFAULT_ENDPOINT = "https://models.github.ai/inference"
DEFAULT_TIMEOUT = 30.0

EMPTY_REPLY = "I apologize, but I couldn't generate a response. Please try again."

class InferenceClient:
    """Chat completions against the GitHub Models (OpenAI-compatible) endpoint"""

    def __init__(self, token: Optional[str] = None, endpoint: Optional[str] = None,
                 timeout: Optional[float] = None):
        self.token = token or os.getenv('GITHUB_TOKEN')
        if not self.token:
            raise MissingCredential('GITHUB_TOKEN')

        self.endpoint = endpoint or os.getenv('INFERENCE_ENDPOINT', DEFAULT_ENDPOINT)
        self.timeout = timeout or float(os.getenv('INFERENCE_TIMEOUT', DEFAULT_TIMEOUT))

        # Retries are handled by model rotation, not by the SDK
        self.client = OpenAI(
            base_url=self.endpoint,
            api_key=self.token,
            timeout=self.timeout,
            max_retries=0
        )

        self.temperature = 0.7
        self.max_tokens = 4000
        self.top_p = 0.95

    def complete(self, model: str, messages: List[Dict]) -> str:
        """
        Run one chat completion

        Args:
            model: Model identifier, e.g. "openai/gpt-4o-mini"
            messages: System prompt followed by conversation turns

        Returns:
            Completion text

        Raises:
            openai.APIError subclasses, unchanged, for the caller to classify
        """
        completion = self.client.chat.completions.create(
            model=model,
            messages=messages,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
            top_p=self.top_p
        )

        if not completion.choices:
            return EMPTY_REPLY

        content = completion.choices[0].message.content
        return content or EMPTY_REPLY

    def list_models(self) -> List[Dict]:
        """Models visible to the configured token; empty list on failure"""
        try:
            page = self.client.models.list()
            return [model.model_dump() for model in page.data]
        except Exception as e:
            logger.error(f"Error fetching available models: {str(e)}")
            return []
