from dataclasses import dataclass
from typing import Any, Dict, Optional

from mistralai import Mistral, models

from config import Settings
from errors import RateLimited, UpstreamError, ValidationError

TEMPERATURE = 0.7
TOP_P = 0.9


@dataclass(frozen=True)
class ModelInfo:
    name: str
    max_tokens: int
    description: str
    is_free: bool


MODELS: Dict[str, ModelInfo] = {
    "mistral-large-latest": ModelInfo("mistral-large-latest", 1000, "Most capable model, for complex questions", False),
    "mistral-medium-latest": ModelInfo("mistral-medium-latest", 1000, "Strong model for most questions", False),
    "mistral-small-latest": ModelInfo("mistral-small-latest", 1000, "Balanced model for everyday questions", True),
    "open-mistral-nemo": ModelInfo("open-mistral-nemo", 1000, "Lightweight model for simple questions", True),
}


def get_model(name: str) -> ModelInfo:
    """
    Look up a model by id.

    Raises:
        ValidationError: If the model is not one we allow.
    """
    if name not in MODELS:
        raise ValidationError(f"Unknown model: {name}. Expected one of: {', '.join(MODELS)}")
    return MODELS[name]


class MistralClient:
    """
    Thin adapter over the Mistral chat completion API.

    One call to complete() is exactly one HTTP request. Errors are classified into RateLimited (HTTP 429)
    and UpstreamError (everything else) and never retried here; retrying is the orchestrator's job.
    """

    def __init__(self, settings: Settings, client: Optional[Any] = None, debug: bool = False) -> None:
        """
        Connect to Mistral API.

        Args:
            settings: Process configuration, provides the API key and the default model.
            client: An already built Mistral client. Built from settings.mistral_api_key when omitted.
            debug: Print a line per request.
        """
        self.debug = debug
        self.default_model = get_model(settings.mistral_model)
        if client is None:
            if not settings.mistral_api_key:
                raise ValueError("Mistral API key is required. Set MISTRAL_API_KEY environment variable")
            client = Mistral(api_key=settings.mistral_api_key)
            if self.debug:
                print("[MistralClient] Mistral API connected.✓")
        self.client = client

    def complete(self, prompt: str, model: Optional[str] = None) -> str:
        """
        Send one prompt and return the text of the first choice.

        Args:
            prompt: The user message.
            model: Model id from MODELS. Defaults to the configured model.

        Returns:
            The completion text.

        Raises:
            RateLimited: The API answered 429.
            UpstreamError: Any other failure, including a response without choices.
        """
        info = get_model(model) if model else self.default_model
        if self.debug:
            print(f"[MistralClient] sending {len(prompt)} chars to {info.name}")

        try:
            response = self.client.chat.complete(
                model=info.name,
                messages=[
                    {
                        "role": "user",
                        "content": prompt,
                    },
                ],
                temperature=TEMPERATURE,
                max_tokens=info.max_tokens,
                top_p=TOP_P,
            )
        except (models.SDKError, models.HTTPValidationError) as e:
            status = getattr(e, "status_code", None)
            if status == 429:
                raise RateLimited(f"Mistral AI rate limit reached ({status})") from e
            raise UpstreamError(f"Mistral AI error ({status}): {e}", upstream_status=status) from e
        except Exception as e:
            raise UpstreamError(f"Mistral AI request failed: {e}") from e

        return self._extract_content(response)

    @staticmethod
    def _extract_content(response: Any) -> str:
        choices = getattr(response, "choices", None)
        if not choices:
            raise UpstreamError("Mistral AI returned no choices")
        message = getattr(choices[0], "message", None)
        content = getattr(message, "content", None)
        if content is None:
            raise UpstreamError("Mistral AI returned a choice without content")
        if isinstance(content, list):
            # content chunks, keep the text ones
            content = "".join(getattr(chunk, "text", "") or "" for chunk in content)
        if not isinstance(content, str):
            raise UpstreamError(f"Mistral AI returned unexpected content: {type(content).__name__}")
        return content
