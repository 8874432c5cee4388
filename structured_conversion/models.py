"""Model names and the provider that serves each of them."""

from enum import StrEnum


class Provider(StrEnum):
    GEMINI = "gemini"
    OPENAI = "openai"


class GeminiModels(StrEnum):
    GEMINI_20_FLASH_LITE = "models/gemini-2.0-flash-lite"
    GEMINI_25_FLASH_LITE = "models/gemini-2.5-flash-lite"
    GEMINI_25_FLASH = "models/gemini-2.5-flash"
    GEMINI_FLASH_LATEST = "models/gemini-flash-latest"
    GEMINI_25_PRO = "models/gemini-2.5-pro"


class OpenAIModels(StrEnum):
    GPT_4O_MINI = "gpt-4o-mini"
    GPT_4O = "gpt-4o"
    GPT_41_MINI = "gpt-4.1-mini"
    GPT_5_NANO = "gpt-5-nano"


DEFAULT_MODEL = OpenAIModels.GPT_4O_MINI

API_KEY_ENV: dict[Provider, str] = {
    Provider.GEMINI: "GEMINI_API_KEY",
    Provider.OPENAI: "OPENAI_API_KEY",
}

_KNOWN_MODELS: dict[str, Provider] = {
    **{model.value.lower(): Provider.GEMINI for model in GeminiModels},
    **{model.value.lower(): Provider.OPENAI for model in OpenAIModels},
}


def normalize_model_name(model_name: str, provider: Provider) -> str:
    """
    Normalize a model name to the form its provider API expects.

    Gemini names carry a ``models/`` prefix; OpenAI names never do.

    Args:
        model_name: Model name as given on the command line or in code.
        provider: Provider serving the model.

    Returns:
        The normalized model name.
    """
    name = model_name.strip()
    if provider == Provider.GEMINI and not name.startswith("models/"):
        return f"models/{name}"
    if provider == Provider.OPENAI:
        return name.removeprefix("models/")
    return name


def get_provider(model_name: str) -> Provider:
    """
    Get the provider for a given model name.

    Known names match case-insensitively, with or without the ``models/``
    prefix. Unknown names containing "gemini" go to Gemini, anything else to
    OpenAI.

    Args:
        model_name: The model name to look up.

    Returns:
        Provider enum value.
    """
    lowered = model_name.strip().lower()
    for candidate in (lowered, f"models/{lowered}"):
        if candidate in _KNOWN_MODELS:
            return _KNOWN_MODELS[candidate]
    if "gemini" in lowered:
        return Provider.GEMINI
    return Provider.OPENAI
