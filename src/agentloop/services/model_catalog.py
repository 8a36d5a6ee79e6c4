"""Static catalog of model providers and logical models.

A logical model is the user-facing id stored on an agent (``llama-3.3-70b``,
``kling-3.0``). Each one lists the backend routes it can resolve to; the
router tries them in ascending priority order.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

PROVIDER_REGISTRY: dict[str, dict[str, Any]] = {
    "ollama": {
        "name": "Ollama (Local)",
        "endpoint": "http://localhost:11434/v1",
        "env_key": None,
        "local": True,
    },
    "deepinfra": {
        "name": "DeepInfra",
        "endpoint": "https://api.deepinfra.com/v1/openai",
        "env_key": "DEEPINFRA_API_KEY",
        "local": False,
    },
    "together": {
        "name": "Together AI",
        "endpoint": "https://api.together.xyz/v1",
        "env_key": "TOGETHER_API_KEY",
        "local": False,
    },
    "openai": {
        "name": "OpenAI",
        "endpoint": "https://api.openai.com/v1",
        "env_key": "OPENAI_API_KEY",
        "local": False,
    },
    "fal": {
        "name": "fal.ai",
        "endpoint": "https://queue.fal.run",
        "env_key": "FAL_API_KEY",
        "local": False,
    },
}

SUPPORTED_PROVIDERS: list[str] = sorted(PROVIDER_REGISTRY.keys())


@dataclass(frozen=True)
class BackendRoute:
    """A concrete (provider, provider model id, priority) a logical model can resolve to."""

    provider_id: str
    provider_model_id: str
    priority: int


@dataclass(frozen=True)
class LogicalModel:
    id: str
    name: str
    type: str  # chat | image | video | 3d
    backends: tuple[BackendRoute, ...] = field(default_factory=tuple)


def _model(model_id: str, name: str, model_type: str, *routes: tuple[str, str, int]) -> LogicalModel:
    return LogicalModel(
        id=model_id,
        name=name,
        type=model_type,
        backends=tuple(BackendRoute(*route) for route in routes),
    )


LOGICAL_MODELS: dict[str, LogicalModel] = {
    m.id: m
    for m in (
        # Chat
        _model(
            "llama-4-maverick",
            "Llama 4 Maverick",
            "chat",
            ("deepinfra", "meta-llama/Llama-4-Maverick-17B-128E-Instruct-FP8", 1),
        ),
        _model(
            "llama-3.3-70b",
            "Llama 3.3 70B",
            "chat",
            ("deepinfra", "meta-llama/Llama-3.3-70B-Instruct-Turbo", 1),
            ("together", "meta-llama/Llama-3.3-70B-Instruct-Turbo", 2),
        ),
        _model(
            "llama-3.2-3b",
            "Llama 3.2 3B",
            "chat",
            ("ollama", "llama3.2", 1),
            ("deepinfra", "meta-llama/Llama-3.2-3B-Instruct", 2),
        ),
        _model(
            "qwen-2.5-72b",
            "Qwen 2.5 72B",
            "chat",
            ("deepinfra", "Qwen/Qwen2.5-72B-Instruct", 1),
            ("together", "Qwen/Qwen2.5-72B-Instruct-Turbo", 2),
        ),
        _model(
            "deepseek-v3",
            "DeepSeek V3",
            "chat",
            ("deepinfra", "deepseek-ai/DeepSeek-V3", 1),
            ("together", "deepseek-ai/DeepSeek-V3", 2),
        ),
        _model("gpt-4o", "GPT-4o", "chat", ("openai", "gpt-4o", 1)),
        _model("gpt-4o-mini", "GPT-4o Mini", "chat", ("openai", "gpt-4o-mini", 1)),
        # Media (fal.ai queue models)
        _model("nano-banana-pro", "Nano Banana Pro", "image", ("fal", "fal-ai/nano-banana-pro", 1)),
        _model(
            "kling-3.0",
            "Kling 3.0",
            "video",
            ("fal", "fal-ai/kling-video/v3/standard/text-to-video", 1),
        ),
        _model(
            "seedance-2.0",
            "Seedance 2.0",
            "video",
            ("fal", "fal-ai/bytedance/seedance/v2/text-to-video", 1),
        ),
        _model(
            "hunyuan-3d-v3.1-pro",
            "Hunyuan 3D 3.1 Pro",
            "3d",
            ("fal", "fal-ai/hunyuan3d-v3/image-to-3d", 1),
        ),
    )
}

DEFAULT_MEDIA_MODELS: dict[str, str] = {
    "image": "nano-banana-pro",
    "video": "kling-3.0",
    "3d": "hunyuan-3d-v3.1-pro",
}


def get_provider(provider_id: str) -> dict[str, Any] | None:
    return PROVIDER_REGISTRY.get(provider_id)


def get_logical_model(model_id: str) -> LogicalModel | None:
    return LOGICAL_MODELS.get(model_id)


def list_logical_models(model_type: str | None = None) -> list[LogicalModel]:
    """All catalog models, optionally restricted to one type."""
    return [m for m in LOGICAL_MODELS.values() if model_type is None or m.type == model_type]


def sorted_routes(model: LogicalModel) -> list[BackendRoute]:
    """Backend routes in resolution order (ascending priority, stable)."""
    return sorted(model.backends, key=lambda route: route.priority)
