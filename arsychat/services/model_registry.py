from dataclasses import dataclass
from typing import Iterator, Optional


@dataclass(frozen=True)
class ModelDescriptor:
    alias: str
    backend_slug: str
    label: str = ""


DEFAULT_MODELS = (
    ModelDescriptor("GLM", "glm", "🤖 GLM-4"),
    ModelDescriptor("DeepSeek", "deepseek", "🧠 DeepSeek"),
    ModelDescriptor("Qwen", "qwen", "👁️ Qwen"),
    ModelDescriptor("Kimi", "kimi", "🌙 Kimi"),
)


class ModelRegistry:
    """Fixed alias -> backend slug mapping, read-only after construction."""

    def __init__(self, models=DEFAULT_MODELS, default_alias: Optional[str] = None):
        self._models = {model.alias: model for model in models}
        if default_alias and default_alias not in self._models:
            raise ValueError(f"Default model {default_alias!r} is not registered")
        self.default_alias = default_alias or None

    def __contains__(self, alias) -> bool:
        return alias in self._models

    def __iter__(self) -> Iterator[ModelDescriptor]:
        return iter(self._models.values())

    def get(self, alias: Optional[str]) -> Optional[ModelDescriptor]:
        if alias is None:
            return None
        return self._models.get(alias)

    def resolve(self, alias: Optional[str]) -> Optional[ModelDescriptor]:
        """Descriptor for ``alias``, else the default one, else None."""
        model = self.get(alias)
        if model is not None:
            return model
        return self.get(self.default_alias)
