"""
Model Catalog

Static mapping from model identifier to provider family, grouped into
display categories. The built-in catalog can be replaced by a YAML file.

YAML format:
    categories:
      - category: OpenAI
        provider: openai
        models:
          - value: gpt-4o
            label: GPT-4o
          - value: gpt-4o-mini
            label: GPT-4o-mini

Usage:
    catalog = ModelCatalog.default()
    registry = ProviderRegistry(credentials, catalog=catalog.family_map())
"""

import logging
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from utils.exceptions import ConfigError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ModelEntry:
    """A selectable model."""

    id: str
    value: str  # Model identifier sent in evaluation requests
    label: str
    category: str
    provider: str  # Provider family tag

    def to_dict(self) -> Dict[str, str]:
        return {"id": self.id, "value": self.value, "label": self.label}


# (category, provider family, [(id, value, label)])
DEFAULT_MODELS = [
    ("OpenAI", "openai", [
        ("b571e000-888c-4f1c-be50-8a77395237f3", "gpt-4o", "GPT-4o"),
        ("041df542-de82-4bc9-aec9-e0fe4b11b91d", "gpt-4o-mini", "GPT-4o-mini"),
        ("dbfb86ca-0ed2-4fb3-a10e-c6592d37430a", "gpt-3.5-turbo", "GPT-3.5 Turbo"),
    ]),
    ("Google", "google", [
        ("d00a656d-d3c7-4fd5-8545-22d8bd26e577", "gemini-2.0-flash-exp", "Gemini 2.0 Flash"),
        ("a07e1a4a-5f42-41a0-9024-9dbf9a6b8619", "gemini-1.5-flash", "Gemini 1.5 Flash"),
    ]),
    ("Meta", "groq", [
        ("d9de1159-02e7-4e58-b56a-14b4dacb086a", "llama-3.1-8b-instant", "LLaMA 3.1 8B Instant"),
        ("4102e620-f652-4e5b-a3c7-702f279b3182", "llama-3.3-70b-versatile", "LLaMA 3.3 70B Versatile"),
    ]),
]


@dataclass
class ModelCatalog:
    """Ordered collection of model entries."""

    entries: List[ModelEntry] = field(default_factory=list)

    @classmethod
    def default(cls) -> "ModelCatalog":
        entries = [
            ModelEntry(id=model_id, value=value, label=label, category=category, provider=provider)
            for category, provider, models in DEFAULT_MODELS
            for model_id, value, label in models
        ]
        return cls(entries=entries)

    @classmethod
    def from_yaml(cls, path: Path) -> "ModelCatalog":
        """Load a catalog from YAML.

        Entries without an explicit id get a stable uuid5 derived from the
        identifier, so reloading the same file yields the same ids.
        """
        path = Path(path)
        if not path.exists():
            raise ConfigError(f"Model catalog not found: {path}")

        with open(path) as f:
            data = yaml.safe_load(f) or {}

        entries = []
        for group in data.get("categories", []):
            category = group.get("category")
            provider = group.get("provider")
            if not category or not provider:
                raise ConfigError(f"Catalog group needs 'category' and 'provider': {group}")
            for m in group.get("models", []):
                if "value" not in m:
                    raise ConfigError(f"Catalog model in '{category}' is missing 'value'")
                entries.append(
                    ModelEntry(
                        id=str(m.get("id") or uuid.uuid5(uuid.NAMESPACE_URL, m["value"])),
                        value=m["value"],
                        label=m.get("label", m["value"]),
                        category=category,
                        provider=m.get("provider", provider),
                    )
                )

        logger.info(f"Loaded {len(entries)} models from {path}")
        return cls(entries=entries)

    @classmethod
    def load(cls, path: Optional[Path] = None) -> "ModelCatalog":
        """YAML catalog if a path is configured, else the built-in one."""
        if path is None:
            return cls.default()
        return cls.from_yaml(path)

    def family_map(self) -> Dict[str, str]:
        """Identifier -> provider family tag."""
        return {e.value: e.provider for e in self.entries}

    def get(self, value: str) -> Optional[ModelEntry]:
        for entry in self.entries:
            if entry.value == value:
                return entry
        return None

    def grouped(self) -> List[Dict[str, Any]]:
        """Entries grouped by category, in first-seen order."""
        groups: Dict[str, List[Dict[str, str]]] = {}
        for entry in self.entries:
            groups.setdefault(entry.category, []).append(entry.to_dict())
        return [{"category": name, "models": models} for name, models in groups.items()]
