# backend/aihub/services/chat/model_registry.py
from __future__ import annotations

import functools
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional

import yaml

from aihub.services.credits.pricing import FEATURE_COSTS

_REGISTRY_FILE = Path(__file__).resolve().parent / "registry.yaml"


@dataclass(frozen=True)
class ModelSpec:
    id: str
    provider_model: str
    display_name: str
    credits: int


@functools.lru_cache(maxsize=1)
def _load_registry() -> Dict:
    with _REGISTRY_FILE.open("r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


@functools.lru_cache(maxsize=1)
def _models() -> Dict[str, ModelSpec]:
    raw = _load_registry().get("models") or {}
    return {
        key: ModelSpec(
            id=key,
            provider_model=str(val["provider_model"]),
            display_name=str(val.get("display_name") or key),
            credits=int(val.get("credits", 0)),
        )
        for key, val in raw.items()
    }


def _agents() -> Dict[str, Dict]:
    return _load_registry().get("agents") or {}


def default_model_id() -> str:
    return (_load_registry().get("defaults") or {}).get("model", "GPT4")


def default_agent_id() -> str:
    return (_load_registry().get("defaults") or {}).get("agent", "GENERAL")


# Unknown ids fall back to the defaults so stale client state keeps working.
def resolve_model_id(model_id: Optional[str]) -> str:
    return model_id if model_id in _models() else default_model_id()


def resolve_agent_id(agent_id: Optional[str]) -> str:
    return agent_id if agent_id in _agents() else default_agent_id()


def get_model(model_id: Optional[str]) -> ModelSpec:
    return _models()[resolve_model_id(model_id)]


def list_models() -> List[ModelSpec]:
    return list(_models().values())


def provider_model(model_id: Optional[str]) -> str:
    return get_model(model_id).provider_model


def model_credits(model_id: Optional[str]) -> int:
    return get_model(model_id).credits


def required_credits(model_id: Optional[str]) -> int:
    return FEATURE_COSTS.chat_message + model_credits(model_id)


def system_prompt(agent_id: Optional[str]) -> str:
    agent = _agents()[resolve_agent_id(agent_id)]
    return str(agent.get("prompt") or "").strip()


def list_agents() -> List[str]:
    return list(_agents().keys())


def build_prompt(
    agent_id: Optional[str],
    history: Iterable[Mapping[str, str]],
    message: str,
) -> List[Dict[str, str]]:
    """System prompt, prior turns oldest first, then the new user message."""
    prompt = [{"role": "system", "content": system_prompt(agent_id)}]
    for m in history:
        prompt.append({"role": m["role"], "content": m["content"]})
    prompt.append({"role": "user", "content": message})
    return prompt
