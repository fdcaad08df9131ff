import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

import httpx

from .config import MODEL_PRESETS, ModelConfig, resolve_preset


logger = logging.getLogger("uvicorn.error")

ALLOWED_ROLES = {"system", "user", "assistant"}
ANTHROPIC_VERSION = "2023-06-01"
PROVIDER_KEYS = {
    "anthropic": "ANTHROPIC_API_KEY",
    "cerebras": "CEREBRAS_API_KEY",
    "openai": "OPENAI_API_KEY",
}
DEFAULT_ENDPOINTS = {
    "anthropic": "https://api.anthropic.com/v1",
    "cerebras": "https://api.cerebras.ai/v1",
    "openai": "https://api.openai.com/v1",
}


class ProviderError(RuntimeError):
    """An upstream model call was rejected or never reached the provider."""

    def __init__(self, provider: str, status_code: Optional[int] = None, detail: str = ""):
        self.provider = provider
        self.status_code = status_code
        self.detail = detail
        if status_code is not None:
            message = f"{provider} API error: {status_code}"
        else:
            message = f"{provider} API error: {detail or 'request failed'}"
        super().__init__(message)


@dataclass
class ModelResponse:
    content: str
    model: str = ""
    usage: Optional[Dict[str, int]] = None


class ModelRouter:
    """Maps an abstract role to a provider/model pair and performs the call."""

    def __init__(
        self,
        preset_name: str = "production",
        *,
        endpoints: Optional[Dict[str, str]] = None,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 60.0,
    ) -> None:
        name = str(preset_name or "").strip().lower()
        self.preset_name = name if name in MODEL_PRESETS else "production"
        self.preset = resolve_preset(self.preset_name)
        self.endpoints = {**DEFAULT_ENDPOINTS, **{k: v for k, v in (endpoints or {}).items() if v}}
        self.client = client or httpx.AsyncClient(
            timeout=timeout,
            limits=httpx.Limits(max_connections=32, max_keepalive_connections=16),
        )

    def config_for(self, role: str) -> ModelConfig:
        config = self.preset.for_role(role)
        if config is None:
            raise ProviderError("router", None, f"unknown role: {role}")
        return config

    def _sanitize_messages(self, messages: Any) -> List[Dict[str, str]]:
        if not isinstance(messages, list):
            return []
        sanitized: List[Dict[str, str]] = []
        for msg in messages:
            if not isinstance(msg, dict):
                continue
            role = msg.get("role")
            if role not in ALLOWED_ROLES:
                continue
            content = msg.get("content")
            if content is None:
                continue
            if not isinstance(content, str):
                content = json.dumps(content, ensure_ascii=True)
            if not content.strip():
                continue
            sanitized.append({"role": role, "content": content})
        return sanitized

    def _extract_error_detail(self, response: httpx.Response) -> str:
        try:
            data = response.json()
            if isinstance(data, dict):
                return json.dumps(data, ensure_ascii=True)
        except Exception:
            pass
        try:
            return response.text
        except Exception:
            return ""

    async def _post(self, provider: str, url: str, payload: Dict[str, Any], headers: Dict[str, str]) -> Dict[str, Any]:
        try:
            resp = await self.client.post(url, json=payload, headers=headers)
            resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            detail = self._extract_error_detail(exc.response)
            logger.warning("%s call rejected (%s): %s", provider, exc.response.status_code, detail[:300])
            raise ProviderError(provider, exc.response.status_code, detail) from exc
        except httpx.RequestError as exc:
            logger.warning("%s call failed: %s", provider, exc)
            raise ProviderError(provider, None, str(exc)) from exc
        try:
            data = resp.json()
        except ValueError as exc:
            raise ProviderError(provider, resp.status_code, "response body is not JSON") from exc
        if not isinstance(data, dict):
            raise ProviderError(provider, resp.status_code, "unexpected response shape")
        return data

    async def _call_anthropic(self, config: ModelConfig, messages: List[Dict[str, str]], api_key: str) -> ModelResponse:
        system_text = next((m["content"] for m in messages if m["role"] == "system"), None)
        payload: Dict[str, Any] = {
            "model": config.model,
            "max_tokens": config.max_tokens,
            "temperature": config.temperature,
            "messages": [m for m in messages if m["role"] != "system"],
        }
        if system_text:
            payload["system"] = system_text
        headers = {
            "Content-Type": "application/json",
            "x-api-key": api_key,
            "anthropic-version": ANTHROPIC_VERSION,
        }
        url = f"{self.endpoints['anthropic'].rstrip('/')}/messages"
        data = await self._post("anthropic", url, payload, headers)
        blocks = data.get("content") or []
        text = "\n".join(
            str(block.get("text") or "")
            for block in blocks
            if isinstance(block, dict) and block.get("type", "text") == "text"
        )
        usage = data.get("usage") or {}
        return ModelResponse(
            content=text,
            model=config.model,
            usage={
                "input_tokens": int(usage.get("input_tokens") or 0),
                "output_tokens": int(usage.get("output_tokens") or 0),
            }
            if usage
            else None,
        )

    async def _call_chat_completions(
        self,
        config: ModelConfig,
        messages: List[Dict[str, str]],
        api_key: str,
    ) -> ModelResponse:
        payload = {
            "model": config.model,
            "max_tokens": config.max_tokens,
            "temperature": config.temperature,
            "messages": messages,
        }
        headers = {"Content-Type": "application/json", "Authorization": f"Bearer {api_key}"}
        url = f"{self.endpoints[config.provider].rstrip('/')}/chat/completions"
        data = await self._post(config.provider, url, payload, headers)
        choices = data.get("choices") or []
        content = ""
        if choices and isinstance(choices[0], dict):
            message = choices[0].get("message") or {}
            content = message.get("content") or ""
        usage = data.get("usage") or {}
        return ModelResponse(
            content=str(content),
            model=config.model,
            usage={
                "input_tokens": int(usage.get("prompt_tokens") or 0),
                "output_tokens": int(usage.get("completion_tokens") or 0),
            }
            if usage
            else None,
        )

    async def call(
        self,
        role: str,
        messages: List[Dict[str, Any]],
        credentials: Optional[Mapping[str, str]] = None,
    ) -> ModelResponse:
        config = self.config_for(role)
        cleaned = self._sanitize_messages(messages)
        if not cleaned:
            raise ValueError("messages must include at least one non-empty entry")
        api_key = str((credentials or {}).get(PROVIDER_KEYS[config.provider]) or "")
        if config.provider == "anthropic":
            return await self._call_anthropic(config, cleaned, api_key)
        return await self._call_chat_completions(config, cleaned, api_key)

    async def close(self) -> None:
        if not self.client.is_closed:
            await self.client.aclose()
