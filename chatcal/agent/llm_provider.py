from __future__ import annotations

import asyncio
import json
import os
import re
import traceback
from typing import Any, Dict, List, Optional, Tuple, Type, TypeVar

from pydantic import BaseModel

from ..config import LLM_DEBUG, LLM_PROVIDER
from ..llm import get_async_client

try:
  from google import genai  # type: ignore
  from google.genai import types as genai_types  # type: ignore
except Exception:  # pragma: no cover - optional dependency
  genai = None  # type: ignore
  genai_types = None  # type: ignore


T = TypeVar("T", bound=BaseModel)

_gemini_client: Any = None
_gemini_api_key_cached: str = ""
_GEMINI_DEFAULT_THINKING_LEVEL = "MINIMAL"
_GEMINI_DEFAULT_MODEL = "models/gemini-flash-latest"


def _get_openai_reasoning_effort() -> str:
  """Get OpenAI reasoning_effort from environment or default to 'low'."""
  return os.getenv("OPENAI_REASONING_EFFORT", "low").strip() or "low"


def _print_raw_output(*, kind: str, meta: Dict[str, Any], raw_output: str) -> None:
  if not LLM_DEBUG:
    return
  print(f"[NLU RAW] kind={kind} provider={meta['provider']} model={meta['model']}", flush=True)
  print(raw_output if raw_output else "(empty)", flush=True)
  print("[NLU RAW END]", flush=True)


def _join_text_parts(parts: Any) -> str:
  """Joins the non-empty text pieces of a chat message or Gemini candidate."""
  if isinstance(parts, str):
    return parts.strip()
  if not isinstance(parts, list):
    return ""
  texts: List[str] = []
  for part in parts:
    if isinstance(part, dict):
      part = part.get("text")
    elif not isinstance(part, str):
      part = getattr(part, "text", None)
    if isinstance(part, str) and part.strip():
      texts.append(part.strip())
  return " ".join(texts)


def resolve_provider(model: str) -> str:
  if LLM_PROVIDER in ("openai", "gemini"):
    return LLM_PROVIDER
  name = (model or "").strip().lower()
  return "gemini" if name.split("/")[-1].startswith("gemini") else "openai"


def _gemini_model_path(model: str) -> str:
  name = (model or "").strip()
  if not name:
    return _GEMINI_DEFAULT_MODEL
  return name if name.startswith("models/") else f"models/{name}"


def get_agent_llm_settings(prefix: str) -> Dict[str, Optional[str]]:
  """
  Fetch per-component LLM settings from the environment.
  Supports both OpenAI reasoning_effort and Gemini thinking_level.
  """
  prefix = prefix.upper().strip()
  return {
      "reasoning_effort": os.getenv(f"AGENT_{prefix}_REASONING_EFFORT"),
      "gemini_thinking_level": os.getenv(f"AGENT_{prefix}_THINKING_LEVEL"),
  }


def _gemini_response_text(response: Any) -> str:
  text = getattr(response, "text", None)
  if isinstance(text, str) and text.strip():
    return text.strip()
  pieces = [
      _join_text_parts(getattr(getattr(candidate, "content", None), "parts", None))
      for candidate in getattr(response, "candidates", None) or []
  ]
  return " ".join(piece for piece in pieces if piece)


def get_gemini_client() -> Any:
  """Returns a cached google-genai client; raises RuntimeError when unusable."""
  global _gemini_client, _gemini_api_key_cached
  if genai is None:
    raise RuntimeError("google-genai is not installed")
  api_key = os.getenv("GEMINI_API_KEY", "").strip()
  if not api_key:
    raise RuntimeError("GEMINI_API_KEY is not set")
  if _gemini_client is None or _gemini_api_key_cached != api_key:
    _gemini_client = genai.Client(api_key=api_key)
    _gemini_api_key_cached = api_key
  return _gemini_client


def _compose_instruction(system_prompt: str, developer_prompt: Optional[str]) -> str:
  instruction = system_prompt
  if isinstance(developer_prompt, str) and developer_prompt.strip():
    instruction = f"{instruction}\n\n{developer_prompt.strip()}"
  return instruction


def _clean_json_text(text: str) -> str:
  cleaned = (text or "").strip()
  if cleaned.startswith("```"):
    cleaned = re.sub(r"^```[a-zA-Z0-9_-]*\s*", "", cleaned).strip()
    cleaned = re.sub(r"\s*```$", "", cleaned).strip()
  return cleaned


def parse_json_object(raw_output: str) -> Optional[Dict[str, Any]]:
  """Best-effort extraction of one JSON object from model output.

  Accepts fenced blocks, prose around a single ``{...}`` span and a top-level
  array (its first object is used). Returns None when nothing parses.
  """
  if not raw_output:
    return None
  candidates = [raw_output, _clean_json_text(raw_output)]
  cleaned = candidates[-1]
  if cleaned:
    left = cleaned.find("{")
    right = cleaned.rfind("}")
    if left != -1 and right != -1 and right > left:
      candidates.append(cleaned[left:right + 1])
  seen = set()
  for candidate in candidates:
    text = (candidate or "").strip()
    if not text or text in seen:
      continue
    seen.add(text)
    try:
      value = json.loads(text)
    except Exception:
      continue
    if isinstance(value, dict):
      return value
    if isinstance(value, list) and value and isinstance(value[0], dict):
      return value[0]
  return None


def _validate_structured_response(response_model: Type[T],
                                  raw_output: str) -> Optional[T]:
  value = parse_json_object(raw_output)
  if value is None:
    return None
  try:
    return response_model.model_validate(value)
  except Exception:
    return None


def _gemini_config(max_completion_tokens: int,
                   thinking_level: Optional[str],
                   json_mode: bool) -> Any:
  config: Dict[str, Any] = {}
  if json_mode:
    config["response_mime_type"] = "application/json"
  if isinstance(max_completion_tokens, int) and max_completion_tokens > 0:
    config["max_output_tokens"] = max_completion_tokens
  level = str(thinking_level or os.getenv("GEMINI_THINKING_LEVEL", _GEMINI_DEFAULT_THINKING_LEVEL)).strip().upper()
  if level in ("NONE", "MINIMAL", "LOW", "MEDIUM", "HIGH"):
    config["thinking_config"] = {"thinking_level": level}
  if genai_types is not None:
    try:
      return genai_types.GenerateContentConfig(**config)
    except Exception:
      pass
  return config or None


def _gemini_generate_sync(client: Any,
                          model: str,
                          prompt: str,
                          max_completion_tokens: int,
                          thinking_level: Optional[str],
                          json_mode: bool) -> str:
  response = client.models.generate_content(
      model=_gemini_model_path(model),
      contents=prompt,
      config=_gemini_config(max_completion_tokens, thinking_level, json_mode),
  )
  return _gemini_response_text(response)


async def _complete(*,
                    model: str,
                    system_prompt: str,
                    developer_prompt: Optional[str],
                    user_payload: Dict[str, Any],
                    max_completion_tokens: int,
                    json_mode: bool,
                    reasoning_effort: Optional[str],
                    gemini_thinking_level: Optional[str]) -> Tuple[str, Dict[str, Any]]:
  """Runs one completion and never raises.

  ``meta`` carries ``available`` (a client could be built) and ``error``
  (why no text came back); NluClient turns both into NluError.
  """
  provider = resolve_provider(model)
  user_content = json.dumps(user_payload, ensure_ascii=False)
  instruction = _compose_instruction(system_prompt, developer_prompt)
  meta: Dict[str, Any] = {"model": model, "provider": provider, "available": True, "error": None}

  try:
    client = get_gemini_client() if provider == "gemini" else get_async_client()
  except RuntimeError as exc:
    meta.update({"available": False, "error": str(exc)})
    return "", meta

  try:
    if provider == "gemini":
      text = await asyncio.to_thread(_gemini_generate_sync, client, model,
                                     f"{instruction}\n\nUser:\n{user_content}",
                                     max_completion_tokens, gemini_thinking_level, json_mode)
    else:
      # OpenAI JSON mode requires the word "json" in the instructions.
      if json_mode and "json" not in instruction.lower():
        instruction += "\n\nResponse must be a valid JSON object."
      kwargs: Dict[str, Any] = {
          "model": model,
          "messages": [
              {"role": "system", "content": instruction},
              {"role": "user", "content": user_content},
          ],
          "reasoning_effort": reasoning_effort or _get_openai_reasoning_effort(),
          "max_completion_tokens": max_completion_tokens,
      }
      if json_mode:
        kwargs["response_format"] = {"type": "json_object"}
      completion = await client.chat.completions.create(**kwargs)
      text = _join_text_parts(completion.choices[0].message.content)
  except Exception as exc:
    print(f"[NLU LLM ERROR] model={model} provider={provider} error={exc}", flush=True)
    traceback.print_exc()
    meta["error"] = str(exc) or exc.__class__.__name__
    return "", meta
  if not text:
    meta["error"] = "empty output"
  return text, meta


async def run_json_completion(
    *,
    model: str,
    system_prompt: str,
    developer_prompt: Optional[str],
    user_payload: Dict[str, Any],
    max_completion_tokens: int,
    reasoning_effort: Optional[str] = None,
    gemini_thinking_level: Optional[str] = None,
) -> Tuple[Optional[Dict[str, Any]], str, Dict[str, Any]]:
  raw_output, meta = await _complete(
      model=model,
      system_prompt=system_prompt,
      developer_prompt=developer_prompt,
      user_payload=user_payload,
      max_completion_tokens=max_completion_tokens,
      json_mode=True,
      reasoning_effort=reasoning_effort,
      gemini_thinking_level=gemini_thinking_level,
  )
  _print_raw_output(kind="json", meta=meta, raw_output=raw_output)
  return parse_json_object(raw_output), raw_output, meta


async def run_structured_completion(
    *,
    model: str,
    system_prompt: str,
    developer_prompt: Optional[str],
    user_payload: Dict[str, Any],
    response_model: Type[T],
    max_completion_tokens: int,
    reasoning_effort: Optional[str] = None,
    gemini_thinking_level: Optional[str] = None,
) -> Tuple[Optional[T], str, Dict[str, Any]]:
  raw_output, meta = await _complete(
      model=model,
      system_prompt=system_prompt,
      developer_prompt=developer_prompt,
      user_payload=user_payload,
      max_completion_tokens=max_completion_tokens,
      json_mode=True,
      reasoning_effort=reasoning_effort,
      gemini_thinking_level=gemini_thinking_level,
  )
  _print_raw_output(kind="structured", meta=meta, raw_output=raw_output)
  return _validate_structured_response(response_model, raw_output), raw_output, meta


async def run_text_completion(
    *,
    model: str,
    system_prompt: str,
    developer_prompt: Optional[str],
    user_payload: Dict[str, Any],
    max_completion_tokens: int,
    reasoning_effort: Optional[str] = None,
    gemini_thinking_level: Optional[str] = None,
) -> Tuple[str, Dict[str, Any]]:
  text, meta = await _complete(
      model=model,
      system_prompt=system_prompt,
      developer_prompt=developer_prompt,
      user_payload=user_payload,
      max_completion_tokens=max_completion_tokens,
      json_mode=False,
      reasoning_effort=reasoning_effort,
      gemini_thinking_level=gemini_thinking_level,
  )
  _print_raw_output(kind="text", meta=meta, raw_output=text)
  return text, meta
