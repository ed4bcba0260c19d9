"""Gemini client with a safe no-op fallback.

This module never hard-fails when GEMINI_API_KEY is missing. Instead, callers
receive a structured skipped status and fall back to deterministic results.
"""
from __future__ import annotations

import hashlib
import json
import logging
import os
import re
from dataclasses import dataclass
from typing import Any, Callable, Optional

import requests

from . import config

logger = logging.getLogger(__name__)

GEMINI_API_URL_TEMPLATE = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"
DEFAULT_MODEL_CHAIN = [
    "gemini-2.5-flash",
    "gemini-2.5-flash-lite",
]

Validator = Callable[[Any], None]

_CLOSERS = {"{": "}", "[": "]"}


@dataclass(frozen=True)
class GeminiCallResult:
    status: str
    raw_text: str
    data: Any
    model: str
    prompt_name: str
    prompt_hash: str
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == "ok"


def hash_text(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def extract_json_substring(text: str, opener: str = "{") -> Optional[str]:
    """Return the first balanced JSON object ("{") or array ("[") in text.

    Brackets inside string literals are ignored. Candidates that do not parse
    are skipped so surrounding prose containing stray brackets is tolerated.
    """
    closer = _CLOSERS[opener]
    start = text.find(opener)
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for i in range(start, len(text)):
            ch = text[i]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
                continue
            if ch == '"':
                in_string = True
            elif ch in "{[":
                depth += 1
            elif ch in "}]":
                depth -= 1
                if depth == 0:
                    candidate = text[start : i + 1]
                    if ch == closer:
                        try:
                            json.loads(candidate)
                            return candidate
                        except json.JSONDecodeError:
                            pass
                    break
        start = text.find(opener, start + 1)
    return None


def parse_json_loose(text: str, expect: str = "object") -> tuple[Any, Optional[str]]:
    opener = "[" if expect == "array" else "{"
    candidate = extract_json_substring(text or "", opener)
    if candidate is None:
        return None, f"no_json_{expect}_found"
    return json.loads(candidate), None


class BaseGeminiClient:
    available = True

    def generate_json(
        self,
        prompt_name: str,
        prompt_text: str,
        expect: str = "object",
        temperature: float = 0.2,
        validator: Optional[Validator] = None,
    ) -> GeminiCallResult:
        raise NotImplementedError


class NoopGeminiClient(BaseGeminiClient):
    available = False

    def __init__(self, reason: str = "skipped_no_api_key") -> None:
        self.reason = reason

    def generate_json(
        self,
        prompt_name: str,
        prompt_text: str,
        expect: str = "object",
        temperature: float = 0.2,
        validator: Optional[Validator] = None,
    ) -> GeminiCallResult:
        return GeminiCallResult(
            status=self.reason,
            raw_text="",
            data=None,
            model="noop",
            prompt_name=prompt_name,
            prompt_hash=hash_text(prompt_text),
            error=None,
        )


class GeminiClient(BaseGeminiClient):
    def __init__(
        self,
        api_key: str,
        model: Optional[str] = None,
        timeout_seconds: Optional[int] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.api_key = api_key
        self.model = model or config.GEMINI_MODEL
        self.timeout_seconds = config.HTTP_TIMEOUT_SECONDS if timeout_seconds is None else timeout_seconds
        self.session = session or requests.Session()

    @classmethod
    def from_env(cls) -> BaseGeminiClient:
        api_key = os.environ.get("GEMINI_API_KEY")
        if not api_key:
            return NoopGeminiClient("skipped_no_api_key")
        model = os.environ.get("GEMINI_MODEL", config.GEMINI_MODEL)
        return cls(api_key=api_key, model=model)

    def _redact(self, text: str) -> str:
        if not text:
            return text
        redacted = text.replace(self.api_key, "[REDACTED]")
        redacted = re.sub(r"(key=)[^&\s()]+", r"\1[REDACTED]", redacted)
        return redacted

    def _call_api(
        self, prompt_text: str, model: str, temperature: float
    ) -> tuple[str, Optional[str], Optional[str]]:
        url = f"{GEMINI_API_URL_TEMPLATE.format(model=model)}?key={self.api_key}"
        payload = {
            "contents": [
                {
                    "role": "user",
                    "parts": [{"text": prompt_text}],
                }
            ],
            "generationConfig": {
                "temperature": temperature,
            },
        }
        try:
            resp = self.session.post(url, json=payload, timeout=self.timeout_seconds)
        except requests.RequestException as exc:
            return "", "request_error", f"request_error: {exc}"
        if resp.status_code >= 400:
            return resp.text, "http_error", f"http_error: {resp.status_code}"
        try:
            data = resp.json()
        except ValueError as exc:
            return resp.text, "invalid_json", f"non_json_response: {exc}"
        candidates = data.get("candidates") or []
        if not candidates:
            return json.dumps(data, ensure_ascii=False), "invalid_json", "no_candidates"
        content = candidates[0].get("content") or {}
        parts = content.get("parts") or []
        if not parts:
            return json.dumps(data, ensure_ascii=False), "invalid_json", "no_parts"
        text = parts[0].get("text")
        if not isinstance(text, str):
            return json.dumps(data, ensure_ascii=False), "invalid_json", "missing_text_part"
        return text, None, None

    def _model_chain(self) -> list[str]:
        primary = (self.model or "").strip()
        chain: list[str] = []
        if primary:
            chain.append(primary)
        for model in DEFAULT_MODEL_CHAIN:
            if model not in chain:
                chain.append(model)
        return chain

    def _result(
        self,
        status: str,
        raw_text: str,
        model: str,
        prompt_name: str,
        prompt_hash: str,
        data: Any = None,
        error: Optional[str] = None,
    ) -> GeminiCallResult:
        result = GeminiCallResult(
            status=status,
            raw_text=self._redact(raw_text),
            data=data,
            model=model,
            prompt_name=prompt_name,
            prompt_hash=prompt_hash,
            error=self._redact(error) if error else None,
        )
        if status != "ok":
            logger.warning("Gemini %s failed (%s): %s", prompt_name, status, result.error)
        return result

    def generate_json(
        self,
        prompt_name: str,
        prompt_text: str,
        expect: str = "object",
        temperature: float = 0.2,
        validator: Optional[Validator] = None,
    ) -> GeminiCallResult:
        prompt_hash = hash_text(prompt_text)
        last_raw_text = ""
        last_error_type: Optional[str] = None
        last_error_detail: Optional[str] = None
        used_model = self.model

        for model in self._model_chain():
            used_model = model
            raw_text, error_type, error_detail = self._call_api(prompt_text, model, temperature)
            if error_type in {"http_error", "request_error"}:
                last_raw_text = raw_text
                last_error_type = error_type
                last_error_detail = error_detail
                continue
            if error_type:
                return self._result(
                    error_type, raw_text, model, prompt_name, prompt_hash, error=error_detail
                )

            last_raw_text = raw_text
            last_error_type = None
            last_error_detail = None
            break

        if last_error_type in {"http_error", "request_error"}:
            return self._result(
                last_error_type,
                last_raw_text,
                used_model,
                prompt_name,
                prompt_hash,
                error=last_error_detail or last_error_type,
            )

        parsed, parse_error = parse_json_loose(last_raw_text, expect)
        if parse_error:
            return self._result(
                "invalid_json", last_raw_text, used_model, prompt_name, prompt_hash, error=parse_error
            )
        if validator is not None:
            try:
                validator(parsed)
            except (TypeError, ValueError, KeyError) as exc:
                return self._result(
                    "invalid_json",
                    last_raw_text,
                    used_model,
                    prompt_name,
                    prompt_hash,
                    error=f"validation_error: {exc}",
                )
        return self._result("ok", last_raw_text, used_model, prompt_name, prompt_hash, data=parsed)
