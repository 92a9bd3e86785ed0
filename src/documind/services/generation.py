"""Generation backends for DocuMind."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

from documind.errors import GenerationUnavailable

if TYPE_CHECKING:  # pragma: no cover - typing only
    from documind.config import Settings

LOGGER = logging.getLogger(__name__)

_FIRST_ENTRY = re.compile(
    r"^\[1\] Source: (?P<source>[^|\n]+?)(?: \| page: (?P<page>\d+))?(?: \|[^\n]*)?\n(?P<content>[^\n]+)",
    re.MULTILINE,
)


@dataclass(frozen=True)
class GenerationConfig:
    """Configuration for answer generation."""

    model: str = "Qwen/Qwen2.5-1.5B-Instruct"
    max_new_tokens: int = 512
    temperature: float = 0.3
    use_model: bool = False
    device: str | None = None


class AnswerGenerator(Protocol):
    """Protocol describing generation behaviour."""

    def generate(self, system_prompt: str, user_query: str) -> str:
        """Return an answer for ``user_query`` grounded in ``system_prompt``."""


class TemplateGenerator:
    """Simple deterministic generator used for tests and offline environments.

    Answers with the best matching context entry and cites it following the
    citation rules of the system prompt.
    """

    no_context_answer = "I do not have enough relevant context to answer that question."

    def __init__(self, max_chars: int = 300) -> None:
        self._max_chars = max_chars

    def generate(self, system_prompt: str, user_query: str) -> str:
        match = _FIRST_ENTRY.search(system_prompt)
        if match is None:
            return self.no_context_answer
        content = match.group("content").strip()
        if len(content) > self._max_chars:
            content = content[: self._max_chars].rstrip() + "..."
        source = match.group("source").strip()
        page = match.group("page")
        tag = f"(Source: {source}, page {page})" if page else f"(Source: {source})"
        return f"Based on your saved knowledge: {content} {tag}"


class TransformersGenerator:
    """Generator that calls into a local chat model via Transformers."""

    def __init__(self, config: GenerationConfig | None = None) -> None:
        self._config = config or GenerationConfig()
        try:
            from transformers import AutoModelForCausalLM, AutoTokenizer

            self._tokenizer = AutoTokenizer.from_pretrained(self._config.model, trust_remote_code=True)
            self._model = AutoModelForCausalLM.from_pretrained(self._config.model, trust_remote_code=True)
        except Exception as exc:
            raise GenerationUnavailable(f"Could not load generation model {self._config.model}: {exc}") from exc
        if self._tokenizer.pad_token is None and self._tokenizer.eos_token is not None:
            self._tokenizer.pad_token = self._tokenizer.eos_token
        if getattr(self._model.config, "pad_token_id", None) is None and self._tokenizer.pad_token_id is not None:
            self._model.config.pad_token_id = self._tokenizer.pad_token_id
        if self._config.device:
            self._model.to(self._config.device)
        LOGGER.info("Loaded generation model %s", self._config.model)

    def generate(self, system_prompt: str, user_query: str) -> str:
        try:
            return self._generate(system_prompt, user_query)
        except Exception as exc:
            raise GenerationUnavailable(f"Generation with {self._config.model} failed: {exc}") from exc

    def _generate(self, system_prompt: str, user_query: str) -> str:
        import torch

        messages = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_query},
        ]
        if hasattr(self._tokenizer, "apply_chat_template"):
            prompt = self._tokenizer.apply_chat_template(messages, tokenize=False, add_generation_prompt=True)
        else:
            prompt = f"{system_prompt}\n\nQuestion: {user_query}\nAnswer:"
        tokenized = self._tokenizer(prompt, return_tensors="pt", padding=True)
        input_ids = tokenized.input_ids
        attention_mask = tokenized.attention_mask
        prompt_length = input_ids.shape[1]
        if self._config.device:
            input_ids = input_ids.to(self._config.device)
            attention_mask = attention_mask.to(self._config.device)
        with torch.no_grad():
            output = self._model.generate(
                input_ids,
                attention_mask=attention_mask,
                max_new_tokens=self._config.max_new_tokens,
                temperature=self._config.temperature,
                do_sample=self._config.temperature > 0,
            )
        generated_tokens = output[0][prompt_length:]
        return self._tokenizer.decode(generated_tokens, skip_special_tokens=True).strip()


def build_generator(settings: "Settings") -> AnswerGenerator:
    config = GenerationConfig(
        model=settings.generator_model,
        max_new_tokens=settings.generator_max_new_tokens,
        temperature=settings.generator_temperature,
        use_model=settings.use_model_generator,
        device=settings.generator_device,
    )
    if not config.use_model:
        LOGGER.info("Using template generator; set DOCUMIND_USE_MODEL_GENERATOR to load %s.", config.model)
        return TemplateGenerator()
    try:
        return TransformersGenerator(config)
    except GenerationUnavailable as exc:  # pragma: no cover - depends on local model availability
        LOGGER.warning("Falling back to template generator: %s", exc)
        return TemplateGenerator()
