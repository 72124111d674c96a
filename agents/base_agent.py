# agents/base_agent.py
#
# ============================================================================
# WHAT THIS FILE DOES:
# This is the "blueprint" for the AI agents in our system. An agent has a
# system prompt and sends ONE user prompt to an LLM, getting ONE text answer
# back. No tool calls, no multi-turn loop: the Gmail data an agent needs is
# gathered beforehand and written into the prompt.
#
# MULTI-PROVIDER SUPPORT:
#   This file supports two LLM providers:
#     1. OpenAI (default): the Chat Completions API.
#     2. Anthropic (fallback): the Messages API.
#   If OpenAI fails, the system automatically falls back to Anthropic.
#
# Both calls retry on rate-limit / overload errors with exponential backoff.
# Everything is logged to STDERR, because in stdio mode STDOUT carries the
# MCP protocol itself.
# ============================================================================

# ── IMPORTS ────────────────────────────────────────────────────────────

import random
import time

# Anthropic SDK (fallback provider)
from anthropic import Anthropic, APIStatusError

# OpenAI SDK (primary provider)
from openai import OpenAI

from rich.console import Console
from rich.markup import escape


# ── PROVIDER SETTINGS ───────────────────────────────────────────────────
# Import from config so all settings live in one place.

from config.settings import (
    OPENAI_API_KEY, OPENAI_MODEL,
    ANTHROPIC_API_KEY, ANTHROPIC_MODEL,
    MAX_TOKENS, RETRYABLE_STATUS_CODES,
)

console = Console(stderr=True)

# Determine which provider is available.
# OpenAI is preferred (primary); Anthropic is the fallback.
USE_OPENAI = bool(OPENAI_API_KEY)
USE_ANTHROPIC = bool(ANTHROPIC_API_KEY)


# ── SET UP LLM CLIENTS ─────────────────────────────────────────────────

openai_client = None
if USE_OPENAI:
    openai_client = OpenAI(api_key=OPENAI_API_KEY)

anthropic_client = None
if USE_ANTHROPIC:
    anthropic_client = Anthropic(api_key=ANTHROPIC_API_KEY)


def describe_providers() -> str:
    """One line saying which LLM providers are configured (for startup logs)."""
    if USE_OPENAI and USE_ANTHROPIC:
        return f"OpenAI ({OPENAI_MODEL}), Anthropic fallback ({ANTHROPIC_MODEL})"
    if USE_OPENAI:
        return f"OpenAI ({OPENAI_MODEL})"
    if USE_ANTHROPIC:
        return f"Anthropic ({ANTHROPIC_MODEL})"
    return "none (set OPENAI_API_KEY or ANTHROPIC_API_KEY in .env)"


def _retry_delay(attempt: int, base_delay: float) -> float:
    """base * 2^attempt, plus or minus 25% jitter."""
    delay = base_delay * (2 ** attempt)
    jitter = delay * 0.25 * (2 * random.random() - 1)
    return delay + jitter


# ── THE BASE AGENT CLASS ──────────────────────────────────────────────

class BaseAgent:
    """
    The shared foundation for single-shot LLM agents.

    Subclasses set:
        system_prompt  The role the LLM should play
        temperature    Sampling temperature for this agent's task

    And inherit:
        run()  Send one prompt and return the text answer, with retries
               and provider fallback handled here.
    """

    def __init__(self):
        self.system_prompt = "You are a helpful assistant."
        self.temperature = 0.3

        # Which model produced the most recent answer ("" until the first call).
        self.last_model = ""

    def _wait_before_retry(self, provider: str, status_code, attempt: int, max_retries: int, base_delay: float):
        delay = _retry_delay(attempt, base_delay)
        console.print(
            f"   [yellow][RETRY][/yellow] {provider} {status_code} error, waiting {delay:.1f}s "
            f"(attempt {attempt + 1}/{max_retries})"
        )
        time.sleep(delay)

    # ── LLM CALL METHODS ─────────────────────────────────────────────

    def _call_openai(self, prompt: str) -> str:
        """Call OpenAI Chat Completions with retry logic. Returns the text."""
        from config.settings import API_MAX_RETRIES, API_RETRY_BASE_DELAY

        for attempt in range(API_MAX_RETRIES):
            try:
                response = openai_client.chat.completions.create(
                    model=OPENAI_MODEL,
                    messages=[
                        {"role": "system", "content": self.system_prompt},
                        {"role": "user", "content": prompt},
                    ],
                    temperature=self.temperature,
                    max_tokens=MAX_TOKENS,
                )
                self.last_model = OPENAI_MODEL
                return response.choices[0].message.content or ""

            except Exception as e:
                # Only rate limits and overloads are worth waiting out
                status_code = getattr(e, 'status_code', None)
                is_retryable = status_code in RETRYABLE_STATUS_CODES if status_code else False
                has_retries_left = attempt < API_MAX_RETRIES - 1

                if is_retryable and has_retries_left:
                    self._wait_before_retry("OpenAI", status_code, attempt, API_MAX_RETRIES, API_RETRY_BASE_DELAY)
                else:
                    raise

        raise RuntimeError("OpenAI retry loop exited unexpectedly")

    def _call_anthropic(self, prompt: str) -> str:
        """Call the Anthropic Messages API with retry logic. Returns the text."""
        from config.settings import API_MAX_RETRIES, API_RETRY_BASE_DELAY

        for attempt in range(API_MAX_RETRIES):
            try:
                response = anthropic_client.messages.create(
                    model=ANTHROPIC_MODEL,
                    max_tokens=MAX_TOKENS,
                    system=self.system_prompt,
                    temperature=self.temperature,
                    messages=[{"role": "user", "content": prompt}],
                )
                self.last_model = ANTHROPIC_MODEL
                return "".join(
                    block.text for block in response.content
                    if getattr(block, 'type', None) == "text"
                )

            except APIStatusError as e:
                is_retryable = e.status_code in RETRYABLE_STATUS_CODES
                has_retries_left = attempt < API_MAX_RETRIES - 1

                if is_retryable and has_retries_left:
                    self._wait_before_retry("Anthropic", e.status_code, attempt, API_MAX_RETRIES, API_RETRY_BASE_DELAY)
                else:
                    raise

        raise RuntimeError("Anthropic retry loop exited unexpectedly")

    def _call_llm(self, prompt: str) -> str:
        """
        Call the LLM with automatic provider fallback.

        Strategy:
          1. If OpenAI is configured, try it first.
          2. If OpenAI fails and Anthropic is available, fall back.
          3. If only Anthropic is configured, use it directly.
        """
        if USE_OPENAI and openai_client:
            try:
                return self._call_openai(prompt)
            except Exception as e:
                if USE_ANTHROPIC and anthropic_client:
                    console.print(
                        f"   [yellow][FALLBACK][/yellow] OpenAI failed ({escape(str(e))}). Switching to Anthropic."
                    )
                    return self._call_anthropic(prompt)
                raise

        if USE_ANTHROPIC and anthropic_client:
            return self._call_anthropic(prompt)

        raise RuntimeError(
            "No LLM provider available. Set OPENAI_API_KEY or ANTHROPIC_API_KEY in .env"
        )

    def run(self, prompt: str) -> str:
        """Send one prompt and return the LLM's answer, stripped."""
        return self._call_llm(prompt).strip()
