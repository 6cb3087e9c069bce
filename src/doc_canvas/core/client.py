"""generation clients.

text goes through claude-agent-sdk using subscription auth. images go
through an openrouter-compatible chat completions endpoint that can return
image output. both raise GenerationError with the provider's message so
it can be shown to the user as-is.
"""

from __future__ import annotations

import asyncio
import base64
import logging
import os
from pathlib import Path
from typing import Optional, Protocol, runtime_checkable

import httpx
from claude_agent_sdk import (
    ClaudeAgentOptions,
    ClaudeSDKClient,
)

from .config import DEFAULT_SUMMARY_MAX_CHARS, AppConfig, ImageGenConfig, LLMConfig, GenerationConfig
from .images import extract_data_url


class GenerationError(RuntimeError):
    """the generation backend failed; message is meant for the user."""

    pass


@runtime_checkable
class TextClientProtocol(Protocol):
    """protocol for text generation clients (real or mock)."""

    async def generate_text(self, prompt: str, context: str) -> str:
        ...

    async def generate_summary(self, text: str) -> str:
        ...


@runtime_checkable
class ImageClientProtocol(Protocol):
    """protocol for image generation clients (real or mock)."""

    async def generate_image(
        self, prompt: str, context: str, reference_images: list[str]
    ) -> str:
        """return a data url or a src relative to the image root."""
        ...


def build_text_prompt(prompt: str, context: str) -> str:
    return f"Context:\n{context}\n\nUser Prompt:\n{prompt}"


def build_summary_instruction(max_chars: int) -> str:
    return (
        f"Summarize the following text in approximately {max_chars} characters or less. "
        "Focus on the core message."
    )


def build_image_prompt(prompt: str, context: str) -> str:
    if not context:
        return prompt
    return (
        f"Context information:\n{context}\n\n"
        f"Based on the above context, generate an image for: {prompt}"
    )


# 1x1 transparent png
_MOCK_IMAGE = (
    "data:image/png;base64,"
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAQAAAC1HAwCAAAAC0lEQVR42mNkYAAAAAYAAjCB0C8AAAAASUVORK5CYII="
)


class MockClient:
    """mock client for testing without api calls."""

    def __init__(
        self,
        responses: Optional[dict[str, str]] = None,
        delay: float = 0.5,
        summary_max_chars: int = DEFAULT_SUMMARY_MAX_CHARS,
    ):
        """init with optional response mapping.

        responses: dict mapping prompt substrings to responses.
        if prompt contains key (case-insensitive), return value.
        delay: simulated API delay in seconds.
        summary_max_chars: length cap for generate_summary.
        """
        self.responses = responses or {}
        self.calls: list[str] = []  # track all prompts sent
        self.image_calls: list[tuple[str, str, list[str]]] = []
        self.delay = delay
        self.summary_max_chars = summary_max_chars
        self.default_response = "## mock response\n\nthis is a simulated response from mock mode.\n\n- point 1\n- point 2\n- point 3"
        self.image_response = _MOCK_IMAGE

    async def complete(self, prompt: str) -> str:
        """return mock response based on prompt."""
        self.calls.append(prompt)

        # simulate API delay
        await asyncio.sleep(self.delay)

        # check for matching response (case-insensitive)
        prompt_lower = prompt.lower()
        for key, response in self.responses.items():
            if key.lower() in prompt_lower:
                return response

        return self.default_response

    async def generate_text(self, prompt: str, context: str) -> str:
        return await self.complete(build_text_prompt(prompt, context))

    async def generate_summary(self, text: str) -> str:
        await self.complete(text)
        first_line = next((line.strip("# ").strip() for line in text.splitlines() if line.strip()), "")
        return first_line[: self.summary_max_chars] or "summary"

    async def generate_image(
        self, prompt: str, context: str, reference_images: list[str]
    ) -> str:
        self.image_calls.append((prompt, context, list(reference_images)))
        await asyncio.sleep(self.delay)
        return self.image_response


class ClaudeClient:
    """async text client for claude using claude-agent-sdk.

    creates a fresh connection per query to avoid state conflicts.
    """

    def __init__(
        self,
        llm: Optional[LLMConfig] = None,
        generation: Optional[GenerationConfig] = None,
        cwd: Optional[Path] = None,
    ):
        self.llm = llm or LLMConfig()
        self.generation = generation or GenerationConfig()
        self.cwd = cwd or Path.cwd()

    async def __aenter__(self) -> ClaudeClient:
        return self

    async def __aexit__(self, *args) -> None:
        pass

    async def generate_text(self, prompt: str, context: str) -> str:
        """generate markdown for prompt, given the assembled context."""
        return await self.complete(
            build_text_prompt(prompt, context), system_prompt=self.llm.system_prompt
        )

    async def generate_summary(self, text: str) -> str:
        max_chars = self.generation.effective_summary_max_chars
        return await self.complete(text, system_prompt=build_summary_instruction(max_chars))

    async def complete(self, prompt: str, system_prompt: Optional[str] = None) -> str:
        """send a prompt and collect the full response.

        creates a fresh client for each query to avoid state conflicts.
        """
        # clear API key so SDK uses subscription auth, not API credits
        os.environ.pop("ANTHROPIC_API_KEY", None)

        options = ClaudeAgentOptions(
            cwd=str(self.cwd),
            model=self.llm.model,
            system_prompt=system_prompt,
            tools=[],
            allowed_tools=[],
        )
        client: Optional[ClaudeSDKClient] = None

        try:
            client = ClaudeSDKClient(options)
            await client.connect()
            await client.query(prompt)

            text_parts: list[str] = []
            async for event in client.receive_response():
                logging.debug(f"event type: {type(event).__name__}")

                # text content in assistant messages
                if hasattr(event, "message") and hasattr(event.message, "content"):
                    for block in event.message.content:
                        if hasattr(block, "text"):
                            text_parts.append(block.text)
                # content blocks directly on the event
                elif hasattr(event, "content") and isinstance(event.content, list):
                    for block in event.content:
                        if hasattr(block, "text"):
                            text_parts.append(block.text)
                        elif isinstance(block, dict) and "text" in block:
                            text_parts.append(block["text"])

            logging.debug(f"total text parts collected: {len(text_parts)}")
            if not text_parts:
                raise GenerationError("no response generated from LLM")
            return "\n".join(text_parts)

        except GenerationError:
            raise
        except Exception as e:
            raise GenerationError(f"claude api error: {e}") from e

        finally:
            if client:
                try:
                    await client.disconnect()
                except Exception as e:
                    logging.debug(f"ignoring disconnect error: {e}")


class OpenRouterImageClient:
    """image generation through an openrouter-style chat completions api."""

    def __init__(
        self,
        config: Optional[ImageGenConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config or ImageGenConfig()
        self._transport = transport  # injectable for tests

    async def generate_image(
        self, prompt: str, context: str, reference_images: list[str]
    ) -> str:
        """return the generated image as a data url (or remote url)."""
        full_prompt = build_image_prompt(prompt, context)
        content: object = full_prompt
        if reference_images:
            content = [{"type": "text", "text": full_prompt}] + [
                {"type": "image_url", "image_url": {"url": url}} for url in reference_images
            ]
        payload = {
            "model": self.config.model,
            "messages": [{"role": "user", "content": content}],
            "modalities": ["image", "text"],
        }
        headers = {"Content-Type": "application/json"}
        if self.config.api_key:
            headers["Authorization"] = f"Bearer {self.config.api_key}"
        url = f"{self.config.base_url.rstrip('/')}/chat/completions"

        try:
            async with httpx.AsyncClient(
                timeout=self.config.timeout, transport=self._transport
            ) as client:
                response = await client.post(url, headers=headers, json=payload)
        except httpx.HTTPError as e:
            raise GenerationError(f"failed to send request to image provider: {e}") from e

        if response.status_code != 200:
            raise GenerationError(
                f"image provider returned error status {response.status_code}: {response.text}"
            )
        try:
            message = response.json()["choices"][0]["message"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise GenerationError(f"unexpected image provider response: {response.text[:500]}") from e

        images = message.get("images") or []
        if images:
            try:
                image_url = images[0]["image_url"]["url"]
            except (KeyError, TypeError) as e:
                raise GenerationError("invalid image format in provider response") from e
            if image_url.startswith(("http://", "https://")):
                return await self._download(image_url)
            return image_url

        # some models put the image inline in the text content
        text = message.get("content")
        if isinstance(text, str):
            data_url = extract_data_url(text)
            if data_url:
                return data_url

        raise GenerationError("no image found in response")

    async def _download(self, url: str) -> str:
        """fetch a remote image and return it as a data url."""
        try:
            async with httpx.AsyncClient(
                timeout=self.config.timeout, transport=self._transport
            ) as client:
                response = await client.get(url)
        except httpx.HTTPError as e:
            raise GenerationError(f"failed to download image: {e}") from e
        if response.status_code != 200:
            raise GenerationError(f"failed to download image: status {response.status_code}")
        mime = response.headers.get("content-type", "image/png").split(";")[0].strip()
        if not mime.startswith("image/"):
            mime = "image/png"
        encoded = base64.b64encode(response.content).decode("ascii")
        return f"data:{mime};base64,{encoded}"


def create_clients(config: AppConfig, mock: bool = False):
    """(text client, image client) for the given settings."""
    if mock:
        client = MockClient(summary_max_chars=config.generation.effective_summary_max_chars)
        return client, client
    return (
        ClaudeClient(llm=config.llm, generation=config.generation),
        OpenRouterImageClient(config.image_gen),
    )
