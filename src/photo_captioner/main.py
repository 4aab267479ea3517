#!/usr/bin/env python3
"""
Photo Captioner: CLI app to describe a folder of photos with a vision-language model.

Every jpg/jpeg/png in the input folder is sent to the model together with a trigger word
and a user prompt. The image and its description (``<name>.txt``) are written to the
output folder, which is then zipped into a sibling archive unless --no-zip is passed.
This is the layout expected by most LoRA training tools.

Requirements:
 - An OpenAI API key (OPENAI_API_KEY, or a .env file), or a local LM Studio / Ollama
   server running a vision-language model.

"""
# ruff: noqa: PLR0913

import asyncio
import os
import sys
import urllib.parse
from datetime import UTC, datetime
from http import HTTPStatus
from pathlib import Path
from typing import Annotated, Literal

import httpx
from cyclopts import App, Parameter
from loguru import logger
from pydantic_ai import Agent, RunContext
from pydantic_ai.models.openai import OpenAIChatModel
from pydantic_ai.providers.ollama import OllamaProvider
from pydantic_ai.providers.openai import OpenAIProvider

from photo_captioner.batch import run_batch
from photo_captioner.config import (
    DEFAULT_CONCURRENCY,
    DEFAULT_MAX_TOKENS,
    DEFAULT_MODEL_NAME,
    DEFAULT_TEMPERATURE,
    DEFAULT_TIMEOUT,
    DEFAULT_TRIGGER,
    PROVIDER_KEY_ENV,
    PROVIDER_URLS,
)
from photo_captioner.describer import Describer
from photo_captioner.errors import ConfigError


LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL", "OFF"]
ProviderName = Literal["openai", "lmstudio", "ollama"]

# Cyclopts app
__version__ = "0.1.0"
app = App(
    name="photo-captioner",
    version=__version__,
)


def setup_logging(
    file_log_level: LogLevel = "DEBUG",
    console_log_level: LogLevel = "INFO",
    log_folder: Path = Path("logs"),
) -> None:
    """
    Configure Loguru for both console and file logging.

    Args:
        file_log_level: Log level for file (use 'OFF' to disable)
        console_log_level: Log level for console (use 'OFF' to disable)
        log_folder: Directory where log files are stored

    """
    logger.remove()

    if file_log_level != "OFF":
        log_folder.mkdir(parents=True, exist_ok=True)
        log_file = log_folder / Path(
            datetime.now(tz=UTC).strftime("%Y%m%d%H%M%S-photo_captioner.log"),
        )
        logger.add(
            log_file,
            level=file_log_level,
            format=(
                "{time:YYYY-MM-DD HH:mm:ss.SSS} | "
                "{level: <8} | "
                "{name:<8}:{function:<20}:{line:>4} | "
                "{message:<30} | "
                "{extra}"
            ),
            rotation="500 MB",
            retention="10 days",
            compression="zip",
        )

    if console_log_level != "OFF":
        logger.add(
            sys.stderr,
            level=console_log_level,
            colorize=True,
            format=(
                "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
                "<level>{level: <7}</level> | "
                "<level>{message:<30.40}</level> | "
                "<yellow>{extra}</yellow>"
            ),
        )


def resolve_api_key(provider_name: ProviderName, api_key: str | None) -> str | None:
    """
    Pick the credential for ``provider_name``: explicit flag first, then environment.

    Raises:
        ConfigError: the hosted OpenAI provider is selected and no key is available.

    """
    resolved = api_key or os.getenv(PROVIDER_KEY_ENV[provider_name])
    if provider_name == "openai" and not resolved:
        msg = "no API key for the OpenAI provider"
        raise ConfigError(msg, hint="Set OPENAI_API_KEY (or add it to .env) or pass --api-key")
    return resolved


def _validate_lmstudio_model(api_base_url: str, model_name: str, api_key: str | None) -> None:
    """Fail fast when LM Studio cannot resolve the requested model name."""
    url = urllib.parse.urljoin(api_base_url.rstrip("/") + "/", "models")
    parsed = urllib.parse.urlparse(url)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        msg = f"invalid LM Studio URL: {url}"
        raise ConfigError(msg)

    headers = {"Accept": "application/json"}
    if api_key:
        headers["Authorization"] = f"Bearer {api_key}"
    try:
        response = httpx.get(url, headers=headers, timeout=5.0)
    except httpx.HTTPError as exc:
        msg = f"cannot reach LM Studio at {url}: {exc}"
        raise ConfigError(msg, hint="Is the LM Studio server running?") from exc

    if response.status_code != HTTPStatus.OK:
        logger.error("lmstudio_model_listing_failed", status=response.status_code, body=response.text)
        msg = f"LM Studio model listing failed with HTTP {response.status_code}"
        raise ConfigError(msg)

    try:
        listing = response.json()
    except ValueError as exc:
        msg = f"LM Studio returned invalid JSON from {url}"
        raise ConfigError(msg) from exc

    models = [
        str(entry["id"])
        for entry in listing.get("data", [])
        if isinstance(entry, dict) and "id" in entry
    ]
    if model_name not in models:
        logger.error("lmstudio_model_not_available", requested=model_name, available=models)
        msg = f"model {model_name!r} is not available in LM Studio"
        raise ConfigError(msg, hint=f"Available: {', '.join(models) or 'none'}")

    logger.debug("lmstudio_model_validated", model=model_name)


def _create_agent(
    provider_name: ProviderName,
    model_name: str,
    *,
    api_base_url: str | None,
    api_key: str | None,
) -> Agent[str, str]:
    """Build a text-output agent whose system prompt is supplied per run as ``deps``."""
    resolved_url = api_base_url or PROVIDER_URLS[provider_name]
    logger.info("provider_config_resolved", provider=provider_name, url=resolved_url, model=model_name)

    if provider_name == "ollama":
        provider = OllamaProvider(base_url=resolved_url, api_key=api_key)
    else:
        if provider_name == "lmstudio":
            _validate_lmstudio_model(resolved_url, model_name, api_key)
        provider = OpenAIProvider(base_url=resolved_url, api_key=api_key)

    chat_model = OpenAIChatModel(model_name=model_name, provider=provider)
    agent: Agent[str, str] = Agent(chat_model, deps_type=str, output_type=str)

    @agent.system_prompt
    def _role_prompt(ctx: RunContext[str]) -> str:
        return ctx.deps

    return agent


@app.default
def caption(
    input_directory: Annotated[
        Path,
        Parameter(
            name=("--input-directory", "-i"),
            help="Directory containing images to process",
        ),
    ] = Path("input"),
    output_directory: Annotated[
        Path,
        Parameter(
            name=("--output-directory", "-o"),
            help="Directory to save processed images and descriptions",
        ),
    ] = Path("output"),
    *,
    trigger: Annotated[
        str,
        Parameter(name=("--trigger", "-t"), help="Trigger word for description context"),
    ] = DEFAULT_TRIGGER,
    prompt: Annotated[
        Path,
        Parameter(name=("--prompt", "-p"), help="Path to a prompt text file"),
    ] = Path("prompt.txt"),
    zip_output: Annotated[
        bool,
        Parameter(
            name=("--zip", "-z"),
            negative="--no-zip",
            help="Zip the output directory after processing",
        ),
    ] = True,
    concurrency: Annotated[
        int,
        Parameter(
            name=("--concurrency", "-c"),
            help="Maximum number of images described at the same time",
        ),
    ] = DEFAULT_CONCURRENCY,
    provider_name: Annotated[
        ProviderName,
        Parameter(name=("--provider",), help="Backend provider: 'openai', 'lmstudio' or 'ollama'"),
    ] = "openai",
    model_name: Annotated[
        str,
        Parameter(name=("--model", "-m"), help="Vision-language model name"),
    ] = DEFAULT_MODEL_NAME,
    api_base_url: Annotated[
        str | None,
        Parameter(name=("--url", "-u"), help="Provider API base URL"),
    ] = None,
    api_key: Annotated[
        str | None,
        Parameter(name=("--api-key", "-k"), help="Provider API key. Will try env vars if not set"),
    ] = None,
    temperature: Annotated[
        float,
        Parameter(name=("--temperature",), help="Sampling temperature (0.0-1.0)"),
    ] = DEFAULT_TEMPERATURE,
    max_tokens: Annotated[
        int,
        Parameter(name=("--max-tokens",), help="Maximum tokens to generate"),
    ] = DEFAULT_MAX_TOKENS,
    timeout: Annotated[
        float,
        Parameter(name=("--timeout",), help="Seconds to wait for each description"),
    ] = DEFAULT_TIMEOUT,
    strict: Annotated[
        bool,
        Parameter(
            name=("--strict",),
            help="Exit with status 1 when any image (or the archive step) fails",
        ),
    ] = False,
    file_log_level: Annotated[
        LogLevel,
        Parameter(name="--file-log-level", help="Log level for file (use 'OFF' to disable)"),
    ] = "DEBUG",
    log_folder: Annotated[
        Path,
        Parameter(name=("--log-folder",), help="Folder where log files are stored"),
    ] = Path("logs"),
    console_log_level: Annotated[
        LogLevel,
        Parameter(name="--console-log-level", help="Log level for console (use 'OFF' to disable)"),
    ] = "INFO",
) -> None:
    """
    Describe every image in a folder and write image/description pairs to another folder.

    Behavior:
    - Picks up *.jpg, *.jpeg and *.png (any case) directly inside --input-directory.
    - Sends each image with the trigger word and the --prompt file to the model,
        at most --concurrency at a time.
    - Copies the image and writes <name>.txt next to it in --output-directory.
    - Zips the output directory to <output-directory>.zip unless --no-zip.

    Exit status: 1 on configuration errors (missing API key, input folder or prompt file).
    Failed images are logged and skipped; pass --strict to turn them into exit status 1.

    Examples:
        photo-captioner -i ./photos -o ./dataset -t thr33
        photo-captioner -i ./photos --provider lmstudio -m qwen/qwen3-vl-30b --no-zip

    """
    setup_logging(
        file_log_level=file_log_level,
        console_log_level=console_log_level,
        log_folder=log_folder,
    )
    logger.info(
        "starting_photo_captioner",
        input=str(input_directory),
        output=str(output_directory),
        trigger=trigger,
        prompt=str(prompt),
        zip=zip_output,
        concurrency=concurrency,
        provider=provider_name,
        model=model_name,
        api_base_url=api_base_url,
        api_key_present=bool(api_key),
    )

    try:
        resolved_key = resolve_api_key(provider_name, api_key)
        agent = _create_agent(
            provider_name,
            model_name,
            api_base_url=api_base_url,
            api_key=resolved_key,
        )
        describer = Describer(
            agent,
            temperature=temperature,
            max_tokens=max_tokens,
            timeout=timeout,
        )
        result = asyncio.run(
            run_batch(
                input_directory,
                output_directory,
                trigger,
                prompt,
                concurrency,
                archive=zip_output,
                describer=describer,
            ),
        )
    except ConfigError as exc:
        logger.error("configuration_error", error=str(exc), hint=exc.hint)
        raise SystemExit(1) from exc

    if strict and not result.ok:
        raise SystemExit(1)


if __name__ == "__main__":
    app()
