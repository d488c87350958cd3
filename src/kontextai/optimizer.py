"""
Turns a user's raw instruction, plus optional reference images, into a prompt
ready for FLUX.1 Kontext.

Image analysis is best effort: when any image fails to download or the LLM call
fails, the optimizer falls back to text-only optimization and only that call's
failure is reported to the caller. The original failure is kept in
``OptimizationResult.diagnostics`` for the logs.
"""

import logging
from typing import List, Optional

from kontextai.errors import (
    ConfigurationError,
    EmptyResponse,
    KontextError,
    UpstreamDownloadError,
    ValidationError,
    describe,
)
from kontextai.models import (
    OptimizationResult,
    OptimizeRequest,
    PresetPromptRequest,
    PresetPromptResult,
)
from kontextai.prompts.presets import build_preset_prompt, get_preset_by_name
from kontextai.prompts.templates import (
    TEMPLATES,
    RenderedPrompt,
    TemplateKind,
    select_template,
    text_template,
)
from kontextai.providers.base_provider import BaseChatProvider
from kontextai.providers.llm_provider import image_message, text_message
from kontextai.registry import MODELS, is_text_to_image
from kontextai.utils import ImageFetcher, encode_base64, guess_image_format, preview

logger = logging.getLogger(__name__)

OPTIMIZE_TEMPERATURE = 0.7
PRESET_TEMPERATURE = 0.8
PRESET_REASONING_EFFORT = "medium"


class PromptOptimizer:
    def __init__(self, llm: BaseChatProvider, fetcher: ImageFetcher):
        self.llm = llm
        self.fetcher = fetcher

    def _require_llm(self):
        if not self.llm.configured:
            logger.error("LLM API key is not configured")
            raise ConfigurationError(
                "AI service is not configured, please contact the administrator"
            )

    async def _complete(self, messages, **options) -> str:
        text = (await self.llm.chat(messages, **options) or "").strip()
        if not text:
            raise EmptyResponse("The optimized prompt is empty, please try again")
        return text

    async def _download(self, urls: List[str]):
        images = await self.fetcher.fetch_all(urls)
        return [encode_base64(data) for data in images], [
            guess_image_format(data) for data in images
        ]

    async def optimize(self, request: OptimizeRequest) -> OptimizationResult:
        prompt = (request.prompt or "").strip()
        model = (request.model or "").strip()
        if not prompt:
            raise ValidationError("Prompt must not be empty")
        if not model:
            raise ValidationError("Model must not be empty")
        self._require_llm()

        images = request.images
        if request.use_preset:
            return await self._optimize_with_preset(request, prompt, images)

        spec = MODELS.get(model)
        if len(images) > 1 and spec is not None and not spec.multi_image:
            raise ValidationError(
                f"Model '{model}' accepts a single reference image; "
                f"use 'max-multi' for {len(images)} images"
            )

        diagnostics = {"image_analysis": "not_attempted"}
        if images:
            logger.info(
                f"Optimizing with image analysis: {len(images)} image(s), "
                f'model={model}, prompt="{preview(prompt)}"'
            )
            stage = "download"
            try:
                images_b64, formats = await self._download(images)
                stage = "llm"
                rendered = select_template(
                    is_text_to_image(model), len(images_b64)
                ).render(prompt, image_count=len(images_b64))
                optimized = await self._complete(
                    [image_message(rendered.user, images_b64, formats)],
                    temperature=OPTIMIZE_TEMPERATURE,
                )
            except KontextError as e:
                diagnostics = {"image_analysis": "failed", "stage": stage, **describe(e)}
                logger.warning(
                    f"Image analysis failed, falling back to text optimization: {diagnostics}"
                )
            else:
                logger.info(
                    f"Image analysis optimization succeeded: {len(prompt)} -> "
                    f'{len(optimized)} chars, "{preview(optimized)}"'
                )
                return OptimizationResult(
                    success=True,
                    optimized_prompt=optimized,
                    original_prompt=prompt,
                    used_image_analysis=True,
                    diagnostics={"image_analysis": "succeeded", "image_count": len(images)},
                )

        rendered = text_template(is_text_to_image(model)).render(prompt)
        logger.info(
            f'Optimizing text prompt: model={model}, prompt="{preview(prompt)}", '
            f"system={len(rendered.system or '')} chars, user={len(rendered.user)} chars"
        )
        try:
            optimized = await self._complete(
                _text_messages(rendered), temperature=OPTIMIZE_TEMPERATURE
            )
        except ConfigurationError:
            raise
        except KontextError as e:
            logger.error(
                f"Prompt optimization failed: {describe(e)} "
                f"(model={model}, image_analysis={diagnostics})"
            )
            return OptimizationResult(
                success=False,
                original_prompt=prompt,
                error=e.message,
                diagnostics={**diagnostics, "text": describe(e)},
            )
        logger.info(
            f"Prompt optimization succeeded: {len(prompt)} -> {len(optimized)} chars "
            f"(image_analysis={diagnostics['image_analysis']})"
        )
        return OptimizationResult(
            success=True,
            optimized_prompt=optimized,
            original_prompt=prompt,
            used_image_analysis=False,
            diagnostics=diagnostics,
        )

    async def _optimize_with_preset(
        self, request: OptimizeRequest, prompt: str, images: List[str]
    ) -> OptimizationResult:
        if not images:
            raise ValidationError("A reference image is required to use a preset")
        result = await self.generate_preset_prompt(
            PresetPromptRequest(
                preset_name=request.preset_name or "",
                image_url=images[0],
                subject=request.subject,
            )
        )
        if not result.success:
            return OptimizationResult(
                success=False, original_prompt=prompt, error=result.error
            )
        return OptimizationResult(
            success=True,
            optimized_prompt=result.prompt,
            original_prompt=prompt,
            used_image_analysis=True,
            diagnostics={"image_analysis": "succeeded", "preset": result.preset},
        )

    async def generate_preset_prompt(
        self, request: PresetPromptRequest
    ) -> PresetPromptResult:
        """Expand a named preset into an edit instruction for one reference image."""
        if not request.preset_name:
            raise ValidationError("Preset name must not be empty")
        if not request.image_url:
            raise ValidationError("Image URL must not be empty")
        preset = get_preset_by_name(request.preset_name)
        if preset is None:
            raise ValidationError(f"Preset '{request.preset_name}' was not found")
        self._require_llm()

        instruction = build_preset_prompt(preset, request.subject)
        try:
            image = await self.fetcher.fetch(request.image_url)
        except UpstreamDownloadError as e:
            raise UpstreamDownloadError(
                "Unable to download the image", url=request.image_url
            ) from e

        rendered = TEMPLATES[TemplateKind.PRESET].render(instruction)
        logger.info(
            f"Generating preset prompt '{preset.name}' (subject={request.subject!r})"
        )
        try:
            text = await self._complete(
                [
                    image_message(
                        rendered.user, [encode_base64(image)], guess_image_format(image)
                    )
                ],
                temperature=PRESET_TEMPERATURE,
                reasoning_effort=PRESET_REASONING_EFFORT,
            )
        except ConfigurationError:
            raise
        except KontextError as e:
            logger.error(f"Preset prompt generation failed: {describe(e)}")
            return PresetPromptResult(success=False, error=e.message)
        return PresetPromptResult(success=True, prompt=text, preset=preset.name)


def _text_messages(rendered: RenderedPrompt) -> list:
    messages = []
    if rendered.system:
        messages.append(text_message("system", rendered.system))
    messages.append(text_message("user", rendered.user))
    return messages


def optimized_or_original(result: OptimizationResult) -> Optional[str]:
    """Prompt to send on to generation: the optimized one when optimization worked."""
    if result.success and result.optimized_prompt:
        return result.optimized_prompt
    return result.original_prompt
