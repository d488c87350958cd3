import logging
from typing import Optional, Union

from pydantic import BaseModel

from kontextai.errors import (
    StorageError,
    UpstreamDownloadError,
    UpstreamGenerationError,
    ValidationError,
)
from kontextai.models import (
    FluxKontextOutput,
    GenerationRequest,
    GenerationResult,
    KontextDevInput,
    KontextInput,
    KontextMultiInput,
    ResolvedGenerationRequest,
    UploadResult,
)
from kontextai.providers.base_provider import BaseImageProvider
from kontextai.registry import get_model, resolve_safety_tolerance
from kontextai.utils import (
    DEFAULT_ASPECT_RATIO,
    ImageFetcher,
    detect_aspect_ratio,
    format_file_size,
    preview,
)

logger = logging.getLogger(__name__)

UpstreamInput = Union[KontextInput, KontextMultiInput, KontextDevInput]


async def resolve_generation_request(
    request: GenerationRequest, fetcher: Optional[ImageFetcher] = None
) -> ResolvedGenerationRequest:
    """Replace an "auto" aspect ratio with one detected from the reference image."""
    aspect_ratio = request.aspect_ratio
    if aspect_ratio in (None, "auto"):
        aspect_ratio = DEFAULT_ASPECT_RATIO
        reference = request.reference_image
        if reference and fetcher is not None:
            try:
                aspect_ratio = detect_aspect_ratio(await fetcher.fetch(reference))
            except UpstreamDownloadError as e:
                logger.warning(
                    f"Could not fetch {reference} to detect aspect ratio, "
                    f"using {DEFAULT_ASPECT_RATIO}: {e}"
                )
        logger.info(f"Resolved aspect ratio 'auto' to {aspect_ratio}")
    return ResolvedGenerationRequest.model_validate(
        {**request.model_dump(), "aspect_ratio": aspect_ratio}
    )


def build_upstream_input(request: ResolvedGenerationRequest) -> UpstreamInput:
    spec = get_model(request.model)
    if spec.family == "dev":
        resolve_safety_tolerance(spec, request.safety_tolerance)
        return KontextDevInput(
            prompt=request.prompt,
            image_url=request.image_url,
            num_inference_steps=request.num_inference_steps,
            seed=request.seed,
            guidance_scale=request.guidance_scale,
            num_images=request.num_images,
            enable_safety_checker=request.enable_safety_checker,
            output_format=request.output_format,
            acceleration=request.acceleration,
            resolution_mode=request.resolution_mode or request.aspect_ratio or "auto",
        )
    common = dict(
        prompt=request.prompt,
        guidance_scale=request.guidance_scale,
        num_images=request.num_images,
        output_format=request.output_format,
        safety_tolerance=resolve_safety_tolerance(spec, request.safety_tolerance),
        aspect_ratio=request.aspect_ratio,
        seed=request.seed,
    )
    if spec.multi_image:
        if not request.image_urls:
            raise ValidationError(
                f"Model '{spec.id}' needs at least one reference image"
            )
        return KontextMultiInput(image_urls=request.image_urls, **common)
    return KontextInput(image_url=request.image_url, **common)


def upstream_arguments(upstream_input: BaseModel) -> dict:
    return upstream_input.model_dump(exclude_none=True)


class GenerationOrchestrator:
    def __init__(
        self,
        backend: BaseImageProvider,
        max_upload_bytes: int = 10 * 1024 * 1024,
        allowed_upload_types=("image/jpeg", "image/jpg", "image/png", "image/webp"),
    ):
        self.backend = backend
        self.max_upload_bytes = max_upload_bytes
        self.allowed_upload_types = tuple(allowed_upload_types)

    def _prepare(self, request: ResolvedGenerationRequest):
        if not request.prompt or not request.prompt.strip():
            raise ValidationError("Prompt must not be empty")
        spec = get_model(request.model)
        return spec, upstream_arguments(build_upstream_input(request))

    async def generate(self, request: ResolvedGenerationRequest) -> GenerationResult:
        if request.use_preset and request.preset_name:
            logger.info(
                f"Generating with preset '{request.preset_name}' "
                f"(model={request.model}, has_image={bool(request.reference_image)}, "
                f"subject={request.subject!r})"
            )
        spec, arguments = self._prepare(request)
        logger.info(
            f"Generating with {spec.id} ({spec.endpoint}): "
            f'"{preview(request.prompt)}"'
        )
        try:
            output = await self.backend.generate(spec.endpoint, arguments)
        except UpstreamGenerationError as e:
            logger.error(f"Image generation failed for model {spec.id}: {e.message}")
            return GenerationResult(success=False, error=e.message)
        request_id = output.pop("request_id", None)
        data = FluxKontextOutput.model_validate(output)
        if not data.images:
            logger.error(f"Model {spec.id} returned no images")
            return GenerationResult(
                success=False, error="The image service returned no images"
            )
        return GenerationResult(success=True, data=data, request_id=request_id)

    async def submit(self, request: ResolvedGenerationRequest) -> str:
        """Queue a generation without waiting; returns the queue request id."""
        spec, arguments = self._prepare(request)
        request_id = await self.backend.submit(spec.endpoint, arguments)
        logger.info(f"Queued generation on {spec.id} as {request_id}")
        return request_id

    def validate_upload(self, filename: Optional[str], content_type: Optional[str], size: int):
        if not filename and not size:
            raise ValidationError("No file found in the request")
        if content_type not in self.allowed_upload_types:
            raise ValidationError(
                "Unsupported file type, please upload a JPEG, PNG or WebP image"
            )
        if size <= 0:
            raise ValidationError("The uploaded file is empty")
        if size > self.max_upload_bytes:
            raise ValidationError(
                f"File size must not exceed {format_file_size(self.max_upload_bytes)}"
            )

    async def upload(
        self, data: bytes, filename: Optional[str], content_type: Optional[str]
    ) -> UploadResult:
        self.validate_upload(filename, content_type, len(data))
        try:
            url = await self.backend.upload(data, content_type, file_name=filename)
        except StorageError as e:
            return UploadResult(success=False, error=e.message)
        if not url:
            return UploadResult(success=False, error="File upload failed")
        logger.info(f"Uploaded {filename} ({format_file_size(len(data))}) to {url}")
        return UploadResult(
            success=True,
            url=url,
            filename=filename,
            size=len(data),
            type=content_type,
        )
