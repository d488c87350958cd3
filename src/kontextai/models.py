from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel
from typing import Any, Dict, List, Literal, Optional

from kontextai.registry import MODELS, FluxModel

AspectRatio = Literal[
    "21:9", "16:9", "4:3", "3:2", "1:1", "2:3", "3:4", "9:16", "9:21"
]
OutputFormat = Literal["jpeg", "png"]
SafetyTolerance = Literal["1", "2", "3", "4", "5", "6"]
Acceleration = Literal["none", "regular", "high"]
ResolutionMode = Literal[
    "auto",
    "match_input",
    "21:9",
    "16:9",
    "4:3",
    "3:2",
    "1:1",
    "2:3",
    "3:4",
    "9:16",
    "9:21",
]


class ApiModel(BaseModel):
    """Models exchanged with the browser use camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class GenerationRequest(ApiModel):
    prompt: str = ""
    model: FluxModel = "max"
    image_url: Optional[str] = Field(
        None, validation_alias=AliasChoices("imageUrl", "referenceImage", "image_url")
    )
    image_urls: Optional[List[str]] = Field(
        None,
        validation_alias=AliasChoices("imageUrls", "referenceImages", "image_urls"),
    )
    aspect_ratio: Optional[AspectRatio | Literal["auto"]] = "auto"
    guidance_scale: float = Field(3.5, ge=1, le=20)
    num_images: int = Field(1, ge=1, le=4)
    output_format: OutputFormat = "jpeg"
    # Checked against the model family's own scale when the request is built.
    safety_tolerance: Optional[str] = None
    seed: Optional[int] = Field(None, ge=0)
    use_preset: bool = False
    preset_name: Optional[str] = None
    subject: Optional[str] = None
    # kontext-dev only
    num_inference_steps: Optional[int] = Field(None, ge=1, le=50)
    enable_safety_checker: Optional[bool] = None
    acceleration: Optional[Acceleration] = None
    resolution_mode: Optional[ResolutionMode] = None

    @model_validator(mode="after")
    def _place_reference_images(self):
        # At most one of image_url / image_urls survives, chosen by the model.
        spec = MODELS[self.model]
        urls = [u for u in (self.image_urls or []) if u]
        if spec.multi_image:
            if not urls and self.image_url:
                urls = [self.image_url]
            self.image_urls = urls or None
            self.image_url = None
            return self
        if len(urls) > 1:
            raise ValueError(
                f"Model '{self.model}' accepts a single reference image; "
                f"use 'max-multi' for {len(urls)} images"
            )
        if urls and not self.image_url:
            self.image_url = urls[0]
        self.image_urls = None
        if spec.is_text_to_image and self.image_url:
            raise ValueError(
                f"Model '{self.model}' generates from text only and takes no reference image"
            )
        return self

    @property
    def reference_image(self) -> Optional[str]:
        if self.image_urls:
            return self.image_urls[0]
        return self.image_url


class ResolvedGenerationRequest(GenerationRequest):
    """A generation request whose aspect ratio is concrete."""

    aspect_ratio: AspectRatio


class GeneratedImage(BaseModel):
    url: str
    width: Optional[int] = None
    height: Optional[int] = None
    content_type: Optional[str] = None


class FluxKontextOutput(BaseModel):
    model_config = ConfigDict(extra="ignore")

    images: List[GeneratedImage] = []
    seed: Optional[int] = None
    has_nsfw_concepts: List[bool] = []
    prompt: str = ""
    timings: Optional[Dict[str, Any]] = None


class GenerationResult(ApiModel):
    success: bool
    data: Optional[FluxKontextOutput] = None
    request_id: Optional[str] = None
    error: Optional[str] = None


class QueueStatus(BaseModel):
    status: Literal["IN_QUEUE", "IN_PROGRESS", "COMPLETED", "FAILED"]
    progress: Optional[float] = None
    logs: List[Dict[str, Any]] = []


class OptimizeRequest(ApiModel):
    prompt: str = ""
    model: str = ""
    image_url: Optional[str] = None
    image_urls: Optional[List[str]] = None
    use_preset: bool = False
    preset_name: Optional[str] = None
    subject: Optional[str] = None

    @property
    def images(self) -> List[str]:
        if self.image_urls:
            return [u for u in self.image_urls if u]
        if self.image_url:
            return [self.image_url]
        return []


class OptimizationResult(ApiModel):
    success: bool
    optimized_prompt: Optional[str] = None
    original_prompt: Optional[str] = None
    used_image_analysis: bool = False
    error: Optional[str] = None
    # Operator-facing only, never serialised into responses.
    diagnostics: Dict[str, Any] = Field(default_factory=dict, exclude=True)


class PresetPromptRequest(ApiModel):
    preset_name: str = ""
    image_url: str = ""
    subject: Optional[str] = None


class PresetPromptResult(ApiModel):
    success: bool
    prompt: Optional[str] = None
    preset: Optional[str] = None
    error: Optional[str] = None


class UploadResult(ApiModel):
    success: bool
    url: Optional[str] = None
    filename: Optional[str] = None
    size: Optional[int] = None
    type: Optional[str] = None
    error: Optional[str] = None


class _KontextBaseInput(BaseModel):
    model_config = ConfigDict(extra="forbid")

    prompt: str = Field(..., min_length=1)
    guidance_scale: float = Field(3.5, ge=1, le=20)
    num_images: int = Field(1, ge=1, le=4)
    output_format: OutputFormat = "jpeg"
    safety_tolerance: SafetyTolerance = "2"
    aspect_ratio: AspectRatio = "1:1"
    # Results must not be persisted upstream; not user-configurable.
    sync_mode: Literal[True] = True
    seed: Optional[int] = None


class KontextInput(_KontextBaseInput):
    """Single-image editing and text-to-image endpoints."""

    image_url: Optional[str] = None


class KontextMultiInput(_KontextBaseInput):
    image_urls: List[str] = Field(..., min_length=1)


class KontextDevInput(BaseModel):
    model_config = ConfigDict(extra="forbid")

    prompt: str = Field(..., min_length=1)
    image_url: Optional[str] = None
    num_inference_steps: Optional[int] = Field(None, ge=1, le=50)
    seed: Optional[int] = None
    guidance_scale: float = Field(2.5, ge=1, le=20)
    num_images: Optional[int] = Field(None, ge=1, le=4)
    enable_safety_checker: Optional[bool] = None
    output_format: OutputFormat = "png"
    acceleration: Optional[Acceleration] = None
    resolution_mode: ResolutionMode = "auto"
