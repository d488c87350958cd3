"""Static catalogue of the FLUX.1 Kontext models this service can drive."""

from dataclasses import dataclass
from typing import Dict, Literal, Optional, Tuple
import logging

from kontextai.errors import ValidationError

logger = logging.getLogger(__name__)

FluxModel = Literal[
    "max",
    "pro",
    "max-multi",
    "max-text-to-image",
    "pro-text-to-image",
    "kontext-dev",
]

KONTEXT_SAFETY_LEVELS: Tuple[str, ...] = ("1", "2", "3", "4", "5", "6")


@dataclass(frozen=True)
class ModelSpec:
    id: str
    endpoint: str
    name: str
    description: str
    kind: Literal["edit", "text-to-image"]
    family: Literal["kontext", "dev"]
    multi_image: bool = False
    # Empty when the family filters content some other way (dev: safety checker).
    safety_levels: Tuple[str, ...] = KONTEXT_SAFETY_LEVELS
    default_safety_tolerance: Optional[str] = "2"

    @property
    def is_text_to_image(self) -> bool:
        return self.kind == "text-to-image"

    @property
    def accepts_image(self) -> bool:
        return self.kind == "edit"


MODELS: Dict[str, ModelSpec] = {
    spec.id: spec
    for spec in (
        ModelSpec(
            id="max",
            endpoint="fal-ai/flux-pro/kontext/max",
            name="FLUX.1 Kontext Max",
            description="Stronger editing model for complex tasks.",
            kind="edit",
            family="kontext",
        ),
        ModelSpec(
            id="pro",
            endpoint="fal-ai/flux-pro/kontext",
            name="FLUX.1 Kontext Pro",
            description="Professional image editing model.",
            kind="edit",
            family="kontext",
        ),
        ModelSpec(
            id="max-multi",
            endpoint="fal-ai/flux-pro/kontext/max/multi",
            name="FLUX.1 Kontext Max Multi",
            description="Editing model that combines several input images.",
            kind="edit",
            family="kontext",
            multi_image=True,
        ),
        ModelSpec(
            id="max-text-to-image",
            endpoint="fal-ai/flux-pro/kontext/max/text-to-image",
            name="FLUX.1 Kontext Max",
            description="Frontier text-to-image model, highest quality.",
            kind="text-to-image",
            family="kontext",
        ),
        ModelSpec(
            id="pro-text-to-image",
            endpoint="fal-ai/flux-pro/kontext/text-to-image",
            name="FLUX.1 Kontext Pro",
            description="Professional text-to-image model, faster.",
            kind="text-to-image",
            family="kontext",
        ),
        ModelSpec(
            id="kontext-dev",
            endpoint="fal-ai/flux-kontext/dev",
            name="FLUX.1 Kontext [dev]",
            description="Open-weights editing model with resolution modes.",
            kind="edit",
            family="dev",
            safety_levels=(),
            default_safety_tolerance=None,
        ),
    )
}


def get_model(model_id: str) -> ModelSpec:
    try:
        return MODELS[model_id]
    except KeyError:
        raise ValidationError(
            f"Unknown model '{model_id}'. Available models: {', '.join(MODELS)}"
        ) from None


def get_model_endpoint(model_id: str) -> str:
    return get_model(model_id).endpoint


def is_text_to_image(model_id: str) -> bool:
    spec = MODELS.get(model_id)
    if spec is not None:
        return spec.is_text_to_image
    return "text-to-image" in model_id


def resolve_safety_tolerance(spec: ModelSpec, value: Optional[str]) -> Optional[str]:
    """Validate ``value`` against the model family's own scale."""
    if not spec.safety_levels:
        if value is not None:
            logger.warning(
                f"Model '{spec.id}' has no safety tolerance scale; ignoring '{value}'"
            )
        return None
    if value is None:
        return spec.default_safety_tolerance
    value = str(value)
    if value not in spec.safety_levels:
        raise ValidationError(
            f"Safety tolerance '{value}' is not valid for {spec.name}; "
            f"expected one of {', '.join(spec.safety_levels)}"
        )
    return value
