"""Named editing intents that the LLM expands into a full instruction for one image."""

from dataclasses import dataclass
from typing import Dict, List, Optional

DEFAULT_SUBJECT_PLACEHOLDER = "{subject}"


@dataclass(frozen=True)
class PresetDefinition:
    name: str
    brief: str
    template: str
    # Used in place of {subject} when the caller gives no subject.
    default_subject: str = "the main subject of the image"
    auto_detect_hint: str = ""

    def build(self, subject: Optional[str] = None) -> str:
        subject = (subject or "").strip()
        if subject:
            return self.template.replace(DEFAULT_SUBJECT_PLACEHOLDER, subject)
        text = self.template.replace(DEFAULT_SUBJECT_PLACEHOLDER, self.default_subject)
        if self.auto_detect_hint:
            text = f"{text}\n{self.auto_detect_hint}"
        return text


PRESETS: List[PresetDefinition] = [
    PresetDefinition(
        name="Zoom",
        brief="Zoom in on the subject while keeping it sharp and detailed",
        template=(
            "Zoom in on {subject}, filling most of the frame with it. Keep its "
            "identity, colors, materials and proportions exactly the same, preserve "
            "fine detail and sharpness, and keep the original lighting and style. "
            "Crop away surrounding background as needed without adding new elements."
        ),
        auto_detect_hint=(
            "First automatically detect the main subject of the image, name it "
            "explicitly with specific descriptors, then write the auto-zoom "
            "instruction for that subject."
        ),
    ),
    PresetDefinition(
        name="Indoor Lighting",
        brief="Relight the scene with indoor lighting",
        template=(
            "Change the lighting environment to indoor lighting for {subject}, while "
            "keeping the exact same composition, pose, camera angle and framing."
        ),
    ),
    PresetDefinition(
        name="Morning Light",
        brief="Relight the scene with soft morning light",
        template=(
            "Change the lighting environment to morning light for {subject}, while "
            "keeping the exact same composition, pose, camera angle and framing."
        ),
    ),
    PresetDefinition(
        name="Daylight",
        brief="Relight the scene with natural daylight",
        template=(
            "Change the lighting environment to daylight for {subject}, while "
            "keeping the exact same composition, pose, camera angle and framing."
        ),
    ),
    PresetDefinition(
        name="Photographic Light",
        brief="Relight the scene with studio photographic light",
        template=(
            "Change the lighting environment into photographic light for {subject}, "
            "while keeping the exact same composition, pose, camera angle and framing."
        ),
    ),
    PresetDefinition(
        name="Remove Background People",
        brief="Remove distant people from the background",
        template=(
            "Remove distant background people behind {subject}, filling the cleared "
            "areas with matching background, while keeping {subject} and the rest "
            "of the scene unchanged."
        ),
        default_subject="the main subject",
    ),
]

_PRESETS_BY_NAME: Dict[str, PresetDefinition] = {p.name: p for p in PRESETS}


def get_preset_by_name(name: str) -> Optional[PresetDefinition]:
    return _PRESETS_BY_NAME.get(name)


def list_presets() -> List[PresetDefinition]:
    return list(PRESETS)


def preset_options() -> List[Dict[str, str]]:
    return [{"value": p.name, "label": p.name, "brief": p.brief} for p in PRESETS]


def build_preset_prompt(preset: PresetDefinition, subject: Optional[str] = None) -> str:
    return preset.build(subject)
