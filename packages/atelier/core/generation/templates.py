"""Instruction text templates per generation kind.

Each builder takes a GenerationRequest and returns the final instruction
string. Builders never fail: missing fields fall back to neutral wording.
"""

from __future__ import annotations

from collections.abc import Callable

from atelier.core.generation.models import (
    CameraMotion,
    GenerationKind,
    GenerationRequest,
    VideoEffect,
)

DEFAULT_NEGATIVE_PROMPT = "watermark, text, signature, low quality, distorted, extra limbs, ugly, blurry"

GENERIC_TEMPLATE = "High quality creative render"

OUTPAINT_DIRECTIONS: dict[str, str] = {
    "all": "Expand equally in all four directions (top, bottom, left, right)",
    "up": "Expand upward, adding more sky/ceiling/background above",
    "down": "Expand downward, adding more ground/floor/foreground below",
    "left": "Expand to the left, continuing the scene leftward",
    "right": "Expand to the right, continuing the scene rightward",
}

_DIRECTION_ALIASES: dict[str, str] = {
    "top": "up",
    "bottom": "down",
    "both": "all",
    "horizontal": "all",
    "vertical": "all",
}

DEFAULT_EXPANSION_PERCENT = 50

OUTPAINT_REQUIREMENTS = (
    "Critical requirements:\n"
    "- Match the exact art style, brushwork, and rendering technique\n"
    "- Continue perspective lines and maintain correct vanishing points\n"
    "- Seamlessly extend all textures and patterns\n"
    "- Match lighting direction, intensity, and color temperature exactly\n"
    "- No visible seam between original and extended areas\n"
    "- Maintain consistent level of detail throughout"
)

CAMERA_MOTIONS: dict[CameraMotion, str] = {
    CameraMotion.STATIC: "locked-off static camera, no movement",
    CameraMotion.PAN_LEFT: "smooth pan to the left",
    CameraMotion.PAN_RIGHT: "smooth pan to the right",
    CameraMotion.TILT_UP: "slow tilt upward",
    CameraMotion.TILT_DOWN: "slow tilt downward",
    CameraMotion.ZOOM_IN: "gradual zoom in toward the subject",
    CameraMotion.ZOOM_OUT: "gradual zoom out revealing the scene",
    CameraMotion.DOLLY_IN: "dolly in, camera physically moving closer",
    CameraMotion.DOLLY_OUT: "dolly out, camera physically moving away",
    CameraMotion.ORBIT: "slow orbit around the subject",
    CameraMotion.CRANE_UP: "crane shot rising above the scene",
    CameraMotion.HANDHELD: "subtle handheld movement with natural shake",
}


def _sentence(text: str) -> str:
    text = text.strip()
    if not text:
        return ""
    return text if text[-1] in ".!?" else f"{text}."


def _join(parts: list[str | None], sep: str = " ") -> str:
    return sep.join(p for p in (_sentence(p or "") for p in parts) if p)


def normalize_direction(direction: str | None) -> str:
    """Map a caller direction to one of the outpaint direction keys."""
    raw = (direction or "all").strip().lower()
    raw = _DIRECTION_ALIASES.get(raw, raw)
    return raw if raw in OUTPAINT_DIRECTIONS else "all"


def build_negative_prompt(request: GenerationRequest) -> str:
    """Default negative prompt with the caller's additions appended."""
    extra = (request.negative_prompt or "").strip()
    return f"{DEFAULT_NEGATIVE_PROMPT}, {extra}" if extra else DEFAULT_NEGATIVE_PROMPT


def text_to_image(r: GenerationRequest) -> str:
    parts = [r.prompt or GENERIC_TEMPLATE]
    if r.style:
        parts.append(f"Style: {r.style}")
    if r.lighting:
        parts.append(f"Lighting: {r.lighting}")
    return _join(parts)


def inpaint(r: GenerationRequest) -> str:
    change = r.prompt or "content that matches the surrounding image"
    return (
        f"Replace the masked area with: {change.rstrip('.')}.\n"
        "Blend seamlessly with surrounding image.\n"
        "Match lighting and perspective."
    )


def outpaint(r: GenerationRequest) -> str:
    direction = OUTPAINT_DIRECTIONS[normalize_direction(r.direction)]
    amount = r.expansion_amount if r.expansion_amount is not None else DEFAULT_EXPANSION_PERCENT
    guidance = (
        f"Scene extension guidance: {r.prompt.rstrip('.')}."
        if r.prompt
        else "Continue the existing scene naturally."
    )
    return (
        f"{direction}. Expansion amount: {amount:g}% of original size. {guidance}\n\n"
        f"{OUTPAINT_REQUIREMENTS}"
    )


def style_transfer(r: GenerationRequest) -> str:
    parts = ["Use the input image as content reference"]
    parts.append(f"Target style: {r.style or r.prompt or 'artistic painting'}")
    if r.style and r.prompt:
        parts.append(r.prompt)
    parts.append("Preserve: composition, subject identity and layout")
    return _join(parts, sep="\n")


def relight(r: GenerationRequest) -> str:
    light = r.lighting or r.prompt or "soft natural studio lighting"
    return f"Relight the scene.\nNew lighting: {light.rstrip('.')}.\nPreserve colors and materials."


def upscale(r: GenerationRequest) -> str:
    return _join(
        [
            "Upscale the image to higher resolution",
            r.prompt,
            "Preserve fine details, textures and edges without adding artifacts",
        ]
    )


def composer(r: GenerationRequest) -> str:
    return _join(
        [
            "Compose a single coherent image from the reference images",
            r.prompt,
            "Unify lighting, perspective and scale across all elements",
        ]
    )


def virtual_try_on(r: GenerationRequest) -> str:
    return _join(
        [
            "Dress the person in the reference garment",
            r.prompt,
            "Preserve pose, body shape, face and identity. Realistic fabric drape and fit",
        ]
    )


def change_background(r: GenerationRequest) -> str:
    backdrop = r.prompt or "a clean, neutral studio backdrop"
    return (
        f"Replace the background with: {backdrop.rstrip('.')}.\n"
        "Keep the subject untouched with crisp, natural edges.\n"
        "Match lighting, shadows and perspective to the new scene."
    )


def remove_background(r: GenerationRequest) -> str:
    return "Remove the background. Keep the subject with clean, precise edges on transparency."


def fashion_factory(r: GenerationRequest) -> str:
    return _join(
        [
            "Fashion catalogue shot of the model wearing the reference garment",
            r.prompt,
            f"Setting: {r.style}" if r.style else None,
            "Accurate fabric, color and fit. Professional studio photography",
        ]
    )


def tuner(r: GenerationRequest) -> str:
    return _join(
        [
            "Refine the image",
            r.prompt,
            f"Style: {r.style}" if r.style else None,
            f"Lighting: {r.lighting}" if r.lighting else None,
            "Keep composition and subject identity",
        ]
    )


def talking_avatar(r: GenerationRequest) -> str:
    line = r.text or r.prompt or "Hello."
    return f"Animate the portrait speaking naturally with expressive, lip-synced delivery: {line}"


VIDEO_EFFECTS: dict[VideoEffect, str] = {
    VideoEffect.CAMERA_MOTION: (
        "Apply professional camera movement to this image. Smooth, stabilized motion "
        "with natural easing and parallax depth"
    ),
    VideoEffect.STYLE_TRANSFER: (
        "Transform this image into a cinematic video with a consistent artistic style. "
        "No flickering, preserve composition"
    ),
    VideoEffect.SLOW_MOTION: (
        "Animate this image in dramatic slow motion. Fluid, high frame rate movement "
        "with fine motion detail"
    ),
    VideoEffect.LOOP: (
        "Animate this image as a seamless loop. The last frame flows into the first "
        "with no visible jump"
    ),
    VideoEffect.REVERSE: (
        "Animate this image with motion that plays convincingly in reverse. "
        "Physically coherent rewinding movement"
    ),
    VideoEffect.DEPTH: "Estimate a smooth, accurate depth map of this image",
}


def video_effects(r: GenerationRequest) -> str:
    effect = r.effect or VideoEffect.CAMERA_MOTION
    parts: list[str | None] = [VIDEO_EFFECTS[effect]]
    if effect == VideoEffect.CAMERA_MOTION and r.camera_motion is not None:
        parts.append(f"Camera movement: {camera_phrase(r.camera_motion)}")
    parts.append(f"Direction: {r.prompt}" if r.prompt else None)
    return _join(parts)


def camera_phrase(motion: CameraMotion | None) -> str | None:
    if motion is None:
        return None
    return CAMERA_MOTIONS[motion]


def video(r: GenerationRequest) -> str:
    parts: list[str | None] = []
    if r.style:
        parts.append(f"{r.style} shot")
    parts.append(r.prompt or "Cinematic scene with natural motion")
    if r.camera_motion is not None:
        parts.append(f"Camera movement: {camera_phrase(r.camera_motion)}")
    if r.lighting:
        parts.append(f"Lighting: {r.lighting}")
    return _join(parts)


def video_extend(r: GenerationRequest) -> str:
    return _join(
        [
            "Continue the video seamlessly from its final frame",
            r.prompt,
            "Keep subjects, lighting, color grading and camera motion consistent",
            "No cuts, jumps or visible transition",
        ]
    )


def lip_sync(r: GenerationRequest) -> str:
    return _join(
        [
            "Synchronize lip movements precisely to the speech",
            r.prompt,
            "Natural mouth shapes, facial expressions and timing",
        ]
    )


def speech(r: GenerationRequest) -> str:
    line = r.text or r.prompt or "Hello."
    return f"Speak naturally with clear diction and human pacing: {line}"


def sound_effect(r: GenerationRequest) -> str:
    return _join([r.prompt or "Ambient sound", "High fidelity sound effect, clean recording"])


def music(r: GenerationRequest) -> str:
    return _join([r.prompt or "Calm instrumental piece", "Well-produced music with clear structure"])


def generic(r: GenerationRequest) -> str:
    if r.prompt:
        return f"{GENERIC_TEMPLATE} of: {r.prompt.rstrip('.')}. Rich detail, coherent composition."
    return f"{GENERIC_TEMPLATE}. Rich detail, coherent composition."


TEMPLATES: dict[GenerationKind, Callable[[GenerationRequest], str]] = {
    GenerationKind.TEXT_TO_IMAGE: text_to_image,
    GenerationKind.INPAINT: inpaint,
    GenerationKind.OUTPAINT: outpaint,
    GenerationKind.CHANGE_BACKGROUND: change_background,
    GenerationKind.REMOVE_BACKGROUND: remove_background,
    GenerationKind.STYLE_TRANSFER: style_transfer,
    GenerationKind.RELIGHT: relight,
    GenerationKind.UPSCALE: upscale,
    GenerationKind.COMPOSER: composer,
    GenerationKind.VIRTUAL_TRY_ON: virtual_try_on,
    GenerationKind.FASHION_FACTORY: fashion_factory,
    GenerationKind.TUNER: tuner,
    GenerationKind.TEXT_TO_VIDEO: video,
    GenerationKind.IMAGE_TO_VIDEO: video,
    GenerationKind.VIDEO_EXTEND: video_extend,
    GenerationKind.LIP_SYNC: lip_sync,
    GenerationKind.TALKING_AVATAR: talking_avatar,
    GenerationKind.VIDEO_EFFECTS: video_effects,
    GenerationKind.SOUND_EFFECT: sound_effect,
    GenerationKind.MUSIC: music,
    GenerationKind.SPEECH: speech,
}


def build_instruction(request: GenerationRequest) -> str:
    """Instruction text for a request. Never empty."""
    kind = request.known_kind
    template = TEMPLATES.get(kind, generic) if kind is not None else generic
    return template(request)
