"""Request compiler: GenerationRequest -> CompiledPayload.

``compile_request`` is pure and total. It never performs I/O and never
rejects a request: unknown kinds use the generic template, unknown or
unusable tuning values are dropped.
"""

from __future__ import annotations

import logging
from typing import Any

from atelier.core.generation.catalogue import STABLE_AUDIO_MAX_SECONDS, FalModels, default_target
from atelier.core.generation.errors import CompileError
from atelier.core.generation.models import (
    CameraMotion,
    CompiledPayload,
    DispatchMode,
    GenerationKind,
    GenerationRequest,
    MediaRef,
    MediaType,
    ProviderFamily,
    ProviderTarget,
    VideoEffect,
)
from atelier.core.generation.templates import build_instruction, build_negative_prompt

logger = logging.getLogger(__name__)

FAL_IMAGE_SIZES: dict[str, str] = {
    "16:9": "landscape_16_9",
    "9:16": "portrait_16_9",
    "1:1": "square_hd",
    "4:3": "landscape_4_3",
    "3:4": "portrait_4_3",
    "2:3": "portrait_4_3",
    "3:2": "landscape_4_3",
}
DEFAULT_IMAGE_SIZE = "landscape_16_9"

PIXEL_SIZES: dict[str, tuple[int, int]] = {
    "1:1": (1024, 1024),
    "16:9": (1024, 576),
    "9:16": (576, 1024),
    "4:3": (1024, 768),
    "3:4": (768, 1024),
}
DEFAULT_PIXEL_SIZE = (1024, 768)

VIDEO_ASPECT_RATIOS = ("16:9", "9:16", "1:1")
VEO_DURATIONS = (4, 8)
DEFAULT_VIDEO_DURATION = 5
DEFAULT_AUDIO_DURATION = 10

# Kling custom camera_control values, each in -10..10.
CAMERA_CONTROLS: dict[CameraMotion, dict[str, float]] = {
    CameraMotion.PAN_LEFT: {"pan": -5},
    CameraMotion.PAN_RIGHT: {"pan": 5},
    CameraMotion.TILT_UP: {"tilt": 5},
    CameraMotion.TILT_DOWN: {"tilt": -5},
    CameraMotion.ZOOM_IN: {"zoom": 5},
    CameraMotion.ZOOM_OUT: {"zoom": -5},
    CameraMotion.DOLLY_IN: {"zoom": 8},
    CameraMotion.DOLLY_OUT: {"zoom": -8},
    CameraMotion.ORBIT: {"horizontal": 5, "pan": -5},
    CameraMotion.CRANE_UP: {"vertical": 5},
    CameraMotion.HANDHELD: {"roll": 1},
}


def compile_request(
    request: GenerationRequest, target: ProviderTarget | None = None
) -> CompiledPayload:
    """Compile a request for one provider target.

    Args:
        request: The creative request
        target: Provider target (defaults to the catalogue's primary target for the kind)

    Returns:
        CompiledPayload with the provider body, request path and instruction text
    """
    target = target or default_target(request.kind, request.effect)
    instruction = build_instruction(request)
    negative = build_negative_prompt(request)

    builder = _BUILDERS.get(target.family)
    if builder is None:
        raise CompileError(f"No payload builder for provider family {target.family!r}")
    path, body = builder(request, target, instruction, negative)
    kind = request.kind.value if isinstance(request.kind, GenerationKind) else request.kind
    logger.debug("Compiled %s request for %s", kind, target)

    return CompiledPayload(
        kind=kind,
        target=target,
        path=path,
        body=body,
        instruction=instruction,
        negative_prompt=negative,
        media_type=request.media_type,
    )


def fal_image_size(aspect_ratio: str | None) -> str:
    return FAL_IMAGE_SIZES.get((aspect_ratio or "").strip(), DEFAULT_IMAGE_SIZE)


def pixel_size(aspect_ratio: str | None) -> tuple[int, int]:
    return PIXEL_SIZES.get((aspect_ratio or "").strip(), DEFAULT_PIXEL_SIZE)


def _media(request: GenerationRequest, index: int) -> MediaRef | None:
    if index < len(request.base_media):
        return request.base_media[index]
    return None


def _video_duration(request: GenerationRequest) -> int:
    # Kling only renders 5 or 10 second clips.
    if request.duration is None:
        return DEFAULT_VIDEO_DURATION
    return 10 if request.duration > 7.5 else 5


def _audio_duration(request: GenerationRequest) -> int:
    if request.duration is None or request.duration <= 0:
        return DEFAULT_AUDIO_DURATION
    return int(round(request.duration))


def _veo_duration(request: GenerationRequest) -> int:
    if request.duration is None or request.duration <= 0:
        return max(VEO_DURATIONS)
    return int(max(VEO_DURATIONS[0], min(VEO_DURATIONS[1], round(request.duration))))


def camera_control(motion: CameraMotion | None) -> dict[str, Any]:
    control: dict[str, Any] = {
        "type": "custom",
        "horizontal": 0,
        "vertical": 0,
        "zoom": 0,
        "tilt": 0,
        "pan": 0,
        "roll": 0,
    }
    if motion is not None:
        control.update(CAMERA_CONTROLS.get(motion, {}))
    return control


def _clamp01(value: float | None, default: float) -> float:
    if value is None:
        return default
    # Sliders sometimes send percentages.
    if value > 1:
        value = value / 100
    return max(0.0, min(1.0, value))


def _fal_payload(
    request: GenerationRequest, target: ProviderTarget, instruction: str, negative: str
) -> tuple[str, dict[str, Any]]:
    kind = request.known_kind
    model = target.model
    body: dict[str, Any] = {"prompt": instruction}
    first = _media(request, 0)
    second = _media(request, 1)

    if request.media_type == MediaType.IMAGE:
        if "ultra" in model and model != FalModels.REDUX:
            body["aspect_ratio"] = request.aspect_ratio or "16:9"
        else:
            body["image_size"] = fal_image_size(request.aspect_ratio)
        body["negative_prompt"] = negative

    if kind in (GenerationKind.INPAINT, GenerationKind.OUTPAINT, GenerationKind.CHANGE_BACKGROUND):
        if first is not None:
            body["image_url"] = first.as_url()
        if request.mask is not None:
            body["mask_url"] = request.mask.as_url()
        default_strength = 1.0 if kind == GenerationKind.OUTPAINT else 0.85
        body["strength"] = _clamp01(request.strength, default_strength)
    elif kind == GenerationKind.REMOVE_BACKGROUND:
        # Segmentation models take the image and nothing else.
        body = {"image_url": first.as_url()} if first is not None else {}
    elif kind == GenerationKind.TUNER:
        if first is not None:
            body["image_url"] = first.as_url()
            body["strength"] = _clamp01(request.strength, 0.75)
    elif kind == GenerationKind.STYLE_TRANSFER:
        if first is not None:
            body["image_url"] = first.as_url()
        body["target_style"] = request.style or request.prompt or "artistic painting"
        if request.strength is not None:
            body["strength"] = _clamp01(request.strength, 0.75)
    elif kind in (GenerationKind.RELIGHT, GenerationKind.COMPOSER):
        if first is not None:
            body["image_url"] = first.as_url()
    elif kind == GenerationKind.UPSCALE:
        body = {"image_url": first.as_url() if first else None, "upscaling_factor": 4}
        body = {k: v for k, v in body.items() if v is not None}
        body["prompt"] = instruction
    elif kind in (GenerationKind.VIRTUAL_TRY_ON, GenerationKind.FASHION_FACTORY):
        if first is not None:
            body["human_image_url"] = first.as_url()
        if second is not None:
            body["garment_image_url"] = second.as_url()
        body["description"] = request.prompt or "garment"
    elif kind in (GenerationKind.TEXT_TO_VIDEO, GenerationKind.IMAGE_TO_VIDEO):
        body["duration"] = str(_video_duration(request))
        ar = request.aspect_ratio if request.aspect_ratio in VIDEO_ASPECT_RATIOS else "16:9"
        body["aspect_ratio"] = ar
        body["negative_prompt"] = negative
        if first is not None:
            body["image_url"] = first.as_url()
    elif kind == GenerationKind.VIDEO_EXTEND:
        if first is not None:
            body["video_url"] = first.as_url("video/mp4")
        body["duration"] = str(_video_duration(request))
    elif kind == GenerationKind.LIP_SYNC:
        if first is not None:
            body["video_url"] = first.as_url("video/mp4")
        if second is not None:
            body["audio_url"] = second.as_url("audio/mpeg")
        else:
            body["text"] = request.text or request.prompt
    elif kind == GenerationKind.TALKING_AVATAR:
        if first is not None:
            body["ref_image_url"] = first.as_url()
        body["script"] = request.text or request.prompt or "Hello."
    elif kind == GenerationKind.VIDEO_EFFECTS:
        effect = request.effect or VideoEffect.CAMERA_MOTION
        if effect == VideoEffect.DEPTH:
            body = {}
        elif effect == VideoEffect.CAMERA_MOTION:
            body["duration"] = str(DEFAULT_VIDEO_DURATION)
            body["camera_control"] = camera_control(request.camera_motion)
        else:
            body["resolution"] = "1080p"
        if first is not None:
            body["image_url"] = first.as_url()
    elif kind == GenerationKind.SOUND_EFFECT:
        body["seconds_total"] = min(_audio_duration(request), STABLE_AUDIO_MAX_SECONDS)
    elif kind == GenerationKind.MUSIC:
        body["duration"] = _audio_duration(request)
    elif kind == GenerationKind.SPEECH:
        body = {
            "gen_text": request.text or request.prompt or "Hello.",
            "model_type": "F5-TTS",
        }
        if first is not None:
            body["ref_audio_url"] = first.as_url("audio/wav")

    return model, body


def _google_part(ref: MediaRef, default_mime: str) -> dict[str, Any]:
    mime = ref.mime_type(default_mime)
    if ref.is_remote:
        return {"fileData": {"fileUri": ref.value, "mimeType": mime}}
    return {"inlineData": {"mimeType": mime, "data": ref.as_base64()}}


def _google_payload(
    request: GenerationRequest, target: ProviderTarget, instruction: str, negative: str
) -> tuple[str, dict[str, Any]]:
    if target.mode == DispatchMode.OPERATION:
        instance: dict[str, Any] = {"prompt": instruction}
        first = _media(request, 0)
        if first is not None and not first.is_remote:
            instance["image"] = {
                "bytesBase64Encoded": first.as_base64(),
                "mimeType": first.mime_type("image/png"),
            }
        ar = request.aspect_ratio if request.aspect_ratio in ("16:9", "9:16") else "16:9"
        parameters: dict[str, Any] = {
            "aspectRatio": ar,
            "negativePrompt": negative,
            "durationSeconds": _veo_duration(request),
        }
        return f"models/{target.model}:predictLongRunning", {
            "instances": [instance],
            "parameters": parameters,
        }

    parts: list[dict[str, Any]] = [{"text": f"{instruction}\nAvoid: {negative}"}]
    parts.extend(_google_part(ref, "image/png") for ref in request.base_media)
    if request.mask is not None:
        parts.append(_google_part(request.mask, "image/png"))
    body: dict[str, Any] = {
        "contents": [{"role": "user", "parts": parts}],
        "generationConfig": {"responseModalities": ["TEXT", "IMAGE"]},
    }
    if request.aspect_ratio:
        body["generationConfig"]["imageConfig"] = {"aspectRatio": request.aspect_ratio}
    return f"models/{target.model}:generateContent", body


def _huggingface_payload(
    request: GenerationRequest, target: ProviderTarget, instruction: str, negative: str
) -> tuple[str, dict[str, Any]]:
    body: dict[str, Any] = {"inputs": instruction}
    if request.media_type == MediaType.IMAGE:
        width, height = pixel_size(request.aspect_ratio)
        body["parameters"] = {"negative_prompt": negative, "width": width, "height": height}
    return f"models/{target.model}", body


def _together_payload(
    request: GenerationRequest, target: ProviderTarget, instruction: str, negative: str
) -> tuple[str, dict[str, Any]]:
    width, height = pixel_size(request.aspect_ratio)
    body = {
        "model": target.model,
        "prompt": instruction,
        "negative_prompt": negative,
        "n": 1,
        "size": f"{width}x{height}",
        "width": width,
        "height": height,
        "steps": 4,
        "response_format": "url",
    }
    return "images/generations", body


def _siliconflow_payload(
    request: GenerationRequest, target: ProviderTarget, instruction: str, negative: str
) -> tuple[str, dict[str, Any]]:
    if target.mode == DispatchMode.QUEUE:
        body: dict[str, Any] = {"model": target.model, "prompt": instruction}
        first = _media(request, 0)
        if first is not None:
            body["image"] = first.as_url()
        return "video/generations", body

    width, height = pixel_size(request.aspect_ratio)
    return "images/generations", {
        "model": target.model,
        "prompt": instruction,
        "negative_prompt": negative,
        "image_size": f"{width}x{height}",
        "batch_size": 1,
        "num_inference_steps": 4,
    }


_BUILDERS = {
    ProviderFamily.FAL: _fal_payload,
    ProviderFamily.GOOGLE: _google_payload,
    ProviderFamily.HUGGINGFACE: _huggingface_payload,
    ProviderFamily.TOGETHER: _together_payload,
    ProviderFamily.SILICONFLOW: _siliconflow_payload,
}
