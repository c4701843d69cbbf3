"""Model catalogue: default and fallback provider targets per kind."""

from __future__ import annotations

from atelier.core.generation.models import (
    DispatchMode,
    GenerationKind,
    MediaType,
    ProviderFamily,
    ProviderTarget,
    VideoEffect,
    resolve_kind,
)


class FalModels:
    FLUX_PRO = "fal-ai/flux-pro/v1.1-ultra"
    FLUX_DEV = "fal-ai/flux/dev"
    FLUX_SCHNELL = "fal-ai/flux/schnell"
    INPAINT = "fal-ai/flux/dev/inpainting"
    REDUX = "fal-ai/flux-pro/v1.1-ultra/redux"
    STYLE_TRANSFER = "fal-ai/image-apps-v2/style-transfer"
    IC_LIGHT = "fal-ai/ic-light"
    UPSCALE = "fal-ai/aura-sr"
    VTON = "fal-ai/idm-vton"
    CATVTON = "fal-ai/catvton"
    KLING_TEXT = "fal-ai/kling-video/v1/standard/text-to-video"
    KLING_IMAGE = "fal-ai/kling-video/v1/standard/image-to-video"
    KLING_EXTEND = "fal-ai/kling-video/v1.6/pro/video-extend"
    KLING_LIPSYNC = "fal-ai/kling-video/v1/pro/lipsync"
    SYNC_LIPSYNC = "fal-ai/sync-lipsync"
    WAV2LIP = "fal-ai/wav2lip-gan"
    MOCHI = "fal-ai/mochi-1"
    STABLE_AUDIO = "fal-ai/stable-audio"
    MUSICGEN = "fal-ai/musicgen"
    F5_TTS = "fal-ai/f5-tts"
    BIREFNET = "fal-ai/birefnet"
    REMBG = "fal-ai/imageutils/rembg"
    HELLO_MEME = "fal-ai/hello-meme"
    KLING_PRO_IMAGE = "fal-ai/kling-video/v1.6/pro/image-to-video"
    VEO3_IMAGE = "fal-ai/veo3/image-to-video"
    DEPTH = "fal-ai/depth-anything-v2"


class GoogleModels:
    GEMINI_IMAGE = "gemini-2.5-flash-image"
    VEO = "veo-3.0-generate-001"


class HuggingFaceModels:
    FLUX_SCHNELL = "black-forest-labs/FLUX.1-schnell"
    MUSICGEN = "facebook/musicgen-small"


class TogetherModels:
    FLUX_SCHNELL = "black-forest-labs/FLUX.1-schnell-Free"


class SiliconFlowModels:
    FLUX_SCHNELL = "black-forest-labs/FLUX.1-schnell"
    MOCHI = "genmo/mochi-1-preview"
    HUNYUAN = "tencent/HunyuanVideo"


# Stable Audio rejects clips longer than this.
STABLE_AUDIO_MAX_SECONDS = 47


def _fal(model: str, mode: DispatchMode = DispatchMode.SYNC) -> ProviderTarget:
    return ProviderTarget(family=ProviderFamily.FAL, model=model, mode=mode)


_QUEUE = DispatchMode.QUEUE

DEFAULT_TARGETS: dict[GenerationKind, ProviderTarget] = {
    GenerationKind.TEXT_TO_IMAGE: _fal(FalModels.FLUX_PRO),
    GenerationKind.INPAINT: _fal(FalModels.INPAINT),
    GenerationKind.OUTPAINT: _fal(FalModels.INPAINT),
    GenerationKind.CHANGE_BACKGROUND: _fal(FalModels.INPAINT),
    GenerationKind.REMOVE_BACKGROUND: _fal(FalModels.BIREFNET),
    GenerationKind.STYLE_TRANSFER: _fal(FalModels.STYLE_TRANSFER),
    GenerationKind.RELIGHT: _fal(FalModels.IC_LIGHT),
    GenerationKind.UPSCALE: _fal(FalModels.UPSCALE),
    GenerationKind.COMPOSER: _fal(FalModels.REDUX),
    GenerationKind.VIRTUAL_TRY_ON: _fal(FalModels.VTON, _QUEUE),
    GenerationKind.FASHION_FACTORY: _fal(FalModels.VTON, _QUEUE),
    GenerationKind.TUNER: _fal(FalModels.FLUX_DEV),
    GenerationKind.TEXT_TO_VIDEO: _fal(FalModels.KLING_TEXT, _QUEUE),
    GenerationKind.IMAGE_TO_VIDEO: _fal(FalModels.KLING_IMAGE, _QUEUE),
    GenerationKind.VIDEO_EXTEND: _fal(FalModels.KLING_EXTEND, _QUEUE),
    GenerationKind.LIP_SYNC: _fal(FalModels.KLING_LIPSYNC, _QUEUE),
    GenerationKind.TALKING_AVATAR: _fal(FalModels.HELLO_MEME, _QUEUE),
    GenerationKind.VIDEO_EFFECTS: _fal(FalModels.VEO3_IMAGE, _QUEUE),
    GenerationKind.SOUND_EFFECT: _fal(FalModels.STABLE_AUDIO, _QUEUE),
    GenerationKind.MUSIC: _fal(FalModels.MUSICGEN, _QUEUE),
    GenerationKind.SPEECH: _fal(FalModels.F5_TTS, _QUEUE),
}

# Kinds without a template render through the general-purpose image model.
GENERIC_TARGET = _fal(FalModels.FLUX_DEV)

_HF_FLUX = ProviderTarget(family=ProviderFamily.HUGGINGFACE, model=HuggingFaceModels.FLUX_SCHNELL)
_HF_MUSIC = ProviderTarget(family=ProviderFamily.HUGGINGFACE, model=HuggingFaceModels.MUSICGEN)
_TOGETHER_FLUX = ProviderTarget(family=ProviderFamily.TOGETHER, model=TogetherModels.FLUX_SCHNELL)
_SF_FLUX = ProviderTarget(family=ProviderFamily.SILICONFLOW, model=SiliconFlowModels.FLUX_SCHNELL)
_SF_MOCHI = ProviderTarget(
    family=ProviderFamily.SILICONFLOW, model=SiliconFlowModels.MOCHI, mode=_QUEUE
)
_SF_HUNYUAN = ProviderTarget(
    family=ProviderFamily.SILICONFLOW, model=SiliconFlowModels.HUNYUAN, mode=_QUEUE
)

# Ordered alternatives tried when the caller asks for a fallback.
FALLBACK_TARGETS: dict[GenerationKind, tuple[ProviderTarget, ...]] = {
    GenerationKind.TEXT_TO_IMAGE: (
        _fal(FalModels.FLUX_SCHNELL),
        _HF_FLUX,
        _SF_FLUX,
        _TOGETHER_FLUX,
    ),
    GenerationKind.REMOVE_BACKGROUND: (_fal(FalModels.REMBG),),
    GenerationKind.COMPOSER: (_fal(FalModels.FLUX_SCHNELL),),
    GenerationKind.STYLE_TRANSFER: (_fal(FalModels.FLUX_DEV),),
    GenerationKind.VIRTUAL_TRY_ON: (_fal(FalModels.CATVTON, _QUEUE),),
    GenerationKind.FASHION_FACTORY: (_fal(FalModels.CATVTON, _QUEUE),),
    GenerationKind.TEXT_TO_VIDEO: (_fal(FalModels.MOCHI, _QUEUE), _SF_MOCHI),
    GenerationKind.IMAGE_TO_VIDEO: (_fal(FalModels.MOCHI, _QUEUE), _SF_HUNYUAN),
    GenerationKind.LIP_SYNC: (_fal(FalModels.SYNC_LIPSYNC, _QUEUE), _fal(FalModels.WAV2LIP, _QUEUE)),
    GenerationKind.SOUND_EFFECT: (_HF_MUSIC,),
    GenerationKind.MUSIC: (_HF_MUSIC,),
}

# Effects that do not run on the default video-effects model.
VIDEO_EFFECT_TARGETS: dict[VideoEffect, ProviderTarget] = {
    VideoEffect.CAMERA_MOTION: _fal(FalModels.KLING_PRO_IMAGE, _QUEUE),
    VideoEffect.DEPTH: _fal(FalModels.DEPTH),
}

GOOGLE_TARGETS: dict[MediaType, ProviderTarget] = {
    MediaType.IMAGE: ProviderTarget(
        family=ProviderFamily.GOOGLE, model=GoogleModels.GEMINI_IMAGE, mode=DispatchMode.SYNC
    ),
    MediaType.VIDEO: ProviderTarget(
        family=ProviderFamily.GOOGLE, model=GoogleModels.VEO, mode=DispatchMode.OPERATION
    ),
}


def default_target(
    kind: GenerationKind | str, effect: VideoEffect | None = None
) -> ProviderTarget:
    """Primary target for a kind. Unknown kinds get the generic image target.

    ``effect`` only matters for video effects, where some effects need their own model.
    """
    known = resolve_kind(kind)
    if known is None:
        return GENERIC_TARGET
    if known == GenerationKind.VIDEO_EFFECTS and effect in VIDEO_EFFECT_TARGETS:
        return VIDEO_EFFECT_TARGETS[effect]
    return DEFAULT_TARGETS[known]


def fallback_targets(kind: GenerationKind | str) -> tuple[ProviderTarget, ...]:
    """All alternative targets for a kind, most preferred first."""
    known = resolve_kind(kind)
    if known is None:
        return (_fal(FalModels.FLUX_SCHNELL),)
    return FALLBACK_TARGETS.get(known, ())


def fallback_target(kind: GenerationKind | str) -> ProviderTarget | None:
    """Preferred alternative target for a kind, or None if it has none."""
    targets = fallback_targets(kind)
    return targets[0] if targets else None


def target_for(
    kind: GenerationKind | str,
    family: ProviderFamily | str | None = None,
    effect: VideoEffect | None = None,
) -> ProviderTarget | None:
    """Target for a kind served by a specific family, or the default when family is None."""
    primary = default_target(kind, effect)
    if family is None:
        return primary
    family = ProviderFamily(family)
    if primary.family == family:
        return primary
    if family == ProviderFamily.GOOGLE:
        known = resolve_kind(kind)
        media = known.media_type if known is not None else MediaType.IMAGE
        if known == GenerationKind.VIDEO_EFFECTS and effect == VideoEffect.DEPTH:
            media = MediaType.IMAGE
        return GOOGLE_TARGETS.get(media)
    for target in fallback_targets(kind):
        if target.family == family:
            return target
    return None
