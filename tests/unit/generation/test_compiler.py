"""Tests for the request compiler, instruction templates and model catalogue."""

from __future__ import annotations

import pytest

from atelier.core.generation.catalogue import (
    FALLBACK_TARGETS,
    GENERIC_TARGET,
    FalModels,
    GoogleModels,
    SiliconFlowModels,
    default_target,
    fallback_target,
    target_for,
)
from atelier.core.generation.compiler import compile_request
from atelier.core.generation.models import (
    DispatchMode,
    GenerationKind,
    GenerationRequest,
    MediaType,
    ProviderFamily,
    VideoEffect,
)
from atelier.core.generation.templates import DEFAULT_NEGATIVE_PROMPT, build_instruction

_IMAGE = "https://img.test/base.png"


class TestCompileTotality:
    @pytest.mark.parametrize("kind", [k.value for k in GenerationKind] + ["hologram"])
    def test_every_kind_compiles_with_empty_prompt(self, kind: str) -> None:
        payload = compile_request(GenerationRequest(kind=kind))
        assert payload.instruction.strip()
        assert payload.path
        assert isinstance(payload.body, dict)

    @pytest.mark.parametrize("family", list(ProviderFamily))
    def test_every_family_builds_a_body(self, family: ProviderFamily) -> None:
        target = target_for("text-to-image", family)
        assert target is not None
        payload = compile_request(GenerationRequest(prompt="a fox"), target)
        assert payload.target.family is family
        assert "a fox" in payload.instruction

    @pytest.mark.parametrize("duration", ["nan", "inf", 1e400])
    @pytest.mark.parametrize("kind", ["sound-effect", "music", "text-to-video"])
    def test_non_finite_duration_compiles(self, kind: str, duration: object) -> None:
        req = GenerationRequest.model_validate({"kind": kind, "prompt": "p", "duration": duration})
        assert compile_request(req).body
        google = target_for(kind, ProviderFamily.GOOGLE)
        if google is not None:
            assert compile_request(req, google).body["parameters"]["durationSeconds"] == 8

    def test_unknown_kind_uses_generic_template(self) -> None:
        payload = compile_request(GenerationRequest(kind="hologram", prompt="a castle"))
        assert payload.kind == "hologram"
        assert payload.target == GENERIC_TARGET
        assert "a castle" in payload.instruction
        assert payload.media_type is MediaType.IMAGE


class TestTemplates:
    def test_outpaint_direction_and_requirements(self) -> None:
        req = GenerationRequest(
            kind="outpaint", direction="right", prompt="add a pier", base_media=[_IMAGE]
        )
        text = build_instruction(req)
        assert "right" in text
        assert "seam" in text.lower()
        assert "add a pier" in text
        assert "50% of original size" in text

    def test_outpaint_direction_alias_and_amount(self) -> None:
        req = GenerationRequest(kind="outpaint", direction="TOP", expansion_amount=25)
        text = build_instruction(req)
        assert text.startswith("Expand upward")
        assert "25% of original size" in text

    def test_outpaint_unknown_direction_means_all(self) -> None:
        text = build_instruction(GenerationRequest(kind="outpaint", direction="sideways"))
        assert text.startswith("Expand equally in all four directions")

    def test_inpaint_wording(self) -> None:
        text = build_instruction(GenerationRequest(kind="inpaint", prompt="a red door"))
        assert text.startswith("Replace the masked area with: a red door.")

    def test_video_camera_motion(self) -> None:
        req = GenerationRequest(kind="text-to-video", prompt="a city", camera_motion="orbit")
        assert "orbit" in build_instruction(req)

    def test_negative_prompt_appended(self) -> None:
        payload = compile_request(GenerationRequest(prompt="p", negative_prompt="cats"))
        assert payload.negative_prompt == f"{DEFAULT_NEGATIVE_PROMPT}, cats"
        assert payload.body["negative_prompt"] == payload.negative_prompt


class TestFalPayloads:
    def test_text_to_image_ultra_uses_aspect_ratio(self) -> None:
        payload = compile_request(GenerationRequest(prompt="p", aspect_ratio="9:16"))
        assert payload.target.model == FalModels.FLUX_PRO
        assert payload.path == FalModels.FLUX_PRO
        assert payload.body["aspect_ratio"] == "9:16"
        assert "image_size" not in payload.body

    def test_inpaint_body(self) -> None:
        req = GenerationRequest(
            kind="inpaint", prompt="p", base_media=[_IMAGE], mask="https://img.test/m.png"
        )
        body = compile_request(req).body
        assert body["image_url"] == _IMAGE
        assert body["mask_url"] == "https://img.test/m.png"
        assert body["strength"] == 0.85
        assert body["image_size"] == "landscape_16_9"

    def test_strength_percent_is_clamped(self) -> None:
        req = GenerationRequest(kind="inpaint", strength=60, base_media=[_IMAGE])
        assert compile_request(req).body["strength"] == 0.6

    def test_video_duration_is_string(self) -> None:
        req = GenerationRequest(kind="text-to-video", prompt="p", duration=9, aspect_ratio="4:3")
        payload = compile_request(req)
        assert payload.target.mode is DispatchMode.QUEUE
        assert payload.body["duration"] == "10"
        assert payload.body["aspect_ratio"] == "16:9"
        assert payload.media_type is MediaType.VIDEO

    def test_sound_effect_duration_capped(self) -> None:
        req = GenerationRequest(kind="sound-effect", prompt="rain", duration=120)
        assert compile_request(req).body["seconds_total"] == 47

    def test_virtual_try_on_images(self) -> None:
        req = GenerationRequest(
            kind="virtual-try-on", base_media=[_IMAGE, "https://img.test/shirt.png"]
        )
        body = compile_request(req).body
        assert body["human_image_url"] == _IMAGE
        assert body["garment_image_url"] == "https://img.test/shirt.png"

    def test_lip_sync_without_audio_uses_text(self) -> None:
        req = GenerationRequest(kind="lip-sync", text="hello", base_media=["https://v.test/a.mp4"])
        body = compile_request(req).body
        assert body["video_url"] == "https://v.test/a.mp4"
        assert body["text"] == "hello"

    def test_speech_body(self) -> None:
        body = compile_request(GenerationRequest(kind="tts", text="Good morning")).body
        assert body["gen_text"] == "Good morning"
        assert body["model_type"] == "F5-TTS"


class TestOtherFamilies:
    def test_google_video_operation(self) -> None:
        req = GenerationRequest(
            kind="image-to-video",
            prompt="waves",
            base_media=["data:image/jpeg;base64,YWJj"],
            aspect_ratio="9:16",
        )
        target = target_for(req.kind, ProviderFamily.GOOGLE)
        assert target is not None and target.mode is DispatchMode.OPERATION
        payload = compile_request(req, target)
        assert payload.path == f"models/{GoogleModels.VEO}:predictLongRunning"
        instance = payload.body["instances"][0]
        assert instance["image"] == {"bytesBase64Encoded": "YWJj", "mimeType": "image/jpeg"}
        assert payload.body["parameters"]["aspectRatio"] == "9:16"
        assert payload.body["parameters"]["durationSeconds"] == 8

    def test_google_image_generate_content(self) -> None:
        req = GenerationRequest(kind="relight", prompt="sunset", base_media=[_IMAGE])
        payload = compile_request(req, target_for(req.kind, "google"))
        assert payload.path == f"models/{GoogleModels.GEMINI_IMAGE}:generateContent"
        parts = payload.body["contents"][0]["parts"]
        assert "Avoid:" in parts[0]["text"]
        assert parts[1] == {"fileData": {"fileUri": _IMAGE, "mimeType": "image/png"}}

    def test_together_body(self) -> None:
        req = GenerationRequest(prompt="p", aspect_ratio="1:1")
        payload = compile_request(req, target_for(req.kind, "together"))
        assert payload.path == "images/generations"
        assert payload.body["size"] == "1024x1024"
        assert payload.body["response_format"] == "url"

    def test_huggingface_body(self) -> None:
        req = GenerationRequest(prompt="p")
        payload = compile_request(req, target_for(req.kind, "huggingface"))
        assert payload.path.startswith("models/")
        assert payload.body["inputs"] == payload.instruction


class TestCatalogue:
    def test_every_kind_has_a_default(self) -> None:
        for kind in GenerationKind:
            assert default_target(kind).family is ProviderFamily.FAL

    def test_fallbacks_differ_from_defaults(self) -> None:
        for kind, targets in FALLBACK_TARGETS.items():
            assert default_target(kind) not in targets

    def test_fallback_target(self) -> None:
        assert fallback_target("lip-sync").model == FalModels.SYNC_LIPSYNC
        assert fallback_target("upscale") is None

    def test_target_for_unsupported_family(self) -> None:
        assert target_for("speech", ProviderFamily.TOGETHER) is None
        assert target_for("speech", ProviderFamily.GOOGLE) is None

    def test_video_effect_targets(self) -> None:
        assert default_target("video-effects").model == FalModels.VEO3_IMAGE
        camera = default_target("video-effects", VideoEffect.CAMERA_MOTION)
        assert camera.model == FalModels.KLING_PRO_IMAGE
        depth = default_target("video-effects", VideoEffect.DEPTH)
        assert depth.model == FalModels.DEPTH
        assert depth.mode is DispatchMode.SYNC

    def test_siliconflow_serves_fallbacks(self) -> None:
        video = target_for("text-to-video", ProviderFamily.SILICONFLOW)
        assert video is not None and video.mode is DispatchMode.QUEUE
        assert video.model == SiliconFlowModels.MOCHI
        animate = target_for("image-to-video", ProviderFamily.SILICONFLOW)
        assert animate is not None and animate.model == SiliconFlowModels.HUNYUAN
        assert target_for("speech", ProviderFamily.SILICONFLOW) is None


class TestAddedKinds:
    def test_remove_background_sends_only_the_image(self) -> None:
        payload = compile_request(
            GenerationRequest(kind="remove-background", prompt="ignored", base_media=[_IMAGE])
        )
        assert payload.target.model == FalModels.BIREFNET
        assert payload.body == {"image_url": _IMAGE}
        assert payload.media_type is MediaType.IMAGE

    def test_remove_background_fallback(self) -> None:
        assert fallback_target("remove-background").model == FalModels.REMBG

    def test_change_background_masks_like_inpaint(self) -> None:
        req = GenerationRequest(
            kind="change-background",
            prompt="a beach at dusk",
            base_media=[_IMAGE],
            mask="https://img.test/m.png",
        )
        payload = compile_request(req)
        assert payload.target.model == FalModels.INPAINT
        assert payload.body["mask_url"] == "https://img.test/m.png"
        assert payload.body["strength"] == 0.85
        assert "a beach at dusk" in payload.instruction

    def test_fashion_factory_uses_try_on_inputs(self) -> None:
        req = GenerationRequest(
            kind="fashion-factory",
            prompt="summer dress",
            base_media=[_IMAGE, "https://img.test/dress.png"],
        )
        payload = compile_request(req)
        assert payload.target.mode is DispatchMode.QUEUE
        assert payload.body["garment_image_url"] == "https://img.test/dress.png"
        assert payload.body["description"] == "summer dress"

    def test_tuner_refines_base_image(self) -> None:
        req = GenerationRequest(kind="tuner", prompt="warmer", base_media=[_IMAGE], strength=40)
        payload = compile_request(req)
        assert payload.target.model == FalModels.FLUX_DEV
        assert payload.body["image_url"] == _IMAGE
        assert payload.body["strength"] == 0.4

    def test_talking_avatar_script(self) -> None:
        req = GenerationRequest(kind="avatar", text="Welcome back", base_media=[_IMAGE])
        payload = compile_request(req)
        assert payload.target.model == FalModels.HELLO_MEME
        assert payload.body["ref_image_url"] == _IMAGE
        assert payload.body["script"] == "Welcome back"
        assert payload.media_type is MediaType.VIDEO

    def test_camera_motion_effect_sets_camera_control(self) -> None:
        req = GenerationRequest(
            kind="video-effects",
            effect="camera-motion",
            camera_motion="zoom-in",
            base_media=[_IMAGE],
        )
        payload = compile_request(req)
        assert payload.path == FalModels.KLING_PRO_IMAGE
        control = payload.body["camera_control"]
        assert control["type"] == "custom"
        assert control["zoom"] == 5
        assert control["pan"] == 0
        assert payload.body["duration"] == "5"

    def test_loop_effect_renders_1080p(self) -> None:
        req = GenerationRequest(kind="video-effects", effect="loop", base_media=[_IMAGE])
        payload = compile_request(req)
        assert payload.path == FalModels.VEO3_IMAGE
        assert payload.body["resolution"] == "1080p"
        assert "loop" in payload.instruction.lower()

    def test_depth_effect_is_image_only(self) -> None:
        req = GenerationRequest(kind="video-effects", effect="depth", base_media=[_IMAGE])
        payload = compile_request(req)
        assert payload.body == {"image_url": _IMAGE}
        assert payload.media_type is MediaType.IMAGE


class TestSiliconFlowPayloads:
    def test_image_body(self) -> None:
        req = GenerationRequest(prompt="a fox", aspect_ratio="16:9")
        payload = compile_request(req, target_for(req.kind, ProviderFamily.SILICONFLOW))
        assert payload.path == "images/generations"
        assert payload.body["model"] == SiliconFlowModels.FLUX_SCHNELL
        assert payload.body["image_size"] == "1024x576"
        assert payload.body["batch_size"] == 1

    def test_video_body(self) -> None:
        req = GenerationRequest(kind="image-to-video", prompt="waves", base_media=[_IMAGE])
        payload = compile_request(req, target_for(req.kind, ProviderFamily.SILICONFLOW))
        assert payload.path == "video/generations"
        assert payload.body == {
            "model": SiliconFlowModels.HUNYUAN,
            "prompt": payload.instruction,
            "image": _IMAGE,
        }
