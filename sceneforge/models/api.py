from __future__ import annotations

import re
from typing import ClassVar, FrozenSet, List, Optional, Union
from uuid import UUID

from pydantic import BaseModel, Field, field_validator, model_validator

from .domain import AssetKind, AssetSource, CaptionPosition, CaptionStyle, Project, RenderJobStatus, Scene, SceneAsset

_RESOLUTION = re.compile(r"^\d{2,5}x\d{2,5}$")


class PatchRequest(BaseModel):
    """Partial update. Omitted fields are left alone; an explicit null only
    clears the fields listed in ``nullable_fields``."""

    nullable_fields: ClassVar[FrozenSet[str]] = frozenset()

    @model_validator(mode="after")
    def reject_null_for_required(self):
        cleared = sorted(
            name for name in self.model_fields_set if getattr(self, name) is None and name not in self.nullable_fields
        )
        if cleared:
            raise ValueError(f"fields cannot be null: {', '.join(cleared)}")
        return self


class ProjectCreateRequest(BaseModel):
    title: str = Field(..., min_length=1)
    prompt: str = ""
    user_id: str = "anonymous"


class ProjectUpdateRequest(PatchRequest):
    title: Optional[str] = Field(default=None, min_length=1)
    prompt: Optional[str] = None
    scene_order: Optional[List[str]] = None


class ProjectResponse(BaseModel):
    project: Project


class ProjectListResponse(BaseModel):
    items: List[Project]


class CaptionStyleUpdate(PatchRequest):
    nullable_fields = frozenset({"x", "y"})

    position: Optional[CaptionPosition] = None
    x: Optional[float] = Field(default=None, ge=0, le=100)
    y: Optional[float] = Field(default=None, ge=0, le=100)
    font_size: Optional[int] = Field(default=None, ge=6, le=200)
    max_width: Optional[int] = Field(default=None, ge=50)
    padding: Optional[int] = Field(default=None, ge=0)
    background_color: Optional[str] = None
    background_opacity: Optional[float] = Field(default=None, ge=0, le=1)
    text_color: Optional[str] = None
    font_family: Optional[str] = None
    font_weight: Optional[Union[str, int]] = None
    text_align: Optional[str] = None
    border_width: Optional[int] = Field(default=None, ge=0)
    border_color: Optional[str] = None
    border_radius: Optional[int] = Field(default=None, ge=0)
    shadow: Optional[bool] = None
    blur: Optional[float] = Field(default=None, ge=0)
    scale: Optional[float] = Field(default=None, gt=0)
    rotation: Optional[float] = None
    opacity: Optional[float] = Field(default=None, ge=0, le=1)

    def apply(self, style: CaptionStyle) -> CaptionStyle:
        return CaptionStyle.model_validate({**style.model_dump(), **self.model_dump(exclude_unset=True)})


class SceneCreateRequest(BaseModel):
    text: str = ""
    duration: float = Field(default=5, gt=0)
    keywords: List[str] = Field(default_factory=list)
    media_url: Optional[str] = None
    voice_url: Optional[str] = None
    captions_url: Optional[str] = None
    caption_style: Optional[CaptionStyleUpdate] = None
    sfx_urls: List[str] = Field(default_factory=list)
    transition: str = "fade"
    position: Optional[int] = Field(default=None, ge=0)


class SceneUpdateRequest(PatchRequest):
    nullable_fields = frozenset({"media_url", "voice_url", "captions_url"})

    text: Optional[str] = None
    duration: Optional[float] = Field(default=None, gt=0)
    keywords: Optional[List[str]] = None
    media_url: Optional[str] = None
    voice_url: Optional[str] = None
    captions_url: Optional[str] = None
    caption_style: Optional[CaptionStyleUpdate] = None
    sfx_urls: Optional[List[str]] = None
    transition: Optional[str] = None


class SceneResponse(BaseModel):
    scene: Scene


class AssetCreateRequest(BaseModel):
    type: AssetKind
    url: str = ""
    thumbnail_url: Optional[str] = None
    name: str = "Asset"
    source: AssetSource = AssetSource.UPLOAD
    x: Optional[float] = None
    y: Optional[float] = None
    width: Optional[float] = Field(default=None, gt=0)
    height: Optional[float] = Field(default=None, gt=0)
    scale: Optional[float] = Field(default=None, gt=0)
    rotation: Optional[float] = None
    opacity: Optional[float] = Field(default=None, ge=0, le=1)
    z_index: Optional[int] = None
    start_time: Optional[float] = Field(default=None, ge=0)
    volume: Optional[float] = Field(default=None, ge=0, le=1)
    animation_type: Optional[str] = None
    animation_duration: Optional[float] = Field(default=None, gt=0)
    animation_delay: Optional[float] = Field(default=None, ge=0)
    animation_easing: Optional[str] = None


class AssetUpdateRequest(PatchRequest):
    nullable_fields = frozenset({"thumbnail_url", "width", "height", "volume"})

    url: Optional[str] = None
    thumbnail_url: Optional[str] = None
    name: Optional[str] = None
    x: Optional[float] = None
    y: Optional[float] = None
    width: Optional[float] = Field(default=None, gt=0)
    height: Optional[float] = Field(default=None, gt=0)
    scale: Optional[float] = Field(default=None, gt=0)
    rotation: Optional[float] = None
    opacity: Optional[float] = Field(default=None, ge=0, le=1)
    z_index: Optional[int] = None
    start_time: Optional[float] = Field(default=None, ge=0)
    volume: Optional[float] = Field(default=None, ge=0, le=1)
    animation_type: Optional[str] = None
    animation_duration: Optional[float] = Field(default=None, gt=0)
    animation_delay: Optional[float] = Field(default=None, ge=0)
    animation_easing: Optional[str] = None


class AssetResponse(BaseModel):
    asset: SceneAsset


class CaptionGenerationRequest(BaseModel):
    scene_ids: Optional[List[str]] = None
    max_words_per_caption: Optional[int] = Field(default=None, ge=1, le=20)


class CaptionGenerationResponse(BaseModel):
    captions: dict[str, str]


class TransformPayload(BaseModel):
    x: float
    y: float
    scale: float
    rotation: float
    opacity: float


class LayerPayload(BaseModel):
    asset_id: str
    type: str
    url: str
    z_index: int
    width: float
    height: float
    transform: TransformPayload


class CaptionFramePayload(BaseModel):
    text: str
    words: List[str]
    highlighted_index: int
    entry_index: int
    estimated: bool


class FrameStateResponse(BaseModel):
    scene_id: str
    scene_index: int
    time: float
    local_time: float
    frame: Optional[int] = None
    layers: List[LayerPayload]
    caption: CaptionFramePayload


class SceneGraphResponse(BaseModel):
    fps: int
    width: int
    height: int
    total_frames: int
    scenes: List[dict]


class RenderRequest(BaseModel):
    project_id: str
    resolution: Optional[str] = None
    fps: Optional[int] = Field(default=None, ge=1, le=120)
    format: Optional[str] = None

    @field_validator("resolution")
    @classmethod
    def validate_resolution(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not _RESOLUTION.match(value.lower()):
            raise ValueError("resolution must look like 1920x1080")
        return value

    @field_validator("format")
    @classmethod
    def validate_format(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and value.lower() != "mp4":
            raise ValueError("only mp4 output is supported")
        return value


class RenderJobResponse(BaseModel):
    job_id: UUID
    status: RenderJobStatus


class RenderStatusResponse(BaseModel):
    job_id: UUID
    status: RenderJobStatus
    progress: int
    result_url: Optional[str] = None
    error: Optional[str] = None
