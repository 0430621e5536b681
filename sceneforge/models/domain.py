from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional, Union
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return uuid4().hex


class AssetKind(str, Enum):
    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"


class AssetSource(str, Enum):
    PEXELS = "pexels"
    UNSPLASH = "unsplash"
    FREESOUND = "freesound"
    UPLOAD = "upload"
    GENERATED = "generated"


class CaptionPosition(str, Enum):
    BOTTOM = "bottom"
    TOP = "top"
    CENTER = "center"
    CUSTOM = "custom"


class CaptionStyle(BaseModel):
    """Visual styling of a scene's captions. Not read by the timing code."""

    position: CaptionPosition = CaptionPosition.BOTTOM
    x: Optional[float] = None
    y: Optional[float] = None
    font_size: int = 18
    max_width: int = 800
    padding: int = 12
    background_color: str = "#000000"
    background_opacity: float = Field(default=0.75, ge=0, le=1)
    text_color: str = "#ffffff"
    font_family: str = "Arial"
    font_weight: Union[str, int] = "medium"
    text_align: str = "center"
    border_width: int = 0
    border_color: str = "#ffffff"
    border_radius: int = 8
    shadow: bool = False
    blur: float = 0
    scale: float = 1
    rotation: float = 0
    opacity: float = Field(default=1, ge=0, le=1)

    def anchor(self) -> tuple[float, float]:
        """Centre of the caption box in percent of the frame."""
        default_y = {
            CaptionPosition.TOP: 5.0,
            CaptionPosition.CENTER: 50.0,
        }.get(self.position, 80.0)
        x = self.x if self.x is not None else 50.0
        y = self.y if self.y is not None else default_y
        return x, y


class SceneAsset(BaseModel):
    id: str = Field(default_factory=new_id)
    scene_id: str
    type: AssetKind
    url: str = ""
    thumbnail_url: Optional[str] = None
    name: str = "Asset"
    source: AssetSource = AssetSource.UPLOAD

    x: float = 0
    y: float = 0
    width: Optional[float] = None
    height: Optional[float] = None
    scale: float = 1
    rotation: float = 0
    opacity: float = 1
    z_index: int = 0

    start_time: float = 0
    volume: Optional[float] = None

    # Kept as plain strings: unknown values fall back when evaluated
    animation_type: str = "fadeIn"
    animation_duration: float = 1
    animation_delay: float = 0
    animation_easing: str = "easeOut"

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class Scene(BaseModel):
    id: str = Field(default_factory=new_id)
    project_id: str
    text: str = ""
    duration: float = 5
    keywords: List[str] = Field(default_factory=list)
    media_url: Optional[str] = None
    voice_url: Optional[str] = None
    captions_url: Optional[str] = None
    caption_style: CaptionStyle = Field(default_factory=CaptionStyle)
    assets: List[SceneAsset] = Field(default_factory=list)
    sfx_urls: List[str] = Field(default_factory=list)
    transition: str = "fade"
    order: int = 0
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class Project(BaseModel):
    id: str = Field(default_factory=new_id)
    title: str
    prompt: str = ""
    user_id: str = "anonymous"
    scenes: List[Scene] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def find_scene(self, scene_id: str) -> Optional[Scene]:
        return next((scene for scene in self.scenes if scene.id == scene_id), None)


class RenderJobStatus(str, Enum):
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class RenderJobStatusHistory(BaseModel):
    status: RenderJobStatus
    message: str
    progress: int = 0
    occurred_at: datetime = Field(default_factory=utcnow)


class RenderJob(BaseModel):
    id: UUID = Field(default_factory=uuid4)
    project_id: str
    status: RenderJobStatus = RenderJobStatus.QUEUED
    progress: int = Field(default=0, ge=0, le=100)
    result_url: Optional[str] = None
    result_path: Optional[str] = None
    error: Optional[str] = None
    resolution: str = "1920x1080"
    fps: int = 30
    format: str = "mp4"
    status_history: List[RenderJobStatusHistory] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None

    @property
    def dimensions(self) -> tuple[int, int]:
        width, _, height = self.resolution.lower().partition("x")
        return int(width), int(height)
