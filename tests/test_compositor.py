from pathlib import Path

from sceneforge.models.domain import AssetKind, Scene, SceneAsset
from sceneforge.render import compositor
from sceneforge.render.compositor import MoviePyRenderer
from sceneforge.services.scene_graph import build_scene_graph
from sceneforge.timing.timeline import TimelineLayout


class FakeMedia:
    def __init__(self):
        self.downloads = []

    def download(self, url, target_dir, stem):
        self.downloads.append(url)
        return Path(target_dir) / f"{stem}.mp4"


class FakeSound:
    def __init__(self, path, duration=10.0):
        self.path = path
        self.duration = duration
        self.volume = 1.0
        self.start = 0.0

    def subclipped(self, start, end):
        self.duration = end - start
        return self

    def with_volume_scaled(self, factor):
        self.volume *= factor
        return self

    def with_start(self, start):
        self.start = start
        return self


class FakeVideo:
    opened = []

    def __init__(self, path, audio=True):
        self.path = path
        self.duration = 10.0
        self.fps = 30
        self.audio = FakeSound(path) if audio else None
        self.closed = False
        FakeVideo.opened.append(self)

    def close(self):
        self.closed = True


class FakeComposite:
    def __init__(self, layers):
        self.layers = layers
        self.duration = None

    def with_duration(self, duration):
        self.duration = duration
        return self


def video(scene_id, asset_id, volume=None):
    return SceneAsset(
        scene_id=scene_id,
        id=asset_id,
        type=AssetKind.VIDEO,
        url=f"https://cdn.test/{asset_id}.mp4",
        volume=volume,
    )


def test_video_assets_contribute_their_audio_at_their_volume(monkeypatch, tmp_path):
    monkeypatch.setattr(compositor, "VideoFileClip", FakeVideo)
    monkeypatch.setattr(compositor, "CompositeAudioClip", FakeComposite)
    FakeVideo.opened = []

    scenes = [
        Scene(id="intro", project_id="p", text="", duration=4, assets=[video("intro", "loud", 0.6)]),
        Scene(
            id="outro",
            project_id="p",
            text="",
            duration=2,
            assets=[video("outro", "muted"), video("outro", "quiet", 0.5)],
        ),
    ]
    graph = build_scene_graph(scenes, "http://api.test")
    layout = TimelineLayout(graph.scenes, 30)
    renderer = MoviePyRenderer(media=FakeMedia())
    clips = []

    visuals = renderer._load_visuals(graph, str(tmp_path), 320, 180, clips)
    mix = renderer._build_audio(layout, str(tmp_path), clips, visuals)

    assert [clip.audio is not None for clip in FakeVideo.opened] == [True, False, True]
    assert mix.duration == 6
    layers = [(Path(layer.path).stem, layer.volume, layer.start, layer.duration) for layer in mix.layers]
    assert layers == [("asset_loud", 0.6, 0.0, 4.0), ("asset_quiet", 0.5, 4.0, 2.0)]


def test_silent_videos_leave_no_soundtrack(monkeypatch, tmp_path):
    monkeypatch.setattr(compositor, "VideoFileClip", FakeVideo)
    graph = build_scene_graph(
        [Scene(id="only", project_id="p", text="", duration=3, assets=[video("only", "clip", 0)])],
        "http://api.test",
    )
    renderer = MoviePyRenderer(media=FakeMedia())
    clips = []

    visuals = renderer._load_visuals(graph, str(tmp_path), 320, 180, clips)

    assert renderer._build_audio(TimelineLayout(graph.scenes, 30), str(tmp_path), clips, visuals) is None
