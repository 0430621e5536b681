import threading
import time
from pathlib import Path
from uuid import uuid4

from fastapi.testclient import TestClient

from sceneforge.config import get_settings
from sceneforge.main import _jobs, _projects, app, get_media, get_render_service, get_storage
from sceneforge.queue.queue import LocalQueue
from sceneforge.services.render_service import RenderService
from sceneforge.timing.animation import IMAGE_ANIMATIONS


client = TestClient(app)


class FakeRenderer:
    def __init__(self, fail=False, release=None):
        self.fail = fail
        self.release = release
        self.calls = []

    def render(self, graph, output_path, fps, width, height, tracks, progress):
        self.calls.append({"scenes": [scene.id for scene in graph.scenes], "fps": fps, "size": (width, height)})
        if self.release is not None:
            self.release.wait(timeout=5)
        progress(50)
        if self.fail:
            raise RuntimeError("encoder exploded")
        Path(output_path).write_bytes(b"fake-mp4")
        progress(100)
        return output_path


def use_renderer(renderer):
    settings = get_settings()
    storage = get_storage(settings)
    service = RenderService(
        jobs=_jobs,
        projects=_projects,
        settings=settings,
        storage=storage,
        media=get_media(settings, storage),
        renderer=renderer,
    )
    service.bind_queue(LocalQueue(processor=service.process_job))
    app.dependency_overrides[get_render_service] = lambda: service
    return service


def create_project(title="Launch teaser"):
    resp = client.post("/projects", json={"title": title, "prompt": "A short teaser"})
    assert resp.status_code == 201
    return resp.json()["project"]["id"]


def add_scene(project_id, **payload):
    resp = client.post(f"/projects/{project_id}/scenes", json=payload)
    assert resp.status_code == 201
    return resp.json()["scene"]


def wait_for_render(job_id):
    body = None
    for _ in range(100):
        resp = client.get(f"/render/{job_id}/status")
        assert resp.status_code == 200
        body = resp.json()
        if body["status"] in ("completed", "failed"):
            break
        time.sleep(0.05)
    return body


def test_project_editing_flow():
    project_id = create_project()
    main_scene = add_scene(project_id, text="Hello world again", duration=3)
    intro = add_scene(project_id, text="Intro", duration=2, position=0)

    project = client.get(f"/projects/{project_id}").json()["project"]
    assert [scene["id"] for scene in project["scenes"]] == [intro["id"], main_scene["id"]]
    assert [scene["order"] for scene in project["scenes"]] == [0, 1]

    asset_resp = client.post(
        f"/projects/{project_id}/scenes/{main_scene['id']}/assets",
        json={"type": "image", "url": "https://cdn.test/photo.png", "name": "Photo"},
    )
    assert asset_resp.status_code == 201
    asset = asset_resp.json()["asset"]
    assert asset["animation_type"] in [kind.value for kind in IMAGE_ANIMATIONS]
    assert asset["z_index"] == 0

    patch_resp = client.patch(
        f"/projects/{project_id}/scenes/{main_scene['id']}/assets/{asset['id']}",
        json={"opacity": 0.5, "animation_type": "none"},
    )
    assert patch_resp.status_code == 200
    assert patch_resp.json()["asset"]["opacity"] == 0.5

    style_resp = client.patch(
        f"/projects/{project_id}/scenes/{main_scene['id']}",
        json={"caption_style": {"position": "top", "font_size": 32}},
    )
    assert style_resp.status_code == 200
    style = style_resp.json()["scene"]["caption_style"]
    assert (style["position"], style["font_size"], style["text_color"]) == ("top", 32, "#ffffff")

    bad_order = client.patch(f"/projects/{project_id}", json={"scene_order": [intro["id"]]})
    assert bad_order.status_code == 400

    reorder = client.patch(
        f"/projects/{project_id}",
        json={"scene_order": [main_scene["id"], intro["id"]], "title": "Renamed"},
    )
    assert reorder.status_code == 200
    assert reorder.json()["project"]["title"] == "Renamed"
    assert reorder.json()["project"]["scenes"][0]["id"] == main_scene["id"]

    listed = client.get("/projects").json()["items"]
    assert any(item["id"] == project_id for item in listed)

    assert client.delete(f"/projects/{project_id}/scenes/{intro['id']}/assets/missing").status_code == 404
    assert client.delete(f"/projects/{project_id}/scenes/{intro['id']}").status_code == 204
    assert client.delete(f"/projects/{project_id}").status_code == 204
    assert client.get(f"/projects/{project_id}").status_code == 404


def test_captions_scene_graph_and_preview_frames():
    project_id = create_project("Preview")
    intro = add_scene(project_id, text="Intro", duration=2)
    main_scene = add_scene(project_id, text="Hello world again", duration=3)
    client.post(
        f"/projects/{project_id}/scenes/{main_scene['id']}/assets",
        json={"type": "image", "url": "img/photo.png", "animation_type": "fadeIn", "animation_duration": 2},
    )

    captions_resp = client.post(f"/projects/{project_id}/captions", json={})
    assert captions_resp.status_code == 200
    captions = captions_resp.json()["captions"]
    assert set(captions) == {intro["id"], main_scene["id"]}
    srt_resp = client.get(captions[main_scene["id"]])
    assert srt_resp.status_code == 200
    assert "00:00:00,000 --> 00:00:03,000" in srt_resp.text

    graph_resp = client.get(f"/projects/{project_id}/scene-graph")
    assert graph_resp.status_code == 200
    graph = graph_resp.json()
    assert (graph["fps"], graph["width"], graph["height"], graph["total_frames"]) == (30, 1920, 1080, 150)
    assert graph["scenes"][1]["assets"][0]["url"] == "http://testserver/storage/img/photo.png"
    assert graph["scenes"][1]["captionsUrl"].endswith(f"/storage/captions/{project_id}/{main_scene['id']}.srt")

    frame_resp = client.get(f"/projects/{project_id}/frame", params={"time": 3.0})
    assert frame_resp.status_code == 200
    frame = frame_resp.json()
    assert frame["scene_id"] == main_scene["id"]
    assert frame["frame"] == 90
    assert abs(frame["local_time"] - 1.0) < 1e-6
    assert abs(frame["layers"][0]["transform"]["opacity"] - 0.75) < 1e-6
    caption = frame["caption"]
    assert caption["text"] == "Hello world again"
    assert caption["estimated"] is False
    assert caption["words"][caption["highlighted_index"]] == "Hello"

    scene_frame = client.get(
        f"/projects/{project_id}/scenes/{main_scene['id']}/frame",
        params={"time": 2.5},
    ).json()
    assert scene_frame["frame"] is None
    assert scene_frame["caption"]["words"][scene_frame["caption"]["highlighted_index"]] == "again"

    assert client.get(f"/projects/{project_id}/frame", params={"time": 100}).status_code == 400
    assert client.get(f"/projects/{project_id}/frame", params={"time": -1}).status_code == 422
    assert client.get("/projects/missing/frame", params={"time": 0}).status_code == 404


def test_preview_without_captions_falls_back_to_estimate():
    project_id = create_project("Estimate")
    scene = add_scene(project_id, text="Words spoken slowly", duration=3, captions_url="captions/missing.srt")
    resp = client.get(f"/projects/{project_id}/scenes/{scene['id']}/frame", params={"time": 0})
    assert resp.status_code == 200
    caption = resp.json()["caption"]
    assert caption["estimated"] is True
    assert caption["text"] == "Words spoken slowly"
    assert caption["highlighted_index"] == 0


def test_explicit_null_on_required_fields_is_rejected():
    project_id = create_project("Nulls")
    scene = add_scene(project_id, text="Keep the duration", duration=3, media_url="https://cdn.test/bg.png")
    scene_url = f"/projects/{project_id}/scenes/{scene['id']}"

    assert client.patch(scene_url, json={"duration": None}).status_code == 422
    assert client.patch(scene_url, json={"keywords": None, "transition": None}).status_code == 422
    assert client.patch(scene_url, json={"caption_style": {"font_size": None}}).status_code == 422

    cleared = client.patch(scene_url, json={"media_url": None, "caption_style": {"x": None}})
    assert cleared.status_code == 200
    assert cleared.json()["scene"]["media_url"] is None
    assert cleared.json()["scene"]["duration"] == 3
    assert client.post(f"/projects/{project_id}/captions", json={}).status_code == 200

    first = client.post(f"{scene_url}/assets", json={"type": "image", "url": "https://cdn.test/a.png"})
    asset = first.json()["asset"]
    asset_url = f"{scene_url}/assets/{asset['id']}"
    assert client.patch(asset_url, json={"z_index": None}).status_code == 422
    assert client.patch(asset_url, json={"opacity": None}).status_code == 422
    assert client.patch(asset_url, json={"scale": 0}).status_code == 422

    resized = client.patch(asset_url, json={"width": 40, "volume": None})
    assert resized.status_code == 200
    assert resized.json()["asset"]["z_index"] == 0

    second = client.post(f"{scene_url}/assets", json={"type": "image", "url": "https://cdn.test/b.png"})
    assert second.status_code == 201
    assert second.json()["asset"]["z_index"] == 1

    assert client.patch(f"/projects/{project_id}", json={"title": None}).status_code == 422


def test_render_flow_with_local_queue():
    renderer = FakeRenderer()
    use_renderer(renderer)
    try:
        project_id = create_project("Render me")
        add_scene(project_id, text="Only scene", duration=1)

        create_resp = client.post("/render", json={"project_id": project_id, "resolution": "1280x720", "fps": 24})
        assert create_resp.status_code == 202
        assert create_resp.json()["status"] == "queued"
        job_id = create_resp.json()["job_id"]

        status = wait_for_render(job_id)
        assert status["status"] == "completed"
        assert status["progress"] == 100
        assert status["result_url"] == f"/storage/renders/render_{job_id}.mp4"
        assert renderer.calls[0]["fps"] == 24
        assert renderer.calls[0]["size"] == (1280, 720)

        download = client.get(f"/render/download/{job_id}")
        assert download.status_code == 200
        assert download.content == b"fake-mp4"
    finally:
        app.dependency_overrides.pop(get_render_service, None)


def test_render_job_keeps_its_renderer_while_polled():
    first = FakeRenderer(release=threading.Event())
    second = FakeRenderer()
    use_renderer(first)
    try:
        project_id = create_project("Steady renderer")
        add_scene(project_id, text="Hold on", duration=1)
        job_id = client.post("/render", json={"project_id": project_id}).json()["job_id"]

        use_renderer(second)
        assert client.get(f"/render/{job_id}/status").status_code == 200
        first.release.set()

        status = wait_for_render(job_id)
        assert status["status"] == "completed"
        assert len(first.calls) == 1
        assert second.calls == []
    finally:
        first.release.set()
        app.dependency_overrides.pop(get_render_service, None)


def test_render_failure_is_reported():
    use_renderer(FakeRenderer(fail=True))
    try:
        project_id = create_project("Broken")
        add_scene(project_id, text="Nope", duration=1)
        job_id = client.post("/render", json={"project_id": project_id}).json()["job_id"]

        status = wait_for_render(job_id)
        assert status["status"] == "failed"
        assert status["error"] == "encoder exploded"
        assert client.get(f"/render/download/{job_id}").status_code == 400
    finally:
        app.dependency_overrides.pop(get_render_service, None)


def test_render_validation():
    use_renderer(FakeRenderer())
    try:
        empty_project = create_project("Empty")
        assert client.post("/render", json={"project_id": empty_project}).status_code == 400
        assert client.post("/render", json={"project_id": "missing"}).status_code == 404
        assert client.post("/render", json={"project_id": empty_project, "resolution": "huge"}).status_code == 422
        assert client.post("/render", json={"project_id": empty_project, "format": "gif"}).status_code == 422
        assert client.get(f"/render/{uuid4()}/status").status_code == 404
    finally:
        app.dependency_overrides.pop(get_render_service, None)
