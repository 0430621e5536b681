import os
import tempfile

# The app reads settings on import; keep rendered files and captions out of the repo.
os.environ.setdefault("SCENEFORGE_STORAGE_PATH", tempfile.mkdtemp(prefix="sceneforge-tests-"))
os.environ.setdefault("SCENEFORGE_PUBLIC_BASE_URL", "http://testserver")
