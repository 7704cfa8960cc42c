"""
Blob storage for uploaded media.

Files live under a media root and are served at ``base_url``; the storage path is
recoverable from the public URL, which is how media gets deleted by URL.
"""
import logging
import os
from typing import Dict, Iterable, List, Optional, Tuple
from urllib.parse import unquote

from .errors import BackendError, FormValidationError

logger = logging.getLogger(__name__)

MEDIA_CATEGORIES = {
    "images": {
        "extensions": [".jpg", ".jpeg", ".png", ".gif", ".webp", ".heic"],
        "max_size": 10 * 1024 * 1024,  # 10MB
    },
    "videos": {
        "extensions": [".mp4", ".mov", ".webm", ".m4v"],
        "max_size": 100 * 1024 * 1024,  # 100MB
    },
}


def get_media_category(path: str) -> Optional[str]:
    _, ext = os.path.splitext(path.lower())
    for key, info in MEDIA_CATEGORIES.items():
        if ext in info["extensions"]:
            return key
    return None


def format_file_size(size_bytes: float) -> str:
    if size_bytes == 0:
        return "0 B"
    size_names = ["B", "KB", "MB", "GB"]
    i = 0
    while size_bytes >= 1024 and i < len(size_names) - 1:
        size_bytes /= 1024.0
        i += 1
    return f"{size_bytes:.1f} {size_names[i]}"


# ---------------------------
# Deterministic paths
# ---------------------------
def profile_picture_path(user_id: str, ts: int) -> str:
    return f"profiles/{user_id}/profile-{ts}.jpg"


def model_photo_path(user_id: str, index: int, ts: int) -> str:
    return f"model-photos/{user_id}/photo-{index}-{ts}.jpg"


def service_image_path(service_id: str, index: int, ts: int) -> str:
    return f"service-images/{service_id}/image-{index}-{ts}.jpg"


def application_photo_path(application_id: str, index: int, ts: int) -> str:
    return f"application-photos/{application_id}/photo-{index}-{ts}.jpg"


def message_media_path(conversation_id: str, ts: int, is_video: bool = False) -> str:
    return f"message-media/{conversation_id}/{ts}.{'mp4' if is_video else 'jpg'}"


def banner_image_path(banner_id: str, ts: int) -> str:
    return f"banner-images/{banner_id}/banner-{ts}.jpg"


class BlobStorage:
    def __init__(self, root: str, base_url: str = "/media"):
        self.root = os.path.abspath(root)
        self.base_url = base_url.rstrip("/")
        os.makedirs(self.root, exist_ok=True)

    def _full_path(self, path: str) -> str:
        full = os.path.abspath(os.path.join(self.root, path))
        if not full.startswith(self.root + os.sep):
            raise FormValidationError({"path": [f"Invalid storage path: {path}"]})
        return full

    def url_for(self, path: str) -> str:
        return f"{self.base_url}/{path}"

    def path_from_url(self, url: str) -> Optional[str]:
        prefix = self.base_url + "/"
        idx = url.find(prefix)
        if idx == -1:
            return None
        return unquote(url[idx + len(prefix):].split("?", 1)[0])

    def upload(self, data: bytes, path: str) -> str:
        category = get_media_category(path)
        if category is None:
            raise FormValidationError({"file": [f"File type not allowed: {path}"]})
        max_size = MEDIA_CATEGORIES[category]["max_size"]
        if len(data) > max_size:
            raise FormValidationError({"file": [f"File too large. Maximum size: {format_file_size(max_size)}"]})
        full = self._full_path(path)
        try:
            os.makedirs(os.path.dirname(full), exist_ok=True)
            with open(full, "wb") as fh:
                fh.write(data)
        except OSError as e:
            logger.error(f"Upload failed for {path}: {e}")
            raise BackendError(f"Upload failed for {path}", e)
        logger.info(f"Stored {path} ({format_file_size(len(data))})")
        return self.url_for(path)

    def upload_many(self, items: Iterable[Tuple[bytes, str]]) -> List[str]:
        return [self.upload(data, path) for data, path in items]

    def delete(self, path: str) -> None:
        full = self._full_path(path)
        try:
            os.remove(full)
        except FileNotFoundError:
            logger.warning(f"Blob already gone: {path}")
        except OSError as e:
            logger.error(f"Delete failed for {path}: {e}")
            raise BackendError(f"Delete failed for {path}", e)

    def delete_url(self, url: str) -> None:
        path = self.path_from_url(url)
        if path is None:
            logger.warning(f"Not a storage URL, skipping delete: {url}")
            return
        self.delete(path)

    def delete_many(self, paths: Iterable[str]) -> None:
        for path in paths:
            self.delete(path)

    def exists(self, path: str) -> bool:
        return os.path.isfile(self._full_path(path))

    def list(self, folder: str) -> Dict[str, List[str]]:
        full = self._full_path(folder.rstrip("/") + "/")
        items: List[str] = []
        prefixes: List[str] = []
        if os.path.isdir(full):
            for name in sorted(os.listdir(full)):
                rel = f"{folder.rstrip('/')}/{name}"
                (prefixes if os.path.isdir(os.path.join(full, name)) else items).append(rel)
        return {"items": items, "prefixes": prefixes}
