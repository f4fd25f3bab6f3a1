"""On-disk layout for archived collections.

    <output_root>/<year>/<collection>/<NN_Month>/Messages/
                                                 Images/
                                                 Videos/
                                                 Files/
    <output_root>/<year>/<collection>/Avatars/<author-slug>-<hash>.<ext>
"""

from __future__ import annotations

import hashlib
from datetime import datetime
from pathlib import Path
from urllib.parse import urlparse

from backup_core.utils.paths import ensure_dir, sanitize_filename, slugify, split_extension

MONTH_FOLDERS = (
    "01_Enero",
    "02_Febrero",
    "03_Marzo",
    "04_Abril",
    "05_Mayo",
    "06_Junio",
    "07_Julio",
    "08_Agosto",
    "09_Septiembre",
    "10_Octubre",
    "11_Noviembre",
    "12_Diciembre",
)

MESSAGES_DIR = "Messages"
IMAGES_DIR = "Images"
VIDEOS_DIR = "Videos"
FILES_DIR = "Files"
AVATARS_DIR = "Avatars"
AVATAR_HASH_LENGTH = 8

IMAGE_EXTENSIONS = frozenset({"jpg", "jpeg", "png", "gif", "webp", "bmp", "svg", "ico", "heic", "tiff"})
VIDEO_EXTENSIONS = frozenset({"mp4", "mov", "avi", "mkv", "webm", "flv", "wmv", "m4v", "3gp", "mpeg"})


def month_folder(moment: datetime) -> str:
    return MONTH_FOLDERS[moment.month - 1]


def collection_dir(output_root: Path, collection_id: str, moment: datetime) -> Path:
    return Path(output_root) / str(moment.year) / (sanitize_filename(collection_id) or "collection")


def unit_media_root(output_root: Path, collection_id: str, moment: datetime) -> Path:
    """Month directory that holds every artifact of units posted at ``moment``."""
    return collection_dir(output_root, collection_id, moment) / month_folder(moment)


def route_for_extension(extension: str) -> str:
    ext = (extension or "").lower().lstrip(".")
    if ext in IMAGE_EXTENSIONS:
        return IMAGES_DIR
    if ext in VIDEO_EXTENSIONS:
        return VIDEOS_DIR
    return FILES_DIR


def target_dir(media_root: Path, extension: str) -> Path:
    path = Path(media_root) / route_for_extension(extension)
    ensure_dir(path)
    return path


def avatar_filename(author: str, avatar_url: str) -> str:
    """``<slug>-<hash>.<ext>``; the hash keeps names that slugify alike apart."""
    _stem, ext = split_extension(urlparse(avatar_url).path)
    if ext not in IMAGE_EXTENSIONS:
        ext = "jpg"
    digest = hashlib.sha1(author.encode("utf-8")).hexdigest()[:AVATAR_HASH_LENGTH]
    return f"{slugify(author, max_length=50)}-{digest}.{ext}"


def avatars_dir(output_root: Path, collection_id: str, moment: datetime) -> Path:
    return collection_dir(output_root, collection_id, moment) / AVATARS_DIR
