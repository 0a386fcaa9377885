import os
from typing import Iterable, List, Optional
from uuid import uuid4

from flask import current_app
from werkzeug.utils import secure_filename

UPLOAD_URL_PREFIX = "/uploads/"


def get_upload_folder() -> str:
    folder = current_app.config["UPLOAD_FOLDER"]
    os.makedirs(folder, exist_ok=True)
    return folder


def allowed_image_extension(filename: str) -> bool:
    extension = os.path.splitext(filename)[1].lower().lstrip(".")
    if not extension:
        return False
    return extension in current_app.config["ALLOWED_IMAGE_EXTENSIONS"]


def build_upload_url(filename: Optional[str]) -> str:
    if not filename:
        return ""
    return f"{UPLOAD_URL_PREFIX}{filename}"


def filename_from_url(url: Optional[str]) -> Optional[str]:
    candidate = str(url or "").strip()
    if not candidate.startswith(UPLOAD_URL_PREFIX):
        return None
    name = candidate[len(UPLOAD_URL_PREFIX) :]
    # Only plain names we generated ourselves map to files on disk.
    if not name or name != secure_filename(name):
        return None
    return name


def save_product_image(image_file):
    if not image_file or not getattr(image_file, "filename", ""):
        return None, "An image file is required."

    original_filename = secure_filename(image_file.filename)
    if not original_filename:
        return None, "Please choose a valid file name."

    if not allowed_image_extension(original_filename):
        return (
            None,
            "Unsupported image format. Upload PNG, JPG, JPEG, GIF, or WEBP files.",
        )

    extension = os.path.splitext(original_filename)[1].lower()
    unique_filename = f"{uuid4().hex}{extension}"
    destination = os.path.join(get_upload_folder(), unique_filename)

    try:
        image_file.save(destination)
    except OSError as exc:
        current_app.logger.error("Storing upload %s failed: %s", unique_filename, exc)
        return None, "We could not store the uploaded image. Please try again."

    return unique_filename, None


def save_product_images(image_files):
    """Save every file or none: a failure removes the files already written."""
    saved_filenames: List[str] = []
    if not image_files:
        return saved_filenames, None

    for image_file in image_files:
        if not image_file or not getattr(image_file, "filename", ""):
            continue
        new_filename, image_error = save_product_image(image_file)
        if image_error:
            for filename in saved_filenames:
                remove_product_image(filename)
            return [], image_error
        saved_filenames.append(new_filename)

    return saved_filenames, None


def remove_product_image(filename):
    if not filename:
        return

    if isinstance(filename, (list, tuple, set)):
        for item in filename:
            remove_product_image(item)
        return

    target = os.path.join(current_app.config["UPLOAD_FOLDER"], str(filename))
    try:
        os.remove(target)
    except FileNotFoundError:
        return
    except OSError as exc:
        current_app.logger.warning("Could not remove upload %s: %s", filename, exc)


def remove_images_by_url(urls: Iterable[str]):
    for url in urls:
        remove_product_image(filename_from_url(url))


def collect_image_files(files) -> List:
    """Uploaded files from any multipart field whose name starts with ``image``."""
    image_files = []
    for field_name in sorted(files.keys(), key=lambda name: (len(name), name)):
        if field_name.startswith("image"):
            image_files.extend(files.getlist(field_name))
    return image_files


def list_stored_files() -> List[str]:
    folder = current_app.config["UPLOAD_FOLDER"]
    if not os.path.isdir(folder):
        return []
    return sorted(
        entry
        for entry in os.listdir(folder)
        if os.path.isfile(os.path.join(folder, entry))
    )
