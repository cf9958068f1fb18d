# Overview: Product image storage on Cloudinary.

from __future__ import annotations

import hashlib
import time

import httpx
from flask import current_app

from ..errors import UpstreamError, ValidationError

# Max 800x800, automatic quality and format
IMAGE_TRANSFORMATION = "c_limit,h_800,w_800/q_auto/f_auto"


class CloudinaryStore:
    """
    Signed Cloudinary upload API client.

    Signature: SHA-1 of the alphabetically sorted "key=value" params joined by
    "&", immediately followed by the API secret.
    """

    def __init__(
        self,
        *,
        cloud_name: str | None,
        api_key: str | None,
        api_secret: str | None,
        folder: str,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ):
        self.api_key = api_key
        self.api_secret = api_secret
        self.folder = folder
        self._client = httpx.Client(
            base_url=f"https://api.cloudinary.com/v1_1/{cloud_name}",
            timeout=timeout,
            transport=transport,
        )

    def _signed(self, params: dict) -> dict:
        params = {k: v for k, v in params.items() if v not in (None, "")}
        params["timestamp"] = str(int(time.time()))
        to_sign = "&".join(f"{k}={params[k]}" for k in sorted(params))
        params["signature"] = hashlib.sha1((to_sign + (self.api_secret or "")).encode("utf-8")).hexdigest()
        params["api_key"] = self.api_key
        return params

    def _post(self, path: str, **kwargs) -> dict:
        try:
            response = self._client.post(path, **kwargs)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPError as exc:
            raise UpstreamError("Image storage request failed", details={"provider": "cloudinary"}) from exc

    def upload_image(self, data: bytes, *, filename: str, content_type: str) -> dict:
        params = self._signed({"folder": self.folder, "transformation": IMAGE_TRANSFORMATION})
        result = self._post(
            "/image/upload",
            data=params,
            files={"file": (filename, data, content_type)},
        )
        return {"url": result["secure_url"], "public_id": result["public_id"]}

    def delete_image(self, public_id: str) -> bool:
        result = self._post("/image/destroy", data=self._signed({"public_id": public_id}))
        return result.get("result") == "ok"


def build_blob_store(config) -> CloudinaryStore:
    return CloudinaryStore(
        cloud_name=config.get("CLOUDINARY_CLOUD_NAME"),
        api_key=config.get("CLOUDINARY_API_KEY"),
        api_secret=config.get("CLOUDINARY_API_SECRET"),
        folder=config["CLOUDINARY_FOLDER"],
        timeout=config["HTTP_TIMEOUT_SECONDS"],
    )


def get_blob_store() -> CloudinaryStore:
    return current_app.extensions["blob_store"]


def upload_product_image(file_storage) -> dict:
    """
    Validate and store an uploaded product image.

    Args:
        file_storage: werkzeug FileStorage from request.files["image"]

    Returns:
        {"imageUrl", "publicId"}
    """
    if file_storage is None or not file_storage.filename:
        raise ValidationError("No file uploaded")

    content_type = file_storage.mimetype or ""
    if not content_type.startswith("image/"):
        raise ValidationError("Only image files are allowed!")

    data = file_storage.read()
    max_bytes = current_app.config["UPLOAD_MAX_BYTES"]
    if len(data) > max_bytes:
        raise ValidationError(
            "Image is too large",
            details={"max_bytes": max_bytes},
            reason="FILE_TOO_LARGE",
        )
    if not data:
        raise ValidationError("Uploaded file is empty")

    stored = get_blob_store().upload_image(data, filename=file_storage.filename, content_type=content_type)
    current_app.logger.info("Image uploaded: %s", stored["public_id"])
    return {"imageUrl": stored["url"], "publicId": stored["public_id"]}


def delete_product_image(public_id: str) -> bool:
    if not public_id:
        raise ValidationError("publicId is required")
    return get_blob_store().delete_image(public_id)
