"""Content-aware brand removal through a remote image-editing model.

The editor is a best-effort generative transform: the returned image keeps
the same subject but offers no pixel-exact guarantee, which is why every
edit is followed by a verification pass.
"""

import base64
import os
import time
from abc import ABC, abstractmethod

import numpy as np
import requests

from .config import Config
from .exceptions import DecodeError, EditError
from .image_io import decode_image, image_to_base64
from .retry import RetryPolicy


class ImageEditor(ABC):
    @abstractmethod
    def edit(self, image: np.ndarray, instruction: str, category_hint: str = "product") -> np.ndarray:
        """Return a new image with the instructed brand marks removed."""


class ReplicateImageEditor(ImageEditor):
    """Image editing through a Replicate-hosted instruction-following model.

    A prediction is created with ``Prefer: wait`` and polled until it reaches
    a terminal status; the output image is then downloaded.
    """

    API_URL = "https://api.replicate.com/v1"
    TERMINAL_STATUSES = {"succeeded", "failed", "canceled"}

    def __init__(
        self,
        api_token: str | None = None,
        model: str = "qwen/qwen-image-edit",
        timeout_s: float = 60.0,
        poll_interval_s: float = 1.0,
        max_polls: int = 120,
        retry: RetryPolicy | None = None,
        session: requests.Session | None = None,
    ):
        self.api_token = api_token or os.environ.get("REPLICATE_API_TOKEN")
        self.model = model
        self.timeout_s = timeout_s
        self.poll_interval_s = poll_interval_s
        self.max_polls = max_polls
        self.retry = retry or RetryPolicy.none()
        self.session = session or requests.Session()

    def _headers(self) -> dict:
        if not self.api_token:
            raise EditError("REPLICATE_API_TOKEN not set")
        return {"Authorization": f"Bearer {self.api_token}"}

    def edit(self, image: np.ndarray, instruction: str, category_hint: str = "product") -> np.ndarray:
        if not instruction or not instruction.strip():
            raise ValueError("Edit instruction must not be empty")

        image_data_url = f"data:image/jpeg;base64,{image_to_base64(image)}"
        prompt = f"{instruction}\n\nProduct category: {category_hint}."

        # Missing credentials fail once, outside the retry loop
        headers = self._headers()
        return self.retry.call(
            lambda: self._edit_once(headers, image_data_url, prompt),
            description="Generative edit",
        )

    def _edit_once(self, headers: dict, image_data_url: str, prompt: str) -> np.ndarray:
        try:
            resp = self.session.post(
                f"{self.API_URL}/models/{self.model}/predictions",
                headers={**headers, "Prefer": f"wait={int(self.timeout_s)}"},
                json={
                    "input": {
                        "image": image_data_url,
                        "prompt": prompt,
                        "output_format": "png",
                        "output_quality": 90,
                    }
                },
                timeout=self.timeout_s,
            )
            resp.raise_for_status()
            prediction = resp.json()

            polls = 0
            while prediction.get("status") not in self.TERMINAL_STATUSES:
                if polls >= self.max_polls:
                    raise EditError(f"Prediction {prediction.get('id')} did not finish after {polls} polls")
                get_url = (prediction.get("urls") or {}).get("get")
                if not get_url:
                    raise EditError("No prediction URL available")
                time.sleep(self.poll_interval_s)
                resp = self.session.get(get_url, headers=headers, timeout=self.timeout_s)
                resp.raise_for_status()
                prediction = resp.json()
                polls += 1

            if prediction["status"] == "failed":
                raise EditError(f"Prediction failed: {prediction.get('error') or 'unknown error'}")
            if prediction["status"] == "canceled":
                raise EditError("Prediction was canceled")

            output = prediction.get("output")
            output_url = output[0] if isinstance(output, list) and output else output
            if not isinstance(output_url, str) or not output_url:
                raise EditError("No edited image in prediction output")

            return self._download(output_url)
        except requests.RequestException as e:
            raise EditError(f"Image edit request failed: {e}") from e
        except ValueError as e:
            raise EditError(f"Image edit service returned invalid JSON: {e}") from e

    def _download(self, url: str) -> np.ndarray:
        if url.startswith("data:"):
            data = base64.b64decode(url.split(",", 1)[1])
        else:
            resp = self.session.get(url, timeout=self.timeout_s)
            resp.raise_for_status()
            data = resp.content
        try:
            return decode_image(data)
        except DecodeError as e:
            raise EditError(f"Edited image could not be decoded: {e}") from e


def create_editor(config: Config) -> ImageEditor:
    return ReplicateImageEditor(
        model=config.edit_model,
        timeout_s=config.request_timeout_s,
        retry=RetryPolicy.from_config(config, retry_on=(EditError,)),
    )
