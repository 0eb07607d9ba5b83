import httpx
from dataclasses import dataclass, field
from typing import Any

from photobatch.config import get_settings
from photobatch.errors import ProviderError

settings = get_settings()

QUEUED = "queued"
RUNNING = "running"
DONE = "done"
FAILED = "failed"

_STATUS_MAP = {
    "IN_QUEUE": QUEUED,
    "IN_PROGRESS": RUNNING,
    "COMPLETED": DONE,
}


@dataclass
class JobHandle:
    """A request accepted by the fal.ai queue."""
    request_id: str
    status_url: str
    response_url: str


@dataclass
class JobStatus:
    status: str
    # Provider result payload, only present once status is DONE
    result_ref: dict[str, Any] | None = None
    detail: dict[str, Any] = field(default_factory=dict)


def extract_image_url(result: Any) -> str | None:
    """Pull the first image URL out of the shapes fal.ai models return."""
    if not isinstance(result, dict):
        return None

    images = result.get("images")
    if isinstance(images, list) and images:
        first = images[0]
        if isinstance(first, dict) and isinstance(first.get("url"), str):
            return first["url"]
        if isinstance(first, str):
            return first

    image = result.get("image")
    if isinstance(image, dict) and isinstance(image.get("url"), str):
        return image["url"]

    output = result.get("output")
    if isinstance(output, list) and output and isinstance(output[0], str):
        return output[0]
    if isinstance(output, str):
        return output

    return None


class FalQueueClient:
    """
    Client for the fal.ai queue API.

    Submitting returns immediately with status/response URLs; callers poll
    the status URL until the job completes and then read the result.
    """

    def __init__(
        self,
        api_key: str | None = None,
        queue_url: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key if api_key is not None else settings.fal_key
        self.queue_url = (queue_url or settings.fal_queue_url).rstrip("/")
        self.timeout = settings.provider_request_timeout_seconds
        self.transport = transport

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Key {self.api_key}",
            "Content-Type": "application/json",
        }

    async def submit(self, model_id: str, params: dict[str, Any]) -> JobHandle:
        """Queue a generation request and return its handle."""
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            response = await client.post(
                f"{self.queue_url}/{model_id}",
                json=params,
                headers=self._headers(),
            )

        if response.status_code >= 400:
            raise ProviderError(f"fal.ai submit failed ({response.status_code}): {response.text}")

        data = response.json()
        try:
            return JobHandle(
                request_id=data["request_id"],
                status_url=data["status_url"],
                response_url=data["response_url"],
            )
        except KeyError as e:
            raise ProviderError(f"fal.ai submit response missing {e}") from e

    async def poll(self, handle: JobHandle) -> JobStatus:
        """
        Check a queued job once.

        When the job is complete the result payload is fetched as well, so
        a DONE status always carries ``result_ref``.
        """
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            response = await client.get(handle.status_url, headers=self._headers())
            if response.status_code >= 400:
                raise ProviderError(f"fal.ai status check failed ({response.status_code})")

            data = response.json()
            status = _STATUS_MAP.get(data.get("status"), FAILED)
            if status != DONE:
                return JobStatus(status=status, detail=data)

            result = await client.get(handle.response_url, headers=self._headers())
            if result.status_code >= 400:
                raise ProviderError(f"fal.ai result fetch failed ({result.status_code})")

        return JobStatus(status=DONE, result_ref=result.json(), detail=data)

    async def download(self, url: str) -> bytes:
        """Fetch a generated asset."""
        async with httpx.AsyncClient(
            timeout=self.timeout, transport=self.transport, follow_redirects=True
        ) as client:
            response = await client.get(url)

        if response.status_code >= 400:
            raise ProviderError(f"Asset download failed ({response.status_code}): {url}")

        return response.content


# Singleton instance
fal_client = FalQueueClient()


def get_provider() -> FalQueueClient:
    """FastAPI dependency for the image provider."""
    return fal_client
