"""Client of the external media processing capability.

Encoding, thumbnailing, transcription and highlight extraction all run on the
media service; this client only submits jobs and polls them.
"""

import httpx
from loguru import logger

from app.app_config import AppEnvironConfig, get_app_environ_config
from app.domain.utils.idgen import new_ulid
from app.utils.app_errors import AppError, AppErrorCode, HttpStatusCode

from .media_schemas import MediaJob, MediaJobKind, MediaJobStatus, RecordingArtifact


class MediaService:
    def __init__(
        self,
        settings: AppEnvironConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._settings = settings or get_app_environ_config()
        self._transport = transport
        self._demo_jobs: dict[str, MediaJob] = {}

    @property
    def demo_mode(self) -> bool:
        return self._settings.DEMO_MODE

    def _base_url(self) -> str:
        base_url = self._settings.MEDIA_API_BASE_URL
        if not base_url:
            raise AppError(
                errcode=AppErrorCode.E_MEDIA_UNAVAILABLE,
                errmesg="MEDIA_API_BASE_URL not configured",
                status_code=HttpStatusCode.SERVICE_UNAVAILABLE,
            )
        return base_url.rstrip("/")

    def _build_headers(self) -> dict[str, str]:
        headers: dict[str, str] = {}
        if self._settings.MEDIA_API_KEY:
            headers["X-Api-Key"] = self._settings.MEDIA_API_KEY
        return headers

    async def _request(self, method: str, path: str, json: dict | None = None) -> dict:
        url = f"{self._base_url()}{path}"
        try:
            async with httpx.AsyncClient(transport=self._transport) as client:
                response = await client.request(method, url, json=json, headers=self._build_headers(), timeout=30)
                response.raise_for_status()
                return response.json()
        except httpx.HTTPError as e:
            logger.warning(f"Media service {method} {path} failed: {e}")
            raise AppError(
                errcode=AppErrorCode.E_MEDIA_UNAVAILABLE,
                errmesg=f"Media service call failed: {method} {path}",
                status_code=HttpStatusCode.BAD_GATEWAY,
            ) from e
        except ValueError as e:
            logger.warning(f"Media service {method} {path} returned a non-JSON body: {e}")
            raise AppError(
                errcode=AppErrorCode.E_MEDIA_UNAVAILABLE,
                errmesg=f"Media service returned an invalid response: {method} {path}",
                status_code=HttpStatusCode.BAD_GATEWAY,
            ) from e

    async def recording_ready(self) -> bool:
        """Whether the recording infrastructure can accept a new broadcast."""
        if self.demo_mode:
            return True

        try:
            data = await self._request("GET", "/v1/recording/health")
        except AppError:
            return False
        return bool(data.get("ready"))

    async def finalize_recording(
        self,
        stream_id: str,
        recording_ref: str,
        duration_hint: float | None = None,
    ) -> RecordingArtifact:
        """Seal the recording of a stream and confirm it is durable."""
        if self.demo_mode:
            logger.info(f"MediaService DEMO_MODE=true: stubbed finalize for {stream_id}")
            return RecordingArtifact(
                storage_ref=recording_ref,
                duration_seconds=duration_hint,
                file_size=1024 * 1024,
            )

        data = await self._request(
            "POST",
            "/v1/recordings/finalize",
            json={"stream_id": stream_id, "recording_ref": recording_ref},
        )
        return RecordingArtifact.model_validate(data)

    async def submit(self, kind: MediaJobKind, asset_ref: str, params: dict | None = None) -> MediaJob:
        """Submit a processing job for an asset."""
        params = params or {}
        if self.demo_mode:
            job = MediaJob(
                job_id=new_ulid("mj_"),
                kind=kind,
                status=MediaJobStatus.SUCCEEDED,
                result=self._demo_result(kind, asset_ref, params),
            )
            self._demo_jobs[job.job_id] = job
            logger.info(f"MediaService DEMO_MODE=true: stubbed {kind} job {job.job_id}")
            return job

        data = await self._request(
            "POST",
            "/v1/jobs",
            json={"kind": kind.value, "asset_ref": asset_ref, "params": params},
        )
        return MediaJob.model_validate(data)

    async def poll(self, job_id: str) -> MediaJob:
        if self.demo_mode:
            job = self._demo_jobs.get(job_id)
            if job is None:
                raise AppError(
                    errcode=AppErrorCode.E_MEDIA_UNAVAILABLE,
                    errmesg=f"Unknown media job {job_id}",
                    status_code=HttpStatusCode.BAD_GATEWAY,
                )
            return job

        data = await self._request("GET", f"/v1/jobs/{job_id}")
        return MediaJob.model_validate(data)

    def _demo_result(self, kind: MediaJobKind, asset_ref: str, params: dict) -> dict:
        base = asset_ref.rsplit("/", 1)[0]
        if kind == MediaJobKind.THUMBNAIL:
            count = int(params.get("count", 3))
            return {
                "thumbnails": [
                    {"url": f"{base}/thumbnails/{i}.jpg", "time_offset_seconds": float(i * 10)}
                    for i in range(count)
                ]
            }
        if kind == MediaJobKind.TRANSCRIBE:
            return {"transcription_ref": f"{base}/transcript.vtt", "language": params.get("language", "en")}
        return {
            "highlights": [
                {"start_seconds": 0.0, "end_seconds": 30.0, "score": 0.9, "label": "opening"},
            ]
        }


media_service = MediaService()
