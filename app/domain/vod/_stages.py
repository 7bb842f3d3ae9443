"""Conversion stage runners.

Each runner talks to the media capability for one stage and returns the stage
output, or raises AppError. Recording the outcome is up to the pipeline.
"""

import asyncio
from collections.abc import Awaitable, Callable

from loguru import logger

from app.schemas import Highlight, HighlightMode, Thumbnail, Vod
from app.services.integrations.media_schemas import MediaJob, MediaJobKind, MediaJobStatus, RecordingArtifact
from app.services.integrations.media_service import MediaService
from app.utils.app_errors import AppError, AppErrorCode, ErrorKind, HttpStatusCode

THUMBNAIL_COUNT = 3

# Called once the media capability accepted a job, before polling starts
SubmitHook = Callable[[MediaJob], Awaitable[None]]


def stage_error(message: str, kind: ErrorKind = ErrorKind.PARTIAL_FAILURE) -> AppError:
    return AppError(
        errcode=AppErrorCode.E_STAGE_FAILED,
        errmesg=message,
        status_code=HttpStatusCode.BAD_GATEWAY,
        kind=kind,
    )


class StageRunner:
    def __init__(
        self,
        media: MediaService,
        poll_interval: float,
        timeout: float,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.media = media
        self.poll_interval = poll_interval
        self.timeout = timeout
        self._sleep = sleep

    async def run_media_job(
        self,
        kind: MediaJobKind,
        asset_ref: str,
        params: dict | None = None,
        on_submit: SubmitHook | None = None,
    ) -> MediaJob:
        """Submit a media job and poll it until it finishes.

        Raises:
            AppError: E_STAGE_FAILED if the job failed or did not finish in time,
                E_MEDIA_UNAVAILABLE if the media capability could not be reached.
        """
        job = await self.media.submit(kind, asset_ref, params)
        logger.debug(f"Media job {job.job_id} ({kind}) submitted for {asset_ref}")
        if on_submit is not None:
            await on_submit(job)

        try:
            job = await asyncio.wait_for(self._poll_until_finished(job), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise stage_error(f"{kind} job {job.job_id} timed out after {self.timeout}s") from e

        if job.status == MediaJobStatus.FAILED:
            raise stage_error(f"{kind} job {job.job_id} failed: {job.error or 'unknown error'}")
        return job

    async def _poll_until_finished(self, job: MediaJob) -> MediaJob:
        while not job.status.is_finished:
            await self._sleep(self.poll_interval)
            job = await self.media.poll(job.job_id)
        return job

    async def ingest(self, vod: Vod) -> RecordingArtifact:
        """Confirm the source artifact is sealed and durable."""
        source_ref = vod.recording_ref or vod.storage_ref
        if not source_ref:
            raise stage_error("VOD has no source artifact", kind=ErrorKind.DEPENDENCY_FAILURE)

        artifact = await self.media.finalize_recording(
            stream_id=vod.source_stream_id or vod.vod_id,
            recording_ref=source_ref,
            duration_hint=vod.duration_seconds,
        )
        if not artifact.storage_ref:
            raise stage_error("Recording was not persisted", kind=ErrorKind.DEPENDENCY_FAILURE)
        return artifact

    async def thumbnails(self, vod: Vod, on_submit: SubmitHook | None = None) -> list[Thumbnail]:
        job = await self.run_media_job(
            MediaJobKind.THUMBNAIL, vod.storage_ref or "", {"count": THUMBNAIL_COUNT}, on_submit
        )
        return [Thumbnail.model_validate(t) for t in job.result.get("thumbnails", [])]

    async def transcription(self, vod: Vod, on_submit: SubmitHook | None = None) -> tuple[str, str | None]:
        job = await self.run_media_job(MediaJobKind.TRANSCRIBE, vod.storage_ref or "", on_submit=on_submit)
        ref = job.result.get("transcription_ref")
        if not ref:
            raise stage_error(f"Transcription job {job.job_id} returned no transcript")
        return ref, job.result.get("language")

    async def highlights(
        self, vod: Vod, transcription_ref: str | None, on_submit: SubmitHook | None = None
    ) -> tuple[list[Highlight], HighlightMode]:
        mode = HighlightMode.TRANSCRIPT if transcription_ref else HighlightMode.RAW_SIGNAL
        params: dict = {"mode": mode.value}
        if transcription_ref:
            params["transcription_ref"] = transcription_ref
        job = await self.run_media_job(MediaJobKind.EXTRACT_HIGHLIGHTS, vod.storage_ref or "", params, on_submit)
        return [Highlight.model_validate(h) for h in job.result.get("highlights", [])], mode


def as_stage_error(error: Exception) -> AppError:
    if isinstance(error, AppError):
        return error
    return stage_error(f"{type(error).__name__}: {error}")
