"""Training resource provisioning: archive, upload, fine-tune, poll."""

import io
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Mapping, Optional, Sequence

from PIL import Image, UnidentifiedImageError

from .archive import ArchiveBuilder, ArchiveEntry
from .error_handling import with_error_handling
from .exceptions import (
    APIError,
    FileIOError,
    InvalidInputError,
    NetworkError,
    UploadError,
)
from .extraction import extract_file_id, extract_job_id, extract_resource_id
from .models import Photo, ProgressCheckpoint, ServiceConfig
from .observability import LogContext
from .polling import StatusPoller
from .protocols import (
    HTTPClientProtocol,
    LoggerProtocol,
    ProgressSink,
    ResourceProvisioner,
    Sleeper,
)

_EXTENSION_ALIASES = {"jpeg": "jpg", "tiff": "tif"}


class ProvisioningState(str, Enum):
    IDLE = "idle"
    ARCHIVE_BUILT = "archive_built"
    UPLOADED = "uploaded"
    JOB_CREATED = "job_created"
    POLLING = "polling"
    READY = "ready"
    FAILED = "failed"


@dataclass
class ProvisioningRun:
    """State of one provisioning run."""

    state: ProvisioningState = ProvisioningState.IDLE
    file_id: Optional[str] = None
    job_id: Optional[str] = None
    resource_id: Optional[str] = None
    error: Optional[str] = None


def validate_photos(photos: Sequence[Photo]) -> None:
    """Raise InvalidInputError unless every photo carries a payload."""
    if not photos:
        raise InvalidInputError("At least one photo is required")
    for index, photo in enumerate(photos):
        if not photo.has_payload:
            raise InvalidInputError(
                f"Missing image data for photo at index {index} (id={photo.id})"
            )


def photo_entry_name(index: int, data: bytes) -> str:
    """Positional archive name, with the extension sniffed from the image header."""
    try:
        with Image.open(io.BytesIO(data)) as image:
            image_format = (image.format or "").lower()
    except (UnidentifiedImageError, OSError):
        image_format = ""
    extension = _EXTENSION_ALIASES.get(image_format, image_format) or "jpg"
    return f"photo_{index}.{extension}"


class TrainingResourceProvisioner(ResourceProvisioner):
    """Turns user photos into a fine-tuned resource identifier."""

    def __init__(
        self,
        http_client: HTTPClientProtocol,
        config: ServiceConfig,
        logger: LoggerProtocol,
        archive_builder: Optional[ArchiveBuilder] = None,
        sleep: Optional[Sleeper] = None,
    ):
        self._http_client = http_client
        self._config = config
        self._logger = logger
        self._archive_builder = archive_builder or ArchiveBuilder()
        self._sleep = sleep
        self._poller = self._build_poller(config)
        self.last_run: Optional[ProvisioningRun] = None

    def _build_poller(self, config: ServiceConfig) -> StatusPoller:
        return StatusPoller(
            self._http_client,
            headers=config.auth_headers(),
            interval=config.polling.training_interval,
            max_attempts=config.polling.training_max_attempts,
            logger=self._logger,
            label="Finetune job",
            sleep=self._sleep,
        )

    def reconfigure(self, config: ServiceConfig) -> None:
        self._poller = self._build_poller(config)
        self._config = config

    @with_error_handling(default=APIError)
    async def provision(
        self,
        photos: Sequence[Photo],
        on_progress: Optional[ProgressSink] = None,
        context: Optional[LogContext] = None,
    ) -> str:
        """
        Provision a training resource from ``photos``.

        Emits ARCHIVE_UPLOADED, FINE_TUNE_JOB_CREATED and TRAINING_RESOURCE_READY
        through ``on_progress`` as the stages complete.

        Raises:
            InvalidInputError: A photo has no payload (nothing is sent)
            FileIOError: The archive could not be built
            UploadError: The upload failed or its response had no file id
            APIError: Job creation or polling failed
            NetworkError: Transport failure outside the upload
        """
        context = (context or LogContext(component="provisioner")).with_operation(
            "provision"
        )
        validate_photos(photos)

        run = ProvisioningRun()
        self.last_run = run
        try:
            archive = self.build_archive(photos)
            run.state = ProvisioningState.ARCHIVE_BUILT
            self._logger.debug("Training archive built", context, bytes=len(archive))

            run.file_id = await self.upload_archive(archive, context)
            run.state = ProvisioningState.UPLOADED
            self._logger.info("Training archive uploaded", context, file_id=run.file_id)
            self._emit(on_progress, ProgressCheckpoint.ARCHIVE_UPLOADED)

            run.job_id = await self.create_fine_tune_job(run.file_id, context)
            run.state = ProvisioningState.JOB_CREATED
            self._logger.info("Finetune job created", context, job_id=run.job_id)
            self._emit(on_progress, ProgressCheckpoint.FINE_TUNE_JOB_CREATED)

            run.state = ProvisioningState.POLLING
            run.resource_id = await self.wait_for_resource(run.job_id, context)
        except Exception as exc:
            run.state = ProvisioningState.FAILED
            run.error = str(exc)
            raise

        run.state = ProvisioningState.READY
        self._logger.info("Training resource ready", context, resource_id=run.resource_id)
        self._emit(on_progress, ProgressCheckpoint.TRAINING_RESOURCE_READY)
        return run.resource_id

    def build_archive(self, photos: Sequence[Photo]) -> bytes:
        entries: List[ArchiveEntry] = []
        for index, photo in enumerate(photos):
            if not photo.data:
                raise InvalidInputError(f"Missing image data for photo at index {index}")
            entries.append(ArchiveEntry(photo_entry_name(index, photo.data), photo.data))

        try:
            return self._archive_builder.build(entries)
        except FileIOError:
            raise
        except Exception as exc:
            raise FileIOError(f"Failed to create training archive: {exc}") from exc

    async def upload_archive(
        self, archive: bytes, context: Optional[LogContext] = None
    ) -> str:
        """Upload the archive as one multipart body and return the file id."""
        filename = f"training-{uuid.uuid4().hex}.zip"
        self._logger.debug("Uploading training archive", context, filename=filename)

        with io.BytesIO(archive) as buffer:
            try:
                response = await self._http_client.request(
                    "POST",
                    self._config.files_url,
                    headers=self._config.auth_headers(),
                    files={"files": (filename, buffer, "application/zip")},
                )
            except NetworkError as exc:
                raise UploadError(exc.message) from exc

        if not response.ok:
            raise UploadError(f"File upload failed with status {response.status_code}")

        try:
            payload = response.json()
        except ValueError as exc:
            raise UploadError(f"Failed to parse upload response: {exc}") from exc

        file_id = extract_file_id(payload)
        if not file_id:
            raise UploadError("File upload response missing file_id")
        return file_id

    async def create_fine_tune_job(
        self, file_id: str, context: Optional[LogContext] = None
    ) -> str:
        payload = {
            "model": self._config.finetune_model,
            "training_file_ids": [file_id],
        }
        response = await self._http_client.request(
            "POST",
            self._config.fine_tunes_url,
            headers=self._config.auth_headers(),
            json=payload,
        )
        if not response.ok:
            raise APIError(
                f"Finetune job creation failed with status {response.status_code}"
            )

        try:
            body = response.json()
        except ValueError as exc:
            raise APIError(f"Failed to parse finetune job response: {exc}") from exc

        job_id = extract_job_id(body)
        if not job_id:
            raise APIError("Finetune job response missing job_id")
        return job_id

    async def wait_for_resource(
        self, job_id: str, context: Optional[LogContext] = None
    ) -> str:
        return await self._poller.poll(
            f"{self._config.fine_tunes_url}/{job_id}",
            on_succeeded=self._resource_id_from_output,
            context=context.with_metadata(job_id=job_id) if context else None,
        )

    @staticmethod
    def _resource_id_from_output(output: Mapping[str, Any]) -> str:
        resource_id = extract_resource_id(output)
        if not resource_id:
            raise APIError("Finetune job succeeded but no resource id returned")
        return resource_id

    @staticmethod
    def _emit(on_progress: Optional[ProgressSink], checkpoint: ProgressCheckpoint) -> None:
        if on_progress is not None:
            on_progress(checkpoint)
