"""Render diagrams and upload them as Jira attachments.

Per diagram: validate -> render -> upload. Syntax and render failures skip
the diagram. Upload failures are classified:

- credentials rejected or ticket missing: fatal. Diagrams that have not
  reached the upload step are skipped as "batch aborted", uploads in flight
  finish, and everything the batch uploaded is deleted again
- anything else: retried once after a short pause, then skipped

Diagrams in a batch run concurrently, bounded by max_parallel. Results are
collected under an asyncio.Lock and reported in diagram order.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import Protocol

from jira_writer.diagrams.exceptions import (
    AttachmentAuthFailure,
    AttachmentError,
    AttachmentNotFound,
    AttachmentTransientFailure,
    DiagramRenderError,
    DiagramSyntaxError,
)
from jira_writer.diagrams.extract import DiagramBlock, resolve_filename
from jira_writer.diagrams.renderer import DiagramRenderer, RenderOptions
from jira_writer.document.model import Media, MediaSingle
from jira_writer.integrations.exceptions import (
    JiraApiError,
    JiraAuthError,
    JiraNotFoundError,
)
from jira_writer.utils.logging import log_message

logger = logging.getLogger(__name__)

# Type alias for async sleep functions (for dependency injection in tests)
AsyncSleeper = Callable[[float], Awaitable[None]]

BATCH_ABORTED_REASON = "batch aborted"


class AttachmentStore(Protocol):
    """Attachment operations of the primary API."""

    async def upload_attachment(self, ticket_id: str, content: bytes, filename: str) -> str: ...

    async def delete_attachment(self, attachment_id: str) -> None: ...

    def attachment_content_url(self, attachment_id: str) -> str: ...


@dataclass(frozen=True)
class UploadedDiagram:
    """A diagram that is now an attachment on the ticket.

    Attributes:
        attachment_id: Jira attachment id
        attachment_reference: Content URL usable in a media node
        resolved_filename: Filename the attachment was stored under
        index: 0-based diagram index within the batch
    """

    attachment_id: str
    attachment_reference: str
    resolved_filename: str
    index: int = 0

    def to_media_node(self) -> MediaSingle:
        return MediaSingle(Media(self.attachment_reference, alt=self.resolved_filename))


@dataclass(frozen=True)
class SkippedDiagram:
    """A diagram that was not embedded, with a human-readable reason."""

    index: int
    reason: str
    filename: str = ""
    detail: str = ""

    def to_dict(self) -> dict[str, object]:
        data: dict[str, object] = {"index": self.index, "reason": self.reason}
        if self.filename:
            data["filename"] = self.filename
        if self.detail:
            data["detail"] = self.detail
        return data


@dataclass
class RollbackReport:
    """Outcome of deleting uploaded attachments."""

    deleted: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return not self.failed


@dataclass
class DiagramBatchResult:
    """Result of processing every diagram of one operation.

    Attributes:
        total: Number of diagrams in the batch
        uploaded: Embedded diagrams, in diagram order
        skipped: Skipped diagrams, in diagram order
        fatal_error: Set when the batch was aborted
        rollback: Cleanup performed after an abort
    """

    total: int = 0
    uploaded: list[UploadedDiagram] = field(default_factory=list)
    skipped: list[SkippedDiagram] = field(default_factory=list)
    fatal_error: AttachmentError | None = None
    rollback: RollbackReport | None = None

    @property
    def embedded_count(self) -> int:
        return len(self.uploaded)

    @property
    def aborted(self) -> bool:
        return self.fatal_error is not None

    @property
    def attachment_ids(self) -> list[str]:
        return [diagram.attachment_id for diagram in self.uploaded]

    def by_index(self) -> dict[int, UploadedDiagram]:
        return {diagram.index: diagram for diagram in self.uploaded}

    def summary(self) -> str:
        text = f"{self.embedded_count} of {self.total} diagrams embedded"
        if self.skipped:
            reasons = ", ".join(f"#{s.index + 1}: {s.reason}" for s in self.skipped)
            text += f" (skipped {reasons})"
        return text


def _classify_upload_error(error: JiraApiError) -> AttachmentError:
    if isinstance(error, JiraAuthError):
        return AttachmentAuthFailure(f"Authentication failed while uploading: {error}")
    if isinstance(error, JiraNotFoundError):
        return AttachmentNotFound(f"Issue not found or no permission: {error}")
    return AttachmentTransientFailure(str(error))


class DiagramPipeline:
    """Validates, renders and uploads diagrams for one ticket.

    Attributes:
        renderer: Diagram renderer (mmdc in production)
        store: Attachment operations of the primary API
        options: Presentation options used for every render in this run
        max_parallel: Maximum number of diagrams processed at once
        retry_delay_seconds: Pause before the single upload retry
    """

    def __init__(
        self,
        renderer: DiagramRenderer,
        store: AttachmentStore,
        options: RenderOptions | None = None,
        *,
        max_parallel: int = 3,
        retry_delay_seconds: float = 1.0,
        sleeper: AsyncSleeper | None = None,
    ) -> None:
        self.renderer = renderer
        self.store = store
        self.options = options or RenderOptions()
        self.max_parallel = max(1, max_parallel)
        self.retry_delay_seconds = retry_delay_seconds
        self._sleeper: AsyncSleeper = sleeper if sleeper is not None else asyncio.sleep

    async def render_and_upload(
        self,
        diagram_source: str,
        target_ticket_id: str,
        desired_filename: str | None = None,
        *,
        index: int = 0,
    ) -> UploadedDiagram:
        """Validate, render and upload one diagram.

        Raises:
            DiagramSyntaxError: Validation failed
            DiagramRenderError: Rendering failed
            AttachmentAuthFailure: Credentials rejected (fatal)
            AttachmentNotFound: Ticket missing (fatal)
            AttachmentTransientFailure: Upload failed twice
        """
        filename = resolve_filename(desired_filename, index)
        png = await self._render(diagram_source, index, filename)
        return await self._upload(target_ticket_id, png, filename, index)

    async def _render(self, source: str, index: int, filename: str) -> bytes:
        log_message(f"Validating diagram {index + 1} ({filename})")
        await self.renderer.validate(source)

        log_message(f"Rendering diagram {index + 1} ({filename})")
        return await self.renderer.render(source, self.options)

    async def _upload(
        self, ticket_id: str, content: bytes, filename: str, index: int
    ) -> UploadedDiagram:
        attachment_id = await self._upload_with_retry(ticket_id, content, filename)
        reference = self.store.attachment_content_url(attachment_id)
        log_message(f"Uploaded {filename} to {ticket_id} as attachment {attachment_id}")
        return UploadedDiagram(attachment_id, reference, filename, index)

    async def _upload_with_retry(self, ticket_id: str, content: bytes, filename: str) -> str:
        for attempt in (1, 2):
            try:
                return await self.store.upload_attachment(ticket_id, content, filename)
            except JiraApiError as e:
                error = _classify_upload_error(e)
                if error.fatal or attempt == 2:
                    raise error from e
                logger.warning(
                    "Upload of %s failed (%s), retrying in %.1fs",
                    filename,
                    e,
                    self.retry_delay_seconds,
                )
                await self._sleeper(self.retry_delay_seconds)
        raise AssertionError("unreachable")

    async def process_batch(
        self,
        blocks: Sequence[DiagramBlock],
        ticket_id: str,
        on_uploaded: Callable[[UploadedDiagram], None] | None = None,
    ) -> DiagramBatchResult:
        """Process all diagrams concurrently; never raises for per-diagram failures.

        A fatal upload error stops diagrams that have not reached the upload
        step yet. Uploads already in flight are allowed to finish, then
        everything this batch uploaded is deleted and the abort is reported
        on the result.

        Args:
            blocks: Diagrams to process
            ticket_id: Ticket the attachments go to
            on_uploaded: Called as soon as each attachment exists, so callers
                can track uploads even if the batch is cancelled
        """
        result = DiagramBatchResult(total=len(blocks))
        lock = asyncio.Lock()
        semaphore = asyncio.Semaphore(self.max_parallel)
        abort = asyncio.Event()

        async def skip(block: DiagramBlock, reason: str, detail: str = "") -> None:
            async with lock:
                result.skipped.append(SkippedDiagram(block.index, reason, block.filename, detail))

        async def worker(block: DiagramBlock) -> None:
            async with semaphore:
                if abort.is_set():
                    await skip(block, BATCH_ABORTED_REASON)
                    return
                filename = resolve_filename(block.filename, block.index)
                try:
                    png = await self._render(block.source, block.index, filename)
                    if abort.is_set():
                        await skip(block, BATCH_ABORTED_REASON)
                        return
                    uploaded = await self._upload(ticket_id, png, filename, block.index)
                except (DiagramSyntaxError, DiagramRenderError, AttachmentTransientFailure) as e:
                    log_message(f"Skipping diagram {block.index + 1}: {e}")
                    await skip(block, e.skip_reason, str(e))
                    return
                except (AttachmentAuthFailure, AttachmentNotFound) as e:
                    abort.set()
                    async with lock:
                        if result.fatal_error is None:
                            result.fatal_error = e
                    await skip(block, e.skip_reason, str(e))
                    return
            async with lock:
                result.uploaded.append(uploaded)
            if on_uploaded is not None:
                on_uploaded(uploaded)

        async with asyncio.TaskGroup() as group:
            for block in blocks:
                group.create_task(worker(block))

        result.uploaded.sort(key=lambda d: d.index)
        result.skipped.sort(key=lambda s: s.index)

        if result.fatal_error is not None:
            logger.error("Diagram batch aborted: %s", result.fatal_error)
            if result.uploaded:
                result.rollback = await self.rollback(result.attachment_ids)
        log_message(result.summary())
        return result

    async def rollback(self, attachment_ids: Sequence[str]) -> RollbackReport:
        """Delete attachments, recording which deletions failed.

        Also the explicit cleanup entry point for cancelled operations.
        """
        report = RollbackReport()
        for attachment_id in attachment_ids:
            try:
                await self.store.delete_attachment(attachment_id)
            except JiraApiError as e:
                logger.error("Failed to delete attachment %s: %s", attachment_id, e)
                report.failed.append(attachment_id)
            else:
                report.deleted.append(attachment_id)
        log_message(
            f"Rollback deleted {len(report.deleted)} attachment(s), "
            f"{len(report.failed)} failed"
        )
        return report


__all__ = [
    "AsyncSleeper",
    "BATCH_ABORTED_REASON",
    "AttachmentStore",
    "UploadedDiagram",
    "SkippedDiagram",
    "RollbackReport",
    "DiagramBatchResult",
    "DiagramPipeline",
]
