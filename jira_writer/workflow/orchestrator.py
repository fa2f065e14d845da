"""Ticket operation orchestrator.

Runs one create or update end to end:

1. RESOLVING_TARGET     validate the request; creates check the issue type
                        against the project, updates read the current
                        description and check the insert_after anchor
2. GATHERING_CONTENT    split the content into markdown and diagram blocks
3. CLASSIFYING_CONTENT  SIMPLE or COMPLEX; COMPLEX needs the primary API
4. PROCESSING_DIAGRAMS  render and upload diagrams (creates make the ticket
                        first so attachments have a target)
5. BUILDING_DOCUMENT    convert markdown, embed diagrams, merge
6. SELECTING_API        primary, or the fallback for SIMPLE content
7. SUBMITTING           write; a failed write deletes this run's uploads

COMPLEX content never falls back: the fallback API would turn checkboxes
into plain text and drop images. No step is retried automatically, apart
from the single upload retry inside the diagram pipeline.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass

from jira_writer.diagrams.extract import DiagramBlock, MarkdownSegment, split_content
from jira_writer.diagrams.pipeline import (
    AsyncSleeper,
    DiagramBatchResult,
    DiagramPipeline,
    RollbackReport,
    UploadedDiagram,
)
from jira_writer.diagrams.renderer import DiagramRenderer, RenderOptions
from jira_writer.document.classifier import DIAGRAM_LANGUAGE, ContentComplexity, classify
from jira_writer.document.exceptions import AnchorNotFoundError
from jira_writer.document.markdown import markdown_to_document
from jira_writer.document.merger import MergeMode, find_heading, merge, top_level_headings
from jira_writer.document.model import CodeBlock, Doc, Node, flatten_text
from jira_writer.document.render import document_to_markdown, markdown_safe
from jira_writer.integrations.cache import SessionCache
from jira_writer.integrations.exceptions import JiraApiError
from jira_writer.integrations.fallback import FallbackTransport
from jira_writer.integrations.outcome import (
    NOT_CONFIGURED_REASON,
    ApiFailure,
    FailureKind,
    FallbackRequested,
    Ok,
    PrimaryApi,
    PrimaryTransport,
)
from jira_writer.integrations.probe import EnvironmentProbe
from jira_writer.utils.console import print_info, print_step, print_success, print_warning
from jira_writer.utils.errors import ExitCode, JiraWriterError
from jira_writer.utils.logging import log_message
from jira_writer.workflow.exceptions import ApiUnavailable, InvalidRequestError, SubmitFailure
from jira_writer.workflow.state import (
    ApiChoice,
    OperationMode,
    OperationRequest,
    OperationResult,
    OperationState,
    OperationStatus,
)

logger = logging.getLogger(__name__)

# Jira rejects summaries longer than this
MAX_SUMMARY_LENGTH = 255

_MARKDOWN_PREFIX = re.compile(r"^\s*(?:#{1,6}\s+|[-*+]\s+(?:\[[ xX]\]\s+)?|\d+[.)]\s+|>\s*)")


def derive_summary(raw_content: str) -> str:
    """Summary from the first heading, else the first non-empty line."""
    for segment in split_content(raw_content):
        if not isinstance(segment, MarkdownSegment):
            continue
        doc = markdown_to_document(segment.text)
        for node in doc.content:
            if node.adf_type == "heading":
                text = flatten_text(node).strip()
                if text:
                    return text[:MAX_SUMMARY_LENGTH]
    for line in raw_content.splitlines():
        text = _MARKDOWN_PREFIX.sub("", line).strip()
        if text and not text.startswith(("```", "~~~")):
            return text[:MAX_SUMMARY_LENGTH]
    return ""


def _auth_hint(kind: FailureKind) -> str:
    if kind is FailureKind.NOT_CONFIGURED:
        return "Authentication not configured"
    if kind is FailureKind.AUTH:
        return "Authentication failed"
    return ""


class _OperationAborted(Exception):
    """Internal signal: stop the state machine with a prepared result."""


@dataclass
class _Run:
    """Mutable context of one run."""

    request: OperationRequest
    result: OperationResult
    existing: Doc | None = None
    existing_error: ApiFailure | FallbackRequested | None = None
    complexity: ContentComplexity = ContentComplexity.SIMPLE
    blocks: list[DiagramBlock] | None = None
    batch: DiagramBatchResult | None = None
    document: Doc | None = None
    summary: str = ""
    created_early: bool = False


class TicketOperationOrchestrator:
    """Coordinates classification, diagrams, merging and API selection.

    Attributes:
        primary: Primary API facade (REST), possibly unconfigured
        fallback: Markdown-only fallback transport, or None
        pipeline: Diagram pipeline bound to the primary transport
        probe: Optional environment probe used before COMPLEX operations
        pending_attachments: Attachments uploaded by the current run that are
            not yet referenced by a submitted document. After a cancellation
            pass them to cleanup().
    """

    def __init__(
        self,
        primary: PrimaryTransport | None,
        fallback: FallbackTransport | None,
        renderer: DiagramRenderer,
        *,
        probe: EnvironmentProbe | None = None,
        render_options: RenderOptions | None = None,
        max_parallel_diagrams: int = 3,
        upload_retry_delay_seconds: float = 1.0,
        sleeper: AsyncSleeper | None = None,
        cache: SessionCache | None = None,
    ) -> None:
        self.primary = PrimaryApi(primary)
        self.fallback = fallback
        self.probe = probe
        self.cache = cache
        self.pipeline: DiagramPipeline | None = None
        if primary is not None:
            self.pipeline = DiagramPipeline(
                renderer,
                primary,
                render_options,
                max_parallel=max_parallel_diagrams,
                retry_delay_seconds=upload_retry_delay_seconds,
                sleeper=sleeper,
            )
        self.pending_attachments: list[str] = []

    # =========================================================================
    # Entry points
    # =========================================================================

    async def run(self, request: OperationRequest) -> OperationResult:
        """Execute one operation; failures are reported on the result."""
        run = _Run(request, OperationResult(status=OperationStatus.FAILED))
        self.pending_attachments = []
        try:
            await self._execute(run)
        except _OperationAborted:
            pass
        finally:
            if self.cache is not None:
                self.cache.clear()
        log_message(
            f"Operation {request.mode.value} finished: {run.result.status.value}"
            + (f" ({run.result.error})" if run.result.error else "")
        )
        return run.result

    async def cleanup(self, attachment_ids: Sequence[str]) -> RollbackReport:
        """Delete attachments left behind by a cancelled operation."""
        if self.pipeline is None:
            raise ApiUnavailable("Cannot delete attachments: REST credentials not configured")
        report = await self.pipeline.rollback(attachment_ids)
        self.pending_attachments = [a for a in self.pending_attachments if a in report.failed]
        return report

    # =========================================================================
    # State machine
    # =========================================================================

    def _enter(self, run: _Run, state: OperationState) -> None:
        run.result.states.append(state)
        logger.debug("State -> %s", state.value)

    def _fail(self, run: _Run, error: str | JiraWriterError) -> _OperationAborted:
        run.result.status = OperationStatus.FAILED
        run.result.error = str(error)
        run.result.exit_code = (
            error.exit_code if isinstance(error, JiraWriterError) else ExitCode.JIRA_FAILED
        )
        self._enter(run, OperationState.FAILED)
        return _OperationAborted()

    async def _execute(self, run: _Run) -> None:
        request = run.request

        self._enter(run, OperationState.RESOLVING_TARGET)
        await self._resolve_target(run)

        self._enter(run, OperationState.GATHERING_CONTENT)
        segments = split_content(request.raw_content)
        run.blocks = [s for s in segments if isinstance(s, DiagramBlock)]
        if request.mode is OperationMode.CREATE:
            run.summary = (request.summary or "").strip() or derive_summary(request.raw_content)
            if not run.summary:
                error = InvalidRequestError("A summary is required to create a ticket")
                raise self._fail(run, error)

        self._enter(run, OperationState.CLASSIFYING_CONTENT)
        run.complexity = classify(request.raw_content)
        run.result.complexity = run.complexity
        print_info(f"Content classified as {run.complexity.value}")
        if run.complexity is ContentComplexity.COMPLEX:
            await self._require_primary(run)

        self._enter(run, OperationState.PROCESSING_DIAGRAMS)
        await self._process_diagrams(run)

        self._enter(run, OperationState.BUILDING_DOCUMENT)
        self._build_document(run, segments)

        self._enter(run, OperationState.SELECTING_API)
        choice = self._select_api(run)

        self._enter(run, OperationState.SUBMITTING)
        await self._submit(run, choice)

    async def _resolve_target(self, run: _Run) -> None:
        request = run.request
        if request.mode is OperationMode.UPDATE:
            if not request.target:
                raise self._fail(run, InvalidRequestError("An update requires a ticket key"))
            if request.merge_mode is MergeMode.INSERT_AFTER and not (request.anchor or "").strip():
                raise self._fail(run, InvalidRequestError("insert_after requires a heading anchor"))
            run.result.ticket_id = request.target
        elif not request.project:
            error = InvalidRequestError("A project key is required to create a ticket")
            raise self._fail(run, error)
        elif self.primary.configured:
            await self._check_issue_type(run)

        if request.mode is not OperationMode.UPDATE or request.merge_mode is MergeMode.REPLACE:
            return
        assert request.target is not None

        outcome = await self.primary.get_document(request.target)
        if isinstance(outcome, Ok):
            run.existing = outcome.data
        else:
            assert isinstance(outcome, ApiFailure)
            if outcome.kind is FailureKind.NOT_FOUND:
                raise self._fail(run, f"Ticket {request.target} not found: {outcome.message}")
            # Decided later: COMPLEX content fails, SIMPLE content may fall back
            run.existing_error = outcome
            return

        if request.merge_mode is MergeMode.INSERT_AFTER:
            assert request.anchor is not None
            if find_heading(run.existing, request.anchor) is None:
                raise self._fail(
                    run, AnchorNotFoundError(request.anchor, top_level_headings(run.existing))
                )

    async def _check_issue_type(self, run: _Run) -> None:
        """Reject an issue type the project does not offer, listing the valid ones."""
        request = run.request
        outcome = await self.primary.get_issue_types(request.project)
        if not isinstance(outcome, Ok):
            # Unverifiable; the create call reports the underlying failure
            return
        names = [str(t["name"]) for t in outcome.data if t.get("name")]
        if names and request.issue_type.casefold() not in {n.casefold() for n in names}:
            error = InvalidRequestError(
                f"Issue type '{request.issue_type}' is not available in {request.project} "
                f"(available: {', '.join(names)})"
            )
            raise self._fail(run, error)

    async def _require_primary(self, run: _Run) -> None:
        """COMPLEX content: the primary must be configured and authenticated."""
        reason = "complex content (checkboxes, diagrams or media) requires the Jira REST API"
        if not self.primary.configured:
            raise self._fail(
                run,
                ApiUnavailable(
                    f"Authentication not configured: {reason}; no fallback attempted "
                    "(set JIRA_DOMAIN and JIRA_API_KEY)",
                    exit_code=ExitCode.PREREQUISITES_FAILED,
                ),
            )
        if isinstance(run.existing_error, ApiFailure):
            hint = _auth_hint(run.existing_error.kind) or "Jira REST API unavailable"
            raise self._fail(
                run,
                ApiUnavailable(
                    f"{hint}: {reason}; no fallback attempted ({run.existing_error.message})"
                ),
            )
        if self.probe is not None:
            status = await self.probe.probe()
            if not status.primary_authenticated:
                raise self._fail(
                    run,
                    ApiUnavailable(
                        f"Authentication failed: {reason}; no fallback attempted"
                        + (f" ({status.error})" if status.error else "")
                    ),
                )

    async def _process_diagrams(self, run: _Run) -> None:
        if not run.blocks:
            return
        assert self.pipeline is not None
        request = run.request

        if request.mode is OperationMode.CREATE:
            print_step("Creating ticket so diagrams can be attached...")
            outcome = await self.primary.create(request.project, request.issue_type, run.summary)
            if not isinstance(outcome, Ok):
                assert isinstance(outcome, ApiFailure)
                hint = _auth_hint(outcome.kind)
                message = f"{hint}: {outcome.message}" if hint else outcome.message
                error = SubmitFailure(f"Failed to create ticket: {message}", outcome.message)
                raise self._fail(run, error)
            run.result.ticket_id = outcome.data
            run.created_early = True
            print_success(f"Created {outcome.data}")

        ticket_id = run.result.ticket_id
        assert ticket_id is not None
        print_step(f"Processing {len(run.blocks)} diagram(s)...")
        batch = await self.pipeline.process_batch(
            run.blocks, ticket_id, on_uploaded=self._track_upload
        )
        run.batch = batch
        run.result.diagrams_skipped = list(batch.skipped)

        if batch.aborted:
            run.result.diagrams_embedded = 0
            run.result.error = str(batch.fatal_error)
            if batch.rollback is not None:
                run.result.rolled_back_attachments = list(batch.rollback.deleted)
                run.result.failed_rollbacks = list(batch.rollback.failed)
                self.pending_attachments = list(batch.rollback.failed)
                run.result.status = OperationStatus.ROLLED_BACK
                run.result.exit_code = (
                    batch.fatal_error.exit_code if batch.fatal_error else ExitCode.JIRA_FAILED
                )
                self._enter(run, OperationState.ROLLED_BACK)
                raise _OperationAborted()
            raise self._fail(run, batch.fatal_error or "Diagram batch aborted")

        self.pending_attachments = batch.attachment_ids
        run.result.uploaded_attachments = batch.attachment_ids
        run.result.diagrams_embedded = batch.embedded_count
        for skip in batch.skipped:
            print_warning(f"Diagram {skip.index + 1} skipped: {skip.reason}")
        print_info(batch.summary())

    def _track_upload(self, diagram: UploadedDiagram) -> None:
        self.pending_attachments.append(diagram.attachment_id)

    def _build_document(
        self, run: _Run, segments: Sequence[MarkdownSegment | DiagramBlock]
    ) -> None:
        uploaded = run.batch.by_index() if run.batch else {}
        blocks: list[Node] = []
        for segment in segments:
            if isinstance(segment, MarkdownSegment):
                blocks.extend(markdown_to_document(segment.text).content)
            elif segment.index in uploaded:
                blocks.append(uploaded[segment.index].to_media_node())
            else:
                # Skipped diagrams stay visible as source
                blocks.append(CodeBlock(segment.source, language=DIAGRAM_LANGUAGE))
        fragment = Doc(content=tuple(blocks))

        request = run.request
        if request.mode is OperationMode.CREATE or run.existing is None:
            run.document = merge(Doc(), fragment, MergeMode.REPLACE)
            return
        try:
            run.document = merge(run.existing, fragment, request.merge_mode, request.anchor)
        except AnchorNotFoundError as e:
            raise self._fail(run, e) from e

    def _select_api(self, run: _Run) -> ApiChoice:
        if run.complexity is ContentComplexity.COMPLEX:
            return ApiChoice.PRIMARY
        if self.primary.configured and run.existing_error is None:
            return ApiChoice.PRIMARY
        blocker = self._fallback_blocker(run)
        if blocker is None:
            return ApiChoice.FALLBACK
        reason = self._primary_unavailable_reason(run)
        raise self._fail(run, ApiUnavailable(f"Jira REST API unavailable ({reason}); {blocker}"))

    def _primary_unavailable_reason(self, run: _Run) -> str:
        if run.existing_error is not None:
            return run.existing_error.message
        return NOT_CONFIGURED_REASON

    def _fallback_blocker(self, run: _Run) -> str | None:
        """Why the fallback cannot carry this operation, or None when it can."""
        if self.fallback is None:
            return "no fallback API is configured"
        request = run.request
        if request.mode is OperationMode.UPDATE and run.existing is None:
            if request.merge_mode is not MergeMode.REPLACE:
                return (
                    f"the existing description could not be read, so '{request.merge_mode.value}' "
                    "cannot be applied through the fallback API"
                )
        if run.document is not None and not markdown_safe(run.document):
            return "the existing description holds content the fallback API cannot represent"
        return None

    # =========================================================================
    # Submission
    # =========================================================================

    async def _submit(self, run: _Run, choice: ApiChoice) -> None:
        assert run.document is not None
        request = run.request

        if choice is ApiChoice.FALLBACK:
            await self._submit_fallback(run, self._primary_unavailable_reason(run))
            return

        markdown = None
        if run.complexity is ContentComplexity.SIMPLE and self._fallback_blocker(run) is None:
            markdown = document_to_markdown(run.document)

        outcome: Ok[str] | Ok[None] | FallbackRequested | ApiFailure
        if request.mode is OperationMode.CREATE and not run.created_early:
            print_step(f"Creating ticket in {request.project}...")
            outcome = await self.primary.create(
                request.project,
                request.issue_type,
                run.summary,
                run.document,
                fallback_markdown=markdown,
            )
        else:
            ticket_id = run.result.ticket_id
            assert ticket_id is not None
            print_step(f"Updating {ticket_id}...")
            outcome = await self.primary.update(ticket_id, run.document, fallback_markdown=markdown)

        if isinstance(outcome, Ok):
            if isinstance(outcome.data, str):
                run.result.ticket_id = outcome.data
            self._succeed(run, ApiChoice.PRIMARY)
            return
        if isinstance(outcome, FallbackRequested):
            await self._submit_fallback(run, outcome.reason)
            return
        await self._handle_submit_failure(run, outcome)

    async def _submit_fallback(self, run: _Run, reason: str) -> None:
        assert self.fallback is not None and run.document is not None
        request = run.request
        markdown = document_to_markdown(run.document)
        try:
            if request.mode is OperationMode.CREATE:
                key = await self.fallback.create(
                    request.project, request.issue_type, run.summary, markdown, reason=reason
                )
                run.result.ticket_id = key
                params = {
                    "projectKey": request.project,
                    "issueTypeName": request.issue_type,
                    "summary": run.summary,
                    "description": markdown,
                }
                signal = FallbackRequested("createJiraIssue", params, reason)
            else:
                assert request.target is not None
                await self.fallback.update(request.target, markdown, reason=reason)
                params = {"issueIdOrKey": request.target, "fields": {"description": markdown}}
                signal = FallbackRequested("editJiraIssue", params, reason)
        except (JiraWriterError, JiraApiError) as e:
            raise self._fail(
                run, ApiUnavailable(f"Primary API failed ({reason}) and fallback failed: {e}")
            ) from e
        run.result.fallback_signal = signal.to_signal()
        self._succeed(run, ApiChoice.FALLBACK)

    def _succeed(self, run: _Run, choice: ApiChoice) -> None:
        run.result.api_used = choice
        run.result.status = OperationStatus.SUCCEEDED
        self.pending_attachments = []
        self._enter(run, OperationState.SUCCEEDED)
        where = "fallback API" if choice is ApiChoice.FALLBACK else "Jira REST API"
        print_success(f"{run.request.mode.value.capitalize()} succeeded via {where}")

    async def _handle_submit_failure(self, run: _Run, failure: ApiFailure) -> None:
        hint = _auth_hint(failure.kind)
        message = f"Failed to submit document: {hint + ': ' if hint else ''}{failure.message}"
        if run.complexity is ContentComplexity.COMPLEX and self.fallback is not None:
            message += " (complex content, no fallback attempted)"
        error = SubmitFailure(message, failure.message)
        run.result.api_used = ApiChoice.PRIMARY

        uploaded = list(self.pending_attachments)
        if not uploaded:
            raise self._fail(run, error)

        assert self.pipeline is not None
        print_warning(f"Rolling back {len(uploaded)} uploaded attachment(s)...")
        report = await self.pipeline.rollback(uploaded)
        self.pending_attachments = list(report.failed)
        run.result.rolled_back_attachments = list(report.deleted)
        run.result.failed_rollbacks = list(report.failed)
        run.result.diagrams_embedded = 0
        run.result.status = OperationStatus.ROLLED_BACK
        run.result.error = str(error)
        run.result.exit_code = error.exit_code
        self._enter(run, OperationState.ROLLED_BACK)
        raise _OperationAborted()


__all__ = [
    "MAX_SUMMARY_LENGTH",
    "derive_summary",
    "TicketOperationOrchestrator",
]
