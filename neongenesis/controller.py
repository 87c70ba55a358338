"""Session state machine coordinating the remote service with the UI.

All state lives in one immutable ``SessionState`` snapshot. Every user
action is a named transition on ``OrchestrationController`` that replaces
the snapshot and notifies the listener, so the state machine can be
exercised without any rendering layer.
"""

import logging
import threading
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable, Optional

from neongenesis.gemini_service import ImageStudioError, StructuredPrompt
from neongenesis.images import download_filename

logger = logging.getLogger(__name__)

CREATE_FAILURE_MESSAGE: str = "Something went wrong. Please try again."
EDIT_FAILURE_MESSAGE: str = "Failed to edit image. The model may have rejected the request."


class InteractionMode(Enum):
    CREATE = "CREATE"
    EDIT = "EDIT"


class Phase(Enum):
    IDLE = "idle"
    ENHANCING = "enhancing"
    SYNTHESIZING = "synthesizing"
    EDITING = "editing"


@dataclass(frozen=True)
class SessionState:
    """Snapshot of everything the UI shows.

    Attributes:
        mode: CREATE or EDIT.
        phase: IDLE, or the remote call currently in flight.
        input_text: Idea (CREATE) or instruction (EDIT) typed by the user.
        enhance: Whether CREATE runs the prompt enhancer before synthesis.
        structured_prompt: Result of the last enhancement, CREATE only.
        result_image: Data URL of the latest generated or edited image.
        source_image: Data URL of the uploaded image, EDIT only.
        error_message: User-facing notice for the last failed submission.
        error: The exception behind ``error_message``.
        request_id: Identifier of the latest submission; bumped by every
            submission and mode switch so late results can be recognised.
    """

    mode: InteractionMode = InteractionMode.CREATE
    phase: Phase = Phase.IDLE
    input_text: str = ""
    enhance: bool = True
    structured_prompt: Optional[StructuredPrompt] = None
    result_image: Optional[str] = None
    source_image: Optional[str] = None
    error_message: Optional[str] = None
    error: Optional[ImageStudioError] = None
    request_id: int = 0

    @property
    def is_busy(self) -> bool:
        return self.phase is not Phase.IDLE

    @property
    def can_submit(self) -> bool:
        if self.is_busy or not self.input_text.strip():
            return False
        if self.mode is InteractionMode.EDIT:
            return self.source_image is not None
        return True


@dataclass(frozen=True)
class DownloadPayload:
    """A result image and the filename suggested for saving it."""

    filename: str
    data_url: str


class OrchestrationController:
    """Own the session state and sequence calls to the remote service.

    ``service`` must provide ``enhance_prompt``, ``generate_image`` and
    ``edit_image`` with the semantics of ``GeminiImageService``. Submissions
    block until the remote calls settle, so the UI runs them off its event
    thread; the other transitions are quick and may be called from anywhere.

    Attributes:
        service: Remote model wrapper.
        on_change: Called with the new snapshot after every transition.
    """

    def __init__(
        self,
        service: Any,
        on_change: Optional[Callable[[SessionState], None]] = None,
    ) -> None:
        self.service = service
        self.on_change = on_change
        self._state = SessionState()
        self._lock = threading.RLock()

    @property
    def state(self) -> SessionState:
        return self._state

    # -------------------------------------------------------------------------
    # Internal helpers
    # -------------------------------------------------------------------------

    def _commit(self, **changes: Any) -> SessionState:
        with self._lock:
            self._state = replace(self._state, **changes)
            state = self._state
        logger.debug("State -> mode=%s phase=%s", state.mode.value, state.phase.value)
        if self.on_change:
            self.on_change(state)
        return state

    def _commit_if_current(
        self, request_id: int, expected: Phase, **changes: Any
    ) -> bool:
        """Apply ``changes`` only if the submission is still the active one.

        A submission is stale once a newer submission or a mode switch has
        bumped ``request_id``, or once its phase has been left.
        """
        with self._lock:
            current = self._state
            if current.request_id != request_id or current.phase is not expected:
                logger.info("Discarding stale result of request %d", request_id)
                return False
            self._commit(**changes)
        return True

    def _begin(self, mode: InteractionMode) -> Optional[SessionState]:
        """Start a submission in ``mode`` and return its opening snapshot.

        The snapshot carries the request id and the exact inputs the request
        runs with. Returns None if the session is in another mode or cannot
        submit.
        """
        with self._lock:
            state = self._state
            if state.mode is not mode or not state.can_submit:
                return None
            if mode is InteractionMode.EDIT:
                phase = Phase.EDITING
            elif state.enhance:
                phase = Phase.ENHANCING
            else:
                phase = Phase.SYNTHESIZING
            request_id = state.request_id + 1
            try:
                return self._commit(
                    phase=phase,
                    request_id=request_id,
                    structured_prompt=None,
                    result_image=None,
                    error_message=None,
                    error=None,
                )
            except Exception:
                self._abort(request_id, "Could not start the request.")
                raise

    def _abort(self, request_id: int, message: str) -> None:
        """Return an in-flight request to IDLE after an unexpected exception."""
        with self._lock:
            current = self._state
            if current.request_id != request_id or not current.is_busy:
                return
            logger.error("Request %d aborted while %s", request_id, current.phase.value)
            self._commit(phase=Phase.IDLE, error_message=message, error=None)

    # -------------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------------

    def set_input_text(self, text: str) -> SessionState:
        return self._commit(input_text=text or "")

    def set_enhance(self, enabled: bool) -> SessionState:
        return self._commit(enhance=bool(enabled))

    def clear_error(self) -> SessionState:
        return self._commit(error_message=None, error=None)

    def switch_mode(self, mode: InteractionMode) -> SessionState:
        """Change mode and drop everything tied to the previous one.

        The UI disables mode switching while a request is in flight; if it
        happens anyway, the in-flight result is discarded when it arrives.
        """
        with self._lock:
            logger.info("Switching mode to %s", mode.value)
            source_image = None
            if mode is InteractionMode.EDIT and self._state.mode is InteractionMode.EDIT:
                source_image = self._state.source_image
            return self._commit(
                mode=mode,
                phase=Phase.IDLE,
                input_text="",
                structured_prompt=None,
                result_image=None,
                source_image=source_image,
                error_message=None,
                error=None,
                request_id=self._state.request_id + 1,
            )

    def upload_source(self, data_url: str) -> SessionState:
        """Replace the source image; a new source invalidates the last edit.

        Raises:
            ValueError: If not in EDIT mode or ``data_url`` is empty.
        """
        with self._lock:
            if self._state.mode is not InteractionMode.EDIT:
                raise ValueError("Source images can only be uploaded in EDIT mode")
            if not data_url:
                raise ValueError("Source image is empty")
            return self._commit(source_image=data_url, result_image=None)

    def submit(self) -> SessionState:
        """Run the submission appropriate to the current mode."""
        if self._state.mode is InteractionMode.EDIT:
            return self.submit_edit()
        return self.submit_create()

    def submit_create(self) -> SessionState:
        """Enhance the idea, then synthesise an image from the result.

        If enhancement fails, synthesis is never attempted. If synthesis
        fails, the StructuredPrompt already obtained is kept on display.
        With enhancement switched off the raw text goes straight to the
        synthesiser. Exceptions other than ImageStudioError still return the
        session to IDLE before propagating.
        """
        started = self._begin(InteractionMode.CREATE)
        if started is None:
            return self._state
        try:
            if started.phase is Phase.SYNTHESIZING:
                return self._synthesize(started.request_id, started.input_text)
            return self._enhance_then_synthesize(started.request_id, started.input_text)
        except Exception:
            self._abort(started.request_id, CREATE_FAILURE_MESSAGE)
            raise

    def _enhance_then_synthesize(self, request_id: int, raw_text: str) -> SessionState:
        logger.info("Request %d: enhancing %r", request_id, raw_text)
        try:
            prompt = self.service.enhance_prompt(raw_text)
        except ImageStudioError as e:
            self._fail(request_id, Phase.ENHANCING, CREATE_FAILURE_MESSAGE, e)
            return self._state

        if not self._commit_if_current(
            request_id,
            Phase.ENHANCING,
            phase=Phase.SYNTHESIZING,
            structured_prompt=prompt,
        ):
            return self._state
        return self._synthesize(request_id, prompt)

    def _synthesize(self, request_id: int, prompt: Any) -> SessionState:
        logger.info("Request %d: synthesizing", request_id)
        try:
            image = self.service.generate_image(prompt)
        except ImageStudioError as e:
            self._fail(request_id, Phase.SYNTHESIZING, CREATE_FAILURE_MESSAGE, e)
            return self._state

        self._commit_if_current(
            request_id, Phase.SYNTHESIZING, phase=Phase.IDLE, result_image=image
        )
        return self._state

    def submit_edit(self) -> SessionState:
        """Send the source image and instruction to the editor.

        Exceptions other than ImageStudioError still return the session to
        IDLE before propagating.
        """
        started = self._begin(InteractionMode.EDIT)
        if started is None:
            return self._state
        try:
            return self._edit(started.request_id, started.source_image, started.input_text)
        except Exception:
            self._abort(started.request_id, EDIT_FAILURE_MESSAGE)
            raise

    def _edit(self, request_id: int, source_image: str, instruction: str) -> SessionState:
        logger.info("Request %d: editing with %r", request_id, instruction)
        try:
            image = self.service.edit_image(source_image, instruction)
        except ImageStudioError as e:
            self._fail(request_id, Phase.EDITING, EDIT_FAILURE_MESSAGE, e)
            return self._state

        self._commit_if_current(
            request_id, Phase.EDITING, phase=Phase.IDLE, result_image=image
        )
        return self._state

    def _fail(
        self, request_id: int, phase: Phase, message: str, error: ImageStudioError
    ) -> None:
        logger.warning("Request %d failed while %s: %s", request_id, phase.value, error)
        self._commit_if_current(
            request_id, phase, phase=Phase.IDLE, error_message=message, error=error
        )

    def download(self, timestamp_ms: Optional[int] = None) -> Optional[DownloadPayload]:
        """Return the current result with a suggested filename, if any."""
        result = self._state.result_image
        if result is None:
            return None
        return DownloadPayload(filename=download_filename(timestamp_ms), data_url=result)
