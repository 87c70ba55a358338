"""Tests for the controller module."""

import base64
import json

import pytest

from conftest import PNG_BYTES, FakeClient, image_part, make_response, text_part
from neongenesis.controller import (
    CREATE_FAILURE_MESSAGE,
    EDIT_FAILURE_MESSAGE,
    InteractionMode,
    OrchestrationController,
    Phase,
)
from neongenesis.gemini_service import (
    EditError,
    EnhancementError,
    StructuredPrompt,
    SynthesisError,
)

FOX = StructuredPrompt("A red fox", "A red fox in snow", "Watercolor", "Dawn", "Calm", "85mm")
RESULT = "data:image/png;base64,UkVTVUxU"


class FakeService:
    """Records calls and returns canned results or raises canned errors."""

    def __init__(self, enhance=FOX, image=RESULT, edited=RESULT):
        self.enhance = enhance
        self.image = image
        self.edited = edited
        self.calls = []
        self.during_call = None

    def _result(self, value):
        if self.during_call:
            self.during_call()
        if isinstance(value, Exception):
            raise value
        return value

    def enhance_prompt(self, raw_text):
        self.calls.append(("enhance", raw_text))
        return self._result(self.enhance)

    def generate_image(self, prompt):
        self.calls.append(("generate", prompt))
        return self._result(self.image)

    def edit_image(self, data_url, instruction):
        self.calls.append(("edit", data_url, instruction))
        return self._result(self.edited)


@pytest.fixture
def service():
    return FakeService()


@pytest.fixture
def controller(service):
    return OrchestrationController(service)


def edit_ready(controller, source="data:image/jpeg;base64,AAAA", text="add sunglasses"):
    controller.switch_mode(InteractionMode.EDIT)
    controller.upload_source(source)
    controller.set_input_text(text)
    return controller


class TestCreateFlow:
    """Tests for the enhance-then-generate pipeline."""

    def test_success(self, controller, service):
        controller.set_input_text("a red fox in snow")
        state = controller.submit()

        assert service.calls == [("enhance", "a red fox in snow"), ("generate", FOX)]
        assert state.phase is Phase.IDLE
        assert state.structured_prompt == FOX
        assert state.result_image == RESULT
        assert state.error_message is None

    def test_phases_observed_in_order(self, service):
        phases = []
        controller = OrchestrationController(service, on_change=lambda s: phases.append(s.phase))
        controller.set_input_text("a red fox")
        controller.submit()
        assert phases == [
            Phase.IDLE,
            Phase.ENHANCING,
            Phase.SYNTHESIZING,
            Phase.IDLE,
        ]

    def test_enhancement_failure_skips_synthesis(self, controller, service):
        service.enhance = EnhancementError("transport error")
        controller.set_input_text("a red fox")
        state = controller.submit()

        assert [call[0] for call in service.calls] == ["enhance"]
        assert state.phase is Phase.IDLE
        assert state.structured_prompt is None
        assert state.result_image is None
        assert state.error_message == CREATE_FAILURE_MESSAGE
        assert isinstance(state.error, EnhancementError)

    def test_synthesis_failure_keeps_prompt(self, controller, service):
        service.image = SynthesisError("no image part")
        controller.set_input_text("a red fox")
        state = controller.submit()

        assert state.phase is Phase.IDLE
        assert state.structured_prompt == FOX
        assert state.result_image is None
        assert isinstance(state.error, SynthesisError)

    def test_new_submission_clears_previous_error(self, controller, service):
        service.enhance = EnhancementError("boom")
        controller.set_input_text("a red fox")
        controller.submit()
        service.enhance = FOX
        state = controller.submit()
        assert state.error_message is None
        assert state.result_image == RESULT

    def test_without_enhancement_sends_raw_text(self, controller, service):
        controller.set_enhance(False)
        controller.set_input_text("a lighthouse")
        state = controller.submit()

        assert service.calls == [("generate", "a lighthouse")]
        assert state.structured_prompt is None
        assert state.result_image == RESULT

    @pytest.mark.parametrize("text", ["", "   \n"])
    def test_blank_input_is_noop(self, controller, service, text):
        controller.set_input_text(text)
        state = controller.submit()
        assert service.calls == []
        assert state.request_id == 0

    def test_submit_while_busy_is_noop(self, controller, service):
        nested = []
        service.during_call = lambda: nested.append(controller.submit().phase)
        controller.set_input_text("a red fox")
        controller.submit()
        assert nested == [Phase.ENHANCING, Phase.SYNTHESIZING]
        assert [call[0] for call in service.calls] == ["enhance", "generate"]


class TestEditFlow:
    """Tests for the edit pipeline."""

    def test_success(self, controller, service):
        state = edit_ready(controller).submit()
        assert service.calls == [("edit", "data:image/jpeg;base64,AAAA", "add sunglasses")]
        assert state.result_image == RESULT
        assert state.phase is Phase.IDLE

    def test_failure(self, controller, service):
        service.edited = EditError("refused")
        state = edit_ready(controller).submit()
        assert state.error_message == EDIT_FAILURE_MESSAGE
        assert state.result_image is None
        assert state.phase is Phase.IDLE

    def test_requires_source(self, controller, service):
        controller.switch_mode(InteractionMode.EDIT)
        controller.set_input_text("add sunglasses")
        assert not controller.state.can_submit
        controller.submit()
        assert service.calls == []

    def test_new_upload_clears_result(self, controller):
        edit_ready(controller).submit()
        state = controller.upload_source("data:image/png;base64,QkJCQg==")
        assert state.result_image is None
        assert state.source_image == "data:image/png;base64,QkJCQg=="

    def test_upload_outside_edit_mode(self, controller):
        with pytest.raises(ValueError):
            controller.upload_source("data:image/png;base64,AAAA")


class TestModeSwitch:
    """Tests for clearing state across modes."""

    def test_create_to_edit_clears_prompt_and_result(self, controller):
        controller.set_input_text("a red fox")
        controller.submit()
        state = controller.switch_mode(InteractionMode.EDIT)

        assert state.mode is InteractionMode.EDIT
        assert state.structured_prompt is None
        assert state.result_image is None
        assert state.input_text == ""

    def test_edit_to_create_clears_source(self, controller):
        edit_ready(controller).submit()
        state = controller.switch_mode(InteractionMode.CREATE)

        assert state.source_image is None
        assert state.result_image is None
        assert state.input_text == ""

    def test_reselecting_edit_keeps_source(self, controller):
        edit_ready(controller)
        state = controller.switch_mode(InteractionMode.EDIT)
        assert state.source_image == "data:image/jpeg;base64,AAAA"
        assert state.input_text == ""

    def test_late_enhancement_is_discarded(self, controller, service):
        service.during_call = lambda: controller.switch_mode(InteractionMode.EDIT)
        controller.set_input_text("a red fox")
        state = controller.submit()

        assert [call[0] for call in service.calls] == ["enhance"]
        assert state.mode is InteractionMode.EDIT
        assert state.phase is Phase.IDLE
        assert state.structured_prompt is None

    def test_late_edit_result_is_discarded(self, controller, service):
        edit_ready(controller)
        service.during_call = lambda: controller.switch_mode(InteractionMode.CREATE)
        state = controller.submit()
        assert state.mode is InteractionMode.CREATE
        assert state.result_image is None

    def test_late_failure_is_discarded(self, controller, service):
        service.enhance = EnhancementError("late")
        service.during_call = lambda: controller.switch_mode(InteractionMode.CREATE)
        controller.set_input_text("a red fox")
        state = controller.submit()
        assert state.error_message is None


class TestUnexpectedErrors:
    """Non-domain exceptions propagate but never leave the session busy."""

    @pytest.mark.parametrize("failing", ["enhance", "image"])
    def test_create_returns_to_idle(self, controller, service, failing):
        setattr(service, failing, RuntimeError("sdk bug"))
        controller.set_input_text("a red fox")

        with pytest.raises(RuntimeError, match="sdk bug"):
            controller.submit()

        state = controller.state
        assert state.phase is Phase.IDLE
        assert state.can_submit
        assert state.error_message == CREATE_FAILURE_MESSAGE

    def test_edit_returns_to_idle(self, controller, service):
        service.edited = RuntimeError("sdk bug")
        edit_ready(controller)

        with pytest.raises(RuntimeError):
            controller.submit()

        assert controller.state.phase is Phase.IDLE
        assert controller.state.can_submit
        assert controller.state.error_message == EDIT_FAILURE_MESSAGE

    def test_listener_failure_returns_to_idle(self, service):
        def render(state):
            if state.phase is Phase.SYNTHESIZING:
                raise RuntimeError("page.update failed")

        controller = OrchestrationController(service, on_change=render)
        controller.set_input_text("a red fox")

        with pytest.raises(RuntimeError, match="page.update"):
            controller.submit()

        assert controller.state.phase is Phase.IDLE
        assert controller.state.can_submit

    def test_failure_on_opening_commit_returns_to_idle(self, service):
        def render(state):
            if state.phase is Phase.ENHANCING:
                raise RuntimeError("page.update failed")

        controller = OrchestrationController(service, on_change=render)
        controller.set_input_text("a red fox")

        with pytest.raises(RuntimeError):
            controller.submit()

        assert service.calls == []
        assert controller.state.phase is Phase.IDLE


class TestRequestInputs:
    """A request runs with exactly the inputs of the snapshot that started it."""

    def test_keystroke_before_start_is_included(self, controller, service):
        controller.set_input_text("a red fox")
        begin = controller._begin
        started = []

        def begin_after_keystroke(mode):
            controller.set_input_text("a red fox in snow")
            snapshot = begin(mode)
            started.append(snapshot)
            return snapshot

        controller._begin = begin_after_keystroke
        controller.submit()

        assert service.calls[0] == ("enhance", started[0].input_text)
        assert started[0].input_text == "a red fox in snow"

    def test_keystroke_during_request_is_ignored(self, controller, service):
        service.during_call = lambda: controller.set_input_text("something else")
        edit_ready(controller).submit()
        assert service.calls == [("edit", "data:image/jpeg;base64,AAAA", "add sunglasses")]


class TestDownload:
    def test_no_result(self, controller):
        assert controller.download() is None

    def test_payload(self, controller):
        controller.set_input_text("a red fox")
        controller.submit()
        payload = controller.download(timestamp_ms=1234)
        assert payload.filename == "neon-genesis-1234.png"
        assert payload.data_url == RESULT


class TestScenariosWithGeminiService:
    """End-to-end flows through the real service and a fake client."""

    def test_fox_in_snow(self, make_service):
        fox = {
            "subject": "Red fox",
            "detailed_description": "A red fox curled in deep snow",
            "artistic_style": "Photorealistic",
            "lighting": "Overcast",
            "mood": "Quiet",
            "technical_details": "Telephoto",
        }
        client = FakeClient(
            make_response(text_part(json.dumps(fox))),
            make_response(text_part("Here it is"), image_part()),
        )
        controller = OrchestrationController(make_service(client=client))
        controller.set_input_text("a red fox in snow")
        state = controller.submit()

        image_request = client.models.calls[1]["contents"].parts[0].text
        assert "Subject: Red fox" in image_request
        assert state.result_image == (
            "data:image/png;base64," + base64.b64encode(PNG_BYTES).decode("utf-8")
        )

    def test_enhancer_transport_error(self, make_service):
        client = FakeClient(ConnectionError("reset by peer"))
        controller = OrchestrationController(make_service(client=client))
        controller.set_input_text("a red fox in snow")
        state = controller.submit()

        assert len(client.models.calls) == 1
        assert state.structured_prompt is None
        assert isinstance(state.error, EnhancementError)

    def test_synthesis_without_image(self, make_service):
        client = FakeClient(
            make_response(
                text_part(
                    json.dumps(
                        {"subject": "Fox", "detailed_description": "Fox", "artistic_style": "Ink"}
                    )
                )
            ),
            make_response(text_part("I can't generate that.")),
        )
        controller = OrchestrationController(make_service(client=client))
        controller.set_input_text("a red fox")
        state = controller.submit()

        assert state.structured_prompt.subject == "Fox"
        assert isinstance(state.error, SynthesisError)
        assert state.phase is Phase.IDLE

    def test_edit_jpeg_upload(self, make_service):
        client = FakeClient(make_response(image_part(b"edited")))
        controller = edit_ready(OrchestrationController(make_service(client=client)))
        state = controller.submit()

        image = client.models.calls[0]["contents"].parts[0]
        assert image.inline_data.mime_type == "image/jpeg"
        assert base64.b64encode(image.inline_data.data) == b"AAAA"
        assert state.result_image == "data:image/png;base64," + base64.b64encode(b"edited").decode()
