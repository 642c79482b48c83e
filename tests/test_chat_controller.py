import asyncio
import json
import threading

import httpx
import pytest

from frontend.models import MessagePurpose
from frontend.services.chat_controller import ChatController
from frontend.services.errors import ChatError, EditRejected, SessionBusy
from frontend.services.lifecycle import TurnState


def ndjson(*frames) -> bytes:
    """Encode frames the way the generation server streams them."""
    return b"".join(json.dumps(f).encode("utf-8") + b"\n" for f in frames)


def _answer(text: str, **extra) -> dict:
    return {"model": "llama3", "message": {"role": "assistant", "content": text}, "done": False, **extra}


DONE = {"model": "llama3", "message": {"role": "assistant", "content": ""}, "done": True,
        "done_reason": "stop", "eval_count": 2, "eval_duration": 1_000_000_000}


class _Backend:
    """Serves one queued body per chat request and records the payloads."""

    def __init__(self, *bodies):
        self.bodies = list(bodies)
        self.payloads = []
        self.headers = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.payloads.append(json.loads(request.content))
        self.headers.append(request.headers)
        body = self.bodies.pop(0)
        if isinstance(body, httpx.Response):
            return body
        return httpx.Response(
            200, headers={"content-type": "application/x-ndjson"}, content=body()
        )


class _RecordingStore:
    """Records which thread each save ran on and what it saved."""

    def __init__(self):
        self.threads = []
        self.snapshots = []

    def save(self, state):
        self.threads.append(threading.get_ident())
        self.snapshots.append(state.to_dict())


def _frames(*frames):
    async def _gen():
        for frame in frames:
            yield ndjson(frame)
    return _gen


@pytest.fixture
def controller_for(app_state, make_api_client):
    def _make(backend):
        return ChatController(app_state, make_api_client(backend))
    return _make


class TestSubmit:
    @pytest.mark.asyncio
    async def test_streamed_answer_is_finalized(self, controller_for):
        backend = _Backend(_frames(
            {"model": "llama3", "thinking": "Let me", "done": False},
            {"model": "llama3", "thinking": " think", "done": False},
            _answer("Hello"),
            _answer(" there"),
            DONE,
        ))
        controller = controller_for(backend)
        redraws = []
        controller.set_on_change(lambda chat: redraws.append(len(chat.messages)))

        outcome = await controller.submit("Hi")

        assert outcome == TurnState.FINALIZED
        assert controller.session is None
        chat = controller.state.active_chat()
        user, thinking, response = chat.messages
        assert user.content == "Hi"
        assert thinking.purpose == MessagePurpose.THINKING
        assert thinking.thinking == "Let me think"
        assert thinking.collapsed
        assert response.purpose == MessagePurpose.RESPONSE
        assert response.content == "Hello there"
        assert response.stats.done_reason == "stop"
        assert response.related_thinking_id == thinking.id
        assert len(redraws) >= 5

    @pytest.mark.asyncio
    async def test_request_payload(self, controller_for):
        backend = _Backend(_frames(_answer("ok"), DONE))
        controller = controller_for(backend)
        controller.state.active_chat().params.seed = 11

        await controller.submit("  Question  ")

        payload = backend.payloads[0]
        assert payload["model"] == "llama3"
        assert payload["stream"] is True
        assert payload["messages"] == [{"role": "user", "content": "Question"}]
        assert payload["options"]["seed"] == 11
        assert payload["options"]["thinking"] is True
        assert backend.headers[0]["x-ollama-server"] == "http://ollama.test:11434"

    @pytest.mark.asyncio
    async def test_inline_think_tags_are_split(self, controller_for):
        backend = _Backend(_frames(
            {"response": "<think>weigh"},
            {"response": " it</think>"},
            {"response": "Four."},
            {"done": True},
        ))
        controller = controller_for(backend)

        await controller.submit("2+2?")

        _, thinking, response = controller.state.active_chat().messages
        assert thinking.thinking == "weigh it"
        assert response.content == "Four."

    @pytest.mark.asyncio
    async def test_hidden_thinking_leaves_no_placeholder(self, controller_for):
        backend = _Backend(_frames({"thinking": "secret"}, _answer("Visible"), DONE))
        controller = controller_for(backend)
        controller.state.active_chat().params.show_thinking = False

        await controller.submit("Hi")

        messages = controller.state.active_chat().messages
        assert [m.purpose for m in messages] == [MessagePurpose.NORMAL, MessagePurpose.RESPONSE]
        assert messages[1].content == "Visible"
        assert backend.payloads[0]["options"]["include_thinking"] is False

    @pytest.mark.asyncio
    async def test_turn_saves_run_off_the_event_loop(self, app_state, make_api_client):
        store = _RecordingStore()
        backend = _Backend(_frames(_answer("ok"), DONE))
        controller = ChatController(app_state, make_api_client(backend), store=store)

        await controller.submit("Hi")

        # once when the turn starts, once when it settles
        assert len(store.threads) == 2
        assert threading.get_ident() not in store.threads
        assert store.snapshots[-1]["chats"][0]["messages"][-1]["content"] == "ok"

    @pytest.mark.asyncio
    async def test_empty_message_is_rejected(self, controller_for):
        controller = controller_for(_Backend())
        with pytest.raises(ChatError):
            await controller.submit("   ")
        assert controller.state.active_chat().messages == []

    @pytest.mark.asyncio
    async def test_missing_model_is_rejected(self, controller_for):
        controller = controller_for(_Backend())
        controller.state.default_model = ""
        controller.state.active_chat().model = ""
        with pytest.raises(ChatError, match="model"):
            await controller.submit("Hi")

    @pytest.mark.asyncio
    async def test_second_submit_is_rejected_while_pending(self, controller_for):
        controller = None
        rejected = []

        async def _body():
            yield ndjson(_answer("first"))
            try:
                await controller.submit("second")
            except SessionBusy as e:
                rejected.append(str(e))
            yield ndjson(DONE)

        controller = controller_for(_Backend(_body))
        outcome = await controller.submit("one")

        assert outcome == TurnState.FINALIZED
        assert rejected == ["Please wait until the current answer has finished."]
        contents = [m.content for m in controller.state.active_chat().messages]
        assert contents == ["one", "first"]


class TestCancellation:
    @pytest.mark.asyncio
    async def test_cancel_mid_stream_keeps_partial_answer(self, controller_for):
        controller = None

        async def _body():
            yield ndjson(_answer("Partial"))
            controller.cancel()
            yield ndjson(_answer(" never shown"))
            yield ndjson(DONE)

        controller = controller_for(_Backend(_body))
        outcome = await controller.submit("Hi")

        assert outcome == TurnState.CANCELLED
        assert controller.session is None
        _, thinking, preview = controller.state.active_chat().messages
        assert preview.purpose == MessagePurpose.RESPONSE_PREVIEW
        assert preview.content == "Partial"
        assert not preview.pending
        assert thinking.thinking == "Generation cancelled."

    @pytest.mark.asyncio
    async def test_cancel_abandons_stalled_stream(self, controller_for):
        controller = None

        async def _body():
            yield ndjson(_answer("Waiting"))
            asyncio.get_running_loop().call_later(0.05, controller.cancel)
            await asyncio.sleep(30)
            yield ndjson(DONE)

        controller = controller_for(_Backend(_body))
        outcome = await asyncio.wait_for(controller.submit("Hi"), timeout=5)

        assert outcome == TurnState.CANCELLED
        assert controller.state.active_chat().messages[-1].content == "Waiting"

    @pytest.mark.asyncio
    async def test_stop_seen_on_tick_ends_stalled_turn(self, controller_for):
        async def _body():
            yield ndjson(_answer("Waiting"))
            await asyncio.sleep(30)
            yield ndjson(DONE)

        controller = controller_for(_Backend(_body))
        ticks = []

        def _tick():
            ticks.append(controller.turn_state)
            if controller.session is not None and controller.session.text:
                controller.cancel()

        outcome = await asyncio.wait_for(
            controller.run_watched(controller.submit("Hi"), _tick, interval=0.01), timeout=5
        )

        assert outcome == TurnState.CANCELLED
        assert ticks
        assert controller.session is None
        _, thinking, preview = controller.state.active_chat().messages
        assert preview.content == "Waiting"
        assert thinking.thinking == "Generation cancelled."

    @pytest.mark.asyncio
    async def test_watched_turn_returns_its_outcome(self, controller_for):
        controller = controller_for(_Backend(_frames(_answer("Quick"), DONE)))
        ticks = []

        outcome = await controller.run_watched(
            controller.submit("Hi"), lambda: ticks.append(1), interval=10
        )

        assert outcome == TurnState.FINALIZED
        assert ticks == []

    @pytest.mark.asyncio
    async def test_failing_tick_stops_the_turn(self, controller_for):
        async def _body():
            yield ndjson(_answer("Some"))
            await asyncio.sleep(30)

        controller = controller_for(_Backend(_body))

        def _tick():
            raise RuntimeError("host gone")

        with pytest.raises(RuntimeError, match="host gone"):
            await asyncio.wait_for(
                controller.run_watched(controller.submit("Hi"), _tick, interval=0.01), timeout=5
            )

        assert controller.session is None
        assert controller.turn_state == TurnState.CANCELLED

    def test_cancel_without_turn(self, controller_for):
        controller = controller_for(_Backend())
        assert controller.cancel() is False

    @pytest.mark.asyncio
    async def test_host_cancellation_frees_the_slot(self, controller_for):
        async def _body():
            yield ndjson(_answer("Some"))
            await asyncio.sleep(30)

        controller = controller_for(_Backend(_body))
        task = asyncio.create_task(controller.submit("Hi"))
        await asyncio.sleep(0.1)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert controller.session is None
        assert controller.turn_state == TurnState.CANCELLED
        assert controller.state.active_chat().messages[-1].content == "Some"


class TestFailures:
    @pytest.mark.asyncio
    async def test_backend_error_keeps_partial_output(self, controller_for):
        backend = _Backend(_frames(_answer("Half"), {"error": "out of memory"}))
        controller = controller_for(backend)

        outcome = await controller.submit("Hi")

        assert outcome == TurnState.ERRORED
        assert controller.last_error == "out of memory"
        _, thinking, preview = controller.state.active_chat().messages
        assert preview.content == "Half"
        assert preview.error == "out of memory"
        assert thinking.error == "out of memory"
        assert not preview.pending

    @pytest.mark.asyncio
    async def test_http_error_status(self, controller_for):
        backend = _Backend(httpx.Response(404, json={"error": "model 'llama3' not found"}))
        controller = controller_for(backend)

        outcome = await controller.submit("Hi")

        assert outcome == TurnState.ERRORED
        assert controller.last_error == "model 'llama3' not found"
        preview = controller.state.active_chat().messages[-1]
        assert preview.content == "Error while answering: model 'llama3' not found"

    @pytest.mark.asyncio
    async def test_connection_failure(self, app_state, make_api_client):
        def _refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        controller = ChatController(app_state, make_api_client(_refuse))
        outcome = await controller.submit("Hi")

        assert outcome == TurnState.ERRORED
        assert "connection refused" in controller.last_error
        assert controller.session is None

    @pytest.mark.asyncio
    async def test_unexpected_error_is_not_reported_as_cancel(self, controller_for):
        controller = controller_for(_Backend(_frames(_answer("Half"), DONE)))
        redraws = []

        def _redraw(chat):
            redraws.append(chat)
            if len(redraws) == 2:
                raise RuntimeError("render failed")

        controller.set_on_change(_redraw)
        with pytest.raises(RuntimeError, match="render failed"):
            await controller.submit("Hi")

        assert controller.turn_state == TurnState.ERRORED
        assert controller.last_error == "render failed"
        assert controller.session is None
        _, thinking, preview = controller.state.active_chat().messages
        assert "cancelled" not in thinking.thinking
        assert thinking.error == "render failed"
        assert preview.content == "Half"
        assert not preview.pending


class TestDeleteAndEdit:
    @pytest.mark.asyncio
    async def test_delete_is_blocked_while_pending(self, controller_for):
        controller = None
        blocked = []

        async def _body():
            yield ndjson(_answer("x"))
            user = controller.state.active_chat().messages[0]
            try:
                controller.delete_message(user.id)
            except SessionBusy as e:
                blocked.append(str(e))
            yield ndjson(DONE)

        controller = controller_for(_Backend(_body))
        await controller.submit("Hi")

        assert blocked == ["Messages cannot be deleted while an answer is running."]
        assert len(controller.state.active_chat().messages) == 2

    @pytest.mark.asyncio
    async def test_delete_answer_offers_resubmit(self, controller_for):
        controller = controller_for(_Backend(_frames({"thinking": "t"}, _answer("A"), DONE)))
        await controller.submit("Question")
        response = controller.state.active_chat().messages[-1]

        result = controller.delete_message(response.id)

        assert len(result.removed_ids) == 2
        assert result.resubmit_text == "Question"
        assert [m.content for m in controller.state.active_chat().messages] == ["Question"]

    @pytest.mark.asyncio
    async def test_edit_last_question_regenerates(self, controller_for):
        backend = _Backend(
            _frames(_answer("Old answer"), DONE),
            _frames(_answer("New answer"), DONE),
        )
        controller = controller_for(backend)
        await controller.submit("Old question")
        chat = controller.state.active_chat()
        user = chat.messages[0]

        controller.begin_edit(user.id)
        outcome = await controller.submit_edit("New question")

        assert outcome == TurnState.FINALIZED
        assert [m.content for m in chat.messages] == ["New question", "New answer"]
        assert chat.messages[0].id == user.id
        assert backend.payloads[1]["messages"] == [{"role": "user", "content": "New question"}]
        assert controller.editing_message_id is None

    @pytest.mark.asyncio
    async def test_unchanged_edit_is_a_no_op(self, controller_for):
        backend = _Backend(_frames(_answer("A"), DONE))
        controller = controller_for(backend)
        await controller.submit("Same")
        user = controller.state.active_chat().messages[0]

        controller.begin_edit(user.id)
        assert await controller.submit_edit("Same") is None
        assert controller.editing_message_id is None
        assert len(backend.payloads) == 1

    @pytest.mark.asyncio
    async def test_empty_edit_is_rejected(self, controller_for):
        controller = controller_for(_Backend(_frames(_answer("A"), DONE)))
        await controller.submit("Q")
        user = controller.state.active_chat().messages[0]

        controller.begin_edit(user.id)
        with pytest.raises(EditRejected):
            await controller.submit_edit("  ")
        assert controller.editing_message_id == user.id

    @pytest.mark.asyncio
    async def test_only_last_question_is_editable(self, controller_for):
        controller = controller_for(_Backend(
            _frames(_answer("A1"), DONE),
            _frames(_answer("A2"), DONE),
        ))
        await controller.submit("Q1")
        await controller.submit("Q2")
        first = controller.state.active_chat().messages[0]

        with pytest.raises(EditRejected):
            controller.begin_edit(first.id)


class TestChatManagement:
    def test_new_chat_uses_default_params(self, controller_for):
        controller = controller_for(_Backend())
        controller.default_params.temperature = 0.2

        chat = controller.new_chat()

        assert controller.state.active_chat_id == chat.id
        assert chat.model == "llama3"
        assert chat.params.temperature == 0.2
        assert chat.params is not controller.default_params

    def test_delete_active_chat_selects_another(self, controller_for):
        controller = controller_for(_Backend())
        first = controller.state.active_chat()
        second = controller.new_chat()

        active = controller.delete_chat(second.id)

        assert active is first
        assert controller.state.active_chat_id == first.id

    def test_delete_last_chat_creates_a_fresh_one(self, controller_for):
        controller = controller_for(_Backend())
        only = controller.state.active_chat()

        active = controller.delete_chat(only.id)

        assert active.id != only.id
        assert controller.state.chats == [active]

    def test_rename_falls_back_to_untitled(self, controller_for):
        controller = controller_for(_Backend())
        controller.rename_chat("   ")
        assert controller.state.active_chat().title == "Untitled chat"

    def test_set_server_url_strips_trailing_slash(self, controller_for):
        controller = controller_for(_Backend())
        controller.set_server_url("http://gpu-box:11434/ ")
        assert controller.state.server_url == "http://gpu-box:11434"
        assert controller._api.server_url == "http://gpu-box:11434"

    def test_default_model_fills_empty_chats(self, controller_for):
        controller = controller_for(_Backend())
        chat = controller.new_chat()
        chat.model = ""
        controller.set_default_model("mistral")
        assert chat.model == "mistral"
