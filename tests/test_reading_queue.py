"""
Tests for the Screen Reading Queue
"""

from unittest.mock import Mock

from voiceover.reading_queue import ScreenReadingQueue, render
from voiceover.state import NarrationItem, NarrationKind, Transition


def item(kind, label, detail=None, **kwargs):
    return NarrationItem(NarrationKind(kind), label, detail, **kwargs)


def make_queue():
    spoken = []
    queue = ScreenReadingQueue(lambda text, priority: spoken.append((text, priority)) or True, Mock())
    return queue, spoken


def requested(queue):
    return [call.args[0] for call in queue._request.call_args_list]


class TestRender:
    """Spoken templates per item kind"""

    def test_heading_and_description(self):
        assert render(item("heading", "Good morning, Margaret")) == "Good morning, Margaret."
        assert render(item("subheading", "Your day")) == "Your day."
        assert render(item("heading", "What should we call you?")) == "What should we call you?"
        assert render(item("description", "Here is your plan.")) == "Here is your plan."

    def test_button(self):
        assert render(item("button", "Continue", "Moves to the next step.")) == \
            "Button: Continue. Moves to the next step."
        assert render(item("button", "Continue")) == "Button: Continue."

    def test_input_mentions_skip(self):
        text = render(item("input", "Your name", "Say your first name."))
        assert text == "Input field: Your name. Say your first name. Say skip to move on."

    def test_stat_status_section(self):
        assert render(item("stat", "Steps", "2340")) == "Steps: 2340"
        assert render(item("status", "Location", "Sharing on")) == "Location status: Sharing on"
        assert render(item("section", "Medications", "Two left today.")) == \
            "Section: Medications. Two left today."


class TestDraining:
    """One item per call, in order"""

    def test_reads_items_in_order_then_finishes(self):
        queue, spoken = make_queue()
        queue.load([item("heading", "One"), item("description", "Two"), item("stat", "Three", "3")])

        assert queue.is_reading
        while queue.next():
            pass

        assert [text for text, _ in spoken] == ["One.", "Two", "Three: 3"]
        assert all(priority is False for _, priority in spoken)
        transitions = [r.transition for r in requested(queue)]
        assert transitions == [Transition.READING_STARTED, Transition.READING_FINISHED]
        assert queue.items_read == 3
        assert not queue.is_reading

    def test_empty_load_does_not_start_reading(self):
        queue, spoken = make_queue()
        queue.load([])

        assert not queue.is_reading
        assert queue.next() is False
        assert requested(queue) == []

    def test_input_item_requests_await_input(self):
        queue, spoken = make_queue()
        queue.load([
            item("heading", "About you"),
            item("input", "Your name", input_slot_id="onboarding-name", input_type="name"),
            item("button", "Continue"),
        ])

        queue.next()
        queue.next()

        await_request = requested(queue)[-1]
        assert await_request.transition == Transition.AWAIT_INPUT
        assert await_request.slot.slot_id == "onboarding-name"
        assert await_request.slot.label == "Your name"
        assert await_request.slot.input_type == "name"
        assert queue.has_items

    def test_input_without_slot_uses_label(self):
        queue, _ = make_queue()
        queue.load([item("input", "Postcode")])
        queue.next()
        assert requested(queue)[-1].slot.slot_id == "Postcode"


class TestStopping:

    def test_stop_early_reports_in_progress_read(self):
        queue, _ = make_queue()
        queue.load([item("heading", "One"), item("heading", "Two")])
        queue.next()

        assert queue.stop_early() is True
        assert not queue.has_items
        assert queue.stop_early() is False

    def test_clear_finishes_read(self):
        queue, _ = make_queue()
        queue.load([item("heading", "One")])
        queue.clear()

        assert requested(queue)[-1].transition == Transition.READING_FINISHED
        assert len(queue) == 0
