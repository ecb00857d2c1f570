"""Unit tests for the summary safety net."""
import sys
from pathlib import Path

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent / "backend"))

import pytest
from datetime import datetime, timezone
from unittest.mock import Mock
from models.session import Message, ParticipantProfile, Session
from services.participant_directory import ParticipantDirectory
from services.storage_gateway import SaveResult, StorageGateway
from services.summary_safety_net import (
    SUMMARY_SCAN_WINDOW,
    THEME_POINTS,
    FILLER_POINTS,
    SUMMARY_PREAMBLE,
    SUMMARY_CLOSING,
    SummarySafetyNet,
    belief_change_statement,
    build_summary_points,
    count_bullet_markers,
    detect_themes,
    format_summary,
    has_existing_summary,
)

START = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


def user(text):
    return Message.user(text, START)


def assistant(text, generated=False):
    return Message.assistant(text, START, generated_summary=generated)


class TestSummaryDetection:
    """Heuristics that decide whether a summary already exists."""

    def test_no_messages(self):
        assert has_existing_summary([]) is False

    def test_two_bullets_in_one_message(self):
        messages = [user("hello there everyone"), assistant("Here is what I heard:\n• one\n• two")]
        assert has_existing_summary(messages) is True

    def test_dash_bullets_at_line_start(self):
        assert count_bullet_markers("Points:\n- first\n- second") == 2

    def test_hyphenated_words_are_not_bullets(self):
        text = "That long-term, well-known issue is human-caused."
        assert count_bullet_markers(text) == 0
        assert has_existing_summary([assistant(text)]) is False

    @pytest.mark.parametrize("text", ["Options: -a -b -c", "Both * matter * here", "-first, -second"])
    def test_inline_dash_and_star_lists_are_not_bullets(self, text):
        assert count_bullet_markers(text) == 0
        assert has_existing_summary([assistant(text)]) is False

    def test_single_bullet_is_not_enough(self):
        assert has_existing_summary([assistant("Consider this:\n• one idea only")]) is False

    @pytest.mark.parametrize("phrase", ["In summary", "Let me SUMMARIZE", "the key themes", "Based on our conversation"])
    def test_summary_keywords(self, phrase):
        assert has_existing_summary([assistant(f"{phrase}, you value evidence.")]) is True

    def test_user_messages_are_ignored(self):
        assert has_existing_summary([user("summary:\n• a\n• b")]) is False

    def test_window_boundary(self):
        summary = assistant("In summary, thanks.")
        plain = [assistant(f"Question {i}?") for i in range(SUMMARY_SCAN_WINDOW)]

        # Exactly at the edge of the window: still found
        assert has_existing_summary([summary] + plain[:SUMMARY_SCAN_WINDOW - 1]) is True
        # Pushed out by a full window of newer assistant turns: not found
        assert has_existing_summary([summary] + plain) is False

    def test_generated_flag_counts(self):
        assert has_existing_summary([assistant("Thanks!", generated=True)]) is True


class TestSummaryPoints:
    """Deterministic summary synthesis."""

    def test_belief_change_statement_for_known_direction(self):
        profile = ParticipantProfile("p", mind_change_direction="natural_to_human")
        assert belief_change_statement(profile) == (
            "You described your belief change: "
            "From thinking climate change is natural, to thinking it is human-caused"
        )

    def test_belief_change_statement_for_other(self):
        with_text = ParticipantProfile("p", mind_change_direction="other", mind_change_other_text="Now hopeful")
        without_text = ParticipantProfile("p", mind_change_direction="other")

        assert belief_change_statement(with_text).endswith("Now hopeful")
        assert belief_change_statement(without_text).endswith("Other belief change described by participant")

    def test_belief_change_statement_unknown_or_missing(self):
        assert belief_change_statement(None) is None
        assert belief_change_statement(ParticipantProfile("p")) is None
        assert belief_change_statement(ParticipantProfile("p", mind_change_direction="sideways")) is None

    def test_detect_themes_skips_short_and_termination_messages(self):
        themes = detect_themes([
            user("news"),
            user("ok so please end the chat, my family is waiting"),
            assistant("What research did you read?"),
        ])
        assert not any(themes.values())

    def test_research_and_family_in_order(self):
        messages = [
            user("My family talked about it at dinner"),
            user("I read research from a university"),
        ]

        points = build_summary_points(messages)

        assert THEME_POINTS["evidence"] in points
        assert THEME_POINTS["social"] in points
        assert points.index(THEME_POINTS["evidence"]) < points.index(THEME_POINTS["social"])

    def test_profile_statement_comes_first(self):
        profile = ParticipantProfile("p", mind_change_direction="natural_to_human")
        messages = [user("I read research from a university")]

        points = build_summary_points(messages, profile)

        assert points[0] == belief_change_statement(profile)
        assert points[1] == THEME_POINTS["evidence"]

    def test_padding_to_two_points(self):
        assert build_summary_points([]) == list(FILLER_POINTS)

        one_theme = build_summary_points([user("I saw a flood near my town")])
        assert one_theme == [THEME_POINTS["personal"], FILLER_POINTS[0]]

    def test_truncated_to_five_points(self):
        profile = ParticipantProfile("p", mind_change_direction="human_to_natural")
        messages = [user(
            "The research data, my personal experience, my friends, the news, and how my view shifted"
        )]

        points = build_summary_points(messages, profile)

        assert len(points) == 5
        assert THEME_POINTS["change_process"] not in points

    def test_format_summary(self):
        text = format_summary(["First", "Second"])

        assert text == f"{SUMMARY_PREAMBLE}\n\n• First\n\n• Second\n\n{SUMMARY_CLOSING}"
        assert has_existing_summary([assistant(text)]) is True


class TestSummarySafetyNet:
    """Test suite for ensure_summary."""

    @pytest.fixture
    def storage(self):
        storage = Mock(spec=StorageGateway)
        storage.save.return_value = SaveResult({"file": True})
        return storage

    @pytest.fixture
    def participants(self):
        participants = Mock(spec=ParticipantDirectory)
        participants.get_profile.return_value = ParticipantProfile("p-1", mind_change_direction="natural_to_human")
        return participants

    def make_session(self, *messages):
        session = Session(id="sess-1", participant_id="p-1", started_at=START)
        for message in messages:
            session.add_message(message)
        return session

    def test_appends_flagged_summary_and_persists(self, storage, participants):
        net = SummarySafetyNet(storage, participants, clock=lambda: START)
        session = self.make_session(user("I read research about sea levels"), assistant("Interesting, why?"))

        added = net.ensure_summary(session)

        assert added is True
        last = session.messages[-1]
        assert last.role == "assistant"
        assert last.generated_summary is True
        assert "• You described your belief change: From thinking climate change is natural" in last.content
        storage.save.assert_called_once_with(session)

    def test_idempotent(self, storage, participants):
        net = SummarySafetyNet(storage, participants)
        session = self.make_session(user("My family changed my mind"))

        assert net.ensure_summary(session) is True
        assert net.ensure_summary(session) is False

        assert sum(1 for m in session.messages if m.generated_summary) == 1
        assert storage.save.call_count == 1

    def test_no_op_when_bullets_exist(self, storage, participants):
        net = SummarySafetyNet(storage, participants)
        session = self.make_session(user("hello there friend"), assistant("You said:\n• one\n• two"))

        assert net.ensure_summary(session) is False
        assert len(session.messages) == 2
        storage.save.assert_not_called()
        participants.get_profile.assert_not_called()

    def test_profile_lookup_failure_degrades(self, storage, participants):
        participants.get_profile.side_effect = Exception("db down")
        net = SummarySafetyNet(storage, participants)
        session = self.make_session(user("I read research about sea levels"))

        assert net.ensure_summary(session) is True
        assert "belief change: From" not in session.messages[-1].content
        assert THEME_POINTS["evidence"] in session.messages[-1].content

    def test_deterministic_content(self, storage, participants):
        net = SummarySafetyNet(storage, participants)
        first = self.make_session(user("I read research about sea levels"))
        second = self.make_session(user("I read research about sea levels"))

        net.ensure_summary(first)
        net.ensure_summary(second)

        assert first.messages[-1].content == second.messages[-1].content
