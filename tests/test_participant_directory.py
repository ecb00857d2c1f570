"""Unit tests for ParticipantDirectory."""
import sys
from pathlib import Path

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent / "backend"))

import json
import pytest
from unittest.mock import Mock, MagicMock
from services.participant_directory import ParticipantDirectory


@pytest.fixture
def participants_dir(tmp_path):
    directory = tmp_path / "participants"
    directory.mkdir()
    (directory / "p-1.json").write_text(json.dumps({
        "participantId": "p-1",
        "belief_change": {"has_changed_mind": True, "mind_change_direction": "not_urgent_to_urgent"}
    }))
    return directory


def test_file_lookup(participants_dir):
    directory = ParticipantDirectory(str(participants_dir))

    profile = directory.get_profile("p-1")

    assert profile.participant_id == "p-1"
    assert profile.mind_change_direction == "not_urgent_to_urgent"
    assert directory.exists("p-1")


def test_missing_participant(participants_dir):
    directory = ParticipantDirectory(str(participants_dir))

    assert directory.get_profile("nobody") is None
    assert directory.get_profile("") is None
    assert directory.get_profile("../p-1") is None


def test_supabase_row_preferred(participants_dir):
    client = MagicMock()
    client.table.return_value.select.return_value.eq.return_value.execute.return_value = Mock(data=[
        {"participant_id": "p-1", "raw": {"mind_change_direction": "human_to_natural"}}
    ])
    directory = ParticipantDirectory(str(participants_dir), client=client)

    profile = directory.get_profile("p-1")

    assert profile.mind_change_direction == "human_to_natural"
    client.table.assert_called_once_with("participants")


def test_supabase_failure_falls_back_to_file(participants_dir):
    client = MagicMock()
    client.table.return_value.select.return_value.eq.return_value.execute.side_effect = Exception("db down")
    directory = ParticipantDirectory(str(participants_dir), client=client)

    profile = directory.get_profile("p-1")

    assert profile.mind_change_direction == "not_urgent_to_urgent"


def test_corrupt_file_is_treated_as_missing(participants_dir):
    (participants_dir / "broken.json").write_text("{")
    directory = ParticipantDirectory(str(participants_dir))

    assert directory.get_profile("broken") is None
