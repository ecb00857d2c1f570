"""Read-only participant profile lookup."""
import json
import logging
from pathlib import Path
from typing import Optional

from models.session import ParticipantProfile

logger = logging.getLogger(__name__)


class ParticipantDirectory:
    """
    Look up participant profiles written by the survey flow.

    The Supabase ``participants`` table is consulted first when a client is
    configured; the per-participant JSON file is the fallback.
    """

    def __init__(self, directory: str, client=None, table_name: str = "participants"):
        self.directory = Path(directory)
        self.client = client
        self.table_name = table_name

    def get_profile(self, participant_id: str) -> Optional[ParticipantProfile]:
        """
        Return the participant's profile, or None when no store knows them.

        Args:
            participant_id: Participant reference from the survey
        """
        if not participant_id:
            return None

        if self.client is not None:
            try:
                result = (
                    self.client.table(self.table_name)
                    .select("*")
                    .eq("participant_id", participant_id)
                    .execute()
                )
                if result.data:
                    row = result.data[0]
                    record = row.get("raw") or row
                    return ParticipantProfile.from_record(participant_id, record)
            except Exception as e:
                logger.warning(f"Participant lookup in Supabase failed for {participant_id}, using files: {e}")

        return self._from_file(participant_id)

    def _from_file(self, participant_id: str) -> Optional[ParticipantProfile]:
        if "/" in participant_id or participant_id.startswith("."):
            return None
        path = self.directory / f"{participant_id}.json"
        if not path.exists():
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                record = json.load(f)
        except (OSError, ValueError) as e:
            logger.error(f"Error reading participant file {path}: {e}")
            return None
        return ParticipantProfile.from_record(participant_id, record)

    def exists(self, participant_id: str) -> bool:
        return self.get_profile(participant_id) is not None
