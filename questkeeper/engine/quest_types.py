"""
questkeeper.engine.quest_types — Quest Type Handler Registry
=============================================================

One handler class per quest type.  A handler knows the completion rule
for its type and how to describe a finished participant on the reward
embed.  Unknown types fall back to :class:`DefaultHandler`, which never
reports completion on its own.

Pure module — no DB I/O, no Discord I/O.  Embed builders consume the
``title`` / ``description`` / ``progress_field`` output.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from questkeeper.config import RewardSettings
from questkeeper.database.models import ArtWritingMode, QuestType, SubmissionType

if TYPE_CHECKING:
    from questkeeper.database.models import Quest, QuestParticipant

ProgressField = tuple[str, str]


def _approved(participant: QuestParticipant, kind: SubmissionType) -> int:
    return sum(1 for s in participant.submissions if s.type == kind.value and s.approved)


class QuestTypeHandler:
    """Base handler.  Subclasses override the four hooks."""

    quest_type: QuestType | None = None

    def check_completion(
        self, quest: Quest, participant: QuestParticipant, settings: RewardSettings
    ) -> bool:
        return False

    def progress_field(
        self, quest: Quest, participant: QuestParticipant, settings: RewardSettings
    ) -> ProgressField:
        return ("Status", "✅ Completed")

    def title(self) -> str:
        return "🎉 Quest Completed!"

    def description(self, character_name: str) -> str:
        return f"**{character_name}** has successfully completed the quest!"


class DefaultHandler(QuestTypeHandler):
    """Fallback for quest types without a registered handler."""


class RPHandler(QuestTypeHandler):
    quest_type = QuestType.RP

    @staticmethod
    def _requirement(quest: Quest, settings: RewardSettings) -> int:
        return quest.post_requirement or settings.default_post_requirement

    def check_completion(self, quest, participant, settings):
        return (participant.rp_post_count or 0) >= self._requirement(quest, settings)

    def progress_field(self, quest, participant, settings):
        return (
            "Posts Completed",
            f"{participant.rp_post_count or 0}/{self._requirement(quest, settings)}",
        )

    def title(self):
        return "🎭 RP Quest Completed!"

    def description(self, character_name):
        return f"**{character_name}** has successfully completed the RP quest!"


class ArtHandler(QuestTypeHandler):
    quest_type = QuestType.ART

    def check_completion(self, quest, participant, settings):
        return _approved(participant, SubmissionType.ART) > 0

    def progress_field(self, quest, participant, settings):
        return ("Art Submission", "✅ Approved")

    def title(self):
        return "🎨 Art Quest Completed!"

    def description(self, character_name):
        return f"**{character_name}** has successfully submitted their art for the quest!"


class WritingHandler(QuestTypeHandler):
    quest_type = QuestType.WRITING

    def check_completion(self, quest, participant, settings):
        return _approved(participant, SubmissionType.WRITING) > 0

    def progress_field(self, quest, participant, settings):
        return ("Writing Submission", "✅ Approved")

    def title(self):
        return "✍️ Writing Quest Completed!"

    def description(self, character_name):
        return f"**{character_name}** has successfully submitted their writing for the quest!"


class ArtWritingHandler(QuestTypeHandler):
    """Art/Writing quests: ``either`` needs one approved piece of any kind,
    ``both`` (the default) needs one of each."""

    quest_type = QuestType.ART_WRITING

    @staticmethod
    def _mode(quest: Quest) -> ArtWritingMode:
        raw = (quest.art_writing_mode or ArtWritingMode.BOTH.value).lower()
        return ArtWritingMode.EITHER if raw == ArtWritingMode.EITHER.value else ArtWritingMode.BOTH

    def check_completion(self, quest, participant, settings):
        has_art = _approved(participant, SubmissionType.ART) > 0
        has_writing = _approved(participant, SubmissionType.WRITING) > 0
        if self._mode(quest) is ArtWritingMode.EITHER:
            return has_art or has_writing
        return has_art and has_writing

    def progress_field(self, quest, participant, settings):
        value = (
            f"🎨 {_approved(participant, SubmissionType.ART)} art, "
            f"✍️ {_approved(participant, SubmissionType.WRITING)} writing"
        )
        if self._mode(quest) is ArtWritingMode.EITHER:
            value += " (either counts)"
        return ("Submissions", value)

    def title(self):
        return "🎨✍️ Art & Writing Quest Completed!"

    def description(self, character_name):
        return f"**{character_name}** has successfully submitted for the quest!"


class InteractiveHandler(QuestTypeHandler):
    """Interactive quests finish through their own table-roll flow; by the
    time a participant reaches the reward pipeline they are done."""

    quest_type = QuestType.INTERACTIVE

    def check_completion(self, quest, participant, settings):
        return True

    def progress_field(self, quest, participant, settings):
        required = quest.required_rolls or settings.default_roll_requirement
        return ("Successful Rolls", f"{participant.successful_rolls or 0}/{required}")

    def title(self):
        return "🎮 Interactive Quest Completed!"

    def description(self, character_name):
        return f"**{character_name}** has successfully completed the interactive quest!"


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------
HANDLERS: dict[QuestType, QuestTypeHandler] = {
    handler.quest_type: handler
    for handler in (
        RPHandler(),
        ArtHandler(),
        WritingHandler(),
        ArtWritingHandler(),
        InteractiveHandler(),
    )
}

DEFAULT_HANDLER = DefaultHandler()


def get_handler(quest_type: str | QuestType | None) -> QuestTypeHandler:
    """Look up the handler for *quest_type*, falling back to the default."""
    if not isinstance(quest_type, QuestType):
        quest_type = QuestType.parse(quest_type)
    if quest_type is None:
        return DEFAULT_HANDLER
    return HANDLERS.get(quest_type, DEFAULT_HANDLER)


def meets_requirements(
    quest: Quest, participant: QuestParticipant, settings: RewardSettings
) -> bool:
    """Run the completion predicate registered for the quest's type."""
    return get_handler(quest.quest_type).check_completion(quest, participant, settings)
