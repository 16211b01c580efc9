"""
questkeeper.engine.jobs — Effective Job Resolution
===================================================

A character has a permanent job and may hold an active job voucher that
temporarily overrides it.  Bonus checks always look at the *effective*
job.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from questkeeper.database.models import Character


@dataclass(frozen=True, slots=True)
class JobAssignment:
    """A permanent job plus an optional voucher override."""

    permanent_job: str | None
    voucher_job: str | None = None

    def effective_job(self) -> str | None:
        return self.voucher_job or self.permanent_job

    def is_job(self, name: str) -> bool:
        job = self.effective_job()
        return bool(job) and job.strip().lower() == name.strip().lower()

    @classmethod
    def from_character(cls, character: Character) -> JobAssignment:
        voucher = character.job_voucher_job if character.job_voucher else None
        return cls(permanent_job=character.job, voucher_job=voucher or None)
