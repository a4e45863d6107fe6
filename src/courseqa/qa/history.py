"""Run history and score comparison between scan runs."""

from __future__ import annotations

from dataclasses import dataclass

from courseqa.storage.base import QAStore

_SCORE_KEYS = ("total", "accessibility", "scorm", "reliability")


@dataclass(frozen=True)
class ScoreDelta:
    total: int
    accessibility: int
    scorm: int
    reliability: int

    def to_dict(self) -> dict[str, int]:
        return {key: getattr(self, key) for key in _SCORE_KEYS}


@dataclass(frozen=True)
class RunComparison:
    """Active run score against the newest earlier scored run."""

    current_run_id: str
    previous_run_id: str
    current: dict
    previous: dict
    delta: ScoreDelta

    def to_dict(self) -> dict:
        return {
            "current_run_id": self.current_run_id,
            "previous_run_id": self.previous_run_id,
            "current": self.current,
            "previous": self.previous,
            "delta": self.delta.to_dict(),
        }


async def list_history(store: QAStore, project_id: str) -> list[dict]:
    """All runs of a project, newest first, each with its score or None."""
    runs = await store.list_scan_runs(project_id)
    history = []
    for run in runs:
        history.append({**run, "score": await store.get_score_summary(run["id"])})
    return history


def _score_of(score: dict, key: str) -> int:
    return int(score[f"{key}_score"])


def compare_runs(history: list[dict], active_run_id: str | None = None) -> RunComparison | None:
    """Compare the active run with the newest other run that has a score.

    ``history`` must be newest first. The active run defaults to the newest
    one. Returns None when either side has no score.
    """
    if not history:
        return None
    if active_run_id:
        current = next((run for run in history if run["id"] == active_run_id), None)
    else:
        current = history[0]
    if current is None or not current.get("score"):
        return None

    previous = next(
        (run for run in history if run["id"] != current["id"] and run.get("score")),
        None,
    )
    if previous is None:
        return None

    delta = ScoreDelta(
        **{
            key: _score_of(current["score"], key) - _score_of(previous["score"], key)
            for key in _SCORE_KEYS
        }
    )
    return RunComparison(
        current_run_id=current["id"],
        previous_run_id=previous["id"],
        current=current["score"],
        previous=previous["score"],
        delta=delta,
    )
