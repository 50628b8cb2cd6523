import asyncio
import importlib.util
from pathlib import Path

import pytest

from attendly.services.events import EventService
from attendly.services.moderation import ModerationService
from attendly.services.sanitize import SeriesSanitizeService

SCRIPTS = Path(__file__).resolve().parent.parent / "scripts"


@pytest.fixture(scope="module")
def suggest_duplicates():
    spec = importlib.util.spec_from_file_location(
        "suggest_duplicates", SCRIPTS / "suggest_duplicates.py"
    )
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def test_duplicate_report_lists_suggestions_and_conflicts(
    suggest_duplicates, session_factory, cache, clock, capsys
):
    async def seed():
        async with session_factory() as db:
            series = await SeriesSanitizeService(db).create_series("Spring lectures")
            events = EventService(db, clock)
            event = await events.create("Lecture 1", series_id=series.id)
            moderation = ModerationService(db, cache, clock)
            await moderation.add_manual_attendee(event, "Ada Lovelace", "ada@gmail.com")
            await moderation.add_manual_attendee(event, "Ada L.", "ada@gmial.com")
            await moderation.add_manual_attendee(event, "Bob Stone", "bob@example.org")
            await moderation.add_manual_attendee(event, "Bobby Stone", "bob@example.org")
            return series.id

    series_id = asyncio.run(seed())
    code = asyncio.run(
        suggest_duplicates.report(
            series_id, show_names=True, session_factory=session_factory
        )
    )

    out = capsys.readouterr().out
    assert code == 0
    assert "Duplicate suggestions for 'Spring lectures' (1 shown)" in out
    assert "ada@gmail.com" in out
    assert "ada@gmial.com" in out
    assert "Name conflicts" in out
    assert "Bobby Stone (1)" in out


def test_duplicate_report_for_unknown_series(suggest_duplicates, session_factory, capsys):
    code = asyncio.run(
        suggest_duplicates.report("no-such-series", session_factory=session_factory)
    )
    assert code == 1
    assert "[!] Series no-such-series not found." in capsys.readouterr().out
