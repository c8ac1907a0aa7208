from __future__ import annotations

import pytest

from conftest import week_dict
from schemas import ParsedStudy
from validation import get_study_stats, validate_parsed_study


def test_valid_study_has_no_findings() -> None:
    study = ParsedStudy.model_validate({"title": "Sound Doctrine", "weeks": [week_dict(days=(3, 2))]})

    report = validate_parsed_study(study)

    assert report.valid
    assert report.errors == []
    assert report.warnings == []


def test_missing_titles_and_empty_questions_are_errors() -> None:
    week = week_dict(days=(2,))
    week["title"] = "  "
    week["days"][0]["questions"][1]["questionText"] = ""
    study = ParsedStudy.model_validate({"title": "", "weeks": [week]})

    report = validate_parsed_study(study)

    assert not report.valid
    assert report.errors == [
        "Study title is required",
        "Week 1 is missing a title",
        "Week 1, Day 1, Question 2 is empty",
    ]


def test_study_without_weeks_is_an_error() -> None:
    report = validate_parsed_study(ParsedStudy(title="Empty"))

    assert report.errors == ["Study must have at least one week/lesson"]


def test_gaps_in_structure_are_warnings() -> None:
    empty_week = week_dict(title="Lesson Two", days=())
    week = week_dict(days=(0,))
    week["days"][0]["title"] = None
    study = ParsedStudy.model_validate({"title": "T", "weeks": [week, empty_week]})

    report = validate_parsed_study(study)

    assert report.valid
    assert report.warnings == [
        "Week 1, Day 1 is missing a title",
        "Week 1, Day 1 has no questions",
        "Week 2 has no days",
    ]


def test_study_stats_totals_and_averages() -> None:
    study = ParsedStudy.model_validate(
        {"title": "T", "weeks": [week_dict(days=(3, 3, 2)), week_dict(days=(4,))]}
    )

    stats = get_study_stats(study)

    assert stats.total_weeks == 2
    assert stats.total_days == 4
    assert stats.total_questions == 12
    assert stats.average_questions_per_day == pytest.approx(3.0)
    assert stats.average_days_per_week == pytest.approx(2.0)


def test_study_stats_for_empty_study() -> None:
    stats = get_study_stats(ParsedStudy(title="T"))

    assert stats.total_weeks == 0
    assert stats.average_questions_per_day == 0.0
    assert stats.average_days_per_week == 0.0
