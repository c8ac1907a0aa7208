from schemas import ParsedStudy, StudyStats, ValidationReport


def validate_parsed_study(study: ParsedStudy) -> ValidationReport:
    """
    Check a parsed study for structural problems.

    Errors make a study unfit to save (no title, no weeks, untitled week,
    empty question). Warnings flag gaps a reviewer should look at.
    """
    errors = []
    warnings = []

    if not study.title.strip():
        errors.append("Study title is required")

    if not study.weeks:
        errors.append("Study must have at least one week/lesson")

    for w, week in enumerate(study.weeks, 1):
        if not week.title.strip():
            errors.append(f"Week {w} is missing a title")
        if not week.days:
            warnings.append(f"Week {w} has no days")

        for d, day in enumerate(week.days, 1):
            if not day.title.strip():
                warnings.append(f"Week {w}, Day {d} is missing a title")
            if not day.questions:
                warnings.append(f"Week {w}, Day {d} has no questions")

            for q, question in enumerate(day.questions, 1):
                if not question.question_text.strip():
                    errors.append(f"Week {w}, Day {d}, Question {q} is empty")

    return ValidationReport(valid=not errors, errors=errors, warnings=warnings)


def get_study_stats(study: ParsedStudy) -> StudyStats:
    total_weeks = len(study.weeks)
    total_days = sum(len(week.days) for week in study.weeks)
    total_questions = sum(len(day.questions) for week in study.weeks for day in week.days)

    return StudyStats(
        total_weeks=total_weeks,
        total_days=total_days,
        total_questions=total_questions,
        average_questions_per_day=total_questions / total_days if total_days else 0.0,
        average_days_per_week=total_days / total_weeks if total_weeks else 0.0,
    )
