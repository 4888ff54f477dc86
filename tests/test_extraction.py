"""
tests/test_extraction.py

Schedule and curriculum page parsing, row validation and dropdown discovery.
"""

from __future__ import annotations

import pytest

from portal_crawler.errors import ContentIntegrityError, DiscoveryError
from portal_crawler.extraction import (
    CurriculumExtractor,
    ScheduleExtractor,
    SelectOption,
    current_epoch,
    parse_select_options,
    validate_curriculum_record,
)
from portal_crawler.extraction.curriculum import parse_semester, parse_units, parse_year_level
from portal_crawler.extraction.schedule import subject_prefix
from portal_crawler.types import CrawlTarget, TargetKind
from portal_fakes import AUTHENTICATED_PAGE, curriculum_page, schedule_page, schedule_row

SCHEDULE_TARGET = CrawlTarget(epoch="2025-1", entity="PE")
CURRICULUM_TARGET = CrawlTarget(
    epoch="curriculum",
    entity="BS CS_2024_1",
    kind=TargetKind.CURRICULUM,
    label="BS Computer Science (2024-1)",
)


class TestScheduleExtractor:
    def test_extracts_class_rows(self) -> None:
        body = schedule_page([schedule_row("PEPC 10", "K1"), schedule_row("PHYED 1", "A", instructor="SANTOS, ANA")])
        records = ScheduleExtractor().extract(body, SCHEDULE_TARGET)

        assert [record.natural_key for record in records] == [("PEPC 10", "K1"), ("PHYED 1", "A")]
        first = records[0]
        assert first.epoch == "2025-1"
        assert first.entity == "PE"
        assert first.fields["department"] == "PE"
        assert first.fields["room"] == "SEC-A201"
        assert records[1].fields["instructor"] == "SANTOS, ANA"

    def test_skips_header_banner_and_short_rows(self) -> None:
        body = schedule_page([schedule_row("MATH 10"), ("only", "three", "cells")])
        records = ScheduleExtractor().extract(body, SCHEDULE_TARGET)
        assert [record.fields["subject_code"] for record in records] == ["MATH 10"]

    def test_line_breaks_inside_cells_collapse(self) -> None:
        row = schedule_row("ENGL 11", time="T-F 0930-1100<br>(FULLY ONSITE)")
        records = ScheduleExtractor().extract(schedule_page([row]), SCHEDULE_TARGET)
        assert records[0].fields["time"] == "T-F 0930-1100 (FULLY ONSITE)"

    def test_eleven_cell_row_has_blank_remarks(self) -> None:
        row = schedule_row("THEO 11")[:11]
        records = ScheduleExtractor().extract(schedule_page([row]), SCHEDULE_TARGET)
        assert records[0].fields["remarks"] == ""

    def test_page_without_table(self) -> None:
        assert ScheduleExtractor().extract(AUTHENTICATED_PAGE, SCHEDULE_TARGET) == []


class TestDepartmentPrefixes:
    MA_TARGET = CrawlTarget(epoch="2025-1", entity="MA")

    @pytest.fixture()
    def extractor(self) -> ScheduleExtractor:
        return ScheduleExtractor(
            expected_prefixes={"MA": ("MATH",), "PE": ("PEPC", "PHYED")},
            minimum_matches={"MA": 3},
        )

    def test_foreign_department_page_is_rejected(self, extractor) -> None:
        body = schedule_page([schedule_row("KRN 11"), schedule_row("KRN 12"), schedule_row("KOR 10")])
        with pytest.raises(ContentIntegrityError) as excinfo:
            extractor.extract(body, self.MA_TARGET)
        assert excinfo.value.expected == "MA"
        assert excinfo.value.actual == "KOR,KRN"
        assert "MATH" in str(excinfo.value)

    def test_matching_rows_pass(self, extractor, caplog) -> None:
        body = schedule_page([schedule_row(f"MATH {index}") for index in range(3)] + [schedule_row("KRN 11")])
        with caplog.at_level("WARNING"):
            records = extractor.extract(body, self.MA_TARGET)
        assert len(records) == 4
        assert "department_rows_below_minimum" not in caplog.text

    def test_few_matching_rows_only_warn(self, extractor, caplog) -> None:
        body = schedule_page([schedule_row("math 10"), schedule_row("MATH 21")])
        with caplog.at_level("WARNING"):
            records = extractor.extract(body, self.MA_TARGET)
        assert len(records) == 2
        assert "department_rows_below_minimum" in caplog.text

    @pytest.mark.parametrize("subject", ["PEPC 10", "PHYED 1"])
    def test_any_listed_prefix_satisfies_department(self, extractor, subject: str) -> None:
        assert len(extractor.extract(schedule_page([schedule_row(subject)]), SCHEDULE_TARGET)) == 1

    def test_departments_without_rules_are_unchecked(self, extractor) -> None:
        target = CrawlTarget(epoch="2025-1", entity="EN")
        assert len(extractor.extract(schedule_page([schedule_row("KRN 11")]), target)) == 1

    def test_empty_page_is_not_checked(self, extractor) -> None:
        assert extractor.extract(schedule_page([]), self.MA_TARGET) == []

    @pytest.mark.parametrize(("code", "expected"), [("MATH 10", "MATH"), (" pepc 11", "PEPC"), ("12345", "")])
    def test_subject_prefix(self, code: str, expected: str) -> None:
        assert subject_prefix(code) == expected


class TestCurriculumExtractor:
    def _page(self, title: str = "BS Computer Science (Ver Sem 1, Ver Year 2024)") -> str:
        return curriculum_page(
            title,
            [
                (
                    "First Year",
                    "First Semester - 20.0 Units",
                    [("CSCI 21", "Introduction to Programming", "3.0", "", "M"), ("MATH 21", "Calculus", "4 units")],
                ),
                ("First Year", "Second Semester", [("CSCI 22", "Data Structures", "3", "CSCI 21", "M")]),
                ("Second Year", "First Semester", [("PHYED 1", "Physical Fitness", "2")]),
            ],
        )

    def test_rows_carry_year_and_semester(self) -> None:
        records = CurriculumExtractor().extract(self._page(), CURRICULUM_TARGET)

        assert [(r.fields["course_code"], r.fields["year_level"], r.fields["semester"]) for r in records] == [
            ("CSCI 21", 1, 1),
            ("MATH 21", 1, 1),
            ("CSCI 22", 1, 2),
            ("PHYED 1", 2, 1),
        ]
        first = records[0]
        assert first.fields["units"] == 3.0
        assert first.fields["category"] == "M"
        assert first.fields["prerequisites"] is None
        assert first.fields["program_title"] == "BS Computer Science (Ver Sem 1, Ver Year 2024)"
        assert records[1].fields["units"] == 4.0
        assert records[2].fields["prerequisites"] == "CSCI 21"

    def test_mismatched_version_raises(self) -> None:
        with pytest.raises(ContentIntegrityError) as excinfo:
            CurriculumExtractor().extract(self._page("BS Computer Science (Ver Sem 1, Ver Year 2018)"), CURRICULUM_TARGET)
        assert excinfo.value.expected == "BS CS_2024_1"

    def test_unversioned_title_falls_back_to_label(self) -> None:
        body = curriculum_page("Prog", [("First Year", "First Semester", [("CSCI 21", "Intro", "3")])])
        records = CurriculumExtractor().extract(body, CURRICULUM_TARGET)
        assert records[0].fields["program_title"] == "BS Computer Science (2024-1)"

    def test_invalid_rows_are_dropped(self) -> None:
        body = curriculum_page(
            "BS Computer Science",
            [("First Year", "First Semester", [("CSCI 21", "", "3"), ("CSCI 22", "Data Structures", "3")])],
        )
        records = CurriculumExtractor().extract(body, CURRICULUM_TARGET)
        assert [record.fields["course_code"] for record in records] == ["CSCI 22"]


class TestCurriculumParsing:
    @pytest.mark.parametrize(
        ("text", "expected"),
        [("First Year", 1), ("FOURTH YEAR", 4), ("2nd Year", 2), ("5th Year", None), ("", None)],
    )
    def test_year_level(self, text: str, expected: int | None) -> None:
        assert parse_year_level(text) == expected

    @pytest.mark.parametrize(
        ("text", "expected"),
        [("First Semester - 20.0 Units", 1), ("2nd Semester", 2), ("Intersession", None)],
    )
    def test_semester(self, text: str, expected: int | None) -> None:
        assert parse_semester(text) == expected

    @pytest.mark.parametrize(("text", "expected"), [("3.0", 3.0), ("5 Units", 5.0), ("", 0.0), ("n/a", 0.0)])
    def test_units(self, text: str, expected: float) -> None:
        assert parse_units(text) == expected

    def test_validate_record(self) -> None:
        valid = {"deg_code": "BS CS_2024_1", "course_code": "CSCI 21", "course_title": "Intro", "units": 3.0}
        assert validate_curriculum_record(valid) == []
        assert validate_curriculum_record({**valid, "year_level": 5})
        assert validate_curriculum_record({**valid, "semester": 3})
        assert validate_curriculum_record({**valid, "units": -1})
        assert "Missing required field: course_code" in validate_curriculum_record({**valid, "course_code": " "})


class TestDiscovery:
    def test_parses_options_and_current_epoch(self) -> None:
        options = parse_select_options(AUTHENTICATED_PAGE, "applicablePeriod")
        assert [option.value for option in options] == ["2025-0", "2025-1", "2025-2"]
        assert options[1] == SelectOption(value="2025-1", label="2025-2026-First Semester", selected=True)
        assert current_epoch(options) == "2025-1"

    def test_first_option_when_none_selected(self) -> None:
        options = [SelectOption("2025-1", "a"), SelectOption("2025-2", "b")]
        assert current_epoch(options) == "2025-1"

    def test_blank_values_are_skipped(self) -> None:
        body = '<select name="degCode"><option value="">-- select --</option><option value="BS CS_2024_1">BS CS</option></select>'
        assert [option.value for option in parse_select_options(body, "degCode")] == ["BS CS_2024_1"]

    def test_missing_select_raises(self) -> None:
        with pytest.raises(DiscoveryError):
            parse_select_options("<p>nothing</p>", "degCode")

    def test_no_options_raises(self) -> None:
        with pytest.raises(DiscoveryError):
            current_epoch([])
