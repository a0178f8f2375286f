from datetime import date

from conftest import HEADER, crime_line, month_lines

from crimeintel.parser import humanize, parse_month_lines, slugify


def test_parses_reference_line() -> None:
    lines = [HEADER, "2024-01,PSNI,PSNI,-5.93,54.597,On or near High Street,,,Burglary,"]

    result = parse_month_lines(lines, "2024-01")

    assert result.produced == 1
    assert result.malformed == 0
    record = result.records[0]
    assert record.category == "burglary"
    assert record.category_name == "Burglary"
    assert record.crime_month == "2024-01"
    assert record.crime_date == date(2024, 1, 1)
    assert record.latitude == 54.597
    assert record.longitude == -5.93
    assert record.street_name == "On or near High Street"
    assert record.postcode_district == "NI"
    assert record.outcome_category is None
    assert record.source_endpoint == "bulk-csv-archive/2024-01"


def test_header_is_always_skipped() -> None:
    lines = [crime_line("2024-01"), crime_line("2024-01", location="On or near Main Street")]

    result = parse_month_lines(lines, "2024-01")

    assert [record.street_name for record in result.records] == ["On or near Main Street"]


def test_bad_coordinates_and_short_rows_are_counted_not_raised() -> None:
    lines = month_lines(
        [
            crime_line("2024-02", latitude=""),
            crime_line("2024-02", longitude="west"),
            crime_line("2024-02", latitude="nan"),
            "2024-02,PSNI,PSNI,-5.9,54.6",
            "",
            crime_line("2024-02"),
        ]
    )

    result = parse_month_lines(lines, "2024-02")

    assert result.produced == 1
    assert result.malformed == 4


def test_quoted_fields_keep_delimiters_and_escaped_quotes() -> None:
    lines = month_lines(['2024-03,PSNI,PSNI,-5.93,54.597,"On or near ""The"" Mall, East",,,"Theft, other",'])

    record = parse_month_lines(lines, "2024-03").records[0]

    assert record.street_name == 'On or near "The" Mall, East'
    assert record.category == "theft-other"
    assert record.category_name == "Theft, other"


def test_missing_category_falls_back() -> None:
    lines = month_lines([crime_line("2024-04", crime_type="")])

    record = parse_month_lines(lines, "2024-04").records[0]

    assert record.category == "other-crime"
    assert record.category_name == "Other Crime"


def test_blank_month_column_uses_month_key() -> None:
    lines = month_lines([",PSNI,PSNI,-5.93,54.597,On or near High Street,,,Drugs,Under investigation"])

    record = parse_month_lines(lines, "2024-05").records[0]

    assert record.crime_month == "2024-05"
    assert record.crime_date == date(2024, 5, 1)
    assert record.outcome_category == "Under investigation"


def test_slugify_rules_and_idempotence() -> None:
    assert slugify("Anti-social behaviour") == "anti-social-behaviour"
    assert slugify("  Criminal damage & arson  ") == "criminal-damage-arson"
    assert slugify(None) == "other-crime"
    assert slugify("???") == "other-crime"
    for name in ["Violence and sexual offences", "Public order", "Other theft", "bicycle-theft"]:
        once = slugify(name)
        assert slugify(once) == once


def test_humanize_slug() -> None:
    assert humanize("anti-social-behaviour") == "Anti Social Behaviour"


def test_empty_input_yields_nothing() -> None:
    result = parse_month_lines([], "2024-01")

    assert result.records == []
    assert result.malformed == 0
