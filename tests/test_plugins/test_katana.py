from datetime import datetime, timezone

from scanchat.plugins.katana import KatanaParams, KatanaTool


def test_parse_full_command():
    params = KatanaParams.parse(
        "/katana -u https://example.com -d 2 -jc -iqp -mr .*admin.* -em php,html -timeout 30"
    )

    assert params.ok
    assert params.urls == ["https://example.com"]
    assert params.depth == 2
    assert params.js_crawl is True
    assert params.ignore_query_params is True
    assert params.match_regex == [".*admin.*"]
    assert params.extension_match == ["php,html"]
    assert params.timeout == 30


def test_query_repeats_urls_and_encodes_values():
    params = KatanaParams.parse("/katana -u https://example.com test.example.org -d 2 -mr .*admin.*")

    assert params.to_query() == (
        "urls=https%3A%2F%2Fexample.com&urls=test.example.org"
        "&depth=2&matchRegex=.%2Aadmin.%2A"
    )


def test_default_values_are_left_out_of_query():
    params = KatanaParams.parse("/katana -u example.com -d 3 -timeout 10")

    assert params.to_query() == "urls=example.com"
    assert params.to_command() == "/katana -u example.com"


def test_timeout_above_maximum_is_rejected():
    params = KatanaParams.parse("/katana -u example.com -timeout 91")

    assert params.error == "🚨 Timeout value exceeds the maximum limit of 90 seconds"


def test_invalid_url_is_rejected():
    params = KatanaParams.parse("/katana -u notaurl")

    assert params.error == "🚨 Invalid URL for '-u' flag: notaurl"


def test_invalid_regex_is_rejected():
    params = KatanaParams.parse("/katana -u example.com -mr (")

    assert params.error == "🚨 Invalid match regex pattern for '-mr' flag: ("


def test_value_flag_without_value_is_rejected():
    params = KatanaParams.parse("/katana -u example.com -mdc -jc")

    assert params.error == "🚨 No match condition provided for '-mdc' flag"


def test_non_numeric_depth_is_rejected():
    params = KatanaParams.parse("/katana -u example.com -d deep")

    assert params.error == "🚨 Invalid depth value for '-d' flag"


def test_missing_url_is_reported():
    params = KatanaParams.parse("/katana -jc")

    assert params.error == "🚨 Error: -u/-list parameter is required."


def test_help_sections():
    full = KatanaParams.parse("/katana -h").help
    section = KatanaParams.parse("/katana -help filter").help

    assert full is not None and "INPUT:" in full and "FILTER:" in full
    assert section is not None
    assert "FILTER:" in section
    assert "INPUT:" not in section


def test_failure_needs_both_markers():
    tool = KatanaTool()

    assert tool.detect_failure("Error executing Katana command\nError reading output file")
    assert not tool.detect_failure("Error executing Katana command")


def test_results_markdown():
    tool = KatanaTool()
    params = KatanaParams.parse("/katana -u example.com")
    scanned_at = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)

    markdown = tool.format_results(["https://example.com/login"], params, scanned_at)

    assert markdown.startswith("## [Katana](https://github.com/projectdiscovery/katana) Scan Results")
    assert '**Target**: "example.com"' in markdown
    assert "**Scan Date and Time**: 2024-01-02 03:04:05 UTC" in markdown
    assert "### Identified Urls:\n```\nhttps://example.com/login\n```" in markdown
    assert tool.no_data_message(params) == "🔍 Didn't find anything for example.com."


def test_timeout_of_two_minutes_is_rejected():
    params = KatanaParams.parse("/katana -u example.com -timeout 120")

    assert params.error == "🚨 Timeout value exceeds the maximum limit of 90 seconds"
