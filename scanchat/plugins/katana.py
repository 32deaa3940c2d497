"""Katana: web crawling."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from scanchat.plugins.grammar import (
    CommandGrammar,
    CommandParameters,
    FlagSpec,
    GrammarLimits,
    is_valid_regex,
    is_valid_url,
)
from scanchat.plugins.registry import TIMESTAMP_FORMAT, PluginTool

MAX_TIMEOUT = 90
DEFAULT_TIMEOUT = 10
DEFAULT_DEPTH = 3

_FAILURE_MARKERS = ("Error executing Katana command", "Error reading output file")

HELP_INTRO = (
    "[Katana](https://github.com/projectdiscovery/katana) is a fast crawler focused on "
    "execution in automation pipelines offering both headless and non-headless crawling.\n\n"
)
HELP_PREFIX = "```\nUsage:\n   /katana [flags]\n\nFlags:\n"

HELP_SECTIONS = {
    "input": (
        "INPUT:\n"
        "  -u, -list string[]  target url / list to crawl\n"
    ),
    "configuration": (
        "CONFIGURATION:\n"
        "  -d, -depth int               maximum depth to crawl (default 3)\n"
        "  -jc, -js-crawl               enable endpoint parsing / crawling in javascript file\n"
        "  -iqp, -ignore-query-params   Ignore crawling same path with different query-param values\n"
        "  -timeout int                 time to wait for request in seconds (default 10)\n"
    ),
    "headless": (
        "HEADLESS:\n"
        "  -xhr, -xhr-extraction   extract xhr request url,method in jsonl output\n"
    ),
    "scope": (
        "SCOPE:\n"
        "  -cs, -crawl-scope string[]        in scope url regex to be followed by crawler\n"
        "  -cos, -crawl-out-scope string[]   out of scope url regex to be excluded by crawler\n"
        "  -do, -display-out-scope           display external endpoint from scoped crawling\n"
    ),
    "filter": (
        "FILTER:\n"
        "  -mr, -match-regex string[]        regex or list of regex to match on output url\n"
        "  -fr, -filter-regex string[]       regex or list of regex to filter on output url\n"
        "  -em, -extension-match string[]    match output for given extension (eg, -em php,html,js)\n"
        "  -ef, -extension-filter string[]   filter output for given extension (eg, -ef png,css)\n"
        "  -mdc, -match-condition string     match response with dsl based condition\n"
        "  -fdc, -filter-condition string    filter response with dsl based condition\n"
    ),
}


def _help(section: str | None = None) -> str:
    key = (section or "").lower()
    if key in HELP_SECTIONS:
        return HELP_PREFIX + HELP_SECTIONS[key] + "```"
    return HELP_INTRO + HELP_PREFIX + "\n".join(HELP_SECTIONS.values()) + "\n```"


@dataclass
class KatanaParams(CommandParameters):
    urls: list[str] = field(default_factory=list)
    depth: int = DEFAULT_DEPTH
    js_crawl: bool = False
    ignore_query_params: bool = False
    xhr_extraction: bool = False
    crawl_scope: list[str] = field(default_factory=list)
    crawl_out_scope: list[str] = field(default_factory=list)
    display_out_scope: bool = False
    match_regex: list[str] = field(default_factory=list)
    filter_regex: list[str] = field(default_factory=list)
    extension_match: list[str] = field(default_factory=list)
    extension_filter: list[str] = field(default_factory=list)
    match_condition: str = ""
    filter_condition: str = ""
    timeout: int = DEFAULT_TIMEOUT

    @classmethod
    def grammar(cls) -> CommandGrammar:
        return GRAMMAR


GRAMMAR = CommandGrammar(
    name="katana",
    flags=(
        FlagSpec(
            "urls", ("-u", "-list"), "list", "URL", "urls",
            validator=is_valid_url, repeat_in_query=True,
        ),
        FlagSpec("depth", ("-d", "-depth"), "int", "depth", "depth"),
        FlagSpec("js_crawl", ("-jc", "-js-crawl"), "bool", "js crawl", "jsCrawl"),
        FlagSpec(
            "ignore_query_params", ("-iqp", "-ignore-query-params"), "bool",
            "ignore query params", "ignoreQueryParams",
        ),
        FlagSpec(
            "xhr_extraction", ("-xhr", "-xhr-extraction"), "bool",
            "xhr extraction", "xhrExtraction",
        ),
        FlagSpec(
            "crawl_scope", ("-cs", "-crawl-scope"), "list",
            "crawl scope regex pattern", "crawlScope", validator=is_valid_regex,
        ),
        FlagSpec(
            "crawl_out_scope", ("-cos", "-crawl-out-scope"), "list",
            "crawl out scope regex pattern", "crawlOutScope", validator=is_valid_regex,
        ),
        FlagSpec(
            "display_out_scope", ("-do", "-display-out-scope"), "bool",
            "display out scope", "displayOutScope",
        ),
        FlagSpec(
            "match_regex", ("-mr", "-match-regex"), "list",
            "match regex pattern", "matchRegex", validator=is_valid_regex,
        ),
        FlagSpec(
            "filter_regex", ("-fr", "-filter-regex"), "list",
            "filter regex pattern", "filterRegex", validator=is_valid_regex,
        ),
        FlagSpec(
            "extension_match", ("-em", "-extension-match"), "list",
            "extension", "extensionMatch",
        ),
        FlagSpec(
            "extension_filter", ("-ef", "-extension-filter"), "list",
            "extension", "extensionFilter",
        ),
        FlagSpec(
            "match_condition", ("-mdc", "-match-condition"), "value",
            "match condition", "matchCondition",
        ),
        FlagSpec(
            "filter_condition", ("-fdc", "-filter-condition"), "value",
            "filter condition", "filterCondition",
        ),
        FlagSpec(
            "timeout", ("-timeout",), "int", "timeout", "timeout",
            maximum=MAX_TIMEOUT,
            maximum_error=f"🚨 Timeout value exceeds the maximum limit of {MAX_TIMEOUT} seconds",
        ),
    ),
    required_field="urls",
    required_error="🚨 Error: -u/-list parameter is required.",
    help_text=_help,
    limits=GrammarLimits(
        max_input_length=1000,
        max_param_length=100,
        max_parameter_count=40,
        max_array_size=50,
    ),
)


class KatanaTool(PluginTool):
    """Crawl target URLs and list discovered endpoints."""

    name = "katana"
    title = "Katana"
    repo_url = "https://github.com/projectdiscovery/katana"
    description = "A web crawling framework designed to navigate and parse for hidden details."
    heartbeat_interval = 15.0
    request_timeout = 120.0
    params_type = KatanaParams

    def target(self, params: KatanaParams) -> str:
        return ", ".join(params.urls)

    def no_data_message(self, params: KatanaParams) -> str:
        return f"🔍 Didn't find anything for {self.target(params)}."

    def detect_failure(self, output: str) -> bool:
        return all(marker in (output or "") for marker in _FAILURE_MARKERS)

    def format_results(
        self,
        lines: list[str],
        params: KatanaParams,
        scanned_at: datetime,
    ) -> str:
        body = "\n".join(lines)
        return (
            f"{self.heading()} Scan Results\n"
            f'**Target**: "{self.target(params)}"\n\n'
            f"**Scan Date and Time**: {scanned_at.strftime(TIMESTAMP_FORMAT)}\n\n"
            "### Identified Urls:\n"
            f"```\n{body}\n```\n"
        )

    def synthesis_prompt(self, query: str) -> str:
        return f"""Query: "{query}"

Based on this query, generate a command for the 'katana' tool, focusing on URL crawling and filtering. The command should utilize the most relevant flags, with '-u' or '-list' being essential to specify the target URL or list. Include the '-help' flag if a help guide or a full list of flags is requested. The command should follow this structured format for clarity and accuracy:

ALWAYS USE THIS FORMAT:
```json
{{ "command": "katana [flags]" }}
```
Replace '[flags]' with the actual flags and values. Include additional flags only if they are specifically relevant to the request. Ensure the command is properly escaped to be valid JSON.

Command Construction Guidelines:
1. **Selective Flag Use**: Carefully choose flags that are pertinent to the task. The available flags for the 'katana' tool include:
  - -u, -list: Specify the target URL or list to crawl. (required)
  - -depth: Maximum depth to crawl (default 3). (optional)
  - -js-crawl: Enable crawling of JavaScript files. (optional)
  - -ignore-query-params: Ignore different query parameters in the same path. (optional)
  - -timeout: Set a time limit in seconds (default 10 seconds, max {MAX_TIMEOUT}). (optional)
  - -xhr-extraction: Extract XHR request URL and method in JSONL format. (optional)
  - -crawl-scope: Define in-scope URL regex for crawling. (optional)
  - -crawl-out-scope: Define out-of-scope URL regex to exclude from crawling. (optional)
  - -display-out-scope: Show external endpoints from scoped crawling. (optional)
  - -match-regex: Match output URLs with specified regex patterns. (optional)
  - -filter-regex: Filter output URLs using regex patterns. (optional)
  - -extension-match: Match output for specified file extensions. (optional)
  - -extension-filter: Filter output for specified file extensions. (optional)
  - -match-condition: Apply DSL-based conditions for matching responses. (optional)
  - -filter-condition: Apply DSL-based conditions for filtering responses. (optional)
  - -help: Display help and all available flags. (optional)
  Use these flags to align with the request's specific requirements or when '-help' is requested for help.
2. **Relevance and Efficiency**: Ensure that the selected flags are relevant and contribute to an effective and efficient URL crawling and filtering process.

Example Commands:
For a basic crawl request for 'example.com':
```json
{{ "command": "katana -u example.com" }}
```

For a request for help or to see all flags:
```json
{{ "command": "katana -help" }}
```

Response:"""
