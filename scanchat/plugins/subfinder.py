"""Subfinder: passive subdomain enumeration."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime

from scanchat.plugins.grammar import (
    CommandGrammar,
    CommandParameters,
    FlagSpec,
    GrammarLimits,
    is_valid_url,
)
from scanchat.plugins.registry import TIMESTAMP_FORMAT, PluginTool

MAX_TIMEOUT = 60
DEFAULT_TIMEOUT = 10

HELP = """[Subfinder](https://github.com/projectdiscovery/subfinder) is a subdomain discovery tool that returns valid subdomains for websites, using passive online sources.

Usage:
   /subfinder [flags]

Flags:
INPUT:
   -d, -domain string[]   domains to find subdomains for (comma-separated)

FILTER:
   -m, -match string[]    subdomain or list of subdomain to match (comma-separated)
   -f, -filter string[]   subdomain or list of subdomain to filter (comma-separated)

OUTPUT:
   -cs, -collect-sources  include all sources in the output

CONFIGURATION:
   -timeout int           seconds to wait before timing out (default 10)"""


def _help(section: str | None = None) -> str:
    return HELP


@dataclass
class SubfinderParams(CommandParameters):
    domain: list[str] = field(default_factory=list)
    match: list[str] = field(default_factory=list)
    filter: list[str] = field(default_factory=list)
    include_sources: bool = False
    timeout: int = DEFAULT_TIMEOUT

    @classmethod
    def grammar(cls) -> CommandGrammar:
        return GRAMMAR


GRAMMAR = CommandGrammar(
    name="subfinder",
    flags=(
        FlagSpec("domain", ("-d", "-domain"), "list", "domain", "domain", validator=is_valid_url),
        FlagSpec("match", ("-m", "-match"), "list", "match", "match"),
        FlagSpec("filter", ("-f", "-filter"), "list", "filter", "filter"),
        FlagSpec(
            "include_sources", ("-cs", "-collect-sources"), "bool",
            "collect sources", "includeSources",
        ),
        FlagSpec(
            "timeout", ("-timeout",), "int", "timeout", "timeout",
            maximum=MAX_TIMEOUT,
            maximum_error=f"🚨 Timeout value exceeds the maximum limit of {MAX_TIMEOUT} seconds",
        ),
    ),
    required_field="domain",
    required_error="🚨 Error: -d/-domain parameter is required.",
    help_text=_help,
    limits=GrammarLimits(
        max_input_length=1000,
        max_param_length=100,
        max_parameter_count=20,
        max_array_size=50,
    ),
    sanitize_input=True,
    comma_lists=True,
)


def _host_line(line: str) -> str:
    """Reduce one ``-json`` output record to ``host`` (plus its sources)."""
    if not line.startswith("{"):
        return line
    try:
        record = json.loads(line)
    except json.JSONDecodeError:
        return line
    if not isinstance(record, dict) or not record.get("host"):
        return line
    host = str(record["host"])
    sources = record.get("sources") or ([record["source"]] if record.get("source") else [])
    if sources:
        return f"{host} [{', '.join(str(s) for s in sources)}]"
    return host


class SubfinderTool(PluginTool):
    """Enumerate subdomains from passive sources."""

    name = "subfinder"
    title = "Subfinder"
    repo_url = "https://github.com/projectdiscovery/subfinder"
    description = "A robust discovery tool for passive enumeration on valid subdomains."
    heartbeat_interval = 5.0
    request_timeout = 35.0
    params_type = SubfinderParams

    def target(self, params: SubfinderParams) -> str:
        return ", ".join(params.domain)

    def no_data_message(self, params: SubfinderParams) -> str:
        return f"🔍 Didn't find any subdomains for {self.target(params)}."

    def process_output(self, output: str) -> list[str]:
        lines = [_host_line(line) for line in super().process_output(output)]
        return list(dict.fromkeys(lines))

    def format_results(
        self,
        lines: list[str],
        params: SubfinderParams,
        scanned_at: datetime,
    ) -> str:
        body = "\n".join(lines)
        return (
            f"{self.heading()} Results\n"
            f'**Target**: "{self.target(params)}"\n\n'
            f"**Scan Date and Time**: {scanned_at.strftime(TIMESTAMP_FORMAT)}\n\n"
            f"### Identified Subdomains ({len(lines)}):\n"
            f"```\n{body}\n```\n"
        )

    def synthesis_prompt(self, query: str) -> str:
        return f"""Query: "{query}"

Based on this query, generate a command for the 'subfinder' tool, focusing on passive subdomain enumeration. The command should use the most relevant flags, with '-d' or '-domain' being essential to specify the target domain. Include the '-help' flag if a help guide or a full list of flags is requested. The command should follow this structured format for clarity and accuracy:

ALWAYS USE THIS FORMAT:
```json
{{ "command": "subfinder [flags]" }}
```
Replace '[flags]' with the actual flags and values. Include additional flags only if they are specifically relevant to the request. Ensure the command is properly escaped to be valid JSON.

Command Construction Guidelines:
1. **Selective Flag Use**: Carefully choose flags that are pertinent to the task. The available flags for the 'subfinder' tool include:
  - -d, -domain: Domains to find subdomains for. (required)
  - -m, -match: Subdomains to match in the results. (optional)
  - -f, -filter: Subdomains to filter out of the results. (optional)
  - -cs, -collect-sources: Include the sources each subdomain was found in. (optional)
  - -timeout: Seconds to wait before timing out (default 10, max {MAX_TIMEOUT}). (optional)
  - -help: Display help and all available flags. (optional)
  Use these flags to align with the request's specific requirements or when '-help' is requested for help.
2. **Relevance and Efficiency**: Ensure that the selected flags are relevant and contribute to an effective enumeration.

Example Commands:
For finding the subdomains of 'example.com':
```json
{{ "command": "subfinder -d example.com" }}
```

For a request for help or to see all flags:
```json
{{ "command": "subfinder -help" }}
```

Response:"""
