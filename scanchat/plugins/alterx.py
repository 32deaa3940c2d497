"""Alterx: subdomain wordlist generation."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from scanchat.plugins.grammar import (
    CommandGrammar,
    CommandParameters,
    FlagSpec,
    GrammarLimits,
)
from scanchat.plugins.registry import TIMESTAMP_FORMAT, PluginTool

HELP = """[Alterx](https://github.com/projectdiscovery/alterx) is a fast and customizable subdomain wordlist generator using DSL.

Usage:
   /alterx [flags]

Flags:
INPUT:
   -l, -list string[]      subdomains to use when creating permutations (comma-separated)
   -p, -pattern string[]   custom permutation patterns input to generate (comma-separated)

CONFIGURATION:
   -en, -enrich   enrich wordlist by extracting words from input
   -limit int     limit the number of results to return (default 0)"""


def _help(section: str | None = None) -> str:
    return HELP


@dataclass
class AlterxParams(CommandParameters):
    subdomains: list[str] = field(default_factory=list)
    pattern: list[str] = field(default_factory=list)
    enrich: bool = False
    limit: int = 0

    @classmethod
    def grammar(cls) -> CommandGrammar:
        return GRAMMAR


GRAMMAR = CommandGrammar(
    name="alterx",
    flags=(
        FlagSpec("subdomains", ("-l", "-list"), "list", "subdomain", "list"),
        FlagSpec("pattern", ("-p", "-pattern"), "list", "pattern", "pattern"),
        FlagSpec("enrich", ("-en", "-enrich"), "bool", "enrich", "enrich"),
        FlagSpec(
            "limit",
            ("-limit",),
            "int",
            "limit",
            "limit",
            invalid_error="🚨 Invalid limit value",
        ),
    ),
    required_field="subdomains",
    required_error="🚨 Error: -l/-list parameter is required.",
    help_text=_help,
    limits=GrammarLimits(
        max_input_length=2000,
        max_param_length=100,
        max_parameter_count=15,
        max_array_size=50,
    ),
    sanitize_input=True,
    comma_lists=True,
)


class AlterxTool(PluginTool):
    """Generate subdomain permutations from seed subdomains."""

    name = "alterx"
    title = "Alterx"
    repo_url = "https://github.com/projectdiscovery/alterx"
    description = "A fast and customizable subdomain wordlist generator."
    heartbeat_interval = 10.0
    request_timeout = 60.0
    params_type = AlterxParams

    def target(self, params: AlterxParams) -> str:
        return ", ".join(params.subdomains)

    def no_data_message(self, params: AlterxParams) -> str:
        return f'🔍 Unable to generate wordlist for "{self.target(params)}"'

    def format_results(
        self,
        lines: list[str],
        params: AlterxParams,
        scanned_at: datetime,
    ) -> str:
        body = "\n".join(lines)
        return (
            f"{self.heading()} Results\n"
            f'**Input Domain**: "{self.target(params)}"\n\n'
            f"**Generated At**: {scanned_at.strftime(TIMESTAMP_FORMAT)}\n\n"
            "### Generated Subdomains:\n"
            f"```\n{body}\n```\n"
        )

    def synthesis_prompt(self, query: str) -> str:
        return f"""Query: "{query}"

Based on this query, generate a command for the 'alterx' tool, focusing on subdomain wordlist generation. The command should use the most relevant flags, with '-l' or '-list' being essential to specify the seed subdomains. Include the '-help' flag if a help guide or a full list of flags is requested. The command should follow this structured format for clarity and accuracy:

ALWAYS USE THIS FORMAT:
```json
{{ "command": "alterx [flags]" }}
```
Replace '[flags]' with the actual flags and values. Include additional flags only if they are specifically relevant to the request. Ensure the command is properly escaped to be valid JSON.

Command Construction Guidelines:
1. **Selective Flag Use**: Carefully choose flags that are pertinent to the task. The available flags for the 'alterx' tool include:
  - -l, -list: Subdomains to use when creating permutations, comma-separated. (required)
  - -p, -pattern: Custom permutation patterns to generate. (optional)
  - -en, -enrich: Enrich the wordlist by extracting words from the input. (optional)
  - -limit: Limit the number of results returned (default 0, unlimited). (optional)
  - -help: Display help and all available flags. (optional)
  Use these flags to align with the request's specific requirements or when '-help' is requested for help.
2. **Relevance and Efficiency**: Ensure that the selected flags are relevant and contribute to an effective wordlist.

Example Commands:
For generating permutations of 'api.example.com':
```json
{{ "command": "alterx -l api.example.com" }}
```

For a request for help or to see all flags:
```json
{{ "command": "alterx -help" }}
```

Response:"""
