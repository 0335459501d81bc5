"""Built-in tools.

Provides a calculator, file tools confined to a root directory, and web
tools for fetching pages and searching DuckDuckGo.
"""

from __future__ import annotations

import html
import logging
import re
import urllib.parse
from pathlib import Path
from typing import Any

import httpx

from mcp_server_kit.tools.base import (
    Parameter,
    Tool,
    ToolAnnotations,
    empty_completion,
    text_content,
)

logger = logging.getLogger(__name__)

# User agent to use for requests
USER_AGENT = "mcp-server-kit/1.0 (Web Tools)"

DEFAULT_MAX_WORDS = 100

DUCKDUCKGO_LITE_URL = "https://lite.duckduckgo.com/lite/"
DEFAULT_MAX_RESULTS = 5
MAX_RESULTS_LIMIT = 20

OPERATIONS = ("add", "subtract", "multiply", "divide")

_SCRIPT_PATTERN = re.compile(r"<(script|style)\b[^>]*>.*?</\1\s*>", re.IGNORECASE | re.DOTALL)
_TAG_PATTERN = re.compile(r"<[^>]+>")
_RESULT_LINK_PATTERN = re.compile(
    r'<a[^>]*class="[^"]*result[^"]*"[^>]*href="([^"]+)"[^>]*>([^<]+)</a>', re.IGNORECASE
)
_LITE_LINK_PATTERN = re.compile(
    r'<a[^>]*rel="nofollow"[^>]*href="([^"]+)"[^>]*>([^<]+)</a>', re.IGNORECASE
)
_SNIPPET_PATTERN = re.compile(
    r'<a[^>]*class="[^"]*snippet[^"]*"[^>]*>([^<]+)</a>', re.IGNORECASE
)


def _format_number(value: float) -> str:
    if value.is_integer():
        return str(int(value))
    return str(value)


def _clean_text(text: str) -> str:
    return re.sub(r"\s+", " ", html.unescape(text)).strip()


def _complete_from(candidates: list[str], value: Any) -> dict[str, Any]:
    prefix = value if isinstance(value, str) else ""
    values = [candidate for candidate in candidates if candidate.startswith(prefix)]
    return {"values": values, "total": len(values), "hasMore": False}


class SimpleCalculatorTool(Tool):
    """Performs basic arithmetic on two numbers."""

    name = "SimpleCalculator"
    description = "Performs basic arithmetic operations."
    parameters = (
        Parameter("number1", "number", "The first number."),
        Parameter("number2", "number", "The second number."),
        Parameter("operation", "string", "The operation to perform."),
    )
    annotations = ToolAnnotations(title="Calculator", read_only_hint=True, idempotent_hint=True)

    def run(self, arguments: dict[str, Any]) -> list[dict[str, Any]]:
        number1 = float(arguments["number1"])
        number2 = float(arguments["number2"])
        operation = arguments["operation"]

        if operation == "add":
            result = number1 + number2
        elif operation == "subtract":
            result = number1 - number2
        elif operation == "multiply":
            result = number1 * number2
        elif operation == "divide":
            if number2 == 0.0:
                return [text_content("Error: Division by zero.")]
            result = number1 / number2
        else:
            return [
                text_content(
                    "Error: Invalid operation. Must be one of: add, subtract, multiply, divide."
                )
            ]

        return [text_content(_format_number(result))]

    def get_completion_suggestions(
        self, argument: str, value: Any, arguments: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        if argument != "operation":
            return empty_completion()
        return _complete_from(list(OPERATIONS), value)


class _RootedTool(Tool):
    """Tool whose paths are resolved inside a root directory."""

    def __init__(self, root: str | Path = ".", config: dict[str, Any] | None = None) -> None:
        super().__init__(config)
        self._root = Path(root).resolve()

    @property
    def root(self) -> Path:
        """Get the directory paths are confined to."""
        return self._root

    def resolve(self, path: str) -> Path:
        """Resolve a client path inside the root directory.

        Raises:
            PermissionError: If the path escapes the root directory.
        """
        candidate = (self._root / path).resolve()
        if candidate != self._root and self._root not in candidate.parents:
            raise PermissionError(f"Access denied: {path} is outside the allowed directory")
        return candidate


class FileReaderTool(_RootedTool):
    """Reads a text file below the root directory."""

    name = "file/read"
    description = "Reads the content of a file."
    parameters = (Parameter("filepath", "string", "The path to the file."),)
    annotations = ToolAnnotations(read_only_hint=True)

    def run(self, arguments: dict[str, Any]) -> list[dict[str, Any]]:
        filepath = arguments["filepath"]
        path = self.resolve(filepath)
        if not path.is_file():
            raise FileNotFoundError(f"File not found at path: {filepath}")

        return [text_content(path.read_text(encoding="utf-8", errors="replace"))]


class DirectoryListingTool(_RootedTool):
    """Lists the entries of a directory below the root directory."""

    name = "directory/list"
    description = "Lists the contents of a directory."
    parameters = (Parameter("directory_path", "string", "The path to the directory."),)
    annotations = ToolAnnotations(read_only_hint=True)

    def run(self, arguments: dict[str, Any]) -> list[dict[str, Any]]:
        directory_path = arguments["directory_path"]
        path = self.resolve(directory_path)
        if not path.is_dir():
            raise NotADirectoryError(f"Directory not found at path: {directory_path}")

        entries = sorted(entry.name for entry in path.iterdir())
        return [text_content("\n".join(entries))]

    def get_completion_suggestions(
        self, argument: str, value: Any, arguments: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        """Suggest subdirectories of the root matching the typed prefix."""
        if argument != "directory_path":
            return empty_completion()
        directories = sorted(entry.name for entry in self._root.iterdir() if entry.is_dir())
        return _complete_from(directories, value)


class ReplaceTextTool(_RootedTool):
    """Replaces every occurrence of a text in a file below the root directory."""

    name = "replace_text"
    description = "Replaces text in a file."
    parameters = (
        Parameter("filePath", "string", "The path to the file."),
        Parameter("searchText", "string", "The text to search for."),
        Parameter("replaceText", "string", "The text to replace with."),
    )
    annotations = ToolAnnotations(destructive_hint=True, idempotent_hint=False)

    def run(self, arguments: dict[str, Any]) -> list[dict[str, Any]]:
        file_path = arguments["filePath"]
        search_text = arguments["searchText"]
        replace_text = arguments["replaceText"]
        if not search_text:
            raise ValueError("searchText must not be empty")

        path = self.resolve(file_path)
        if not path.is_file():
            raise FileNotFoundError(f"File not found at path: {file_path}")

        contents = path.read_text(encoding="utf-8")
        count = contents.count(search_text)
        if count == 0:
            return [text_content(f"Text not found in {file_path}; file left unchanged.")]

        path.write_text(contents.replace(search_text, replace_text), encoding="utf-8")
        logger.info("Replaced %d occurrence(s) in %s", count, path)
        return [
            text_content(f"Successfully replaced {count} occurrence(s) of text in {file_path}.")
        ]


class _HttpTool(Tool):
    """Tool backed by a pooled httpx client.

    Pass ``client`` to supply a preconfigured one; the tool closes it on
    shutdown all the same.
    """

    def __init__(
        self,
        client: httpx.Client | None = None,
        config: dict[str, Any] | None = None,
    ) -> None:
        """Initialize the tool with a reusable HTTP client."""
        super().__init__(config)
        self._client = client or httpx.Client(
            headers={"User-Agent": USER_AGENT},
            follow_redirects=True,
            timeout=10.0,
        )

    def shutdown(self) -> None:
        """Close the HTTP client and release resources."""
        self._client.close()


class FetchWebPageTool(_HttpTool):
    """Fetches a web page and returns the start of its text."""

    name = "summarize_web_page"
    description = "Summarizes the content of a web page."
    parameters = (
        Parameter("url", "string", "The URL of the web page to summarize."),
        Parameter(
            "max_words", "integer", "The maximum number of words for the summary.", required=False
        ),
    )
    annotations = ToolAnnotations(read_only_hint=True, open_world_hint=True)

    def run(self, arguments: dict[str, Any]) -> list[dict[str, Any]]:
        url = arguments["url"]
        max_words = arguments.get("max_words")
        if max_words is None:
            max_words = DEFAULT_MAX_WORDS
        max_words = max(max_words, 1)

        parsed = urllib.parse.urlparse(url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError(f"Invalid URL format provided: {url}")

        try:
            response = self._client.get(url)
            response.raise_for_status()
        except httpx.TimeoutException as e:
            raise RuntimeError("Request timed out. Please try again.") from e
        except httpx.HTTPStatusError as e:
            raise RuntimeError(f"Fetch failed (HTTP {e.response.status_code})") from e

        words = self._extract_text(response.text).split()
        if len(words) > max_words:
            summary = " ".join(words[:max_words]) + "..."
        else:
            summary = " ".join(words)

        logger.debug("Fetched %s (%d words)", url, len(words))
        return [text_content(summary)]

    def _extract_text(self, page: str) -> str:
        """Strip markup from an HTML page.

        Args:
            page: Page source.

        Returns:
            Visible text with entities unescaped.
        """
        page = _SCRIPT_PATTERN.sub(" ", page)
        page = _TAG_PATTERN.sub(" ", page)
        return html.unescape(page)


class WebSearchTool(_HttpTool):
    """Searches the web through DuckDuckGo Lite."""

    name = "web_search"
    description = "Search the web using DuckDuckGo. Returns titles, URLs and snippets."
    parameters = (
        Parameter("query", "string", "The search query."),
        Parameter(
            "max_results",
            "integer",
            f"Maximum number of results to return (1-{MAX_RESULTS_LIMIT}).",
            required=False,
        ),
    )
    annotations = ToolAnnotations(read_only_hint=True, open_world_hint=True)

    def run(self, arguments: dict[str, Any]) -> list[dict[str, Any]]:
        query = arguments["query"].strip()
        if not query:
            raise ValueError("Search query must not be empty")
        max_results = arguments.get("max_results")
        if max_results is None:
            max_results = DEFAULT_MAX_RESULTS
        max_results = min(max(max_results, 1), MAX_RESULTS_LIMIT)

        url = f"{DUCKDUCKGO_LITE_URL}?{urllib.parse.urlencode({'q': query, 'kl': 'us-en'})}"
        try:
            response = self._client.get(url)
            response.raise_for_status()
        except httpx.TimeoutException as e:
            raise RuntimeError("Search timed out. Please try again.") from e
        except httpx.HTTPStatusError as e:
            raise RuntimeError(f"Search failed (HTTP {e.response.status_code})") from e

        results = self._parse_results(response.text, max_results)
        logger.debug("Search for %r returned %d result(s)", query, len(results))
        if not results:
            return [text_content(f"No results found for: {query}")]

        formatted = [
            f"{i}. {title}\n   URL: {link}\n   {snippet}"
            for i, (title, link, snippet) in enumerate(results, 1)
        ]
        return [text_content(f"Search results for: {query}\n\n" + "\n\n".join(formatted))]

    def _parse_results(self, page: str, max_results: int) -> list[tuple[str, str, str]]:
        """Extract (title, url, snippet) triples from a results page."""
        links = _RESULT_LINK_PATTERN.findall(page) or _LITE_LINK_PATTERN.findall(page)
        snippets = _SNIPPET_PATTERN.findall(page)

        results = []
        for i, (link, title) in enumerate(links[:max_results]):
            snippet = snippets[i] if i < len(snippets) else ""
            results.append((_clean_text(title), link, _clean_text(snippet)))
        return results
