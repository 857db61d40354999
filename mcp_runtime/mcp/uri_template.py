"""URI template matching for parametrized MCP resources."""

import re

from mcp_runtime.mcp.errors import TemplateSyntaxError

# A placeholder is {identifier}; anything else between braces is malformed.
_PLACEHOLDER = re.compile(r"\{(\w+)\}")

# A placeholder never matches across a path separator.
_VARIABLE_PATTERN = "[^/]+"


def is_template(uri: str) -> bool:
    """Check whether a URI declares any placeholder braces."""
    return "{" in uri or "}" in uri


class UriTemplate:
    """A compiled ``{name}``-style URI template.

    Usage:
        template = UriTemplate("https://{host}/{path}")
        template.matches("https://example/page")  # True
        template.extract("https://example/page")  # {"host": "example", "path": "page"}
    """

    def __init__(self, template: str):
        self.template = template
        self.variables: list[str] = []
        self._pattern = self._compile(template)

    def __repr__(self) -> str:
        return f"UriTemplate({self.template!r})"

    def _compile(self, template: str) -> re.Pattern[str]:
        regex: list[str] = []
        position = 0
        for match in _PLACEHOLDER.finditer(template):
            literal = template[position:match.start()]
            self._check_literal(literal, position)
            regex.append(re.escape(literal))
            name = match.group(1)
            if name in self.variables:
                # Only the first occurrence captures
                regex.append(f"(?:{_VARIABLE_PATTERN})")
            else:
                self.variables.append(name)
                regex.append(f"(?P<{name}>{_VARIABLE_PATTERN})")
            position = match.end()

        tail = template[position:]
        self._check_literal(tail, position)
        regex.append(re.escape(tail))

        try:
            return re.compile("".join(regex))
        except re.error as e:
            raise TemplateSyntaxError(f"Invalid URI template '{self.template}': {e}") from e

    def _check_literal(self, literal: str, offset: int) -> None:
        for i, char in enumerate(literal):
            if char in "{}":
                raise TemplateSyntaxError(
                    f"Invalid URI template '{self.template}': "
                    f"unexpected '{char}' at index {offset + i}"
                )

    def matches(self, uri: str) -> bool:
        """Whole-URI match; partial matches do not count."""
        return self._pattern.fullmatch(uri) is not None

    def extract(self, uri: str) -> dict[str, str]:
        """Map each placeholder name to its captured text, or ``{}`` on no match."""
        match = self._pattern.fullmatch(uri)
        if match is None:
            return {}
        return {name: match.group(name) for name in self.variables}
