"""``#{Namespace.variable}`` interpolation for approval messages.

Actions publish output variables under a namespace (the source action
publishes ``SourceVariables.commit_id`` and friends). Approval templates
reference them and are rendered when the approval stage starts.
"""

from __future__ import annotations

import re

_VARIABLE_RE = re.compile(r"#\{([A-Za-z_][A-Za-z0-9_]*)\.([A-Za-z_][A-Za-z0-9_]*)\}")


class TemplateError(KeyError):
    """Raised when a template references a variable that was not published."""


def referenced_variables(template: str) -> list[tuple[str, str]]:
    """Return the (namespace, variable) pairs used by *template*, in order."""
    return [(m.group(1), m.group(2)) for m in _VARIABLE_RE.finditer(template)]


def render(template: str, variables: dict[str, dict[str, str]]) -> str:
    """Substitute every ``#{Namespace.variable}`` in *template*.

    Values are inserted verbatim. Unknown references raise TemplateError.
    """

    def _substitute(match: re.Match[str]) -> str:
        namespace, name = match.group(1), match.group(2)
        try:
            return variables[namespace][name]
        except KeyError:
            raise TemplateError(
                f"Variable #{{{namespace}.{name}}} has not been published"
            ) from None

    return _VARIABLE_RE.sub(_substitute, template)
