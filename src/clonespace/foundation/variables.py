"""Build-variable expansion for job names and glob strings."""

from collections.abc import Mapping
from string import Template


def expand_variables(text: str, variables: Mapping[str, str]) -> str:
    """Replace ``$NAME`` and ``${NAME}`` with values from ``variables``.

    Unknown variables are left untouched, so a glob such as ``dist/$UNSET/*``
    survives expansion unchanged.

    Example:
        >>> expand_variables("builds/${BRANCH}/**", {"BRANCH": "main"})
        'builds/main/**'
    """
    if "$" not in text:
        return text
    return Template(text).safe_substitute(variables)
