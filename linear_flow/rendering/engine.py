"""Sandboxed Jinja2 rendering for pull request bodies.

The built-in template lives in ``linear_flow/rendering/templates``; a
project can point ``pull_request.template_path`` at its own file. Either
way the template runs in a SandboxedEnvironment with StrictUndefined so a
typo in a variable name fails loudly instead of rendering an empty string.

Example:
    >>> renderer = PullRequestRenderer()
    >>> body = renderer.render(
    ...     description="Add login form",
    ...     branch="feature/add-login",
    ...     base_branch="main",
    ...     commits=["Add form", "Wire up handler"],
    ... )
"""

from pathlib import Path
from typing import Any, cast

from jinja2 import FileSystemLoader, StrictUndefined, TemplateError
from jinja2.sandbox import SandboxedEnvironment

from linear_flow.exceptions import ConfigurationError

DEFAULT_TEMPLATE_DIR = Path(__file__).parent / "templates"
DEFAULT_TEMPLATE = "pull_request.md.j2"


class PullRequestRenderer:
    """Render pull request bodies from a Jinja2 template.

    Attributes:
        template_dir: Directory the template is loaded from
        template_name: File name of the template within ``template_dir``
        env: The sandboxed environment
    """

    def __init__(self, template_path: str | Path | None = None) -> None:
        """Initialize the renderer.

        Args:
            template_path: Custom template file. Uses the built-in template
                when None.

        Raises:
            ConfigurationError: If a custom template file does not exist.
        """
        if template_path is None:
            self.template_dir = DEFAULT_TEMPLATE_DIR
            self.template_name = DEFAULT_TEMPLATE
        else:
            path = Path(template_path).resolve()
            if not path.is_file():
                raise ConfigurationError(f"Pull request template not found: {template_path}")
            self.template_dir = path.parent
            self.template_name = path.name

        self.env = SandboxedEnvironment(
            loader=FileSystemLoader(str(self.template_dir)),
            undefined=StrictUndefined,
            autoescape=False,  # Markdown, not HTML
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=True,
        )
        self.env.globals.update({"none": None})

    def render(
        self,
        description: str,
        branch: str,
        base_branch: str,
        commits: list[str],
        kind: str = "feature",
        **extra: Any,
    ) -> str:
        """Render the body for one pull request.

        Extra keyword arguments (``issue``, ``severity`` for hotfixes) are
        passed through to the template; the built-in template expects both
        to be present, possibly as None.

        Raises:
            ConfigurationError: If the template fails to load or render
        """
        context: dict[str, Any] = {
            "description": description,
            "branch": branch,
            "base_branch": base_branch,
            "commits": commits,
            "kind": kind,
            "issue": None,
            "severity": None,
            **extra,
        }
        try:
            template = self.env.get_template(self.template_name)
            return cast(str, template.render(**context)).strip() + "\n"
        except TemplateError as e:
            raise ConfigurationError(f"Cannot render pull request template {self.template_name}: {e}") from e
