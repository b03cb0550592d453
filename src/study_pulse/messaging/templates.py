"""
Message rendering.

Template copy uses ``{{variable}}`` placeholders (firstName, studyName,
timepoint, link, daysRemaining). Unknown variables render as empty strings.
Copy is rendered in a sandbox, so attribute access into Python internals
raises a ``SecurityError``.
Email bodies are split into paragraphs on blank lines and wrapped in the
HTML base layout, which autoescapes everything it is given.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from jinja2 import BaseLoader, Environment, TemplateNotFound, select_autoescape
from jinja2.sandbox import SandboxedEnvironment

BASE_LAYOUT = """\
<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="UTF-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>{{ brand }}</title>
  <style>
    body { font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, Arial, sans-serif;
           line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto; padding: 20px;
           background-color: #f5f5f5; }
    .container { background-color: #ffffff; border-radius: 8px; padding: 32px; }
    .logo { text-align: center; font-size: 24px; font-weight: bold; color: #4f46e5; margin-bottom: 24px; }
    p { margin: 16px 0; color: #444; }
    .footer { margin-top: 32px; padding-top: 16px; border-top: 1px solid #eee;
              font-size: 12px; color: #888; text-align: center; }
  </style>
</head>
<body>
  <div class="container">
    <div class="logo">{{ brand }}</div>
{% for paragraph in paragraphs %}
    <p>{% for line in paragraph %}{{ line }}{% if not loop.last %}<br>{% endif %}{% endfor %}</p>
{% endfor %}
{% if cta_text and cta_link %}
    <p style="text-align: center;">
      <a href="{{ cta_link }}" class="button" style="display: inline-block; background-color: #4f46e5; color: #ffffff; text-decoration: none; padding: 14px 28px; border-radius: 8px; font-weight: 600;">{{ cta_text }}</a>
    </p>
{% endif %}
    <div class="footer">
      <p>You're receiving this email because you're enrolled in a research study.</p>
    </div>
  </div>
</body>
</html>
"""


class _LayoutLoader(BaseLoader):
    def __init__(self, templates: dict[str, str]):
        self.templates = templates

    def get_source(self, environment, template):
        if template in self.templates:
            return self.templates[template], None, lambda: True
        raise TemplateNotFound(template)


# Participant-facing copy is study-supplied plain text; escaping happens in the layout.
_text_env = SandboxedEnvironment(autoescape=False, keep_trailing_newline=True)

_layout_env = Environment(
    loader=_LayoutLoader({"base.html": BASE_LAYOUT}),
    autoescape=select_autoescape(["html"]),
    trim_blocks=True,
    lstrip_blocks=True,
)


@dataclass
class RenderedEmail:
    subject: str
    html: str
    text: str


def render_text(source: str, variables: Mapping[str, Any]) -> str:
    """
    Substitute ``{{name}}`` placeholders.

    Raises:
        jinja2.TemplateError: the copy is not a valid template, or it reaches
            outside the sandbox (``jinja2.sandbox.SecurityError``).
    """
    return _text_env.from_string(source).render(**variables)


def to_paragraphs(text: str) -> list[list[str]]:
    """Blank lines separate paragraphs; single newlines become line breaks."""
    return [
        block.strip().split("\n")
        for block in text.replace("\r\n", "\n").split("\n\n")
        if block.strip()
    ]


def build_email(
    subject: str,
    body: str,
    variables: Mapping[str, Any],
    cta_text: str | None = None,
    cta_link: str | None = None,
    brand: str = "Study Platform",
) -> RenderedEmail:
    """Render subject and body copy and wrap the body in the HTML layout."""
    rendered_subject = render_text(subject, variables).strip()
    rendered_body = render_text(body, variables).strip()
    html = _layout_env.get_template("base.html").render(
        brand=brand,
        paragraphs=to_paragraphs(rendered_body),
        cta_text=cta_text,
        cta_link=render_text(cta_link, variables) if cta_link else None,
    )
    return RenderedEmail(subject=rendered_subject, html=html, text=rendered_body)
