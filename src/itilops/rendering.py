"""
Jinja2 description templates for synthesized records

Incident, problem and change descriptions are rendered from templates
shipped with the package; ``templates_dir`` in the configuration points at
an override directory with the same file names.
"""

import logging
from pathlib import Path
from typing import Any, Optional

import jinja2

logger = logging.getLogger(__name__)

DEFAULT_TEMPLATES_DIR = Path(__file__).parent / "templates"

INCIDENT_TEMPLATE = "incident_description.jinja2"
PROBLEM_TEMPLATE = "problem_description.jinja2"
CHANGE_TEMPLATE = "change_description.jinja2"


class DescriptionRenderer:
    """Manages Jinja2 templates for record descriptions"""

    def __init__(self, templates_dir: Optional[str] = None):
        self.templates_dir = Path(templates_dir) if templates_dir else DEFAULT_TEMPLATES_DIR
        self.env = jinja2.Environment(
            loader=jinja2.FileSystemLoader(str(self.templates_dir)),
            autoescape=False,
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=False,
        )

    def get_template(self, template_name: str) -> jinja2.Template:
        try:
            return self.env.get_template(template_name)
        except jinja2.TemplateNotFound:
            logger.error(f"Template not found: {template_name} in {self.templates_dir}")
            raise

    def render(self, template_name: str, context: dict[str, Any]) -> str:
        """Render a template with context, stripping surrounding whitespace"""
        return self.get_template(template_name).render(**context).strip()

    def incident_description(self, alert, ci) -> str:
        return self.render(INCIDENT_TEMPLATE, {"alert": alert, "ci": ci})

    def problem_description(self, pattern, ci) -> str:
        return self.render(PROBLEM_TEMPLATE, {"pattern": pattern, "ci": ci})

    def change_description(self, problem, rca) -> str:
        return self.render(CHANGE_TEMPLATE, {"problem": problem, "rca": rca})
