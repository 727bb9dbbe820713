"""
Jinja2 rendering of the result display templates.
"""

import logging
import os
from typing import Any, Callable, Dict, Optional

from jinja2 import Environment, FileSystemLoader, select_autoescape
from markupsafe import Markup

from .display.urls import Url_Builder, query_value

logger = logging.getLogger(__name__)

TEMPLATE_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), 'templates')


class Template_Renderer:
    """
    Renders the HTML fragments of the results table.

    Templates get ``link_or_button``, ``get_common`` and ``url`` as globals
    so links are built the same way as in Python code. ``token()`` gives the
    form token of the current session, or an empty string without a
    ``token_provider``.
    """

    def __init__(self, url_builder: Url_Builder, template_dir: Optional[str] = None,
                 token_provider: Optional[Callable[[], str]] = None):
        self.url_builder = url_builder
        self.token_provider = token_provider
        self.environment = Environment(
            loader=FileSystemLoader(template_dir or TEMPLATE_DIR),
            autoescape=select_autoescape(['html']),
            trim_blocks=True,
            lstrip_blocks=True,
        )
        self.environment.globals.update(
            link_or_button=url_builder.link_or_button,
            get_common=url_builder.get_common,
            url=url_builder.get_from_route,
            token=self.form_token,
        )
        self.environment.filters['query_value'] = query_value

    def render(self, template_name: str, context: Optional[Dict[str, Any]] = None) -> Markup:
        """
        Render a template to markup.

        Args:
            template_name: Path below the template directory
            context: Template variables

        Returns:
            Markup: The rendered HTML
        """
        template = self.environment.get_template(template_name)
        return Markup(template.render(**(context or {})))

    def form_token(self) -> str:
        return self.token_provider() if self.token_provider is not None else ''
