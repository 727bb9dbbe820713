"""Small HTML fragments shared by the result display."""

from typing import Dict, Optional

from markupsafe import Markup, escape


def get_image(name: str, alternate: str = '', attrs: Optional[Dict[str, str]] = None) -> Markup:
    """
    An icon from the stylesheet's icon set.

    Args:
        name: Icon name, e.g. "b_edit" or "s_asc"
        alternate: Alternative text, also used as title
        attrs: Extra attributes; "class" is appended, "title" overrides

    Returns:
        Markup: The icon element
    """
    attrs = dict(attrs or {})
    css_class = 'icon ic_' + name
    if attrs.get('class'):
        css_class += ' ' + attrs.pop('class')
    else:
        attrs.pop('class', None)
    title = attrs.pop('title', alternate)
    extra = ''.join(f' {key}="{escape(value)}"' for key, value in attrs.items())
    return Markup(
        f'<span class="{escape(css_class)}" title="{escape(title)}" role="img" '
        f'aria-label="{escape(alternate)}"{extra}></span>'
    )


def get_icon(name: str, text: str = '', mode: str = 'both') -> Markup:
    """An icon followed by its label, or only one of them depending on ``mode``."""
    if mode == 'text':
        return Markup('<span class="text-nowrap">') + escape(text) + Markup('</span>')
    icon = get_image(name, text)
    if mode == 'icons':
        return Markup('<span class="text-nowrap">') + icon + Markup('</span>')
    return Markup('<span class="text-nowrap">') + icon + Markup('&nbsp;') + escape(text) + Markup('</span>')


def show_hint(message: str) -> Markup:
    """A help icon showing ``message`` on hover."""
    return get_image('b_help', message, {'class': 'hint'})
