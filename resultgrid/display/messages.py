"""User facing messages assembled from translatable text and parameters."""

from typing import Any, List, Tuple, Union

from markupsafe import Markup, escape


class Message:
    """A message with %-style parameters and appended fragments.

    Plain parameters and texts are escaped; ``*_html`` variants are inserted
    as they are.
    """

    SUCCESS = 'success'
    NOTICE = 'notice'
    ERROR = 'error'

    def __init__(self, text: str, level: str = NOTICE):
        self.text = text
        self.level = level
        self.params: List[Any] = []
        self.added: List[Tuple[str, Markup]] = []

    @classmethod
    def success(cls, text: str) -> 'Message':
        return cls(text, cls.SUCCESS)

    @classmethod
    def notice(cls, text: str) -> 'Message':
        return cls(text, cls.NOTICE)

    @classmethod
    def error(cls, text: str) -> 'Message':
        return cls(text, cls.ERROR)

    def add_param(self, value: Any) -> None:
        self.params.append(value if isinstance(value, (int, float)) else escape(str(value)))

    def add_param_html(self, value: str) -> None:
        self.params.append(Markup(value))

    def add_text(self, text: str, separator: str = ' ') -> None:
        self.added.append((separator, escape(text)))

    def add_html(self, html: Union[str, Markup], separator: str = ' ') -> None:
        self.added.append((separator, Markup(html)))

    def add_message(self, message: 'Message', separator: str = ' ') -> None:
        self.added.append((separator, message.get_message()))

    def get_message(self) -> Markup:
        message = escape(self.text)
        if self.params:
            message = message % tuple(self.params)
        for separator, fragment in self.added:
            message += Markup(separator) + fragment
        return message

    def __str__(self) -> str:
        return str(self.get_message())
