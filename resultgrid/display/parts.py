"""Which parts of the results table are shown."""

from dataclasses import dataclass, replace
from enum import Enum


class DeleteLink(Enum):
    """Kind of per-row delete link."""
    NO_DELETE = 'nodelete'
    DELETE_ROW = 'delete'
    KILL_PROCESS = 'kill'


@dataclass(frozen=True)
class DisplayParts:
    """Immutable set of switches for the links and forms around a result set."""
    has_edit_link: bool = True
    delete_link: DeleteLink = DeleteLink.DELETE_ROW
    has_sort_link: bool = True
    has_navigation_bar: bool = True
    has_bookmark_form: bool = True
    has_text_button: bool = False
    has_print_link: bool = True

    def with_(self, **changes) -> 'DisplayParts':
        """Return a copy with the given switches changed."""
        return replace(self, **changes)

    @classmethod
    def none(cls) -> 'DisplayParts':
        """Parts for a result without any link, e.g. a print view."""
        return cls(
            has_edit_link=False,
            delete_link=DeleteLink.NO_DELETE,
            has_sort_link=False,
            has_navigation_bar=False,
            has_bookmark_form=False,
            has_text_button=False,
            has_print_link=False,
        )
