# Result set display module

from .messages import Message
from .parts import DeleteLink, DisplayParts
from .results import Display_Results
from .urls import SignatureError, Url_Builder

__all__ = ['Display_Results', 'DisplayParts', 'DeleteLink', 'Message', 'SignatureError', 'Url_Builder']
