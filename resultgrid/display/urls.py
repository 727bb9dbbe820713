"""URL building and signing of SQL carried in links."""

import hashlib
import logging
from typing import Any, Dict, Optional
from urllib.parse import urlencode

from itsdangerous import Signer
from markupsafe import Markup, escape

logger = logging.getLogger(__name__)


class SignatureError(Exception):
    """Raised when a signed value in a request has been tampered with."""
    pass


def query_value(value: Any) -> str:
    if isinstance(value, bool):
        return '1' if value else '0'
    return str(value)


class Url_Builder:
    """Builds application URLs and signs the SQL they carry.

    Links to ``/sql`` carry the statement to run in plain text; the HMAC
    signature next to it proves the statement was generated by this
    application for the current secret key.
    """

    # Longest URL kept in an href
    LINK_LENGTH_LIMIT = 1000

    def __init__(self, secret_key: str, script_root: str = ''):
        """Initialize the URL builder.

        Args:
            secret_key: Application secret used for the HMAC signatures
            script_root: Prefix the application is mounted under
        """
        self.script_root = script_root.rstrip('/')
        self._sql_signer = Signer(secret_key, salt='resultgrid.sql-query', digest_method=hashlib.sha256)
        self._where_signer = Signer(secret_key, salt='resultgrid.where-clause', digest_method=hashlib.sha256)

    def get_common(self, params: Optional[Dict[str, Any]] = None, divider: str = '?') -> str:
        """Encode parameters as a query string, prefixed with ``divider``.

        None values are left out, booleans become 1/0.
        """
        pairs = [(key, query_value(value)) for key, value in (params or {}).items() if value is not None]
        if not pairs:
            return ''
        return divider + urlencode(pairs)

    def get_from_route(self, route: str, params: Optional[Dict[str, Any]] = None) -> str:
        url = self.script_root + route
        return url + self.get_common(params, '&' if '?' in url else '?')

    def sign_sql_query(self, sql_query: str) -> str:
        return self._sql_signer.get_signature(sql_query).decode('ascii')

    def check_sql_query_signature(self, sql_query: str, signature: Optional[str]) -> bool:
        if not signature:
            return False
        return self._sql_signer.verify_signature(sql_query, signature)

    def sign_where_clause(self, where_clause: str) -> str:
        return self._where_signer.get_signature(where_clause).decode('ascii')

    def check_where_clause_signature(self, where_clause: str, signature: Optional[str]) -> bool:
        if not signature:
            return False
        return self._where_signer.verify_signature(where_clause, signature)

    def require_sql_signature(self, sql_query: str, signature: Optional[str]) -> None:
        """
        Verify the signature of a statement taken from a URL.

        Raises:
            SignatureError: If the signature is missing or does not match
        """
        if not self.check_sql_query_signature(sql_query, signature):
            logger.warning("Rejected SQL query with invalid signature")
            raise SignatureError("There is an issue with your request: the SQL query signature is invalid.")

    def link_or_button(self, url: str, params: Optional[Dict[str, Any]], content: str,
                       attrs: Optional[Dict[str, str]] = None) -> Markup:
        """
        Build an anchor to ``url`` with ``params``.

        Links longer than LINK_LENGTH_LIMIT move their parameters to a
        ``data-post`` attribute; the page script submits those as POST.

        Args:
            url: Target path
            params: Query parameters, or None
            content: Inner HTML of the link (already escaped)
            attrs: Extra attributes of the anchor

        Returns:
            Markup: The anchor element
        """
        attrs = dict(attrs or {})
        if params is not None:
            url = url + self.get_common(params, '&' if '?' in url else '?')

        if len(url) > self.LINK_LENGTH_LIMIT:
            path, _, query = url.partition('?')
            attrs['data-post'] = query
            url = path

        attributes = ''.join(f' {name}="{escape(value)}"' for name, value in attrs.items())
        return Markup(f'<a href="{escape(url)}"{attributes}>{content}</a>')

    def sql_params(self, sql_query: str, **params) -> Dict[str, Any]:
        """Parameters for a ``/sql`` link running ``sql_query``."""
        result = dict(params)
        result['sql_query'] = sql_query
        result['sql_signature'] = self.sign_sql_query(sql_query)
        return result
