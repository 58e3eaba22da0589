"""HTML pages shown in the browser at the end of the authorization flow."""

import html
from typing import Protocol


class OAuthHTMLProvider(Protocol):
    """Supplies the pages the callback server returns to the browser."""

    def success_html(self) -> str:
        """Page shown when authorization succeeds."""
        ...

    def error_html(self, message: str) -> str:
        """Page shown when authorization fails."""
        ...


_PAGE = """<html>
<head><title>{title}</title></head>
<body style="font-family: Arial, sans-serif; max-width: 600px; margin: 50px auto; padding: 20px;">
    <h1 style="color: {color};">{heading}</h1>
    {body}
    <p style="margin-top: 30px; color: #666;">You can close this window and return to the application.</p>
</body>
</html>"""


class DefaultOAuthHTMLProvider:
    """Plain pages used when the caller does not supply its own provider."""

    def success_html(self) -> str:
        return _PAGE.format(
            title="Authorization Successful",
            color="#4caf50",
            heading="Authorization Successful",
            body="<p>Your application has been authorized to access your advertising account.</p>",
        )

    def error_html(self, message: str) -> str:
        return _PAGE.format(
            title="Authorization Failed",
            color="#d32f2f",
            heading="Authorization Failed",
            body=f"<p><strong>Error:</strong> {html.escape(message)}</p>",
        )
