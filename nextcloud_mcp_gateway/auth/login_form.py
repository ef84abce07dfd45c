"""Login form shown on the authorization page."""

from pathlib import Path
from typing import Optional

from jinja2 import Environment, FileSystemLoader, select_autoescape

LOGIN_PATH = "/auth/login"

# Setup Jinja2 environment for templates. Autoescaping covers client_name and
# error, both of which may carry attacker-controlled text.
_template_dir = Path(__file__).parent / "templates"
_jinja_env = Environment(
    loader=FileSystemLoader(_template_dir),
    autoescape=select_autoescape(["html"]),
)


def render_login_form(
    client_id: str,
    redirect_uri: str,
    code_challenge: str,
    state: Optional[str] = None,
    scope: Optional[str] = None,
    client_name: Optional[str] = None,
    error: Optional[str] = None,
    action: str = LOGIN_PATH,
) -> str:
    """Render the Nextcloud sign-in page.

    Every value that must survive the round trip to the login endpoint is
    carried in a hidden field.

    Returns:
        HTML document as a string
    """
    template = _jinja_env.get_template("login.html")
    return template.render(
        client_id=client_id,
        redirect_uri=redirect_uri,
        code_challenge=code_challenge,
        state=state or "",
        scope=scope or "",
        client_name=client_name,
        error=error,
        action=action,
    )
