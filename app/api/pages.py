"""
Minimal HTML pages for the access dispatcher: password prompt, warning
interstitial, iframe embed. Every interpolated value is escaped.
"""

from urllib.parse import urlencode

from fastapi.responses import HTMLResponse

from app.models.link import LinkRecord

_STYLE = """
body { font-family: -apple-system, Arial, sans-serif; max-width: 420px; margin: 100px auto; padding: 20px; }
.error { color: #c0392b; margin-bottom: 15px; }
.dest { word-break: break-all; background: #f5f5f5; padding: 8px; border-radius: 4px; }
input[type="password"] { width: 100%; padding: 8px; border: 1px solid #ddd; border-radius: 4px; }
button, .button { background: #007bff; color: #fff; padding: 10px 20px; border: none; border-radius: 4px;
                  cursor: pointer; text-decoration: none; display: inline-block; margin-top: 12px; }
"""


def _html_escape(s: str) -> str:
    return (
        s.replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
        .replace("'", "&#x27;")
    )


def _page(title: str, body: str, status_code: int = 200) -> HTMLResponse:
    html = f"""<!DOCTYPE html>
<html>
<head>
<meta charset="utf-8">
<meta name="viewport" content="width=device-width,initial-scale=1">
<meta name="robots" content="noindex,nofollow">
<title>{_html_escape(title)}</title>
<style>{_STYLE}</style>
</head>
<body>
{body}
</body>
</html>"""
    return HTMLResponse(content=html, status_code=status_code, headers={"Cache-Control": "no-store"})


def password_page(error: str | None = None, status_code: int = 200) -> HTMLResponse:
    error_html = f'<div class="error">{_html_escape(error)}</div>' if error else ""
    body = f"""<h2>This link is password protected</h2>
{error_html}
<form method="GET">
  <label for="password">Password</label>
  <input type="password" id="password" name="password" required autofocus>
  <button type="submit">Continue</button>
</form>"""
    return _page("Password required", body, status_code)


def warning_page(link: LinkRecord, password: str | None = None) -> HTMLResponse:
    params = {"confirmed": "1"}
    if password:
        params["password"] = password
    confirm_href = "?" + urlencode(params)
    title = link.title or "External link"
    body = f"""<h2>You are leaving this site</h2>
<p>{_html_escape(title)} points to:</p>
<p class="dest">{_html_escape(link.target_url)}</p>
<a class="button" href="{_html_escape(confirm_href)}" rel="noreferrer">Continue</a>"""
    return _page("Confirm destination", body)


def iframe_page(link: LinkRecord) -> HTMLResponse:
    html = f"""<!DOCTYPE html>
<html>
<head>
<meta charset="utf-8">
<meta name="viewport" content="width=device-width,initial-scale=1">
<title>{_html_escape(link.title or "Loading…")}</title>
<style>body {{ margin: 0; }} iframe {{ width: 100vw; height: 100vh; border: none; }}</style>
</head>
<body>
<iframe src="{_html_escape(link.target_url)}" allowfullscreen referrerpolicy="no-referrer"></iframe>
</body>
</html>"""
    return HTMLResponse(content=html, headers={"Cache-Control": "no-store"})
