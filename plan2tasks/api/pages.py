"""
Static HTML pages shown to end users in the browser.

Pages are generic on purpose: provider error details and token values
never appear here; they go to the logs and the JSON responses only.
"""

from html import escape

from fastapi.responses import HTMLResponse

_PAGE = """<!doctype html>
<html lang="en">
<head>
  <meta charset="utf-8"/>
  <meta name="viewport" content="width=device-width,initial-scale=1"/>
  <meta name="robots" content="noindex,nofollow"/>
  <title>{title}</title>
  <style>
    body{{font-family:system-ui,-apple-system,Segoe UI,Roboto,Helvetica,Arial,sans-serif;background:#f6f7f8;margin:0;padding:20px}}
    .card{{max-width:560px;margin:40px auto;background:#fff;border:1px solid #e5e7eb;border-radius:16px;padding:20px}}
    .cta{{display:inline-block;padding:8px 12px;border:1px solid #e5e7eb;border-radius:10px;text-decoration:none;color:#111}}
  </style>
</head>
<body><div class="card"><h1 style="margin:0 0 8px;font-size:18px">{title}</h1>{body}</div></body>
</html>"""


def render_page(title: str, paragraphs: list[str], link: tuple[str, str] | None = None) -> str:
    body = "".join(f"<p>{escape(p)}</p>" for p in paragraphs)
    if link:
        href, label = link
        body += f'<p><a class="cta" href="{escape(href, quote=True)}">{escape(label)}</a></p>'
    return _PAGE.format(title=escape(title), body=body)


def html_page(
    title: str,
    paragraphs: list[str],
    status_code: int = 200,
    link: tuple[str, str] | None = None,
) -> HTMLResponse:
    return HTMLResponse(
        render_page(title, paragraphs, link),
        status_code=status_code,
        headers={"Cache-Control": "no-store"},
    )


def connected_page(site_url: str) -> HTMLResponse:
    return html_page(
        "Connected",
        ["Success! Your Google Tasks are now connected.", "You can close this tab."],
        link=(site_url or "/", "Return to Plan2Tasks"),
    )


def authorization_failed_page(status_code: int = 400) -> HTMLResponse:
    return html_page(
        "Authorization failed",
        [
            "We couldn't connect your Google Tasks.",
            "Please open the invite link again, or ask your planner for a new one.",
        ],
        status_code=status_code,
    )


def server_error_page(status_code: int = 500) -> HTMLResponse:
    return html_page(
        "Something went wrong",
        ["Google accepted the authorization but we could not finish saving it.", "Please try the link again later."],
        status_code=status_code,
    )


def invite_missing_page() -> HTMLResponse:
    return html_page(
        "Invite not found",
        ["This invite link is invalid or has expired.", "Ask your planner to send a new invite."],
        status_code=404,
    )


def invite_accepted_page(start_url: str, already_used: bool) -> HTMLResponse:
    paragraphs = ["You're almost done. Authorize Plan2Tasks to add tasks to your Google Tasks."]
    if already_used:
        paragraphs.append("This invite was already opened; you can authorize again if needed.")
    return html_page("Connect Google Tasks", paragraphs, link=(start_url, "Authorize Google Tasks"))
