"""
Frontend HTML routes for the inline editor.

Serves the list page and the HTMX endpoints behind every row and form.
Each POST runs one turn of the caller's EditingSession while holding the
session lock, answers with out-of-band fragments for whatever the turn
changed, and flushes queued effects into ``HX-Trigger-After-Settle``.

Routes:
    GET  /                      → index.html (list + create form)
    POST /forms/{key}/open      → open a form (row click / "New expense")
    POST /forms/{key}/change    → as-you-type validation of one field
    POST /forms/{key}/submit    → create or update
    POST /forms/{key}/cancel    → close, restoring the previously open form

``key`` is ``new`` for the create form or an item id.
"""

import logging
from collections.abc import Callable
from typing import Any

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import HTMLResponse, Response
from fastapi.templating import Jinja2Templates
from starlette.concurrency import run_in_threadpool

from editing.effects import HxTriggerChannel
from editing.forms import RowFormComponent
from editing.items import CREATE_FORM, FormKey, Item, parse_form_key
from editing.session import EditingSession, SessionRegistry, TurnResult

logger = logging.getLogger(__name__)

router = APIRouter(tags=["frontend"])

SESSION_COOKIE = "editor_session"
EDITABLE_FIELDS = ("description", "amount")

# Templates instance is set by create_app() after mounting.
_templates: Jinja2Templates | None = None


def set_templates(t: Jinja2Templates) -> None:
    global _templates
    _templates = t


def _tmpl() -> Jinja2Templates:
    if _templates is None:
        raise RuntimeError("Templates not initialised — call set_templates() first")
    return _templates


# ── Session helpers ───────────────────────────────────────────────────────────

def _registry(request: Request) -> SessionRegistry:
    return request.app.state.sessions


async def _session(request: Request) -> EditingSession:
    session_id = request.cookies.get(SESSION_COOKIE)
    return await run_in_threadpool(_registry(request).get_or_create, session_id)


def _form_key(raw: str) -> FormKey:
    try:
        return parse_form_key(raw)
    except ValueError:
        raise HTTPException(status_code=404, detail=f"No form {raw!r}") from None


def _set_cookie(request: Request, response: Response, session: EditingSession) -> None:
    response.set_cookie(
        SESSION_COOKIE,
        session.session_id,
        max_age=request.app.state.config.session_ttl,
        httponly=True,
        samesite="lax",
    )


# ── View models ───────────────────────────────────────────────────────────────

def _row_view(session: EditingSession, item: Item) -> dict[str, Any]:
    vocabulary = session.vocabulary
    return {
        "id": item.id,
        "description": item.get("description", ""),
        "amount": item.get("amount"),
        "effects": vocabulary.render(vocabulary.for_row(item.id)),
        "hidden": session.coordinator.token == item.id,
    }


def _form_view(session: EditingSession, component: RowFormComponent) -> dict[str, Any]:
    state = component.state
    view: dict[str, Any] = {
        "key": component.key,
        "visible": state.visible,
        "draft": state.draft,
        "errors": state.errors,
        "is_create": component.is_create_form,
        "effects": None,
    }
    if component.is_create_form:
        vocabulary = session.vocabulary
        view["effects"] = vocabulary.render(vocabulary.for_create_form())
    return view


def _entries(session: EditingSession) -> list[dict[str, Any]]:
    return [
        {"row": _row_view(session, item), "form": _form_view(session, session.component(item.id))}
        for item in session.items
    ]


def _turn_context(
    session: EditingSession,
    result: TurnResult,
    *,
    forms: list[FormKey] | None = None,
    errors_for: list[FormKey] | None = None,
) -> dict[str, Any]:
    """Pick the fragments a turn has to swap out-of-band."""
    keys = list(result.stale_forms)
    for key in forms or []:
        if key not in keys:
            keys.append(key)
    if result.changes.relisted:
        # The list fragment already carries every row form.
        keys = [k for k in keys if k == CREATE_FORM]
    return {
        "forms": [_form_view(session, session.components[k]) for k in keys if k in session.components],
        "rows": [] if result.changes.relisted else [
            _row_view(session, item) for item in session.items if item.id in result.changes.rows
        ],
        "relisted": result.changes.relisted,
        "entries": _entries(session) if result.changes.relisted else [],
        "error_forms": [
            _form_view(session, session.components[k])
            for k in errors_for or [] if k in session.components and k not in keys
        ],
    }


# ── Turn runner ───────────────────────────────────────────────────────────────

async def _run(
    request: Request,
    raw_key: str,
    event: Callable[[EditingSession, FormKey], TurnResult],
    *,
    render_form: bool = False,
    render_errors: bool = False,
    render_on_failure: bool = False,
) -> HTMLResponse:
    key = _form_key(raw_key)
    session = await _session(request)
    async with session.lock:
        try:
            result = await run_in_threadpool(event, session, key)
        except KeyError:
            raise HTTPException(status_code=404, detail=f"No form {raw_key!r}") from None
        context = _turn_context(
            session,
            result,
            forms=[key] if render_form or (render_on_failure and not result.ok) else [],
            errors_for=[key] if render_errors else [],
        )
        response = _tmpl().TemplateResponse(
            request, "partials/turn.html", {"request": request, **context}
        )
        connected = not await request.is_disconnected()
        sent = session.flush_effects(HxTriggerChannel(response.headers, connected=connected))
        if sent:
            logger.debug("session %s: sent %d effect(s)", session.session_id, sent)
    await run_in_threadpool(session.close_if_retired)
    _set_cookie(request, response, session)
    return response


async def _form_values(request: Request) -> dict[str, Any]:
    form = await request.form()
    return {name: form[name] for name in EDITABLE_FIELDS if name in form}


# ── Routes ────────────────────────────────────────────────────────────────────

@router.get("/", response_class=HTMLResponse, include_in_schema=False)
async def index(request: Request) -> HTMLResponse:
    """List page: every row with its hidden form, plus the create form."""
    session = await _session(request)
    async with session.lock:
        await run_in_threadpool(session.refresh)
        # A full render already reflects the current visibility.
        session.dispatcher.discard()
        response = _tmpl().TemplateResponse(
            request,
            "index.html",
            {
                "request": request,
                "entries": _entries(session),
                "create_form": _form_view(session, session.component(CREATE_FORM)),
                "total": len(session.items),
            },
        )
    await run_in_threadpool(session.close_if_retired)
    _set_cookie(request, response, session)
    return response


@router.post("/forms/{key}/open", response_class=HTMLResponse, include_in_schema=False)
async def open_form(key: str, request: Request) -> HTMLResponse:
    """Row click or "New expense": open one form, closing any other."""

    def event(session: EditingSession, form_key: FormKey) -> TurnResult:
        if form_key == CREATE_FORM:
            return session.show_create_form()
        return session.show_update_form(form_key)  # type: ignore[arg-type]

    return await _run(request, key, event)


@router.post("/forms/{key}/change", response_class=HTMLResponse, include_in_schema=False)
async def change_field(key: str, request: Request) -> HTMLResponse:
    """Validate the field named by ``field`` and return the form's error list."""
    form = await request.form()
    field = form.get("field")
    if field not in EDITABLE_FIELDS:
        raise HTTPException(status_code=400, detail=f"Unknown field {field!r}")
    value = form.get(field, "")

    def event(session: EditingSession, form_key: FormKey) -> TurnResult:
        return session.change_field(form_key, field, value)

    return await _run(request, key, event, render_errors=True)


@router.post("/forms/{key}/submit", response_class=HTMLResponse, include_in_schema=False)
async def submit_form(key: str, request: Request) -> HTMLResponse:
    """Create or update; on validation failure the form comes back with errors."""
    values = await _form_values(request)

    def event(session: EditingSession, form_key: FormKey) -> TurnResult:
        return session.submit(form_key, values)

    return await _run(request, key, event, render_on_failure=True)


@router.post("/forms/{key}/cancel", response_class=HTMLResponse, include_in_schema=False)
async def cancel_form(key: str, request: Request) -> HTMLResponse:
    """Discard the draft and close the form."""

    def event(session: EditingSession, form_key: FormKey) -> TurnResult:
        return session.cancel(form_key)

    return await _run(request, key, event, render_form=True)
