"""
REST API routes for the Second Brain backend.

Organized into logical groups:
- Auth: registration, login, current user
- Folders: CRUD for the caller's folders (delete cascades to notes)
- Notes: CRUD plus folder/search filtering
- AI: chat relay constrained to the supplied context

Everything except registration, login and health requires authentication.
Folder and note lookups are scoped to the caller, so another user's rows
answer 404 exactly like missing rows.
"""

import logging

from flask import Blueprint, g, jsonify, request
from pydantic import ValidationError

from .auth import create_access_token, hash_password, require_auth, verify_password
from .services.chat_service import is_quota_not_configured, is_rate_limit_error
from .services.container import get_services
from .services.models import ChatRequest, NoteUpdate
from .services.openai_provider import AIConfigurationError
from .services.storage import FolderNotFoundError

logger = logging.getLogger(__name__)

bp = Blueprint("api", __name__)


def _json_error(message: str, status: int = 400):
    return jsonify({"error": message}), status


def _internal_error():
    return _json_error("Internal Server Error", 500)


# Largest value an INTEGER primary key can hold (SQLite and Postgres BIGINT).
MAX_ID = 2**63 - 1


def _parse_id(value) -> int | None:
    """Parse a numeric id from a path segment or JSON value; None if malformed."""
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value.isdecimal():
            return None
        value = int(value)
    if not isinstance(value, int) or not 0 <= value <= MAX_ID:
        return None
    return value


def _json_body() -> dict | None:
    """
    The request body as a JSON object.

    Returns {} when there is no JSON body and None when the body is JSON
    but not an object.
    """
    data = request.get_json(silent=True)
    if data is None:
        return {}
    return data if isinstance(data, dict) else None


def _dump(model):
    return model.model_dump(mode="json", by_alias=True)


# ============================================================================
# AUTH ENDPOINTS
# ============================================================================


@bp.post("/auth/register")
def register():
    """
    Register a new user.

    Body:
        JSON: {"name": str, "email": str, "password": str}

    Returns:
        201 {"message": "User created", "user": {...}} or 400 error
    """
    data = _json_body()
    if data is None:
        return _json_error("Invalid JSON body")

    name = data.get("name")
    email = data.get("email")
    password = data.get("password")

    if not all(isinstance(v, str) and v.strip() for v in (name, email, password)):
        return _json_error("Missing fields")

    try:
        user = get_services().storage.create_user(
            name=name.strip(),
            email=email.strip().lower(),
            password_hash=hash_password(password),
        )
        if not user:
            return _json_error("Email already in use")

        return jsonify({"message": "User created", "user": _dump(user)}), 201

    except Exception:
        logger.exception("Register error")
        return _internal_error()


@bp.post("/auth/login")
def login():
    """
    Exchange email + password for a bearer token.

    Returns:
        JSON: {"access_token": str, "token_type": "bearer", "user": {...}}
    """
    data = _json_body()
    if data is None:
        return _json_error("Invalid JSON body")

    email = data.get("email")
    password = data.get("password")

    if not isinstance(email, str) or not email.strip() or not isinstance(password, str) or not password:
        return _json_error("Missing fields")

    try:
        found = get_services().storage.get_user_credentials(email.strip().lower())
        if not found or not verify_password(password, found[1]):
            return _json_error("Invalid credentials", 401)

        user = found[0]
        return jsonify(
            {
                "access_token": create_access_token(user.id),
                "token_type": "bearer",
                "user": _dump(user),
            }
        )

    except Exception:
        logger.exception("Login error")
        return _internal_error()


@bp.get("/auth/me")
@require_auth
def me():
    try:
        user = get_services().storage.get_user(g.user_id)
        if not user:
            return _json_error("Unauthorized", 401)
        return jsonify(_dump(user))

    except Exception:
        logger.exception("Get current user error")
        return _internal_error()


# ============================================================================
# FOLDER ENDPOINTS
# ============================================================================


@bp.get("/folders")
@require_auth
def list_folders():
    """
    List the caller's folders, newest first, with note counts.

    Returns:
        JSON: [Folder, ...]
    """
    try:
        folders = get_services().storage.list_folders(g.user_id)
        return jsonify([_dump(f) for f in folders])

    except Exception:
        logger.exception("Get folders error")
        return _internal_error()


@bp.post("/folders")
@require_auth
def create_folder():
    """
    Create a folder.

    Body:
        JSON: {"name": str}

    Returns:
        201 Folder
    """
    data = _json_body()
    if data is None:
        return _json_error("Invalid JSON body")
    name = data.get("name")

    if not isinstance(name, str) or not name.strip():
        return _json_error("Name is required")

    try:
        folder = get_services().storage.create_folder(g.user_id, name.strip())
        return jsonify(_dump(folder)), 201

    except Exception:
        logger.exception("Create folder error")
        return _internal_error()


@bp.patch("/folders/<folder_id>")
@require_auth
def rename_folder(folder_id: str):
    """
    Rename a folder (user-scoped).

    Returns:
        JSON: Updated folder or 404 error
    """
    data = _json_body()
    if data is None:
        return _json_error("Invalid JSON body")
    name = data.get("name")

    if not isinstance(name, str) or not name.strip():
        return _json_error("Name is required")

    folder_id_int = _parse_id(folder_id)
    if folder_id_int is None:
        return _json_error("Invalid ID")

    try:
        folder = get_services().storage.rename_folder(g.user_id, folder_id_int, name.strip())
        if not folder:
            return _json_error("Folder not found", 404)
        return jsonify(_dump(folder))

    except Exception:
        logger.exception("Update folder error")
        return _internal_error()


@bp.delete("/folders/<folder_id>")
@require_auth
def delete_folder(folder_id: str):
    """
    Delete a folder and every note in it (user-scoped, irreversible).

    Returns:
        JSON: {"message": "Folder deleted"} or 404 error
    """
    folder_id_int = _parse_id(folder_id)
    if folder_id_int is None:
        return _json_error("Invalid ID")

    try:
        success = get_services().storage.delete_folder(g.user_id, folder_id_int)
        if not success:
            return _json_error("Folder not found", 404)
        return jsonify({"message": "Folder deleted"})

    except Exception:
        logger.exception("Delete folder error")
        return _internal_error()


# ============================================================================
# NOTES ENDPOINTS
# ============================================================================


@bp.get("/notes")
@require_auth
def list_notes():
    """
    List notes with optional filtering (user-scoped).

    Query params:
        - folderId: Only notes in this folder (ignored if not numeric)
        - search: Case-insensitive match on title or content

    Returns:
        JSON: [Note, ...] most recently updated first
    """
    folder_id = _parse_id(request.args.get("folderId"))
    search = request.args.get("search") or None

    try:
        notes = get_services().storage.list_notes(g.user_id, folder_id=folder_id, search=search)
        return jsonify([_dump(n) for n in notes])

    except Exception:
        logger.exception("Get notes error")
        return _internal_error()


@bp.post("/notes")
@require_auth
def create_note():
    """
    Create a note.

    Body:
        JSON: {
            "title": str (optional, default "Untitled"),
            "content": str (optional, HTML),
            "folderId": int (optional, default: the "Unfiled" folder)
        }

    Returns:
        201 Note
    """
    data = _json_body()
    if data is None:
        return _json_error("Invalid JSON body")

    title = data.get("title")
    content = data.get("content")
    if (title is not None and not isinstance(title, str)) or (
        content is not None and not isinstance(content, str)
    ):
        return _json_error("Invalid note fields")

    folder_id = None
    raw_folder_id = data.get("folderId")
    if raw_folder_id not in (None, ""):
        folder_id = _parse_id(raw_folder_id)
        if folder_id is None:
            return _json_error("Invalid folder ID")

    try:
        note = get_services().storage.create_note(
            g.user_id, title=title, content=content, folder_id=folder_id
        )
        return jsonify(_dump(note)), 201

    except FolderNotFoundError:
        return _json_error("Folder not found", 404)
    except Exception:
        logger.exception("Create note error")
        return _internal_error()


@bp.get("/notes/<note_id>")
@require_auth
def get_note(note_id: str):
    """
    Get a specific note by ID (user-scoped).

    Returns:
        JSON: Note object or 404 error
    """
    note_id_int = _parse_id(note_id)
    if note_id_int is None:
        return _json_error("Invalid ID")

    try:
        note = get_services().storage.get_note(g.user_id, note_id_int)
        if not note:
            return _json_error("Note not found", 404)
        return jsonify(_dump(note))

    except Exception:
        logger.exception("Get note error")
        return _internal_error()


@bp.patch("/notes/<note_id>")
@require_auth
def update_note(note_id: str):
    """
    Partially update a note (user-scoped).

    Body:
        JSON: {
            "title": str (optional),
            "content": str (optional),
            "folderId": int (optional; must be one of the caller's folders)
        }

    Returns:
        JSON: Updated note object or 404 error
    """
    note_id_int = _parse_id(note_id)
    if note_id_int is None:
        return _json_error("Invalid ID")

    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return _json_error("No data provided")

    fields = {k: data[k] for k in ("title", "content") if k in data}
    if "folderId" in data:
        folder_id = _parse_id(data["folderId"])
        # A folderId that isn't a number is ignored, as the editor sends "" for none.
        if folder_id is not None:
            fields["folderId"] = folder_id

    try:
        update = NoteUpdate.model_validate(fields)
    except ValidationError:
        return _json_error("Invalid note fields")

    try:
        note = get_services().storage.update_note(
            g.user_id,
            note_id_int,
            update.model_dump(exclude_unset=True, exclude_none=True),
        )
        if not note:
            return _json_error("Note not found", 404)
        return jsonify(_dump(note))

    except FolderNotFoundError:
        return _json_error("Folder not found", 404)
    except Exception:
        logger.exception("Update note error")
        return _internal_error()


@bp.delete("/notes/<note_id>")
@require_auth
def delete_note(note_id: str):
    """
    Delete a note by ID (user-scoped).

    Returns:
        JSON: {"message": "Note deleted"} or 404 error
    """
    note_id_int = _parse_id(note_id)
    if note_id_int is None:
        return _json_error("Invalid ID")

    try:
        success = get_services().storage.delete_note(g.user_id, note_id_int)
        if not success:
            return _json_error("Note not found", 404)
        return jsonify({"message": "Note deleted"})

    except Exception:
        logger.exception("Delete note error")
        return _internal_error()


# ============================================================================
# AI CHAT
# ============================================================================


@bp.post("/ai/chat")
@require_auth
def ai_chat():
    """
    Ask the assistant a question about the supplied context.

    Body:
        { "message": str, "contextWindow": str?, "chatHistory": [{role, content}]? }

    Returns:
        {"reply": str} or {"error": str, "code": str}
    """
    svc = get_services()

    if not svc.chat.is_configured():
        logger.error("OPENAI_API_KEY is not configured")
        return jsonify(
            {
                "error": "AI service is not configured. Please contact support.",
                "code": "AI_NOT_CONFIGURED",
            }
        ), 500

    data = _json_body()
    if data is None:
        return _json_error("Invalid JSON body")

    try:
        chat_request = ChatRequest.model_validate(data)
    except ValidationError:
        return _json_error("Message is required")

    try:
        reply = svc.chat.reply(
            chat_request.message,
            context_window=chat_request.context_window,
            chat_history=chat_request.chat_history,
        )
        return jsonify({"reply": reply})

    except AIConfigurationError:
        logger.exception("AI chat configuration error")
        return jsonify(
            {
                "error": "AI service is not configured. Please contact support.",
                "code": "AI_NOT_CONFIGURED",
            }
        ), 500
    except Exception as e:
        logger.exception("AI chat error")

        if is_rate_limit_error(e):
            return jsonify(
                {
                    "error": "Rate limit exceeded. Please wait a moment and try again. "
                    "If this persists, your API quota may need to be increased.",
                    "code": "RATE_LIMIT_EXCEEDED",
                }
            ), 429

        if is_quota_not_configured(e):
            return jsonify(
                {
                    "error": "API quota not configured. Please check your OpenAI API key "
                    "settings and ensure billing/quota is enabled.",
                    "code": "QUOTA_NOT_CONFIGURED",
                }
            ), 500

        return jsonify({"error": "Internal Server Error", "code": "INTERNAL_ERROR"}), 500


# ============================================================================
# UTILITY ENDPOINTS
# ============================================================================


@bp.get("/health")
def health():
    """Health check endpoint."""
    return jsonify({"status": "ok"})
