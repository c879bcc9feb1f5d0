import logging
from pathlib import Path
from typing import Any

from fastapi import Depends, FastAPI, File, Form, HTTPException, Query, Request, UploadFile
from fastapi.responses import JSONResponse, RedirectResponse, Response
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates
from sqlalchemy import text
from sqlalchemy.exc import DataError, IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from repfinder import models  # noqa: F401  registers tables on Base.metadata
from repfinder.audit import list_audit_log, log_audit
from repfinder.bulk_upload import (
    REP_REQUIRED_COLUMNS,
    REP_TEMPLATE_CSV,
    TERRITORY_REQUIRED_COLUMNS,
    TERRITORY_TEMPLATE_CSV,
    clean_rep_row,
    import_reps,
    import_territories,
    parse_upload,
)
from repfinder.config import settings
from repfinder.database import Base, engine, get_db
from repfinder.directory import DirectoryUnavailable, EmployeeDirectory, get_directory
from repfinder.schemas import AssignmentPayload, RepPayload, UploadPayload
from repfinder.session import clear_session_cookie, get_session_user, require_session, set_session_cookie
from repfinder.validation import CHANNEL_CHOICES, CHANNELS, format_phone, validate_channel, validate_zip_code

BASE_DIR = Path(__file__).resolve().parent

app = FastAPI(title="Rep Finder")
app.mount("/static", StaticFiles(directory=BASE_DIR / "static"), name="static")
templates = Jinja2Templates(directory=BASE_DIR / "templates")
templates.env.filters["phone"] = format_phone
logger = logging.getLogger(__name__)

REP_COLUMNS = "id, first_name, last_name, email, phone, agency, channel, created_at"
ASSIGNMENT_COLUMNS = "id, zip_code, channel, rep_id, created_at"
AUDIT_LOG_PREVIEW = 20
LOGIN_REDIRECT = "/login?from=/admin"


@app.on_event("startup")
def ensure_tables():
    Base.metadata.create_all(bind=engine)


def rep_full_name(rep) -> str:
    return f"{rep['first_name']} {rep['last_name']}".strip()


def get_rep(db: Session, rep_id: int):
    return db.execute(
        text(f"SELECT {REP_COLUMNS} FROM reps WHERE id = :rep_id"),
        {"rep_id": rep_id},
    ).mappings().first()


def ensure_rep_exists(db: Session, rep_id: int):
    rep = get_rep(db, rep_id)
    if rep is None:
        raise HTTPException(status_code=404, detail="Rep not found")
    return rep


def parse_rep_id(value: str | int | None) -> int | None:
    if value is None or isinstance(value, int):
        return value
    cleaned = value.strip()
    if not cleaned:
        return None
    try:
        return int(cleaned)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Invalid rep_id. Must be a whole number.") from exc


def get_assignment_with_rep(db: Session, zip_code: str, channel: str):
    return db.execute(
        text(
            """
            SELECT a.id, a.zip_code, a.channel, a.rep_id, r.first_name, r.last_name
            FROM assignments a
            JOIN reps r ON r.id = a.rep_id
            WHERE a.zip_code = :zip_code AND a.channel = :channel
            """
        ),
        {"zip_code": zip_code, "channel": channel},
    ).mappings().first()


def lookup_reps_by_zip(db: Session, zip_code: str) -> dict[str, dict[str, Any] | None]:
    rows = db.execute(
        text(
            """
            SELECT a.channel AS assigned_channel,
                   r.id, r.first_name, r.last_name, r.email, r.phone, r.agency, r.channel
            FROM assignments a
            JOIN reps r ON r.id = a.rep_id
            WHERE a.zip_code = :zip_code
            """
        ),
        {"zip_code": zip_code},
    ).mappings().all()

    reps: dict[str, dict[str, Any] | None] = {channel: None for channel in CHANNELS}
    for row in rows:
        if row["assigned_channel"] in reps:
            rep = {k: v for k, v in row.items() if k != "assigned_channel"}
            reps[row["assigned_channel"]] = rep
    return reps


def safe_next_path(value: str) -> str:
    cleaned = value.strip()
    if cleaned.startswith("/") and not cleaned.startswith("//"):
        return cleaned
    return "/admin"


def create_rep_record(db: Session, user: dict[str, str], values: dict[str, Any]) -> dict[str, Any]:
    rep_data, message = clean_rep_row(values)
    if rep_data is None:
        raise HTTPException(status_code=400, detail=message)

    try:
        rep = dict(
            db.execute(
                text(
                    f"""
                    INSERT INTO reps (first_name, last_name, email, phone, agency, channel)
                    VALUES (:first_name, :last_name, :email, :phone, :agency, :channel)
                    RETURNING {REP_COLUMNS}
                    """
                ),
                rep_data,
            ).mappings().one()
        )
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(status_code=409, detail="A rep with this email already exists") from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Unexpected database error while creating rep")
        raise HTTPException(status_code=500, detail="Failed to create rep") from exc

    log_audit(
        db,
        user,
        "create",
        "reps",
        f"Created rep: {rep_full_name(rep)} ({rep['email']}) - {rep['channel']}",
        rep["id"],
    )
    return rep


def update_rep_record(db: Session, user: dict[str, str], rep_id: int, values: dict[str, Any]) -> dict[str, Any]:
    existing = ensure_rep_exists(db, rep_id)
    rep_data, message = clean_rep_row(values)
    if rep_data is None:
        raise HTTPException(status_code=400, detail=message)

    if rep_data["channel"] != existing["channel"]:
        held = db.execute(
            text("SELECT COUNT(*) FROM assignments WHERE rep_id = :rep_id"),
            {"rep_id": rep_id},
        ).scalar_one()
        if held:
            raise HTTPException(
                status_code=400,
                detail=(
                    f"Rep holds {held} assignment(s) in the {existing['channel']} channel. "
                    "Reassign or remove them before changing channel."
                ),
            )

    try:
        rep = dict(
            db.execute(
                text(
                    f"""
                    UPDATE reps
                    SET first_name = :first_name,
                        last_name = :last_name,
                        email = :email,
                        phone = :phone,
                        agency = :agency,
                        channel = :channel
                    WHERE id = :rep_id
                    RETURNING {REP_COLUMNS}
                    """
                ),
                {**rep_data, "rep_id": rep_id},
            ).mappings().one()
        )
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(status_code=409, detail="A rep with this email already exists") from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Unexpected database error while updating rep")
        raise HTTPException(status_code=500, detail="Failed to update rep") from exc

    log_audit(
        db,
        user,
        "update",
        "reps",
        f"Updated rep: {rep_full_name(rep)} ({rep['email']}) - {rep['channel']}",
        rep_id,
    )
    return rep


def delete_rep_record(db: Session, user: dict[str, str], rep_id: int) -> int:
    rep = ensure_rep_exists(db, rep_id)

    try:
        # ON DELETE CASCADE covers this too; deleting explicitly keeps SQLite without foreign_keys in line.
        removed = db.execute(
            text("DELETE FROM assignments WHERE rep_id = :rep_id"),
            {"rep_id": rep_id},
        ).rowcount
        db.execute(text("DELETE FROM reps WHERE id = :rep_id"), {"rep_id": rep_id})
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Unexpected database error while deleting rep")
        raise HTTPException(status_code=500, detail="Failed to delete rep") from exc

    log_audit(
        db,
        user,
        "delete",
        "reps",
        f"Deleted rep: {rep_full_name(rep)} ({rep['email']}) and {removed} assignment(s)",
        rep_id,
    )
    return removed


def clean_assignment_key(zip_code: str | None, channel: str | None) -> tuple[str, str]:
    zip_code = (zip_code or "").strip()
    channel = (channel or "").strip()
    if not validate_zip_code(zip_code):
        raise HTTPException(status_code=400, detail="Invalid zip code format")
    if not validate_channel(channel):
        raise HTTPException(status_code=400, detail=f"Invalid channel. Must be {CHANNEL_CHOICES}.")
    return zip_code, channel


def save_assignment(
    db: Session,
    user: dict[str, str],
    zip_code: str | None,
    channel: str | None,
    rep_id: str | int | None,
) -> dict[str, Any]:
    """Upsert the owner of one (zip, channel) slot and audit it as assign or reassign."""
    parsed_rep_id = parse_rep_id(rep_id)
    if not (zip_code or "").strip() or not (channel or "").strip() or parsed_rep_id is None:
        raise HTTPException(status_code=400, detail="zip_code, channel, and rep_id are required")
    zip_code, channel = clean_assignment_key(zip_code, channel)

    rep = ensure_rep_exists(db, parsed_rep_id)
    if rep["channel"] != channel:
        raise HTTPException(
            status_code=400,
            detail=f"Rep is assigned to {rep['channel']} channel, not {channel}",
        )

    previous = get_assignment_with_rep(db, zip_code, channel)

    try:
        assignment = dict(
            db.execute(
                text(
                    f"""
                    INSERT INTO assignments (zip_code, channel, rep_id)
                    VALUES (:zip_code, :channel, :rep_id)
                    ON CONFLICT (zip_code, channel)
                    DO UPDATE SET rep_id = EXCLUDED.rep_id
                    RETURNING {ASSIGNMENT_COLUMNS}
                    """
                ),
                {"zip_code": zip_code, "channel": channel, "rep_id": rep["id"]},
            ).mappings().one()
        )
        db.commit()
    except (IntegrityError, DataError) as exc:
        db.rollback()
        raise HTTPException(status_code=400, detail="Could not save assignment. Check field values.") from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Unexpected database error while saving assignment")
        raise HTTPException(status_code=500, detail="Failed to save assignment") from exc

    new_name = rep_full_name(rep)
    if previous is not None:
        log_audit(
            db,
            user,
            "update",
            "assignments",
            f"Reassigned {zip_code} ({channel}): {rep_full_name(previous)} -> {new_name}",
            assignment["id"],
        )
    else:
        log_audit(
            db,
            user,
            "create",
            "assignments",
            f"Assigned {zip_code} ({channel}) to {new_name}",
            assignment["id"],
        )
    return assignment


def remove_assignment(db: Session, user: dict[str, str], zip_code: str | None, channel: str | None) -> None:
    if not (zip_code or "").strip() or not (channel or "").strip():
        raise HTTPException(status_code=400, detail="zip_code and channel are required")
    zip_code, channel = clean_assignment_key(zip_code, channel)

    existing = get_assignment_with_rep(db, zip_code, channel)
    if existing is None:
        raise HTTPException(status_code=404, detail="Assignment not found")

    try:
        db.execute(
            text("DELETE FROM assignments WHERE zip_code = :zip_code AND channel = :channel"),
            {"zip_code": zip_code, "channel": channel},
        )
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Unexpected database error while deleting assignment")
        raise HTTPException(status_code=500, detail="Failed to delete assignment") from exc

    log_audit(
        db,
        user,
        "delete",
        "assignments",
        f"Deleted assignment: {zip_code} ({channel}) - was assigned to {rep_full_name(existing)}",
        existing["id"],
    )


def render_admin_page(
    request: Request,
    db: Session,
    user: dict[str, str],
    *,
    status_code: int = 200,
    rep_result: dict[str, Any] | None = None,
    territory_result: dict[str, Any] | None = None,
    upload_error: str = "",
    upload_kind: str = "",
    form_error: str = "",
    rep_form: dict[str, str] | None = None,
    edit_rep: dict[str, Any] | None = None,
    search_zip: str = "",
    audit_limit: int = AUDIT_LOG_PREVIEW,
    audit_offset: int = 0,
):
    reps = db.execute(
        text(
            """
            SELECT r.id, r.first_name, r.last_name, r.email, r.phone, r.agency, r.channel,
                   COUNT(a.id) AS assignment_count
            FROM reps r
            LEFT JOIN assignments a ON a.rep_id = r.id
            GROUP BY r.id, r.first_name, r.last_name, r.email, r.phone, r.agency, r.channel
            ORDER BY r.last_name, r.first_name
            """
        )
    ).mappings().all()

    search_zip = search_zip.strip()
    search_reps = None
    search_error = ""
    if search_zip:
        if validate_zip_code(search_zip):
            search_reps = lookup_reps_by_zip(db, search_zip)
        else:
            search_error = "Please enter a valid 5-digit zip code."

    audit_entries, audit_total = list_audit_log(db, audit_limit, audit_offset)
    return templates.TemplateResponse(
        request,
        "admin.html",
        {
            "user": user,
            "reps": reps,
            "reps_by_channel": {c: [r for r in reps if r["channel"] == c] for c in CHANNELS},
            "channels": CHANNELS,
            "audit_entries": audit_entries,
            "audit_total": audit_total,
            "audit_limit": audit_limit,
            "audit_offset": audit_offset,
            "rep_result": rep_result,
            "territory_result": territory_result,
            "upload_error": upload_error,
            "upload_kind": upload_kind,
            "form_error": form_error,
            "rep_form": rep_form or {},
            "edit_rep": edit_rep,
            "search_zip": search_zip,
            "search_reps": search_reps,
            "search_error": search_error,
        },
        status_code=status_code,
    )


def record_rep_upload(db: Session, user: dict[str, str], result: dict[str, Any]) -> None:
    if result["created"] > 0 or result["updated"] > 0:
        log_audit(
            db,
            user,
            "bulk_upload",
            "reps",
            f"Bulk upload: {result['created']} created, {result['updated']} updated, "
            f"{len(result['errors'])} errors",
        )


def record_territory_upload(db: Session, user: dict[str, str], result: dict[str, Any]) -> None:
    if result["success"] > 0:
        log_audit(
            db,
            user,
            "bulk_upload",
            "assignments",
            f"Bulk upload: {result['success']} assignments saved, {len(result['errors'])} errors",
        )


@app.get("/health")
def health(db: Session = Depends(get_db)):
    db.execute(text("SELECT 1"))
    return {"ok": True}


@app.get("/")
def home():
    return RedirectResponse(url="/lookup", status_code=307)


@app.get("/lookup")
def lookup_page(request: Request, zip_code: str = Query(default="", alias="zip"), db: Session = Depends(get_db)):
    cleaned = zip_code.strip()
    error = ""
    reps = None
    if cleaned:
        if validate_zip_code(cleaned):
            reps = lookup_reps_by_zip(db, cleaned)
        else:
            error = "Please enter a valid 5-digit zip code."
    return templates.TemplateResponse(
        request,
        "lookup.html",
        {"zip": cleaned, "reps": reps, "error": error, "channels": CHANNELS},
        status_code=400 if error else 200,
    )


@app.get("/api/get-reps")
def get_reps(zip_code: str = Query(default="", alias="zip"), db: Session = Depends(get_db)):
    if not zip_code:
        raise HTTPException(status_code=400, detail="Missing required parameter: zip")
    if not validate_zip_code(zip_code):
        raise HTTPException(status_code=400, detail="Invalid zip code format. Must be 5 digits.")

    try:
        reps = lookup_reps_by_zip(db, zip_code)
    except SQLAlchemyError as exc:
        logger.exception("Unexpected database error while looking up zip %s", zip_code)
        raise HTTPException(status_code=500, detail="Database error") from exc
    return {"zip": zip_code, "reps": reps}


@app.get("/login")
def login_page(request: Request, next_path: str = Query(default="/admin", alias="from")):
    if get_session_user(request) is not None:
        return RedirectResponse(url="/admin", status_code=303)
    return templates.TemplateResponse(
        request,
        "login.html",
        {"error": "", "username": "", "next_path": safe_next_path(next_path)},
    )


@app.post("/login")
def login(
    request: Request,
    username: str = Form(""),
    password: str = Form(""),
    next_path: str = Form("/admin", alias="next"),
    directory: EmployeeDirectory = Depends(get_directory),
):
    form_values = {"username": username.strip(), "next_path": safe_next_path(next_path)}
    if not form_values["username"] or not password:
        return templates.TemplateResponse(
            request,
            "login.html",
            {**form_values, "error": "Username and password are required."},
            status_code=400,
        )

    try:
        user = directory.authenticate(form_values["username"], password)
    except DirectoryUnavailable:
        return templates.TemplateResponse(
            request,
            "login.html",
            {**form_values, "error": "Authentication service unavailable."},
            status_code=503,
        )

    if user is None:
        return templates.TemplateResponse(
            request,
            "login.html",
            {**form_values, "error": "Invalid username or password."},
            status_code=401,
        )

    logger.info("User %s signed in", user["username"])
    response = RedirectResponse(url=form_values["next_path"], status_code=303)
    set_session_cookie(response, user)
    return response


@app.post("/logout")
def logout():
    response = RedirectResponse(url="/login", status_code=303)
    clear_session_cookie(response)
    return response


@app.get("/api/auth/check")
def auth_check(request: Request):
    user = get_session_user(request)
    if user is None:
        return JSONResponse({"authenticated": False}, status_code=401)
    return {
        "authenticated": True,
        "user": {"username": user["username"], "full_name": user["full_name"]},
    }


@app.get("/admin")
def admin_page(
    request: Request,
    search_zip: str = Query(default="", alias="zip"),
    edit: int | None = Query(default=None),
    audit_limit: int = Query(default=AUDIT_LOG_PREVIEW, ge=1, le=500),
    audit_offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
):
    user = get_session_user(request)
    if user is None:
        return RedirectResponse(url=LOGIN_REDIRECT, status_code=303)

    edit_rep = None
    if edit is not None:
        rep = get_rep(db, edit)
        edit_rep = dict(rep) if rep is not None else None
    return render_admin_page(
        request,
        db,
        user,
        edit_rep=edit_rep,
        search_zip=search_zip,
        audit_limit=audit_limit,
        audit_offset=audit_offset,
    )


@app.post("/admin/reps/upload")
async def admin_upload_reps(
    request: Request,
    upload_file: UploadFile = File(...),
    db: Session = Depends(get_db),
):
    user = get_session_user(request)
    if user is None:
        return RedirectResponse(url=LOGIN_REDIRECT, status_code=303)

    payload = await upload_file.read()
    try:
        rows = parse_upload(payload, upload_file.filename or "reps.csv", REP_REQUIRED_COLUMNS)
        result = import_reps(db, rows)
    except HTTPException as exc:
        return render_admin_page(
            request, db, user, status_code=exc.status_code, upload_error=str(exc.detail), upload_kind="reps"
        )
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Unexpected database error during rep file upload")
        return render_admin_page(
            request,
            db,
            user,
            status_code=500,
            upload_error="Unexpected database error while uploading reps.",
            upload_kind="reps",
        )

    record_rep_upload(db, user, result)
    return render_admin_page(request, db, user, rep_result=result)


@app.post("/admin/assignments/upload")
async def admin_upload_assignments(
    request: Request,
    upload_file: UploadFile = File(...),
    db: Session = Depends(get_db),
):
    user = get_session_user(request)
    if user is None:
        return RedirectResponse(url=LOGIN_REDIRECT, status_code=303)

    payload = await upload_file.read()
    try:
        rows = parse_upload(payload, upload_file.filename or "territories.csv", TERRITORY_REQUIRED_COLUMNS)
        result = import_territories(db, rows)
    except HTTPException as exc:
        return render_admin_page(
            request, db, user, status_code=exc.status_code, upload_error=str(exc.detail), upload_kind="territories"
        )
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Unexpected database error during territory file upload")
        return render_admin_page(
            request,
            db,
            user,
            status_code=500,
            upload_error="Unexpected database error while saving assignments.",
            upload_kind="territories",
        )

    record_territory_upload(db, user, result)
    return render_admin_page(request, db, user, territory_result=result)


@app.post("/admin/reps")
def admin_create_rep(
    request: Request,
    first_name: str = Form(""),
    last_name: str = Form(""),
    email: str = Form(""),
    phone: str = Form(""),
    agency: str = Form(""),
    channel: str = Form(""),
    db: Session = Depends(get_db),
):
    user = get_session_user(request)
    if user is None:
        return RedirectResponse(url=LOGIN_REDIRECT, status_code=303)

    form_values = {
        "first_name": first_name,
        "last_name": last_name,
        "email": email,
        "phone": phone,
        "agency": agency,
        "channel": channel,
    }
    try:
        create_rep_record(db, user, form_values)
    except HTTPException as exc:
        return render_admin_page(
            request, db, user, status_code=exc.status_code, form_error=str(exc.detail), rep_form=form_values
        )
    return RedirectResponse(url="/admin", status_code=303)


@app.post("/admin/reps/{rep_id}")
def admin_update_rep(
    rep_id: int,
    request: Request,
    first_name: str = Form(""),
    last_name: str = Form(""),
    email: str = Form(""),
    phone: str = Form(""),
    agency: str = Form(""),
    channel: str = Form(""),
    db: Session = Depends(get_db),
):
    user = get_session_user(request)
    if user is None:
        return RedirectResponse(url=LOGIN_REDIRECT, status_code=303)

    form_values = {
        "first_name": first_name,
        "last_name": last_name,
        "email": email,
        "phone": phone,
        "agency": agency,
        "channel": channel,
    }
    try:
        update_rep_record(db, user, rep_id, form_values)
    except HTTPException as exc:
        return render_admin_page(
            request,
            db,
            user,
            status_code=exc.status_code,
            form_error=str(exc.detail),
            edit_rep={"id": rep_id, **form_values},
        )
    return RedirectResponse(url="/admin", status_code=303)


@app.post("/admin/reps/{rep_id}/delete")
def admin_delete_rep(rep_id: int, request: Request, db: Session = Depends(get_db)):
    user = get_session_user(request)
    if user is None:
        return RedirectResponse(url=LOGIN_REDIRECT, status_code=303)

    try:
        delete_rep_record(db, user, rep_id)
    except HTTPException as exc:
        return render_admin_page(request, db, user, status_code=exc.status_code, form_error=str(exc.detail))
    return RedirectResponse(url="/admin", status_code=303)


@app.post("/admin/assignments")
def admin_save_assignment(
    request: Request,
    zip_code: str = Form(""),
    channel: str = Form(""),
    rep_id: str = Form(""),
    db: Session = Depends(get_db),
):
    user = get_session_user(request)
    if user is None:
        return RedirectResponse(url=LOGIN_REDIRECT, status_code=303)

    try:
        assignment = save_assignment(db, user, zip_code, channel, rep_id)
    except HTTPException as exc:
        return render_admin_page(
            request, db, user, status_code=exc.status_code, form_error=str(exc.detail), search_zip=zip_code
        )
    return RedirectResponse(url=f"/admin?zip={assignment['zip_code']}", status_code=303)


@app.post("/admin/assignments/delete")
def admin_remove_assignment(
    request: Request,
    zip_code: str = Form(""),
    channel: str = Form(""),
    db: Session = Depends(get_db),
):
    user = get_session_user(request)
    if user is None:
        return RedirectResponse(url=LOGIN_REDIRECT, status_code=303)

    try:
        remove_assignment(db, user, zip_code, channel)
    except HTTPException as exc:
        return render_admin_page(
            request, db, user, status_code=exc.status_code, form_error=str(exc.detail), search_zip=zip_code
        )
    return RedirectResponse(url=f"/admin?zip={zip_code.strip()}", status_code=303)


@app.get("/api/reps")
def list_reps(db: Session = Depends(get_db)):
    rows = db.execute(
        text(f"SELECT {REP_COLUMNS} FROM reps ORDER BY last_name, first_name")
    ).mappings().all()
    return [dict(r) for r in rows]


@app.get("/api/reps/template.csv")
def rep_template():
    return Response(
        content=REP_TEMPLATE_CSV,
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="rep_upload_template.csv"'},
    )


@app.get("/api/reps/{rep_id}")
def read_rep(rep_id: int, db: Session = Depends(get_db)):
    return dict(ensure_rep_exists(db, rep_id))


@app.post("/api/reps", status_code=201)
def create_rep(
    payload: RepPayload,
    db: Session = Depends(get_db),
    user: dict = Depends(require_session),
):
    return create_rep_record(db, user, payload.model_dump())


@app.put("/api/reps/{rep_id}")
def update_rep(
    rep_id: int,
    payload: RepPayload,
    db: Session = Depends(get_db),
    user: dict = Depends(require_session),
):
    return update_rep_record(db, user, rep_id, payload.model_dump())


@app.delete("/api/reps/{rep_id}")
def delete_rep(
    rep_id: int,
    db: Session = Depends(get_db),
    user: dict = Depends(require_session),
):
    delete_rep_record(db, user, rep_id)
    return {"success": True}


@app.post("/api/reps/upload")
def upload_reps(
    payload: UploadPayload,
    db: Session = Depends(get_db),
    user: dict = Depends(require_session),
):
    if not payload.rows:
        raise HTTPException(status_code=400, detail="No data rows provided")

    try:
        result = import_reps(db, payload.rows)
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Unexpected database error during rep upload")
        raise HTTPException(status_code=500, detail="Failed to create reps") from exc

    record_rep_upload(db, user, result)
    return result


@app.get("/api/assignments/template.csv")
def territory_template():
    return Response(
        content=TERRITORY_TEMPLATE_CSV,
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="territory_upload_template.csv"'},
    )


@app.put("/api/assignments")
def put_assignment(
    payload: AssignmentPayload,
    db: Session = Depends(get_db),
    user: dict = Depends(require_session),
):
    return save_assignment(db, user, payload.zip_code, payload.channel, payload.rep_id)


@app.delete("/api/assignments")
def delete_assignment(
    zip_code: str = Query(default=""),
    channel: str = Query(default=""),
    db: Session = Depends(get_db),
    user: dict = Depends(require_session),
):
    remove_assignment(db, user, zip_code, channel)
    return {"success": True}


@app.post("/api/assignments/upload")
def upload_assignments(
    payload: UploadPayload,
    db: Session = Depends(get_db),
    user: dict = Depends(require_session),
):
    if not payload.rows:
        raise HTTPException(status_code=400, detail="No data rows provided")

    try:
        result = import_territories(db, payload.rows)
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Unexpected database error during territory upload")
        raise HTTPException(status_code=500, detail="Failed to save assignments") from exc

    record_territory_upload(db, user, result)
    return result


@app.get("/api/audit-log")
def audit_log(
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    _user: dict = Depends(require_session),
):
    entries, total = list_audit_log(db, limit, offset)
    return {"data": entries, "total": total, "limit": limit, "offset": offset}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("repfinder.main:app", host=settings.app_host, port=settings.app_port)
