from fastapi import (
    APIRouter, FastAPI, UploadFile, File, Form,
    Depends, Query, Request
)
from typing import Optional, List, Dict, Any, Iterable, Sequence
from contextlib import asynccontextmanager
from datetime import date
import os, logging

from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from pydantic import BaseModel

import dashboard
from db import Database, build_update, ensure_schema
from errors import (
    AuthenticationError, ConflictError, DependentsExistError, InventoryError,
    MissingFieldsError, NotFoundError, UpstreamError, ValidationError,
)
from queries import (
    CATEGORY_SELECT, COMPUTER_SELECT, LAB_UTILITY_SELECT, ROOM_SELECT,
    SMART_BOARD_SELECT, USER_SELECT,
)
from security import hash_password, verify_password
from storage import FileStorage

log = logging.getLogger(__name__)

# --------------------------------------------------------------------------
# App / CORS / shared resources
# --------------------------------------------------------------------------
@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.db = Database()
    app.state.storage = FileStorage()
    ensure_schema(app.state.db)
    log.info("Database pool ready (size %d), uploads in %s",
             app.state.db.pool_size, app.state.storage.directory)
    try:
        yield
    finally:
        app.state.db.close()
        log.info("Database pool closed")

app = FastAPI(title="Lab Inventory API", version="1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origin_regex=r"^https?://(localhost|127\.0\.0\.1)(:\d+)?$",
    allow_methods=["*"],
    allow_headers=["*"],
)

def get_db(request: Request) -> Database:
    return request.app.state.db

def get_storage(request: Request) -> FileStorage:
    return request.app.state.storage

# Routes are served from the root and again under /api, where the dashboard
# client looks for them.
router = APIRouter()

# --------------------------------------------------------------------------
# Error handlers
# --------------------------------------------------------------------------
@app.exception_handler(InventoryError)
async def inventory_error_handler(request: Request, exc: InventoryError):
    if isinstance(exc, UpstreamError):
        log.error("%s %s failed: %s", request.method, request.url.path, exc.__cause__ or exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    fields = sorted({str(err["loc"][-1]) for err in exc.errors() if err.get("loc")})
    return JSONResponse(
        status_code=400,
        content={
            "message": f"Invalid or missing fields: {', '.join(fields)}",
            "code": "VALIDATION_ERROR",
            "details": {"fields": fields},
        },
    )

@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    log.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"message": "Internal server error"})

# --------------------------------------------------------------------------
# Schemas
# --------------------------------------------------------------------------
ROOM_STATUSES = ("active", "maintenance", "inactive")
EQUIPMENT_STATUSES = ("functional", "maintenance", "retired")

class CategoryOut(BaseModel):
    id: int
    label: str
    model_release_date: Optional[date] = None
    description: Optional[str] = None

class CategoryIn(BaseModel):
    label: Optional[str] = None
    model_release_date: Optional[date] = None
    description: Optional[str] = None

class CategoryPatch(BaseModel):
    label: Optional[str] = None
    model_release_date: Optional[date] = None
    description: Optional[str] = None

class RoomOut(BaseModel):
    id: int
    label: str
    type: str
    status: str
    image_file_id: Optional[str] = None

class RoomPatch(BaseModel):
    label: Optional[str] = None
    type: Optional[str] = None
    status: Optional[str] = None

class ComputerOut(BaseModel):
    id: int
    label: str
    install_date: Optional[date] = None
    isassignedto: int
    belongstocategory: int
    status: str
    quantity: int
    room_name: Optional[str] = None
    category_name: Optional[str] = None

class ComputerIn(BaseModel):
    label: Optional[str] = None
    install_date: Optional[date] = None
    isassignedto: Optional[int] = None
    belongstocategory: Optional[int] = None
    status: Optional[str] = None
    quantity: Optional[int] = None

class ComputerPatch(BaseModel):
    label: Optional[str] = None
    install_date: Optional[date] = None
    isassignedto: Optional[int] = None
    belongstocategory: Optional[int] = None
    status: Optional[str] = None
    quantity: Optional[int] = None

class SmartBoardOut(BaseModel):
    id: int
    model_id: str
    isassignedto: int
    installed_date: Optional[date] = None
    status: str
    image_file_id: Optional[str] = None
    room_name: Optional[str] = None

class SmartBoardIn(BaseModel):
    model_id: Optional[str] = None
    room_id: Optional[int] = None
    status: Optional[str] = None

class SmartBoardPatch(BaseModel):
    model_id: Optional[str] = None
    isassignedto: Optional[int] = None
    status: Optional[str] = None

class LabUtilityOut(BaseModel):
    id: int
    label: str
    description: Optional[str] = None
    quantity: int
    isassignedto: int
    status: str
    room_name: Optional[str] = None

class LabUtilityIn(BaseModel):
    label: Optional[str] = None
    description: Optional[str] = None
    quantity: Optional[int] = None
    isassignedto: Optional[int] = None
    status: Optional[str] = None

class LabUtilityPatch(BaseModel):
    label: Optional[str] = None
    description: Optional[str] = None
    quantity: Optional[int] = None
    isassignedto: Optional[int] = None
    status: Optional[str] = None

class RoomDetailsOut(BaseModel):
    room: RoomOut
    computers: List[ComputerOut]
    utilities: List[LabUtilityOut]
    smartBoards: List[SmartBoardOut]

class CategoryComputersOut(BaseModel):
    category: CategoryOut
    computers: List[ComputerOut]

class UserOut(BaseModel):
    id: int
    username: str
    name: Optional[str] = None

class LoginIn(BaseModel):
    username: Optional[str] = None
    password: Optional[str] = None

class RegisterIn(BaseModel):
    username: Optional[str] = None
    password: Optional[str] = None
    name: Optional[str] = None

class UserPatch(BaseModel):
    userId: Optional[int] = None
    username: Optional[str] = None
    password: Optional[str] = None
    name: Optional[str] = None

# --------------------------------------------------------------------------
# Validation helpers
# --------------------------------------------------------------------------
def _require(values: Dict[str, Any], fields: Sequence[str]) -> None:
    missing = [f for f in fields if values.get(f) is None or values.get(f) == ""]
    if missing:
        raise MissingFieldsError(missing)

def _not_blank(changes: Dict[str, Any], fields: Iterable[str]) -> None:
    for f in fields:
        if f in changes and (changes[f] is None or changes[f] == ""):
            raise ValidationError(f"{f} cannot be empty", field=f)

def _check_status(status: str, allowed: Sequence[str]) -> None:
    if status not in allowed:
        raise ValidationError(f"status must be one of: {', '.join(allowed)}", field="status")

def _check_quantity(quantity: Optional[int]) -> None:
    if quantity is None or quantity < 1:
        raise ValidationError("quantity must be a positive integer", field="quantity")

def _ensure_room(db: Database, room_id: int, field: str = "isassignedto") -> None:
    if db.fetch_one("SELECT id FROM room WHERE id=%s", (room_id,)) is None:
        raise ValidationError("Assigned room does not exist", field=field)

def _ensure_category(db: Database, category_id: int) -> None:
    if db.fetch_one("SELECT id FROM computer_cat WHERE id=%s", (category_id,)) is None:
        raise ValidationError("Computer category does not exist", field="belongstocategory")

def _fetch_or_404(db: Database, sql: str, key: Any, resource: str) -> Dict[str, Any]:
    row = db.fetch_one(sql, (key,))
    if row is None:
        raise NotFoundError(resource, key)
    return row

def _write_with_image(db: Database, storage: FileStorage, table: str, key: int,
                      changes: Dict[str, Any], upload: Optional[UploadFile],
                      old_file_id: Optional[str]) -> Optional[str]:
    """
    Apply ``changes`` (plus a new image, if uploaded) to one row.

    The new file is stored first and discarded again if the UPDATE fails.
    The previous file is only removed once the new reference is committed,
    so the row never points at a deleted image.
    """
    with storage.staged(upload) as file_id:
        if file_id:
            changes = {**changes, "image_file_id": file_id}
        sql, params = build_update(table, changes, key)
        db.execute(sql, params)
    if file_id and old_file_id:
        storage.discard(old_file_id)
    return file_id

# --------------------------------------------------------------------------
# Health
# --------------------------------------------------------------------------
@router.get("/health")
def health():
    return {"ok": True}

# --------------------------------------------------------------------------
# Categories
# --------------------------------------------------------------------------
@router.post("/category/create", status_code=201)
def create_category(body: CategoryIn, db: Database = Depends(get_db)):
    _require(body.model_dump(), ("label", "model_release_date", "description"))
    result = db.execute(
        "INSERT INTO computer_cat (label, model_release_date, description) VALUES (%s,%s,%s)",
        (body.label, body.model_release_date, body.description),
    )
    return {"message": "New computer category added", "id": result.lastrowid}

@router.put("/category/edit/{category_id}")
def update_category(category_id: int, patch: CategoryPatch, db: Database = Depends(get_db)):
    _fetch_or_404(db, "SELECT id FROM computer_cat WHERE id=%s", category_id, "Computer category")
    changes = patch.model_dump(exclude_unset=True)
    _not_blank(changes, ("label", "model_release_date", "description"))
    sql, params = build_update("computer_cat", changes, category_id)
    db.execute(sql, params)
    return {"message": "Computer category updated successfully"}

@router.delete("/category/delete/{category_id}")
def delete_category(category_id: int, db: Database = Depends(get_db)):
    _fetch_or_404(db, "SELECT id FROM computer_cat WHERE id=%s", category_id, "Computer category")
    row = db.fetch_one("SELECT COUNT(*) AS n FROM computer WHERE belongstocategory=%s", (category_id,))
    counts = {"computers": int(row["n"])}
    if counts["computers"]:
        log.info("Refusing to delete category %s: %s", category_id, counts)
        raise DependentsExistError("Category", counts)
    result = db.execute("DELETE FROM computer_cat WHERE id=%s", (category_id,))
    if result.rowcount == 0:
        raise NotFoundError("Computer category", category_id)
    return {"message": "Computer category deleted successfully"}

@router.get("/category/all", response_model=List[CategoryOut])
def list_categories(db: Database = Depends(get_db)):
    return db.fetch_all(f"{CATEGORY_SELECT} ORDER BY cc.label")

@router.get("/category/{category_id}", response_model=CategoryOut)
def get_category(category_id: int, db: Database = Depends(get_db)):
    return _fetch_or_404(db, f"{CATEGORY_SELECT} WHERE cc.id=%s", category_id, "Computer category")

@router.get("/category/{category_id}/computers", response_model=CategoryComputersOut)
def get_category_computers(category_id: int, db: Database = Depends(get_db)):
    category = _fetch_or_404(db, f"{CATEGORY_SELECT} WHERE cc.id=%s", category_id, "Computer category")
    computers = db.fetch_all(
        f"{COMPUTER_SELECT} WHERE c.belongstocategory=%s ORDER BY c.label", (category_id,)
    )
    return {"category": category, "computers": computers}

# --------------------------------------------------------------------------
# Rooms
# --------------------------------------------------------------------------
def _room_dependents(db: Database, room_id: int) -> Dict[str, int]:
    row = db.fetch_one("""
        SELECT
          (SELECT COUNT(*) FROM computer    WHERE isassignedto=%s) AS computers,
          (SELECT COUNT(*) FROM lab_utility WHERE isassignedto=%s) AS lab_utilities,
          (SELECT COUNT(*) FROM smart_board WHERE isassignedto=%s) AS smart_boards
    """, (room_id, room_id, room_id))
    return {
        "computers": int(row["computers"]),
        "labUtilities": int(row["lab_utilities"]),
        "smartBoards": int(row["smart_boards"]),
    }

@router.post("/room/create", status_code=201)
def create_room(
    label: Optional[str] = Form(None),
    room_type: Optional[str] = Form(None, alias="type"),
    status: Optional[str] = Form(None),
    image: Optional[UploadFile] = File(None),
    db: Database = Depends(get_db),
    storage: FileStorage = Depends(get_storage),
):
    _require({"label": label, "type": room_type}, ("label", "type"))
    status = status or "active"
    _check_status(status, ROOM_STATUSES)
    with storage.staged(image) as file_id:
        result = db.execute(
            "INSERT INTO room (label, type, status, image_file_id) VALUES (%s,%s,%s,%s)",
            (label, room_type, status, file_id),
        )
    return {"message": "Room created successfully", "id": result.lastrowid, "image_file_id": file_id}

@router.put("/room/edit/{room_id}")
def update_room(
    room_id: int,
    label: Optional[str] = Form(None),
    room_type: Optional[str] = Form(None, alias="type"),
    status: Optional[str] = Form(None),
    image: Optional[UploadFile] = File(None),
    db: Database = Depends(get_db),
    storage: FileStorage = Depends(get_storage),
):
    current = _fetch_or_404(db, "SELECT id, image_file_id FROM room WHERE id=%s", room_id, "Room")
    supplied = {"label": label, "type": room_type, "status": status}
    changes = RoomPatch(**{k: v for k, v in supplied.items() if v is not None}).model_dump(exclude_unset=True)
    if "status" in changes:
        _check_status(changes["status"], ROOM_STATUSES)
    file_id = _write_with_image(db, storage, "room", room_id, changes, image, current["image_file_id"])
    return {"message": "Room updated successfully", "image_file_id": file_id or current["image_file_id"]}

@router.delete("/room/delete/{room_id}")
def delete_room(room_id: int, db: Database = Depends(get_db), storage: FileStorage = Depends(get_storage)):
    current = _fetch_or_404(db, "SELECT id, image_file_id FROM room WHERE id=%s", room_id, "Room")
    counts = _room_dependents(db, room_id)
    if any(counts.values()):
        log.info("Refusing to delete room %s: %s", room_id, counts)
        raise DependentsExistError("Room", counts)
    result = db.execute("DELETE FROM room WHERE id=%s", (room_id,))
    if result.rowcount == 0:
        raise NotFoundError("Room", room_id)
    storage.discard(current["image_file_id"])
    return {"message": "Room deleted successfully"}

@router.get("/room/all", response_model=List[RoomOut])
def list_rooms(db: Database = Depends(get_db)):
    return db.fetch_all(f"{ROOM_SELECT} ORDER BY r.label")

@router.get("/room/details/{room_id}", response_model=RoomDetailsOut)
def get_room_details(room_id: int, db: Database = Depends(get_db)):
    room = _fetch_or_404(db, f"{ROOM_SELECT} WHERE r.id=%s", room_id, "Room")
    return {
        "room": room,
        "computers": db.fetch_all(f"{COMPUTER_SELECT} WHERE c.isassignedto=%s ORDER BY c.id", (room_id,)),
        "utilities": db.fetch_all(f"{LAB_UTILITY_SELECT} WHERE lu.isassignedto=%s ORDER BY lu.id", (room_id,)),
        "smartBoards": db.fetch_all(f"{SMART_BOARD_SELECT} WHERE sb.isassignedto=%s ORDER BY sb.id", (room_id,)),
    }

@router.post("/room/upload-image/{room_id}")
def upload_room_image(
    room_id: int,
    image: UploadFile = File(...),
    db: Database = Depends(get_db),
    storage: FileStorage = Depends(get_storage),
):
    current = _fetch_or_404(db, "SELECT id, image_file_id FROM room WHERE id=%s", room_id, "Room")
    file_id = _write_with_image(db, storage, "room", room_id, {}, image, current["image_file_id"])
    return {"message": "Image uploaded successfully", "filename": file_id}

@router.get("/room/image/{filename}")
def get_room_image(filename: str, storage: FileStorage = Depends(get_storage)):
    return FileResponse(storage.resolve(filename))

@router.get("/room/{room_id}", response_model=RoomOut)
def get_room(room_id: int, db: Database = Depends(get_db)):
    return _fetch_or_404(db, f"{ROOM_SELECT} WHERE r.id=%s", room_id, "Room")

# --------------------------------------------------------------------------
# Computers
# --------------------------------------------------------------------------
@router.post("/computer/create", status_code=201)
def create_computer(body: ComputerIn, db: Database = Depends(get_db)):
    _require(body.model_dump(), ("label", "isassignedto", "belongstocategory", "status"))
    _check_status(body.status, EQUIPMENT_STATUSES)
    quantity = 1 if body.quantity is None else body.quantity
    _check_quantity(quantity)
    _ensure_room(db, body.isassignedto)
    _ensure_category(db, body.belongstocategory)
    result = db.execute("""
        INSERT INTO computer (label, install_date, isassignedto, belongstocategory, status, quantity)
        VALUES (%s,%s,%s,%s,%s,%s)
    """, (body.label, body.install_date, body.isassignedto, body.belongstocategory, body.status, quantity))
    return {"message": "New computer added", "id": result.lastrowid}

@router.put("/computer/edit/{computer_id}")
def update_computer(computer_id: int, patch: ComputerPatch, db: Database = Depends(get_db)):
    _fetch_or_404(db, "SELECT id FROM computer WHERE id=%s", computer_id, "Computer")
    changes = patch.model_dump(exclude_unset=True)
    _not_blank(changes, ("label", "isassignedto", "belongstocategory", "status", "quantity"))
    if "status" in changes:
        _check_status(changes["status"], EQUIPMENT_STATUSES)
    if "quantity" in changes:
        _check_quantity(changes["quantity"])
    if "isassignedto" in changes:
        _ensure_room(db, changes["isassignedto"])
    if "belongstocategory" in changes:
        _ensure_category(db, changes["belongstocategory"])
    sql, params = build_update("computer", changes, computer_id)
    db.execute(sql, params)
    return {"message": "Computer updated successfully"}

@router.delete("/computer/delete/{computer_id}")
def delete_computer(computer_id: int, db: Database = Depends(get_db)):
    result = db.execute("DELETE FROM computer WHERE id=%s", (computer_id,))
    if result.rowcount == 0:
        raise NotFoundError("Computer", computer_id)
    return {"message": "Computer deleted successfully"}

@router.get("/computer/all", response_model=List[ComputerOut])
def list_computers(db: Database = Depends(get_db)):
    return db.fetch_all(f"{COMPUTER_SELECT} ORDER BY c.id")

@router.get("/computer/{computer_id}", response_model=ComputerOut)
def get_computer(computer_id: int, db: Database = Depends(get_db)):
    return _fetch_or_404(db, f"{COMPUTER_SELECT} WHERE c.id=%s", computer_id, "Computer")

# --------------------------------------------------------------------------
# Smart boards
# --------------------------------------------------------------------------
@router.post("/smart-board/create", status_code=201)
def create_smart_board(body: SmartBoardIn, db: Database = Depends(get_db)):
    _require(body.model_dump(), ("model_id", "room_id", "status"))
    _check_status(body.status, EQUIPMENT_STATUSES)
    _ensure_room(db, body.room_id, field="room_id")
    result = db.execute("""
        INSERT INTO smart_board (model_id, isassignedto, installed_date, status)
        VALUES (%s,%s,%s,%s)
    """, (body.model_id, body.room_id, date.today(), body.status))
    board = db.fetch_one(f"{SMART_BOARD_SELECT} WHERE sb.id=%s", (result.lastrowid,))
    return {"message": "New smart board added", "data": SmartBoardOut(**board)}

@router.put("/smart-board/edit/{board_id}")
def update_smart_board(
    board_id: int,
    model_id: Optional[str] = Form(None),
    room_id: Optional[int] = Form(None),
    status: Optional[str] = Form(None),
    image: Optional[UploadFile] = File(None),
    db: Database = Depends(get_db),
    storage: FileStorage = Depends(get_storage),
):
    current = _fetch_or_404(db, "SELECT id, image_file_id FROM smart_board WHERE id=%s", board_id, "Smart board")
    supplied = {"model_id": model_id, "isassignedto": room_id, "status": status}
    changes = SmartBoardPatch(**{k: v for k, v in supplied.items() if v is not None}).model_dump(exclude_unset=True)
    if "status" in changes:
        _check_status(changes["status"], EQUIPMENT_STATUSES)
    if "isassignedto" in changes:
        _ensure_room(db, changes["isassignedto"], field="room_id")
    _write_with_image(db, storage, "smart_board", board_id, changes, image, current["image_file_id"])
    board = db.fetch_one(f"{SMART_BOARD_SELECT} WHERE sb.id=%s", (board_id,))
    return {"message": "Smart board updated successfully", "data": SmartBoardOut(**board)}

@router.delete("/smart-board/delete/{board_id}")
def delete_smart_board(board_id: int, db: Database = Depends(get_db), storage: FileStorage = Depends(get_storage)):
    current = _fetch_or_404(db, "SELECT id, image_file_id FROM smart_board WHERE id=%s", board_id, "Smart board")
    result = db.execute("DELETE FROM smart_board WHERE id=%s", (board_id,))
    if result.rowcount == 0:
        raise NotFoundError("Smart board", board_id)
    storage.discard(current["image_file_id"])
    return {"message": "Smart board deleted successfully"}

@router.get("/smart-board/all", response_model=List[SmartBoardOut])
def list_smart_boards(db: Database = Depends(get_db)):
    return db.fetch_all(f"{SMART_BOARD_SELECT} ORDER BY sb.model_id, sb.id")

@router.post("/smart-board/upload-image/{board_id}")
def upload_smart_board_image(
    board_id: int,
    image: UploadFile = File(...),
    db: Database = Depends(get_db),
    storage: FileStorage = Depends(get_storage),
):
    current = _fetch_or_404(db, "SELECT id, image_file_id FROM smart_board WHERE id=%s", board_id, "Smart board")
    file_id = _write_with_image(db, storage, "smart_board", board_id, {}, image, current["image_file_id"])
    return {"message": "Image uploaded successfully", "filename": file_id}

@router.get("/smart-board/image/{filename}")
def get_smart_board_image(filename: str, storage: FileStorage = Depends(get_storage)):
    return FileResponse(storage.resolve(filename))

@router.get("/smart-board/{board_id}", response_model=SmartBoardOut)
def get_smart_board(board_id: int, db: Database = Depends(get_db)):
    return _fetch_or_404(db, f"{SMART_BOARD_SELECT} WHERE sb.id=%s", board_id, "Smart board")

# --------------------------------------------------------------------------
# Lab utilities
# --------------------------------------------------------------------------
@router.post("/lab-utility/create", status_code=201)
def create_lab_utility(body: LabUtilityIn, db: Database = Depends(get_db)):
    _require(body.model_dump(), ("label", "description", "quantity", "isassignedto", "status"))
    _check_status(body.status, EQUIPMENT_STATUSES)
    _check_quantity(body.quantity)
    _ensure_room(db, body.isassignedto)
    result = db.execute("""
        INSERT INTO lab_utility (label, description, quantity, isassignedto, status)
        VALUES (%s,%s,%s,%s,%s)
    """, (body.label, body.description, body.quantity, body.isassignedto, body.status))
    return {"message": "New lab utility added", "id": result.lastrowid}

@router.put("/lab-utility/edit/{utility_id}")
def update_lab_utility(utility_id: int, patch: LabUtilityPatch, db: Database = Depends(get_db)):
    _fetch_or_404(db, "SELECT id FROM lab_utility WHERE id=%s", utility_id, "Lab utility")
    changes = patch.model_dump(exclude_unset=True)
    _not_blank(changes, ("label", "description", "quantity", "isassignedto", "status"))
    if "status" in changes:
        _check_status(changes["status"], EQUIPMENT_STATUSES)
    if "quantity" in changes:
        _check_quantity(changes["quantity"])
    if "isassignedto" in changes:
        _ensure_room(db, changes["isassignedto"])
    sql, params = build_update("lab_utility", changes, utility_id)
    db.execute(sql, params)
    return {"message": "Lab utility updated successfully"}

@router.delete("/lab-utility/delete/{utility_id}")
def delete_lab_utility(utility_id: int, db: Database = Depends(get_db)):
    result = db.execute("DELETE FROM lab_utility WHERE id=%s", (utility_id,))
    if result.rowcount == 0:
        raise NotFoundError("Lab utility", utility_id)
    return {"message": "Lab utility deleted successfully"}

@router.get("/lab-utility/all", response_model=List[LabUtilityOut])
def list_lab_utilities(db: Database = Depends(get_db)):
    return db.fetch_all(f"{LAB_UTILITY_SELECT} ORDER BY lu.label, lu.id")

@router.get("/lab-utility/{utility_id}", response_model=LabUtilityOut)
def get_lab_utility(utility_id: int, db: Database = Depends(get_db)):
    return _fetch_or_404(db, f"{LAB_UTILITY_SELECT} WHERE lu.id=%s", utility_id, "Lab utility")

# --------------------------------------------------------------------------
# Users
# --------------------------------------------------------------------------
@router.post("/user/login-validate")
def login_validate(body: LoginIn, db: Database = Depends(get_db)):
    _require(body.model_dump(), ("username", "password"))
    row = db.fetch_one(
        "SELECT id, username, name, password_hash FROM users WHERE username=%s",
        (body.username,), log_params=False,
    )
    if not row or not verify_password(body.password, row["password_hash"]):
        log.info("Failed login for %r", body.username)
        raise AuthenticationError()
    user = UserOut(id=row["id"], username=row["username"], name=row["name"])
    return {"message": "Login successful", "user": user}

@router.post("/user/register", status_code=201)
def register(body: RegisterIn, db: Database = Depends(get_db)):
    _require(body.model_dump(), ("username", "password", "name"))
    if db.fetch_one("SELECT 1 AS taken FROM users WHERE username=%s", (body.username,)):
        raise ConflictError("Username already exists")
    result = db.execute(
        "INSERT INTO users (username, password_hash, name) VALUES (%s,%s,%s)",
        (body.username, hash_password(body.password), body.name),
        log_params=False,
    )
    return {"message": "User registered successfully", "id": result.lastrowid}

@router.get("/user/info", response_model=UserOut)
def user_info(user_id: Optional[int] = Query(None, alias="userId"), db: Database = Depends(get_db)):
    if user_id is None:
        raise MissingFieldsError(["userId"])
    return _fetch_or_404(db, f"{USER_SELECT} WHERE u.id=%s", user_id, "User")

@router.put("/user/edit")
def update_user(body: UserPatch, db: Database = Depends(get_db)):
    if body.userId is None:
        raise MissingFieldsError(["userId"])
    _fetch_or_404(db, "SELECT id FROM users WHERE id=%s", body.userId, "User")
    supplied = body.model_dump(exclude_unset=True, exclude={"userId"})
    _not_blank(supplied, ("username", "password", "name"))

    changes: Dict[str, Any] = {}
    if "username" in supplied:
        clash = db.fetch_one("SELECT id FROM users WHERE username=%s AND id<>%s",
                             (supplied["username"], body.userId))
        if clash:
            raise ConflictError("Username already exists")
        changes["username"] = supplied["username"]
    if "password" in supplied:
        changes["password_hash"] = hash_password(supplied["password"])
    if "name" in supplied:
        changes["name"] = supplied["name"]

    sql, params = build_update("users", changes, body.userId)
    db.execute(sql, params, log_params=False)
    return {"message": "User info updated successfully"}

# --------------------------------------------------------------------------
# Dashboard
# --------------------------------------------------------------------------
@router.get("/dashboard/summary")
def dashboard_summary(db: Database = Depends(get_db)):
    """
    Statistics for the dashboard cards and charts: per-entity totals and
    status breakdowns, category/type distributions, the computer
    installation timeline and per-room utilization (busiest first).
    """
    return dashboard.summary(db)

@router.get("/dashboard/recent")
def dashboard_recent(db: Database = Depends(get_db)):
    return dashboard.recent_items(db)

app.include_router(router)
app.include_router(router, prefix="/api", include_in_schema=False)


def main():
    import uvicorn

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", "7777")))

if __name__ == "__main__":
    main()
