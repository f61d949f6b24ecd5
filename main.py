from fastapi import FastAPI, APIRouter, Request, Depends, Path, Query
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from starlette.exceptions import HTTPException
from starlette.middleware.sessions import SessionMiddleware
from sqlalchemy.orm import Session
from typing import Annotated, Optional
import os, logging

from database import get_db, init_db
from errors import AppError, NotFound, StorageError, ValidationError
from fields import ID_MAX, YEAR_MAX, YEAR_MIN
from schemas import Credentials, OrderIn, StaffIn, describe_errors
import storage

logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO").upper(),
                    format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

app = FastAPI(title="Cleaning scheduler")

SECRET = os.getenv("SESSION_SECRET", "dev-secret")
COOKIE_SECURE = os.getenv("COOKIE_SECURE", "0") == "1"
app.add_middleware(
    SessionMiddleware,
    secret_key=SECRET,
    session_cookie="cs_session",
    same_site="lax",
    https_only=COOKIE_SECURE,
    max_age=60*60*24*30,
)

@app.on_event("startup")
def _startup():
    init_db()

# ---------- ошибки ----------

@app.exception_handler(AppError)
async def _app_error(request: Request, exc: AppError):
    if exc.status_code >= 500:
        logger.error("%s %s -> %s", request.method, request.url.path, exc.message)
    return JSONResponse({"message": exc.client_message()}, status_code=exc.status_code)

@app.exception_handler(RequestValidationError)
async def _request_validation_error(request: Request, exc: RequestValidationError):
    return JSONResponse({"message": describe_errors(exc.errors())}, status_code=400)

@app.exception_handler(HTTPException)
async def _http_error(request: Request, exc: HTTPException):
    return JSONResponse({"message": str(exc.detail)}, status_code=exc.status_code, headers=exc.headers)

@app.exception_handler(Exception)
async def _unhandled_error(request: Request, exc: Exception):
    logger.error("%s %s: необработанная ошибка", request.method, request.url.path, exc_info=exc)
    return JSONResponse({"message": StorageError.public_message}, status_code=500)

# ---------- сессия ----------

def current_account_id(request: Request, db: Session = Depends(get_db)) -> int:
    account_id = request.session.get("account_id")
    if not account_id or not storage.get_account(db, account_id):
        request.session.clear()
        raise HTTPException(status_code=401, detail="Требуется авторизация")
    return account_id

auth = APIRouter(prefix="/api/auth")

@auth.post("/register", status_code=201)
def register(request: Request, creds: Credentials, db: Session = Depends(get_db)):
    account = storage.register_account(db, creds.email, creds.password)
    request.session["account_id"] = account["id"]
    return account

@auth.post("/login")
def login(request: Request, creds: Credentials, db: Session = Depends(get_db)):
    account = storage.authenticate(db, creds.email, creds.password)
    if not account:
        raise HTTPException(status_code=401, detail="Неверный email или пароль")
    request.session["account_id"] = account["id"]
    return account

@auth.post("/logout", status_code=204)
def logout(request: Request):
    request.session.clear()
    return Response(status_code=204)

@auth.get("/me")
def me(account_id: int = Depends(current_account_id), db: Session = Depends(get_db)):
    return storage.get_account(db, account_id)

# ---------- api ----------

api = APIRouter(prefix="/api")

OrderId = Annotated[int, Path(ge=1, le=ID_MAX)]
StaffId = Annotated[int, Path(ge=1, le=ID_MAX)]
Year = Annotated[int, Path(ge=YEAR_MIN, le=YEAR_MAX)]
Month = Annotated[int, Path(ge=1, le=12)]
Day = Annotated[int, Path(ge=1, le=31)]

@api.get("/orders")
def orders_list(sort_by: Optional[str] = Query(None, alias="sortBy"), search: Optional[str] = None,
                account_id: int = Depends(current_account_id), db: Session = Depends(get_db)):
    return storage.list_orders(db, account_id, sort_by=sort_by, search=search)

@api.get("/orders/{order_id}")
def order_get(order_id: OrderId, account_id: int = Depends(current_account_id), db: Session = Depends(get_db)):
    order = storage.get_order(db, account_id, order_id)
    if not order: raise NotFound("Заказ не найден")
    return order

@api.post("/orders", status_code=201)
def order_create(payload: OrderIn, account_id: int = Depends(current_account_id), db: Session = Depends(get_db)):
    return storage.create_order(db, account_id, payload.order_fields(), payload.staff_ids)

@api.put("/orders/{order_id}")
def order_update(order_id: OrderId, payload: OrderIn, account_id: int = Depends(current_account_id),
                 db: Session = Depends(get_db)):
    return storage.update_order(db, account_id, order_id, payload.order_fields(), payload.staff_ids)

@api.delete("/orders/{order_id}", status_code=204)
def order_delete(order_id: OrderId, account_id: int = Depends(current_account_id), db: Session = Depends(get_db)):
    storage.delete_order(db, account_id, order_id)
    return Response(status_code=204)

@api.get("/staff")
def staff_list(search: Optional[str] = None, account_id: int = Depends(current_account_id),
               db: Session = Depends(get_db)):
    return storage.list_staff(db, account_id, search=search)

@api.get("/staff/{staff_id}")
def staff_get(staff_id: StaffId, account_id: int = Depends(current_account_id), db: Session = Depends(get_db)):
    staff = storage.get_staff(db, account_id, staff_id)
    if not staff: raise NotFound("Сотрудник не найден")
    return staff

@api.post("/staff", status_code=201)
def staff_create(payload: StaffIn, account_id: int = Depends(current_account_id), db: Session = Depends(get_db)):
    return storage.create_staff(db, account_id, payload.model_dump())

@api.put("/staff/{staff_id}")
def staff_update(staff_id: StaffId, payload: StaffIn, account_id: int = Depends(current_account_id),
                 db: Session = Depends(get_db)):
    return storage.update_staff(db, account_id, staff_id, payload.model_dump())

@api.delete("/staff/{staff_id}", status_code=204)
def staff_delete(staff_id: StaffId, account_id: int = Depends(current_account_id), db: Session = Depends(get_db)):
    storage.delete_staff(db, account_id, staff_id)
    return Response(status_code=204)

@api.get("/calendar/{year}/{month}")
def calendar_month(year: Year, month: Month, account_id: int = Depends(current_account_id),
                   db: Session = Depends(get_db)):
    try:
        return storage.orders_by_month(db, account_id, year, month)
    except ValueError:
        raise ValidationError("Некорректный год или месяц")

@api.get("/calendar/{year}/{month}/{day}")
def calendar_day(year: Year, month: Month, day: Day, account_id: int = Depends(current_account_id),
                 db: Session = Depends(get_db)):
    try:
        return storage.orders_by_date(db, account_id, year, month, day)
    except ValueError:
        raise ValidationError("Некорректная дата")

@api.get("/statistics")
def statistics(account_id: int = Depends(current_account_id), db: Session = Depends(get_db)):
    return storage.statistics(db, account_id)

app.include_router(auth)
app.include_router(api)
