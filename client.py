# client.py
# клиентский слой: http-клиент с явным кэшем запросов и модальные формы заказа/сотрудника
import enum
import logging
from typing import Callable, Dict, List, Optional

import httpx
from pydantic import ValidationError as PydanticValidationError, field_validator

from fields import OrderStatus, PaymentStatus
from schemas import OrderIn, StaffIn, describe_errors

logger = logging.getLogger(__name__)

GENERIC_ERROR = "Что-то пошло не так, попробуйте ещё раз"

ORDERS = "/api/orders"
STAFF = "/api/staff"
CALENDAR = "/api/calendar"
STATISTICS = "/api/statistics"

class ApiError(Exception):
    def __init__(self, status: int, message: str):
        super().__init__(f"{status}: {message}")
        self.status = status
        self.message = message

class QueryCache:
    """Кэш ответов GET по пути и непустым параметрам запроса.

    Передаётся в клиент и модалки явно; сбрасывается по префиксу пути.
    """

    def __init__(self):
        self._entries: Dict[tuple, object] = {}

    @staticmethod
    def clean_params(params: Optional[dict]) -> dict:
        return {k: v for k, v in (params or {}).items() if v is not None and v != ""}

    @classmethod
    def key(cls, path: str, params: Optional[dict] = None) -> tuple:
        return (path, tuple(sorted((k, str(v)) for k, v in cls.clean_params(params).items())))

    def get_or_fetch(self, path: str, params: Optional[dict], fetch: Callable[[], object]):
        key = self.key(path, params)
        if key not in self._entries:
            self._entries[key] = fetch()
        return self._entries[key]

    def invalidate(self, *prefixes: str) -> int:
        if not prefixes:
            dropped = len(self._entries)
            self._entries.clear()
            return dropped
        stale = [k for k in self._entries if any(k[0] == p or k[0].startswith(p.rstrip("/") + "/") for p in prefixes)]
        for k in stale:
            del self._entries[k]
        return len(stale)

    def __contains__(self, key: tuple) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

class ApiClient:
    def __init__(self, http: httpx.Client, cache: Optional[QueryCache] = None):
        self.http = http
        self.cache = cache if cache is not None else QueryCache()

    @staticmethod
    def _raise_for_status(resp: httpx.Response):
        if resp.is_success:
            return
        message = None
        try:
            data = resp.json()
            if isinstance(data, dict):
                message = data.get("message")
        except ValueError:
            pass
        raise ApiError(resp.status_code, message or GENERIC_ERROR)

    def request(self, method: str, path: str, json=None, params: Optional[dict] = None):
        resp = self.http.request(method, path, json=json, params=QueryCache.clean_params(params) or None)
        self._raise_for_status(resp)
        if resp.status_code == 204 or not resp.content:
            return None
        return resp.json()

    def query(self, path: str, params: Optional[dict] = None):
        def fetch():
            logger.debug("GET %s %s", path, params or "")
            return self.request("GET", path, params=params)
        return self.cache.get_or_fetch(path, params, fetch)

    # ---------- auth ----------
    def register(self, email: str, password: str) -> dict:
        return self.request("POST", "/api/auth/register", json={"email": email, "password": password})

    def login(self, email: str, password: str) -> dict:
        self.cache.invalidate()
        return self.request("POST", "/api/auth/login", json={"email": email, "password": password})

    def logout(self) -> None:
        self.cache.invalidate()
        self.request("POST", "/api/auth/logout")

    # ---------- чтение ----------
    def orders(self, sort_by: Optional[str] = None, search: Optional[str] = None) -> List[dict]:
        return self.query(ORDERS, {"sortBy": sort_by, "search": search})

    def order(self, order_id: int) -> dict:
        return self.query(f"{ORDERS}/{order_id}")

    def staff(self, search: Optional[str] = None) -> List[dict]:
        return self.query(STAFF, {"search": search})

    def staff_member(self, staff_id: int) -> dict:
        return self.query(f"{STAFF}/{staff_id}")

    def calendar_month(self, year: int, month: int) -> List[dict]:
        return self.query(f"{CALENDAR}/{year}/{month}")

    def calendar_day(self, year: int, month: int, day: int) -> List[dict]:
        return self.query(f"{CALENDAR}/{year}/{month}/{day}")

    def statistics(self) -> dict:
        return self.query(STATISTICS)

    # ---------- удаление ----------
    def delete_order(self, order_id: int) -> None:
        self.request("DELETE", f"{ORDERS}/{order_id}")
        self.cache.invalidate(ORDERS, STAFF, CALENDAR, STATISTICS)

    def delete_staff(self, staff_id: int) -> None:
        self.request("DELETE", f"{STAFF}/{staff_id}")
        self.cache.invalidate(ORDERS, STAFF, CALENDAR, STATISTICS)

# ---------- формы ----------

class OrderForm(OrderIn):
    @field_validator("staff_ids", mode="before")
    @classmethod
    def _coerce_ids(cls, v):
        if v is None:
            return []
        # одиночный select присылает скаляр, множественный список строк
        if isinstance(v, (str, int)):
            v = [v]
        return [i for i in v if i not in ("", None)]

    @classmethod
    def defaults(cls, record: Optional[dict] = None) -> dict:
        if record is None:
            return {"name": "", "cleaning_date": "", "start_time": "", "status": OrderStatus.PENDING.value,
                    "payment_status": PaymentStatus.UNPAID.value, "notes": "", "price": "", "staff_ids": []}
        return {
            "name": record.get("name") or "",
            "cleaning_date": record.get("cleaning_date") or "",
            "start_time": record.get("start_time") or "",
            "status": record.get("status") or OrderStatus.PENDING.value,
            "payment_status": record.get("payment_status") or PaymentStatus.UNPAID.value,
            "notes": record.get("notes") or "",
            "price": record.get("price") or "",
            "staff_ids": [e["id"] for e in record.get("employees", [])],
        }

    def payload(self) -> dict:
        return self.model_dump(mode="json")

class StaffForm(StaffIn):
    @classmethod
    def defaults(cls, record: Optional[dict] = None) -> dict:
        record = record or {}
        return {"first_name": record.get("first_name") or "", "last_name": record.get("last_name") or ""}

    def payload(self) -> dict:
        return self.model_dump(mode="json")

# ---------- модалки ----------

class ModalState(str, enum.Enum):
    CLOSED = "closed"
    OPEN = "open"
    SUBMITTING = "submitting"

Notify = Callable[[str, str], None]  # (kind, message), kind: 'success' | 'error'

class FormModal:
    """closed -> open(пустая|заполненная) -> submitting -> closed | open+error."""

    form_class = None
    collection = None
    invalidates = (ORDERS, STAFF, CALENDAR, STATISTICS)
    created_message = "Сохранено"
    updated_message = "Изменения сохранены"

    def __init__(self, api: ApiClient, notify: Notify, on_success: Optional[Callable[[dict], None]] = None):
        self.api = api
        self.notify = notify
        self.on_success = on_success
        self.state = ModalState.CLOSED
        self.record: Optional[dict] = None
        self.values: dict = {}
        self.error: Optional[str] = None
        self.result: Optional[dict] = None

    @property
    def is_open(self) -> bool:
        return self.state is not ModalState.CLOSED

    @property
    def is_editing(self) -> bool:
        return self.record is not None

    def open(self, record: Optional[dict] = None):
        self.record = record
        self.values = self.form_class.defaults(record)
        self.error = None
        self.result = None
        self.state = ModalState.OPEN

    def close(self):
        self.state = ModalState.CLOSED

    def set(self, **values):
        if self.state is not ModalState.OPEN:
            raise RuntimeError(f"cannot edit a {self.state.value} modal")
        self.values.update(values)

    def _send(self, payload: dict) -> dict:
        if self.is_editing:
            return self.api.request("PUT", f"{self.collection}/{self.record['id']}", json=payload)
        return self.api.request("POST", self.collection, json=payload)

    def _fail(self, message: str):
        self.state = ModalState.OPEN
        self.error = message
        self.notify("error", message)
        return None

    def submit(self) -> Optional[dict]:
        if self.state is not ModalState.OPEN:
            raise RuntimeError(f"cannot submit a {self.state.value} modal")
        try:
            form = self.form_class.model_validate(self.values)
        except PydanticValidationError as e:
            return self._fail(describe_errors(e.errors()))
        self.state = ModalState.SUBMITTING
        try:
            result = self._send(form.payload())
        except ApiError as e:
            logger.info("Сохранение не удалось: %s", e)
            return self._fail(e.message or GENERIC_ERROR)
        except httpx.HTTPError as e:
            logger.warning("Сетевая ошибка: %s", e)
            return self._fail(GENERIC_ERROR)
        except ValueError as e:
            logger.warning("Некорректный ответ сервера: %s", e)
            return self._fail(GENERIC_ERROR)
        self.api.cache.invalidate(*self.invalidates)
        self.result = result
        self.error = None
        self.state = ModalState.CLOSED
        self.notify("success", self.updated_message if self.is_editing else self.created_message)
        if self.on_success:
            self.on_success(result)
        return result

class StaffModal(FormModal):
    form_class = StaffForm
    collection = STAFF
    created_message = "Сотрудник добавлен"
    updated_message = "Сотрудник обновлён"

class OrderModal(FormModal):
    form_class = OrderForm
    collection = ORDERS
    created_message = "Заказ создан"
    updated_message = "Заказ обновлён"

    def staff_modal(self) -> StaffModal:
        """Модалка нового сотрудника; созданный сразу отмечается в этом заказе."""
        modal = StaffModal(self.api, self.notify, on_success=self._select_staff)
        modal.open()
        return modal

    def _select_staff(self, staff: dict):
        ids = list(self.values.get("staff_ids") or [])
        if staff["id"] not in ids:
            ids.append(staff["id"])
        self.values["staff_ids"] = ids
