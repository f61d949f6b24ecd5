# storage.py
# все запросы ограничены account_id владельца
import calendar
import logging
from contextlib import contextmanager
from datetime import date
from typing import Iterable, List, Optional
from sqlalchemy import func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from werkzeug.security import generate_password_hash, check_password_hash

from errors import NotFound, StorageError, ValidationError
from fields import ORDER_FIELDS, STAFF_FIELDS, SEARCHABLE_ORDER_FIELDS
from models import Account, Assignment, Order, Staff

logger = logging.getLogger(__name__)

TOP_LIMIT = 3

@contextmanager
def _tx(db: Session, what: str, commit: bool = True):
    try:
        yield
        if commit:
            db.commit()
    except (NotFound, ValidationError):
        db.rollback()
        raise
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("Ошибка БД: %s", what)
        raise StorageError(str(e)) from e

def _pick(fields: dict, names: Iterable[str]) -> dict:
    return {k: fields[k] for k in names if k in fields}

def _like(term: str) -> str:
    term = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{term}%"

def _price(v) -> Optional[str]:
    return None if v is None else f"{v:.2f}"

def order_dict(o: Order) -> dict:
    return {
        "id": o.id, "name": o.name, "cleaning_date": o.cleaning_date, "start_time": o.start_time,
        "status": o.status, "payment_status": o.payment_status, "notes": o.notes, "price": _price(o.price),
    }

def staff_dict(s: Staff) -> dict:
    return {"id": s.id, "first_name": s.first_name, "last_name": s.last_name}

def account_dict(a: Account) -> dict:
    return {"id": a.id, "email": a.email}

def _owned(db: Session, model, account_id: int, obj_id: int, label: str):
    obj = db.query(model).filter(model.id == obj_id, model.account_id == account_id).first()
    if obj is None:
        raise NotFound(f"{label} {obj_id} не найден")
    return obj

# ---------- orders ----------

def _orders_with_staff(query) -> List[dict]:
    """Один запрос orders ⟕ assignments ⟕ staff, группировка по заказу в памяти.

    Порядок заказов берётся из ``query``; сотрудники внутри заказа идут по фамилии.
    """
    rows = (query.outerjoin(Assignment, Assignment.order_id == Order.id)
                 .outerjoin(Staff, Staff.id == Assignment.staff_id)
                 .add_columns(Staff.id, Staff.first_name, Staff.last_name)
                 .order_by(Staff.last_name.asc(), Staff.first_name.asc(), Staff.id.asc())
                 .all())
    out = {}
    for o, sid, first, last in rows:
        item = out.get(o.id)
        if item is None:
            item = out[o.id] = order_dict(o)
            item["employees"] = []
        if sid is not None:
            item["employees"].append({"id": sid, "first_name": first, "last_name": last})
    return list(out.values())

def _orders_query(db: Session, account_id: int):
    return db.query(Order).filter(Order.account_id == account_id)

def list_orders(db: Session, account_id: int, sort_by: Optional[str] = None, search: Optional[str] = None) -> List[dict]:
    with _tx(db, "list_orders", commit=False):
        q = _orders_query(db, account_id)
        if search and search.strip():
            term = _like(search.strip())
            q = q.filter(or_(*[getattr(Order, f).ilike(term, escape="\\") for f in SEARCHABLE_ORDER_FIELDS]))
        if sort_by == "name":
            q = q.order_by(Order.name.asc(), Order.id.asc())
        else:
            q = q.order_by(Order.cleaning_date.desc(), Order.id.desc())
        return _orders_with_staff(q)

def get_order(db: Session, account_id: int, order_id: int) -> Optional[dict]:
    with _tx(db, "get_order", commit=False):
        found = _orders_with_staff(_orders_query(db, account_id).filter(Order.id == order_id))
    return found[0] if found else None

def _resolve_staff_ids(db: Session, account_id: int, staff_ids: Optional[Iterable[int]]) -> List[int]:
    ids = list(dict.fromkeys(staff_ids or []))
    if not ids:
        return ids
    known = {sid for (sid,) in db.query(Staff.id).filter(Staff.account_id == account_id, Staff.id.in_(ids))}
    missing = [i for i in ids if i not in known]
    if missing:
        raise ValidationError("Неизвестные сотрудники: " + ", ".join(str(i) for i in missing))
    return ids

def create_order(db: Session, account_id: int, fields: dict, staff_ids: Iterable[int] = ()) -> dict:
    with _tx(db, "create_order"):
        ids = _resolve_staff_ids(db, account_id, staff_ids)
        order = Order(account_id=account_id, **_pick(fields, ORDER_FIELDS))
        db.add(order)
        db.flush()
        db.add_all([Assignment(order_id=order.id, staff_id=sid) for sid in ids])
        order_id = order.id
    logger.info("Создан заказ %s (сотрудников: %d)", order_id, len(ids))
    return get_order(db, account_id, order_id)

def update_order(db: Session, account_id: int, order_id: int, fields: dict, staff_ids: Iterable[int] = ()) -> dict:
    # поля и полная замена назначений в одной транзакции
    with _tx(db, "update_order"):
        order = _owned(db, Order, account_id, order_id, "Заказ")
        ids = _resolve_staff_ids(db, account_id, staff_ids)
        for k, v in _pick(fields, ORDER_FIELDS).items():
            setattr(order, k, v)
        db.query(Assignment).filter(Assignment.order_id == order.id).delete(synchronize_session=False)
        db.add_all([Assignment(order_id=order.id, staff_id=sid) for sid in ids])
    result = get_order(db, account_id, order_id)
    if result is None:
        raise NotFound(f"Заказ {order_id} не найден")
    return result

def delete_order(db: Session, account_id: int, order_id: int) -> None:
    with _tx(db, "delete_order"):
        db.delete(_owned(db, Order, account_id, order_id, "Заказ"))
    logger.info("Удалён заказ %s", order_id)

# ---------- staff ----------

def _staff_with_orders(query) -> List[dict]:
    rows = (query.outerjoin(Assignment, Assignment.staff_id == Staff.id)
                 .outerjoin(Order, Order.id == Assignment.order_id)
                 .add_entity(Order)
                 .order_by(Order.cleaning_date.asc(), Order.id.asc())
                 .all())
    out = {}
    for s, o in rows:
        item = out.get(s.id)
        if item is None:
            item = out[s.id] = staff_dict(s)
            item["orders"] = []
        if o is not None:
            item["orders"].append(order_dict(o))
    return list(out.values())

def _staff_query(db: Session, account_id: int):
    return db.query(Staff).filter(Staff.account_id == account_id)

def list_staff(db: Session, account_id: int, search: Optional[str] = None) -> List[dict]:
    with _tx(db, "list_staff", commit=False):
        q = _staff_query(db, account_id)
        if search and search.strip():
            term = _like(search.strip())
            q = q.filter(or_(Staff.first_name.ilike(term, escape="\\"), Staff.last_name.ilike(term, escape="\\")))
        q = q.order_by(Staff.last_name.asc(), Staff.first_name.asc(), Staff.id.asc())
        return _staff_with_orders(q)

def get_staff(db: Session, account_id: int, staff_id: int) -> Optional[dict]:
    with _tx(db, "get_staff", commit=False):
        found = _staff_with_orders(_staff_query(db, account_id).filter(Staff.id == staff_id))
    return found[0] if found else None

def create_staff(db: Session, account_id: int, fields: dict) -> dict:
    with _tx(db, "create_staff"):
        staff = Staff(account_id=account_id, **_pick(fields, STAFF_FIELDS))
        db.add(staff)
        db.flush()
        result = staff_dict(staff)
    result["orders"] = []
    logger.info("Добавлен сотрудник %s", result["id"])
    return result

def update_staff(db: Session, account_id: int, staff_id: int, fields: dict) -> dict:
    with _tx(db, "update_staff"):
        staff = _owned(db, Staff, account_id, staff_id, "Сотрудник")
        for k, v in _pick(fields, STAFF_FIELDS).items():
            setattr(staff, k, v)
    return get_staff(db, account_id, staff_id)

def delete_staff(db: Session, account_id: int, staff_id: int) -> None:
    # заказы остаются, удаляются только назначения (ON DELETE CASCADE)
    with _tx(db, "delete_staff"):
        db.delete(_owned(db, Staff, account_id, staff_id, "Сотрудник"))
    logger.info("Удалён сотрудник %s", staff_id)

# ---------- calendar ----------

def month_bounds(year: int, month: int):
    """Первый и последний день месяца, оба включительно."""
    last = calendar.monthrange(year, month)[1]
    return date(year, month, 1).isoformat(), date(year, month, last).isoformat()

def orders_by_month(db: Session, account_id: int, year: int, month: int) -> List[dict]:
    first, last = month_bounds(year, month)
    with _tx(db, "orders_by_month", commit=False):
        q = (_orders_query(db, account_id)
             .filter(Order.cleaning_date >= first, Order.cleaning_date <= last)
             .order_by(Order.cleaning_date.asc(), Order.start_time.asc().nulls_first(), Order.id.asc()))
        return _orders_with_staff(q)

def orders_by_date(db: Session, account_id: int, year: int, month: int, day: int) -> List[dict]:
    day_str = date(year, month, day).isoformat()
    with _tx(db, "orders_by_date", commit=False):
        q = (_orders_query(db, account_id)
             .filter(Order.cleaning_date == day_str)
             .order_by(Order.start_time.asc().nulls_first(), Order.id.asc()))
        return _orders_with_staff(q)

# ---------- statistics ----------

def statistics(db: Session, account_id: int) -> dict:
    with _tx(db, "statistics", commit=False):
        total = db.query(func.count(Order.id)).filter(Order.account_id == account_id).scalar() or 0

        assigned = func.count(Assignment.id).label("assigned")
        top = (db.query(Staff.id, Staff.first_name, Staff.last_name, assigned)
               .join(Assignment, Assignment.staff_id == Staff.id)
               .filter(Staff.account_id == account_id)
               .group_by(Staff.id, Staff.first_name, Staff.last_name)
               .order_by(assigned.desc(), Staff.id.asc())
               .limit(TOP_LIMIT).all())

        per_day = func.count(Order.id).label("per_day")
        days = (db.query(Order.cleaning_date, per_day)
                .filter(Order.account_id == account_id)
                .group_by(Order.cleaning_date)
                .order_by(per_day.desc(), Order.cleaning_date.asc())
                .limit(TOP_LIMIT).all())
    return {
        "totalOrders": int(total),
        "topEmployees": [{"id": sid, "name": f"{first or ''} {last or ''}".strip(), "count": int(n)}
                         for sid, first, last, n in top],
        "busiestDays": [{"date": d, "count": int(n)} for d, n in days],
    }

# ---------- accounts ----------

def register_account(db: Session, email: str, password: str) -> dict:
    with _tx(db, "register_account"):
        if db.query(Account.id).filter(Account.email == email).first():
            raise ValidationError("Этот email уже зарегистрирован")
        acc = Account(email=email, hashed_password=generate_password_hash(password))
        db.add(acc)
        db.flush()
        result = account_dict(acc)
    logger.info("Зарегистрирован аккаунт %s", result["id"])
    return result

def authenticate(db: Session, email: str, password: str) -> Optional[dict]:
    with _tx(db, "authenticate", commit=False):
        acc = db.query(Account).filter(Account.email == email).first()
        if acc and check_password_hash(acc.hashed_password, password):
            return account_dict(acc)
    return None

def get_account(db: Session, account_id: int) -> Optional[dict]:
    with _tx(db, "get_account", commit=False):
        acc = db.query(Account).filter(Account.id == account_id).first()
        return account_dict(acc) if acc else None
