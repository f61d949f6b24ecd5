# fields.py
# общие определения полей: из них строятся и таблицы (models.py), и схемы запросов (schemas.py)
import enum
import re

class OrderStatus(str, enum.Enum):
    PENDING = "Pending"
    IN_PROGRESS = "InProgress"
    DONE = "Done"

class PaymentStatus(str, enum.Enum):
    UNPAID = "Unpaid"
    PAID = "Paid"

EMAIL_LEN = 255
ORDER_NAME_LEN = 255
PERSON_NAME_LEN = 100
STATUS_LEN = 20

DATE_LEN = 10   # 'YYYY-MM-DD'
TIME_LEN = 5    # 'HH:MM'
DATE_FORMAT = "%Y-%m-%d"
TIME_RE = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")

PRICE_PRECISION = 10
PRICE_SCALE = 2

ORDER_FIELDS = ("name", "cleaning_date", "start_time", "status", "payment_status", "notes", "price")
STAFF_FIELDS = ("first_name", "last_name")
SEARCHABLE_ORDER_FIELDS = ("name", "notes", "status", "payment_status")

ID_MAX = 2**63 - 1  # предел INTEGER в SQLite
YEAR_MIN, YEAR_MAX = 1, 9999
