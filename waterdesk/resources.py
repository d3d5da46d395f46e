"""Per-resource screen definitions.

Each console screen is the same list engine and form state configured by one
``ResourceDefinition``: where the collection lives, which field identifies a
record, how the list searches/filters/sorts and which rules the add/edit form
enforces.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from waterdesk.forms import EMAIL_PATTERN, PHONE_PATTERN, FieldRule
from waterdesk.list_state import DESC, ListSpec, SortKey

API = "api"
LOCAL = "local"

CONNECTIONS_STORAGE_KEY = "waterSystem_connections"

CONNECTION_TYPES = ("Residential", "Commercial", "Industrial")
ACCOUNT_STATUSES = ("Active", "Inactive", "Suspended")
PAYMENT_STATUSES = ("Paid", "Unpaid", "Overdue")
SOURCE_TYPES = ("Reservoir", "Well", "River", "Lake")
SOURCE_STATUSES = ("Active", "Inactive", "Maintenance")
EMPLOYEE_STATUSES = ("Active", "Inactive")
COMPLAINT_TYPES = ("Service", "Billing", "Quality", "Technical")
COMPLAINT_STATUSES = ("Open", "In Progress", "Resolved", "Escalated")
ALERT_STATUSES = ("Active", "Resolved")
ALERT_SEVERITIES = ("Low", "Medium", "High", "Critical")


@dataclass(frozen=True)
class ResourceDefinition:
    key: str
    title: str
    endpoint: str
    list_spec: ListSpec
    columns: Tuple[str, ...]
    template: Mapping[str, Any] = field(default_factory=dict)
    rules: Mapping[str, FieldRule] = field(default_factory=dict)
    choices: Mapping[str, Tuple[str, ...]] = field(default_factory=dict)
    numeric_fields: Tuple[str, ...] = ()
    date_fields: Tuple[str, ...] = ()
    normalize: Optional[Callable[[Dict[str, Any]], Dict[str, Any]]] = None
    persistence: str = API
    storage_key: Optional[str] = None
    read_only: bool = False
    icon: str = "💧"
    description: str = ""

    @property
    def id_field(self) -> str:
        return self.list_spec.id_field

    @property
    def singular(self) -> str:
        return self.title[:-1] if self.title.endswith("s") else self.title


def _date_only(data: Dict[str, Any], *fields: str) -> Dict[str, Any]:
    for name in fields:
        value = data.get(name)
        if isinstance(value, str) and "T" in value:
            data[name] = value.split("T")[0]
    return data


def normalize_connection(data: Dict[str, Any]) -> Dict[str, Any]:
    return _date_only(data, "ConnectionDate")


def _severity_rank(record: Mapping[str, Any]) -> Optional[int]:
    severity = record.get("Severity")
    if severity in ALERT_SEVERITIES:
        return ALERT_SEVERITIES.index(severity)
    return None


_PERSON_TEMPLATE = {"Name": "", "Address": "", "Phone": "", "Email": "", "ConnectionType": ""}

_PERSON_RULES = {
    "Name": FieldRule("Name", required=True),
    "Address": FieldRule("Address", required=True),
    "Phone": FieldRule("Phone", required=True, pattern=PHONE_PATTERN, pattern_message="Phone must be exactly 10 digits"),
    "Email": FieldRule("Email", required=True, pattern=EMAIL_PATTERN, pattern_message="Invalid email format"),
    "ConnectionType": FieldRule("Connection Type", required=True),
}


def _person_spec(id_field: str) -> ListSpec:
    return ListSpec(
        id_field=id_field,
        search_fields=("Name", "Email", "Phone", "Address"),
        filter_field="ConnectionType",
        filter_options=CONNECTION_TYPES,
        sort_keys={
            "name": SortKey("Name", label="Name"),
            "email": SortKey("Email", label="Email"),
            "created": SortKey("CreatedAt", kind="date", label="Created"),
        },
        default_sort="name",
    )


USERS = ResourceDefinition(
    key="users",
    title="Users",
    endpoint="users",
    icon="👥",
    description="Manage user information and accounts",
    list_spec=_person_spec("UserID"),
    columns=("UserID", "Name", "Address", "Phone", "Email", "ConnectionType"),
    template=_PERSON_TEMPLATE,
    rules=_PERSON_RULES,
    choices={"ConnectionType": CONNECTION_TYPES},
)

CUSTOMERS = ResourceDefinition(
    key="customers",
    title="Customers",
    endpoint="customers",
    icon="🏠",
    description="Customer accounts and contact details",
    list_spec=_person_spec("CustomerID"),
    columns=("CustomerID", "Name", "Address", "Phone", "Email", "ConnectionType"),
    template=_PERSON_TEMPLATE,
    rules=_PERSON_RULES,
    choices={"ConnectionType": CONNECTION_TYPES},
)

CONNECTIONS = ResourceDefinition(
    key="connections",
    title="Connections",
    endpoint="connections",
    icon="🔌",
    description="Service connections, meters and their water sources",
    list_spec=ListSpec(
        id_field="ConnectionID",
        search_fields=("MeterNumber", "Status", "UserID"),
        filter_field="Status",
        filter_options=ACCOUNT_STATUSES,
        sort_keys={
            "connection_date": SortKey("ConnectionDate", kind="date", label="Connection date"),
            "meter_number": SortKey("MeterNumber", label="Meter number"),
            "status": SortKey("Status", label="Status"),
        },
        default_sort="connection_date",
        default_direction=DESC,
    ),
    columns=("ConnectionID", "UserID", "ConnectionDate", "MeterNumber", "Status", "SourceID"),
    template={"UserID": "", "ConnectionDate": "", "MeterNumber": "", "Status": "", "SourceID": ""},
    rules={
        "UserID": FieldRule("User", required=True),
        "ConnectionDate": FieldRule("Connection Date", required=True),
        "MeterNumber": FieldRule("Meter Number", required=True),
        "Status": FieldRule("Status", required=True),
        "SourceID": FieldRule("Water Source", required=True),
    },
    choices={"Status": ACCOUNT_STATUSES},
    date_fields=("ConnectionDate",),
    normalize=normalize_connection,
    persistence=LOCAL,
    storage_key=CONNECTIONS_STORAGE_KEY,
)

BILLS = ResourceDefinition(
    key="bills",
    title="Bills",
    endpoint="bills",
    icon="🧾",
    description="Issued bills and their payment status",
    list_spec=ListSpec(
        id_field="_id",
        search_fields=("_id", "MeterReadingID.ConnectionID.UserID.Name"),
        filter_field="PaymentStatus",
        filter_options=PAYMENT_STATUSES,
        sort_keys={
            "bill_date": SortKey("BillDate", kind="date", label="Bill date"),
            "amount": SortKey("Amount", kind="number", label="Amount"),
            "status": SortKey("PaymentStatus", label="Status"),
        },
        default_sort="bill_date",
        default_direction=DESC,
    ),
    columns=("_id", "MeterReadingID", "BillDate", "Amount", "PaymentStatus", "PaymentMethod"),
    template={"MeterReadingID": "", "BillDate": "", "Amount": "", "PaymentStatus": "Unpaid", "PaymentMethod": ""},
    rules={
        "MeterReadingID": FieldRule("Meter Reading", required=True),
        "BillDate": FieldRule("Bill Date", required=True),
        "Amount": FieldRule("Amount", required=True, numeric_range=(0, None)),
        "PaymentStatus": FieldRule("Payment Status", required=True),
    },
    choices={"PaymentStatus": PAYMENT_STATUSES},
    numeric_fields=("Amount",),
    date_fields=("BillDate",),
)

READINGS = ResourceDefinition(
    key="readings",
    title="Readings",
    endpoint="readings",
    icon="📟",
    description="Meter readings per connection",
    list_spec=ListSpec(
        id_field="_id",
        search_fields=("_id", "ConnectionID", "ConnectionID.MeterNumber"),
        sort_keys={
            "reading_date": SortKey("ReadingDate", kind="date", label="Reading date"),
            "units": SortKey("UnitsConsumed", kind="number", label="Units consumed"),
        },
        default_sort="reading_date",
        default_direction=DESC,
    ),
    columns=("_id", "ConnectionID", "ReadingDate", "UnitsConsumed"),
    template={"ConnectionID": "", "ReadingDate": "", "UnitsConsumed": ""},
    rules={
        "ConnectionID": FieldRule("Connection", required=True),
        "ReadingDate": FieldRule("Reading Date", required=True),
        "UnitsConsumed": FieldRule("Units Consumed", required=True, numeric_range=(0, None)),
    },
    numeric_fields=("UnitsConsumed",),
    date_fields=("ReadingDate",),
)

SOURCES = ResourceDefinition(
    key="sources",
    title="Water Sources",
    endpoint="water-sources",
    icon="🌊",
    description="Reservoirs, wells, rivers and lakes feeding the network",
    list_spec=ListSpec(
        id_field="SourceID",
        search_fields=("Name", "Type"),
        filter_field="Status",
        filter_options=SOURCE_STATUSES,
        sort_keys={
            "name": SortKey("Name", label="Name"),
            "capacity": SortKey("Capacity", kind="number", label="Capacity"),
        },
        default_sort="name",
    ),
    columns=("SourceID", "Name", "Type", "Capacity", "Status"),
    template={"Name": "", "Type": "", "Capacity": "", "Status": "Active"},
    rules={
        "Name": FieldRule("Name", required=True),
        "Type": FieldRule("Type", required=True),
        "Capacity": FieldRule("Capacity", numeric_range=(0, None)),
        "Status": FieldRule("Status", required=True),
    },
    choices={"Type": SOURCE_TYPES, "Status": SOURCE_STATUSES},
    numeric_fields=("Capacity",),
)

QUALITY = ResourceDefinition(
    key="quality",
    title="Quality Records",
    endpoint="quality",
    icon="🧪",
    description="Water quality samples per source",
    list_spec=ListSpec(
        id_field="QualityID",
        search_fields=("SourceID", "Contaminants"),
        sort_keys={
            "date": SortKey("Date", kind="date", label="Date"),
            "ph": SortKey("pH", kind="number", label="pH"),
        },
        default_sort="date",
        default_direction=DESC,
    ),
    columns=("QualityID", "SourceID", "Date", "pH", "Contaminants"),
    template={"SourceID": "", "Date": "", "pH": "", "Contaminants": ""},
    rules={
        "SourceID": FieldRule("SourceID", required=True),
        "Date": FieldRule("Date", required=True),
        "pH": FieldRule("pH", required=True, numeric_range=(0, 14), range_message="pH must be a number between 0 and 14"),
        "Contaminants": FieldRule("Contaminants", required=True),
    },
    numeric_fields=("pH",),
    date_fields=("Date",),
)

EMPLOYEES = ResourceDefinition(
    key="employees",
    title="Employees",
    endpoint="employees",
    icon="👷",
    description="Field and office staff",
    list_spec=ListSpec(
        id_field="EmployeeID",
        search_fields=("Name", "Role", "Contact"),
        filter_field="Status",
        filter_options=EMPLOYEE_STATUSES,
        sort_keys={
            "name": SortKey("Name", label="Name"),
            "role": SortKey("Role", label="Role"),
        },
        default_sort="name",
    ),
    columns=("EmployeeID", "Name", "Role", "Contact", "Status"),
    template={"Name": "", "Role": "", "Contact": "", "Status": "Active"},
    rules={
        "Name": FieldRule("Name", required=True),
        "Role": FieldRule("Role", required=True),
        "Contact": FieldRule("Contact", required=True),
    },
    choices={"Status": EMPLOYEE_STATUSES},
)

COMPLAINTS = ResourceDefinition(
    key="complaints",
    title="Complaints",
    endpoint="complaints",
    icon="📣",
    description="Customer complaints and their resolution",
    list_spec=ListSpec(
        id_field="ComplaintID",
        search_fields=("Description", "Type", "Status"),
        filter_field="Status",
        filter_options=COMPLAINT_STATUSES,
        sort_keys={
            "date": SortKey("Date", kind="date", label="Date"),
            "type": SortKey("Type", label="Type"),
            "status": SortKey("Status", label="Status"),
        },
        default_sort="date",
        default_direction=DESC,
    ),
    columns=("ComplaintID", "UserID", "Date", "Type", "Description", "Status", "Response"),
    template={"UserID": "", "Date": "", "Type": "", "Description": "", "Status": "Open", "Response": ""},
    rules={
        "UserID": FieldRule("UserID", required=True),
        "Date": FieldRule("Date", required=True),
        "Type": FieldRule("Type", required=True),
        "Description": FieldRule("Description", required=True),
        "Status": FieldRule("Status", required=True),
    },
    choices={"Type": COMPLAINT_TYPES, "Status": COMPLAINT_STATUSES},
    date_fields=("Date",),
)

ALERTS = ResourceDefinition(
    key="alerts",
    title="Alerts",
    endpoint="alerts",
    icon="🚨",
    description="Operational alerts raised across the network",
    list_spec=ListSpec(
        id_field="AlertID",
        search_fields=("Type", "Message", "Status", "Timestamp"),
        filter_field="Status",
        filter_options=ALERT_STATUSES,
        sort_keys={
            "timestamp": SortKey("Timestamp", kind="date", label="Raised"),
            "severity": SortKey("Severity", label="Severity", extractor=_severity_rank),
        },
        default_sort="timestamp",
        default_direction=DESC,
    ),
    columns=("AlertID", "Type", "Message", "Severity", "Status", "Timestamp"),
    template={"Type": "", "Message": "", "Severity": "Medium", "Status": "Active"},
    rules={
        "Type": FieldRule("Type", required=True),
        "Message": FieldRule("Message", required=True),
        "Status": FieldRule("Status", required=True),
    },
    choices={"Severity": ALERT_SEVERITIES, "Status": ALERT_STATUSES},
)

AUDIT = ResourceDefinition(
    key="audit",
    title="Audit Logs",
    endpoint="audit",
    icon="📜",
    description="Who changed what, and when",
    list_spec=ListSpec(
        id_field="AuditID",
        search_fields=("User", "Action", "Timestamp"),
        sort_keys={
            "timestamp": SortKey("Timestamp", kind="date", label="Timestamp"),
            "user": SortKey("User", label="User"),
        },
        default_sort="timestamp",
        default_direction=DESC,
    ),
    columns=("AuditID", "User", "Action", "Details", "Timestamp"),
    read_only=True,
)

RESOURCES: Dict[str, ResourceDefinition] = {
    r.key: r
    for r in (USERS, CUSTOMERS, CONNECTIONS, BILLS, READINGS, SOURCES, QUALITY, EMPLOYEES, COMPLAINTS, ALERTS, AUDIT)
}


def get_resource(key: str) -> ResourceDefinition:
    try:
        return RESOURCES[key]
    except KeyError:
        raise KeyError(f"unknown resource {key!r}; expected one of {sorted(RESOURCES)}") from None


DEFAULT_CONNECTIONS: List[Dict[str, Any]] = [
    {
        "ConnectionID": "C001",
        "UserID": "1",
        "ConnectionDate": "2024-01-15",
        "MeterNumber": "MTR-1001",
        "Status": "Active",
        "SourceID": "S1",
    },
    {
        "ConnectionID": "C002",
        "UserID": "2",
        "ConnectionDate": "2024-02-20",
        "MeterNumber": "MTR-1002",
        "Status": "Active",
        "SourceID": "S2",
    },
    {
        "ConnectionID": "C003",
        "UserID": "3",
        "ConnectionDate": "2024-03-05",
        "MeterNumber": "MTR-1003",
        "Status": "Suspended",
        "SourceID": "S1",
    },
]

SEED_DATA: Dict[str, List[Dict[str, Any]]] = {CONNECTIONS_STORAGE_KEY: DEFAULT_CONNECTIONS}
