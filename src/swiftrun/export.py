"""Read-only exports: the delivery history workbook and carton labels."""

from __future__ import annotations

import csv
from collections.abc import Iterator, Sequence
from dataclasses import dataclass
from pathlib import Path

from openpyxl import Workbook

from swiftrun._constants import preset_for_address
from swiftrun.models.booking import Booking

HISTORY_COLUMNS: tuple[str, ...] = (
    "Seq",
    "Status",
    "Customer Name",
    "Sales Order",
    "Purchase Order",
    "Pickup Location",
    "Delivery Address",
    "Contact Info",
    "Cartons",
    "Booked At",
    "Delivered At",
)

HISTORY_SHEET = "Delivery History"


def export_source(history: Sequence[Booking], bookings: Sequence[Booking]) -> list[Booking]:
    """Delivered history when there is any, otherwise every booking."""
    return list(history) if history else list(bookings)


def history_rows(bookings: Sequence[Booking]) -> list[dict[str, str | int]]:
    return [
        {
            "Seq": b.sequence,
            "Status": b.status.value,
            "Customer Name": b.customer_name,
            "Sales Order": b.sales_order,
            "Purchase Order": b.purchase_order or "",
            "Pickup Location": b.pickup_location,
            "Delivery Address": b.delivery_address,
            "Contact Info": b.contact,
            "Cartons": b.cartons,
            "Booked At": b.booked_at or "N/A",
            "Delivered At": b.delivered_at or "N/A",
        }
        for b in bookings
    ]


def write_csv(path: Path, rows: Sequence[dict[str, str | int]]) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8", newline="") as handle:
        writer = csv.DictWriter(handle, fieldnames=list(HISTORY_COLUMNS))
        writer.writeheader()
        writer.writerows(rows)
    return path


def write_workbook(path: Path, rows: Sequence[dict[str, str | int]]) -> Path:
    """Write *rows* to a single-sheet ``.xlsx`` workbook with a header row."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    workbook = Workbook()
    sheet = workbook.active
    sheet.title = HISTORY_SHEET
    sheet.append(list(HISTORY_COLUMNS))
    for row in rows:
        sheet.append([row.get(column, "") for column in HISTORY_COLUMNS])
    workbook.save(path)
    return path


@dataclass(frozen=True)
class LabelPage:
    """One printed carton label."""

    pickup_code: str
    customer_name: str
    delivery_address: str
    contact: str
    sales_order: str
    purchase_order: str
    booked_at: str
    carton_index: int
    carton_total: int

    @property
    def carton_caption(self) -> str:
        return f"{self.carton_index} of {self.carton_total}"


def label_pages(booking: Booking) -> Iterator[LabelPage]:
    """Yield one label per carton, numbered ``1 of N`` .. ``N of N``."""
    preset = preset_for_address(booking.pickup_location)
    pickup_code = preset.id if preset is not None else "Custom"
    for index in range(1, booking.cartons + 1):
        yield LabelPage(
            pickup_code=pickup_code,
            customer_name=booking.customer_name,
            delivery_address=booking.delivery_address,
            contact=booking.contact,
            sales_order=booking.sales_order,
            purchase_order=booking.purchase_order or "N/A",
            booked_at=booking.booked_at or "N/A",
            carton_index=index,
            carton_total=booking.cartons,
        )
