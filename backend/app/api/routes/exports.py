import csv
import io
from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse
from openpyxl import Workbook

from app.api.deps import get_calculator
from app.api.routes.targets import allocator_from_request
from app.schemas.targets import AllocationRequest
from app.services.annual_allocation import AnnualAllocator
from app.services.calculator import Calculator


router = APIRouter(tags=["exports"])

ALLOCATION_COLUMNS = [
    "month",
    "name",
    "weight",
    "budget",
    "leads",
    "estimates_set",
    "estimates",
    "sales",
    "revenue",
    "avg_job_size",
    "cost_of_marketing_percent",
    "management_cost",
    "total_cost_of_marketing_percent",
]


def _build_rows(allocator: AnnualAllocator) -> list[dict]:
    return [{key: getattr(row, key) for key in ALLOCATION_COLUMNS} for row in allocator.allocations()]


def _filename(year: int, extension: str) -> str:
    stamp = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S")
    return f"target-allocation-{year}-{stamp}.{extension}"


@router.post("/targets/yearly/allocation/exports/csv")
def export_allocation_csv(
    payload: AllocationRequest,
    calculator: Calculator = Depends(get_calculator),
):
    rows = _build_rows(allocator_from_request(payload, calculator))
    output = io.StringIO()
    writer = csv.DictWriter(output, fieldnames=ALLOCATION_COLUMNS)
    writer.writeheader()
    writer.writerows(rows)
    output.seek(0)
    return StreamingResponse(
        iter([output.getvalue()]),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{_filename(payload.year, "csv")}"'},
    )


@router.post("/targets/yearly/allocation/exports/excel")
def export_allocation_excel(
    payload: AllocationRequest,
    calculator: Calculator = Depends(get_calculator),
):
    allocator = allocator_from_request(payload, calculator)
    rows = _build_rows(allocator)
    workbook = Workbook()
    sheet = workbook.active
    sheet.title = f"Targets{payload.year}"
    sheet.append(ALLOCATION_COLUMNS)
    for row in rows:
        sheet.append([row[key] for key in ALLOCATION_COLUMNS])

    balance = allocator.balance()
    sheet.append([])
    sheet.append(["annual_budget", float(balance.annual_budget)])
    sheet.append(["allocated", float(balance.allocated)])
    sheet.append(["left_to_allocate", float(balance.left_to_allocate)])

    stream = io.BytesIO()
    workbook.save(stream)
    stream.seek(0)
    return StreamingResponse(
        stream,
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers={"Content-Disposition": f'attachment; filename="{_filename(payload.year, "xlsx")}"'},
    )
