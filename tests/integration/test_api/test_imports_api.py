"""Integration tests for the import endpoints."""

import io
import json

import pytest
from httpx import AsyncClient
from openpyxl import Workbook

from finance_transfer.core.background import InProcessTaskRunner
from finance_transfer.core.config import Settings
from finance_transfer.models.user import User

pytestmark = pytest.mark.integration

TRANSACTIONS_CSV = (
    b"Transaction Date;Memo;Amount;Type;Category\n"
    b"2024-04-01;Rent;-1200.00;expense;Housing\n"
    b"2024-04-02;Paycheck;3000;income;Salary\n"
    b"2024-04-03;Mystery;12;gift;Other\n"
)


def _xlsx(rows: list[list[object]], title: str = "Budgets") -> bytes:
    workbook = Workbook()
    sheet = workbook.active
    sheet.title = title
    for row in rows:
        sheet.append(row)
    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


async def _upload(
    client: AsyncClient,
    headers: dict[str, str],
    payload: bytes,
    *,
    data_type: str = "transactions",
    fmt: str = "csv",
    file_name: str = "upload.csv",
    options: dict | None = None,
    path: str = "/api/v1/imports",
):
    data = {"type": data_type, "format": fmt}
    if options is not None:
        data["options"] = json.dumps(options)
    return await client.post(path, files={"file": (file_name, payload)}, data=data, headers=headers)


class TestImportLifecycle:
    async def test_csv_import_reports_per_record_outcome(
        self,
        client: AsyncClient,
        runner: InProcessTaskRunner,
        sample_user: User,
        auth_headers: dict[str, str],
    ) -> None:
        response = await _upload(client, auth_headers, TRANSACTIONS_CSV, file_name="april.csv")
        assert response.status_code == 202, response.text
        operation_id = response.json()["operation_id"]
        assert response.json()["operation"]["file_name"] == "april.csv"

        await runner.wait(operation_id)
        operation = (await client.get(f"/api/v1/imports/{operation_id}", headers=auth_headers)).json()
        assert operation["status"] == "completed"
        result = operation["result"]
        assert result["created"] == 2
        assert result["rejected"] == 1
        assert result["errors"] == [{"index": 3, "reason": result["errors"][0]["reason"], "field": "type"}]
        assert operation["progress"] == {"processed": 2, "total": 2}

    async def test_reimport_skips_duplicates(
        self,
        client: AsyncClient,
        runner: InProcessTaskRunner,
        sample_user: User,
        auth_headers: dict[str, str],
    ) -> None:
        first = await _upload(client, auth_headers, TRANSACTIONS_CSV)
        await runner.wait(first.json()["operation_id"])
        second = await _upload(client, auth_headers, TRANSACTIONS_CSV)
        await runner.wait(second.json()["operation_id"])

        result = (await client.get(f"/api/v1/imports/{second.json()['operation_id']}", headers=auth_headers)).json()[
            "result"
        ]
        assert (result["created"], result["skipped"], result["rejected"]) == (0, 2, 1)

    async def test_excel_import(
        self,
        client: AsyncClient,
        runner: InProcessTaskRunner,
        sample_user: User,
        auth_headers: dict[str, str],
    ) -> None:
        payload = _xlsx([["Name", "Amount", "Period"], ["Food", 300, "monthly"], ["Travel", 0, "yearly"]])
        response = await _upload(
            client,
            auth_headers,
            payload,
            data_type="budgets",
            fmt="excel",
            file_name="budgets.xlsx",
        )
        operation_id = response.json()["operation_id"]
        await runner.wait(operation_id)

        result = (await client.get(f"/api/v1/imports/{operation_id}", headers=auth_headers)).json()["result"]
        assert result["created"] == 1
        assert result["errors"][0]["field"] == "amount"

    async def test_unparseable_file_fails_operation(
        self,
        client: AsyncClient,
        runner: InProcessTaskRunner,
        sample_user: User,
        auth_headers: dict[str, str],
    ) -> None:
        response = await _upload(client, auth_headers, b"not a workbook", fmt="excel", file_name="x.xlsx")
        operation_id = response.json()["operation_id"]
        await runner.wait(operation_id)

        operation = (await client.get(f"/api/v1/imports/{operation_id}", headers=auth_headers)).json()
        assert operation["status"] == "failed"
        assert operation["result"]["error"]["code"] == "structural_decode_error"


class TestImportRejections:
    @pytest.mark.parametrize(
        ("data_type", "fmt", "options"),
        [
            ("all", "csv", None),
            ("transactions", "pdf", None),
            ("transactions", "csv", {"duplicate_strategy": "merge"}),
            ("transactions", "csv", {"bogus": 1}),
        ],
    )
    async def test_invalid_submission(
        self,
        client: AsyncClient,
        sample_user: User,
        auth_headers: dict[str, str],
        data_type: str,
        fmt: str,
        options: dict | None,
    ) -> None:
        response = await _upload(client, auth_headers, TRANSACTIONS_CSV, data_type=data_type, fmt=fmt, options=options)
        assert response.status_code == 422
        assert response.json()["code"] == "validation_error"
        listing = await client.get("/api/v1/imports", headers=auth_headers)
        assert listing.json()["pagination"]["total"] == 0

    async def test_options_must_be_json_object(
        self,
        client: AsyncClient,
        sample_user: User,
        auth_headers: dict[str, str],
    ) -> None:
        response = await client.post(
            "/api/v1/imports",
            files={"file": ("a.csv", TRANSACTIONS_CSV)},
            data={"type": "transactions", "format": "csv", "options": "[1, 2]"},
            headers=auth_headers,
        )
        assert response.status_code == 422

    async def test_oversized_upload(
        self,
        client: AsyncClient,
        sample_user: User,
        settings: Settings,
        auth_headers: dict[str, str],
    ) -> None:
        payload = b"x" * (settings.import_max_file_size_bytes + 1)
        response = await _upload(client, auth_headers, payload)
        assert response.status_code == 422
        assert "maximum size" in response.json()["detail"]

    async def test_empty_upload(self, client: AsyncClient, sample_user: User, auth_headers: dict[str, str]) -> None:
        response = await _upload(client, auth_headers, b"")
        assert response.status_code == 422


class TestValidateOnly:
    async def test_report_without_operation(
        self,
        client: AsyncClient,
        sample_user: User,
        auth_headers: dict[str, str],
    ) -> None:
        response = await _upload(client, auth_headers, TRANSACTIONS_CSV, path="/api/v1/imports/validate")
        assert response.status_code == 200
        report = response.json()
        assert report["valid"] is False
        assert report["accepted"] == 2
        assert report["rejected"] == 1
        assert report["suggested_mapping"]["Transaction Date"] == "date"
        assert report["suggested_mapping"]["Memo"] == "description"

        listing = await client.get("/api/v1/operations", headers=auth_headers)
        assert listing.json()["pagination"]["total"] == 0

    async def test_structural_error_in_report(
        self,
        client: AsyncClient,
        sample_user: User,
        auth_headers: dict[str, str],
    ) -> None:
        response = await _upload(
            client,
            auth_headers,
            b"{broken",
            fmt="json",
            file_name="x.json",
            path="/api/v1/imports/validate",
        )
        assert response.status_code == 200
        assert response.json()["structural_error"].startswith("Invalid JSON")

    async def test_pdf_rejected(self, client: AsyncClient, sample_user: User, auth_headers: dict[str, str]) -> None:
        response = await _upload(client, auth_headers, b"%PDF", fmt="pdf", path="/api/v1/imports/validate")
        assert response.status_code == 422

    async def test_import_options(self, client: AsyncClient, sample_user: User, auth_headers: dict[str, str]) -> None:
        body = (await client.get("/api/v1/imports/options", headers=auth_headers)).json()
        assert body["max_file_size_bytes"] == 1024 * 1024
        assert "pdf" not in [f["value"] for f in body["formats"]]
