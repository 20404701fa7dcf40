from __future__ import annotations

from datetime import date

import pytest

from sage_mcp.integrations.results import FailureKind, Success
from sage_mcp.services.sage_tools import SAGE_TOOLS, dispatch, with_query


class _FakeClient:
    def __init__(self, outcome=None) -> None:
        self.outcome = outcome if outcome is not None else Success({"ok": True})
        self.calls: list[tuple[str, str, dict | None]] = []

    def execute(self, path, method="GET", body=None):
        self.calls.append((path, method, body))
        return self.outcome


def _request(name: str, arguments: dict) -> tuple[str, str, dict | None]:
    return SAGE_TOOLS[name].build_request(arguments)


def _assert_no_nulls(value) -> None:
    if isinstance(value, dict):
        for v in value.values():
            assert v is not None
            _assert_no_nulls(v)
    elif isinstance(value, list):
        for v in value:
            _assert_no_nulls(v)


def test_registry_covers_every_tool() -> None:
    assert set(SAGE_TOOLS) == {
        "sage_list_contacts",
        "sage_get_contact",
        "sage_create_contact",
        "sage_list_sales_invoices",
        "sage_get_sales_invoice",
        "sage_create_sales_invoice",
        "sage_list_purchase_invoices",
        "sage_get_purchase_invoice",
        "sage_create_purchase_invoice",
        "sage_create_purchase_invoice_payment",
        "sage_list_bank_accounts",
        "sage_get_bank_account",
        "sage_list_products",
        "sage_get_product",
        "sage_create_product",
        "sage_list_payments",
        "sage_list_ledger_accounts",
        "sage_list_tax_rates",
        "sage_get_business",
        "sage_create_other_payment",
        "sage_create_other_receipt",
    }
    for tool in SAGE_TOOLS.values():
        assert tool.input_schema["type"] == "object"
        assert tool.method in {"GET", "POST"}
        assert (tool.build_body is not None) == (tool.method == "POST")


def test_list_contacts_with_only_search() -> None:
    method, path, body = _request("sage_list_contacts", {"search": "acme"})

    assert method == "GET"
    assert path == "/contacts?search=acme"
    assert body is None


def test_list_contacts_maps_type_and_pagination() -> None:
    _, path, _ = _request(
        "sage_list_contacts",
        {"contact_type": "customer", "page": 2, "items_per_page": 50.0},
    )
    assert path == "/contacts?contact_type_id=customer&page=2&items_per_page=50"


def test_list_contacts_type_all_means_no_filter() -> None:
    _, path, _ = _request("sage_list_contacts", {"contact_type": "all"})
    assert path == "/contacts"


def test_list_tools_without_arguments_have_bare_paths() -> None:
    assert _request("sage_list_sales_invoices", {})[1] == "/sales_invoices"
    assert _request("sage_list_purchase_invoices", {})[1] == "/purchase_invoices"
    assert _request("sage_list_payments", {})[1] == "/contact_payments"
    assert _request("sage_list_ledger_accounts", {})[1] == "/ledger_accounts"
    assert _request("sage_list_products", {})[1] == "/products"
    assert _request("sage_list_bank_accounts", {})[1] == "/bank_accounts"
    assert _request("sage_list_tax_rates", {})[1] == "/tax_rates"
    assert _request("sage_get_business", {})[1] == "/business"


def test_list_sales_invoices_maps_status_to_status_id() -> None:
    _, path, _ = _request(
        "sage_list_sales_invoices",
        {"status": "paid", "contact_id": "C1", "from_date": "2025-01-01", "to_date": None},
    )
    assert path == "/sales_invoices?status_id=paid&contact_id=C1&from_date=2025-01-01"


def test_list_products_renders_false_active_flag() -> None:
    _, path, _ = _request("sage_list_products", {"active": False})
    assert path == "/products?active=false"


def test_list_ledger_accounts_filters() -> None:
    _, path, _ = _request("sage_list_ledger_accounts", {"visible_in": "other_payments"})
    assert path == "/ledger_accounts?visible_in=other_payments"


def test_get_tools_quote_ids() -> None:
    assert _request("sage_get_contact", {"contact_id": "abc123"})[1] == "/contacts/abc123"
    assert _request("sage_get_sales_invoice", {"invoice_id": "a/b c"})[1] == "/sales_invoices/a%2Fb%20c"
    assert _request("sage_get_bank_account", {"bank_account_id": "B1"})[1] == "/bank_accounts/B1"
    assert _request("sage_get_purchase_invoice", {"invoice_id": "PI1"})[1] == "/purchase_invoices/PI1"
    assert _request("sage_get_product", {"product_id": "P1"})[1] == "/products/P1"


def test_with_query_skips_absent_values_and_encodes() -> None:
    assert with_query("/contacts", {"search": None}) == "/contacts"
    assert with_query("/contacts", {"search": "a&b"}) == "/contacts?search=a%26b"


def test_list_contacts_blank_search_sends_no_filter() -> None:
    _, path, _ = _request("sage_list_contacts", {"search": ""})
    assert path == "/contacts"


def test_list_sales_invoices_blank_status_and_zero_page_are_unset() -> None:
    _, path, _ = _request("sage_list_sales_invoices", {"status": "", "page": 0})
    assert path == "/sales_invoices"


def test_list_products_zero_items_per_page_is_unset_but_false_active_is_kept() -> None:
    _, path, _ = _request("sage_list_products", {"items_per_page": 0, "active": False, "search": ""})
    assert path == "/products?active=false"


def test_list_ledger_accounts_blank_filters_are_unset() -> None:
    _, path, _ = _request("sage_list_ledger_accounts", {"ledger_account_type_id": "", "visible_in": "sales"})
    assert path == "/ledger_accounts?visible_in=sales"


def test_create_sales_invoice_defaults_date_and_omits_absent_line_fields() -> None:
    method, path, body = _request(
        "sage_create_sales_invoice",
        {
            "contact_id": "C1",
            "line_items": [{"description": "Widget", "quantity": 2, "unit_price": 9.99}],
        },
    )

    assert method == "POST"
    assert path == "/sales_invoices"
    invoice = body["sales_invoice"]
    assert invoice["date"] == date.today().isoformat()
    assert invoice["contact_id"] == "C1"
    assert invoice["invoice_lines"] == [
        {"description": "Widget", "quantity": 2, "unit_price": 9.99}
    ]
    for key in ("due_date", "reference", "notes"):
        assert key not in invoice


def test_create_purchase_invoice_keeps_explicit_date() -> None:
    _, path, body = _request(
        "sage_create_purchase_invoice",
        {
            "contact_id": "S1",
            "date": "2025-03-31",
            "reference": "INV-9",
            "line_items": [
                {
                    "description": "Hosting",
                    "quantity": 1,
                    "unit_price": 120,
                    "tax_rate_id": "IE_ZERO",
                    "ledger_account_id": "L1",
                }
            ],
        },
    )

    assert path == "/purchase_invoices"
    invoice = body["purchase_invoice"]
    assert invoice["date"] == "2025-03-31"
    assert invoice["reference"] == "INV-9"
    assert invoice["invoice_lines"][0]["tax_rate_id"] == "IE_ZERO"
    assert invoice["invoice_lines"][0]["ledger_account_id"] == "L1"


def test_create_contact_minimal_body_has_no_empty_address() -> None:
    _, _, body = _request("sage_create_contact", {"name": "Acme Ltd"})
    assert body == {"contact": {"name": "Acme Ltd"}}


def test_create_contact_nests_address_fields() -> None:
    _, _, body = _request(
        "sage_create_contact",
        {
            "name": "Acme Ltd",
            "contact_type_ids": ["CUSTOMER"],
            "email": "ap@acme.test",
            "city": "Dublin",
            "country_id": "IE",
        },
    )
    assert body == {
        "contact": {
            "name": "Acme Ltd",
            "contact_type_ids": ["CUSTOMER"],
            "email": "ap@acme.test",
            "main_address": {"city": "Dublin", "country_id": "IE"},
        }
    }


def test_create_product_wraps_sales_price() -> None:
    _, _, body = _request("sage_create_product", {"description": "Consulting", "sales_price": 100})
    assert body == {"product": {"description": "Consulting", "sales_prices": [{"price": 100}]}}


def test_create_other_payment_builds_single_payment_line() -> None:
    _, path, body = _request(
        "sage_create_other_payment",
        {
            "bank_account_id": "BA1",
            "date": "2025-02-01",
            "total_amount": 12.3,
            "tax_rate_id": "T1",
            "ledger_account_id": "L7",
        },
    )
    assert path == "/other_payments"
    assert body == {
        "other_payment": {
            "bank_account_id": "BA1",
            "date": "2025-02-01",
            "payment_lines": [
                {"ledger_account_id": "L7", "total_amount": 12.3, "tax_rate_id": "T1"}
            ],
        }
    }


def test_create_other_receipt_uses_receipt_envelope() -> None:
    _, path, body = _request(
        "sage_create_other_receipt",
        {
            "bank_account_id": "BA1",
            "date": "2025-02-01",
            "total_amount": 5,
            "net_amount": 4.07,
            "tax_rate_id": "T1",
            "ledger_account_id": "L8",
            "contact_id": "C2",
        },
    )
    assert path == "/other_receipts"
    receipt = body["other_receipt"]
    assert receipt["contact_id"] == "C2"
    assert receipt["payment_lines"][0]["net_amount"] == 4.07


def test_create_purchase_invoice_payment_maps_allocations() -> None:
    _, path, body = _request(
        "sage_create_purchase_invoice_payment",
        {
            "contact_id": "S1",
            "bank_account_id": "BA1",
            "date": "2025-02-01",
            "total_amount": 50,
            "invoice_allocations": [{"invoice_id": "PI1", "amount": 50}],
        },
    )
    assert path == "/contact_payments"
    assert body == {
        "contact_payment": {
            "contact_id": "S1",
            "bank_account_id": "BA1",
            "date": "2025-02-01",
            "total_amount": 50,
            "allocated_artefacts": [{"artefact_id": "PI1", "amount": 50}],
        }
    }


@pytest.mark.parametrize(
    "name, arguments",
    [
        ("sage_create_contact", {"name": "X"}),
        ("sage_create_sales_invoice", {"contact_id": "C1", "line_items": [{"description": "d", "quantity": 1, "unit_price": 1}]}),
        ("sage_create_purchase_invoice", {"contact_id": "C1", "line_items": []}),
        ("sage_create_product", {"description": "X"}),
        ("sage_create_other_payment", {"bank_account_id": "B", "date": "2025-01-01", "total_amount": 1, "tax_rate_id": "T", "ledger_account_id": "L"}),
        ("sage_create_other_receipt", {"bank_account_id": "B", "date": "2025-01-01", "total_amount": 1, "tax_rate_id": "T", "ledger_account_id": "L"}),
        ("sage_create_purchase_invoice_payment", {"contact_id": "C", "bank_account_id": "B", "date": "2025-01-01", "total_amount": 1, "invoice_allocations": [{"invoice_id": "I", "amount": 1}]}),
    ],
)
def test_write_tools_never_send_nulls(name, arguments) -> None:
    _, path, body = _request(name, arguments)
    assert "?" not in path
    _assert_no_nulls(body)


def test_dispatch_delegates_to_client_and_returns_outcome_unchanged() -> None:
    client = _FakeClient()

    outcome = dispatch(client, "sage_get_contact", {"contact_id": "C1"})

    assert outcome is client.outcome
    assert client.calls == [("/contacts/C1", "GET", None)]


def test_dispatch_unknown_tool_makes_no_calls() -> None:
    client = _FakeClient()

    outcome = dispatch(client, "sage_delete_everything", {})

    assert not outcome.ok
    assert outcome.kind is FailureKind.UNKNOWN_TOOL
    assert "sage_delete_everything" in outcome.message
    assert client.calls == []


def test_dispatch_missing_path_id_is_invalid_arguments() -> None:
    client = _FakeClient()

    outcome = dispatch(client, "sage_get_contact", {})

    assert outcome.kind is FailureKind.INVALID_ARGUMENTS
    assert "contact_id" in outcome.message
    assert client.calls == []


def test_dispatch_missing_line_items_is_invalid_arguments() -> None:
    client = _FakeClient()

    outcome = dispatch(client, "sage_create_sales_invoice", {"contact_id": "C1"})

    assert outcome.kind is FailureKind.INVALID_ARGUMENTS
    assert "line_items" in outcome.message
    assert client.calls == []


def test_dispatch_accepts_missing_arguments() -> None:
    client = _FakeClient()

    dispatch(client, "sage_list_tax_rates", None)

    assert client.calls == [("/tax_rates", "GET", None)]
