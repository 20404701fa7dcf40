"""Sage Accounting MCP tools.

Each tool is a static entry in a registry: an HTTP verb, a path builder and
(for writes) a body builder that wraps the caller's fields in the Sage
resource envelope, e.g. `{"sales_invoice": {...}}`.

Projection rules shared by every entry:
- Optional arguments that are absent (or null) never reach the query string
  or the body. Sage treats presence as the filter signal.
- List filters that are blank strings, and `page`/`items_per_page` of 0,
  count as unset. A boolean `false` is still sent.
- List tools never invent filters.
- Create-invoice tools default `date` to today.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import date
from typing import Any
from urllib.parse import quote, urlencode

from sage_mcp.integrations.results import Failure, FailureKind, RequestOutcome
from sage_mcp.integrations.sage_client import SageClient

logger = logging.getLogger(__name__)

Arguments = Mapping[str, Any]

PAGINATION_PARAMS = frozenset({"page", "items_per_page"})


@dataclass(frozen=True, slots=True)
class SageTool:
    name: str
    description: str
    input_schema: dict[str, Any]
    build_path: Callable[[Arguments], str]
    method: str = "GET"
    build_body: Callable[[Arguments], dict[str, Any]] | None = None

    def build_request(self, arguments: Arguments) -> tuple[str, str, dict[str, Any] | None]:
        path = self.build_path(arguments)
        body = self.build_body(arguments) if self.build_body is not None else None
        return self.method, path, body


# ---------------------------------------------------------------------------
# Projection helpers
# ---------------------------------------------------------------------------


def _today() -> str:
    return date.today().isoformat()


def _compact(fields: Mapping[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in fields.items() if v is not None}


def _query_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _is_filter_value(key: str, value: Any) -> bool:
    # Blank filters and page 0 mean "unset"; `active=False` is a real filter.
    if value is None or value == "":
        return False
    if key in PAGINATION_PARAMS and not isinstance(value, bool):
        return bool(value)
    return True


def with_query(path: str, params: Mapping[str, Any]) -> str:
    """Append `params` as a query string, skipping absent or blank values."""

    present = {k: _query_value(v) for k, v in params.items() if _is_filter_value(k, v)}
    if not present:
        return path
    return f"{path}?{urlencode(present)}"


def _path_id(arguments: Arguments, key: str) -> str:
    value = arguments.get(key)
    if value is None or not str(value).strip():
        raise ValueError(f"missing required argument '{key}'")
    return quote(str(value), safe="")


def _require_list(arguments: Arguments, key: str) -> list[Mapping[str, Any]]:
    items = arguments.get(key)
    if not isinstance(items, list):
        raise ValueError(f"'{key}' must be an array")
    for item in items:
        if not isinstance(item, Mapping):
            raise ValueError(f"every entry in '{key}' must be an object")
    return items


def _fixed(path: str) -> Callable[[Arguments], str]:
    return lambda _args: path


def _by_id(collection: str, id_key: str) -> Callable[[Arguments], str]:
    return lambda args: f"{collection}/{_path_id(args, id_key)}"


def _filtered(collection: str, mapping: Mapping[str, str]) -> Callable[[Arguments], str]:
    """Path builder for list tools; `mapping` is argument name -> query param."""

    def build(args: Arguments) -> str:
        return with_query(collection, {param: args.get(arg) for arg, param in mapping.items()})

    return build


def _list_contacts_path(args: Arguments) -> str:
    contact_type = args.get("contact_type")
    if contact_type == "all":
        contact_type = None
    return with_query(
        "/contacts",
        {
            "contact_type_id": contact_type,
            "search": args.get("search"),
            "page": args.get("page"),
            "items_per_page": args.get("items_per_page"),
        },
    )


def _contact_body(args: Arguments) -> dict[str, Any]:
    address = _compact(
        {
            "address_line_1": args.get("address_line_1"),
            "city": args.get("city"),
            "postal_code": args.get("postal_code"),
            "country_id": args.get("country_id"),
        }
    )
    contact = _compact(
        {
            "name": args.get("name"),
            "contact_type_ids": args.get("contact_type_ids"),
            "reference": args.get("reference"),
            "email": args.get("email"),
            "telephone": args.get("telephone"),
        }
    )
    if address:
        contact["main_address"] = address
    return {"contact": contact}


def _invoice_lines(args: Arguments) -> list[dict[str, Any]]:
    return [
        _compact(
            {
                "description": item.get("description"),
                "quantity": item.get("quantity"),
                "unit_price": item.get("unit_price"),
                "tax_rate_id": item.get("tax_rate_id"),
                "ledger_account_id": item.get("ledger_account_id"),
            }
        )
        for item in _require_list(args, "line_items")
    ]


def _invoice_body(envelope: str) -> Callable[[Arguments], dict[str, Any]]:
    def build(args: Arguments) -> dict[str, Any]:
        invoice = _compact(
            {
                "contact_id": args.get("contact_id"),
                # Sage requires an invoice date.
                "date": args.get("date") or _today(),
                "due_date": args.get("due_date"),
                "reference": args.get("reference"),
                "notes": args.get("notes"),
            }
        )
        invoice["invoice_lines"] = _invoice_lines(args)
        return {envelope: invoice}

    return build


def _product_body(args: Arguments) -> dict[str, Any]:
    sales_price = args.get("sales_price")
    return {
        "product": _compact(
            {
                "description": args.get("description"),
                "item_code": args.get("item_code"),
                "sales_ledger_account_id": args.get("sales_ledger_account_id"),
                "purchase_ledger_account_id": args.get("purchase_ledger_account_id"),
                "sales_tax_rate_id": args.get("sales_tax_rate_id"),
                "purchase_tax_rate_id": args.get("purchase_tax_rate_id"),
                "sales_prices": [{"price": sales_price}] if sales_price is not None else None,
                "purchase_price": args.get("purchase_price"),
            }
        )
    }


def _bank_transaction_body(envelope: str) -> Callable[[Arguments], dict[str, Any]]:
    """Body builder for other_payments / other_receipts (single payment line)."""

    def build(args: Arguments) -> dict[str, Any]:
        transaction = _compact(
            {
                "bank_account_id": args.get("bank_account_id"),
                "date": args.get("date"),
                "reference": args.get("reference"),
                "contact_id": args.get("contact_id"),
            }
        )
        transaction["payment_lines"] = [
            _compact(
                {
                    "ledger_account_id": args.get("ledger_account_id"),
                    "total_amount": args.get("total_amount"),
                    "net_amount": args.get("net_amount"),
                    "tax_rate_id": args.get("tax_rate_id"),
                }
            )
        ]
        return {envelope: transaction}

    return build


def _purchase_invoice_payment_body(args: Arguments) -> dict[str, Any]:
    payment = _compact(
        {
            "contact_id": args.get("contact_id"),
            "bank_account_id": args.get("bank_account_id"),
            "date": args.get("date"),
            "total_amount": args.get("total_amount"),
            "reference": args.get("reference"),
        }
    )
    payment["allocated_artefacts"] = [
        _compact({"artefact_id": alloc.get("invoice_id"), "amount": alloc.get("amount")})
        for alloc in _require_list(args, "invoice_allocations")
    ]
    return {"contact_payment": payment}


# ---------------------------------------------------------------------------
# Input schemas
# ---------------------------------------------------------------------------

_PAGE = {"type": "number", "description": "Page number for pagination"}
_ITEMS_PER_PAGE = {"type": "number", "description": "Items per page (max: 200)"}
_FROM_DATE = {"type": "string", "description": "Filter from this date (YYYY-MM-DD)"}
_TO_DATE = {"type": "string", "description": "Filter to this date (YYYY-MM-DD)"}
_NO_ARGUMENTS: dict[str, Any] = {"type": "object", "properties": {}}


def _id_schema(key: str, description: str) -> dict[str, Any]:
    return {
        "type": "object",
        "properties": {key: {"type": "string", "description": description}},
        "required": [key],
    }


def _invoice_schema(contact_description: str, reference_description: str) -> dict[str, Any]:
    return {
        "type": "object",
        "properties": {
            "contact_id": {"type": "string", "description": contact_description},
            "date": {"type": "string", "description": "Invoice date (YYYY-MM-DD, default: today)"},
            "due_date": {"type": "string", "description": "Payment due date (YYYY-MM-DD)"},
            "reference": {"type": "string", "description": reference_description},
            "notes": {"type": "string", "description": "Notes to appear on the invoice"},
            "line_items": {
                "type": "array",
                "description": "Array of invoice line items",
                "items": {
                    "type": "object",
                    "properties": {
                        "description": {"type": "string"},
                        "quantity": {"type": "number"},
                        "unit_price": {"type": "number"},
                        "tax_rate_id": {"type": "string"},
                        "ledger_account_id": {"type": "string"},
                    },
                    "required": ["description", "quantity", "unit_price"],
                },
            },
        },
        "required": ["contact_id", "line_items"],
    }


def _bank_transaction_schema(kind: str, ledger_description: str) -> dict[str, Any]:
    return {
        "type": "object",
        "properties": {
            "bank_account_id": {"type": "string", "description": "The Sage bank account ID"},
            "date": {"type": "string", "description": f"{kind} date (YYYY-MM-DD)"},
            "total_amount": {
                "type": "number",
                "description": f"Total {kind.lower()} amount (positive number)",
            },
            "tax_rate_id": {
                "type": "string",
                "description": "Sage tax rate ID (from sage_list_tax_rates)",
            },
            "ledger_account_id": {"type": "string", "description": ledger_description},
            "contact_id": {"type": "string", "description": "Sage contact ID (optional)"},
            "reference": {"type": "string", "description": f"{kind} reference"},
            "net_amount": {
                "type": "number",
                "description": "Net amount before tax (optional; Sage can derive it from the tax rate)",
            },
        },
        "required": ["bank_account_id", "date", "total_amount", "tax_rate_id", "ledger_account_id"],
    }


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


def build_tool_registry() -> dict[str, SageTool]:
    tools = [
        # Contacts
        SageTool(
            name="sage_list_contacts",
            description="List all contacts (customers and suppliers) from Sage Accounting",
            input_schema={
                "type": "object",
                "properties": {
                    "contact_type": {
                        "type": "string",
                        "enum": ["customer", "supplier", "all"],
                        "description": "Filter by contact type (default: all)",
                    },
                    "search": {
                        "type": "string",
                        "description": "Search term to filter contacts by name or reference",
                    },
                    "page": _PAGE,
                    "items_per_page": _ITEMS_PER_PAGE,
                },
            },
            build_path=_list_contacts_path,
        ),
        SageTool(
            name="sage_get_contact",
            description="Get details of a specific contact by ID",
            input_schema=_id_schema("contact_id", "The Sage contact ID"),
            build_path=_by_id("/contacts", "contact_id"),
        ),
        SageTool(
            name="sage_create_contact",
            description="Create a new contact (customer or supplier)",
            input_schema={
                "type": "object",
                "properties": {
                    "name": {"type": "string", "description": "Contact name (required)"},
                    "contact_type_ids": {
                        "type": "array",
                        "items": {"type": "string"},
                        "description": "Array of contact type IDs (CUSTOMER, VENDOR)",
                    },
                    "reference": {"type": "string", "description": "Unique reference for the contact"},
                    "email": {"type": "string", "description": "Primary email address"},
                    "telephone": {"type": "string", "description": "Primary telephone number"},
                    "address_line_1": {"type": "string", "description": "Address line 1"},
                    "city": {"type": "string", "description": "City"},
                    "postal_code": {"type": "string", "description": "Postal/ZIP code"},
                    "country_id": {"type": "string", "description": "Country ID (e.g. 'GB', 'IE', 'US')"},
                },
                "required": ["name"],
            },
            build_path=_fixed("/contacts"),
            method="POST",
            build_body=_contact_body,
        ),
        # Sales invoices
        SageTool(
            name="sage_list_sales_invoices",
            description="List sales invoices from Sage Accounting",
            input_schema={
                "type": "object",
                "properties": {
                    "status": {
                        "type": "string",
                        "enum": ["draft", "sent", "paid", "part_paid", "overdue", "void"],
                        "description": "Filter by invoice status",
                    },
                    "contact_id": {"type": "string", "description": "Filter by customer contact ID"},
                    "from_date": _FROM_DATE,
                    "to_date": _TO_DATE,
                    "page": _PAGE,
                    "items_per_page": _ITEMS_PER_PAGE,
                },
            },
            build_path=_filtered(
                "/sales_invoices",
                {
                    "status": "status_id",
                    "contact_id": "contact_id",
                    "from_date": "from_date",
                    "to_date": "to_date",
                    "page": "page",
                    "items_per_page": "items_per_page",
                },
            ),
        ),
        SageTool(
            name="sage_get_sales_invoice",
            description="Get details of a specific sales invoice",
            input_schema=_id_schema("invoice_id", "The Sage sales invoice ID"),
            build_path=_by_id("/sales_invoices", "invoice_id"),
        ),
        SageTool(
            name="sage_create_sales_invoice",
            description="Create a new sales invoice",
            input_schema=_invoice_schema(
                "Customer contact ID (required)", "Invoice reference number"
            ),
            build_path=_fixed("/sales_invoices"),
            method="POST",
            build_body=_invoice_body("sales_invoice"),
        ),
        # Purchase invoices
        SageTool(
            name="sage_list_purchase_invoices",
            description="List purchase invoices (bills) from Sage Accounting",
            input_schema={
                "type": "object",
                "properties": {
                    "status": {
                        "type": "string",
                        "enum": ["draft", "registered", "paid", "part_paid", "overdue", "void"],
                        "description": "Filter by invoice status",
                    },
                    "contact_id": {"type": "string", "description": "Filter by supplier contact ID"},
                    "from_date": _FROM_DATE,
                    "to_date": _TO_DATE,
                    "page": _PAGE,
                    "items_per_page": _ITEMS_PER_PAGE,
                },
            },
            build_path=_filtered(
                "/purchase_invoices",
                {
                    "status": "status_id",
                    "contact_id": "contact_id",
                    "from_date": "from_date",
                    "to_date": "to_date",
                    "page": "page",
                    "items_per_page": "items_per_page",
                },
            ),
        ),
        SageTool(
            name="sage_get_purchase_invoice",
            description="Get details of a specific purchase invoice (bill)",
            input_schema=_id_schema("invoice_id", "The Sage purchase invoice ID"),
            build_path=_by_id("/purchase_invoices", "invoice_id"),
        ),
        SageTool(
            name="sage_create_purchase_invoice",
            description=(
                "Create a purchase invoice (bill) in Sage. Used for suppliers that "
                "require an invoice entry rather than a plain bank payment."
            ),
            input_schema=_invoice_schema(
                "Supplier contact ID (required)",
                "Invoice reference (e.g. the supplier's invoice number)",
            ),
            build_path=_fixed("/purchase_invoices"),
            method="POST",
            build_body=_invoice_body("purchase_invoice"),
        ),
        SageTool(
            name="sage_create_purchase_invoice_payment",
            description=(
                "Create a payment against purchase invoices in Sage. Links a bank "
                "payment to existing purchase invoices to mark them as paid."
            ),
            input_schema={
                "type": "object",
                "properties": {
                    "contact_id": {"type": "string", "description": "Supplier contact ID"},
                    "bank_account_id": {
                        "type": "string",
                        "description": "The Sage bank account ID the payment was made from",
                    },
                    "date": {"type": "string", "description": "Payment date (YYYY-MM-DD)"},
                    "total_amount": {"type": "number", "description": "Total payment amount"},
                    "invoice_allocations": {
                        "type": "array",
                        "description": "Which invoices this payment covers",
                        "items": {
                            "type": "object",
                            "properties": {
                                "invoice_id": {
                                    "type": "string",
                                    "description": "The Sage purchase invoice ID to allocate payment to",
                                },
                                "amount": {
                                    "type": "number",
                                    "description": "Amount allocated to this invoice",
                                },
                            },
                            "required": ["invoice_id", "amount"],
                        },
                    },
                    "reference": {"type": "string", "description": "Payment reference"},
                },
                "required": [
                    "contact_id",
                    "bank_account_id",
                    "date",
                    "total_amount",
                    "invoice_allocations",
                ],
            },
            build_path=_fixed("/contact_payments"),
            method="POST",
            build_body=_purchase_invoice_payment_body,
        ),
        # Bank accounts
        SageTool(
            name="sage_list_bank_accounts",
            description="List all bank accounts in Sage Accounting",
            input_schema=_NO_ARGUMENTS,
            build_path=_fixed("/bank_accounts"),
        ),
        SageTool(
            name="sage_get_bank_account",
            description="Get details of a specific bank account",
            input_schema=_id_schema("bank_account_id", "The Sage bank account ID"),
            build_path=_by_id("/bank_accounts", "bank_account_id"),
        ),
        # Products & services
        SageTool(
            name="sage_list_products",
            description="List all products and services",
            input_schema={
                "type": "object",
                "properties": {
                    "search": {"type": "string", "description": "Search term to filter products"},
                    "active": {"type": "boolean", "description": "Filter by active status"},
                    "page": _PAGE,
                    "items_per_page": _ITEMS_PER_PAGE,
                },
            },
            build_path=_filtered(
                "/products",
                {
                    "search": "search",
                    "active": "active",
                    "page": "page",
                    "items_per_page": "items_per_page",
                },
            ),
        ),
        SageTool(
            name="sage_get_product",
            description="Get details of a specific product or service",
            input_schema=_id_schema("product_id", "The Sage product ID"),
            build_path=_by_id("/products", "product_id"),
        ),
        SageTool(
            name="sage_create_product",
            description="Create a new product or service",
            input_schema={
                "type": "object",
                "properties": {
                    "description": {
                        "type": "string",
                        "description": "Product/service description (required)",
                    },
                    "sales_ledger_account_id": {"type": "string", "description": "Sales ledger account ID"},
                    "purchase_ledger_account_id": {
                        "type": "string",
                        "description": "Purchase ledger account ID",
                    },
                    "sales_tax_rate_id": {"type": "string", "description": "Sales tax rate ID"},
                    "purchase_tax_rate_id": {"type": "string", "description": "Purchase tax rate ID"},
                    "item_code": {"type": "string", "description": "Product/service code"},
                    "sales_price": {"type": "number", "description": "Default sales price"},
                    "purchase_price": {"type": "number", "description": "Default purchase price"},
                },
                "required": ["description"],
            },
            build_path=_fixed("/products"),
            method="POST",
            build_body=_product_body,
        ),
        # Payments
        SageTool(
            name="sage_list_payments",
            description="List contact payments",
            input_schema={
                "type": "object",
                "properties": {
                    "contact_id": {"type": "string", "description": "Filter by contact ID"},
                    "from_date": _FROM_DATE,
                    "to_date": _TO_DATE,
                    "page": _PAGE,
                    "items_per_page": _ITEMS_PER_PAGE,
                },
            },
            build_path=_filtered(
                "/contact_payments",
                {
                    "contact_id": "contact_id",
                    "from_date": "from_date",
                    "to_date": "to_date",
                    "page": "page",
                    "items_per_page": "items_per_page",
                },
            ),
        ),
        # Ledger accounts
        SageTool(
            name="sage_list_ledger_accounts",
            description="List all ledger accounts (chart of accounts)",
            input_schema={
                "type": "object",
                "properties": {
                    "ledger_account_type_id": {"type": "string", "description": "Filter by account type"},
                    "visible_in": {
                        "type": "string",
                        "enum": [
                            "sales",
                            "purchases",
                            "banking",
                            "journals",
                            "other_payments",
                            "other_receipts",
                        ],
                        "description": "Filter by where the account is visible",
                    },
                },
            },
            build_path=_filtered(
                "/ledger_accounts",
                {"ledger_account_type_id": "ledger_account_type_id", "visible_in": "visible_in"},
            ),
        ),
        # Tax rates
        SageTool(
            name="sage_list_tax_rates",
            description="List all tax rates configured in Sage",
            input_schema=_NO_ARGUMENTS,
            build_path=_fixed("/tax_rates"),
        ),
        # Business
        SageTool(
            name="sage_get_business",
            description="Get business/company information from Sage",
            input_schema=_NO_ARGUMENTS,
            build_path=_fixed("/business"),
        ),
        # Other payments / receipts (direct bank transactions)
        SageTool(
            name="sage_create_other_payment",
            description=(
                "Create a bank payment (expense) in Sage. Used for direct bank "
                "transactions like card payments and outgoing transfers."
            ),
            input_schema=_bank_transaction_schema(
                "Payment", "Sage ledger account ID for the expense category"
            ),
            build_path=_fixed("/other_payments"),
            method="POST",
            build_body=_bank_transaction_body("other_payment"),
        ),
        SageTool(
            name="sage_create_other_receipt",
            description=(
                "Create a bank receipt (income/refund) in Sage. Used for card refunds, "
                "incoming transfers, and other non-invoice receipts."
            ),
            input_schema=_bank_transaction_schema(
                "Receipt", "Sage ledger account ID for the income/receipt category"
            ),
            build_path=_fixed("/other_receipts"),
            method="POST",
            build_body=_bank_transaction_body("other_receipt"),
        ),
    ]
    return {tool.name: tool for tool in tools}


SAGE_TOOLS: dict[str, SageTool] = build_tool_registry()


def dispatch(
    client: SageClient,
    name: str,
    arguments: Arguments | None = None,
    *,
    tools: Mapping[str, SageTool] | None = None,
) -> RequestOutcome:
    """Run tool `name` through `client`, returning the gateway's outcome unchanged."""

    registry = SAGE_TOOLS if tools is None else tools
    tool = registry.get(name)
    if tool is None:
        return Failure(FailureKind.UNKNOWN_TOOL, f"Unknown tool: {name}")

    try:
        method, path, body = tool.build_request(arguments or {})
    except ValueError as e:
        return Failure(FailureKind.INVALID_ARGUMENTS, f"Invalid arguments for {name}: {e}")

    logger.debug("Dispatching %s -> %s %s", name, method, path)
    return client.execute(path, method, body)
