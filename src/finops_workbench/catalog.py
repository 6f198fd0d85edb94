"""
Column Catalog - static registry of known Cost and Usage Report columns.

Columns are grouped into named, non-overlapping categories (Bill, Line Item,
Pricing, ...) so the workbench can offer them as click-to-insert choices.
The catalog is pure data: nothing in the workbench ever mutates it.
"""

import re
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

CATALOG_VERSION = "2024.1"


class ColumnType(StrEnum):
    """Declared data type of a catalog column"""

    VARCHAR = "VARCHAR"
    DECIMAL = "DECIMAL"
    TIMESTAMP = "TIMESTAMP"
    JSON = "JSON"


@dataclass(frozen=True)
class CatalogColumn:
    name: str
    type: ColumnType
    description: str = ""


@dataclass(frozen=True)
class ColumnGroup:
    name: str
    columns: tuple[CatalogColumn, ...]

    @property
    def column_names(self) -> list[str]:
        return [column.name for column in self.columns]


@dataclass(frozen=True)
class ColumnCatalog:
    """
    Versioned, ordered set of catalog columns partitioned into groups.

    Construction fails if a column name appears in more than one group, so a
    catalog that exists is always a true partition.
    """

    version: str
    groups: tuple[ColumnGroup, ...]
    _index: dict[str, tuple[CatalogColumn, ColumnGroup]] = field(
        init=False, repr=False, compare=False
    )

    def __post_init__(self) -> None:
        index: dict[str, tuple[CatalogColumn, ColumnGroup]] = {}
        for group in self.groups:
            for column in group.columns:
                if column.name in index:
                    owner = index[column.name][1].name
                    raise ValueError(
                        f"Column '{column.name}' is declared in both '{owner}' and '{group.name}'"
                    )
                index[column.name] = (column, group)
        object.__setattr__(self, "_index", index)

    def __contains__(self, name: object) -> bool:
        return name in self._index

    def __len__(self) -> int:
        return len(self._index)

    def column_names(self) -> list[str]:
        """All column names in catalog order."""
        return list(self._index)

    def get_column(self, name: str) -> CatalogColumn | None:
        entry = self._index.get(name)
        return entry[0] if entry else None

    def group_for(self, name: str) -> ColumnGroup | None:
        entry = self._index.get(name)
        return entry[1] if entry else None

    def get_group(self, group_name: str) -> ColumnGroup | None:
        for group in self.groups:
            if group.name.lower() == group_name.lower():
                return group
        return None

    def as_dict(self) -> dict[str, Any]:
        """JSON-friendly representation, grouped the way the catalog panel shows it."""
        return {
            "version": self.version,
            "groups": [
                {
                    "name": group.name,
                    "columns": [
                        {
                            "name": column.name,
                            "type": column.type.value,
                            "description": column.description,
                        }
                        for column in group.columns
                    ],
                }
                for group in self.groups
            ],
        }


def search_columns(
    catalog: ColumnCatalog, query: str, group: str | None = None, limit: int = 25
) -> list[dict[str, Any]]:
    """
    Search catalog columns by keyword with relevance ranking.

    Args:
        catalog: Catalog to search
        query: Search query (case-insensitive)
        group: Optional group name to restrict the search to
        limit: Maximum number of results

    Returns:
        List of matching columns, sorted by relevance
    """
    query_lower = query.strip().lower()
    if not query_lower:
        return []

    results = []
    for catalog_group in catalog.groups:
        if group and catalog_group.name.lower() != group.lower():
            continue

        for column in catalog_group.columns:
            name = column.name.lower()
            description = column.description.lower()

            relevance = 0
            if query_lower == name:
                relevance = 100
            elif name.startswith(query_lower):
                relevance = 80
            elif query_lower in name:
                relevance = 60
            elif re.search(rf"\b{re.escape(query_lower)}", name.replace("_", " ")):
                relevance = 50
            elif query_lower in description:
                relevance = 30

            if relevance > 0:
                results.append(
                    {
                        "name": column.name,
                        "type": column.type.value,
                        "group": catalog_group.name,
                        "relevance": relevance,
                    }
                )

    results.sort(key=lambda x: (-x["relevance"], x["name"]))
    return results[:limit]


def _group(name: str, *columns: tuple[str, ColumnType, str]) -> ColumnGroup:
    return ColumnGroup(
        name=name,
        columns=tuple(CatalogColumn(*column) for column in columns),
    )


V, D, T, J = ColumnType.VARCHAR, ColumnType.DECIMAL, ColumnType.TIMESTAMP, ColumnType.JSON

DEFAULT_CATALOG = ColumnCatalog(
    version=CATALOG_VERSION,
    groups=(
        _group(
            "Identity",
            ("identity_line_item_id", V, "Unique identifier of the line item"),
            ("identity_time_interval", V, "Time interval the line item applies to"),
        ),
        _group(
            "Bill",
            ("bill_invoice_id", V, "Invoice the line item is billed on"),
            ("bill_invoicing_entity", V, "AWS entity issuing the invoice"),
            ("bill_billing_entity", V, "AWS or AWS Marketplace"),
            ("bill_bill_type", V, "Anniversary, Purchase or Refund"),
            ("bill_payer_account_id", V, "Management (payer) account"),
            ("bill_billing_period_start_date", T, "Start of the billing period"),
            ("bill_billing_period_end_date", T, "End of the billing period"),
        ),
        _group(
            "Line Item",
            ("line_item_usage_account_id", V, "Account that used the resource"),
            ("line_item_line_item_type", V, "Usage, Tax, Credit, Refund, Fee, ..."),
            ("line_item_usage_start_date", T, "Start of the usage period"),
            ("line_item_usage_end_date", T, "End of the usage period"),
            ("line_item_product_code", V, "Product code such as AmazonEC2"),
            ("line_item_usage_type", V, "Usage details such as BoxUsage:t3.micro"),
            ("line_item_operation", V, "Operation such as RunInstances"),
            ("line_item_availability_zone", V, "Availability zone of the resource"),
            ("line_item_resource_id", V, "Resource identifier"),
            ("line_item_usage_amount", D, "Amount of usage in the period"),
            ("line_item_normalization_factor", D, "Instance size normalization factor"),
            ("line_item_normalized_usage_amount", D, "Usage amount in normalized units"),
            ("line_item_currency_code", V, "Currency of the line item"),
            ("line_item_unblended_rate", D, "Unblended rate"),
            ("line_item_unblended_cost", D, "Unblended cost"),
            ("line_item_blended_rate", D, "Blended rate"),
            ("line_item_blended_cost", D, "Blended cost"),
            ("line_item_line_item_description", V, "Description of the line item"),
            ("line_item_tax_type", V, "Type of tax applied"),
            ("line_item_legal_entity", V, "Seller of record"),
        ),
        _group(
            "Pricing",
            ("pricing_term", V, "OnDemand, Reserved or Spot"),
            ("pricing_unit", V, "Pricing unit such as Hrs or GB-Mo"),
            ("pricing_public_on_demand_cost", D, "Cost at public on-demand rates"),
            ("pricing_public_on_demand_rate", D, "Public on-demand rate"),
            ("pricing_purchase_option", V, "All Upfront, Partial Upfront or No Upfront"),
            ("pricing_lease_contract_length", V, "Reservation term length"),
            ("pricing_offering_class", V, "Standard or Convertible"),
        ),
        _group(
            "Product",
            ("product_product_name", V, "Full service name"),
            ("product_product_family", V, "Product family such as Compute Instance"),
            ("product_region", V, "Region code of the product"),
            ("product_location", V, "Human readable location"),
            ("product_instance_type", V, "Instance type such as m5.large"),
            ("product_instance_family", V, "Instance family"),
            ("product_operating_system", V, "Operating system"),
            ("product_tenancy", V, "Shared, Dedicated or Host"),
            ("product_vcpu", V, "Number of vCPUs"),
            ("product_memory", V, "Memory size"),
            ("product_servicecode", V, "Service code"),
            ("product_sku", V, "Product SKU"),
            ("product_attributes", J, "Raw product attribute map"),
        ),
        _group(
            "Reservation",
            ("reservation_reservation_a_r_n", V, "ARN of the reservation"),
            ("reservation_effective_cost", D, "Effective reservation cost"),
            ("reservation_amortized_upfront_fee_for_billing_period", D, "Amortized upfront fee"),
            (
                "reservation_unused_amortized_upfront_fee_for_billing_period",
                D,
                "Unused amortized fee",
            ),
            ("reservation_unused_recurring_fee", D, "Unused recurring fee"),
            ("reservation_start_time", T, "Reservation start"),
            ("reservation_end_time", T, "Reservation end"),
        ),
        _group(
            "Savings Plan",
            ("savings_plan_savings_plan_a_r_n", V, "ARN of the Savings Plan"),
            ("savings_plan_savings_plan_effective_cost", D, "Effective Savings Plan cost"),
            ("savings_plan_savings_plan_rate", D, "Savings Plan rate"),
            ("savings_plan_used_commitment", D, "Commitment used"),
            ("savings_plan_total_commitment_to_date", D, "Total commitment to date"),
            ("savings_plan_offering_type", V, "Compute or EC2 Instance Savings Plan"),
        ),
        _group(
            "Resource Tags",
            ("resource_tags_user_environment", V, "environment tag"),
            ("resource_tags_user_team", V, "team tag"),
            ("resource_tags_user_application", V, "application tag"),
            ("resource_tags_user_cost_center", V, "cost-center tag"),
            ("resource_tags", J, "All resource tags"),
        ),
    ),
)

del V, D, T, J
