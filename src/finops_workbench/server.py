"""
FinOps Workbench MCP Server - Model Context Protocol server for the query workbench.
Exposes column toggling, result exploration and (when connected to a backend)
query execution to AI assistants.
"""

# Load environment variables from .env file if present
from dotenv import load_dotenv

load_dotenv()

# ruff: noqa: E402
import json
import os
from enum import StrEnum
from typing import Any

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import (
    AnyUrl,
    Resource,
    TextContent,
    Tool,
)

from .catalog import DEFAULT_CATALOG, search_columns
from .explorer import ResultExplorer
from .export import export_filename, view_to_csv
from .membership import is_column_present, resolve_membership, selected_values
from .mutator import toggle_column
from .query_tools import (
    QUERY_PARAMETERS,
    QUERY_TEMPLATES,
    QUICK_FILTERS,
    add_where_condition,
    date_range_condition,
    format_query,
    insert_parameter,
    validate_query,
)
from .results import FilterSpec, normalize_result
from .workbench_client import WorkbenchClient

# Initialize MCP server
server = Server("finops-workbench-mcp")

catalog = DEFAULT_CATALOG

# Global state (initialized on startup / replaced per execution)
workbench_client: WorkbenchClient | None = None
runtime_mode: str | None = None
current_explorer: ResultExplorer | None = None

DEFAULT_VIEW_LIMIT = 100


class MCPMode(StrEnum):
    """Runtime mode for MCP deployment."""

    OFFLINE = "offline"
    CONNECTED = "connected"


OFFLINE_TOOLS: set[str] = {
    "list_catalog_columns",
    "search_catalog_columns",
    "resolve_columns",
    "toggle_column",
    "validate_query",
    "format_query",
    "add_filter_condition",
    "insert_parameter",
    "load_result",
    "explore_results",
    "profile_column",
    "export_csv",
}

BACKEND_TOOLS: set[str] = {
    "execute_query",
    "generate_query",
}

CONNECTED_TOOLS: set[str] = OFFLINE_TOOLS | BACKEND_TOOLS


def _allowed_tools_for_runtime() -> set[str]:
    if runtime_mode == MCPMode.CONNECTED.value:
        return CONNECTED_TOOLS
    return OFFLINE_TOOLS


def _debug_curl_enabled() -> bool:
    return os.getenv("WORKBENCH_DEBUG_CURL", "").strip().lower() in ("1", "true", "yes")


def _init_client_for_mode(mode: MCPMode) -> WorkbenchClient | None:
    """Initialize the backend client for a fixed runtime mode."""
    if mode == MCPMode.OFFLINE:
        return None
    return WorkbenchClient()


def configure_runtime(mode: MCPMode, client: WorkbenchClient | None) -> None:
    """
    Point the tool core at a runtime mode and backend client.

    Any loaded result is dropped, so results fetched under one set of backend
    credentials are never explored under another.
    """
    global workbench_client, runtime_mode, current_explorer
    runtime_mode = mode.value
    workbench_client = client
    current_explorer = None


_FILTER_SPEC_SCHEMA: dict[str, Any] = {
    "type": "object",
    "description": (
        "Filter/sort spec. All parts combine with AND.\n"
        "- global_search: substring matched against every cell (case-insensitive)\n"
        "- column_filters: {header: substring}\n"
        "- excel_filters: {header: [allowed values]} (exact match, OR within a column)\n"
        "- numeric_filters: {header: {operator: one of > >= < <= = !=, value: '15'}}\n"
        "- sort: {column: header, direction: 'asc' | 'desc'} (nulls always last)"
    ),
    "properties": {
        "global_search": {"type": "string"},
        "column_filters": {"type": "object", "additionalProperties": {"type": "string"}},
        "excel_filters": {
            "type": "object",
            "additionalProperties": {"type": "array", "items": {"type": "string"}},
        },
        "numeric_filters": {
            "type": "object",
            "additionalProperties": {
                "type": "object",
                "properties": {
                    "operator": {"type": "string", "enum": [">", ">=", "<", "<=", "=", "!="]},
                    "value": {"type": "string"},
                },
            },
        },
        "sort": {
            "type": "object",
            "properties": {
                "column": {"type": "string"},
                "direction": {"type": "string", "enum": ["asc", "desc"]},
            },
        },
    },
}


# Tool Definitions


@server.list_tools()
async def list_tools() -> list[Tool]:
    """List all available workbench tools"""
    all_tools = [
        Tool(
            name="list_catalog_columns",
            description=(
                "List the known Cost and Usage Report columns, grouped by category "
                "(Bill, Line Item, Pricing, Product, ...).\n\n"
                "WHEN TO USE: To show the user which columns they can add to a query."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "group": {
                        "type": "string",
                        "description": "Optional category name, e.g. 'Pricing'",
                    }
                },
            },
        ),
        Tool(
            name="search_catalog_columns",
            description=(
                "Search catalog columns by keyword (name or description), ranked by relevance.\n\n"
                "EXAMPLES: search_catalog_columns('cost'), search_catalog_columns('region')"
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "query": {"type": "string", "description": "Search keyword"},
                    "group": {"type": "string", "description": "Optional category name"},
                    "limit": {"type": "integer", "default": 25},
                },
                "required": ["query"],
            },
        ),
        Tool(
            name="resolve_columns",
            description=(
                "Report which catalog columns the query text currently selects. "
                "Only whole select-list elements count; aliases and expressions do not."
            ),
            inputSchema={
                "type": "object",
                "properties": {"query_text": {"type": "string"}},
                "required": ["query_text"],
            },
        ),
        Tool(
            name="toggle_column",
            description=(
                "Add a column to, or remove it from, the select list of the query text "
                "while keeping the list tidy (no stray or doubled commas).\n\n"
                "If currently_present is omitted it is computed from the text. "
                "Removing a column that is not a list element leaves the text unchanged."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "query_text": {"type": "string"},
                    "column": {"type": "string"},
                    "currently_present": {"type": "boolean"},
                },
                "required": ["query_text", "column"],
            },
        ),
        Tool(
            name="validate_query",
            description="Check that a query is non-empty and contains no destructive statements.",
            inputSchema={
                "type": "object",
                "properties": {"query_text": {"type": "string"}},
                "required": ["query_text"],
            },
        ),
        Tool(
            name="format_query",
            description="Reindent the query, one clause per line, with upper-case keywords.",
            inputSchema={
                "type": "object",
                "properties": {"query_text": {"type": "string"}},
                "required": ["query_text"],
            },
        ),
        Tool(
            name="add_filter_condition",
            description=(
                "Add a WHERE condition to the query (AND-ed with any existing WHERE).\n\n"
                "Provide exactly one of:\n"
                "- quick_filter: one of " + ", ".join(sorted(QUICK_FILTERS)) + "\n"
                "- start_date and/or end_date (YYYY-MM-DD): usage date range; a missing "
                "bound defaults to the January 2024 billing period\n"
                "- condition: raw condition text"
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "query_text": {"type": "string"},
                    "quick_filter": {"type": "string", "enum": sorted(QUICK_FILTERS)},
                    "start_date": {"type": "string"},
                    "end_date": {"type": "string"},
                    "condition": {"type": "string"},
                },
                "required": ["query_text"],
            },
        ),
        Tool(
            name="insert_parameter",
            description=(
                "Append a billing or service period timestamp to the query, tagged with "
                "a trailing comment, e.g. '2024-01-01T00:00:00Z' -- billing_period_start.\n\n"
                "Start parameters use midnight, end parameters 23:59:59. Without a date "
                "the January 2024 billing period is used."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "query_text": {"type": "string"},
                    "parameter": {"type": "string", "enum": list(QUERY_PARAMETERS)},
                    "date": {"type": "string", "description": "YYYY-MM-DD"},
                },
                "required": ["query_text", "parameter"],
            },
        ),
        Tool(
            name="load_result",
            description=(
                "Load an already-executed result into the workbench for exploration. "
                "Accepts {headers, rows} or a list of row objects (records)."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "headers": {"type": "array", "items": {"type": "string"}},
                    "rows": {"type": "array", "items": {"type": "array"}},
                    "records": {"type": "array", "items": {"type": "object"}},
                    "execution_time": {"type": "number", "description": "Milliseconds"},
                    "query_name": {"type": "string"},
                },
            },
        ),
        Tool(
            name="explore_results",
            description=(
                "Filter and sort the current result. Returns the visible rows plus "
                "per-column metadata (numeric or categorical, sort indicator)."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "filters": _FILTER_SPEC_SCHEMA,
                    "limit": {"type": "integer", "default": DEFAULT_VIEW_LIMIT},
                },
            },
        ),
        Tool(
            name="profile_column",
            description=(
                "Distinct values and numeric/categorical classification of one result column. "
                "Use the distinct values to build excel_filters."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "header": {"type": "string"},
                    "limit": {"type": "integer", "default": 100},
                },
                "required": ["header"],
            },
        ),
        Tool(
            name="export_csv",
            description="Export the current (optionally filtered and sorted) result as CSV text.",
            inputSchema={
                "type": "object",
                "properties": {"filters": _FILTER_SPEC_SCHEMA},
            },
        ),
        Tool(
            name="execute_query",
            description=(
                "Execute a query against the Cost and Usage Report backend and load the "
                "result into the workbench.\n\n"
                "WORKFLOW: validate_query → execute_query → explore_results"
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "query_text": {"type": "string"},
                    "query_name": {"type": "string"},
                },
                "required": ["query_text"],
            },
        ),
        Tool(
            name="generate_query",
            description=(
                "Generate a query from a natural-language request using the backend AI service. "
                "The returned text is an ordinary query: review it, then execute_query."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "prompt": {"type": "string"},
                    "context": {
                        "type": "string",
                        "enum": ["cost-analysis", "optimization", "usage-patterns", "forecasting"],
                        "default": "cost-analysis",
                    },
                },
                "required": ["prompt"],
            },
        ),
    ]
    allowed = _allowed_tools_for_runtime()
    return [tool for tool in all_tools if tool.name in allowed]


@server.call_tool()
async def call_tool(name: str, arguments: Any) -> list[TextContent]:
    """Handle tool execution"""
    allowed_tools = _allowed_tools_for_runtime()
    if name not in allowed_tools:
        return [
            TextContent(
                type="text",
                text=(
                    "Error: Tool not available in this deployment mode.\n\n"
                    "Backend tools require the connected runtime (finops-workbench-mcp-connected)."
                ),
            )
        ]

    if name in BACKEND_TOOLS and workbench_client is None:
        return [
            TextContent(
                type="text",
                text=(
                    "Error: Backend not configured.\n\n"
                    "To use this tool, set:\n"
                    "  BACKEND_API_URL=http://127.0.0.1:8000"
                ),
            )
        ]

    arguments = arguments or {}

    try:
        if workbench_client is not None:
            # Clear stale curls before each tool call
            workbench_client.collect_curls()

        if name == "list_catalog_columns":
            result = list_catalog_columns_impl(arguments)
        elif name == "search_catalog_columns":
            result = search_catalog_columns_impl(arguments)
        elif name == "resolve_columns":
            result = resolve_columns_impl(arguments)
        elif name == "toggle_column":
            result = toggle_column_impl(arguments)
        elif name == "validate_query":
            result = validate_query_impl(arguments)
        elif name == "format_query":
            result = format_query_impl(arguments)
        elif name == "add_filter_condition":
            result = add_filter_condition_impl(arguments)
        elif name == "insert_parameter":
            result = insert_parameter_impl(arguments)
        elif name == "load_result":
            result = load_result_impl(arguments)
        elif name == "explore_results":
            result = explore_results_impl(arguments)
        elif name == "profile_column":
            result = profile_column_impl(arguments)
        elif name == "export_csv":
            result = export_csv_impl(arguments)
        elif name == "execute_query":
            result = await execute_query_impl(arguments)
        elif name == "generate_query":
            result = await generate_query_impl(arguments)
        else:
            return [TextContent(type="text", text=f"Unknown tool: {name}")]

        # Attach replayable backend calls only when debugging is switched on
        if workbench_client is not None:
            curls = workbench_client.collect_curls()
            if _debug_curl_enabled() and curls and isinstance(result, dict):
                result["_debug_curl"] = curls

        return [TextContent(type="text", text=json.dumps(result, indent=2, default=str))]

    except ValueError as e:
        return [
            TextContent(
                type="text",
                text=f"❌ Validation Error: {e}\n\nPlease check your parameters and try again.",
            )
        ]
    except Exception as e:
        import traceback

        error_trace = traceback.format_exc()
        return [
            TextContent(
                type="text",
                text=(
                    f"❌ Error executing {name}: {str(e)}\n\n"
                    f"Exception type: {type(e).__name__}\n\n"
                    "Debug info:\n"
                    f"{error_trace[-1000:]}"
                ),
            )
        ]


# Tool Implementations


def _require_text(args: dict, key: str = "query_text") -> str:
    value = args.get(key)
    if not isinstance(value, str):
        raise ValueError(f"'{key}' must be a string")
    return value


def _require_explorer() -> ResultExplorer:
    if current_explorer is None:
        raise ValueError("No query result loaded. Run execute_query or load_result first.")
    return current_explorer


def _limit(args: dict, default: int) -> int:
    return max(int(args.get("limit", default)), 0)


def _selected_by_group(selected: frozenset[str]) -> dict[str, list[str]]:
    by_group: dict[str, list[str]] = {}
    for group in catalog.groups:
        names = [name for name in group.column_names if name in selected]
        if names:
            by_group[group.name] = names
    return by_group


def list_catalog_columns_impl(args: dict) -> dict:
    """Implementation of list_catalog_columns tool"""
    group_name = args.get("group")
    data = catalog.as_dict()
    if group_name:
        group = catalog.get_group(group_name)
        if group is None:
            raise ValueError(
                f"Unknown column group '{group_name}'. "
                f"Available: {', '.join(g.name for g in catalog.groups)}"
            )
        data["groups"] = [g for g in data["groups"] if g["name"] == group.name]
    data["total_columns"] = sum(len(g["columns"]) for g in data["groups"])
    return data


def search_catalog_columns_impl(args: dict) -> dict:
    """Implementation of search_catalog_columns tool"""
    query = _require_text(args, "query")
    results = search_columns(
        catalog, query, group=args.get("group"), limit=int(args.get("limit", 25))
    )
    return {"query": query, "results": results, "count": len(results)}


def resolve_columns_impl(args: dict) -> dict:
    """Implementation of resolve_columns tool"""
    text = _require_text(args)
    selected = resolve_membership(text, catalog)
    return {
        "selected_columns": [name for name in catalog.column_names() if name in selected],
        "by_group": _selected_by_group(selected),
        "select_list": selected_values(text),
    }


def toggle_column_impl(args: dict) -> dict:
    """Implementation of toggle_column tool"""
    text = _require_text(args)
    column = _require_text(args, "column").strip()
    if not column:
        raise ValueError("'column' must not be empty")

    present = args.get("currently_present")
    if present is None:
        if column in catalog:
            present = column in resolve_membership(text, catalog)
        else:
            present = is_column_present(text, column)

    new_text = toggle_column(text, column, bool(present))
    if new_text == text:
        action = "unchanged"
    else:
        action = "removed" if present else "added"

    return {
        "query_text": new_text,
        "action": action,
        "column": column,
        "selected_columns": sorted(resolve_membership(new_text, catalog)),
    }


def validate_query_impl(args: dict) -> dict:
    """Implementation of validate_query tool"""
    validation = validate_query(_require_text(args))
    return {"is_valid": validation.is_valid, "message": validation.message}


def format_query_impl(args: dict) -> dict:
    """Implementation of format_query tool"""
    return {"query_text": format_query(_require_text(args))}


def add_filter_condition_impl(args: dict) -> dict:
    """Implementation of add_filter_condition tool"""
    text = _require_text(args)
    quick_filter = args.get("quick_filter")
    start_date = args.get("start_date")
    end_date = args.get("end_date")
    condition = args.get("condition")

    if quick_filter:
        if quick_filter not in QUICK_FILTERS:
            raise ValueError(
                f"Unknown quick_filter '{quick_filter}'. "
                f"Available: {', '.join(sorted(QUICK_FILTERS))}"
            )
        condition = QUICK_FILTERS[quick_filter]
    elif start_date or end_date:
        condition = date_range_condition(start_date, end_date)
    elif not condition or not str(condition).strip():
        raise ValueError("Provide quick_filter, start_date/end_date, or condition")

    return {"query_text": add_where_condition(text, str(condition)), "condition": condition}


def insert_parameter_impl(args: dict) -> dict:
    """Implementation of insert_parameter tool"""
    text = _require_text(args)
    parameter = _require_text(args, "parameter")
    return {"query_text": insert_parameter(text, parameter, args.get("date"))}


def _load(explorer: ResultExplorer) -> None:
    global current_explorer
    current_explorer = explorer


def load_result_impl(args: dict) -> dict:
    """Implementation of load_result tool"""
    if args.get("records") is not None:
        payload: Any = args["records"]
    else:
        payload = {"headers": args.get("headers"), "rows": args.get("rows") or []}

    execution_time = args.get("execution_time")
    result = normalize_result(
        payload,
        execution_time=float(execution_time) if execution_time is not None else None,
        query_name=args.get("query_name"),
    )
    explorer = ResultExplorer(result)
    _load(explorer)
    return {"status": "loaded", "result": explorer.summary()}


def explore_results_impl(args: dict) -> dict:
    """Implementation of explore_results tool"""
    explorer = _require_explorer()
    spec = FilterSpec.from_dict(args.get("filters"))
    limit = _limit(args, DEFAULT_VIEW_LIMIT)

    view = explorer.view(spec)
    return {
        "filters": spec.to_dict(),
        "view": view.to_dict(limit=limit),
        "total_rows": explorer.result.row_count,
        "columns": explorer.column_summaries(spec),
    }


def profile_column_impl(args: dict) -> dict:
    """Implementation of profile_column tool"""
    explorer = _require_explorer()
    header = _require_text(args, "header")
    if header not in explorer.result.headers:
        raise ValueError(
            f"Unknown column '{header}'. Result columns: {', '.join(explorer.result.headers)}"
        )
    limit = _limit(args, 100)

    data = explorer.profile(header).to_dict()
    values = data["unique_values"]
    data["unique_values"] = values[:limit]
    data["is_truncated"] = len(values) > limit
    return data


def export_csv_impl(args: dict) -> dict:
    """Implementation of export_csv tool"""
    explorer = _require_explorer()
    view = explorer.view(FilterSpec.from_dict(args.get("filters")))
    return {
        "filename": export_filename(),
        "row_count": view.row_count,
        "csv": view_to_csv(view),
    }


async def execute_query_impl(args: dict) -> dict:
    """Implementation of execute_query tool"""
    assert workbench_client is not None

    text = _require_text(args)
    validation = validate_query(text)
    if not validation.is_valid:
        raise ValueError(validation.message)

    result = await workbench_client.execute_query(text, query_name=args.get("query_name"))
    explorer = ResultExplorer(result)
    _load(explorer)

    preview = explorer.view().to_dict(limit=20)
    response: dict[str, Any] = {
        "result": explorer.summary(),
        "preview": preview,
        "columns": explorer.column_summaries(),
    }
    if result.is_large:
        response["_performance_hint"] = (
            "Large result sets can impact performance. Consider adding LIMIT clauses "
            "or filtering the data."
        )
    return response


async def generate_query_impl(args: dict) -> dict:
    """Implementation of generate_query tool"""
    assert workbench_client is not None

    prompt = _require_text(args, "prompt")
    context = args.get("context") or "cost-analysis"
    query_text = await workbench_client.generate_query(prompt, context=context)
    return {
        "query_text": query_text,
        "selected_columns": sorted(resolve_membership(query_text, catalog)),
        "validation": validate_query_impl({"query_text": query_text}),
    }


# Resource Definitions


@server.list_resources()
async def list_resources() -> list[Resource]:
    """List available resources"""
    return [
        Resource(
            uri=AnyUrl("workbench://catalog"),
            name="Column Catalog",
            description="Cost and Usage Report columns grouped by category",
            mimeType="application/json",
        ),
        Resource(
            uri=AnyUrl("workbench://templates"),
            name="Query Templates",
            description="Starter queries for common cost questions",
            mimeType="application/json",
        ),
        Resource(
            uri=AnyUrl("workbench://quick-filters"),
            name="Quick Filters",
            description="Named WHERE conditions for add_filter_condition",
            mimeType="application/json",
        ),
    ]


@server.read_resource()
async def read_resource(uri: str) -> str:
    """Read a resource by URI"""
    uri = str(uri)
    try:
        if uri == "workbench://catalog":
            return json.dumps(catalog.as_dict(), indent=2)

        elif uri == "workbench://templates":
            return json.dumps(
                [
                    {
                        "id": t.id,
                        "name": t.name,
                        "category": t.category,
                        "description": t.description,
                        "difficulty": t.difficulty,
                        "query": t.query,
                    }
                    for t in QUERY_TEMPLATES
                ],
                indent=2,
            )

        elif uri == "workbench://quick-filters":
            return json.dumps(QUICK_FILTERS, indent=2)

        else:
            return json.dumps({"error": f"Unknown resource: {uri}"})

    except Exception as e:
        return json.dumps({"error": str(e)})


# Prompt Definitions


@server.list_prompts()
async def list_prompts() -> list[dict]:
    """List available prompt templates"""
    return [
        {
            "name": "explore_costs",
            "description": "Build a cost query column by column and explore the result",
            "arguments": [
                {
                    "name": "question",
                    "description": "Cost question to answer (optional)",
                    "required": False,
                }
            ],
        },
    ]


@server.get_prompt()
async def get_prompt(name: str, arguments: dict | None = None) -> dict:
    """Get a prompt template"""

    if name == "explore_costs":
        question = arguments.get("question") if arguments else None
        focus = f" to answer: {question}" if question else ""

        return {
            "messages": [
                {
                    "role": "user",
                    "content": (
                        f"Help me explore our Cost and Usage Report data{focus}\n\n"
                        "1. Use search_catalog_columns to find the relevant columns\n"
                        "2. Build the query with toggle_column, one column at a time\n"
                        "3. Add WHERE conditions with add_filter_condition\n"
                        "4. validate_query, then execute_query\n"
                        "5. Use explore_results to filter and sort; profile_column for choices\n\n"
                        "Summarize the key cost drivers you find."
                    ),
                }
            ]
        }

    else:
        raise ValueError(f"Unknown prompt: {name}")


def _main_with_mode(mode: MCPMode) -> None:
    """Main entry point for the MCP server with fixed mode."""
    import sys

    try:
        configure_runtime(mode, _init_client_for_mode(mode))
        backend = f" (backend: {workbench_client.base_url})" if workbench_client else ""
        print(
            f"✓ FinOps Workbench MCP Server started in mode: {mode.value}{backend}",
            file=sys.stderr,
        )
    except Exception as e:
        print(f"✗ Failed to initialize workbench: {e}", file=sys.stderr)
        raise

    # Run the server
    import asyncio

    async def run_server():
        """Run the MCP server using stdio transport"""
        try:
            async with stdio_server() as (read_stream, write_stream):
                await server.run(read_stream, write_stream, server.create_initialization_options())
        finally:
            if workbench_client is not None:
                await workbench_client.close()

    asyncio.run(run_server())


def main() -> None:
    """Offline MCP entry point (pure workbench tools only)."""
    import sys

    if any(arg in ("-h", "--help") for arg in sys.argv[1:]):
        print(
            "finops-workbench-mcp - FinOps query workbench MCP server\n\n"
            "Runs offline: column toggling, validation and result exploration.\n"
            "Use finops-workbench-mcp-connected to execute queries, with:\n"
            "  BACKEND_API_URL\n"
            "  FINOPS_API_KEY (optional)\n"
        )
        return

    _main_with_mode(MCPMode.OFFLINE)


def main_connected() -> None:
    """Connected MCP entry point (adds backend query execution and AI generation)."""
    _main_with_mode(MCPMode.CONNECTED)


if __name__ == "__main__":
    main()
